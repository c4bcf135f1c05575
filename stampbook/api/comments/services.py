# stampbook/api/comments/services.py

import logging
import uuid
from concurrent.futures import Future
from typing import Dict, List, Mapping, Optional, Tuple

from stampbook.core.errors import ConflictError, NotFoundError, PermissionDenied, ValidationFailed
from stampbook.models.comment import Comment, PENDING_COMMENT_PREFIX
from stampbook.models.post import parse_post_id
from stampbook.models.user import UserProfile
from stampbook.services.counter_cache import CounterCache
from stampbook.services.firebase_service import FirebaseService
from stampbook.services.mutation_engine import MutationEngine

ADD_ERROR_MESSAGE = "댓글을 등록하지 못했습니다. 다시 시도해주세요."
DELETE_ERROR_MESSAGE = "댓글을 삭제하지 못했습니다. 다시 시도해주세요."


def comment_key(post_id: str) -> str:
    return f"comment:{post_id}"


class CommentManager:
    """
    게시물 댓글 목록과 댓글 수를 관리하는 서비스 클래스.
    - 댓글 목록은 세션 메모리에만, 댓글 수는 로컬 카운터 캐시에 보관합니다.
    - 추가/삭제 모두 원격 쓰기가 실패하면 목록과 댓글 수를 함께 되돌립니다.
    """
    def __init__(self, user_id: str, firebase: FirebaseService, engine: MutationEngine,
                 comment_counts: CounterCache, max_length: int = 500):
        self.user_id = user_id
        self.firebase = firebase
        self.engine = engine
        self.comment_counts = comment_counts
        self.max_length = max_length
        self._comments: Dict[str, List[Comment]] = {}
        self._author: Optional[UserProfile] = None
        self._deleting: Dict[str, Future] = {}

    def comment_count(self, post_id: str) -> int:
        return self.comment_counts.get(post_id)

    def comments(self, post_id: str) -> List[Comment]:
        with self.engine.lock:
            return list(self._comments.get(post_id, []))

    def is_pending(self, post_id: str) -> bool:
        return self.engine.is_pending(comment_key(post_id))

    def _validate_text(self, text: Optional[str]) -> str:
        text = (text or "").strip()
        if not text:
            raise ValidationFailed("댓글 내용을 입력해주세요.", error_code="EMPTY_COMMENT")
        if len(text) > self.max_length:
            raise ValidationFailed(f"댓글은 {self.max_length}자 이하로 작성해주세요.", error_code="COMMENT_TOO_LONG")
        return text

    def _load_author(self) -> UserProfile:
        if self._author is None:
            profile = self.firebase.fetch_user_profile(self.user_id)
            if profile is None:
                raise NotFoundError("작성자 프로필을 찾을 수 없습니다.")
            self._author = profile
        return self._author

    def fetch_comments(self, post_id: str) -> List[Comment]:
        """원격에서 댓글 목록을 불러오고, 댓글 수를 불러온 개수로 맞춥니다."""
        comments = self.firebase.fetch_comments(post_id)
        with self.engine.lock:
            if self.is_pending(post_id):
                logging.info(f"진행 중인 댓글 변경이 있어 목록 갱신을 건너뜀 (post: {post_id})")
                return self.comments(post_id)
            self._comments[post_id] = comments
            self.comment_counts.set(post_id, len(comments))
        logging.info(f"댓글 {len(comments)}개 로드 (post: {post_id})")
        return list(comments)

    def add_comment(self, post_id: str, text: str) -> Tuple[Comment, 'Future[bool]']:
        """
        댓글을 목록 끝에 임시 ID로 먼저 추가하고 댓글 수를 올립니다.
        저장에 성공하면 임시 댓글은 저장된 댓글로 교체됩니다.
        """
        text = self._validate_text(text)
        post_owner_id, stamp_id = parse_post_id(post_id)
        author = self._author
        pending = Comment(
            comment_id=f"{PENDING_COMMENT_PREFIX}{uuid.uuid4().hex}",
            user_id=self.user_id,
            post_id=post_id,
            stamp_id=stamp_id,
            post_owner_id=post_owner_id,
            text=text,
            user_display_name=author.display_name if author else self.user_id,
            user_username=author.username if author else self.user_id,
            user_avatar_url=author.avatar_url if author else None,
        )

        def mutate():
            self._comments.setdefault(post_id, []).append(pending)
            old_count = self.comment_count(post_id)
            self.comment_counts.set(post_id, old_count + 1)
            return self.comment_count(post_id) - old_count

        def compensate(delta):
            entries = self._comments.get(post_id, [])
            if pending in entries:
                entries.remove(pending)
            self.comment_counts.set(post_id, self.comment_count(post_id) - delta)
            logging.info(f"댓글 추가 롤백 (post: {post_id})")

        def remote_call():
            return self.firebase.add_comment(self._load_author(), post_id, post_owner_id, stamp_id, text)

        def on_success(saved: Comment):
            entries = self._comments.get(post_id, [])
            for i, comment in enumerate(entries):
                if comment.comment_id == pending.comment_id:
                    entries[i] = saved
                    break

        future = self.engine.apply_optimistic(comment_key(post_id), mutate, remote_call, compensate,
                                              on_success=on_success, error_message=ADD_ERROR_MESSAGE,
                                              supersedable=False)
        return pending, future

    def can_delete(self, comment: Comment) -> bool:
        """내가 쓴 댓글이거나 내 게시물에 달린 댓글이면 삭제할 수 있습니다."""
        return comment.user_id == self.user_id or comment.post_owner_id == self.user_id

    def delete_comment(self, post_id: str, comment_id: str) -> 'Future[bool]':
        """
        댓글을 목록에서 먼저 빼고 댓글 수를 내립니다.
        같은 댓글의 삭제가 이미 진행 중이면 새로 삭제하지 않고 진행 중인 삭제의 Future를 돌려줍니다.
        """
        with self.engine.lock:
            in_flight = self._deleting.get(comment_id)
            if in_flight is not None and not in_flight.done():
                logging.info(f"이미 삭제 중인 댓글입니다 (post: {post_id}, comment: {comment_id})")
                return in_flight
            comment = next((c for c in self._comments.get(post_id, []) if c.comment_id == comment_id), None)
        if comment is None:
            comment = self.firebase.fetch_comment(comment_id)
        if comment is None or comment.post_id != post_id:
            raise NotFoundError("댓글을 찾을 수 없습니다.")
        if comment.is_pending:
            raise ConflictError("아직 저장 중인 댓글입니다. 잠시 후 다시 시도해주세요.")
        if not self.can_delete(comment):
            raise PermissionDenied("댓글을 삭제할 권한이 없습니다.")

        def mutate():
            entries = self._comments.get(post_id, [])
            index = None
            for i, c in enumerate(entries):
                if c.comment_id == comment_id:
                    index = i
                    entries.pop(i)
                    break
            old_count = self.comment_count(post_id)
            self.comment_counts.set(post_id, old_count - 1)
            return index, self.comment_count(post_id) - old_count

        def compensate(token):
            index, delta = token
            if index is not None:
                entries = self._comments.setdefault(post_id, [])
                entries.insert(min(index, len(entries)), comment)
            self.comment_counts.set(post_id, self.comment_count(post_id) - delta)
            logging.info(f"댓글 삭제 롤백 (post: {post_id}, comment: {comment_id})")

        def remote_call():
            return self.firebase.delete_comment(comment_id, comment.post_owner_id, comment.stamp_id)

        def on_success(deleted):
            if not deleted:
                logging.info(f"다른 곳에서 이미 삭제된 댓글입니다 (post: {post_id}, comment: {comment_id})")

        with self.engine.lock:
            in_flight = self._deleting.get(comment_id)
            if in_flight is not None and not in_flight.done():
                return in_flight
            future = self.engine.apply_optimistic(comment_key(post_id), mutate, remote_call, compensate,
                                                  on_success=on_success, error_message=DELETE_ERROR_MESSAGE,
                                                  supersedable=False)
            self._deleting[comment_id] = future
        future.add_done_callback(lambda _: self._finish_delete(comment_id))
        return future

    def _finish_delete(self, comment_id: str) -> None:
        with self.engine.lock:
            self._deleting.pop(comment_id, None)

    def sync_counts(self, counts: Mapping[str, int]) -> Dict[str, int]:
        """피드에서 받은 댓글 수를 한 번에 반영합니다. 변경이 진행 중인 게시물은 건너뜁니다."""
        with self.engine.lock:
            applied = {post_id: count for post_id, count in counts.items() if not self.is_pending(post_id)}
            self.comment_counts.set_many(applied)
        return applied

    def clear(self) -> None:
        with self.engine.lock:
            self._comments.clear()
            self._author = None
            self.comment_counts.clear()
        logging.info(f"댓글 캐시 초기화 (user: {self.user_id})")
