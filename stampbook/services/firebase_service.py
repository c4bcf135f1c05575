# stampbook/services/firebase_service.py
"""
피드/좋아요/댓글/팔로우가 사용하는 원격 작업 모음.

모든 쓰기는 '상태를 설정'하는 의미를 가집니다. 예를 들어 set_like(liked=True)를 두 번 호출해도
좋아요 문서와 likeCount는 한 번만 바뀌고, 두 번째 호출은 변경이 없었음(False)을 반환합니다.
"""
import logging
from typing import Dict, Iterable, List, Optional

from stampbook.core.errors import NotFoundError, StampbookError, ValidationFailed
from stampbook.models.collected_stamp import CollectedStamp
from stampbook.models.comment import Comment
from stampbook.models.follow import Follow, followers_path, following_path
from stampbook.models.like import Like, like_document_id
from stampbook.models.stamp import Stamp
from stampbook.models.user import UserProfile
from stampbook.services.document_store import DocumentStore, Transaction, WriteOp
from stampbook.utils.datetime_utils import DateTimeUtils

# Firestore 'in' 쿼리에 한 번에 넣을 수 있는 값의 개수
IN_QUERY_CHUNK_SIZE = 10


def _chunks(values: List[str], size: int = IN_QUERY_CHUNK_SIZE) -> Iterable[List[str]]:
    for i in range(0, len(values), size):
        yield values[i:i + size]


def collected_stamp_path(user_id: str, stamp_id: str) -> str:
    return f"users/{user_id}/collected_stamps/{stamp_id}"


class FirebaseService:
    """DocumentStore 위에서 동작하는 원격 읽기/쓰기 서비스."""

    def __init__(self, store: DocumentStore):
        self.store = store

    # --- 프로필 / 스탬프 ---

    def fetch_user_profile(self, user_id: str) -> Optional[UserProfile]:
        data = self.store.get_document(f"users/{user_id}")
        if data is None:
            return None
        return UserProfile.from_document(user_id, data)

    def fetch_profiles(self, user_ids: Iterable[str]) -> Dict[str, UserProfile]:
        """여러 사용자의 프로필을 조회합니다. 존재하지 않는 사용자는 결과에서 빠집니다."""
        profiles = {}
        for chunk in _chunks(sorted(set(user_ids))):
            for doc in self.store.query_collection('users', [('id', 'in', chunk)]):
                profiles[doc.id] = UserProfile.from_document(doc.id, doc.data)
            # 'id' 필드가 없는 오래된 문서는 개별 조회로 보완합니다.
            for user_id in chunk:
                if user_id not in profiles:
                    profile = self.fetch_user_profile(user_id)
                    if profile:
                        profiles[user_id] = profile
        return profiles

    def fetch_stamp(self, stamp_id: str) -> Optional[Stamp]:
        data = self.store.get_document(f"stamps/{stamp_id}")
        return Stamp.from_document(stamp_id, data) if data is not None else None

    def fetch_stamps(self, stamp_ids: Iterable[str]) -> Dict[str, Stamp]:
        stamps = {}
        for stamp_id in sorted(set(stamp_ids)):
            stamp = self.fetch_stamp(stamp_id)
            if stamp:
                stamps[stamp_id] = stamp
            else:
                logging.warning(f"스탬프를 찾을 수 없습니다 (stamp_id: {stamp_id})")
        return stamps

    # --- 수집 기록 (게시물 원본) ---

    def fetch_collected_stamps(self, user_id: str, limit: int, before=None) -> List[CollectedStamp]:
        """
        사용자의 수집 기록을 최신순으로 조회합니다.
        before가 주어지면 collectedDate <= before 인 기록만 가져옵니다. (같은 시각 처리는 호출자가 담당)
        """
        filters = [('collectedDate', '<=', DateTimeUtils.to_utc(before))] if before else []
        docs = self.store.query_collection(f"users/{user_id}/collected_stamps", filters,
                                           order_by='collectedDate', descending=True, limit=limit)
        return [CollectedStamp.from_document(doc.id, doc.data, user_id) for doc in docs]

    def fetch_collected_stamp(self, user_id: str, stamp_id: str) -> Optional[CollectedStamp]:
        data = self.store.get_document(collected_stamp_path(user_id, stamp_id))
        if data is None:
            return None
        return CollectedStamp.from_document(stamp_id, data, user_id)

    # --- 좋아요 ---

    def has_liked(self, user_id: str, post_id: str) -> bool:
        return self.store.get_document(f"likes/{like_document_id(user_id, post_id)}") is not None

    def fetch_like_status(self, user_id: str, post_ids: Iterable[str]) -> Dict[str, bool]:
        post_ids = sorted(set(post_ids))
        liked = set()
        for chunk in _chunks(post_ids):
            docs = self.store.query_collection('likes', [('userId', '==', user_id), ('postId', 'in', chunk)])
            liked.update(doc.data.get('postId') for doc in docs)
        return {post_id: post_id in liked for post_id in post_ids}

    def set_like(self, user_id: str, post_id: str, post_owner_id: str, stamp_id: str, liked: bool) -> bool:
        """
        좋아요 상태를 liked로 맞춥니다.
        좋아요 문서 확인, 좋아요 문서 쓰기, 게시물 likeCount 증감을 한 트랜잭션에서 처리합니다.
        :return: 실제로 상태가 바뀌었으면 True, 이미 그 상태였으면 False
        """
        like_path = f"likes/{like_document_id(user_id, post_id)}"
        post_path = collected_stamp_path(post_owner_id, stamp_id)

        def _set_like(transaction: Transaction) -> bool:
            if (transaction.get(like_path) is not None) == liked:
                return False
            if liked:
                like = Like(user_id=user_id, post_id=post_id, stamp_id=stamp_id, post_owner_id=post_owner_id)
                transaction.set(like_path, like.to_document())
                transaction.increment(post_path, {'likeCount': 1})
            else:
                transaction.delete(like_path)
                transaction.increment(post_path, {'likeCount': -1})
            return True

        changed = self.store.run_transaction(_set_like)
        if changed:
            logging.info(f"좋아요 상태 변경 (user: {user_id}, post: {post_id}, liked: {liked})")
        else:
            logging.info(f"좋아요 상태 변경 없음 (user: {user_id}, post: {post_id}, liked: {liked})")
        return changed

    def fetch_like_count(self, post_owner_id: str, stamp_id: str) -> int:
        data = self.store.get_document(collected_stamp_path(post_owner_id, stamp_id))
        if data is None:
            raise NotFoundError("게시물을 찾을 수 없습니다.")
        return max(0, int(data.get('likeCount') or 0))

    # --- 댓글 ---

    def add_comment(self, author: UserProfile, post_id: str, post_owner_id: str, stamp_id: str,
                    text: str) -> Comment:
        comment_id = self.store.generate_id('comments')
        comment = Comment(
            comment_id=comment_id,
            user_id=author.user_id,
            post_id=post_id,
            stamp_id=stamp_id,
            post_owner_id=post_owner_id,
            text=text,
            user_display_name=author.display_name,
            user_username=author.username,
            user_avatar_url=author.avatar_url,
        )
        self.store.commit_batch([
            WriteOp.set(f"comments/{comment_id}", comment.to_document()),
            WriteOp.increment(collected_stamp_path(post_owner_id, stamp_id), {'commentCount': 1}),
        ])
        logging.info(f"댓글 작성 완료 (comment_id: {comment_id}, post: {post_id})")
        return comment

    def fetch_comments(self, post_id: str) -> List[Comment]:
        docs = self.store.query_collection('comments', [('postId', '==', post_id)], order_by='createdAt')
        return [Comment.from_document(doc.id, doc.data) for doc in docs]

    def fetch_comment(self, comment_id: str) -> Optional[Comment]:
        data = self.store.get_document(f"comments/{comment_id}")
        return Comment.from_document(comment_id, data) if data is not None else None

    def delete_comment(self, comment_id: str, post_owner_id: str, stamp_id: str) -> bool:
        """
        댓글 문서를 삭제하고 commentCount를 감소시킵니다. 두 쓰기는 한 트랜잭션입니다.
        :return: 댓글이 이미 없었으면 False (commentCount도 그대로)
        """
        comment_path = f"comments/{comment_id}"

        def _delete(transaction: Transaction) -> bool:
            if transaction.get(comment_path) is None:
                return False
            transaction.delete(comment_path)
            transaction.increment(collected_stamp_path(post_owner_id, stamp_id), {'commentCount': -1})
            return True

        deleted = self.store.run_transaction(_delete)
        if deleted:
            logging.info(f"댓글 삭제 완료 (comment_id: {comment_id})")
        else:
            logging.info(f"이미 삭제된 댓글입니다 (comment_id: {comment_id})")
        return deleted

    # --- 팔로우 ---

    def is_following(self, follower_id: str, followee_id: str) -> bool:
        return self.store.get_document(following_path(follower_id, followee_id)) is not None

    def follow_user(self, follower_id: str, followee_id: str) -> bool:
        """
        follower -> followee 관계를 만듭니다. 이미 팔로우 중이면 아무것도 하지 않고 False를 반환합니다.
        관계 확인과 관계 문서 두 개는 한 트랜잭션으로 쓰고, 양쪽 카운터 증가는 관계가 실제로 생겼을 때만 별도로 씁니다.
        """
        if follower_id == followee_id:
            raise ValidationFailed("자기 자신은 팔로우할 수 없습니다.", error_code="SELF_FOLLOW")
        follow = Follow(follower_id=follower_id, followee_id=followee_id)

        def _follow(transaction: Transaction) -> bool:
            if transaction.get(following_path(follower_id, followee_id)) is not None:
                return False
            transaction.set(following_path(follower_id, followee_id), follow.following_document())
            transaction.set(followers_path(followee_id, follower_id), follow.follower_document())
            return True

        if not self.store.run_transaction(_follow):
            logging.info(f"이미 팔로우 중입니다 ({follower_id} -> {followee_id})")
            return False
        self._update_follow_counts(follower_id, followee_id, 1)
        logging.info(f"팔로우 완료 ({follower_id} -> {followee_id})")
        return True

    def unfollow_user(self, follower_id: str, followee_id: str) -> bool:
        if follower_id == followee_id:
            raise ValidationFailed("자기 자신은 언팔로우할 수 없습니다.", error_code="SELF_FOLLOW")

        def _unfollow(transaction: Transaction) -> bool:
            if transaction.get(following_path(follower_id, followee_id)) is None:
                return False
            transaction.delete(following_path(follower_id, followee_id))
            transaction.delete(followers_path(followee_id, follower_id))
            return True

        if not self.store.run_transaction(_unfollow):
            logging.info(f"팔로우 관계가 없습니다 ({follower_id} -> {followee_id})")
            return False
        self._update_follow_counts(follower_id, followee_id, -1)
        logging.info(f"언팔로우 완료 ({follower_id} -> {followee_id})")
        return True

    def _update_follow_counts(self, follower_id: str, followee_id: str, delta: int) -> None:
        # 관계 문서가 기준 데이터이므로, 카운터 쓰기 실패는 보정 스크립트가 바로잡습니다.
        try:
            self.store.commit_batch([
                WriteOp.increment(f"users/{follower_id}", {'followingCount': delta}),
                WriteOp.increment(f"users/{followee_id}", {'followerCount': delta}),
            ])
        except StampbookError as e:
            logging.error(f"팔로우 카운터 갱신 실패 ({follower_id} -> {followee_id}, delta: {delta}): {e.message}")

    def fetch_following_ids(self, user_id: str) -> List[str]:
        docs = self.store.query_collection(f"users/{user_id}/following")
        return [doc.data.get('id') or doc.id for doc in docs]

    def fetch_follower_ids(self, user_id: str) -> List[str]:
        docs = self.store.collection_group('following', [('id', '==', user_id)])
        return [doc.parent_id for doc in docs if doc.parent_id]

    def fetch_following(self, user_id: str) -> List[UserProfile]:
        ids = self.fetch_following_ids(user_id)
        profiles = self.fetch_profiles(ids)
        return [profiles[uid] for uid in ids if uid in profiles]

    def fetch_followers(self, user_id: str) -> List[UserProfile]:
        ids = self.fetch_follower_ids(user_id)
        profiles = self.fetch_profiles(ids)
        return [profiles[uid] for uid in ids if uid in profiles]
