# stampbook/api/likes/services.py

import logging
from concurrent.futures import Future
from typing import Dict, Mapping, Optional, Tuple

from stampbook.models.post import parse_post_id
from stampbook.services.counter_cache import CounterCache
from stampbook.services.firebase_service import FirebaseService
from stampbook.services.mutation_engine import MutationEngine

LIKE_ERROR_MESSAGE = "좋아요를 반영하지 못했습니다. 다시 시도해주세요."


def like_key(post_id: str) -> str:
    return f"like:{post_id}"


class LikeManager:
    """
    게시물 좋아요 상태와 좋아요 수를 관리하는 서비스 클래스.
    - 토글은 로컬 캐시에 즉시 반영되고, 원격 쓰기가 실패하면 되돌려집니다.
    - 피드에서 받은 좋아요 수는 진행 중인 토글이 없는 게시물에만 반영됩니다.
    """
    def __init__(self, user_id: str, firebase: FirebaseService, engine: MutationEngine,
                 liked_posts: CounterCache, like_counts: CounterCache):
        self.user_id = user_id
        self.firebase = firebase
        self.engine = engine
        self.liked_posts = liked_posts
        self.like_counts = like_counts

    def is_liked(self, post_id: str) -> bool:
        return self.liked_posts.get(post_id)

    def like_count(self, post_id: str) -> int:
        return self.like_counts.get(post_id)

    def state(self, post_id: str) -> Tuple[bool, int]:
        with self.engine.lock:
            return self.is_liked(post_id), self.like_count(post_id)

    def is_pending(self, post_id: str) -> bool:
        return self.engine.is_pending(like_key(post_id))

    def toggle_like(self, post_id: str, post_owner_id: Optional[str] = None,
                    stamp_id: Optional[str] = None) -> 'Future[bool]':
        """
        좋아요를 토글합니다. 항상 '현재' 로컬 상태를 읽어 뒤집으므로,
        N번 연속 토글하면 좋아요 여부는 처음 상태 XOR (N이 홀수) 가 됩니다.
        """
        if not post_owner_id or not stamp_id:
            post_owner_id, stamp_id = parse_post_id(post_id)
        target = {}

        def mutate():
            was_liked = self.is_liked(post_id)
            old_count = self.like_count(post_id)
            new_count = max(0, old_count + (-1 if was_liked else 1))
            self.liked_posts.set(post_id, not was_liked)
            self.like_counts.set(post_id, new_count)
            target['liked'] = not was_liked
            target['delta'] = new_count - old_count
            logging.info(f"좋아요 토글 (post: {post_id}, liked: {not was_liked}, count: {old_count} -> {new_count})")
            return was_liked, new_count - old_count

        def compensate(token):
            was_liked, delta = token
            self.liked_posts.set(post_id, was_liked)
            self.like_counts.set(post_id, self.like_count(post_id) - delta)
            logging.info(f"좋아요 롤백 (post: {post_id}, liked: {was_liked})")

        def remote_call():
            return self.firebase.set_like(self.user_id, post_id, post_owner_id, stamp_id, target['liked'])

        def on_success(changed):
            if not changed:
                # 원격이 이미 그 상태였으므로 로컬에서 더한 만큼은 중복입니다.
                self.like_counts.set(post_id, self.like_count(post_id) - target['delta'])
                logging.info(f"좋아요가 이미 반영된 상태여서 로컬 카운트를 보정 (post: {post_id})")

        return self.engine.apply_optimistic(like_key(post_id), mutate, remote_call, compensate,
                                            on_success=on_success, error_message=LIKE_ERROR_MESSAGE)

    def update_like_count(self, post_id: str, count: int) -> None:
        self.sync_counts({post_id: count})

    def sync_counts(self, counts: Mapping[str, int]) -> Dict[str, int]:
        """
        피드에서 받은 좋아요 수를 한 번에 반영합니다.
        - 토글이 진행 중인 게시물은 건너뜁니다.
        - 내가 좋아요한 게시물인데 피드 값이 0이면 피드가 오래된 것이므로 최소 1을 유지합니다.
        :return: 실제로 반영된 값
        """
        applied = {}
        with self.engine.lock:
            for post_id, count in counts.items():
                if self.is_pending(post_id):
                    logging.info(f"진행 중인 좋아요 토글이 있어 동기화를 건너뜀 (post: {post_id})")
                    continue
                if self.is_liked(post_id) and count == 0:
                    count = max(1, self.like_count(post_id) or 1)
                applied[post_id] = count
            self.like_counts.set_many(applied)
        return applied

    def sync_liked(self, liked: Mapping[str, bool]) -> None:
        with self.engine.lock:
            self.liked_posts.set_many({
                post_id: value for post_id, value in liked.items() if not self.is_pending(post_id)
            })

    def fetch_like_status(self, post_ids) -> Dict[str, bool]:
        """여러 게시물의 좋아요 여부를 원격에서 확인해 캐시에 반영합니다."""
        status = self.firebase.fetch_like_status(self.user_id, post_ids)
        self.sync_liked(status)
        return status

    def clear_cache(self) -> None:
        with self.engine.lock:
            self.liked_posts.clear()
            self.like_counts.clear()
        logging.info(f"좋아요 캐시 초기화 (user: {self.user_id})")
