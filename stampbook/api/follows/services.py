# stampbook/api/follows/services.py

import logging
from concurrent.futures import Future
from typing import Dict, Iterable, List

from blinker import Signal

from stampbook.core.errors import NotFoundError, ValidationFailed
from stampbook.models.user import UserProfile
from stampbook.services.counter_cache import CounterCache
from stampbook.services.firebase_service import FirebaseService
from stampbook.services.mutation_engine import MutationEngine

FOLLOW_ERROR_MESSAGE = "팔로우 상태를 변경하지 못했습니다. 다시 시도해주세요."

FOLLOW_KEY_PREFIX = "follow:"


def follow_key(target_user_id: str) -> str:
    return f"{FOLLOW_KEY_PREFIX}{target_user_id}"


class FollowManager:
    """
    팔로우 상태와 팔로워/팔로잉 수를 관리하는 서비스 클래스.

    팔로우 한 번은 두 카운터를 함께 바꿉니다: 나의 followingCount, 상대의 followerCount.
    실패하면 두 카운터와 팔로우 여부를 모두 되돌립니다. 카운터는 감소할 때 0 아래로 내려가지 않습니다.
    원격에서 팔로우 관계가 실제로 바뀌면 following_changed 신호를 보냅니다.
    """
    def __init__(self, user_id: str, firebase: FirebaseService, engine: MutationEngine,
                 following: CounterCache, follower_counts: CounterCache, following_counts: CounterCache):
        self.user_id = user_id
        self.firebase = firebase
        self.engine = engine
        self.following = following
        self.follower_counts = follower_counts
        self.following_counts = following_counts
        self.following_changed = Signal()

    def is_following(self, user_id: str) -> bool:
        return self.following.get(user_id)

    def follower_count(self, user_id: str) -> int:
        return self.follower_counts.get(user_id)

    def following_count(self, user_id: str) -> int:
        return self.following_counts.get(user_id)

    def is_pending(self, user_id: str) -> bool:
        return self.engine.is_pending(follow_key(user_id))

    def follow(self, target_user_id: str) -> 'Future[bool]':
        return self._set_following(target_user_id, True)

    def unfollow(self, target_user_id: str) -> 'Future[bool]':
        return self._set_following(target_user_id, False)

    def toggle_follow(self, target_user_id: str) -> 'Future[bool]':
        with self.engine.lock:
            return self._set_following(target_user_id, not self.is_following(target_user_id))

    def _set_following(self, target_user_id: str, following: bool) -> 'Future[bool]':
        if not target_user_id:
            raise ValidationFailed("대상 사용자 ID가 필요합니다.")
        if target_user_id == self.user_id:
            raise ValidationFailed("자기 자신은 팔로우할 수 없습니다.", error_code="SELF_FOLLOW")
        deltas = {}

        def add(cache: CounterCache, key: str, delta: int) -> int:
            old = cache.get(key)
            cache.set(key, old + delta)
            return cache.get(key) - old

        def mutate():
            was_following = self.is_following(target_user_id)
            delta = 0 if was_following == following else (1 if following else -1)
            self.following.set(target_user_id, following)
            mine = add(self.following_counts, self.user_id, delta)
            theirs = add(self.follower_counts, target_user_id, delta)
            deltas.update(mine=mine, theirs=theirs)
            logging.info(f"팔로우 상태 변경 ({self.user_id} -> {target_user_id}, following: {following})")
            return was_following, mine, theirs

        def compensate(token):
            was_following, mine, theirs = token
            self.following.set(target_user_id, was_following)
            self.following_counts.set(self.user_id, self.following_count(self.user_id) - mine)
            self.follower_counts.set(target_user_id, self.follower_count(target_user_id) - theirs)
            logging.info(f"팔로우 롤백 ({self.user_id} -> {target_user_id}, following: {was_following})")

        def remote_call():
            if following:
                return self.firebase.follow_user(self.user_id, target_user_id)
            return self.firebase.unfollow_user(self.user_id, target_user_id)

        def on_success(changed):
            if changed:
                self.following_changed.send(self, user_id=target_user_id, following=following)
            elif deltas['mine'] or deltas['theirs']:
                # 원격이 이미 그 상태였으므로 로컬에서 더한 카운트는 되돌립니다.
                self.following_counts.set(self.user_id, self.following_count(self.user_id) - deltas['mine'])
                self.follower_counts.set(target_user_id, self.follower_count(target_user_id) - deltas['theirs'])

        return self.engine.apply_optimistic(follow_key(target_user_id), mutate, remote_call, compensate,
                                            on_success=on_success, error_message=FOLLOW_ERROR_MESSAGE)

    def _any_follow_pending(self) -> bool:
        return any(key.startswith(FOLLOW_KEY_PREFIX) for key in self.engine.pending_keys())

    def check_follow_statuses(self, user_ids: Iterable[str]) -> Dict[str, bool]:
        """여러 사용자에 대한 팔로우 여부를 원격에서 확인해 캐시에 반영합니다."""
        statuses = {
            user_id: self.firebase.is_following(self.user_id, user_id)
            for user_id in set(user_ids) if user_id != self.user_id
        }
        with self.engine.lock:
            self.following.set_many({
                user_id: value for user_id, value in statuses.items() if not self.is_pending(user_id)
            })
        return statuses

    def refresh_counts(self, user_id: str) -> UserProfile:
        """프로필 문서의 followerCount/followingCount로 캐시를 갱신합니다."""
        profile = self.firebase.fetch_user_profile(user_id)
        if profile is None:
            raise NotFoundError("사용자를 찾을 수 없습니다.")
        self.sync_profile_counts([profile])
        return profile

    def sync_profile_counts(self, profiles: Iterable[UserProfile]) -> None:
        """
        프로필에서 읽은 카운트를 반영합니다.
        진행 중인 팔로우 변경이 건드리는 카운터(대상의 팔로워 수, 나의 팔로잉 수)는 건너뜁니다.
        """
        with self.engine.lock:
            follower_counts, following_counts = {}, {}
            any_pending = self._any_follow_pending()
            for profile in profiles:
                if not self.is_pending(profile.user_id):
                    follower_counts[profile.user_id] = profile.follower_count
                if not (profile.user_id == self.user_id and any_pending):
                    following_counts[profile.user_id] = profile.following_count
            self.follower_counts.set_many(follower_counts)
            self.following_counts.set_many(following_counts)

    def fetch_following_ids(self) -> List[str]:
        return self.firebase.fetch_following_ids(self.user_id)

    def fetch_followers(self, user_id: str) -> List[UserProfile]:
        profiles = self.firebase.fetch_followers(user_id)
        self.sync_profile_counts(profiles)
        return profiles

    def fetch_following(self, user_id: str) -> List[UserProfile]:
        profiles = self.firebase.fetch_following(user_id)
        self.sync_profile_counts(profiles)
        if user_id == self.user_id:
            with self.engine.lock:
                self.following.set_many({
                    profile.user_id: True for profile in profiles if not self.is_pending(profile.user_id)
                })
        return profiles

    def clear(self) -> None:
        with self.engine.lock:
            self.following.clear()
            self.follower_counts.clear()
            self.following_counts.clear()
        logging.info(f"팔로우 캐시 초기화 (user: {self.user_id})")
