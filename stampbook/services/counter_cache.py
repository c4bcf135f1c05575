# stampbook/services/counter_cache.py
"""
로컬 카운터 캐시.

좋아요 수, 좋아요 여부, 댓글 수, 팔로우 여부/수를 종류별 맵으로 메모리에 들고 있으면서
변경될 때마다 즉시 JsonFileStorage에 기록합니다. 읽기는 항상 동기적이고 네트워크를 타지 않습니다.
"""
import logging
import threading
from typing import Any, Callable, Dict, Mapping

from blinker import Signal

from stampbook.services.local_storage import JsonFileStorage

# 카운터 종류(영속 맵 이름) -> 값 타입
LIKED_POSTS = 'liked_posts'
LIKE_COUNTS = 'like_counts'
COMMENT_COUNTS = 'comment_counts'
FOLLOWING = 'following'
FOLLOWER_COUNTS = 'follower_counts'
FOLLOWING_COUNTS = 'following_counts'

COUNTER_KINDS = {
    LIKED_POSTS: bool,
    LIKE_COUNTS: int,
    COMMENT_COUNTS: int,
    FOLLOWING: bool,
    FOLLOWER_COUNTS: int,
    FOLLOWING_COUNTS: int,
}


class CounterCache:
    """
    한 종류의 카운터(또는 불리언 플래그)를 보관하는 캐시.

    - get(): 처음 보는 키는 0/False를 반환하며 예외를 던지지 않습니다.
    - set()/set_many(): 메모리 갱신 후 반환 전에 파일에 기록합니다. 0도 그대로 저장됩니다.
    - subscribe(key, callback): 특정 키가 바뀔 때마다 callback(key, value)를 호출합니다.
    """

    def __init__(self, storage: JsonFileStorage, kind: str):
        if kind not in COUNTER_KINDS:
            raise ValueError(f"알 수 없는 카운터 종류입니다: {kind}")
        self.storage = storage
        self.kind = kind
        self.value_type = COUNTER_KINDS[kind]
        self.default = self.value_type()
        self.changed = Signal()
        self._lock = threading.RLock()
        self._values: Dict[str, Any] = {}
        self.load()

    def _accepts(self, value: Any) -> bool:
        if self.value_type is bool:
            return isinstance(value, bool)
        return isinstance(value, int) and not isinstance(value, bool)

    def _normalize(self, value: Any) -> Any:
        if self.value_type is bool:
            return bool(value)
        return max(0, int(value))

    def load(self) -> None:
        """영속 저장소에서 맵을 읽어옵니다. 없거나 손상된 항목은 버리고 빈 맵으로 시작합니다."""
        raw = self.storage.get(self.kind, {})
        if not isinstance(raw, dict):
            logging.warning(f"[{self.kind}] 저장된 카운터 맵 형식이 올바르지 않아 무시합니다.")
            raw = {}
        values = {}
        for key, value in raw.items():
            if self._accepts(value):
                values[key] = self._normalize(value)
            else:
                logging.warning(f"[{self.kind}] 잘못된 타입의 항목을 버립니다: {key}={value!r}")
        with self._lock:
            self._values = values

    def get(self, key: str) -> Any:
        with self._lock:
            return self._values.get(key, self.default)

    def contains(self, key: str) -> bool:
        with self._lock:
            return key in self._values

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return dict(self._values)

    def set(self, key: str, value: Any) -> None:
        self.set_many({key: value})

    def set_many(self, values: Mapping[str, Any]) -> None:
        """여러 값을 한 번에 갱신하고 파일에는 한 번만 기록합니다."""
        if not values:
            return
        changed = {}
        with self._lock:
            for key, value in values.items():
                value = self._normalize(value)
                if self._values.get(key) != value or key not in self._values:
                    changed[key] = value
                self._values[key] = value
            self.storage.set(self.kind, self._values)
        for key, value in changed.items():
            self.changed.send(key, value=value)

    def clear(self) -> None:
        """메모리와 영속 저장소의 맵을 모두 비웁니다. (로그아웃)"""
        with self._lock:
            keys = list(self._values.keys())
            self._values = {}
            self.storage.remove(self.kind)
        for key in keys:
            self.changed.send(key, value=self.default)

    def subscribe(self, key: str, callback: Callable[[str, Any], None]) -> Callable[[], None]:
        """키 하나를 구독합니다. 반환된 함수를 호출하면 구독이 해제됩니다."""
        def receiver(sender, value):
            callback(sender, value)

        self.changed.connect(receiver, sender=key, weak=False)
        return lambda: self.changed.disconnect(receiver, sender=key)
