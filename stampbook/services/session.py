# stampbook/services/session.py
"""
인증된 사용자 한 명의 세션 컨텍스트.

로컬 카운터 캐시, 낙관적 변경 엔진, 좋아요/댓글/팔로우 매니저, 피드 서비스는
세션마다 한 벌씩 만들어지고, 로그아웃하면 함께 정리됩니다.
"""
import hashlib
import logging
import os
import threading
from typing import Any, Dict, Mapping, Optional

from werkzeug.utils import secure_filename

from stampbook.api.comments.services import CommentManager
from stampbook.api.feed.services import FeedService
from stampbook.api.follows.services import FollowManager
from stampbook.api.likes.services import LikeManager
from stampbook.services import counter_cache
from stampbook.services.counter_cache import CounterCache
from stampbook.services.firebase_service import FirebaseService
from stampbook.services.local_storage import JsonFileStorage
from stampbook.services.mutation_engine import ErrorBanner, MutationEngine


def storage_path_for(cache_dir: str, user_id: str) -> str:
    """
    사용자 ID로 로컬 저장소 파일 경로를 만듭니다.
    파일 이름은 경로 구분자 등을 제거한 ID 뒤에 원래 ID의 해시를 붙여, 정리 후 같아지는 ID('a/b', 'a_b')도 구분합니다.
    """
    if not user_id:
        raise ValueError("빈 사용자 ID로는 로컬 저장소 경로를 만들 수 없습니다.")
    digest = hashlib.sha256(user_id.encode('utf-8')).hexdigest()[:16]
    safe_name = secure_filename(user_id)
    return os.path.join(cache_dir, f"{safe_name}-{digest}.json" if safe_name else f"{digest}.json")


class SessionContext:
    """한 사용자의 세션에 속한 서비스 객체 묶음."""

    def __init__(self, user_id: str, firebase: FirebaseService, config: Mapping[str, Any]):
        self.user_id = user_id
        self.firebase = firebase
        self.storage = JsonFileStorage(storage_path_for(config['COUNTER_CACHE_DIR'], user_id))
        self.caches: Dict[str, CounterCache] = {
            kind: CounterCache(self.storage, kind) for kind in counter_cache.COUNTER_KINDS
        }
        self.error_banner = ErrorBanner(dismiss_seconds=config.get('ERROR_DISMISS_SECONDS', 3.0))
        self.engine = MutationEngine(self.error_banner)

        self.likes = LikeManager(user_id, firebase, self.engine,
                                 self.caches[counter_cache.LIKED_POSTS],
                                 self.caches[counter_cache.LIKE_COUNTS])
        self.comments = CommentManager(user_id, firebase, self.engine,
                                       self.caches[counter_cache.COMMENT_COUNTS],
                                       max_length=config.get('COMMENT_MAX_LENGTH', 500))
        self.follows = FollowManager(user_id, firebase, self.engine,
                                     self.caches[counter_cache.FOLLOWING],
                                     self.caches[counter_cache.FOLLOWER_COUNTS],
                                     self.caches[counter_cache.FOLLOWING_COUNTS])
        self.feed = FeedService(
            user_id, firebase, self.likes, self.comments, self.follows, self.error_banner,
            page_size=config.get('FEED_PAGE_SIZE', 20),
            load_more_threshold=config.get('FEED_LOAD_MORE_THRESHOLD', 5),
            follow_refresh_debounce=config.get('FOLLOW_REFRESH_DEBOUNCE_SECONDS', 10.0),
            prefetch_timeout=config.get('PREFETCH_TIMEOUT_SECONDS', 2.0),
        )

    def sign_out(self) -> None:
        """진행 중인 원격 쓰기를 마무리한 뒤 모든 로컬 상태(메모리 + 파일)를 지웁니다."""
        self.engine.shutdown(wait=True)
        self.feed.close()
        self.likes.clear_cache()
        self.comments.clear()
        self.follows.clear()
        self.feed.clear()
        self.error_banner.dismiss()
        self.storage.clear()
        logging.info(f"세션 종료 및 로컬 캐시 삭제 (user: {self.user_id})")

    def close(self) -> None:
        """로컬 캐시는 남겨둔 채 백그라운드 작업만 정리합니다. (앱 종료)"""
        self.engine.shutdown(wait=True)
        self.feed.close()


class SessionRegistry:
    """userId별 SessionContext를 만들고 보관합니다."""

    def __init__(self, firebase: FirebaseService, config: Mapping[str, Any]):
        self.firebase = firebase
        self.config = config
        self._sessions: Dict[str, SessionContext] = {}
        self._lock = threading.Lock()

    def get(self, user_id: str) -> SessionContext:
        with self._lock:
            session = self._sessions.get(user_id)
            if session is None:
                session = SessionContext(user_id, self.firebase, self.config)
                self._sessions[user_id] = session
                logging.info(f"세션 생성 (user: {user_id})")
            return session

    def find(self, user_id: str) -> Optional[SessionContext]:
        with self._lock:
            return self._sessions.get(user_id)

    def sign_out(self, user_id: str) -> bool:
        """
        세션을 정리합니다. 아직 세션이 만들어지지 않았더라도 이전 실행에서 남은 캐시 파일은 지웁니다.
        :return: 활성 세션이 있었으면 True
        """
        with self._lock:
            session = self._sessions.pop(user_id, None)
        if session is not None:
            session.sign_out()
            return True
        JsonFileStorage(storage_path_for(self.config['COUNTER_CACHE_DIR'], user_id)).clear()
        logging.info(f"활성 세션 없이 로컬 캐시 파일만 삭제 (user: {user_id})")
        return False

    def close_all(self) -> None:
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            session.close()
