# stampbook/api/feed/services.py

import dataclasses
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import datetime
from typing import Callable, Dict, List, Optional, Set, Tuple

from stampbook.api.comments.services import CommentManager
from stampbook.api.follows.services import FollowManager
from stampbook.api.likes.services import LikeManager
from stampbook.core.errors import NotFoundError, StampbookError
from stampbook.models.collected_stamp import CollectedStamp
from stampbook.models.post import Post, make_post_id, parse_post_id
from stampbook.models.stamp import Stamp
from stampbook.models.user import UserProfile
from stampbook.services.firebase_service import FirebaseService
from stampbook.services.mutation_engine import ErrorBanner
from stampbook.utils.datetime_utils import DateTimeUtils

TAB_ALL = 'all'
TAB_MINE = 'mine'
TABS = (TAB_ALL, TAB_MINE)

FEED_ERROR_MESSAGE = "피드를 불러오지 못했습니다. 당겨서 새로고침 해주세요."


@dataclasses.dataclass
class FeedState:
    """탭 하나의 페이지네이션 상태."""
    posts: List[Post] = dataclasses.field(default_factory=list)
    author_ids: List[str] = dataclasses.field(default_factory=list)
    loaded_ids: Set[str] = dataclasses.field(default_factory=set)
    cursor: Optional[datetime] = None
    # cursor와 같은 시각에 수집된, 이미 불러온 게시물 ID (다음 페이지에서 중복 제외용)
    cursor_ids: Set[str] = dataclasses.field(default_factory=set)
    has_more: bool = True
    loading: bool = False
    loaded: bool = False
    error: Optional[str] = None


class FeedService:
    """
    피드 조립 서비스.

    - "all" 탭: 나 + 내가 팔로우하는 사용자들의 수집 기록을 최신순으로 합친 피드
    - "mine" 탭: 내 수집 기록만
    게시물은 매번 수집 기록 + 프로필 + 스탬프 정보로 조립되며, 좋아요/댓글 수는
    읽을 때마다 로컬 카운터 캐시의 현재 값으로 채워집니다.
    """
    def __init__(self, user_id: str, firebase: FirebaseService, likes: LikeManager,
                 comments: CommentManager, follows: FollowManager, error_banner: ErrorBanner,
                 page_size: int = 20, load_more_threshold: int = 5,
                 follow_refresh_debounce: float = 10.0, prefetch_timeout: float = 2.0,
                 clock: Callable[[], float] = time.monotonic):
        self.user_id = user_id
        self.firebase = firebase
        self.likes = likes
        self.comments = comments
        self.follows = follows
        self.error_banner = error_banner
        self.page_size = page_size
        self.load_more_threshold = load_more_threshold
        self.follow_refresh_debounce = follow_refresh_debounce
        self.prefetch_timeout = prefetch_timeout
        self._clock = clock
        self._lock = threading.RLock()
        self._states: Dict[str, FeedState] = {tab: FeedState() for tab in TABS}
        self._detail_cache: Dict[str, Post] = {}
        self._last_refresh_at: Optional[float] = None
        self._prefetch_executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix='stampbook-prefetch')
        self._refresh_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix='stampbook-feed-refresh')
        self._closed = False
        self.follows.following_changed.connect(self.on_following_changed, sender=self.follows, weak=False)

    # --- 읽기 ---

    def _with_live_counters(self, post: Post) -> Post:
        return dataclasses.replace(
            post,
            like_count=self.likes.like_count(post.post_id),
            comment_count=self.comments.comment_count(post.post_id),
            is_liked=self.likes.is_liked(post.post_id),
        )

    def current_posts(self, tab: str = TAB_ALL) -> List[Post]:
        with self._lock:
            posts = list(self._state(tab).posts)
        return [self._with_live_counters(post) for post in posts]

    def current_my_posts(self) -> List[Post]:
        return self.current_posts(TAB_MINE)

    def has_more(self, tab: str = TAB_ALL) -> bool:
        with self._lock:
            return self._state(tab).has_more

    def last_error(self, tab: str = TAB_ALL) -> Optional[str]:
        with self._lock:
            return self._state(tab).error

    def should_load_more(self, index: int, tab: str = TAB_ALL) -> bool:
        """목록의 index번째 항목이 보일 때 다음 페이지를 불러와야 하는지 알려줍니다."""
        with self._lock:
            state = self._state(tab)
            if not state.has_more or state.loading or not state.posts:
                return False
            return index >= len(state.posts) - self.load_more_threshold

    def _state(self, tab: str) -> FeedState:
        if tab not in self._states:
            raise ValueError(f"알 수 없는 피드 탭입니다: {tab}")
        return self._states[tab]

    # --- 불러오기 ---

    def load_feed(self, tab: str = TAB_ALL, force_refresh: bool = False) -> List[Post]:
        """첫 페이지를 불러옵니다. 이미 불러온 탭은 force_refresh가 아니면 다시 불러오지 않습니다."""
        with self._lock:
            state = self._state(tab)
            if state.loaded and not force_refresh:
                logging.info(f"이미 불러온 피드를 재사용 (user: {self.user_id}, tab: {tab})")
                return self.current_posts(tab)
        self._load_page(tab, first_page=True)
        return self.current_posts(tab)

    def load_more_posts(self) -> List[Post]:
        return self._load_more(TAB_ALL)

    def load_more_my_posts(self) -> List[Post]:
        return self._load_more(TAB_MINE)

    def _load_more(self, tab: str) -> List[Post]:
        with self._lock:
            state = self._state(tab)
            if not state.loaded:
                return self.load_feed(tab)
            if not state.has_more or state.loading:
                return self.current_posts(tab)
        self._load_page(tab, first_page=False)
        return self.current_posts(tab)

    def refresh(self, tab: Optional[str] = None) -> List[Post]:
        """첫 페이지를 강제로 다시 불러와 기존 게시물을 교체합니다. tab이 없으면 불러온 적 있는 탭을 모두 갱신합니다."""
        with self._lock:
            tabs = [tab] if tab else [t for t in TABS if self._states[t].loaded] or [TAB_ALL]
        for t in tabs:
            self._load_page(t, first_page=True)
        return self.current_posts(tabs[0])

    def _load_page(self, tab: str, first_page: bool) -> None:
        with self._lock:
            state = self._state(tab)
            if state.loading:
                logging.info(f"피드를 이미 불러오는 중입니다 (user: {self.user_id}, tab: {tab})")
                return
            state.loading = True
            cursor = None if first_page else state.cursor
            cursor_ids = set() if first_page else set(state.cursor_ids)
            loaded_ids = set() if first_page else set(state.loaded_ids)
            author_ids = None if first_page else list(state.author_ids)

        try:
            if author_ids is None:
                author_ids = self._resolve_authors(tab)
            page, next_cursor, next_cursor_ids, has_more = self._fetch_page(
                author_ids, cursor, cursor_ids, loaded_ids)
            posts = self._assemble(page)
        except StampbookError as e:
            logging.warning(f"피드 로드 실패, 기존 게시물을 유지합니다 (user: {self.user_id}, tab: {tab}): {e.message}")
            self._fail(tab, FEED_ERROR_MESSAGE)
            return
        except Exception as e:
            logging.error(f"피드 로드 중 예상치 못한 오류 (user: {self.user_id}, tab: {tab}): {e}", exc_info=True)
            self._fail(tab, FEED_ERROR_MESSAGE)
            return

        with self._lock:
            state = self._state(tab)
            if first_page:
                state.posts = posts
                state.loaded_ids = {make_post_id(c.user_id, c.stamp_id) for c in page}
                state.author_ids = author_ids
            else:
                state.posts = state.posts + posts
                state.loaded_ids |= {make_post_id(c.user_id, c.stamp_id) for c in page}
            if next_cursor is not None:
                state.cursor = next_cursor
                state.cursor_ids = next_cursor_ids
            state.has_more = has_more
            state.loading = False
            state.loaded = True
            state.error = None
            if first_page:
                self._last_refresh_at = self._clock()
        self._sync_counters(page)
        logging.info(f"피드 로드 완료 (user: {self.user_id}, tab: {tab}, 게시물: {len(posts)}, has_more: {has_more})")

    def _fail(self, tab: str, message: str) -> None:
        with self._lock:
            state = self._state(tab)
            state.loading = False
            state.error = message
        self.error_banner.show(message)

    def _resolve_authors(self, tab: str) -> List[str]:
        if tab == TAB_MINE:
            return [self.user_id]
        following = self.follows.fetch_following_ids()
        return [self.user_id] + [uid for uid in following if uid != self.user_id]

    def _fetch_page(self, author_ids: List[str], cursor: Optional[datetime], cursor_ids: Set[str],
                    loaded_ids: Set[str]) -> Tuple[List[CollectedStamp], Optional[datetime], Set[str], bool]:
        """
        작성자별로 cursor 이전(같은 시각 포함)의 수집 기록을 가져와 최신순으로 합친 뒤 한 페이지를 잘라냅니다.
        같은 시각에 이미 불러온 기록은 loaded_ids로 걸러냅니다.
        작성자 한 명이라도 불러오지 못하면 예외를 그대로 올려, 커서와 has_more가 일부 결과로 바뀌지 않게 합니다.
        """
        limit = self.page_size + len(cursor_ids) + 1
        candidates: List[CollectedStamp] = []
        author_has_more = False
        for author_id in author_ids:
            records = self.firebase.fetch_collected_stamps(author_id, limit, before=cursor)
            if len(records) >= limit:
                author_has_more = True
            candidates.extend(
                r for r in records
                if r.collected_date is not None and make_post_id(r.user_id, r.stamp_id) not in loaded_ids
            )

        candidates.sort(key=lambda r: (-r.collected_date.timestamp(), make_post_id(r.user_id, r.stamp_id)))
        page = candidates[:self.page_size]
        has_more = author_has_more or len(candidates) > self.page_size
        if not page:
            return page, None, set(), has_more

        next_cursor = page[-1].collected_date
        next_cursor_ids = {make_post_id(r.user_id, r.stamp_id) for r in page if r.collected_date == next_cursor}
        if next_cursor == cursor:
            next_cursor_ids |= cursor_ids
        return page, next_cursor, next_cursor_ids, has_more

    def _assemble(self, records: List[CollectedStamp]) -> List[Post]:
        """수집 기록에 프로필과 스탬프 정보를 붙여 게시물로 만듭니다. 스탬프나 작성자를 찾을 수 없으면 건너뜁니다."""
        if not records:
            return []
        profiles = self.firebase.fetch_profiles({r.user_id for r in records})
        stamps = self.firebase.fetch_stamps({r.stamp_id for r in records})
        posts = []
        for record in records:
            profile, stamp = profiles.get(record.user_id), stamps.get(record.stamp_id)
            if profile is None or stamp is None:
                logging.warning(f"게시물 정보를 조립할 수 없어 건너뜁니다 "
                                f"(user: {record.user_id}, stamp: {record.stamp_id})")
                continue
            posts.append(self._build_post(record, profile, stamp))
        return posts

    def _build_post(self, record: CollectedStamp, profile: UserProfile, stamp: Stamp) -> Post:
        return Post(
            post_id=make_post_id(profile.user_id, stamp.stamp_id),
            user_id=profile.user_id,
            username=profile.username,
            display_name=profile.display_name,
            avatar_url=profile.avatar_url,
            stamp_id=stamp.stamp_id,
            stamp_name=stamp.name,
            stamp_image_url=stamp.image_url,
            location=stamp.city_country,
            date=DateTimeUtils.format_medium(record.collected_date),
            collected_at=record.collected_date,
            is_current_user=profile.user_id == self.user_id,
            user_photos=list(record.user_image_paths or record.user_image_names),
            note=record.user_notes or None,
            like_count=record.like_count,
            comment_count=record.comment_count,
        )

    def _sync_counters(self, records: List[CollectedStamp]) -> None:
        """방금 받아온 좋아요/댓글 수를 카운터 캐시에 한 번에 반영하고, 좋아요 여부를 확인합니다."""
        if not records:
            return
        post_ids = [make_post_id(r.user_id, r.stamp_id) for r in records]
        self.likes.sync_counts({pid: r.like_count for pid, r in zip(post_ids, records)})
        self.comments.sync_counts({pid: r.comment_count for pid, r in zip(post_ids, records)})
        try:
            self.likes.fetch_like_status(post_ids)
        except StampbookError as e:
            logging.warning(f"좋아요 여부 확인 실패, 캐시 값을 유지합니다: {e.message}")

    # --- 단일 게시물 ---

    def fetch_single_post(self, post_id: str) -> Post:
        """'{소유자 userId}-{stampId}' 형식의 ID로 게시물 하나를 조립합니다."""
        owner_id, stamp_id = parse_post_id(post_id)
        record = self.firebase.fetch_collected_stamp(owner_id, stamp_id)
        if record is None:
            raise NotFoundError("게시물을 찾을 수 없습니다.", error_code="POST_NOT_FOUND")
        profile = self.firebase.fetch_user_profile(owner_id)
        stamp = self.firebase.fetch_stamp(stamp_id)
        if profile is None or stamp is None:
            raise NotFoundError("게시물을 찾을 수 없습니다.", error_code="POST_NOT_FOUND")
        post = self._build_post(record, profile, stamp)
        with self._lock:
            self._detail_cache[post_id] = post
        self._sync_counters([record])
        return self._with_live_counters(post)

    def cached_post(self, post_id: str) -> Optional[Post]:
        with self._lock:
            post = self._detail_cache.get(post_id)
            if post is None:
                post = next((p for s in self._states.values() for p in s.posts if p.post_id == post_id), None)
        return self._with_live_counters(post) if post else None

    def prefetch_post(self, post_id: str) -> Optional[Post]:
        """
        상세 화면 진입 전에 게시물을 미리 불러옵니다.
        캐시에 있으면 바로 반환하고, 없으면 prefetch_timeout까지만 기다린 뒤 None을 반환합니다.
        (시간이 초과돼도 백그라운드 조회는 계속되어 다음 진입 때 캐시에서 쓰입니다.)
        """
        cached = self.cached_post(post_id)
        if cached is not None:
            return cached
        future = self._prefetch_executor.submit(self.fetch_single_post, post_id)
        try:
            return future.result(timeout=self.prefetch_timeout)
        except FutureTimeoutError:
            logging.info(f"게시물 미리 불러오기 시간 초과, 화면에서 다시 요청합니다 (post: {post_id})")
        except StampbookError as e:
            logging.info(f"게시물 미리 불러오기 실패 (post: {post_id}): {e.message}")
        return None

    # --- 팔로우 변경 / 정리 ---

    def on_following_changed(self, sender, **kwargs) -> None:
        """다른 화면에서 팔로우 상태가 바뀌면 피드를 새로고침합니다. 최근에 새로고침했다면 생략합니다."""
        with self._lock:
            if self._closed:
                return
            recent = (self._last_refresh_at is not None
                      and self._clock() - self._last_refresh_at < self.follow_refresh_debounce)
            if recent:
                logging.info(f"최근 새로고침 이후 {self.follow_refresh_debounce}초가 지나지 않아 "
                             f"팔로우 변경 새로고침을 생략 (user: {self.user_id}, target: {kwargs.get('user_id')})")
                return
            # 중복 요청이 연달아 들어와도 한 번만 새로고침되도록 먼저 시각을 기록합니다.
            self._last_refresh_at = self._clock()
            self._refresh_executor.submit(self._refresh_in_background)

    def _refresh_in_background(self) -> None:
        try:
            self.refresh(TAB_ALL)
        except Exception as e:
            logging.error(f"팔로우 변경 후 피드 새로고침 실패 (user: {self.user_id}): {e}", exc_info=True)

    def clear(self) -> None:
        with self._lock:
            self._states = {tab: FeedState() for tab in TABS}
            self._detail_cache.clear()
            self._last_refresh_at = None
        logging.info(f"피드 캐시 초기화 (user: {self.user_id})")

    def close(self) -> None:
        """팔로우 변경 구독을 끊고, 진행 중인 백그라운드 새로고침이 끝날 때까지 기다립니다."""
        self.follows.following_changed.disconnect(self.on_following_changed, sender=self.follows)
        with self._lock:
            self._closed = True
        self._refresh_executor.shutdown(wait=True)
        self._prefetch_executor.shutdown(wait=False)
