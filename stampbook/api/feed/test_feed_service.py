# stampbook/api/feed/test_feed_service.py
import threading
import time
from unittest.mock import patch

import pytest

from stampbook.api.feed.services import FEED_ERROR_MESSAGE, TAB_ALL, TAB_MINE
from stampbook.conftest import day
from stampbook.core.errors import NotFoundError, TransientRemoteError, ValidationFailed


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def seeded(seed):
    for user_id in ('alice', 'bob', 'carol'):
        seed.user(user_id)
    for stamp_id in ('golden-gate', 'alcatraz', 'pier-39', 'lombard'):
        seed.stamp(stamp_id)
    seed.collect('alice', 'golden-gate', day(10), like_count=2, comment_count=1)
    seed.collect('bob', 'alcatraz', day(12), like_count=5)
    seed.collect('bob', 'pier-39', day(9))
    seed.collect('carol', 'lombard', day(11))
    seed.follow_edge('alice', 'bob')
    return seed


@pytest.fixture
def session(seeded, make_session):
    return make_session('alice')


def post_ids(posts):
    return [p.post_id for p in posts]


def wait_until(condition, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.02)
    return False


def test_all_tab_merges_me_and_following_newest_first(session):
    posts = session.feed.load_feed(TAB_ALL)
    assert post_ids(posts) == ['bob-alcatraz', 'alice-golden-gate', 'bob-pier-39']
    assert not session.feed.has_more(TAB_ALL)

    mine = posts[1]
    assert mine.is_current_user
    assert mine.display_name == 'Alice'
    assert mine.stamp_name == 'Golden Gate'
    assert mine.location == 'San Francisco, USA'
    assert not posts[0].is_current_user


def test_mine_tab_only_has_own_posts(session):
    session.feed.load_feed(TAB_MINE)
    assert post_ids(session.feed.current_my_posts()) == ['alice-golden-gate']
    assert session.feed.current_posts(TAB_ALL) == []


def test_load_feed_syncs_counters_into_cache(session):
    session.feed.load_feed()
    assert session.likes.like_count('bob-alcatraz') == 5
    assert session.comments.comment_count('alice-golden-gate') == 1


def test_posts_reflect_live_counters(session):
    session.feed.load_feed()
    assert session.likes.toggle_like('bob-alcatraz').result(timeout=5)
    post = next(p for p in session.feed.current_posts() if p.post_id == 'bob-alcatraz')
    assert post.is_liked
    assert post.like_count == 6


def test_pagination_with_identical_timestamps_has_no_duplicates_or_gaps(seed, make_session):
    seed.user('alice')
    seed.user('bob')
    seed.follow_edge('alice', 'bob')
    for stamp_id in ('a1', 'a2', 'a3', 'a4', 'b1', 'b2'):
        seed.stamp(stamp_id)
    for stamp_id in ('a1', 'a2', 'a3', 'a4'):
        seed.collect('bob', stamp_id, day(10))
    seed.collect('alice', 'b1', day(10))
    seed.collect('alice', 'b2', day(5))
    session = make_session('alice')

    first = session.feed.load_feed()
    assert post_ids(first) == ['alice-b1', 'bob-a1', 'bob-a2']
    assert session.feed.has_more()

    everything = session.feed.load_more_posts()
    assert post_ids(everything) == ['alice-b1', 'bob-a1', 'bob-a2', 'bob-a3', 'bob-a4', 'alice-b2']
    assert not session.feed.has_more()


def test_load_more_without_more_pages_does_not_query(session, firebase):
    session.feed.load_feed()
    with patch.object(firebase, 'fetch_collected_stamps') as fetch:
        assert post_ids(session.feed.load_more_posts()) == post_ids(session.feed.current_posts())
    fetch.assert_not_called()


def test_should_load_more_near_end_of_list(seed, make_session):
    seed.user('alice')
    for n in range(1, 6):
        seed.stamp(f"s{n}")
        seed.collect('alice', f"s{n}", day(n))
    session = make_session('alice')

    assert not session.feed.should_load_more(0)
    session.feed.load_feed()
    assert session.feed.has_more()
    assert not session.feed.should_load_more(0)
    assert session.feed.should_load_more(2)

    session.feed.load_more_posts()
    assert not session.feed.has_more()
    assert not session.feed.should_load_more(4)


def test_refresh_replaces_posts(session, seeded):
    session.feed.load_feed()
    seeded.stamp('coit-tower')
    seeded.collect('bob', 'coit-tower', day(13))
    assert session.feed.load_feed() == session.feed.current_posts()
    assert 'bob-coit-tower' not in post_ids(session.feed.current_posts())

    refreshed = session.feed.refresh(TAB_ALL)
    assert post_ids(refreshed)[0] == 'bob-coit-tower'
    assert len(refreshed) == 3


def test_failed_refresh_keeps_last_known_good_posts(session, firebase):
    before = session.feed.load_feed()
    with patch.object(firebase, 'fetch_profiles', side_effect=TransientRemoteError()):
        after = session.feed.refresh(TAB_ALL)

    assert post_ids(after) == post_ids(before)
    assert session.feed.last_error(TAB_ALL) == FEED_ERROR_MESSAGE
    assert session.error_banner.current() == FEED_ERROR_MESSAGE

    session.feed.refresh(TAB_ALL)
    assert session.feed.last_error(TAB_ALL) is None


def test_failed_load_more_keeps_pagination_alive(seed, make_session, firebase):
    seed.user('alice')
    for n in range(1, 6):
        seed.stamp(f"s{n}")
        seed.collect('alice', f"s{n}", day(n))
    session = make_session('alice')
    assert post_ids(session.feed.load_feed(TAB_MINE)) == ['alice-s5', 'alice-s4', 'alice-s3']

    with patch.object(firebase, 'fetch_collected_stamps', side_effect=TransientRemoteError()):
        assert len(session.feed.load_more_my_posts()) == 3
    assert session.feed.has_more(TAB_MINE)
    assert session.feed.last_error(TAB_MINE) == FEED_ERROR_MESSAGE
    assert session.error_banner.current() == FEED_ERROR_MESSAGE

    assert post_ids(session.feed.load_more_my_posts()) == [f"alice-s{n}" for n in range(5, 0, -1)]
    assert not session.feed.has_more(TAB_MINE)
    assert session.feed.last_error(TAB_MINE) is None


def test_one_failing_author_fails_the_whole_page(session, firebase):
    before = session.feed.load_feed(TAB_ALL)
    real_fetch = firebase.fetch_collected_stamps

    def bob_offline(user_id, *args, **kwargs):
        if user_id == 'bob':
            raise TransientRemoteError()
        return real_fetch(user_id, *args, **kwargs)

    with patch.object(firebase, 'fetch_collected_stamps', side_effect=bob_offline):
        after = session.feed.refresh(TAB_ALL)

    assert post_ids(after) == post_ids(before)
    assert session.feed.last_error(TAB_ALL) == FEED_ERROR_MESSAGE


def test_fetch_single_post(session):
    post = session.feed.fetch_single_post('bob-pier-39')
    assert post.user_id == 'bob'
    assert post.stamp_id == 'pier-39'
    assert session.feed.cached_post('bob-pier-39') == post

    with pytest.raises(NotFoundError) as exc_info:
        session.feed.fetch_single_post('bob-lombard')
    assert exc_info.value.error_code == 'POST_NOT_FOUND'

    with pytest.raises(ValidationFailed):
        session.feed.fetch_single_post('nodash')


def test_prefetch_uses_feed_cache_without_network(session, firebase):
    session.feed.load_feed()
    with patch.object(firebase, 'fetch_collected_stamp') as fetch:
        assert session.feed.prefetch_post('bob-alcatraz').post_id == 'bob-alcatraz'
    fetch.assert_not_called()


def test_prefetch_gives_up_after_timeout_but_fills_cache(session, firebase):
    release = threading.Event()
    real_fetch = firebase.fetch_collected_stamp

    def slow_fetch(*args, **kwargs):
        release.wait(5)
        return real_fetch(*args, **kwargs)

    with patch.object(firebase, 'fetch_collected_stamp', side_effect=slow_fetch):
        assert session.feed.prefetch_post('bob-pier-39') is None
        release.set()
        assert wait_until(lambda: session.feed.cached_post('bob-pier-39') is not None)


def test_prefetch_of_missing_post_returns_none(session):
    assert session.feed.prefetch_post('bob-lombard') is None


def test_following_change_is_debounced_after_recent_refresh(session):
    clock = FakeClock()
    session.feed._clock = clock
    session.feed.load_feed()

    with patch.object(session.feed, 'refresh') as refresh:
        clock.now += 3
        session.feed.on_following_changed(session.follows, user_id='carol', following=True)
        refresh.assert_not_called()


def test_following_change_refreshes_feed_in_background(session):
    clock = FakeClock()
    session.feed._clock = clock
    session.feed.load_feed()
    clock.now += 11

    assert session.follows.follow('carol').result(timeout=5)
    assert wait_until(lambda: 'carol-lombard' in post_ids(session.feed.current_posts()))


def test_unknown_tab(session):
    with pytest.raises(ValueError):
        session.feed.load_feed('friends')
