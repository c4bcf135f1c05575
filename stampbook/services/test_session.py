# stampbook/services/test_session.py
import os
import threading
import time
from unittest.mock import patch

import pytest

from stampbook.services.session import storage_path_for


def test_storage_path_keeps_ids_apart_after_sanitizing(tmp_path):
    cache_dir = str(tmp_path)
    slash, underscore = storage_path_for(cache_dir, 'a/b'), storage_path_for(cache_dir, 'a_b')

    assert slash != underscore
    assert os.path.dirname(slash) == cache_dir
    assert os.path.dirname(underscore) == cache_dir
    assert storage_path_for(cache_dir, 'alice') == storage_path_for(cache_dir, 'alice')
    assert os.path.basename(storage_path_for(cache_dir, '../..')).endswith('.json')


def test_storage_path_rejects_empty_id(tmp_path):
    with pytest.raises(ValueError):
        storage_path_for(str(tmp_path), '')


def test_sessions_with_similar_ids_do_not_share_counters(make_session):
    first = make_session('a/b')
    first.likes.sync_counts({'bob-alcatraz': 3})

    second = make_session('a_b')
    assert second.likes.like_count('bob-alcatraz') == 0
    assert make_session('a/b').likes.like_count('bob-alcatraz') == 3


def test_close_waits_for_background_feed_refresh(seed, make_session):
    seed.user('alice')
    session = make_session('alice')
    started, finished = threading.Event(), threading.Event()

    def slow_refresh(tab=None):
        started.set()
        time.sleep(0.2)
        finished.set()
        return []

    with patch.object(session.feed, 'refresh', side_effect=slow_refresh):
        session.feed.on_following_changed(session.follows, user_id='bob', following=True)
        assert started.wait(5)
        session.close()
        assert finished.is_set()

        # 닫힌 뒤에 들어온 팔로우 변경은 무시
        session.feed.on_following_changed(session.follows, user_id='carol', following=True)
