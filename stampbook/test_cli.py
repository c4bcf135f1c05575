# stampbook/test_cli.py
import json
from unittest.mock import patch

import pytest

from stampbook import cli
from stampbook.conftest import day
from stampbook.core.errors import TransientRemoteError


@pytest.fixture
def drifted(seed):
    seed.user('alice', followingCount=0)
    seed.user('bob', followerCount=0)
    seed.follow_edge('alice', 'bob')
    seed.stamp('alcatraz')
    seed.collect('bob', 'alcatraz', day(12), like_count=3)
    return seed


def test_followers_job_fixes_by_default(store, drifted, capsys):
    assert cli.main(['followers'], store=store) == 0
    out = capsys.readouterr().out
    assert 'followers' in out
    assert 'bob followerCount: stored=0, actual=1, diff=+1' in out
    assert store.get_document('users/bob')['followerCount'] == 1
    assert store.get_document('users/alice')['followingCount'] == 1


def test_followers_dry_run(store, drifted, capsys):
    assert cli.main(['followers', '--dry-run'], store=store) == 0
    assert 'DRY RUN' in capsys.readouterr().out
    assert store.get_document('users/bob')['followerCount'] == 0


def test_like_comment_job_reports_only_unless_fix(store, drifted, capsys):
    assert cli.main(['likes-comments', '--json'], store=store) == 0
    report = json.loads(capsys.readouterr().out)
    assert report['dry_run'] is True
    assert report['discrepancies'][0]['post_id'] == 'bob-alcatraz'
    assert report['discrepancies'][0]['actual'] == 0
    assert store.get_document('users/bob/collected_stamps/alcatraz')['likeCount'] == 3

    assert cli.main(['likes-comments', '--fix', '--json'], store=store) == 0
    assert json.loads(capsys.readouterr().out)['fixed'] == 1
    assert store.get_document('users/bob/collected_stamps/alcatraz')['likeCount'] == 0


def test_job_failure_returns_non_zero(store, drifted):
    with patch.object(store, 'query_collection', side_effect=TransientRemoteError()):
        assert cli.main(['followers'], store=store) == 1


def test_job_is_required():
    with pytest.raises(SystemExit):
        cli.main([])
