# stampbook/services/test_reconciliation_service.py
import pytest

from stampbook.conftest import day
from stampbook.services.reconciliation_service import (
    FOLLOWER_JOB, LIKE_COMMENT_JOB, CountDiscrepancy, ReconciliationReport, ReconciliationService
)


@pytest.fixture
def service(store):
    return ReconciliationService(store)


@pytest.fixture
def twelve_followers(seed):
    """bob의 실제 팔로워는 12명인데 followerCount는 10으로 저장된 상태."""
    seed.user('bob', followerCount=10)
    for n in range(12):
        follower = seed.user(f"fan{n:02d}", followingCount=1)
        seed.follow_edge(follower, 'bob')
    return seed


def test_follower_count_drift_is_fixed_and_second_run_is_noop(service, store, twelve_followers):
    report = service.reconcile_follower_counts()

    assert report.job == FOLLOWER_JOB
    assert report.checked == 13
    [discrepancy] = report.discrepancies
    assert (discrepancy.user_id, discrepancy.field) == ('bob', 'followerCount')
    assert (discrepancy.stored, discrepancy.actual, discrepancy.delta) == (10, 12, 2)
    assert report.fixed == 1
    assert store.get_document('users/bob')['followerCount'] == 12

    second = service.reconcile_follower_counts()
    assert second.discrepancies == []
    assert second.fixed == 0
    assert second.health_score == 100.0


def test_following_count_is_recomputed(service, store, seed):
    seed.user('alice', followingCount=5)
    seed.user('bob', followerCount=1)
    seed.follow_edge('alice', 'bob')

    report = service.reconcile_follower_counts()
    assert [(d.user_id, d.field, d.actual) for d in report.discrepancies] == [('alice', 'followingCount', 1)]
    assert store.get_document('users/alice')['followingCount'] == 1


def test_dry_run_reports_without_writing(service, store, twelve_followers):
    report = service.reconcile_follower_counts(dry_run=True)
    assert report.dry_run
    assert report.drifted == 1
    assert report.fixed == 0
    assert store.get_document('users/bob')['followerCount'] == 10


def test_like_comment_counts_follow_likes_and_comments_collections(service, store, seed, firebase):
    for user_id in ('alice', 'bob', 'carol'):
        seed.user(user_id)
    seed.stamp('golden-gate')
    seed.stamp('alcatraz')
    seed.collect('bob', 'golden-gate', day(10), like_count=7, comment_count=0)
    seed.collect('bob', 'alcatraz', day(11))
    firebase.set_like('alice', 'bob-golden-gate', 'bob', 'golden-gate', True)
    firebase.set_like('carol', 'bob-golden-gate', 'bob', 'golden-gate', True)
    firebase.add_comment(firebase.fetch_user_profile('carol'), 'bob-golden-gate', 'bob', 'golden-gate', "hi")
    # 비정규화 카운터만 틀어진 상태를 만듭니다.
    store.update_document('users/bob/collected_stamps/golden-gate', {'likeCount': 7, 'commentCount': 0})

    report = service.reconcile_like_comment_counts()
    assert report.job == LIKE_COMMENT_JOB
    assert report.dry_run
    assert report.checked == 2
    assert {(d.post_id, d.field, d.actual) for d in report.discrepancies} == {
        ('bob-golden-gate', 'likeCount', 2),
        ('bob-golden-gate', 'commentCount', 1),
    }
    assert report.drifted == 1
    assert report.health_score == 50.0
    assert store.get_document('users/bob/collected_stamps/golden-gate')['likeCount'] == 7

    fixed = service.reconcile_like_comment_counts(dry_run=False)
    assert fixed.fixed == 1
    post = store.get_document('users/bob/collected_stamps/golden-gate')
    assert (post['likeCount'], post['commentCount']) == (2, 1)
    assert service.reconcile_like_comment_counts().discrepancies == []


@pytest.mark.parametrize('checked, drifted_users, label', [
    (0, 0, 'excellent'),
    (200, 1, 'excellent'),
    (100, 3, 'good'),
    (100, 8, 'fair'),
    (100, 30, 'needs attention'),
])
def test_health_label(checked, drifted_users, label):
    report = ReconciliationReport(job=FOLLOWER_JOB, dry_run=True, checked=checked)
    report.discrepancies = [CountDiscrepancy(f"u{n}", 'followerCount', 0, 1) for n in range(drifted_users)]
    assert report.health_label == label
    assert report.to_dict()['drifted'] == drifted_users
