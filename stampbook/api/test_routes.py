# stampbook/api/test_routes.py
import os

import pytest

from stampbook.conftest import day
from stampbook.services.session import storage_path_for


@pytest.fixture
def seeded(seed):
    seed.user('alice')
    seed.user('bob', followerCount=10)
    seed.user('carol')
    for stamp_id in ('golden-gate', 'alcatraz'):
        seed.stamp(stamp_id)
    seed.collect('alice', 'golden-gate', day(10))
    seed.collect('bob', 'alcatraz', day(12), like_count=5)
    seed.follow_edge('alice', 'bob')
    return seed


def test_requires_token(client):
    assert client.get('/api/feed').status_code == 401
    assert client.post('/api/posts/bob-alcatraz/like').status_code == 401


def test_get_feed(client, auth_headers, seeded):
    response = client.get('/api/feed', headers=auth_headers('alice'))
    assert response.status_code == 200
    body = response.get_json()
    assert body['tab'] == 'all'
    assert [p['post_id'] for p in body['posts']] == ['bob-alcatraz', 'alice-golden-gate']
    assert body['posts'][0]['like_count'] == 5
    assert body['has_more'] is False
    assert body['error'] is None

    mine = client.get('/api/feed?tab=mine', headers=auth_headers('alice')).get_json()
    assert [p['post_id'] for p in mine['posts']] == ['alice-golden-gate']


def test_invalid_feed_query(client, auth_headers, seeded):
    response = client.get('/api/feed?tab=friends', headers=auth_headers('alice'))
    assert response.status_code == 400
    assert response.get_json()['error_code'] == 'VALIDATION_ERROR'


def test_load_more_and_refresh(client, auth_headers, seeded):
    headers = auth_headers('alice')
    client.get('/api/feed', headers=headers)
    more = client.post('/api/feed/more?index=1', headers=headers)
    assert more.status_code == 200
    assert len(more.get_json()['posts']) == 2

    refreshed = client.post('/api/feed/refresh?tab=all', headers=headers)
    assert refreshed.status_code == 200
    assert refreshed.get_json()['tab'] == 'all'


def test_like_toggle_with_wait(client, auth_headers, seeded, store):
    headers = auth_headers('alice')
    client.get('/api/feed', headers=headers)

    response = client.post('/api/posts/bob-alcatraz/like?wait=true', headers=headers)
    assert response.status_code == 200
    assert response.get_json() == {
        'post_id': 'bob-alcatraz', 'is_liked': True, 'like_count': 6, 'pending': False, 'confirmed': True,
    }
    assert store.get_document('likes/alice_bob-alcatraz') is not None

    state = client.get('/api/posts/bob-alcatraz/like', headers=headers).get_json()
    assert (state['is_liked'], state['like_count']) == (True, 6)


def test_like_with_malformed_post_id(client, auth_headers, seeded):
    response = client.post('/api/posts/nodash/like', headers=auth_headers('alice'))
    assert response.status_code == 400
    assert response.get_json()['error_code'] == 'INVALID_POST_ID'


def test_comment_flow(client, auth_headers, seeded):
    headers = auth_headers('alice')
    created = client.post('/api/posts/bob-alcatraz/comments?wait=true', json={'text': '멋져요'}, headers=headers)
    assert created.status_code == 201
    body = created.get_json()
    assert body['comment_count'] == 1
    assert body['confirmed'] is True
    [comment] = body['comments']
    assert comment['text'] == '멋져요'
    assert comment['can_delete'] is True

    listed = client.get('/api/posts/bob-alcatraz/comments', headers=auth_headers('carol')).get_json()
    assert [c['text'] for c in listed['comments']] == ['멋져요']
    assert listed['comments'][0]['can_delete'] is False

    denied = client.delete(f"/api/posts/bob-alcatraz/comments/{comment['comment_id']}", headers=auth_headers('carol'))
    assert denied.status_code == 403

    deleted = client.delete(f"/api/posts/bob-alcatraz/comments/{comment['comment_id']}?wait=true", headers=headers)
    assert deleted.status_code == 200
    assert deleted.get_json()['comment_count'] == 0


def test_list_existing_comments(client, auth_headers, seeded, firebase):
    author = firebase.fetch_user_profile('carol')
    saved = firebase.add_comment(author, 'bob-alcatraz', 'bob', 'alcatraz', "저장된 댓글")

    response = client.get('/api/posts/bob-alcatraz/comments', headers=auth_headers('bob'))
    assert response.status_code == 200
    body = response.get_json()
    assert body['comment_count'] == 1
    [comment] = body['comments']
    assert comment['comment_id'] == saved.comment_id
    assert comment['created_at'].startswith(saved.created_at.strftime('%Y-%m-%dT'))
    # 게시물 주인은 다른 사람의 댓글도 삭제할 수 있음
    assert comment['can_delete'] is True


def test_comment_validation(client, auth_headers, seeded):
    headers = auth_headers('alice')
    assert client.post('/api/posts/bob-alcatraz/comments', json={}, headers=headers).status_code == 400
    blank = client.post('/api/posts/bob-alcatraz/comments', json={'text': '   '}, headers=headers)
    assert blank.status_code == 400
    assert blank.get_json()['error_code'] == 'EMPTY_COMMENT'


def test_follow_and_unfollow(client, auth_headers, seeded, store):
    headers = auth_headers('alice')
    client.get('/api/users/carol/follow?refresh=true', headers=headers)

    followed = client.post('/api/users/carol/follow?wait=true', headers=headers)
    assert followed.status_code == 200
    assert followed.get_json()['is_following'] is True
    assert followed.get_json()['follower_count'] == 1
    assert store.get_document('users/alice/following/carol') is not None

    followers = client.get('/api/users/carol/followers', headers=headers).get_json()
    assert [u['user_id'] for u in followers['users']] == ['alice']

    unfollowed = client.delete('/api/users/carol/follow?wait=true', headers=headers)
    assert unfollowed.get_json()['is_following'] is False
    assert unfollowed.get_json()['follower_count'] == 0


def test_self_follow_rejected(client, auth_headers, seeded):
    response = client.post('/api/users/alice/follow', headers=auth_headers('alice'))
    assert response.status_code == 400
    assert response.get_json()['error_code'] == 'SELF_FOLLOW'


def test_get_single_post(client, auth_headers, seeded):
    headers = auth_headers('alice')
    found = client.get('/api/feed/posts/bob-alcatraz', headers=headers)
    assert found.status_code == 200
    assert found.get_json()['post']['stamp_id'] == 'alcatraz'

    missing = client.get('/api/feed/posts/bob-golden-gate', headers=headers)
    assert missing.status_code == 404
    assert missing.get_json()['error_code'] == 'POST_NOT_FOUND'

    prefetched = client.get('/api/feed/posts/bob-alcatraz?prefetch=true', headers=headers)
    assert prefetched.status_code == 200


def test_session_state_and_sign_out_clears_local_cache(app, client, auth_headers, seeded):
    headers = auth_headers('alice')
    client.post('/api/posts/bob-alcatraz/like?wait=true', headers=headers)
    state = client.get('/api/session', headers=headers).get_json()
    assert state == {'user_id': 'alice', 'error': None, 'pending': []}

    cache_file = storage_path_for(app.config['COUNTER_CACHE_DIR'], 'alice')
    assert os.path.exists(cache_file)

    assert client.delete('/api/session', headers=headers).status_code == 204
    assert not os.path.exists(cache_file)
    assert app.services['sessions'].find('alice') is None

    after = client.get('/api/posts/bob-alcatraz/like', headers=headers).get_json()
    assert (after['is_liked'], after['like_count']) == (False, 0)


def test_unknown_route_is_json_404(client, auth_headers):
    response = client.get('/api/nothing-here', headers=auth_headers('alice'))
    assert response.status_code == 404
    assert response.get_json()['error_code'] == 'NOT_FOUND'
