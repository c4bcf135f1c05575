# stampbook/conftest.py
"""
테스트 전역에서 공유하는 pytest fixture.

원격 저장소는 MemoryDocumentStore, 로컬 카운터 캐시 파일은 pytest의 tmp_path를 사용합니다.
"""
from datetime import datetime, timezone

import pytest
from flask_jwt_extended import create_access_token

from stampbook import create_app
from stampbook.models.follow import followers_path, following_path
from stampbook.services.document_store import MemoryDocumentStore
from stampbook.services.firebase_service import FirebaseService, collected_stamp_path
from stampbook.services.session import SessionContext

SAN_FRANCISCO = "1 Presidio Ave\nSan Francisco, CA, USA 94129"


def day(n, hour=12):
    """2026년 10월 n일 UTC."""
    return datetime(2026, 10, n, hour, 0, tzinfo=timezone.utc)


class Seeder:
    """MemoryDocumentStore에 테스트 데이터를 채우는 도우미."""

    def __init__(self, store):
        self.store = store

    def user(self, user_id, **fields):
        data = {
            'id': user_id,
            'username': user_id,
            'displayName': user_id.title(),
            'bio': '',
            'avatarUrl': None,
            'totalStamps': 0,
            'followerCount': 0,
            'followingCount': 0,
            'createdAt': day(1),
        }
        data.update(fields)
        self.store.set_document(f"users/{user_id}", data)
        return user_id

    def stamp(self, stamp_id, name=None, address=SAN_FRANCISCO):
        self.store.set_document(f"stamps/{stamp_id}", {
            'id': stamp_id,
            'name': name or stamp_id.replace('-', ' ').title(),
            'address': address,
            'imageUrl': f"https://example.com/{stamp_id}.png",
            'imageName': stamp_id,
        })
        return stamp_id

    def collect(self, user_id, stamp_id, collected_date, like_count=0, comment_count=0, notes=""):
        self.store.set_document(collected_stamp_path(user_id, stamp_id), {
            'stampId': stamp_id,
            'userId': user_id,
            'collectedDate': collected_date,
            'userNotes': notes,
            'userImageNames': [],
            'userImagePaths': [],
            'likeCount': like_count,
            'commentCount': comment_count,
        })
        return f"{user_id}-{stamp_id}"

    def follow_edge(self, follower_id, followee_id):
        """카운터는 건드리지 않고 관계 문서만 만듭니다."""
        self.store.set_document(following_path(follower_id, followee_id), {'id': followee_id, 'createdAt': day(1)})
        self.store.set_document(followers_path(followee_id, follower_id), {'id': follower_id, 'createdAt': day(1)})


@pytest.fixture
def store():
    return MemoryDocumentStore()


@pytest.fixture
def seed(store):
    return Seeder(store)


@pytest.fixture
def firebase(store):
    return FirebaseService(store)


@pytest.fixture
def session_config(tmp_path):
    return {
        'COUNTER_CACHE_DIR': str(tmp_path / 'counter_cache'),
        'FEED_PAGE_SIZE': 3,
        'FEED_LOAD_MORE_THRESHOLD': 1,
        'FOLLOW_REFRESH_DEBOUNCE_SECONDS': 10.0,
        'PREFETCH_TIMEOUT_SECONDS': 0.2,
        'ERROR_DISMISS_SECONDS': 3.0,
        'COMMENT_MAX_LENGTH': 20,
    }


@pytest.fixture
def make_session(firebase, session_config):
    """같은 로컬 저장소 디렉터리를 공유하는 SessionContext를 만듭니다. (앱 재시작 흉내)"""
    sessions = []

    def factory(user_id='alice'):
        session = SessionContext(user_id, firebase, session_config)
        sessions.append(session)
        return session

    yield factory
    for session in sessions:
        session.close()


@pytest.fixture
def app(store, tmp_path):
    app = create_app('testing', document_store=store)
    app.config['COUNTER_CACHE_DIR'] = str(tmp_path / 'app_counter_cache')
    yield app
    app.services['sessions'].close_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_headers(app):
    def headers(user_id='alice'):
        with app.app_context():
            token = create_access_token(identity=user_id)
        return {'Authorization': f'Bearer {token}'}
    return headers
