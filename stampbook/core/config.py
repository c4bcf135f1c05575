# stampbook/core/config.py

import os # 'os' 모듈: 환경 변수를 읽기 위해 사용합니다.

class Config:
    """모든 환경 설정의 기반이 되는 공통 설정 클래스입니다."""
    # 외부 인증 서버가 발급한 JWT 토큰을 검증하는 키입니다. 토큰의 identity는 Firebase Auth의 userId 입니다.
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY')
    FIREBASE_CREDENTIALS_PATH = os.getenv('FIREBASE_CREDENTIALS_PATH')

    # 원격 문서 저장소 종류: 'firestore' (운영) 또는 'memory' (테스트/로컬 실행)
    DOCUMENT_STORE = os.getenv('DOCUMENT_STORE', 'firestore')

    # 로컬 카운터 캐시(좋아요/댓글/팔로우 수)가 사용자별 JSON 파일로 저장되는 디렉터리
    COUNTER_CACHE_DIR = os.getenv('COUNTER_CACHE_DIR', os.path.join(os.getcwd(), '.counter_cache'))

    # 피드 페이지네이션
    FEED_PAGE_SIZE = int(os.getenv('FEED_PAGE_SIZE', 20))
    # 끝에서 몇 개 이내로 스크롤되면 다음 페이지를 불러올지
    FEED_LOAD_MORE_THRESHOLD = int(os.getenv('FEED_LOAD_MORE_THRESHOLD', 5))

    # 다른 화면에서 팔로우 상태가 바뀌었을 때, 최근 N초 이내에 새로고침했다면 피드 새로고침을 생략합니다.
    FOLLOW_REFRESH_DEBOUNCE_SECONDS = float(os.getenv('FOLLOW_REFRESH_DEBOUNCE_SECONDS', 10))
    # 상세 화면 진입 전 미리 불러오기(prefetch)의 최대 대기 시간
    PREFETCH_TIMEOUT_SECONDS = float(os.getenv('PREFETCH_TIMEOUT_SECONDS', 2.0))
    # 사용자에게 보여주는 일시적인 오류 메시지(토스트)의 자동 해제 시간
    ERROR_DISMISS_SECONDS = float(os.getenv('ERROR_DISMISS_SECONDS', 3.0))

    COMMENT_MAX_LENGTH = int(os.getenv('COMMENT_MAX_LENGTH', 500))

    # 변경 요청에 wait=true가 붙었을 때 원격 확정을 기다리는 최대 시간
    MUTATION_WAIT_TIMEOUT_SECONDS = float(os.getenv('MUTATION_WAIT_TIMEOUT_SECONDS', 10))

class DevelopmentConfig(Config):
    """개발 환경을 위한 설정 클래스입니다."""
    DEBUG = True
    FIREBASE_CREDENTIALS_PATH = os.getenv('DEV_FIREBASE_CREDENTIALS_PATH', Config.FIREBASE_CREDENTIALS_PATH)

class TestingConfig(Config):
    """테스트 환경을 위한 설정 클래스입니다. Firestore 대신 메모리 저장소를 사용합니다."""
    TESTING = True
    DEBUG = False
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY', 'stampbook-testing-secret-key-for-pytest')
    DOCUMENT_STORE = 'memory'
    FIREBASE_CREDENTIALS_PATH = os.getenv('TEST_FIREBASE_CREDENTIALS_PATH')
    # 테스트에서는 prefetch 대기를 짧게 둡니다.
    PREFETCH_TIMEOUT_SECONDS = 0.5

class ProductionConfig(Config):
    """운영 환경 설정 클래스입니다."""
    DEBUG = False

# config_by_name: FLASK_ENV 값에 따라 create_app에서 적절한 설정을 선택하는 데 사용됩니다.
config_by_name = dict(
    development=DevelopmentConfig,
    testing=TestingConfig,
    production=ProductionConfig
)
