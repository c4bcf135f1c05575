# stampbook/__init__.py

# =====================================================================================
# 1. 환경 변수 로드 (가장 먼저 실행)
# =====================================================================================
from dotenv import load_dotenv
load_dotenv()

# =====================================================================================
# 2. 모듈 임포트 (Module Imports)
# =====================================================================================
import atexit
import os
import logging
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException
from marshmallow import ValidationError
from flask_jwt_extended import JWTManager
import firebase_admin
from firebase_admin import credentials

# - 설정 / 예외
from stampbook.core.config import config_by_name
from stampbook.core.errors import StampbookError

# - API 블루프린트
from stampbook.api.feed.routes import feed_bp
from stampbook.api.likes.routes import likes_bp
from stampbook.api.comments.routes import comments_bp
from stampbook.api.follows.routes import follows_bp
from stampbook.api.session.routes import session_bp

# - 서비스 모듈
from stampbook.services.document_store import build_document_store
from stampbook.services.firebase_service import FirebaseService
from stampbook.services.session import SessionRegistry

def init_firebase(cred_path):
    """Firebase Admin SDK를 한 번만 초기화합니다."""
    if firebase_admin._apps:
        return
    if not cred_path or not os.path.exists(cred_path):
        raise FileNotFoundError(f"Firebase 인증 파일을 찾을 수 없습니다: {cred_path}")
    firebase_admin.initialize_app(credentials.Certificate(cred_path))

def create_app(config_name=None, document_store=None):
    """
    Flask 애플리케이션 팩토리 함수.
    document_store를 넘기면 설정(DOCUMENT_STORE) 대신 그 저장소를 사용합니다. (테스트용)
    """
    # =====================================================================================
    # 3. Flask 앱 생성 및 기본 설정
    # =====================================================================================
    config_name = config_name or os.getenv('FLASK_ENV', 'development')

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])
    app.json.ensure_ascii = False

    if not app.config.get('JWT_SECRET_KEY'):
        raise ValueError("필수 환경 변수가 설정되지 않았습니다: JWT_SECRET_KEY")

    # =====================================================================================
    # 4. 확장 기능 및 외부 서비스 초기화
    # =====================================================================================
    JWTManager(app)

    if document_store is None:
        if app.config['DOCUMENT_STORE'] == 'firestore':
            init_firebase(app.config['FIREBASE_CREDENTIALS_PATH'])
        document_store = build_document_store(app.config)

    # =====================================================================================
    # 5. 서비스 인스턴스 생성 및 'app.services'에 저장 (의존성 주입)
    # =====================================================================================
    app.services = {}
    app.services['store'] = document_store
    app.services['firebase'] = FirebaseService(document_store)
    # - 사용자별 세션 컨텍스트 (카운터 캐시, 변경 엔진, 좋아요/댓글/팔로우/피드 서비스)
    app.services['sessions'] = SessionRegistry(app.services['firebase'], app.config)
    atexit.register(app.services['sessions'].close_all)

    # =====================================================================================
    # 6. 블루프린트 등록
    # =====================================================================================
    app.register_blueprint(feed_bp, url_prefix='/api/feed')
    app.register_blueprint(likes_bp, url_prefix='/api/posts')
    app.register_blueprint(comments_bp, url_prefix='/api/posts')
    app.register_blueprint(follows_bp, url_prefix='/api/users')
    app.register_blueprint(session_bp, url_prefix='/api/session')

    # =====================================================================================
    # 7. 전역 에러 핸들러 설정
    # =====================================================================================
    @app.errorhandler(ValidationError)
    def handle_marshmallow_validation(err):
        response = {"error_code": "VALIDATION_ERROR", "details": err.messages}
        return jsonify(response), 400

    @app.errorhandler(StampbookError)
    def handle_stampbook_error(err):
        return jsonify(err.to_dict()), err.status_code

    @app.errorhandler(HTTPException)
    def handle_http_exception(err):
        response = {"error_code": err.name.upper().replace(" ", "_"), "message": err.description}
        return jsonify(response), err.code

    @app.errorhandler(Exception)
    def handle_generic_exception(err):
        # 다른 핸들러에서 처리되지 않은 모든 예외를 여기서 처리
        logging.error(f"An unhandled exception occurred: {err}", exc_info=True)
        response = {"error_code": "INTERNAL_SERVER_ERROR", "message": "서버 내부에서 예상치 못한 오류가 발생했습니다."}
        return jsonify(response), 500

    # =====================================================================================
    # 8. 로깅 및 앱 반환
    # =====================================================================================
    if not app.debug:
        logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]')

    logging.info(f"Flask app created for '{config_name}' environment.")

    return app
