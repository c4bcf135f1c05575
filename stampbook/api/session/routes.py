# stampbook/api/session/routes.py
import logging
from flask import Blueprint, jsonify, current_app, Response
from flask_jwt_extended import jwt_required, get_jwt_identity

from stampbook.api.session.schemas import SessionStateSchema

session_bp = Blueprint('session_bp', __name__)

@session_bp.route('', methods=['GET'])
@jwt_required()
def get_session_state():
    session = current_app.services['sessions'].get(get_jwt_identity())
    return jsonify(SessionStateSchema().dump({
        "user_id": session.user_id,
        "error": session.error_banner.current(),
        "pending": session.engine.pending_keys(),
    })), 200

@session_bp.route('', methods=['DELETE'])
@jwt_required()
def sign_out():
    """로그아웃. 이 사용자의 모든 로컬 카운터 캐시(메모리 + 파일)를 지우고 세션을 폐기합니다."""
    user_id = get_jwt_identity()
    try:
        current_app.services['sessions'].sign_out(user_id)
        return Response(status=204)
    except Exception as e:
        logging.error(f"로그아웃 처리 중 오류 발생 (user: {user_id}): {e}", exc_info=True)
        return jsonify({"error_code": "INTERNAL_SERVER_ERROR", "message": "로그아웃 처리 중 오류가 발생했습니다."}), 500
