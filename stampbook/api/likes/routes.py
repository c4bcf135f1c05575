# stampbook/api/likes/routes.py
import logging
from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import jwt_required, get_jwt_identity
from marshmallow import ValidationError

from stampbook.api.likes.schemas import MutationQuerySchema, LikeStateSchema
from stampbook.core.errors import StampbookError
from stampbook.utils.mutation_utils import wait_for_confirmation

likes_bp = Blueprint('likes_bp', __name__)

def _like_state(session, post_id, confirmed=None):
    liked, count = session.likes.state(post_id)
    return LikeStateSchema().dump({
        "post_id": post_id,
        "is_liked": liked,
        "like_count": count,
        "pending": session.likes.is_pending(post_id),
        "confirmed": confirmed,
    })

@likes_bp.route('/<string:post_id>/like', methods=['GET'])
@jwt_required()
def get_like_state(post_id):
    """로컬 카운터 캐시에 있는 현재 좋아요 상태를 반환합니다. (네트워크 없음)"""
    session = current_app.services['sessions'].get(get_jwt_identity())
    return jsonify(_like_state(session, post_id)), 200

@likes_bp.route('/<string:post_id>/like', methods=['POST'])
@jwt_required()
def toggle_like(post_id):
    """
    좋아요를 토글합니다. 응답은 낙관적으로 바뀐 상태이며,
    원격 쓰기가 실패하면 상태가 되돌려지고 세션의 오류 배너에 메시지가 표시됩니다.
    """
    session = current_app.services['sessions'].get(get_jwt_identity())
    try:
        query = MutationQuerySchema().load(request.args)
        future = session.likes.toggle_like(post_id)
        confirmed = None
        if query['wait']:
            confirmed = wait_for_confirmation(future, current_app.config['MUTATION_WAIT_TIMEOUT_SECONDS'])
        return jsonify(_like_state(session, post_id, confirmed)), 200
    except ValidationError as err:
        return jsonify({"error_code": "VALIDATION_ERROR", "details": err.messages}), 400
    except StampbookError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        logging.error(f"좋아요 토글 중 오류 발생 (post: {post_id}): {e}", exc_info=True)
        return jsonify({"error_code": "INTERNAL_SERVER_ERROR", "message": "좋아요 처리 중 오류가 발생했습니다."}), 500
