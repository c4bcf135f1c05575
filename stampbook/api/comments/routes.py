# stampbook/api/comments/routes.py
import logging
from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import jwt_required, get_jwt_identity
from marshmallow import ValidationError

from stampbook.api.comments.schemas import CommentCreateSchema, CommentResponseSchema, CommentListResponseSchema
from stampbook.api.likes.schemas import MutationQuerySchema
from stampbook.core.errors import StampbookError
from stampbook.utils.mutation_utils import wait_for_confirmation

comments_bp = Blueprint('comments_bp', __name__)

def _comment_list(session, post_id, confirmed=None):
    comments = []
    for comment in session.comments.comments(post_id):
        data = CommentResponseSchema().dump(comment)
        data["can_delete"] = not comment.is_pending and session.comments.can_delete(comment)
        comments.append(data)
    return CommentListResponseSchema().dump({
        "post_id": post_id,
        "comment_count": session.comments.comment_count(post_id),
        "pending": session.comments.is_pending(post_id),
        "confirmed": confirmed,
        "comments": comments,
    })

@comments_bp.route('/<string:post_id>/comments', methods=['GET'])
@jwt_required()
def get_comments(post_id):
    """댓글 목록을 원격에서 불러오고, 댓글 수를 불러온 개수로 맞춥니다."""
    session = current_app.services['sessions'].get(get_jwt_identity())
    try:
        session.comments.fetch_comments(post_id)
        return jsonify(_comment_list(session, post_id)), 200
    except StampbookError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        logging.error(f"댓글 목록 조회 중 오류 발생 (post: {post_id}): {e}", exc_info=True)
        return jsonify({"error_code": "INTERNAL_SERVER_ERROR", "message": "댓글 목록 조회 중 오류가 발생했습니다."}), 500

@comments_bp.route('/<string:post_id>/comments', methods=['POST'])
@jwt_required()
def add_comment(post_id):
    session = current_app.services['sessions'].get(get_jwt_identity())
    try:
        query = MutationQuerySchema().load(request.args)
        data = CommentCreateSchema().load(request.get_json() or {})
        _, future = session.comments.add_comment(post_id, data['text'])
        confirmed = None
        if query['wait']:
            confirmed = wait_for_confirmation(future, current_app.config['MUTATION_WAIT_TIMEOUT_SECONDS'])
        return jsonify(_comment_list(session, post_id, confirmed)), 201
    except ValidationError as err:
        return jsonify({"error_code": "VALIDATION_ERROR", "details": err.messages}), 400
    except StampbookError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        logging.error(f"댓글 작성 중 오류 발생 (post: {post_id}): {e}", exc_info=True)
        return jsonify({"error_code": "INTERNAL_SERVER_ERROR", "message": "댓글 작성 중 오류가 발생했습니다."}), 500

@comments_bp.route('/<string:post_id>/comments/<string:comment_id>', methods=['DELETE'])
@jwt_required()
def delete_comment(post_id, comment_id):
    """내 댓글 또는 내 게시물의 댓글만 삭제할 수 있습니다."""
    session = current_app.services['sessions'].get(get_jwt_identity())
    try:
        query = MutationQuerySchema().load(request.args)
        future = session.comments.delete_comment(post_id, comment_id)
        confirmed = None
        if query['wait']:
            confirmed = wait_for_confirmation(future, current_app.config['MUTATION_WAIT_TIMEOUT_SECONDS'])
        return jsonify(_comment_list(session, post_id, confirmed)), 200
    except ValidationError as err:
        return jsonify({"error_code": "VALIDATION_ERROR", "details": err.messages}), 400
    except StampbookError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        logging.error(f"댓글 삭제 중 오류 발생 (comment: {comment_id}): {e}", exc_info=True)
        return jsonify({"error_code": "INTERNAL_SERVER_ERROR", "message": "댓글 삭제 중 오류가 발생했습니다."}), 500
