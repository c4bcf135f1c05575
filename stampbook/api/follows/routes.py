# stampbook/api/follows/routes.py
import logging
from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import jwt_required, get_jwt_identity
from marshmallow import ValidationError

from stampbook.api.follows.schemas import FollowStateSchema, UserSummarySchema
from stampbook.api.likes.schemas import MutationQuerySchema
from stampbook.core.errors import StampbookError
from stampbook.utils.mutation_utils import wait_for_confirmation

follows_bp = Blueprint('follows_bp', __name__)

def _follow_state(session, user_id, confirmed=None):
    follows = session.follows
    return FollowStateSchema().dump({
        "user_id": user_id,
        "is_following": follows.is_following(user_id),
        "follower_count": follows.follower_count(user_id),
        "following_count": follows.following_count(user_id),
        "my_following_count": follows.following_count(session.user_id),
        "pending": follows.is_pending(user_id),
        "confirmed": confirmed,
    })

def _change_follow(user_id, following):
    session = current_app.services['sessions'].get(get_jwt_identity())
    try:
        query = MutationQuerySchema().load(request.args)
        future = session.follows.follow(user_id) if following else session.follows.unfollow(user_id)
        confirmed = None
        if query['wait']:
            confirmed = wait_for_confirmation(future, current_app.config['MUTATION_WAIT_TIMEOUT_SECONDS'])
        return jsonify(_follow_state(session, user_id, confirmed)), 200
    except ValidationError as err:
        return jsonify({"error_code": "VALIDATION_ERROR", "details": err.messages}), 400
    except StampbookError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        logging.error(f"팔로우 변경 중 오류 발생 (target: {user_id}, following: {following}): {e}", exc_info=True)
        return jsonify({"error_code": "INTERNAL_SERVER_ERROR", "message": "팔로우 처리 중 오류가 발생했습니다."}), 500

@follows_bp.route('/<string:user_id>/follow', methods=['GET'])
@jwt_required()
def get_follow_state(user_id):
    """
    팔로우 여부와 카운트를 반환합니다.
    refresh=true이면 원격의 팔로우 여부와 프로필 카운트로 캐시를 먼저 갱신합니다.
    """
    session = current_app.services['sessions'].get(get_jwt_identity())
    try:
        if request.args.get('refresh', 'false').lower() in ('1', 'true'):
            session.follows.check_follow_statuses([user_id])
            session.follows.refresh_counts(user_id)
        return jsonify(_follow_state(session, user_id)), 200
    except StampbookError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        logging.error(f"팔로우 상태 조회 중 오류 발생 (target: {user_id}): {e}", exc_info=True)
        return jsonify({"error_code": "INTERNAL_SERVER_ERROR", "message": "팔로우 상태 조회 중 오류가 발생했습니다."}), 500

@follows_bp.route('/<string:user_id>/follow', methods=['POST'])
@jwt_required()
def follow_user(user_id):
    return _change_follow(user_id, True)

@follows_bp.route('/<string:user_id>/follow', methods=['DELETE'])
@jwt_required()
def unfollow_user(user_id):
    return _change_follow(user_id, False)

def _user_list(session, profiles):
    users = []
    for profile in profiles:
        data = UserSummarySchema().dump(profile)
        data['is_following'] = session.follows.is_following(profile.user_id)
        users.append(data)
    return users

@follows_bp.route('/<string:user_id>/followers', methods=['GET'])
@jwt_required()
def get_followers(user_id):
    session = current_app.services['sessions'].get(get_jwt_identity())
    try:
        profiles = session.follows.fetch_followers(user_id)
        return jsonify({"user_id": user_id, "users": _user_list(session, profiles)}), 200
    except StampbookError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        logging.error(f"팔로워 목록 조회 중 오류 발생 (user: {user_id}): {e}", exc_info=True)
        return jsonify({"error_code": "INTERNAL_SERVER_ERROR", "message": "팔로워 목록 조회 중 오류가 발생했습니다."}), 500

@follows_bp.route('/<string:user_id>/following', methods=['GET'])
@jwt_required()
def get_following(user_id):
    session = current_app.services['sessions'].get(get_jwt_identity())
    try:
        profiles = session.follows.fetch_following(user_id)
        return jsonify({"user_id": user_id, "users": _user_list(session, profiles)}), 200
    except StampbookError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        logging.error(f"팔로잉 목록 조회 중 오류 발생 (user: {user_id}): {e}", exc_info=True)
        return jsonify({"error_code": "INTERNAL_SERVER_ERROR", "message": "팔로잉 목록 조회 중 오류가 발생했습니다."}), 500
