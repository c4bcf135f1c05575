# stampbook/api/feed/routes.py
import logging
from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import jwt_required, get_jwt_identity
from marshmallow import ValidationError

from stampbook.api.feed.schemas import (
    FeedQuerySchema, LoadMoreQuerySchema, RefreshQuerySchema, PostResponseSchema, FeedResponseSchema
)
from stampbook.core.errors import StampbookError

feed_bp = Blueprint('feed_bp', __name__)

def _feed_response(feed, tab, posts):
    return FeedResponseSchema().dump({
        "tab": tab,
        "posts": posts,
        "has_more": feed.has_more(tab),
        "error": feed.last_error(tab),
    })

@feed_bp.route('', methods=['GET'])
@jwt_required()
def get_feed():
    """
    피드 첫 페이지를 반환합니다.
    이미 불러온 탭은 refresh=true가 아니면 다시 조회하지 않고 현재 게시물을 돌려줍니다.
    """
    session = current_app.services['sessions'].get(get_jwt_identity())
    try:
        query = FeedQuerySchema().load(request.args)
        posts = session.feed.load_feed(query['tab'], force_refresh=query['refresh'])
        return jsonify(_feed_response(session.feed, query['tab'], posts)), 200
    except ValidationError as err:
        return jsonify({"error_code": "VALIDATION_ERROR", "details": err.messages}), 400
    except Exception as e:
        logging.error(f"피드 조회 중 오류 발생: {e}", exc_info=True)
        return jsonify({"error_code": "INTERNAL_SERVER_ERROR", "message": "피드 조회 중 오류가 발생했습니다."}), 500

@feed_bp.route('/more', methods=['POST'])
@jwt_required()
def load_more():
    session = current_app.services['sessions'].get(get_jwt_identity())
    try:
        query = LoadMoreQuerySchema().load(request.args)
        tab, feed = query['tab'], session.feed
        if query['index'] is not None and not feed.should_load_more(query['index'], tab):
            posts = feed.current_posts(tab)
        elif tab == 'mine':
            posts = feed.load_more_my_posts()
        else:
            posts = feed.load_more_posts()
        return jsonify(_feed_response(feed, tab, posts)), 200
    except ValidationError as err:
        return jsonify({"error_code": "VALIDATION_ERROR", "details": err.messages}), 400
    except Exception as e:
        logging.error(f"피드 추가 로드 중 오류 발생: {e}", exc_info=True)
        return jsonify({"error_code": "INTERNAL_SERVER_ERROR", "message": "피드 추가 로드 중 오류가 발생했습니다."}), 500

@feed_bp.route('/refresh', methods=['POST'])
@jwt_required()
def refresh_feed():
    """당겨서 새로고침. 첫 페이지를 다시 불러와 기존 게시물을 교체합니다."""
    session = current_app.services['sessions'].get(get_jwt_identity())
    try:
        query = RefreshQuerySchema().load(request.args)
        tab = query['tab'] or 'all'
        session.feed.refresh(query['tab'])
        return jsonify(_feed_response(session.feed, tab, session.feed.current_posts(tab))), 200
    except ValidationError as err:
        return jsonify({"error_code": "VALIDATION_ERROR", "details": err.messages}), 400
    except Exception as e:
        logging.error(f"피드 새로고침 중 오류 발생: {e}", exc_info=True)
        return jsonify({"error_code": "INTERNAL_SERVER_ERROR", "message": "피드 새로고침 중 오류가 발생했습니다."}), 500

@feed_bp.route('/posts/<string:post_id>', methods=['GET'])
@jwt_required()
def get_post(post_id):
    """
    게시물 하나를 반환합니다. (딥링크, 상세 화면)
    prefetch=true이면 캐시에 있을 때만 즉시, 없으면 짧게 기다린 뒤 실패 시 202로 응답합니다.
    """
    session = current_app.services['sessions'].get(get_jwt_identity())
    try:
        if request.args.get('prefetch', 'false').lower() in ('1', 'true'):
            post = session.feed.prefetch_post(post_id)
            if post is None:
                return jsonify({"post_id": post_id, "post": None}), 202
        else:
            post = session.feed.fetch_single_post(post_id)
        return jsonify({"post_id": post_id, "post": PostResponseSchema().dump(post)}), 200
    except StampbookError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        logging.error(f"게시물 조회 중 오류 발생 (post: {post_id}): {e}", exc_info=True)
        return jsonify({"error_code": "INTERNAL_SERVER_ERROR", "message": "게시물 조회 중 오류가 발생했습니다."}), 500
