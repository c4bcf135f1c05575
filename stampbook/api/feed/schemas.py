# stampbook/api/feed/schemas.py
from marshmallow import Schema, fields, validate

TAB_CHOICES = ['all', 'mine']

class FeedQuerySchema(Schema):
    """GET /api/feed 쿼리 파라미터."""
    tab = fields.Str(load_default='all', validate=validate.OneOf(TAB_CHOICES))
    refresh = fields.Bool(load_default=False)

class LoadMoreQuerySchema(Schema):
    """
    POST /api/feed/more 쿼리 파라미터.
    index가 주어지면 목록 끝에서 임계값 이내일 때만 다음 페이지를 불러옵니다.
    """
    tab = fields.Str(load_default='all', validate=validate.OneOf(TAB_CHOICES))
    index = fields.Int(load_default=None, allow_none=True, validate=validate.Range(min=0))

class RefreshQuerySchema(Schema):
    tab = fields.Str(load_default=None, allow_none=True, validate=validate.OneOf(TAB_CHOICES))

class PostResponseSchema(Schema):
    """피드 게시물 응답 형식. 좋아요/댓글 수는 로컬 카운터 캐시의 현재 값입니다."""
    post_id = fields.Str(required=True)
    user_id = fields.Str(required=True)
    username = fields.Str(required=True)
    display_name = fields.Str(required=True)
    avatar_url = fields.Str(allow_none=True)
    stamp_id = fields.Str(required=True)
    stamp_name = fields.Str(required=True)
    stamp_image_url = fields.Str(allow_none=True)
    location = fields.Str(required=True)
    date = fields.Str(required=True)
    collected_at = fields.DateTime(allow_none=True)
    is_current_user = fields.Bool(required=True)
    user_photos = fields.List(fields.Str())
    note = fields.Str(allow_none=True)
    like_count = fields.Int(required=True)
    comment_count = fields.Int(required=True)
    is_liked = fields.Bool(required=True)

class FeedResponseSchema(Schema):
    tab = fields.Str(required=True)
    posts = fields.List(fields.Nested(PostResponseSchema), required=True)
    has_more = fields.Bool(required=True)
    # 불러오기에 실패했을 때 기존 게시물과 함께 표시할 인라인 오류 메시지
    error = fields.Str(allow_none=True)
