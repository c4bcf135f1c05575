# stampbook/api/comments/schemas.py
from marshmallow import Schema, fields, validate

class CommentCreateSchema(Schema):
    """
    POST /api/posts/{post_id}/comments
    최대 길이는 설정값(COMMENT_MAX_LENGTH)에 따라 서비스에서 검사합니다.
    """
    text = fields.Str(required=True, validate=validate.Length(min=1, error="댓글 내용을 입력해주세요."))

class CommentResponseSchema(Schema):
    """댓글 응답 형식. is_pending이 참이면 아직 저장되지 않은 낙관적 댓글입니다."""
    comment_id = fields.Str(required=True)
    post_id = fields.Str(required=True)
    user_id = fields.Str(required=True)
    text = fields.Str(required=True)
    user_display_name = fields.Str(required=True)
    user_username = fields.Str(required=True)
    user_avatar_url = fields.Str(allow_none=True)
    created_at = fields.DateTime(required=True)
    is_pending = fields.Bool(dump_only=True)
    can_delete = fields.Bool(dump_only=True, dump_default=False)

class CommentListResponseSchema(Schema):
    """댓글 목록 응답. comments에는 CommentResponseSchema로 직렬화한 댓글이 들어갑니다."""
    post_id = fields.Str(required=True)
    comment_count = fields.Int(required=True)
    pending = fields.Bool(required=True)
    confirmed = fields.Bool(allow_none=True)
    comments = fields.List(fields.Dict(), required=True)
