# stampbook/api/likes/schemas.py
from marshmallow import Schema, fields

class MutationQuerySchema(Schema):
    """
    좋아요/댓글/팔로우 변경 요청의 쿼리 파라미터.
    wait=true이면 원격 쓰기가 확정(또는 롤백)될 때까지 기다린 뒤 응답합니다.
    """
    wait = fields.Bool(load_default=False)

class LikeStateSchema(Schema):
    """좋아요 상태 응답. pending은 원격 확인을 기다리는 토글이 있는지 여부입니다."""
    post_id = fields.Str(required=True)
    is_liked = fields.Bool(required=True)
    like_count = fields.Int(required=True)
    pending = fields.Bool(required=True)
    confirmed = fields.Bool(allow_none=True)
