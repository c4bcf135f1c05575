# stampbook/api/follows/schemas.py
from marshmallow import Schema, fields

class FollowStateSchema(Schema):
    """대상 사용자에 대한 팔로우 상태 응답. 카운트는 로컬 카운터 캐시의 현재 값입니다."""
    user_id = fields.Str(required=True)
    is_following = fields.Bool(required=True)
    follower_count = fields.Int(required=True)
    following_count = fields.Int(required=True)
    my_following_count = fields.Int(required=True)
    pending = fields.Bool(required=True)
    confirmed = fields.Bool(allow_none=True)

class UserSummarySchema(Schema):
    """팔로워/팔로잉 목록의 사용자 한 명."""
    user_id = fields.Str(required=True)
    username = fields.Str(required=True)
    display_name = fields.Str(required=True)
    avatar_url = fields.Str(allow_none=True)
    bio = fields.Str()
    total_stamps = fields.Int()
    follower_count = fields.Int()
    following_count = fields.Int()
    is_following = fields.Bool(dump_only=True, dump_default=False)
