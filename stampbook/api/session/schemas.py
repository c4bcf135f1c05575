# stampbook/api/session/schemas.py
from marshmallow import Schema, fields

class SessionStateSchema(Schema):
    """현재 세션 상태. error는 자동으로 사라지는 일시적인 오류 메시지(토스트)입니다."""
    user_id = fields.Str(required=True)
    error = fields.Str(allow_none=True)
    pending = fields.List(fields.Str(), required=True)
