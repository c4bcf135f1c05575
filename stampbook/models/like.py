# stampbook/models/like.py
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Any

from stampbook.utils.datetime_utils import DateTimeUtils

def like_document_id(user_id: str, post_id: str) -> str:
    """'likes' 컬렉션 문서 ID는 '{userId}_{postId}' 형식이라 사용자당 게시물 하나에 최대 한 건입니다."""
    return f"{user_id}_{post_id}"

@dataclass
class Like:
    """Firestore 'likes' 컬렉션의 문서 구조."""
    user_id: str
    post_id: str
    stamp_id: str
    post_owner_id: str
    created_at: datetime = field(default_factory=DateTimeUtils.now)

    def to_document(self) -> Dict[str, Any]:
        return {
            'userId': self.user_id,
            'postId': self.post_id,
            'stampId': self.stamp_id,
            'postOwnerId': self.post_owner_id,
            'createdAt': self.created_at,
        }
