# stampbook/models/comment.py
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Dict, Any

from stampbook.utils.datetime_utils import DateTimeUtils

# 서버에 저장되기 전(낙관적 추가 상태)의 댓글 ID 접두사
PENDING_COMMENT_PREFIX = "pending-"

@dataclass
class Comment:
    """
    Firestore 'comments' 컬렉션의 문서 구조를 정의하는 데이터클래스.
    작성자 정보는 조회 성능을 위해 비정규화되어 함께 저장됩니다.
    """
    comment_id: str
    user_id: str
    post_id: str
    stamp_id: str
    post_owner_id: str
    text: str
    user_display_name: str
    user_username: str
    user_avatar_url: Optional[str] = None
    created_at: datetime = field(default_factory=DateTimeUtils.now)

    @property
    def is_pending(self) -> bool:
        return self.comment_id.startswith(PENDING_COMMENT_PREFIX)

    @classmethod
    def from_document(cls, doc_id: str, data: Dict[str, Any]) -> 'Comment':
        return cls(
            comment_id=doc_id,
            user_id=data.get('userId', ""),
            post_id=data.get('postId', ""),
            stamp_id=data.get('stampId', ""),
            post_owner_id=data.get('postOwnerId', ""),
            text=data.get('text', ""),
            user_display_name=data.get('userDisplayName', ""),
            user_username=data.get('userUsername', ""),
            user_avatar_url=data.get('userAvatarUrl'),
            created_at=DateTimeUtils.from_firestore(data.get('createdAt')) or DateTimeUtils.now(),
        )

    def to_document(self) -> Dict[str, Any]:
        return {
            'userId': self.user_id,
            'postId': self.post_id,
            'stampId': self.stamp_id,
            'postOwnerId': self.post_owner_id,
            'text': self.text,
            'userDisplayName': self.user_display_name,
            'userUsername': self.user_username,
            'userAvatarUrl': self.user_avatar_url,
            'createdAt': self.created_at,
        }
