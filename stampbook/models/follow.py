# stampbook/models/follow.py
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Any

from stampbook.utils.datetime_utils import DateTimeUtils

def following_path(follower_id: str, followee_id: str) -> str:
    return f"users/{follower_id}/following/{followee_id}"

def followers_path(followee_id: str, follower_id: str) -> str:
    return f"users/{followee_id}/followers/{follower_id}"

@dataclass
class Follow:
    """
    팔로우 관계(follower -> followee) 한 건.
    'users/{followerId}/following/{followeeId}'와 'users/{followeeId}/followers/{followerId}'
    두 곳에 저장되며, 'id' 필드는 상대방 userId 입니다.
    """
    follower_id: str
    followee_id: str
    created_at: datetime = field(default_factory=DateTimeUtils.now)

    def following_document(self) -> Dict[str, Any]:
        return {'id': self.followee_id, 'createdAt': self.created_at}

    def follower_document(self) -> Dict[str, Any]:
        return {'id': self.follower_id, 'createdAt': self.created_at}
