# stampbook/models/user.py
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Dict, Any

from stampbook.utils.datetime_utils import DateTimeUtils

@dataclass
class UserProfile:
    """
    Firestore 'users' 컬렉션의 문서 구조를 정의하는 데이터클래스.
    followerCount/followingCount는 following 서브컬렉션에서 파생된 비정규화 카운터이며,
    어긋날 수 있으므로 정기 보정 스크립트가 바로잡습니다.
    """
    user_id: str
    username: str
    display_name: str
    bio: str = ""
    avatar_url: Optional[str] = None
    total_stamps: int = 0
    follower_count: int = 0
    following_count: int = 0
    created_at: Optional[datetime] = field(default_factory=DateTimeUtils.now)

    @classmethod
    def from_document(cls, doc_id: str, data: Dict[str, Any]) -> 'UserProfile':
        return cls(
            user_id=data.get('id') or doc_id,
            username=data.get('username') or doc_id,
            display_name=data.get('displayName') or data.get('username') or doc_id,
            bio=data.get('bio') or "",
            avatar_url=data.get('avatarUrl'),
            total_stamps=int(data.get('totalStamps') or 0),
            follower_count=max(0, int(data.get('followerCount') or 0)),
            following_count=max(0, int(data.get('followingCount') or 0)),
            created_at=DateTimeUtils.from_firestore(data.get('createdAt')),
        )

    def to_document(self) -> Dict[str, Any]:
        return {
            'id': self.user_id,
            'username': self.username,
            'displayName': self.display_name,
            'bio': self.bio,
            'avatarUrl': self.avatar_url,
            'totalStamps': self.total_stamps,
            'followerCount': self.follower_count,
            'followingCount': self.following_count,
            'createdAt': self.created_at,
        }
