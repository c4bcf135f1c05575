# stampbook/models/post.py
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List, Tuple

from stampbook.core.errors import ValidationFailed

def make_post_id(owner_id: str, stamp_id: str) -> str:
    """게시물 ID는 '{소유자 userId}-{stampId}' 형식입니다."""
    return f"{owner_id}-{stamp_id}"

def parse_post_id(post_id: str) -> Tuple[str, str]:
    """
    게시물 ID를 (소유자 userId, stampId)로 분리합니다.
    Firebase Auth의 userId에는 '-'가 없으므로 첫 번째 '-'를 기준으로 나눕니다.
    (stampId에는 '-'가 포함될 수 있습니다.)
    """
    owner_id, sep, stamp_id = (post_id or "").partition('-')
    if not sep or not owner_id or not stamp_id:
        raise ValidationFailed(f"잘못된 게시물 ID 형식입니다: {post_id}", error_code="INVALID_POST_ID")
    return owner_id, stamp_id

@dataclass
class Post:
    """
    피드에 표시되는 게시물. 저장되는 엔티티가 아니라, 피드를 불러올 때마다
    소유자의 수집 기록 + 프로필 + 스탬프 정보 + 현재 카운터로 조립됩니다.
    """
    post_id: str
    user_id: str
    username: str
    display_name: str
    avatar_url: Optional[str]
    stamp_id: str
    stamp_name: str
    stamp_image_url: Optional[str]
    location: str
    date: str
    collected_at: Optional[datetime]
    is_current_user: bool
    user_photos: List[str] = field(default_factory=list)
    note: Optional[str] = None
    like_count: int = 0
    comment_count: int = 0
    is_liked: bool = False
