# stampbook/models/collected_stamp.py
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List, Dict, Any

from stampbook.utils.datetime_utils import DateTimeUtils

@dataclass
class CollectedStamp:
    """
    'users/{userId}/collected_stamps/{stampId}' 문서.
    사용자별로 비정규화된 수집 기록이며, 피드의 게시물 하나가 이 문서 하나에 대응합니다.
    likeCount/commentCount는 likes/comments 컬렉션에서 파생된 카운터입니다.
    """
    stamp_id: str
    user_id: str
    collected_date: Optional[datetime]
    user_notes: str = ""
    user_image_names: List[str] = field(default_factory=list)
    user_image_paths: List[str] = field(default_factory=list)
    like_count: int = 0
    comment_count: int = 0

    @classmethod
    def from_document(cls, doc_id: str, data: Dict[str, Any], user_id: str) -> 'CollectedStamp':
        return cls(
            stamp_id=data.get('stampId') or doc_id,
            user_id=data.get('userId') or user_id,
            collected_date=DateTimeUtils.from_firestore(data.get('collectedDate')),
            user_notes=data.get('userNotes') or "",
            user_image_names=list(data.get('userImageNames') or []),
            user_image_paths=list(data.get('userImagePaths') or []),
            like_count=max(0, int(data.get('likeCount') or 0)),
            comment_count=max(0, int(data.get('commentCount') or 0)),
        )
