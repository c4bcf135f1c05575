# stampbook/models/stamp.py
from dataclasses import dataclass
from typing import Optional, Dict, Any

@dataclass
class Stamp:
    """Firestore 'stamps' 컬렉션의 랜드마크 스탬프. 피드에서는 이름/이미지/위치 문구만 사용합니다."""
    stamp_id: str
    name: str
    address: str = ""
    image_url: Optional[str] = None
    image_name: str = ""

    @classmethod
    def from_document(cls, doc_id: str, data: Dict[str, Any]) -> 'Stamp':
        return cls(
            stamp_id=data.get('id') or doc_id,
            name=data.get('name') or "",
            address=data.get('address') or "",
            image_url=data.get('imageUrl'),
            image_name=data.get('imageName') or "",
        )

    @property
    def city_country(self) -> str:
        """
        주소 두 번째 줄("San Francisco, CA, USA 94129")에서 "도시, 국가"를 뽑아냅니다.
        형식이 맞지 않으면 "Location not included"를 반환합니다.
        """
        lines = self.address.split("\n")
        if len(lines) >= 2:
            parts = [p.strip() for p in lines[1].split(",")]
            if len(parts) >= 3:
                country = parts[2].split(" ")[0] or parts[2]
                return f"{parts[0]}, {country}"
            if len(parts) >= 2:
                return f"{parts[0]}, {parts[1]}"
        return "Location not included"
