# stampbook/utils/datetime_utils.py
"""
시간 값 변환 도우미.

- 서버 안의 모든 시각은 UTC 기준 timezone-aware datetime입니다.
- 수집일(collectedDate)처럼 날짜만 있는 값은 그날 00:00 UTC로 취급합니다.
- 피드 카드의 날짜 문구는 "Oct 18, 2026" 형식입니다.
"""

import logging
from datetime import datetime, date, timezone, time
from typing import Any, Optional, Union
from dateutil import parser as dateutil_parser

logger = logging.getLogger(__name__)


class DateTimeUtils:
    """Firestore timestamp, ISO 문자열, 피드 날짜 문구 사이의 변환을 모아둔 정적 메서드 모음."""

    @staticmethod
    def now() -> datetime:
        return datetime.now(timezone.utc)

    @staticmethod
    def to_utc(value: Union[datetime, date]) -> datetime:
        """naive datetime은 UTC로 간주하고, date는 00:00:00 UTC로 변환합니다."""
        if isinstance(value, datetime):
            if value.tzinfo is None:
                return value.replace(tzinfo=timezone.utc)
            return value.astimezone(timezone.utc)
        if isinstance(value, date):
            return datetime.combine(value, time.min, tzinfo=timezone.utc)
        raise ValueError(f"datetime 또는 date 객체여야 합니다: {type(value)}")

    @staticmethod
    def parse_iso_datetime(text: str) -> datetime:
        """
        ISO 8601 문자열을 UTC datetime으로 읽습니다.
        'Z' 접미사, '+09:00' 같은 오프셋, 마이크로초, 오프셋이 없는 값(UTC로 간주)을 받습니다.
        """
        if not text:
            raise ValueError("빈 문자열은 날짜로 읽을 수 없습니다.")
        try:
            parsed = dateutil_parser.isoparse(text)
        except (ValueError, OverflowError) as e:
            logger.warning(f"ISO 날짜 파싱 실패: {text!r} - {e}")
            raise ValueError(f"잘못된 ISO 날짜 형식입니다: {text}") from e
        return DateTimeUtils.to_utc(parsed)

    @staticmethod
    def to_iso_string(value: datetime) -> str:
        return DateTimeUtils.to_utc(value).isoformat().replace('+00:00', 'Z')

    @staticmethod
    def format_medium(value: Optional[datetime]) -> str:
        """피드/상세 화면에 표시할 날짜 문구. 값이 없으면 빈 문자열."""
        if value is None:
            return ""
        value = DateTimeUtils.to_utc(value)
        # '%-d'는 플랫폼마다 지원 여부가 달라 일(day)은 직접 붙입니다.
        return f"{value.strftime('%b')} {value.day}, {value.year}"

    @staticmethod
    def for_firestore(data: Any) -> Any:
        """저장 직전의 문서 데이터에서 date/datetime 값을 UTC datetime으로 바꿉니다. dict/list는 재귀적으로 처리합니다."""
        if isinstance(data, (datetime, date)):
            return DateTimeUtils.to_utc(data)
        if isinstance(data, dict):
            return {key: DateTimeUtils.for_firestore(item) for key, item in data.items()}
        if isinstance(data, list):
            return [DateTimeUtils.for_firestore(item) for item in data]
        return data

    @staticmethod
    def from_firestore(value: Any) -> Optional[datetime]:
        """
        문서에서 읽은 시각 값을 UTC datetime으로 바꿉니다.
        DatetimeWithNanoseconds, ISO 문자열, epoch 초를 받으며, 알 수 없는 값은 None입니다.
        """
        if value is None:
            return None
        if isinstance(value, datetime):
            return DateTimeUtils.to_utc(value)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return datetime.fromtimestamp(value, tz=timezone.utc)
        if isinstance(value, str):
            try:
                return DateTimeUtils.parse_iso_datetime(value)
            except ValueError:
                return None
        if callable(getattr(value, 'timestamp', None)):
            return datetime.fromtimestamp(value.timestamp(), tz=timezone.utc)
        logger.warning(f"알 수 없는 시각 형식이라 무시합니다: {type(value)}")
        return None
