# stampbook/utils/__init__.py
"""
유틸리티 모듈 패키지

날짜/시간 변환과 낙관적 변경 확정 대기처럼 여러 모듈에서 함께 쓰는 도우미를 모아둡니다.
"""

from .datetime_utils import DateTimeUtils
from .mutation_utils import wait_for_confirmation

__all__ = [
    'DateTimeUtils',
    'wait_for_confirmation',
]
