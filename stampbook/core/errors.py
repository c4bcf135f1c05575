# stampbook/core/errors.py
"""
서비스 전역에서 사용하는 예외 계층.

- ValidationFailed: 잘못된 입력. 네트워크에 접근하기 전에 로컬에서 처리됩니다.
- TransientRemoteError: 타임아웃/오프라인 등 일시적인 원격 오류. 자동 재시도하지 않습니다.
- ConflictError: 이미 존재하거나 상태가 충돌하는 경우.
- NotFoundError / PermissionDenied: 대상이 없거나 권한이 없는 경우.
"""
from typing import Optional


class StampbookError(Exception):
    """모든 도메인 예외의 기반 클래스. API 응답의 error_code와 HTTP 상태 코드를 함께 가집니다."""
    error_code = "INTERNAL_SERVER_ERROR"
    status_code = 500
    default_message = "서버 내부에서 예상치 못한 오류가 발생했습니다."

    def __init__(self, message: Optional[str] = None, error_code: Optional[str] = None):
        self.message = message or self.default_message
        if error_code:
            self.error_code = error_code
        super().__init__(self.message)

    def to_dict(self):
        return {"error_code": self.error_code, "message": self.message}


class ValidationFailed(StampbookError):
    error_code = "VALIDATION_ERROR"
    status_code = 400
    default_message = "입력값이 올바르지 않습니다."


class TransientRemoteError(StampbookError):
    error_code = "REMOTE_UNAVAILABLE"
    status_code = 503
    default_message = "네트워크 연결을 확인한 뒤 다시 시도해주세요."


class ConflictError(StampbookError):
    error_code = "CONFLICT"
    status_code = 409
    default_message = "요청이 현재 상태와 충돌합니다."


class NotFoundError(StampbookError):
    error_code = "NOT_FOUND"
    status_code = 404
    default_message = "요청한 리소스를 찾을 수 없습니다."


class PermissionDenied(StampbookError):
    error_code = "FORBIDDEN"
    status_code = 403
    default_message = "이 작업을 수행할 권한이 없습니다."
