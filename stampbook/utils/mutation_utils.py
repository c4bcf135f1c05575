# stampbook/utils/mutation_utils.py
import logging
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Optional

def wait_for_confirmation(future: Future, timeout: float) -> Optional[bool]:
    """
    낙관적 변경의 원격 확정을 기다립니다.
    확정되면 True, 롤백되면 False, timeout 안에 끝나지 않으면 None을 반환합니다.
    """
    try:
        return future.result(timeout=timeout)
    except FutureTimeoutError:
        logging.info(f"원격 확정 대기 시간({timeout}s) 초과, 대기 중 상태로 응답합니다.")
        return None
