# stampbook/services/mutation_engine.py
"""
낙관적 변경(Optimistic Mutation) 엔진.

좋아요/댓글/팔로우 변경은 모두 apply_optimistic()을 거칩니다.
1. 세션 락 안에서 로컬 카운터 캐시를 즉시 바꾸고 (mutate)
2. 원격 쓰기를 백그라운드 작업으로 보내며 (remote_call)
3. 원격 쓰기가 실패하면 로컬 변경을 되돌리고 (compensate) 오류 배너를 띄웁니다.

원격 쓰기는 세션당 워커 하나짜리 실행기에서 요청 순서대로 처리됩니다.
"""
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Callable, Dict, List, Optional

from stampbook.core.errors import StampbookError, TransientRemoteError

GENERIC_ERROR_MESSAGE = "요청을 처리하지 못했습니다. 잠시 후 다시 시도해주세요."


class ErrorBanner:
    """
    사용자에게 보여줄 일시적인 오류 메시지(토스트) 하나를 보관합니다.
    dismiss_seconds가 지나면 사라지고, 다음 사용자 동작이 시작될 때도 지워집니다.
    """

    def __init__(self, dismiss_seconds: float = 3.0, clock: Callable[[], float] = time.monotonic):
        self.dismiss_seconds = dismiss_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._message: Optional[str] = None
        self._expires_at = 0.0

    def show(self, message: str) -> None:
        with self._lock:
            self._message = message
            self._expires_at = self._clock() + self.dismiss_seconds

    def current(self) -> Optional[str]:
        with self._lock:
            if self._message is not None and self._clock() >= self._expires_at:
                self._message = None
            return self._message

    def dismiss(self) -> None:
        with self._lock:
            self._message = None


class PendingMutation:
    """원격 확인을 기다리는 변경 한 건. undos는 실패 시 순서대로 실행할 보상 작업 목록입니다."""

    def __init__(self, key: str, seq: int, undo: Callable[[], None], supersedable: bool):
        self.key = key
        self.seq = seq
        self.undos: List[Callable[[], None]] = [undo]
        self.supersedable = supersedable

    @property
    def absorbed(self) -> bool:
        """앞선 실패한 변경의 보상 작업을 넘겨받았는지 여부."""
        return len(self.undos) > 1

    def run_undos(self) -> None:
        for undo in self.undos:
            undo()


class MutationEngine:
    """
    apply_optimistic()으로 들어오는 모든 변경에 같은 보장을 제공합니다.

    - mutate/compensate/on_success는 모두 self.lock 안에서 실행됩니다.
    - supersedable=True인 변경(좋아요/팔로우처럼 원격에 "상태"를 쓰는 변경)은 같은 키에 대해
      뒤따르는 변경이 아직 대기 중일 때 실패하면, 즉시 되돌리지 않고 보상 작업을 뒤 변경에 넘깁니다.
      뒤 변경이 성공하면 원격은 로컬에 보이는 상태와 같아지므로 넘겨받은 보상은 버리고,
      뒤 변경도 실패하면 두 보상을 역순으로 모두 실행합니다.
    - supersedable=False인 변경(댓글 추가/삭제)은 실패 즉시 되돌립니다.
    """

    def __init__(self, error_banner: Optional[ErrorBanner] = None, lock: Optional[threading.RLock] = None):
        self.error_banner = error_banner or ErrorBanner()
        self.lock = lock or threading.RLock()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix='stampbook-remote')
        self._pending: Dict[str, List[PendingMutation]] = {}
        self._seq = 0
        self._closed = False

    def is_pending(self, key: str) -> bool:
        with self.lock:
            return bool(self._pending.get(key))

    def pending_keys(self) -> List[str]:
        with self.lock:
            return [key for key, entries in self._pending.items() if entries]

    def apply_optimistic(self, key: str, mutate: Callable[[], Any], remote_call: Callable[[], Any],
                         compensate: Callable[[Any], None],
                         on_success: Optional[Callable[[Any], None]] = None,
                         error_message: Optional[str] = None,
                         supersedable: bool = True) -> 'Future[bool]':
        """
        로컬 변경을 즉시 적용하고 원격 쓰기를 예약합니다.

        :param mutate: 현재 로컬 상태를 읽어 변경을 적용하고, 되돌리는 데 필요한 값을 반환합니다.
        :param remote_call: 원격 쓰기. 반환값은 on_success에 전달됩니다.
        :param compensate: mutate의 반환값을 받아 로컬 변경을 되돌립니다.
        :return: 원격 쓰기가 확인되면 True, 실패해서 되돌렸으면 False가 되는 Future
        """
        if self._closed:
            raise RuntimeError("종료된 세션에서는 변경을 적용할 수 없습니다.")
        with self.lock:
            # 새 사용자 동작이 시작되면 이전 오류 메시지는 내립니다. (dismiss-on-retry)
            self.error_banner.dismiss()
            undo_token = mutate()
            self._seq += 1
            entry = PendingMutation(key, self._seq, lambda: compensate(undo_token), supersedable)
            self._pending.setdefault(key, []).append(entry)
            logging.info(f"낙관적 변경 적용 (key: {key}, seq: {entry.seq})")
        return self._executor.submit(self._run_remote, entry, remote_call, on_success, error_message)

    def _run_remote(self, entry: PendingMutation, remote_call, on_success, error_message) -> bool:
        try:
            result = remote_call()
        except TransientRemoteError as e:
            logging.warning(f"원격 쓰기 실패 (key: {entry.key}, seq: {entry.seq}): {e.message}")
            self._handle_failure(entry, error_message or e.message)
            return False
        except StampbookError as e:
            logging.warning(f"원격 쓰기 거부 (key: {entry.key}, seq: {entry.seq}): {e.error_code} {e.message}")
            self._handle_failure(entry, error_message or e.message)
            return False
        except Exception as e:
            logging.error(f"원격 쓰기 중 예상치 못한 오류 (key: {entry.key}, seq: {entry.seq}): {e}", exc_info=True)
            self._handle_failure(entry, error_message or GENERIC_ERROR_MESSAGE)
            return False

        with self.lock:
            self._remove(entry)
            if entry.absorbed:
                logging.info(f"앞선 실패 변경을 대체하여 확정됨 (key: {entry.key}, seq: {entry.seq})")
            elif on_success is not None:
                try:
                    on_success(result)
                except Exception as e:
                    logging.error(f"원격 확정 후처리 실패 (key: {entry.key}): {e}", exc_info=True)
        return True

    def _handle_failure(self, entry: PendingMutation, message: str) -> None:
        with self.lock:
            later = self._later_entry(entry)
            self._remove(entry)
            if entry.supersedable and later is not None:
                # 뒤 변경이 먼저 되돌려진 다음 이 변경이 되돌려져야 하므로 뒤에 붙입니다.
                later.undos.extend(entry.undos)
                logging.info(f"실패한 변경의 롤백을 대기 중인 변경으로 넘김 (key: {entry.key}, "
                             f"seq: {entry.seq} -> {later.seq})")
            else:
                try:
                    entry.run_undos()
                except Exception as e:
                    logging.error(f"로컬 롤백 실패 (key: {entry.key}, seq: {entry.seq}): {e}", exc_info=True)
                logging.info(f"로컬 변경 롤백 완료 (key: {entry.key}, seq: {entry.seq})")
            self.error_banner.show(message)

    def _later_entry(self, entry: PendingMutation) -> Optional[PendingMutation]:
        for other in self._pending.get(entry.key, []):
            if other.seq > entry.seq and other.supersedable:
                return other
        return None

    def _remove(self, entry: PendingMutation) -> None:
        entries = self._pending.get(entry.key, [])
        if entry in entries:
            entries.remove(entry)
        if not entries:
            self._pending.pop(entry.key, None)

    def flush(self, timeout: Optional[float] = None) -> bool:
        """지금까지 예약된 원격 쓰기가 모두 끝날 때까지 기다립니다."""
        if self._closed:
            return True
        marker = self._executor.submit(lambda: True)
        try:
            return marker.result(timeout=timeout)
        except FutureTimeoutError:
            return False

    def shutdown(self, wait: bool = True) -> None:
        self._closed = True
        self._executor.shutdown(wait=wait)
