# stampbook/services/local_storage.py
"""
카운터 캐시 아래에 깔리는 영속 키-값 저장소.

사용자마다 JSON 파일 하나를 두고, 값이 바뀔 때마다 파일 전체를 임시 파일에 쓴 뒤
os.replace로 교체합니다(write-through). set()이 반환된 시점에는 새로 만든
인스턴스도 같은 값을 읽을 수 있어야 합니다.
"""
import json
import logging
import os
import tempfile
import threading
from typing import Any, Dict, List, Optional

STORAGE_SCHEMA_VERSION = 1


class JsonFileStorage:
    """문자열 키 -> JSON 값 매핑을 파일 하나에 보관하는 저장소."""

    def __init__(self, filepath: str):
        self.filepath = filepath
        self.dirpath = os.path.dirname(os.path.abspath(filepath))
        self._lock = threading.RLock()
        self._data: Dict[str, Any] = self._read()

    def _read(self) -> Dict[str, Any]:
        if not os.path.exists(self.filepath):
            return {}
        try:
            with open(self.filepath, "r", encoding="utf-8") as f:
                payload = json.load(f)
        except (OSError, ValueError) as e:
            # 손상된 파일이면 빈 상태로 시작합니다.
            logging.warning(f"로컬 저장소 파일을 읽을 수 없어 초기화합니다 ({self.filepath}): {e}")
            return {}
        if not isinstance(payload, dict) or not isinstance(payload.get("entries"), dict):
            logging.warning(f"로컬 저장소 파일 형식이 올바르지 않아 무시합니다: {self.filepath}")
            return {}
        return payload["entries"]

    def _write(self) -> None:
        payload = {"schema_version": STORAGE_SCHEMA_VERSION, "entries": self._data}
        os.makedirs(self.dirpath, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=".stampbook.", suffix=".json.tmp", dir=self.dirpath)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, ensure_ascii=False, separators=(",", ":"))
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.filepath)
        finally:
            if os.path.exists(tmp):
                os.remove(tmp)

    def get(self, key: str, default: Optional[Any] = None) -> Any:
        with self._lock:
            if key not in self._data:
                return default
            # 호출자가 반환값을 수정해도 저장소 상태가 바뀌지 않도록 JSON 왕복으로 복사합니다.
            return json.loads(json.dumps(self._data[key]))

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = json.loads(json.dumps(value))
            self._write()

    def remove(self, key: str) -> None:
        with self._lock:
            if key in self._data:
                del self._data[key]
                self._write()

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._data.keys())

    def clear(self) -> None:
        """모든 항목과 파일 자체를 삭제합니다. (로그아웃)"""
        with self._lock:
            self._data = {}
            if os.path.exists(self.filepath):
                os.remove(self.filepath)
