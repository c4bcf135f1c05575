# stampbook/services/document_store.py
"""
원격 문서 저장소(Firestore) 접근 계층.

서비스 코드는 경로 문자열('users/{uid}/following/{target}')과 단순 필터 튜플만으로
저장소를 다룹니다. 운영 환경은 FirestoreDocumentStore, 테스트/로컬 실행은
MemoryDocumentStore를 사용합니다.
"""
import copy
import logging
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar

from firebase_admin import firestore
from google.api_core import exceptions as google_exceptions

from stampbook.core.errors import NotFoundError, TransientRemoteError
from stampbook.utils.datetime_utils import DateTimeUtils

# (필드명, 연산자, 값) 형태의 쿼리 필터
Filter = Tuple[str, str, Any]
T = TypeVar('T')


@dataclass
class DocumentSnapshot:
    """쿼리 결과로 반환되는 문서 한 건."""
    id: str
    path: str
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def parent_id(self) -> Optional[str]:
        """서브컬렉션 문서의 상위 문서 ID. (예: users/{uid}/following/{x} -> uid)"""
        segments = self.path.split('/')
        return segments[-3] if len(segments) >= 4 else None


@dataclass
class WriteOp:
    """commit_batch에 전달되는 쓰기 작업 한 건."""
    kind: str  # 'set' | 'delete' | 'increment'
    path: str
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def set(cls, path: str, data: Dict[str, Any]) -> 'WriteOp':
        return cls('set', path, data)

    @classmethod
    def delete(cls, path: str) -> 'WriteOp':
        return cls('delete', path)

    @classmethod
    def increment(cls, path: str, deltas: Dict[str, int]) -> 'WriteOp':
        return cls('increment', path, deltas)


class Transaction:
    """
    run_transaction()에 전달되는 트랜잭션 핸들.
    Firestore와 같이 모든 읽기(get)는 쓰기보다 먼저 해야 하며, 쓰기는 함수가 끝날 때 한 번에 반영됩니다.
    """

    def __init__(self):
        self.operations: List[WriteOp] = []

    def get(self, path: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def set(self, path: str, data: Dict[str, Any]) -> None:
        self.operations.append(WriteOp.set(path, data))

    def delete(self, path: str) -> None:
        self.operations.append(WriteOp.delete(path))

    def increment(self, path: str, deltas: Dict[str, int]) -> None:
        self.operations.append(WriteOp.increment(path, deltas))


class DocumentStore:
    """원격 문서 저장소 인터페이스."""

    def get_document(self, path: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def set_document(self, path: str, data: Dict[str, Any], merge: bool = False) -> None:
        raise NotImplementedError

    def update_document(self, path: str, data: Dict[str, Any]) -> None:
        """기존 문서의 일부 필드를 갱신합니다. 문서가 없으면 NotFoundError."""
        raise NotImplementedError

    def delete_document(self, path: str) -> None:
        raise NotImplementedError

    def increment_fields(self, path: str, deltas: Dict[str, int]) -> None:
        """숫자 필드를 원자적으로 증감합니다. 문서가 없으면 NotFoundError."""
        raise NotImplementedError

    def commit_batch(self, operations: Sequence[WriteOp]) -> None:
        """여러 문서 쓰기를 한 번에 원자적으로 반영합니다. (읽기 없음)"""
        raise NotImplementedError

    def run_transaction(self, fn: Callable[[Transaction], T]) -> T:
        """
        fn(transaction)을 트랜잭션 안에서 실행하고 fn의 반환값을 돌려줍니다.
        읽은 문서가 커밋 전에 다른 곳에서 바뀌면 fn 전체를 다시 실행하므로, fn은 부수 효과가 없어야 합니다.
        """
        raise NotImplementedError

    def generate_id(self, collection_path: str) -> str:
        raise NotImplementedError

    def query_collection(self, path: str, filters: Iterable[Filter] = (), order_by: Optional[str] = None,
                         descending: bool = False, limit: Optional[int] = None) -> List[DocumentSnapshot]:
        raise NotImplementedError

    def collection_group(self, name: str, filters: Iterable[Filter] = ()) -> List[DocumentSnapshot]:
        """이름이 같은 모든 서브컬렉션을 가로질러 조회합니다."""
        raise NotImplementedError

    def count(self, path: str, filters: Iterable[Filter] = ()) -> int:
        raise NotImplementedError


@contextmanager
def _translate_errors(path: str):
    """google-api-core 예외를 도메인 예외로 변환합니다."""
    try:
        yield
    except google_exceptions.NotFound as e:
        raise NotFoundError(f"문서를 찾을 수 없습니다: {path}") from e
    except (google_exceptions.ServiceUnavailable, google_exceptions.DeadlineExceeded,
            google_exceptions.Aborted, google_exceptions.RetryError) as e:
        logging.warning(f"Firestore 일시적 오류 (path: {path}): {e}")
        raise TransientRemoteError() from e


class _FirestoreTransaction(Transaction):
    def __init__(self, db, transaction):
        super().__init__()
        self.db = db
        self.transaction = transaction

    def get(self, path):
        with _translate_errors(path):
            doc = self.db.document(path).get(transaction=self.transaction)
            return doc.to_dict() if doc.exists else None


class FirestoreDocumentStore(DocumentStore):
    """firebase_admin Firestore 클라이언트 기반 구현체."""

    def __init__(self, db=None):
        self.db = db or firestore.client()

    def get_document(self, path):
        with _translate_errors(path):
            doc = self.db.document(path).get()
            return doc.to_dict() if doc.exists else None

    def set_document(self, path, data, merge=False):
        with _translate_errors(path):
            self.db.document(path).set(DateTimeUtils.for_firestore(data), merge=merge)

    def update_document(self, path, data):
        with _translate_errors(path):
            self.db.document(path).update(DateTimeUtils.for_firestore(data))

    def delete_document(self, path):
        with _translate_errors(path):
            self.db.document(path).delete()

    def increment_fields(self, path, deltas):
        with _translate_errors(path):
            self.db.document(path).update({k: firestore.Increment(v) for k, v in deltas.items()})

    def _stage(self, writer, op: WriteOp) -> None:
        """WriteBatch와 Transaction은 set/delete/update 시그니처가 같습니다."""
        ref = self.db.document(op.path)
        if op.kind == 'set':
            writer.set(ref, DateTimeUtils.for_firestore(op.data))
        elif op.kind == 'delete':
            writer.delete(ref)
        elif op.kind == 'increment':
            writer.update(ref, {k: firestore.Increment(v) for k, v in op.data.items()})
        else:
            raise ValueError(f"알 수 없는 쓰기 작업입니다: {op.kind}")

    def commit_batch(self, operations):
        batch = self.db.batch()
        for op in operations:
            self._stage(batch, op)
        with _translate_errors(','.join(op.path for op in operations)):
            batch.commit()

    def run_transaction(self, fn):
        @firestore.transactional
        def _run(transaction):
            handle = _FirestoreTransaction(self.db, transaction)
            result = fn(handle)
            for op in handle.operations:
                self._stage(transaction, op)
            return result

        with _translate_errors('transaction'):
            return _run(self.db.transaction())

    def generate_id(self, collection_path):
        return self.db.collection(collection_path).document().id

    def _apply_query(self, query, filters, order_by=None, descending=False, limit=None):
        for field_name, op, value in filters:
            query = query.where(field_name, op, value)
        if order_by:
            direction = firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
            query = query.order_by(order_by, direction=direction)
        if limit:
            query = query.limit(limit)
        return query

    def query_collection(self, path, filters=(), order_by=None, descending=False, limit=None):
        query = self._apply_query(self.db.collection(path), filters, order_by, descending, limit)
        with _translate_errors(path):
            return [DocumentSnapshot(doc.id, doc.reference.path, doc.to_dict() or {}) for doc in query.stream()]

    def collection_group(self, name, filters=()):
        query = self._apply_query(self.db.collection_group(name), filters)
        with _translate_errors(name):
            return [DocumentSnapshot(doc.id, doc.reference.path, doc.to_dict() or {}) for doc in query.stream()]

    def count(self, path, filters=()):
        # count()는 문서를 모두 가져오지 않고 서버에서 개수만 집계합니다.
        query = self._apply_query(self.db.collection(path), filters)
        with _translate_errors(path):
            count_result = query.count().get()
            return count_result[0][0].value


class _MemoryTransaction(Transaction):
    def __init__(self, store):
        super().__init__()
        self.store = store

    def get(self, path):
        return self.store.get_document(path)


class MemoryDocumentStore(DocumentStore):
    """
    프로세스 내부 딕셔너리 기반 구현체.
    테스트 설정과 Firebase 자격 증명 없이 로컬에서 실행할 때 사용합니다.
    """

    _OPERATORS = {
        '==': lambda a, b: a == b,
        '!=': lambda a, b: a != b,
        '<': lambda a, b: a is not None and a < b,
        '<=': lambda a, b: a is not None and a <= b,
        '>': lambda a, b: a is not None and a > b,
        '>=': lambda a, b: a is not None and a >= b,
        'in': lambda a, b: a in b,
        'array_contains': lambda a, b: isinstance(a, list) and b in a,
    }

    def __init__(self):
        self._docs: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.RLock()

    @staticmethod
    def _check_document_path(path: str) -> None:
        segments = path.strip('/').split('/')
        if len(segments) % 2 != 0 or not all(segments):
            raise ValueError(f"문서 경로가 아닙니다: {path}")

    def _matches(self, data, filters):
        for field_name, op, value in filters:
            if op not in self._OPERATORS:
                raise ValueError(f"지원하지 않는 연산자입니다: {op}")
            if not self._OPERATORS[op](data.get(field_name), value):
                return False
        return True

    def _select(self, candidates, filters, order_by=None, descending=False, limit=None):
        filters = list(filters)
        results = [
            DocumentSnapshot(path.rsplit('/', 1)[-1], path, copy.deepcopy(data))
            for path, data in candidates if self._matches(data, filters)
        ]
        if order_by:
            # Firestore와 동일하게 정렬 필드가 없는 문서는 결과에서 제외됩니다.
            results = [r for r in results if r.data.get(order_by) is not None]
            results.sort(key=lambda r: (r.data[order_by], r.id), reverse=descending)
        else:
            results.sort(key=lambda r: r.id)
        return results[:limit] if limit else results

    def get_document(self, path):
        self._check_document_path(path)
        with self._lock:
            data = self._docs.get(path)
            return copy.deepcopy(data) if data is not None else None

    def set_document(self, path, data, merge=False):
        self._check_document_path(path)
        data = DateTimeUtils.for_firestore(copy.deepcopy(data))
        with self._lock:
            if merge and path in self._docs:
                self._docs[path].update(data)
            else:
                self._docs[path] = data

    def update_document(self, path, data):
        self._check_document_path(path)
        with self._lock:
            if path not in self._docs:
                raise NotFoundError(f"문서를 찾을 수 없습니다: {path}")
            self._docs[path].update(DateTimeUtils.for_firestore(copy.deepcopy(data)))

    def delete_document(self, path):
        self._check_document_path(path)
        with self._lock:
            self._docs.pop(path, None)

    def increment_fields(self, path, deltas):
        self.commit_batch([WriteOp.increment(path, deltas)])

    def commit_batch(self, operations):
        with self._lock:
            for op in operations:
                self._check_document_path(op.path)
                if op.kind == 'increment' and op.path not in self._docs:
                    raise NotFoundError(f"문서를 찾을 수 없습니다: {op.path}")
                if op.kind not in ('set', 'delete', 'increment'):
                    raise ValueError(f"알 수 없는 쓰기 작업입니다: {op.kind}")
            for op in operations:
                if op.kind == 'set':
                    self._docs[op.path] = DateTimeUtils.for_firestore(copy.deepcopy(op.data))
                elif op.kind == 'delete':
                    self._docs.pop(op.path, None)
                else:
                    doc = self._docs[op.path]
                    for key, delta in op.data.items():
                        doc[key] = (doc.get(key) or 0) + delta

    def run_transaction(self, fn):
        # 락을 잡은 채로 읽고 쓰므로 다른 쓰기가 끼어들 수 없고, 재시도도 필요 없습니다.
        with self._lock:
            handle = _MemoryTransaction(self)
            result = fn(handle)
            if handle.operations:
                self.commit_batch(handle.operations)
            return result

    def generate_id(self, collection_path):
        return uuid.uuid4().hex

    def query_collection(self, path, filters=(), order_by=None, descending=False, limit=None):
        prefix = path.strip('/') + '/'
        with self._lock:
            candidates = [
                (doc_path, data) for doc_path, data in self._docs.items()
                if doc_path.startswith(prefix) and '/' not in doc_path[len(prefix):]
            ]
            return self._select(candidates, filters, order_by, descending, limit)

    def collection_group(self, name, filters=()):
        with self._lock:
            candidates = [
                (doc_path, data) for doc_path, data in self._docs.items()
                if doc_path.split('/')[-2] == name
            ]
            return self._select(candidates, filters)

    def count(self, path, filters=()):
        return len(self.query_collection(path, filters))


def build_document_store(config) -> DocumentStore:
    """설정값(DOCUMENT_STORE)에 맞는 저장소 구현체를 생성합니다."""
    kind = config.get('DOCUMENT_STORE', 'firestore')
    if kind == 'memory':
        logging.info("메모리 문서 저장소를 사용합니다.")
        return MemoryDocumentStore()
    if kind == 'firestore':
        return FirestoreDocumentStore()
    raise ValueError(f"지원하지 않는 DOCUMENT_STORE 값입니다: {kind}")
