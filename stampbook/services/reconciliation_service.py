# stampbook/services/reconciliation_service.py
"""
비정규화 카운터 보정 작업.

- 팔로워/팔로잉 수: users/{uid}의 followerCount/followingCount를
  following 서브컬렉션(관계 문서)에서 다시 계산한 값과 비교해 덮어씁니다.
- 좋아요/댓글 수: users/{uid}/collected_stamps/{stampId}의 likeCount/commentCount를
  likes/comments 컬렉션의 postId 집계와 비교해 덮어씁니다.

두 작업 모두 원격 저장소만 다루며, 값이 이미 맞으면 아무것도 쓰지 않습니다(멱등).
"""
import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from stampbook.core.errors import StampbookError
from stampbook.models.post import make_post_id
from stampbook.services.document_store import DocumentStore
from stampbook.services.firebase_service import collected_stamp_path

FOLLOWER_JOB = 'followers'
LIKE_COMMENT_JOB = 'likes-comments'


@dataclass
class CountDiscrepancy:
    """저장된 카운터와 실제 값이 다른 항목 한 건."""
    user_id: str
    field: str
    stored: int
    actual: int
    username: Optional[str] = None
    post_id: Optional[str] = None

    @property
    def delta(self) -> int:
        return self.actual - self.stored

    def to_dict(self) -> Dict[str, Any]:
        return {
            'user_id': self.user_id,
            'username': self.username,
            'post_id': self.post_id,
            'field': self.field,
            'stored': self.stored,
            'actual': self.actual,
            'delta': self.delta,
        }

    def describe(self) -> str:
        target = self.post_id or self.username or self.user_id
        return f"{target} {self.field}: stored={self.stored}, actual={self.actual}, diff={self.delta:+d}"


@dataclass
class ReconciliationReport:
    job: str
    dry_run: bool
    checked: int = 0
    fixed: int = 0
    failed: int = 0
    duration_seconds: float = 0.0
    discrepancies: List[CountDiscrepancy] = field(default_factory=list)

    @property
    def drifted(self) -> int:
        """카운터가 하나라도 어긋난 대상(사용자 또는 게시물)의 수."""
        return len({(d.user_id, d.post_id) for d in self.discrepancies})

    @property
    def health_score(self) -> float:
        if self.checked == 0:
            return 100.0
        return round((self.checked - self.drifted) / self.checked * 100, 1)

    @property
    def health_label(self) -> str:
        score = self.health_score
        if score >= 99:
            return 'excellent'
        if score >= 95:
            return 'good'
        if score >= 90:
            return 'fair'
        return 'needs attention'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'job': self.job,
            'dry_run': self.dry_run,
            'checked': self.checked,
            'drifted': self.drifted,
            'fixed': self.fixed,
            'failed': self.failed,
            'duration_seconds': self.duration_seconds,
            'health_score': self.health_score,
            'health_label': self.health_label,
            'discrepancies': [d.to_dict() for d in self.discrepancies],
        }


class ReconciliationService:
    """DocumentStore를 직접 다루는 오프라인 보정 작업 모음."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def reconcile_follower_counts(self, dry_run: bool = False) -> ReconciliationReport:
        """
        모든 사용자의 followerCount/followingCount를 관계 문서에서 다시 계산합니다.
        팔로워 수는 'following' 컬렉션 그룹을 한 번만 훑어 사용자별로 집계합니다.
        """
        started = time.monotonic()
        report = ReconciliationReport(job=FOLLOWER_JOB, dry_run=dry_run)
        users = self.store.query_collection('users')
        follower_tally = Counter(
            doc.data.get('id') for doc in self.store.collection_group('following') if doc.data.get('id')
        )
        logging.info(f"[{FOLLOWER_JOB}] 사용자 {len(users)}명 검사 시작 (dry_run: {dry_run})")

        for user in users:
            report.checked += 1
            user_id = user.id
            username = user.data.get('username') or user_id
            actual = {
                'followerCount': follower_tally.get(user_id, 0),
                'followingCount': self.store.count(f"users/{user_id}/following"),
            }
            found = [
                CountDiscrepancy(user_id, name, int(user.data.get(name) or 0), value, username=username)
                for name, value in actual.items() if int(user.data.get(name) or 0) != value
            ]
            if not found:
                continue
            for discrepancy in found:
                logging.warning(f"[{FOLLOWER_JOB}] 불일치: {discrepancy.describe()}")
            report.discrepancies.extend(found)
            if not dry_run:
                self._apply_fix(report, f"users/{user_id}", {d.field: d.actual for d in found})

        report.duration_seconds = round(time.monotonic() - started, 2)
        self._log_summary(report)
        return report

    def reconcile_like_comment_counts(self, dry_run: bool = True) -> ReconciliationReport:
        """모든 게시물(수집 기록)의 likeCount/commentCount를 likes/comments 문서 수로 다시 계산합니다."""
        started = time.monotonic()
        report = ReconciliationReport(job=LIKE_COMMENT_JOB, dry_run=dry_run)
        like_tally = Counter(doc.data.get('postId') for doc in self.store.query_collection('likes'))
        comment_tally = Counter(doc.data.get('postId') for doc in self.store.query_collection('comments'))
        users = self.store.query_collection('users')
        logging.info(f"[{LIKE_COMMENT_JOB}] 사용자 {len(users)}명의 게시물 검사 시작 (dry_run: {dry_run})")

        for user in users:
            user_id = user.id
            username = user.data.get('username') or user_id
            for post in self.store.query_collection(f"users/{user_id}/collected_stamps"):
                report.checked += 1
                post_id = make_post_id(user_id, post.id)
                actual = {
                    'likeCount': like_tally.get(post_id, 0),
                    'commentCount': comment_tally.get(post_id, 0),
                }
                found = [
                    CountDiscrepancy(user_id, name, int(post.data.get(name) or 0), value,
                                     username=username, post_id=post_id)
                    for name, value in actual.items() if int(post.data.get(name) or 0) != value
                ]
                if not found:
                    continue
                for discrepancy in found:
                    logging.warning(f"[{LIKE_COMMENT_JOB}] 불일치: {discrepancy.describe()}")
                report.discrepancies.extend(found)
                if not dry_run:
                    self._apply_fix(report, collected_stamp_path(user_id, post.id), {d.field: d.actual for d in found})

        report.duration_seconds = round(time.monotonic() - started, 2)
        self._log_summary(report)
        return report

    def _apply_fix(self, report: ReconciliationReport, path: str, updates: Dict[str, int]) -> None:
        try:
            self.store.update_document(path, updates)
            report.fixed += 1
            logging.info(f"[{report.job}] 보정 완료: {path} {updates}")
        except StampbookError as e:
            report.failed += 1
            logging.error(f"[{report.job}] 보정 실패: {path} - {e.message}")

    def _log_summary(self, report: ReconciliationReport) -> None:
        logging.info(
            f"[{report.job}] 검사 {report.checked}건, 불일치 {report.drifted}건, 보정 {report.fixed}건, "
            f"실패 {report.failed}건, 소요 {report.duration_seconds}s, 정확도 {report.health_score}% ({report.health_label})"
        )
