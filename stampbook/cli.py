# stampbook/cli.py
"""
카운터 보정 작업 실행기.

사용법:
    python scripts/reconcile_counts.py followers [--dry-run]
    python scripts/reconcile_counts.py likes-comments [--fix]

followers 작업은 기본적으로 불일치를 바로 고치고, likes-comments 작업은
기본적으로 보고만 합니다(--fix를 붙여야 고칩니다).
"""
import argparse
import json
import logging
import os
import sys
from typing import List, Optional

from stampbook import init_firebase
from stampbook.core.config import config_by_name
from stampbook.services.document_store import DocumentStore, build_document_store
from stampbook.services.reconciliation_service import (
    FOLLOWER_JOB, LIKE_COMMENT_JOB, ReconciliationReport, ReconciliationService
)


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="비정규화 카운터(팔로워/팔로잉, 좋아요/댓글 수)를 보정합니다.")
    subparsers = parser.add_subparsers(dest="job", required=True)

    followers = subparsers.add_parser(FOLLOWER_JOB, help="followerCount/followingCount 보정")
    followers.add_argument("--dry-run", action="store_true", help="불일치를 보고만 하고 고치지 않습니다.")

    likes = subparsers.add_parser(LIKE_COMMENT_JOB, help="likeCount/commentCount 보정 (기본: 보고만)")
    likes.add_argument("--fix", action="store_true", help="불일치를 실제로 고칩니다.")

    for sub in (followers, likes):
        sub.add_argument("--env", default=os.getenv('FLASK_ENV', 'production'),
                         choices=sorted(config_by_name), help="사용할 설정 이름")
        sub.add_argument("--json", action="store_true", help="보고서를 JSON으로 출력합니다.")
    return parser.parse_args(argv)


def _print_report(report: ReconciliationReport, as_json: bool) -> None:
    if as_json:
        print(json.dumps(report.to_dict(), ensure_ascii=False, indent=2))
        return
    mode = "DRY RUN (보고만)" if report.dry_run else "FIX"
    print("=" * 60)
    print(f"{report.job} 보정 결과 [{mode}]")
    print("=" * 60)
    for discrepancy in report.discrepancies:
        print(f"  - {discrepancy.describe()}")
    print(f"검사: {report.checked}건 / 불일치: {report.drifted}건 / 보정: {report.fixed}건 / 실패: {report.failed}건")
    print(f"소요 시간: {report.duration_seconds}s")
    print(f"정확도: {report.health_score}% ({report.health_label})")


def main(argv: Optional[List[str]] = None, store: Optional[DocumentStore] = None) -> int:
    args = _parse_args(argv)
    if not logging.getLogger().handlers:
        logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s: %(message)s')
    try:
        if store is None:
            config = config_by_name[args.env]
            settings = {'DOCUMENT_STORE': config.DOCUMENT_STORE}
            if config.DOCUMENT_STORE == 'firestore':
                # Flask 앱 없이 실행되므로 Firebase 초기화만 따로 합니다.
                init_firebase(config.FIREBASE_CREDENTIALS_PATH)
            store = build_document_store(settings)
        service = ReconciliationService(store)
        if args.job == FOLLOWER_JOB:
            report = service.reconcile_follower_counts(dry_run=args.dry_run)
        else:
            report = service.reconcile_like_comment_counts(dry_run=not args.fix)
    except Exception as e:
        logging.error(f"보정 작업 실패 ({args.job}): {e}", exc_info=True)
        return 1
    _print_report(report, args.json)
    return 0


if __name__ == "__main__":
    sys.exit(main())
