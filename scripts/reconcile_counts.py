#!/usr/bin/env python3
# scripts/reconcile_counts.py
"""
월간 카운터 보정 스크립트.

    python scripts/reconcile_counts.py followers [--dry-run]
    python scripts/reconcile_counts.py likes-comments [--fix]
"""
import sys

from stampbook.cli import main

if __name__ == "__main__":
    sys.exit(main())
