"""Validation, reconciliation and batch orchestration services."""

from .key_audit import detect_deleted_keys, detect_missing_keys
from .orchestrator import sync_rows
from .reconciler import Reconciler, compute_diff
from .validator import RowValidator

__all__ = [
    "Reconciler",
    "RowValidator",
    "compute_diff",
    "detect_deleted_keys",
    "detect_missing_keys",
    "sync_rows",
]
