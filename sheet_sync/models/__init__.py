"""Domain models for the seller sheet -> PostgreSQL sync.

This package contains the typed rows, configuration, decisions and results
passed between the mapping core and the batch orchestrator.
"""

from .config_models import DatePolicy, SyncConfig
from .error_record import ErrorRecord
from .processing_result import RecordOutcome, SyncSummary
from .row_data import Cell, CellKind, SheetRow
from .sync_decision import DiffEntry, SyncAction, SyncDecision
from .validation_result import ValidationResult

__all__ = [
    # Configuration models
    "DatePolicy",
    "SyncConfig",
    # Row models
    "Cell",
    "CellKind",
    "SheetRow",
    # Reconciliation models
    "DiffEntry",
    "SyncAction",
    "SyncDecision",
    "ValidationResult",
    # Result models
    "ErrorRecord",
    "RecordOutcome",
    "SyncSummary",
]
