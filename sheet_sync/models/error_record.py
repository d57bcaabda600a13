from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord model for per-record error logging.

This module defines the ErrorRecord dataclass used for structured error logging
during a sync run. Each entry identifies the failing record by its natural key
(e.g. seller number) so a batch can continue and still be audited afterwards.
row=-1 is the sentinel for errors that cannot be tied to a sheet row.
"""

__all__ = [
    "ErrorRecord",
    "VALIDATION_ERROR",
    "PERSISTENCE_ERROR",
    "PROPERTY_SYNC_ERROR",
]

VALIDATION_ERROR = "VALIDATION_ERROR"
PERSISTENCE_ERROR = "PERSISTENCE_ERROR"
PROPERTY_SYNC_ERROR = "PROPERTY_SYNC_ERROR"


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        sheet: Sheet name the row was read from
        row: Row number (1-based). Use -1 when the row is unknown
        natural_key: Business identifier of the record (may be empty)
        error_type: Error classification in UPPER_SNAKE_CASE format
        message: Underlying error message
    """
    timestamp: str  # ISO8601 UTC
    sheet: str
    row: int  # 行番号。不明な場合 -1 許容
    natural_key: str
    error_type: str  # UPPER_SNAKE
    message: str

    @staticmethod
    def create(sheet: str, row: int, natural_key: object, error_type: str, message: str) -> ErrorRecord:
        """Create a new ErrorRecord with current UTC timestamp."""
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            sheet=sheet,
            row=row,
            natural_key="" if natural_key is None else str(natural_key),
            error_type=error_type,
            message=message,
        )

    def to_json_line(self) -> str:
        """Serialize ErrorRecord to JSON Lines format (no extra keys)."""
        return json.dumps(asdict(self), ensure_ascii=False)
