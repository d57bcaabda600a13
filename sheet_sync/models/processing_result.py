from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from .sync_decision import SyncAction

"""Processing result models for a sync run.

RecordOutcome tracks what happened to a single row; SyncSummary aggregates the
counts printed on the SUMMARY line. A run always finishes and produces one.
"""

__all__ = [
    "RecordOutcome",
    "SyncSummary",
    "SummaryAccumulator",
]


@dataclass(frozen=True)
class RecordOutcome:
    """Per-row result (internal helper for SyncSummary)."""
    natural_key: str
    row: int
    action: str  # create/update/noop/skipped/error
    changed_fields: tuple[str, ...] = ()
    property_action: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class SyncSummary:
    total_rows: int
    created: int
    updated: int
    skipped: int  # noop + キー無し行
    errors: int
    properties_created: int
    properties_updated: int
    property_errors: int  # 物件同期失敗 (売主側は成功扱い)
    missing_keys: int  # シートにあって DB に無い (同期後)
    deleted_keys: int  # DB にあってシートに無い
    start_time: datetime
    end_time: datetime
    elapsed_seconds: float
    outcomes: list[RecordOutcome] | None = None

    @property
    def has_errors(self) -> bool:
        return self.errors > 0 or self.property_errors > 0


class SummaryAccumulator:
    """Mutable counter used by the orchestrator while iterating rows."""

    def __init__(self) -> None:
        self.outcomes: list[RecordOutcome] = []
        self.created = 0
        self.updated = 0
        self.skipped = 0
        self.errors = 0
        self.properties_created = 0
        self.properties_updated = 0
        self.property_errors = 0

    def add(self, outcome: RecordOutcome) -> None:
        self.outcomes.append(outcome)
        if outcome.action == SyncAction.CREATE.value:
            self.created += 1
        elif outcome.action == SyncAction.UPDATE.value:
            self.updated += 1
        elif outcome.action == "error":
            self.errors += 1
        else:
            self.skipped += 1
        if outcome.property_action == SyncAction.CREATE.value:
            self.properties_created += 1
        elif outcome.property_action == SyncAction.UPDATE.value:
            self.properties_updated += 1
        elif outcome.property_action == "error":
            self.property_errors += 1

    def build(
        self,
        start_time: datetime,
        end_time: datetime,
        missing_keys: int = 0,
        deleted_keys: int = 0,
    ) -> SyncSummary:
        return SyncSummary(
            total_rows=len(self.outcomes),
            created=self.created,
            updated=self.updated,
            skipped=self.skipped,
            errors=self.errors,
            properties_created=self.properties_created,
            properties_updated=self.properties_updated,
            property_errors=self.property_errors,
            missing_keys=missing_keys,
            deleted_keys=deleted_keys,
            start_time=start_time,
            end_time=end_time,
            elapsed_seconds=(end_time - start_time).total_seconds(),
            outcomes=list(self.outcomes),
        )
