from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

"""Reconciliation result models.

Diff entries and decisions are transient: they are computed on every pass and
never persisted as their own entity.
"""

__all__ = [
    "SyncAction",
    "DiffEntry",
    "SyncDecision",
]


class SyncAction(Enum):
    CREATE = "create"
    UPDATE = "update"
    NOOP = "noop"


@dataclass(frozen=True)
class DiffEntry:
    """A single field-level discrepancy between store and sheet."""
    field: str
    previous_value: Any
    new_value: Any


@dataclass(frozen=True)
class SyncDecision:
    """Outcome of reconciling one external record against the store.

    payload holds the full mapped record for CREATE, only the changed fields
    for UPDATE, and nothing for NOOP.
    """
    action: SyncAction
    natural_key: Any
    payload: dict[str, Any] = field(default_factory=dict)
    diffs: list[DiffEntry] = field(default_factory=list)
    existing_id: Any = None  # UPDATE/NOOP 時の既存レコード ID

    @property
    def changed_fields(self) -> list[str]:
        return [d.field for d in self.diffs]
