from __future__ import annotations

import math
from collections.abc import Callable, Iterable, Mapping
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from ..mapping.field_mapper import FieldMapper
from ..models.config_models import SyncConfig
from ..models.row_data import SheetRow
from ..models.sync_decision import DiffEntry, SyncAction, SyncDecision

"""Reconciler: decide create / update / noop for one external record.

The sheet is authoritative for every field it carries. Comparison is by
normalised value, never by timestamp:
- None, missing and "" (after trimming) all collapse to one ABSENT sentinel
- numbers compare as Decimal so 5000000 == Decimal("5000000.00")
- date/datetime objects compare by their ISO text
An update payload carries only the changed fields, so columns that exist only
in the database are never touched.
"""

__all__ = [
    "ABSENT",
    "normalize_value",
    "compute_diff",
    "Reconciler",
]

RecordLookup = Callable[[Any], Mapping[str, Any] | None]


class _Absent:
    def __repr__(self) -> str:
        return "ABSENT"


ABSENT = _Absent()


def normalize_value(value: Any) -> Any:
    """Canonical comparison form of a store or mapped value."""
    if value is None:
        return ABSENT
    if isinstance(value, str):
        stripped = value.strip()
        return stripped if stripped else ABSENT
    if isinstance(value, bool):
        return value
    if isinstance(value, float) and not math.isfinite(value):
        return ABSENT
    if isinstance(value, (int, float, Decimal)):
        try:
            return Decimal(str(value)).normalize()
        except InvalidOperation:
            return ABSENT
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return value


def compute_diff(
    existing: Mapping[str, Any],
    incoming: Mapping[str, Any],
    fields: Iterable[str],
) -> list[DiffEntry]:
    """Field-level diff for the given fields (missing keys count as ABSENT)."""
    diffs: list[DiffEntry] = []
    for field in fields:
        previous = existing.get(field)
        new = incoming.get(field)
        if normalize_value(previous) != normalize_value(new):
            diffs.append(DiffEntry(field=field, previous_value=previous, new_value=new))
    return diffs


class Reconciler:
    """Compare freshly mapped records with what the store holds.

    compare_fields restricts the comparison (e.g. a targeted re-check of a few
    columns); by default every mapped field except the natural key is compared.
    """

    def __init__(
        self,
        config: SyncConfig,
        mapper: FieldMapper | None = None,
        compare_fields: Iterable[str] | None = None,
    ) -> None:
        self.config = config
        self.mapper = mapper or FieldMapper(config)
        self.compare_fields = list(compare_fields) if compare_fields is not None else None

    def reconcile(self, row: SheetRow | Mapping[str, Any], lookup: RecordLookup) -> SyncDecision:
        """Map the row, look up its counterpart by natural key and decide."""
        mapped = self.mapper.map_to_internal(row)
        existing = lookup(mapped.get(self.config.natural_key.field))
        return self.decide(mapped, existing)

    def decide(self, mapped: Mapping[str, Any], existing: Mapping[str, Any] | None) -> SyncDecision:
        key_field = self.config.natural_key.field
        natural_key = mapped.get(key_field)
        if existing is None:
            return SyncDecision(action=SyncAction.CREATE, natural_key=natural_key, payload=dict(mapped))

        fields = self.compare_fields
        if fields is None:
            fields = [f for f in mapped if f != key_field]
        diffs = compute_diff(existing, mapped, fields)
        existing_id = existing.get(self.config.tables.id_column)
        if not diffs:
            return SyncDecision(action=SyncAction.NOOP, natural_key=natural_key, existing_id=existing_id)
        return SyncDecision(
            action=SyncAction.UPDATE,
            natural_key=natural_key,
            payload={d.field: d.new_value for d in diffs},
            diffs=diffs,
            existing_id=existing_id,
        )

    def decide_secondary(
        self,
        entity: Mapping[str, Any] | None,
        existing: Mapping[str, Any] | None,
    ) -> SyncDecision:
        """Same decision for the owned property; no entity (no address) is always a noop."""
        prop = self.config.property
        owner_field = prop.owner_field if prop else None
        owner = entity.get(owner_field) if entity and owner_field else None
        existing_id = existing.get(self.config.tables.id_column) if existing else None

        if entity is None:
            return SyncDecision(action=SyncAction.NOOP, natural_key=owner, existing_id=existing_id)
        if existing is None:
            return SyncDecision(action=SyncAction.CREATE, natural_key=owner, payload=dict(entity))

        fields = [f for f in entity if f != owner_field]
        diffs = compute_diff(existing, entity, fields)
        if not diffs:
            return SyncDecision(action=SyncAction.NOOP, natural_key=owner, existing_id=existing_id)
        return SyncDecision(
            action=SyncAction.UPDATE,
            natural_key=owner,
            payload={d.field: d.new_value for d in diffs},
            diffs=diffs,
            existing_id=existing_id,
        )
