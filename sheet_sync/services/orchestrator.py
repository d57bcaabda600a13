from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from contextlib import nullcontext
from datetime import UTC, date, datetime
from typing import Any

from ..convert.converters import natural_key_text
from ..db.record_store import RecordStore
from ..logging.error_log import ErrorLogBuffer
from ..mapping.field_mapper import FieldMapper, as_sheet_row
from ..mapping.property_extractor import PropertyExtractor
from ..models.config_models import SyncConfig
from ..models.error_record import (
    PERSISTENCE_ERROR,
    PROPERTY_SYNC_ERROR,
    VALIDATION_ERROR,
    ErrorRecord,
)
from ..models.processing_result import RecordOutcome, SummaryAccumulator, SyncSummary
from ..models.row_data import SheetRow
from ..models.sync_decision import SyncAction
from .key_audit import detect_deleted_keys, detect_missing_keys, is_valid_natural_key
from .progress import ProgressTracker
from .reconciler import Reconciler
from .validator import RowValidator

"""Batch orchestration: run every sheet row through the sync pipeline.

Per row: key check -> Validator -> Field Mapper -> Reconciler -> persist,
then Record Extractor -> Reconciler -> persist for the owned property.

- best effort: a failing row is recorded (ErrorRecord) and the next row runs
- one store transaction per record; the property gets its own transaction
  so a property failure never rolls back its seller
- dry_run computes every decision but issues no write
- after the loop the natural keys of sheet and store are compared
  (detection only, nothing is deleted)
"""

__all__ = [
    "sync_rows",
]

logger = logging.getLogger(__name__)

# 検出キーのログ出力上限
_AUDIT_LOG_LIMIT = 20


def _row_number(sheet_row: SheetRow, position: int) -> int:
    return sheet_row.row_number if sheet_row.row_number >= 0 else position


def sync_rows(
    rows: Iterable[SheetRow | Mapping[str, Any]],
    store: RecordStore,
    config: SyncConfig,
    *,
    today: date | None = None,
    dry_run: bool = False,
    sheet: str = "",
    error_log: ErrorLogBuffer | None = None,
) -> SyncSummary:
    """Sync all rows into the store and return the run summary.

    Args:
        rows: sheet rows in sheet order
        store: lookup / persist collaborator
        config: immutable mapping configuration
        today: reference date for year-less MM/DD cells (None = today in config.timezone)
        dry_run: decide only, never write
        sheet: sheet name recorded in ErrorRecords
        error_log: buffer for ErrorRecords; when omitted a buffer is created
            and flushed to logs/ at the end of the run

    Returns:
        SyncSummary with per-row outcomes; never raises for a single bad row.
    """
    start_time = datetime.now(UTC)
    owns_error_log = error_log is None
    errors = error_log if error_log is not None else ErrorLogBuffer()

    mapper = FieldMapper(config, today=today)
    validator = RowValidator(config)
    reconciler = Reconciler(config, mapper=mapper)
    extractor = PropertyExtractor(config.property) if config.property else None
    key_cfg = config.natural_key

    materialized = [as_sheet_row(r) for r in rows]
    acc = SummaryAccumulator()
    sheet_keys: list[str] = []

    def transaction() -> Any:
        return nullcontext() if dry_run else store.transaction()

    def fail(row_no: int, key: Any, error_type: str, message: str) -> None:
        logger.error("row=%d key=%s %s: %s", row_no, key, error_type, message)
        errors.append(ErrorRecord.create(sheet, row_no, key, error_type, message))

    with ProgressTracker(len(materialized)) as progress:
        for position, sheet_row in enumerate(materialized, start=1):
            row_no = _row_number(sheet_row, position)
            raw_key = sheet_row.raw(key_cfg.column)
            key = natural_key_text(raw_key)
            progress.start_row(key)
            try:
                if not is_valid_natural_key(key, key_cfg.prefix):
                    logger.debug("row=%d skipped: no valid %s (%r)", row_no, key_cfg.column, raw_key)
                    skipped_key = "" if raw_key is None else str(raw_key)
                    acc.add(RecordOutcome(natural_key=skipped_key, row=row_no, action="skipped"))
                    continue
                sheet_keys.append(key)

                validation = validator.validate(sheet_row)
                for warning in validation.warnings:
                    logger.warning("row=%d key=%s %s", row_no, key, warning)
                if not validation.is_valid:
                    message = "; ".join(validation.errors)
                    fail(row_no, key, VALIDATION_ERROR, message)
                    acc.add(RecordOutcome(natural_key=key, row=row_no, action="error", error=message))
                    continue

                mapped = mapper.map_to_internal(sheet_row)

                # 売主
                try:
                    with transaction():
                        existing = store.find_by_natural_key(key)
                        decision = reconciler.decide(mapped, existing)
                        owner_id = decision.existing_id
                        if not dry_run:
                            if decision.action is SyncAction.CREATE:
                                owner_id = store.insert_primary(decision.payload)
                            elif decision.action is SyncAction.UPDATE:
                                store.update_primary(key, decision.payload)
                except Exception as e:
                    fail(row_no, key, PERSISTENCE_ERROR, str(e))
                    acc.add(RecordOutcome(natural_key=key, row=row_no, action="error", error=str(e)))
                    continue

                if decision.action is SyncAction.UPDATE:
                    logger.debug("row=%d key=%s changed=%s", row_no, key, ",".join(decision.changed_fields))

                # 物件 (失敗しても売主側は成功扱い)
                property_action: str | None = None
                property_error: str | None = None
                if extractor is not None:
                    try:
                        with transaction():
                            entity = extractor.extract(sheet_row, owner_id)
                            existing_prop = (
                                store.find_secondary_by_owner(owner_id) if owner_id is not None else None
                            )
                            prop_decision = reconciler.decide_secondary(entity, existing_prop)
                            if not dry_run:
                                if prop_decision.action is SyncAction.CREATE:
                                    store.insert_secondary(prop_decision.payload)
                                elif prop_decision.action is SyncAction.UPDATE:
                                    store.update_secondary(prop_decision.existing_id, prop_decision.payload)
                        property_action = prop_decision.action.value
                    except Exception as e:
                        property_action = "error"
                        property_error = str(e)
                        fail(row_no, key, PROPERTY_SYNC_ERROR, property_error)

                acc.add(
                    RecordOutcome(
                        natural_key=key,
                        row=row_no,
                        action=decision.action.value,
                        changed_fields=tuple(decision.changed_fields),
                        property_action=property_action,
                        error=property_error,
                    )
                )
            finally:
                progress.set_postfix(created=acc.created, updated=acc.updated, errors=acc.errors)
                progress.finish_row()

    missing_count, deleted_count = _audit_keys(store, sheet_keys, key_cfg.prefix)

    if owns_error_log:
        try:
            error_log_path = errors.flush()
            if error_log_path is not None:
                logger.info("error log written: %s", error_log_path)
        except OSError:
            logger.warning("failed to write error log", exc_info=True)

    end_time = datetime.now(UTC)
    return acc.build(start_time, end_time, missing_keys=missing_count, deleted_keys=deleted_count)


def _audit_keys(store: RecordStore, sheet_keys: list[str], prefix: str) -> tuple[int, int]:
    try:
        store_keys = store.list_natural_keys()
    except Exception:
        logger.warning("natural key audit skipped: could not list store keys", exc_info=True)
        return 0, 0

    missing = detect_missing_keys(sheet_keys, store_keys, prefix)
    deleted = detect_deleted_keys(sheet_keys, store_keys, prefix)
    if missing:
        logger.warning(
            "keys in sheet but not in store: %d (%s)", len(missing), ",".join(missing[:_AUDIT_LOG_LIMIT])
        )
    if deleted:
        logger.warning(
            "keys in store but not in sheet: %d (%s)", len(deleted), ",".join(deleted[:_AUDIT_LOG_LIMIT])
        )
    return len(missing), len(deleted)
