from __future__ import annotations

import json
from dataclasses import replace
from datetime import date
from pathlib import Path
from unittest.mock import MagicMock

from sheet_sync.db.record_store import InMemoryRecordStore, RecordStoreError
from sheet_sync.logging.error_log import ErrorLogBuffer
from sheet_sync.models.processing_result import SyncSummary
from sheet_sync.models.row_data import SheetRow
from sheet_sync.services.orchestrator import sync_rows

TODAY = date(2024, 6, 15)


class FailingStore(InMemoryRecordStore):
    """Rejects writes for selected natural keys / owners."""

    def __init__(self, config, fail_keys=(), fail_property_owner_keys=()):
        super().__init__(config)
        self.fail_keys = set(fail_keys)
        self.fail_property_owner_keys = set(fail_property_owner_keys)

    def insert_primary(self, record):
        if record.get("seller_number") in self.fail_keys:
            raise RecordStoreError(f"duplicate key value: {record['seller_number']}")
        return super().insert_primary(record)

    def insert_secondary(self, entity):
        owner = self.primary[entity["seller_id"]]["seller_number"]
        if owner in self.fail_property_owner_keys:
            raise RecordStoreError("properties insert rejected")
        return super().insert_secondary(entity)


def _row(key, **extra):
    values = {"売主番号": key, "名前(漢字のみ）": f"売主{key}", "物件所在地": f"別府市{key}"}
    values.update(extra)
    return values


def test_empty_input(sync_config, memory_store):
    summary = sync_rows([], memory_store, sync_config, today=TODAY, error_log=ErrorLogBuffer())
    assert isinstance(summary, SyncSummary)
    assert summary.total_rows == 0
    assert summary.has_errors is False
    assert summary.elapsed_seconds >= 0


def test_creates_seller_and_property(sync_config, memory_store, seller_row):
    summary = sync_rows([seller_row], memory_store, sync_config, today=TODAY, error_log=ErrorLogBuffer())
    assert summary.created == 1
    assert summary.properties_created == 1
    stored = memory_store.find_by_natural_key("AA100")
    assert stored["valuation_amount_1"] == 5000000
    prop = memory_store.find_secondary_by_owner(stored["id"])
    assert prop["property_type"] == "戸建"


def test_rows_without_valid_key_are_skipped(sync_config, memory_store):
    rows = [_row(""), _row("メモ行"), _row(None), _row("AA1")]
    summary = sync_rows(rows, memory_store, sync_config, today=TODAY, error_log=ErrorLogBuffer())
    assert summary.skipped == 3
    assert summary.created == 1
    assert summary.errors == 0


def test_validation_error_is_not_persisted(sync_config, memory_store):
    buf = ErrorLogBuffer()
    rows = [_row("AA1", **{"電話番号\nハイフン不要": "電話なし"}), _row("AA2")]
    summary = sync_rows(rows, memory_store, sync_config, today=TODAY, sheet="売主リスト", error_log=buf)
    assert summary.errors == 1
    assert summary.created == 1
    assert memory_store.find_by_natural_key("AA1") is None
    [record] = buf.records
    assert record.error_type == "VALIDATION_ERROR"
    assert record.natural_key == "AA1"
    assert record.sheet == "売主リスト"


def test_persistence_failure_does_not_stop_batch(sync_config):
    store = FailingStore(sync_config, fail_keys={"AA2"})
    buf = ErrorLogBuffer()
    rows = [_row("AA1"), _row("AA2"), _row("AA3")]
    summary = sync_rows(rows, store, sync_config, today=TODAY, error_log=buf)
    assert summary.created == 2
    assert summary.errors == 1
    assert store.list_natural_keys() == {"AA1", "AA3"}
    # 失敗行はシートにあって DB に無いキーとして検出される
    assert summary.missing_keys == 1
    [record] = buf.records
    assert record.error_type == "PERSISTENCE_ERROR"
    assert "duplicate key" in record.message
    failed = [o for o in summary.outcomes if o.action == "error"]
    assert failed[0].natural_key == "AA2"


def test_property_failure_keeps_seller(sync_config):
    store = FailingStore(sync_config, fail_property_owner_keys={"AA1"})
    buf = ErrorLogBuffer()
    summary = sync_rows([_row("AA1")], store, sync_config, today=TODAY, error_log=buf)
    assert summary.created == 1
    assert summary.errors == 0
    assert summary.property_errors == 1
    assert summary.has_errors
    assert store.find_by_natural_key("AA1") is not None
    assert buf.records[0].error_type == "PROPERTY_SYNC_ERROR"


def test_no_property_without_address(sync_config, memory_store):
    summary = sync_rows([_row("AA1", 物件所在地="")], memory_store, sync_config, today=TODAY, error_log=ErrorLogBuffer())
    assert summary.created == 1
    assert summary.properties_created == 0
    assert memory_store.secondary == {}


def test_dry_run_writes_nothing(sync_config):
    store = MagicMock()
    store.find_by_natural_key.return_value = None
    store.list_natural_keys.return_value = set()
    summary = sync_rows([_row("AA1"), _row("AA2")], store, sync_config, today=TODAY, dry_run=True, error_log=ErrorLogBuffer())
    assert summary.created == 2
    assert summary.properties_created == 2
    store.insert_primary.assert_not_called()
    store.update_primary.assert_not_called()
    store.insert_secondary.assert_not_called()
    store.transaction.assert_not_called()


def test_update_counts_and_changed_fields(sync_config, memory_store):
    sync_rows([_row("AA1", コメント="a")], memory_store, sync_config, today=TODAY, error_log=ErrorLogBuffer())
    summary = sync_rows([_row("AA1", コメント="b")], memory_store, sync_config, today=TODAY, error_log=ErrorLogBuffer())
    assert summary.updated == 1
    assert summary.outcomes[0].changed_fields == ("comments",)
    assert memory_store.find_by_natural_key("AA1")["comments"] == "b"


def test_deleted_keys_detected_not_deleted(sync_config):
    store = InMemoryRecordStore(sync_config, primary=[{"seller_number": "AA9", "name": "旧"}])
    summary = sync_rows([_row("AA1")], store, sync_config, today=TODAY, error_log=ErrorLogBuffer())
    assert summary.deleted_keys == 1
    assert store.find_by_natural_key("AA9") is not None


def test_row_numbers_reported(sync_config, memory_store):
    buf = ErrorLogBuffer()
    rows = [SheetRow.from_mapping(_row("AA1", **{"査定額1": "x"}), row_number=12)]
    sync_rows(rows, memory_store, sync_config, today=TODAY, error_log=buf)
    assert buf.records[0].row == 12


def test_error_log_flushed_when_not_supplied(sync_config, temp_workdir: Path):
    store = FailingStore(sync_config, fail_keys={"AA1"})
    sync_rows([_row("AA1")], store, sync_config, today=TODAY)
    files = list((temp_workdir / "logs").glob("errors-*.log"))
    assert len(files) == 1
    entry = json.loads(files[0].read_text(encoding="utf-8").strip())
    assert entry["natural_key"] == "AA1"
    assert entry["error_type"] == "PERSISTENCE_ERROR"


def test_numeric_key_cells_are_synced_as_text(sync_config):
    # 接頭辞なし運用: xlsx では 12345 が float で届く
    config = replace(sync_config, natural_key=replace(sync_config.natural_key, prefix=""))
    store = InMemoryRecordStore(config)
    fixed = {"名前(漢字のみ）": "山田", "物件所在地": "別府市1"}

    first = sync_rows([_row(12345.0, **fixed)], store, config, today=TODAY, error_log=ErrorLogBuffer())
    assert (first.created, first.skipped, first.errors) == (1, 0, 0)
    assert store.list_natural_keys() == {"12345"}
    assert first.missing_keys == 0

    second = sync_rows([_row(12345, **fixed)], store, config, today=TODAY, error_log=ErrorLogBuffer())
    assert (second.created, second.updated, second.skipped) == (0, 0, 1)
    assert second.deleted_keys == 0
