# Shared pytest fixtures
from __future__ import annotations

import tempfile
from datetime import date
from pathlib import Path

import pytest

from sheet_sync.config.loader import load_config
from sheet_sync.db.record_store import InMemoryRecordStore
from sheet_sync.logging.init import reset_logging
from sheet_sync.models.config_models import SyncConfig

PROJECT_ROOT = Path(__file__).resolve().parents[1]
REPO_CONFIG = PROJECT_ROOT / "config" / "sync.yml"

# 次電日などの年なし日付の基準日 (テスト固定)
FIXED_TODAY = date(2024, 6, 15)


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return REPO_CONFIG.read_text(encoding="utf-8")


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "sync.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def sync_config() -> SyncConfig:
    return load_config(REPO_CONFIG)


@pytest.fixture()
def memory_store(sync_config: SyncConfig) -> InMemoryRecordStore:
    return InMemoryRecordStore(sync_config)


@pytest.fixture()
def seller_row() -> dict[str, object]:
    """A fully filled seller row as exported from the sheet (labels verbatim)."""
    return {
        "売主番号": "AA100",
        "名前(漢字のみ）": "山田太郎",
        "依頼者住所(物件所在と異なる場合）": "大分県大分市中央町1-1",
        "電話番号\nハイフン不要": "09012345678",
        "メールアドレス": "taro@example.com",
        "サイト": "ウ",
        "反響日付": "2024-03-15",
        "査定額1（自動計算）v": "500",
        "査定額2（自動計算）v": "600",
        "査定額3（自動計算）v": "",
        "訪問日 Y/M/D": "2024/04/01",
        "状況（当社）": "追客中",
        "コメント": "初回訪問済",
        "不通": "",
        "次電日": "2024-07-01",
        "確度": "A",
        "物件所在地": "大分県別府市北浜2-2",
        "物件種別": "戸",
        "土（㎡）": "165.5",
        "建（㎡）": "98",
        "築年": "1995",
        "構造": "木造",
        "間取り": "4LDK",
    }


@pytest.fixture(autouse=True)
def _reset_logging_state():
    reset_logging()
    yield
    reset_logging()
