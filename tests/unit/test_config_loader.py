from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from sheet_sync.config.loader import ConfigError, build_config, load_config
from sheet_sync.models.config_models import DatePolicy


def _rewrite(path: Path, mutate) -> None:
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    mutate(data)
    path.write_text(yaml.safe_dump(data, allow_unicode=True), encoding="utf-8")


def test_load_config_success(write_config: Path):
    cfg = load_config(write_config)
    assert cfg.natural_key.field == "seller_number"
    assert cfg.natural_key.prefix == "AA"
    assert cfg.timezone == "Asia/Tokyo"
    assert cfg.date_policy is DatePolicy.ASSUME_FUTURE
    assert cfg.spreadsheet_to_database["電話番号\nハイフン不要"] == "phone_number"
    assert cfg.special_fields.manual_overrides["manual_valuation_amount_1"] == "valuation_amount_1"
    assert cfg.property.type_codes["マ"] == "マンション"
    assert cfg.property.type_columns == ("物件種別", "種別")
    assert cfg.tables.primary == "sellers"
    assert "なし" in cfg.email_denylist.exact


def test_defaults_applied(write_config: Path):
    def strip_optional(data):
        for key in ("timezone", "date_policy", "email_denylist", "tables", "database"):
            data.pop(key)

    _rewrite(write_config, strip_optional)
    cfg = load_config(write_config)
    assert cfg.timezone == "UTC"
    assert cfg.date_policy is DatePolicy.ASSUME_FUTURE
    assert cfg.tables.secondary == "properties"
    assert "アドレス" in cfg.email_denylist.substrings
    assert cfg.database.host is None


def test_load_config_missing_file(temp_workdir: Path):
    with pytest.raises(ConfigError, match="not found"):
        load_config(temp_workdir / "config" / "not_exists.yml")


def test_load_config_invalid_yaml(write_config: Path):
    write_config.write_text("natural_key: [unclosed", encoding="utf-8")
    with pytest.raises(ConfigError, match="invalid yaml"):
        load_config(write_config)


def test_load_config_missing_required(write_config: Path):
    _rewrite(write_config, lambda d: d.pop("field_types"))
    with pytest.raises(ConfigError) as e:
        load_config(write_config)
    assert "config validation failed" in str(e.value) and "required property" in str(e.value)


def test_load_config_extra_field(write_config: Path):
    _rewrite(write_config, lambda d: d.update(extra_field="not_allowed"))
    with pytest.raises(ConfigError, match="config validation failed"):
        load_config(write_config)


def test_unknown_field_type_rejected(write_config: Path):
    _rewrite(write_config, lambda d: d["field_types"].update(name="text"))
    with pytest.raises(ConfigError, match="field_types/name"):
        load_config(write_config)


def test_unknown_date_policy_rejected(write_config: Path):
    _rewrite(write_config, lambda d: d.update(date_policy="guess"))
    with pytest.raises(ConfigError):
        load_config(write_config)


def test_mapping_to_undeclared_field_fails_at_startup(write_config: Path):
    _rewrite(write_config, lambda d: d["spreadsheet_to_database"].update({"備考": "memo"}))
    with pytest.raises(ConfigError, match="'memo' is not declared"):
        load_config(write_config)


def test_required_field_without_reverse_entry(write_config: Path):
    _rewrite(write_config, lambda d: d["database_to_spreadsheet"].pop("name"))
    with pytest.raises(ConfigError, match="no database_to_spreadsheet entry"):
        load_config(write_config)


def test_natural_key_column_must_be_mapped(write_config: Path):
    _rewrite(write_config, lambda d: d["natural_key"].update(column="管理番号"))
    with pytest.raises(ConfigError, match="natural_key"):
        load_config(write_config)


def test_precedence_pair_must_share_column(write_config: Path):
    _rewrite(write_config, lambda d: d["database_to_spreadsheet"].update(is_unreachable="不通フラグ"))
    with pytest.raises(ConfigError, match="field_precedence"):
        load_config(write_config)


def test_all_problems_reported_together(write_config: Path):
    def break_twice(d):
        d["required_fields"].append("ghost")
        d["default_values"]["phantom"] = 1

    _rewrite(write_config, break_twice)
    with pytest.raises(ConfigError) as e:
        load_config(write_config)
    assert "ghost" in str(e.value) and "phantom" in str(e.value)


def test_build_config_from_mapping():
    cfg = build_config(
        {
            "natural_key": {"field": "id_no", "column": "番号"},
            "spreadsheet_to_database": {"番号": "id_no"},
            "database_to_spreadsheet": {"id_no": "番号"},
            "field_types": {"id_no": "string"},
            "required_fields": ["id_no"],
        }
    )
    assert cfg.property is None
    assert cfg.natural_key.prefix == ""
    assert cfg.persisted_fields == ["id_no"]
