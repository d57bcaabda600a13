from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..mapping.email_gate import DEFAULT_DENYLIST
from ..models.config_models import (
    DatabaseConfig,
    DatePolicy,
    EmailDenylist,
    NaturalKeyConfig,
    PropertyConfig,
    SpecialFieldsConfig,
    SyncConfig,
    TablesConfig,
)

"""Config loader.

Responsibilities:
- Load YAML config/sync.yml
- Validate it against the bundled JSON schema (sync_config_schema.json)
- Apply defaults (timezone=UTC, date_policy=assume_future, 不明 placeholder)
- Check the mapping tables against field_types and fail at startup on any
  inconsistency; the mapping core never re-validates its configuration
"""

__all__ = [
    "ConfigError",
    "SCHEMA_PATH",
    "load_config",
    "build_config",
]

SCHEMA_PATH = Path(__file__).with_name("sync_config_schema.json")

# 物件側の既定列名
_DEFAULT_ADDRESS_FIELD = "property_address"
_DEFAULT_TYPE_FIELD = "property_type"


class ConfigError(Exception):
    pass


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against JSON schema.

    Raises:
        ConfigError: the schema file is missing or broken, or the data
            violates it (missing required keys, wrong types, unknown keys ...)
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")

    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        location = "/".join(str(p) for p in e.absolute_path) or "<root>"
        raise ConfigError(f"config validation failed at {location}: {e.message}") from e


def _build_property(raw: dict[str, Any] | None) -> PropertyConfig | None:
    if not raw:
        return None
    return PropertyConfig(
        owner_field=raw["owner_field"],
        address_column=raw["address_column"],
        address_field=raw.get("address_field", _DEFAULT_ADDRESS_FIELD),
        type_field=raw.get("type_field", _DEFAULT_TYPE_FIELD),
        type_columns=tuple(raw.get("type_columns", [])),
        type_codes=dict(raw.get("type_codes", {})),
        columns=dict(raw.get("columns", {})),
        numeric_fields=frozenset(raw.get("numeric_fields", [])),
    )


def _check_consistency(config: SyncConfig) -> None:
    """Fail loudly when the mapping tables reference undeclared fields."""
    declared = set(config.field_types)
    problems: list[str] = []

    def require_declared(fields: Any, origin: str) -> None:
        for f in fields:
            if f not in declared:
                problems.append(f"{origin}: field '{f}' is not declared in field_types")

    require_declared(config.spreadsheet_to_database.values(), "spreadsheet_to_database")
    require_declared(config.database_to_spreadsheet.keys(), "database_to_spreadsheet")
    require_declared(config.required_fields, "required_fields")
    require_declared(config.default_values.keys(), "default_values")

    special = config.special_fields
    named = [f for f in (special.name_field, special.email_field, special.phone_field) if f]
    require_declared(named, "special_fields")
    require_declared(special.currency_fields, "special_fields.currency_fields")
    require_declared(special.manual_overrides.keys(), "special_fields.manual_overrides")
    require_declared(special.manual_overrides.values(), "special_fields.manual_overrides")
    require_declared(special.field_precedence.keys(), "special_fields.field_precedence")
    require_declared(special.field_precedence.values(), "special_fields.field_precedence")

    for f in config.required_fields:
        if f not in config.database_to_spreadsheet:
            problems.append(f"required_fields: field '{f}' has no database_to_spreadsheet entry")

    key = config.natural_key
    if config.spreadsheet_to_database.get(key.column) != key.field:
        problems.append(
            f"natural_key: column '{key.column}' must map to '{key.field}' in spreadsheet_to_database"
        )

    for legacy, newer in special.field_precedence.items():
        if config.column_for(legacy) != config.column_for(newer):
            problems.append(
                f"field_precedence: '{legacy}' and '{newer}' must share one database_to_spreadsheet column"
            )

    if problems:
        raise ConfigError("config inconsistency: " + "; ".join(problems))


def build_config(data: dict[str, Any]) -> SyncConfig:
    """Validate a config mapping (already parsed) and build SyncConfig."""
    _validate_config_schema(data)

    special_raw = data.get("special_fields", {})
    special = SpecialFieldsConfig(
        name_field=special_raw.get("name_field"),
        name_placeholder=special_raw.get("name_placeholder", "不明"),
        email_field=special_raw.get("email_field"),
        phone_field=special_raw.get("phone_field"),
        currency_fields=frozenset(special_raw.get("currency_fields", [])),
        currency_scale=special_raw.get("currency_scale", 10000),
        manual_overrides=dict(special_raw.get("manual_overrides", {})),
        field_precedence=dict(special_raw.get("field_precedence", {})),
    )

    deny_raw = data.get("email_denylist")
    if deny_raw is None:
        denylist = DEFAULT_DENYLIST
    else:
        denylist = EmailDenylist(
            exact=frozenset(deny_raw.get("exact", [])),
            substrings=tuple(deny_raw.get("substrings", [])),
        )

    key_raw = data["natural_key"]
    db_raw = data.get("database") or {}
    config = SyncConfig(
        natural_key=NaturalKeyConfig(
            field=key_raw["field"],
            column=key_raw["column"],
            prefix=key_raw.get("prefix", ""),
        ),
        spreadsheet_to_database=dict(data["spreadsheet_to_database"]),
        database_to_spreadsheet=dict(data["database_to_spreadsheet"]),
        field_types=dict(data["field_types"]),
        required_fields=tuple(data["required_fields"]),
        special_fields=special,
        email_denylist=denylist,
        property=_build_property(data.get("property")),
        tables=TablesConfig(**data.get("tables", {})),
        default_values=dict(data.get("default_values", {})),
        date_policy=DatePolicy(data.get("date_policy", DatePolicy.ASSUME_FUTURE.value)),
        timezone=data.get("timezone", "UTC"),
        database=DatabaseConfig(
            host=db_raw.get("host"),
            port=db_raw.get("port"),
            user=db_raw.get("user"),
            password=db_raw.get("password"),
            database=db_raw.get("database"),
            dsn=db_raw.get("dsn"),
        ),
    )
    _check_consistency(config)
    return config


def load_config(path: Path) -> SyncConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"config root must be a mapping: {path}")
    return build_config(data)
