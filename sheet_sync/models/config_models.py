from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

"""Config dataclasses for the seller sheet -> PostgreSQL sync.

This module defines the typed view of config/sync.yml. The loader in
sheet_sync/config/loader.py builds these objects once per run; the mapping
core only ever receives them as parameters and treats them as immutable.
"""

__all__ = [
    "DatePolicy",
    "DatabaseConfig",
    "NaturalKeyConfig",
    "SpecialFieldsConfig",
    "EmailDenylist",
    "PropertyConfig",
    "TablesConfig",
    "SyncConfig",
    "FIELD_TYPES",
]

# 宣言可能な内部カラム型
FIELD_TYPES = frozenset({"string", "number", "date", "datetime", "boolean", "year_month"})


class DatePolicy(Enum):
    """How a bare MM/DD cell (no year) is resolved.

    - ASSUME_FUTURE: current year, or next year when the day already passed
      (callback dates such as 次電日 point forward)
    - ASSUME_CURRENT_YEAR: always the current year
    """
    ASSUME_FUTURE = "assume_future"
    ASSUME_CURRENT_YEAR = "assume_current_year"


@dataclass(frozen=True)
class DatabaseConfig:
    """Database connection configuration.

    Used as fallback when environment variables are not set.
    Environment variables take precedence over these values.
    """
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class NaturalKeyConfig:
    field: str  # 内部キー列 (seller_number)
    column: str  # シート列名 (売主番号)
    prefix: str = ""  # 有効キーの接頭辞 (AA)


@dataclass(frozen=True)
class EmailDenylist:
    exact: frozenset[str] = frozenset()
    substrings: tuple[str, ...] = ()


@dataclass(frozen=True)
class SpecialFieldsConfig:
    """Internal fields that get business-rule transforms instead of plain conversion."""
    name_field: str | None = None
    name_placeholder: str = "不明"
    email_field: str | None = None
    phone_field: str | None = None
    currency_fields: frozenset[str] = frozenset()
    currency_scale: int = 10000  # 万円 -> 円
    manual_overrides: dict[str, str] = field(default_factory=dict)  # manual -> automatic
    field_precedence: dict[str, str] = field(default_factory=dict)  # legacy -> newer


@dataclass(frozen=True)
class PropertyConfig:
    """Record Extractor settings for the property owned by a seller row."""
    owner_field: str
    address_column: str
    address_field: str
    type_field: str
    type_columns: tuple[str, ...] = ()
    type_codes: dict[str, str] = field(default_factory=dict)
    columns: dict[str, str] = field(default_factory=dict)  # シート列名 -> 物件カラム
    numeric_fields: frozenset[str] = frozenset()

    @property
    def fields(self) -> list[str]:
        """Property columns the extractor produces, in a stable order."""
        ordered = [self.address_field, self.type_field]
        for internal in self.columns.values():
            if internal not in ordered:
                ordered.append(internal)
        return ordered


@dataclass(frozen=True)
class TablesConfig:
    primary: str = "sellers"
    secondary: str = "properties"
    id_column: str = "id"
    created_at_column: str = "created_at"


@dataclass(frozen=True)
class SyncConfig:
    """Root configuration object for one sync run."""
    natural_key: NaturalKeyConfig
    spreadsheet_to_database: dict[str, str]  # シート列名 -> 内部カラム
    database_to_spreadsheet: dict[str, str]  # 内部カラム -> シート列名 (多対一可)
    field_types: dict[str, str]
    required_fields: tuple[str, ...]
    special_fields: SpecialFieldsConfig
    email_denylist: EmailDenylist
    property: PropertyConfig | None
    tables: TablesConfig = field(default_factory=TablesConfig)
    default_values: dict[str, object] = field(default_factory=dict)
    date_policy: DatePolicy = DatePolicy.ASSUME_FUTURE
    timezone: str = "UTC"
    database: DatabaseConfig = field(default_factory=DatabaseConfig)

    def field_type(self, internal_field: str) -> str | None:
        return self.field_types.get(internal_field)

    def column_for(self, internal_field: str) -> str | None:
        return self.database_to_spreadsheet.get(internal_field)

    @property
    def persisted_fields(self) -> list[str]:
        """Internal fields a mapped record may carry (manual overrides excluded)."""
        manual = set(self.special_fields.manual_overrides)
        seen: list[str] = []
        for internal in self.spreadsheet_to_database.values():
            if internal in manual or internal in seen:
                continue
            seen.append(internal)
        for target in self.special_fields.manual_overrides.values():
            if target not in seen:
                seen.append(target)
        return seen
