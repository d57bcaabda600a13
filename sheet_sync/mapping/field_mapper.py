from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import date
from decimal import Decimal
from typing import Any

from ..convert.converters import format_number, natural_key_text, parse_number, to_external, to_internal
from ..models.config_models import SyncConfig
from ..models.row_data import SheetRow
from .email_gate import check_email

"""Field mapper: sheet row <-> mapped seller record.

Drives the external->internal mapping table. Most fields go through the
generic type converters; a fixed set of internal fields carry business rules:

- name: an empty name becomes the placeholder ("不明"), never None
- email: voided unless it passes the email gate
- valuation amounts: sheet values are in 万円, stored in 円 (x10000)
- manual valuation overrides: fold into the automatic field and are not
  persisted themselves; manual input wins over the computed value
- legacy/newer pairs sharing one sheet column (不通): when writing back, the
  newer field wins and the legacy boolean is suppressed
"""

__all__ = [
    "FieldMapper",
    "as_sheet_row",
]

logger = logging.getLogger(__name__)


def as_sheet_row(row: SheetRow | Mapping[str, Any]) -> SheetRow:
    if isinstance(row, SheetRow):
        return row
    return SheetRow.from_mapping(row)


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


class FieldMapper:
    """Bidirectional mapper driven by an immutable SyncConfig.

    The mapper keeps no state between calls; `today` pins the reference date
    used for year-less MM/DD cells (None = today in the business timezone).
    """

    def __init__(self, config: SyncConfig, today: date | None = None) -> None:
        self.config = config
        self.today = today
        self._special = config.special_fields

    # ------------------------------------------------------------------
    # sheet -> database
    # ------------------------------------------------------------------
    def map_to_internal(self, row: SheetRow | Mapping[str, Any]) -> dict[str, Any]:
        sheet_row = as_sheet_row(row)
        record: dict[str, Any] = {}
        overrides: dict[str, Any] = {}
        key_field = self.config.natural_key.field

        for column, internal in self.config.spreadsheet_to_database.items():
            cell = sheet_row.cell(column)

            if internal == key_field:
                # 自然キーは文字列のまま (数値セルは 12345.0 -> "12345")
                record[internal] = natural_key_text(cell)
                continue

            if internal in self._special.manual_overrides:
                amount = self._scale_in(parse_number(cell))
                if amount is not None:
                    overrides[self._special.manual_overrides[internal]] = amount
                continue

            if internal == self._special.name_field:
                record[internal] = self._special.name_placeholder if cell.is_empty else to_internal(cell, "string")
                continue

            if internal == self._special.email_field:
                verdict = check_email(cell.as_raw(), self.config.email_denylist)
                if not verdict.accepted and verdict.reason != "empty":
                    logger.debug("email voided column=%r reason=%s", column, verdict.reason)
                record[internal] = verdict.value
                continue

            if internal in self._special.currency_fields:
                record[internal] = self._scale_in(parse_number(cell))
                continue

            record[internal] = to_internal(
                cell,
                self.config.field_type(internal),
                policy=self.config.date_policy,
                today=self.today,
                timezone=self.config.timezone,
            )

        # 手入力査定額は自動計算値を上書き (列順に依存しない)
        record.update(overrides)

        for internal, default in self.config.default_values.items():
            if internal in record and _is_blank(record[internal]):
                record[internal] = default
        return record

    def _scale_in(self, amount: int | float | None) -> int | float | None:
        if amount is None:
            return None
        # Decimal で計算 (0.57 万円 -> 5700 円ちょうど)
        scaled = Decimal(str(amount)) * self._special.currency_scale
        if scaled == scaled.to_integral_value():
            return int(scaled)
        return float(scaled)

    # ------------------------------------------------------------------
    # database -> sheet
    # ------------------------------------------------------------------
    def map_to_external(self, record: Mapping[str, Any]) -> dict[str, Any]:
        sheet: dict[str, Any] = {}
        key_field = self.config.natural_key.field
        precedence = self._special.field_precedence

        for internal, column in self.config.database_to_spreadsheet.items():
            newer = precedence.get(internal)
            if newer is not None and not _is_blank(record.get(newer)):
                # 新フィールドに値がある場合は旧フィールドを書き戻さない
                continue

            value = record.get(internal)
            if internal == key_field:
                rendered = "" if value is None else value
            elif internal in self._special.currency_fields:
                rendered = self._scale_out(value)
            else:
                rendered = to_external(value, self.config.field_type(internal))

            if rendered == "" and not _is_blank(sheet.get(column)):
                # 同一列に既に値があれば空で潰さない
                continue
            sheet[column] = rendered
        return sheet

    def _scale_out(self, value: Any) -> str:
        if _is_blank(value):
            return ""
        amount = value if isinstance(value, Decimal) else parse_number(value)
        if amount is None:
            return ""
        return format_number(Decimal(str(amount)) / Decimal(self._special.currency_scale))
