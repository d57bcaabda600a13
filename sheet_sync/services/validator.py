from __future__ import annotations

import re
from collections.abc import Mapping
from datetime import date
from typing import Any

from ..convert.converters import is_bare_month_day, parse_date, parse_number, parse_year_month
from ..mapping.email_gate import check_email
from ..mapping.field_mapper import as_sheet_row
from ..models.config_models import SyncConfig
from ..models.row_data import CellKind, SheetRow
from ..models.validation_result import ValidationResult

"""Row validator.

Collects every violation of a row instead of failing fast:
- required columns must be non-empty (the name column is exempt because the
  mapper substitutes its placeholder)
- the phone column must look like digits and punctuation
- number columns must parse
Emails and dates never produce errors: a bad email is voided by the mapper and
a malformed or year-less date is only reported as a warning.
"""

__all__ = [
    "RowValidator",
    "PHONE_PATTERN",
]

PHONE_PATTERN = re.compile(r"^[0-9\-\(\)\s]+$")

# 警告対象のメール判定理由 (プレースホルダ系は黙って null 化)
_EMAIL_WARN_REASONS = frozenset({"malformed", "multiple_values"})

# 年なし日付は別判定のため、形式チェックでは基準日は使われない
_FORMAT_CHECK_REFERENCE = date(2000, 1, 1)


class RowValidator:
    def __init__(self, config: SyncConfig) -> None:
        self.config = config

    def validate(self, row: SheetRow | Mapping[str, Any]) -> ValidationResult:
        sheet_row = as_sheet_row(row)
        errors: list[str] = []
        warnings: list[str] = []

        self._check_required(sheet_row, errors)
        self._check_phone(sheet_row, errors)
        self._check_numbers(sheet_row, errors)
        self._check_email(sheet_row, warnings)
        self._check_dates(sheet_row, warnings)

        return ValidationResult(errors=errors, warnings=warnings)

    def _check_required(self, row: SheetRow, errors: list[str]) -> None:
        special = self.config.special_fields
        for field in self.config.required_fields:
            if field == special.name_field:
                continue
            column = self.config.column_for(field)
            if column is None or row.is_blank(column):
                errors.append(f"必須フィールド「{column}」が空です")

    def _check_phone(self, row: SheetRow, errors: list[str]) -> None:
        field = self.config.special_fields.phone_field
        column = self.config.column_for(field) if field else None
        if column is None:
            return
        cell = row.cell(column)
        if cell.kind is CellKind.TEXT and cell.value and not PHONE_PATTERN.match(cell.value):
            errors.append(f"電話番号の形式が不正です: {cell.value}")

    def _check_numbers(self, row: SheetRow, errors: list[str]) -> None:
        special = self.config.special_fields
        for column, internal in self.config.spreadsheet_to_database.items():
            numeric = (
                self.config.field_type(internal) == "number"
                or internal in special.currency_fields
                or internal in special.manual_overrides
            )
            if not numeric:
                continue
            cell = row.cell(column)
            if cell.is_empty:
                continue
            if parse_number(cell) is None:
                errors.append(f"{column}は数値である必要があります: {cell.value}")

    def _check_email(self, row: SheetRow, warnings: list[str]) -> None:
        field = self.config.special_fields.email_field
        column = self.config.column_for(field) if field else None
        if column is None or row.is_blank(column):
            return
        verdict = check_email(row.raw(column), self.config.email_denylist)
        if verdict.reason in _EMAIL_WARN_REASONS:
            warnings.append(f"メールアドレスの形式が不正です (null として取り込み): {row.raw(column)}")

    def _check_dates(self, row: SheetRow, warnings: list[str]) -> None:
        for column, internal in self.config.spreadsheet_to_database.items():
            target = self.config.field_type(internal)
            if target not in ("date", "year_month"):
                continue
            cell = row.cell(column)
            if cell.is_empty:
                continue
            if target == "date" and is_bare_month_day(cell):
                warnings.append(
                    f"{column}: 年なしの日付 {cell.value!r} は {self.config.date_policy.value} で年を補完"
                )
                continue
            parsed = parse_date(cell, today=_FORMAT_CHECK_REFERENCE) if target == "date" else parse_year_month(cell)
            if parsed is None:
                warnings.append(f"{column}: 日付として解釈できない値 {cell.value!r} は null として取り込み")
