from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pandas as pd

from ..models.row_data import SheetRow

"""Sheet export reader (.xlsx / .csv) -> SheetRow list.

- header labels are kept verbatim: no strip, embedded newlines preserved
  ("電話番号\\nハイフン不要" must match the mapping table exactly)
- only truly empty cells become empty; text such as "NA" or "なし" stays text
- rows whose cells are all empty are dropped
- datetime cells stay datetime objects; Cell.of turns them into date serials
"""

__all__ = [
    "SourceReadError",
    "SheetHeaderError",
    "MissingColumnsError",
    "SheetData",
    "read_frame",
    "rows_from_frame",
    "read_sheet_rows",
]

logger = logging.getLogger(__name__)


class SourceReadError(Exception):
    """Raised when the export file cannot be opened or the sheet does not exist."""


class SheetHeaderError(Exception):
    """Raised when the header row is missing or empty."""


class MissingColumnsError(Exception):
    """Raised when expected columns are missing in the sheet header."""


@dataclass
class SheetData:
    sheet_name: str
    columns: list[str]
    rows: list[SheetRow]


def read_frame(path: Path, sheet: str | None = None) -> tuple[str, pd.DataFrame]:
    """Read the raw grid (no header interpretation) of one sheet.

    For .xlsx the first sheet is used when `sheet` is None. CSV files have a
    single unnamed sheet (reported under the file stem).
    """
    if not path.exists():
        raise SourceReadError(f"source not found: {path}")

    # 空セルのみ NaN (既定の NA 文字列変換は行わない)
    na_opts: dict[str, Any] = {"header": None, "keep_default_na": False, "na_values": [""]}
    try:
        if path.suffix.lower() == ".csv":
            return path.stem, pd.read_csv(path, dtype=object, encoding="utf-8-sig", **na_opts)
        xls = pd.ExcelFile(path)
        names = [str(n) for n in xls.sheet_names]
        if sheet is None:
            sheet = names[0]
        elif sheet not in names:
            raise SourceReadError(f"sheet '{sheet}' not found in {path.name} (sheets: {names})")
        return sheet, xls.parse(sheet, **na_opts)
    except SourceReadError:
        raise
    except (OSError, ValueError) as e:
        raise SourceReadError(f"cannot read {path}: {e}") from e


def rows_from_frame(
    df: pd.DataFrame,
    sheet_name: str,
    header_row: int = 1,
    expected_columns: set[str] | None = None,
) -> SheetData:
    """Apply `header_row` (1-based) as header; following rows become SheetRows.

    row_number on each SheetRow is the 1-based sheet row.
    """
    if header_row < 1 or df.shape[0] < header_row:
        raise SheetHeaderError(f"sheet '{sheet_name}' has no header at row {header_row}")

    header_values = df.iloc[header_row - 1].tolist()
    columns = ["" if pd.isna(v) else str(v) for v in header_values]
    if not any(c.strip() for c in columns):
        raise SheetHeaderError(f"sheet '{sheet_name}' header row {header_row} is empty")

    if expected_columns is not None:
        missing = expected_columns - set(columns)
        if missing:
            raise MissingColumnsError(f"sheet '{sheet_name}' missing columns: {sorted(missing)}")

    # 重複ヘッダは先勝ち
    positions: dict[str, int] = {}
    for i, label in enumerate(columns):
        if not label.strip():
            continue
        if label in positions:
            logger.warning("sheet '%s' duplicate header %r (column %d ignored)", sheet_name, label, i + 1)
            continue
        positions[label] = i

    rows: list[SheetRow] = []
    for offset, (_, raw) in enumerate(df.iloc[header_row:].iterrows(), start=header_row + 1):
        if raw.isna().all():
            continue
        values = raw.tolist()
        mapping = {label: (None if pd.isna(values[i]) else values[i]) for label, i in positions.items()}
        rows.append(SheetRow.from_mapping(mapping, row_number=offset))

    return SheetData(sheet_name=sheet_name, columns=columns, rows=rows)


def read_sheet_rows(
    path: Path,
    sheet: str | None = None,
    header_row: int = 1,
    expected_columns: set[str] | None = None,
) -> SheetData:
    sheet_name, df = read_frame(path, sheet)
    return rows_from_frame(df, sheet_name, header_row=header_row, expected_columns=expected_columns)
