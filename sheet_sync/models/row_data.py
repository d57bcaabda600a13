from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any

"""Tagged external-row model for the spreadsheet -> relational sync.

A row exported from the seller sheet is a mapping of column label -> raw cell.
Each cell carries an explicit kind so converters can branch on the tag instead
of probing runtime types. Column labels are kept verbatim: real headers contain
embedded newlines (e.g. "電話番号\\nハイフン不要") and are matched exactly.
"""

__all__ = [
    "CellKind",
    "Cell",
    "SheetRow",
    "EMPTY_CELL",
]

# Google Sheets 日付シリアルの基準 (serial 1 = 1899-12-31, 45292 = 2024-01-01)
SERIAL_EPOCH = date(1899, 12, 31)


class CellKind(Enum):
    """Raw value variants a spreadsheet cell can hold."""
    EMPTY = "empty"
    TEXT = "text"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE_SERIAL = "date_serial"


@dataclass(frozen=True)
class Cell:
    kind: CellKind
    value: Any = None

    @property
    def is_empty(self) -> bool:
        if self.kind is CellKind.EMPTY:
            return True
        return self.kind is CellKind.TEXT and self.value.strip() == ""

    @staticmethod
    def of(raw: Any) -> Cell:
        """Tag a raw python value coming from a sheet export.

        None / NaN become EMPTY, bool is checked before int (bool is an int
        subclass), date/datetime objects are folded into a date serial.
        """
        if isinstance(raw, Cell):
            return raw
        if raw is None:
            return EMPTY_CELL
        if isinstance(raw, bool):
            return Cell(CellKind.BOOLEAN, raw)
        if isinstance(raw, (int, float)):
            if isinstance(raw, float) and math.isnan(raw):
                return EMPTY_CELL
            return Cell(CellKind.NUMBER, raw)
        if isinstance(raw, datetime):
            return Cell(CellKind.DATE_SERIAL, to_serial(raw))
        if isinstance(raw, date):
            return Cell(CellKind.DATE_SERIAL, to_serial(raw))
        if isinstance(raw, str):
            return Cell(CellKind.TEXT, raw)
        # numpy scalar 等: 文字列化して TEXT 扱い
        return Cell(CellKind.TEXT, str(raw))

    def as_raw(self) -> Any:
        """Inverse of :meth:`of` for plain values (EMPTY -> None)."""
        if self.kind is CellKind.EMPTY:
            return None
        return self.value


EMPTY_CELL = Cell(CellKind.EMPTY)


def to_serial(value: date | datetime) -> float | int:
    """Convert a calendar date (or datetime) into a spreadsheet date serial."""
    if isinstance(value, datetime):
        day_part = value.date()
        seconds = value.hour * 3600 + value.minute * 60 + value.second
        serial = (day_part - SERIAL_EPOCH).days + 1
        if seconds:
            return serial + seconds / 86400
        return serial
    return (value - SERIAL_EPOCH).days + 1


@dataclass(frozen=True)
class SheetRow:
    """One external row: exact column label -> tagged cell.

    row_number is the 1-based sheet row the values came from, kept only for
    error reporting (rows carry no identity beyond their content).
    """
    cells: dict[str, Cell] = field(default_factory=dict)
    row_number: int = -1  # 不明な場合 -1

    @staticmethod
    def from_mapping(values: Mapping[str, Any], row_number: int = -1) -> SheetRow:
        return SheetRow(
            cells={label: Cell.of(raw) for label, raw in values.items()},
            row_number=row_number,
        )

    def cell(self, label: str) -> Cell:
        return self.cells.get(label, EMPTY_CELL)

    def raw(self, label: str) -> Any:
        return self.cell(label).as_raw()

    def is_blank(self, label: str) -> bool:
        return self.cell(label).is_empty

    def labels(self) -> list[str]:
        return list(self.cells.keys())

    def to_dict(self) -> dict[str, Any]:
        return {label: c.as_raw() for label, c in self.cells.items()}
