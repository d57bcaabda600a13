from __future__ import annotations

import math
import re
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any
from zoneinfo import ZoneInfo

import pandas as pd

from ..models.config_models import DatePolicy
from ..models.row_data import SERIAL_EPOCH, Cell, CellKind

"""Type converters: raw sheet cell <-> typed internal value.

Converters never raise on bad data. An unrecognised number/date becomes None,
an unrecognised boolean becomes False, so that one malformed cell cannot abort
a batch. Date handling accepts, in order:
  1. a numeric date serial (serial 1 = 1899-12-31, counted in UTC days)
  2. YYYY-MM-DD
  3. YYYY/MM/DD
  4. bare MM/DD, year resolved through DatePolicy
Anything else is None.
"""

__all__ = [
    "TRUTHY_TOKENS",
    "to_internal",
    "to_external",
    "parse_number",
    "parse_date",
    "parse_datetime",
    "parse_boolean",
    "parse_year_month",
    "serial_to_date",
    "is_bare_month_day",
    "resolve_month_day",
    "business_today",
    "format_number",
    "natural_key_text",
]

TRUTHY_TOKENS = frozenset({"true", "1", "yes", "はい"})
EXTERNAL_TRUE = "はい"
EXTERNAL_FALSE = "いいえ"

_ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_SLASH_DATE = re.compile(r"^(\d{4})/(\d{2})/(\d{2})$")
_MONTH_DAY = re.compile(r"^(\d{1,2})/(\d{1,2})$")
_LOOSE_DATE = re.compile(r"^(\d{4})[-/](\d{1,2})[-/](\d{1,2})$")
_YEAR_MONTH = re.compile(r"^(\d{4})[-/](\d{1,2})$")
_HAS_DIGIT = re.compile(r"\d")


def _cell(raw: Any) -> Cell:
    return raw if isinstance(raw, Cell) else Cell.of(raw)


def business_today(timezone: str = "UTC") -> date:
    """Today's calendar date in the business timezone."""
    return datetime.now(ZoneInfo(timezone)).date()


def serial_to_date(serial: float) -> date | None:
    """Spreadsheet serial -> calendar date; the fractional (time) part is dropped."""
    try:
        days = math.floor(serial)
        return SERIAL_EPOCH + timedelta(days=days - 1)
    except (OverflowError, ValueError):
        return None


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_number(raw: Any) -> int | float | None:
    """Parse a number cell, stripping thousands separators. Integral values come back as int."""
    cell = _cell(raw)
    if cell.kind in (CellKind.NUMBER, CellKind.DATE_SERIAL):
        value = float(cell.value)
    elif cell.kind is CellKind.TEXT:
        text = cell.value.strip().replace(",", "")
        if not text:
            return None
        try:
            value = float(text)
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(value):
        return None
    if value.is_integer():
        return int(value)
    return value


def is_bare_month_day(raw: Any) -> bool:
    """True when the cell is a year-less MM/DD string (the ambiguous date shape)."""
    cell = _cell(raw)
    return cell.kind is CellKind.TEXT and _MONTH_DAY.match(cell.value.strip()) is not None


def resolve_month_day(month: int, day: int, today: date, policy: DatePolicy) -> date | None:
    """Attach a year to a month/day pair according to the policy."""
    year = today.year
    if policy is DatePolicy.ASSUME_FUTURE and (month, day) < (today.month, today.day):
        year += 1
    return _safe_date(year, month, day)


def parse_date(
    raw: Any,
    policy: DatePolicy = DatePolicy.ASSUME_FUTURE,
    today: date | None = None,
    timezone: str = "UTC",
) -> str | None:
    """Parse a date cell into an ISO date string (YYYY-MM-DD) or None."""
    cell = _cell(raw)
    if cell.kind in (CellKind.NUMBER, CellKind.DATE_SERIAL):
        d = serial_to_date(cell.value)
        return d.isoformat() if d else None
    if cell.kind is not CellKind.TEXT:
        return None

    text = cell.value.strip()
    for pattern in (_ISO_DATE, _SLASH_DATE):
        m = pattern.match(text)
        if m:
            d = _safe_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
            return d.isoformat() if d else None

    m = _MONTH_DAY.match(text)
    if m:
        reference = today or business_today(timezone)
        d = resolve_month_day(int(m.group(1)), int(m.group(2)), reference, policy)
        return d.isoformat() if d else None
    return None


def parse_year_month(raw: Any) -> str | None:
    """Parse a contract year-month cell; YYYY/MM pins the day to 01."""
    cell = _cell(raw)
    if cell.kind in (CellKind.NUMBER, CellKind.DATE_SERIAL):
        d = serial_to_date(cell.value)
        return d.isoformat() if d else None
    if cell.kind is not CellKind.TEXT:
        return None
    text = cell.value.strip()
    m = _LOOSE_DATE.match(text)
    if m:
        d = _safe_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        return d.isoformat() if d else None
    m = _YEAR_MONTH.match(text)
    if m:
        d = _safe_date(int(m.group(1)), int(m.group(2)), 1)
        return d.isoformat() if d else None
    return None


def parse_datetime(raw: Any) -> str | None:
    """Best-effort datetime parse (pandas); invalid input returns None."""
    cell = _cell(raw)
    if cell.kind in (CellKind.NUMBER, CellKind.DATE_SERIAL):
        d = serial_to_date(cell.value)
        if d is None:
            return None
        fraction = float(cell.value) - math.floor(cell.value)
        moment = datetime(d.year, d.month, d.day) + timedelta(seconds=round(fraction * 86400))
        return moment.isoformat()
    if cell.kind is not CellKind.TEXT or not cell.value.strip():
        return None
    # "now" / "today" 等の相対キーワードは実行時刻に化けるので不可
    if not _HAS_DIGIT.search(cell.value):
        return None
    try:
        ts = pd.to_datetime(cell.value.strip(), errors="coerce")
    except (ValueError, TypeError, OverflowError):
        return None
    if pd.isna(ts):
        return None
    return ts.isoformat()


def parse_boolean(raw: Any) -> bool:
    """Truthy token -> True, anything else -> False (booleans have no null state)."""
    cell = _cell(raw)
    if cell.kind is CellKind.BOOLEAN:
        return bool(cell.value)
    if cell.kind is CellKind.EMPTY:
        return False
    if cell.kind is CellKind.NUMBER:
        return cell.value == 1
    return str(cell.value).strip().lower() in TRUTHY_TOKENS


def _to_text(cell: Cell) -> str | None:
    if cell.kind is CellKind.TEXT:
        return cell.value
    if cell.kind is CellKind.NUMBER:
        return format_number(cell.value)
    if cell.kind is CellKind.DATE_SERIAL:
        d = serial_to_date(cell.value)
        return d.isoformat() if d else None
    if cell.kind is CellKind.BOOLEAN:
        return EXTERNAL_TRUE if cell.value else EXTERNAL_FALSE
    return None


def to_internal(
    raw: Any,
    target_type: str | None,
    policy: DatePolicy = DatePolicy.ASSUME_FUTURE,
    today: date | None = None,
    timezone: str = "UTC",
) -> Any:
    """Convert a raw cell into the declared internal type.

    Empty cells map to None for every type except boolean, which is False.
    """
    cell = _cell(raw)
    if target_type == "boolean":
        return parse_boolean(cell)
    if cell.is_empty:
        return None
    if target_type == "number":
        return parse_number(cell)
    if target_type == "date":
        return parse_date(cell, policy=policy, today=today, timezone=timezone)
    if target_type == "year_month":
        return parse_year_month(cell)
    if target_type == "datetime":
        return parse_datetime(cell)
    # string / 未宣言: テキストはそのまま
    return _to_text(cell)


def format_number(value: Any) -> str:
    """Canonical text for a number: 500.0 -> "500", 12.50 -> "12.5"."""
    if isinstance(value, bool):
        return str(int(value))
    if isinstance(value, Decimal):
        if value == value.to_integral_value():
            return str(value.quantize(Decimal(1)))
        return format(value.normalize(), "f")
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    return str(value)


def _as_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.strip().replace("Z", "+00:00")).date()
        except ValueError:
            return None
    return None


def _as_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    return None


def to_external(value: Any, target_type: str | None) -> Any:
    """Convert a typed internal value back to its sheet representation."""
    if value is None:
        return ""
    if target_type == "number":
        if isinstance(value, str):
            parsed = parse_number(value)
            return "" if parsed is None else format_number(parsed)
        return format_number(value)
    if target_type in ("date", "year_month"):
        d = _as_date(value)
        return d.isoformat() if d else ""
    if target_type == "datetime":
        moment = _as_datetime(value)
        return moment.strftime("%Y-%m-%d %H:%M:%S") if moment else ""
    if target_type == "boolean":
        return EXTERNAL_TRUE if value else EXTERNAL_FALSE
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        return format_number(value)
    return str(value)


def natural_key_text(raw: Any) -> str | None:
    """Key cell as text. xlsx hands numeric keys back as floats: 12345.0 -> "12345"."""
    cell = _cell(raw)
    if cell.kind is CellKind.TEXT:
        return cell.value
    if cell.kind is CellKind.NUMBER:
        return format_number(cell.value)
    return None
