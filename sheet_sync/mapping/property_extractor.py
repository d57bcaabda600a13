from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from ..convert.converters import parse_number, to_internal
from ..models.config_models import PropertyConfig
from ..models.row_data import SheetRow
from .field_mapper import as_sheet_row

"""Record extractor for the property embedded in a seller row.

The property is owned by the seller: it is only ever built from the seller's
own row and never without an address (no empty shell records). Property type
abbreviations typed into the sheet (土/戸/マ/事) are expanded to their category
names; unknown codes pass through verbatim.
"""

__all__ = [
    "PropertyExtractor",
]


class PropertyExtractor:
    def __init__(self, config: PropertyConfig) -> None:
        self.config = config

    def extract(self, row: SheetRow | Mapping[str, Any], owner_id: Any) -> dict[str, Any] | None:
        """Build the property record for `owner_id`, or None when the address cell is empty."""
        sheet_row = as_sheet_row(row)
        address = sheet_row.cell(self.config.address_column)
        if address.is_empty:
            return None

        entity: dict[str, Any] = {
            self.config.owner_field: owner_id,
            self.config.address_field: to_internal(address, "string"),
            self.config.type_field: self.normalize_type(self._first_type_cell(sheet_row)),
        }
        for column, internal in self.config.columns.items():
            cell = sheet_row.cell(column)
            if internal in self.config.numeric_fields:
                entity[internal] = parse_number(cell)
            else:
                entity[internal] = None if cell.is_empty else to_internal(cell, "string")
        return entity

    def _first_type_cell(self, sheet_row: SheetRow) -> Any:
        # 「物件種別」優先、無ければ「種別」
        for column in self.config.type_columns:
            if not sheet_row.is_blank(column):
                return sheet_row.raw(column)
        return None

    def normalize_type(self, raw: Any) -> str | None:
        if raw is None:
            return None
        code = str(raw).strip()
        if not code:
            return None
        return self.config.type_codes.get(code, code)
