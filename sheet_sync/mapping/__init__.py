"""Sheet <-> database field mapping (seller record + owned property)."""

from .email_gate import check_email
from .field_mapper import FieldMapper
from .property_extractor import PropertyExtractor

__all__ = [
    "FieldMapper",
    "PropertyExtractor",
    "check_email",
]
