"""Cell value converters (sheet <-> relational types)."""

from .converters import to_external, to_internal

__all__ = [
    "to_external",
    "to_internal",
]
