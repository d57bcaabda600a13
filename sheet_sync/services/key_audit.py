from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from ..convert.converters import natural_key_text

"""Natural-key audit between the sheet and the store.

Only keys with the configured prefix (seller numbers look like "AA12345") are
real records; anything else in the key column is a note or a spacer row.
Detection only: keys missing on either side are reported, never deleted.
"""

__all__ = [
    "is_valid_natural_key",
    "natural_key_sort_key",
    "detect_missing_keys",
    "detect_deleted_keys",
]


def is_valid_natural_key(value: Any, prefix: str = "") -> bool:
    # 数値セルのキー (12345.0) は "12345" として判定
    text = natural_key_text(value)
    if text is None or not text.strip():
        return False
    return text.startswith(prefix)


def natural_key_sort_key(key: str, prefix: str = "") -> tuple[int, int, str]:
    """Order AA9 before AA10; keys whose suffix is not numeric go last."""
    suffix = key[len(prefix):] if prefix and key.startswith(prefix) else key
    if suffix.isdigit():
        return (0, int(suffix), key)
    return (1, 0, key)


def detect_missing_keys(sheet_keys: Iterable[str], store_keys: Iterable[str], prefix: str = "") -> list[str]:
    """Keys present in the sheet but not in the store."""
    missing = set(sheet_keys) - set(store_keys)
    return sorted(missing, key=lambda k: natural_key_sort_key(k, prefix))


def detect_deleted_keys(sheet_keys: Iterable[str], store_keys: Iterable[str], prefix: str = "") -> list[str]:
    """Keys present in the store but no longer in the sheet."""
    deleted = {k for k in store_keys if is_valid_natural_key(k, prefix)} - set(sheet_keys)
    return sorted(deleted, key=lambda k: natural_key_sort_key(k, prefix))
