from __future__ import annotations

from dataclasses import dataclass, field

__all__ = [
    "ValidationResult",
]


@dataclass(frozen=True)
class ValidationResult:
    """Collected Validator findings for one row.

    errors block persistence of the row; warnings are diagnostics only.
    """
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors
