from __future__ import annotations

import re
from dataclasses import dataclass

from ..models.config_models import EmailDenylist

"""Email validity gate.

Sheet operators type free text into the email column ("なし", "アドレスなし",
a phone number, two addresses on separate lines ...). Such values are voided
(None) instead of being stored. Accepted values get the full-width "＠"
normalised to "@".
"""

__all__ = [
    "EmailVerdict",
    "DEFAULT_DENYLIST",
    "normalize_email",
    "check_email",
]

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_DIGITS_ONLY = re.compile(r"^\d+$")

DEFAULT_DENYLIST = EmailDenylist(
    exact=frozenset({"なし", "無し", "不明", "エラー", "不可", "ヒアリングしてない", "0"}),
    substrings=("アドレス", "address"),
)


@dataclass(frozen=True)
class EmailVerdict:
    value: str | None  # 採用値 (None = 無効)
    reason: str | None = None  # 無効理由

    @property
    def accepted(self) -> bool:
        return self.value is not None


def normalize_email(text: str) -> str:
    """Fold the full-width at-sign (and full-width ASCII, e.g. ｕｓｅｒ) to half-width."""
    folded = []
    for ch in text:
        code = ord(ch)
        if 0xFF01 <= code <= 0xFF5E:  # 全角 ASCII 範囲
            folded.append(chr(code - 0xFEE0))
        else:
            folded.append(ch)
    return "".join(folded)


def check_email(raw: object, denylist: EmailDenylist = DEFAULT_DENYLIST) -> EmailVerdict:
    """Run the gate and report the accepted value or the rejection reason."""
    if raw is None:
        return EmailVerdict(None, "empty")
    text = str(raw).strip()
    if not text:
        return EmailVerdict(None, "empty")
    if text in denylist.exact:
        return EmailVerdict(None, "placeholder")
    lowered = text.lower()
    if any(token.lower() in lowered for token in denylist.substrings):
        return EmailVerdict(None, "placeholder")
    if _DIGITS_ONLY.match(text):
        return EmailVerdict(None, "digits_only")
    if re.search(r"\s", text):
        return EmailVerdict(None, "multiple_values")
    normalized = normalize_email(text)
    if not EMAIL_PATTERN.match(normalized):
        return EmailVerdict(None, "malformed")
    return EmailVerdict(normalized)
