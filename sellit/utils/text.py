# sellit/utils/text.py
from __future__ import annotations

import re

# латиница, цифры и грузинский алфавит (мхедрули)
_NON_SLUG_RE = re.compile(r"[^a-z0-9\u10d0-\u10ff]+")

_HEX_COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")


def slugify(text: str) -> str:
    """'Dark Blue / XL' -> 'dark-blue-xl'; Georgian letters are kept as-is."""
    s = _NON_SLUG_RE.sub("-", (text or "").strip().lower())
    return s.strip("-")


def is_hex_color(value: str | None) -> bool:
    return bool(value) and bool(_HEX_COLOR_RE.match(value or ""))


__all__ = ["slugify", "is_hex_color"]
