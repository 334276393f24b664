from __future__ import annotations

import math
import re
from typing import Any


MISSING_MARKERS = {"", "***", "*", "-", "--", "n/a", "na", "null", "none", "undefined", "nan"}


def parse_number(value: Any) -> float | None:
    """Parse a survey cell into a float; suppressed or blank cells become None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else None
    text = str(value).strip()
    if text.lower() in MISSING_MARKERS:
        return None
    text = text.replace(",", "").replace("$", "").strip()
    try:
        number = float(text)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def parse_count(value: Any) -> int:
    number = parse_number(value)
    if number is None or number < 0:
        return 0
    return int(round(number))


def clean_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def snake_case(text: str) -> str:
    lowered = re.sub(r"[^a-z0-9]+", "_", text.lower())
    return lowered.strip("_")


def contains_phrase(haystack: str, needle: str) -> bool:
    """Case-insensitive equality or whole-word containment of ``needle`` in ``haystack``."""
    h = " ".join(haystack.lower().split())
    n = " ".join(needle.lower().split())
    if not n:
        return False
    if h == n:
        return True
    return re.search(rf"(?<![a-z0-9]){re.escape(n)}(?![a-z0-9])", h) is not None
