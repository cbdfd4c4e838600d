from __future__ import annotations

import re
from typing import Optional


_NON_NUMERIC_RE = re.compile(r"[^0-9.]")
_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")

PLACEHOLDERS = frozenset({"", "&nbsp;", "na", "n/a", "-", "--", "nil"})


def is_placeholder(value: Optional[str]) -> bool:
    if value is None:
        return True
    s = value.replace("\xa0", " ").strip()
    return s.lower() in PLACEHOLDERS


def parse_number(value: Optional[str]) -> Optional[float]:
    """
    Parse portal cell text like:
    - "78.5"
    - "78.5 %"
    - "(82)"        (linked percentages render with stray punctuation)
    - "&nbsp;", "NA", "N/A"  -> None

    Returns None when the cell carries no number; a literal "0" stays 0.0.
    """
    if is_placeholder(value):
        return None

    s = value.replace("\xa0", " ").strip()  # type: ignore[union-attr]
    numbers = _NUMBER_RE.findall(s)
    if len(numbers) > 1:
        # "7.5 (8.0)", "12/20", "78 (35/45)": the leading figure is the value.
        return float(numbers[0])

    cleaned = _NON_NUMERIC_RE.sub("", s)
    if not cleaned:
        return None
    try:
        return float(cleaned)
    except ValueError:
        return float(numbers[0]) if numbers else None


def format_percent(value: Optional[float]) -> str:
    if value is None:
        return "-"
    return f"{value:.1f}%"
