from __future__ import annotations

from datetime import timezone
from typing import Optional

from dateutil import parser as date_parser


def parse_http_date(value: str) -> Optional[float]:
    """
    Parse a cookie `Expires` attribute into an epoch timestamp.

    Servers are sloppy here; we accept anything dateutil can read, e.g.
    - "Wed, 21 Oct 2026 07:28:00 GMT"
    - "Wednesday, 21-Oct-26 07:28:00 GMT"
    Returns None when the value cannot be parsed.
    """
    s = (value or "").strip()
    if not s:
        return None
    try:
        dt = date_parser.parse(s)
    except (ValueError, OverflowError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()


def normalize_dob(value: str) -> str:
    """
    Webkiosk expects the date of birth as DD-MM-YYYY.

    Accepts the common spellings people type ("2003-07-15", "15/07/2003", "15-07-2003") and
    returns the portal format. Day-first is assumed for ambiguous inputs.
    """
    if value is None:
        raise ValueError("normalize_dob: value is None")
    s = value.strip()
    if not s:
        raise ValueError("normalize_dob: empty string")
    iso_like = len(s) >= 8 and s[:4].isdigit() and s[4] in "-/"
    dt = date_parser.parse(s, dayfirst=not iso_like, yearfirst=iso_like)
    return dt.strftime("%d-%m-%Y")
