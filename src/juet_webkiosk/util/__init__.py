from .dates import normalize_dob, parse_http_date
from .numbers import format_percent, is_placeholder, parse_number

__all__ = ["normalize_dob", "parse_http_date", "format_percent", "is_placeholder", "parse_number"]
