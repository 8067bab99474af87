"""
Helper Utilities
================
Common utility functions used across the application.
"""

import re
from datetime import date, datetime
from typing import Optional, Any


# "1.234" or "12.345.678": dots used only as thousands separators
THOUSANDS_ONLY = re.compile(r'^-?\d{1,3}(\.\d{3})+$')


def parse_amount(value: Any) -> float:
    """
    Coerce a premium value coming from a document or an LLM into a float.

    Accepts numbers and strings such as "R$ 1.234,56", "R$ 1.234", "1234.56" or
    "1,234.56".
    Anything unparseable becomes 0.0.
    """
    if value is None or isinstance(value, bool):
        return 0.0

    if isinstance(value, (int, float)):
        return float(value)

    text = re.sub(r'[^\d,.\-]', '', str(value))
    if not text:
        return 0.0

    if ',' in text and '.' in text:
        # The last separator is the decimal one
        if text.rfind(',') > text.rfind('.'):
            text = text.replace('.', '').replace(',', '.')
        else:
            text = text.replace(',', '')
    elif ',' in text:
        text = text.replace('.', '').replace(',', '.')
    elif text.count('.') > 1 or THOUSANDS_ONLY.match(text):
        text = text.replace('.', '')

    try:
        return float(text)
    except ValueError:
        return 0.0


def normalize_date(value: Any) -> str:
    """
    Normalize a date into ISO format (YYYY-MM-DD).

    Understands ISO dates, ISO datetimes and the Brazilian DD/MM/YYYY form.
    Returns the stripped input when it cannot be understood, and "" for empty input,
    so validation can report it.
    """
    if value is None:
        return ""

    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()

    text = str(value).strip()
    if not text:
        return ""

    iso_match = re.match(r'^(\d{4})-(\d{2})-(\d{2})', text)
    if iso_match:
        return "-".join(iso_match.groups())

    br_match = re.match(r'^(\d{1,2})[/.\-](\d{1,2})[/.\-](\d{4})$', text)
    if br_match:
        day, month, year = br_match.groups()
        return f"{year}-{int(month):02d}-{int(day):02d}"

    return text


def is_valid_iso_date(value: Optional[str]) -> bool:
    """Check whether a string is a real calendar date in YYYY-MM-DD format."""
    if not value:
        return False
    try:
        date.fromisoformat(value)
        return True
    except ValueError:
        return False

