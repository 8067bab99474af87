"""
Utilities Package
=================
Helper utilities and common functions.
"""

from .helpers import parse_amount, normalize_date, is_valid_iso_date

__all__ = [
    "parse_amount",
    "normalize_date",
    "is_valid_iso_date"
]
