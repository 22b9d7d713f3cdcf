# utils/helpers.py
import secrets
import string
from datetime import date, datetime
from typing import Optional

_DOC_NO_ALPHABET = string.ascii_uppercase + string.digits


def today_str() -> str:
    """Return today's date as ISO string (YYYY-MM-DD)."""
    return date.today().isoformat()


def month_str() -> str:
    """Current month as 'YYYY-MM'."""
    return date.today().strftime("%Y-%m")


def first_of_month_str() -> str:
    return date.today().replace(day=1).isoformat()


def now_str() -> str:
    """Local timestamp in the stored format: 'YYYY-MM-DD HH:MM:SS'."""
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")


def new_doc_no(prefix: str, length: int = 8) -> str:
    """
    Human-readable document number: prefix + `length` random uppercase
    alphanumerics, e.g. 'S-7K2Q9XAB'.
    """
    return prefix + "".join(secrets.choice(_DOC_NO_ALPHABET) for _ in range(length))


def round_money(v: Optional[float], places: int = 2) -> float:
    """Round a monetary amount; None counts as zero."""
    return round(float(v or 0.0), places)
