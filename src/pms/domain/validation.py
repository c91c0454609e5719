from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pms.domain.errors import ValidationError
from pms.domain.money import Paisa


def require_int(value: object, label: str) -> int:
    if isinstance(value, Paisa):
        return int(value)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{label} must be a whole number.")
    return int(value)


def require_positive_int(value: object, label: str) -> int:
    n = require_int(value, label)
    if n <= 0:
        raise ValidationError(f"{label} must be greater than 0.")
    return n


def require_non_negative_int(value: object, label: str) -> int:
    n = require_int(value, label)
    if n < 0:
        raise ValidationError(f"{label} must be >= 0.")
    return n


def require_text(value: object, label: str) -> str:
    text = str(value).strip() if value is not None else ""
    if not text:
        raise ValidationError(f"{label} is required.")
    return text


def clean_text(value: object) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def iso_date(value: object, label: str) -> str:
    """Normalise a date, datetime or ``YYYY-MM-DD`` text to ``YYYY-MM-DD``."""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    text = str(value).strip() if value is not None else ""
    try:
        return date.fromisoformat(text[:10]).isoformat()
    except ValueError as exc:
        raise ValidationError(f"{label} must be a date in YYYY-MM-DD format.") from exc


def optional_iso_date(value: object, label: str) -> Optional[str]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return iso_date(value, label)


def date_range(start: object, end: object) -> tuple[str, str]:
    start_iso = iso_date(start, "Start date")
    end_iso = iso_date(end, "End date")
    if start_iso > end_iso:
        raise ValidationError("Start date must be on or before end date.")
    return start_iso, end_iso


def page_window(page: int = 1, page_size: int = 50) -> tuple[int, int]:
    """(limit, offset) for a 1-based page number."""
    page = max(1, require_int(page, "Page"))
    size = require_positive_int(page_size, "Page size")
    return size, (page - 1) * size
