"""
Calendar-date parsing for imported fields.

Dates arrive in whatever shape the source spreadsheet used. They are parsed
with pandas and reduced to a ``datetime.date``; anything unparsable becomes
``None`` rather than a partially-parsed value.
"""
from __future__ import annotations

import logging
import re
import threading
import warnings
from datetime import date
from typing import Any, Callable, List, Optional, Tuple

import pandas as pd

from customer_import.core.config import settings

logger = logging.getLogger(__name__)

FAILED_SAMPLE_LIMIT = 5
SUPPRESSION_NOTICE_EVERY = 100

_NUMERIC_DATE = re.compile(r"^\d{1,2}[/-]\d{1,2}[/-]\d{2,4}")
_YEAR = re.compile(r"\d{4}")

# pandas warns when it falls back to per-value inference or when a value
# contradicts the requested dayfirst order. Both are expected here.
warnings.filterwarnings("ignore", message=r"Could not infer format", category=UserWarning)
warnings.filterwarnings("ignore", message=r"Parsing dates in .* format when dayfirst=", category=UserWarning)

_failure_stats: dict = {}
_failure_stats_lock = threading.Lock()


def _record_parse_failure(value: Any, context: Optional[str], error: Exception) -> None:
    """
    Collect failure stats and emit limited logs (sampled warnings + periodic summaries).
    """
    key = context or "default"
    with _failure_stats_lock:
        stats = _failure_stats.setdefault(key, {"count": 0, "samples": []})
        stats["count"] += 1
        count = stats["count"]
        sampled = len(stats["samples"]) < FAILED_SAMPLE_LIMIT
        if sampled:
            stats["samples"].append(value)
        samples = list(stats["samples"])

    if sampled:
        logger.warning("Failed to parse date%s value '%s': %s", f" ({key})" if context else "", value, error)
        return

    if count == FAILED_SAMPLE_LIMIT + 1 or count % SUPPRESSION_NOTICE_EVERY == 0:
        logger.info(
            "Suppressed additional date parse warnings after %d failures%s; sample values=%s",
            count,
            f" ({key})" if context else "",
            samples,
        )


def _names_a_year(value: str) -> bool:
    """True when ``value`` carries its own year rather than borrowing today's."""
    return bool(_YEAR.search(value) or _NUMERIC_DATE.match(value))


def _prefers_dayfirst(value: str) -> Optional[bool]:
    """Guess day/month order for numeric dates like ``04/09/1990``."""
    match = _NUMERIC_DATE.match(value)
    if not match:
        return None
    first, second = (int(part) for part in re.split(r"[/-]", match.group(0))[:2])
    if first > 12 and second <= 31:
        return True
    if second > 12 and first <= 12:
        return False
    return settings.date_default_dayfirst


def parse_calendar_date(value: Any, *, log_context: Optional[str] = None) -> Optional[date]:
    """
    Parse ``value`` into a calendar date.

    Supports ISO dates and timestamps ("1990-04-09", "1990-04-09T10:00:00Z"),
    numeric day/month forms ("09/04/1990", "4-9-90") and most textual forms
    pandas can infer ("April 9, 1990").

    Returns:
        The parsed ``date`` or ``None`` when the value is empty or unparsable.
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if not _names_a_year(text):
        # "now", "today", "12:00" or "April 9" would be completed from the current date.
        _record_parse_failure(text, log_context, ValueError("no year in value"))
        return None

    attempts: List[Tuple[str, Callable[[str], Any]]] = []
    dayfirst = _prefers_dayfirst(text)
    if dayfirst is not None:
        attempts.append(("preferred", lambda v, df=dayfirst: pd.to_datetime(v, dayfirst=df, errors="raise")))
        attempts.append(("alternate", lambda v, df=not dayfirst: pd.to_datetime(v, dayfirst=df, errors="raise")))
    attempts.append(("default", lambda v: pd.to_datetime(v, errors="raise")))

    last_error: Optional[Exception] = None
    for _name, attempt in attempts:
        try:
            parsed = attempt(text)
        except (ValueError, TypeError, OverflowError) as exc:
            last_error = exc
            continue
        if pd.isna(parsed):
            last_error = ValueError("parsed to NaT")
            continue
        return parsed.date()

    _record_parse_failure(text, log_context, last_error or ValueError("Unable to determine format"))
    return None
