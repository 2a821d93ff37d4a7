"""
Date Resolver Service

- Converts natural language time expressions into concrete date ranges
- Grounds relative references ("este mes", "ayer") to real calendar values
  when the classifier leaves the date parameters empty
"""

import calendar
import re
import unicodedata
from datetime import date, timedelta
from typing import Optional, Tuple

from core.intent import Intention, IntentType


def get_today() -> date:
    """Return today's date (system clock)."""
    return date.today()


def month_range(year: int, month: int) -> Tuple[date, date]:
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def current_month(today: Optional[date] = None) -> str:
    """Current reconciliation month, YYYY-MM."""
    return (today or get_today()).strftime("%Y-%m")


def _strip_accents(text: str) -> str:
    return "".join(
        c for c in unicodedata.normalize("NFKD", text) if not unicodedata.combining(c)
    )


# Longest phrases first so "last month" wins over "month"
_EXPRESSIONS = [
    ("semana pasada", "last_week"),
    ("last week", "last_week"),
    ("previous week", "last_week"),
    ("mes pasado", "last_month"),
    ("last month", "last_month"),
    ("previous month", "last_month"),
    ("esta semana", "this_week"),
    ("this week", "this_week"),
    ("este mes", "this_month"),
    ("this month", "this_month"),
    ("ayer", "yesterday"),
    ("yesterday", "yesterday"),
    ("hoy", "today"),
    ("today", "today"),
]


def resolve_date_range(text: str) -> Optional[Tuple[date, date]]:
    """
    Resolve the first natural language date expression found in `text`
    into (start_date, end_date). Returns None if no pattern matches.
    """
    text = _strip_accents(text.lower().strip())
    today = get_today()

    for phrase, kind in _EXPRESSIONS:
        if not re.search(rf"\b{phrase}\b", text):
            continue

        if kind == "today":
            return today, today

        if kind == "yesterday":
            d = today - timedelta(days=1)
            return d, d

        if kind == "this_week":
            start = today - timedelta(days=today.weekday())  # Monday
            return start, today

        if kind == "last_week":
            end = today - timedelta(days=today.weekday() + 1)
            start = end - timedelta(days=6)
            return start, end

        if kind == "this_month":
            start, _ = month_range(today.year, today.month)
            return start, today

        if kind == "last_month":
            year = today.year
            month = today.month - 1
            if month == 0:
                month = 12
                year -= 1
            return month_range(year, month)

    return None


def fill_relative_dates(intention: Intention, utterance: str) -> Intention:
    """
    For TRANSACTIONS turns where the model extracted no dates at all,
    fill them from a relative expression in the utterance.
    """
    params = intention.parameters
    if intention.intent is not IntentType.TRANSACTIONS:
        return intention
    if params.startDate is not None or params.endDate is not None:
        return intention

    resolved = resolve_date_range(utterance)
    if not resolved:
        return intention

    start, end = resolved
    return Intention.of(intention.intent, params.category, start, end)
