"""
Calendar helpers.

Dates are handled as datetime.date; ISO 8601 text is accepted on input.
Month arithmetic clamps to the last day of a shorter month
(2026-01-31 + 1 month = 2026-02-28).
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Any, Optional

from dateutil.relativedelta import relativedelta


def as_date(value: Any) -> Optional[date]:
    """Coerce a date, datetime or ISO text to a date; None/"" to None.

    Raises:
        ValueError: If text is not an ISO date
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


def shift(start: date, months: int = 0, days: int = 0) -> date:
    """Add whole calendar months, then days, to a date."""
    return start + relativedelta(months=months) + timedelta(days=days)
