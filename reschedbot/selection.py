from __future__ import annotations

import datetime as dt
from typing import Sequence

from reschedbot.domain import AppointmentDay


def parse_date(value: str) -> dt.date:
    # Strict YYYY-MM-DD, the format both the portal and CURRENT_APPOINTMENT_DATE use.
    return dt.datetime.strptime(value.strip(), "%Y-%m-%d").date()


def find_earlier_day(days: Sequence[AppointmentDay], threshold: dt.date) -> AppointmentDay | None:
    """Return the first business day strictly before ``threshold``.

    Days are scanned in the order the portal returned them; no sorting is done.
    """

    for day in days:
        if not day.business_day:
            continue
        try:
            date = parse_date(day.date)
        except ValueError:
            continue
        if date < threshold:
            return day
    return None


def find_compatible_time(available: Sequence[str], preferred: Sequence[str]) -> str | None:
    """First entry of ``available`` that also appears in ``preferred``."""

    allowed = set(preferred)
    for time in available:
        if time in allowed:
            return time
    return None
