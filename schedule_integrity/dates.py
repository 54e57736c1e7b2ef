"""UTC day calendar shared by every engine component.

All calendar-day arithmetic goes through one ``UTCCalendar`` so day boundaries
never depend on the host's local time zone. Tests pin "today" with
``FixedCalendar``.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Iterator, Optional

from dateutil import parser as dateparser
from dateutil.rrule import DAILY, rrule

from .errors import InputError

DATE_FMT = "%Y-%m-%d"


class UTCCalendar:
    def today(self) -> date:
        return datetime.now(timezone.utc).date()

    def parse_date(self, value: object, field_name: str = "date") -> date:
        if isinstance(value, datetime):
            return _utc_date(value)
        if isinstance(value, date):
            return value
        if not isinstance(value, str) or not value.strip():
            raise InputError(field_name, f"expected an ISO date string, got {value!r}")
        try:
            parsed = dateparser.isoparse(value.strip())
        except (ValueError, OverflowError) as exc:
            raise InputError(field_name, f"invalid ISO date '{value}'") from exc
        return _utc_date(parsed)

    def parse_optional_date(self, value: object, field_name: str = "date") -> Optional[date]:
        if value is None or (isinstance(value, str) and value.strip() == ""):
            return None
        return self.parse_date(value, field_name)

    def iter_days(self, start: date, end: date) -> Iterator[date]:
        """Yield every day of the closed interval ``[start, end]``."""
        if start > end:
            return
        for moment in rrule(DAILY, dtstart=_midnight(start), until=_midnight(end)):
            yield moment.date()

    def days_between(self, start: date, end: date) -> int:
        """Whole days from ``start`` to ``end``; a same-day window is 0."""
        return max(0, (end - start).days)

    @staticmethod
    def format(value: date) -> str:
        return value.strftime(DATE_FMT)


class FixedCalendar(UTCCalendar):
    """Calendar whose notion of today never moves."""

    def __init__(self, today: date) -> None:
        self._today = today

    def today(self) -> date:
        return self._today


def _utc_date(value: datetime) -> date:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.date()


def _midnight(value: date) -> datetime:
    return datetime(value.year, value.month, value.day)


def overlaps(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    return a_start <= b_end and a_end >= b_start


def overlap_days(a_start: date, a_end: date, b_start: date, b_end: date) -> int:
    if not overlaps(a_start, a_end, b_start, b_end):
        return 0
    return (min(a_end, b_end) - max(a_start, b_start)).days + 1


DEFAULT_CALENDAR = UTCCalendar()
