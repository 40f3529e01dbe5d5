"""Service calendar built from calendar_dates.txt exceptions."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date

from transit_arrivals.logging import get_logger
from transit_arrivals.models import EXCEPTION_ADDED, EXCEPTION_REMOVED, CalendarException

logger = get_logger(__name__)


class ServiceCalendar:
    """Tracks the dates on which each service id runs.

    Only explicit exceptions are modeled: a service runs on a date iff an
    "added" exception for that date survives. Unknown services never run.
    """

    def __init__(self) -> None:
        self._dates: dict[str, set[date]] = {}

    @classmethod
    def from_exceptions(cls, exceptions: Iterable[CalendarException]) -> ServiceCalendar:
        """Apply exceptions in order (later rows win)."""
        calendar = cls()
        ignored = 0
        for exc in exceptions:
            if exc.exception_type == EXCEPTION_ADDED:
                calendar.add_exception(exc.service_id, exc.date)
            elif exc.exception_type == EXCEPTION_REMOVED:
                calendar.remove_exception(exc.service_id, exc.date)
            else:
                ignored += 1

        if ignored:
            logger.warning("Unrecognized calendar exception types ignored", count=ignored)
        logger.info("Service calendar built", service_count=calendar.service_count)
        return calendar

    def add_exception(self, service_id: str, day: date) -> None:
        self._dates.setdefault(service_id, set()).add(day)

    def remove_exception(self, service_id: str, day: date) -> None:
        days = self._dates.get(service_id)
        if days is None:
            return
        days.discard(day)
        if not days:
            del self._dates[service_id]

    def runs_on(self, service_id: str, day: date) -> bool:
        days = self._dates.get(service_id)
        return days is not None and day in days

    @property
    def service_count(self) -> int:
        return len(self._dates)
