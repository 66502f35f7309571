from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Iterable

from dateutil.rrule import rruleset

from .lanes import sort_day_occurrences
from .models import CalendarEvent, Occurrence
from .shared import log_msg


def day_bounds(day: date) -> tuple[datetime, datetime]:
    """The first and last second of ``day``."""
    start = datetime.combine(day, datetime.min.time())
    return start, start + timedelta(days=1) - timedelta(seconds=1)


def overlaps(
    start: datetime, end: datetime, range_start: datetime, range_end: datetime
) -> bool:
    if start > range_end:
        return False
    if end > start:
        return end > range_start
    # instantaneous
    return start >= range_start


class OccurrenceExpander:
    """
    Expand events into the occurrences that touch a window.

    A series yields one occurrence per start generated by its rules (plus
    its own start), minus the starts that fall on an excluded day and the
    starts replaced by override instances. Exclusions are day-granular:
    an exception date removes every start on that date.
    """

    def expand(
        self,
        event: CalendarEvent,
        range_start: datetime,
        range_end: datetime,
        overridden: Iterable[datetime] = (),
    ) -> list[Occurrence]:
        duration = max(event.duration, timedelta(0))

        if event.is_override or not event.rules:
            starts = [event.start]
        else:
            starts = self._series_starts(event, range_start - duration, range_end)
            excluded_days = event.excluded_days
            skipped = set(overridden)
            starts = [
                s for s in starts if s.date() not in excluded_days and s not in skipped
            ]

        return [
            Occurrence(event, s, s + duration)
            for s in starts
            if overlaps(s, s + duration, range_start, range_end)
        ]

    def _series_starts(
        self, event: CalendarEvent, lo: datetime, hi: datetime
    ) -> list[datetime]:
        rules = rruleset()
        rules.rdate(event.start)
        for rule in event.rules:
            rules.rrule(rule.rule)
        try:
            return rules.between(lo, hi, inc=True)
        except TypeError as e:
            # mixing naive and aware datetimes in one set
            log_msg(f"cannot expand {event.uid!r} ({event.title!r}): {e}")
            return [event.start] if lo <= event.start <= hi else []


class EventCalendar:
    """
    The assembled events of all calendars, with override instances
    attached to the series they modify.
    """

    def __init__(
        self,
        events: Iterable[CalendarEvent] = (),
        expander: OccurrenceExpander | None = None,
    ):
        self.expander = expander or OccurrenceExpander()
        self.events: list[CalendarEvent] = []
        self._overrides: dict[str, set[datetime]] = defaultdict(set)
        for event in events:
            self.add(event)

    def __len__(self) -> int:
        return len(self.events)

    def add(self, event: CalendarEvent):
        self.events.append(event)
        if event.is_override:
            self._overrides[event.uid].add(event.recurrence_id)

    def occurrences(self, range_start: datetime, range_end: datetime) -> list[Occurrence]:
        found = []
        for event in self.events:
            overridden = () if event.is_override else self._overrides.get(event.uid, ())
            found.extend(
                self.expander.expand(event, range_start, range_end, overridden)
            )
        return found

    def day_occurrences(self, day: date) -> list[Occurrence]:
        return sort_day_occurrences(self.occurrences(*day_bounds(day)))
