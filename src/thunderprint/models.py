"""
Data types shared by the reader, the expander and the lane layout.

Instants are naive ``datetime`` values. Storage instants are UTC; after
timezone resolution they hold the wall-clock time of the event's zone.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum, IntFlag
from typing import NamedTuple, Optional

from dateutil.rrule import rrule


class ThunderprintError(Exception):
    """Base class for the errors raised by thunderprint."""


class UnknownTimezoneError(ThunderprintError):
    """
    A row names a timezone that is neither a known zone, the floating
    sentinel nor an embedded VTIMEZONE block. Well-formed storage never
    does this, so the event stream is aborted.
    """

    def __init__(self, zone_name):
        super().__init__(f"TZ: {zone_name!r}")
        self.zone_name = zone_name


class StoreError(ThunderprintError):
    """The storage database or the prefs file cannot be read."""


class ItemFlags(IntFlag):
    PRIVATE = 1
    HAS_ATTENDEES = 2
    HAS_PROPERTIES = 4
    ALL_DAY = 8
    HAS_RECURRENCE = 16
    HAS_EXCEPTIONS = 32
    HAS_ATTACHMENTS = 64
    HAS_RELATIONS = 128
    HAS_ALARMS = 256
    RECURRENCE_ID_ALL_DAY = 512


class RawRow(NamedTuple):
    """One row of the event query, in query column order."""

    calendar_id: str
    title: Optional[str]
    start: int
    end: int
    recurrence_payload: Optional[str]
    event_id: str
    flags: int
    start_tz: str
    end_tz: str
    recurrence_id: Optional[int] = None
    stamp: Optional[int] = None


@dataclass
class RecurrenceRule:
    text: str
    rule: rrule


@dataclass(frozen=True)
class ExceptionPeriod:
    """A whole day removed from the expansion of a recurring series."""

    day: date

    @property
    def start(self) -> datetime:
        return datetime.combine(self.day, datetime.min.time())

    @property
    def end(self) -> datetime:
        return self.start + timedelta(days=1)


@dataclass
class CalendarEvent:
    uid: str
    title: str
    calendar_name: str
    start: datetime
    end: datetime
    all_day: bool = False
    rules: list[RecurrenceRule] = field(default_factory=list)
    exceptions: list[ExceptionPeriod] = field(default_factory=list)
    recurrence_id: Optional[datetime] = None
    stamp: Optional[datetime] = None

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def is_recurring(self) -> bool:
        return bool(self.rules)

    @property
    def is_override(self) -> bool:
        return self.recurrence_id is not None

    @property
    def excluded_days(self) -> set[date]:
        return {period.day for period in self.exceptions}


@dataclass(frozen=True)
class Occurrence:
    event: CalendarEvent
    start: datetime
    end: datetime

    @property
    def last_day(self) -> date:
        # an end at midnight belongs to the previous day
        if self.end > self.start and self.end.time() == datetime.min.time():
            return self.end.date() - timedelta(days=1)
        return max(self.end, self.start).date()

    @property
    def days(self) -> list[date]:
        first = self.start.date()
        return [
            first + timedelta(days=i)
            for i in range((self.last_day - first).days + 1)
        ]

    @property
    def spans_multiple_days(self) -> bool:
        return self.last_day > self.start.date()

    def touches(self, day: date) -> bool:
        return self.start.date() <= day <= self.last_day


class DiagnosticKind(Enum):
    MALFORMED_RULE = "malformed rule"
    MALFORMED_EXDATE = "malformed exdate"
    UNHANDLED_RDATE = "unhandled rdate"
    UNRECOGNIZED_LINE = "unrecognized line"
    MISSING_CALENDAR = "missing calendar"
    NULL_TITLE = "null title"


@dataclass(frozen=True)
class Diagnostic:
    kind: DiagnosticKind
    event_id: str
    message: str

    def __str__(self) -> str:
        return f"{self.kind.value} [{self.event_id}]: {self.message}"
