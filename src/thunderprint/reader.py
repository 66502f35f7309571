"""
Assemble calendar events from the rows of the storage event query.

The query joins every event with its recurrence lines, so one event
arrives as a group of consecutive rows sharing an event id: each row of
the group carries one ``RRULE:``/``EXDATE:`` payload line (or none). A row
with a recurrence-instance marker is an override of one occurrence of a
series and always starts an event of its own.
"""

from datetime import date, datetime
from enum import Enum
from typing import Iterable, Iterator, Mapping, Optional

from dateutil.rrule import rrulestr

from .models import (
    CalendarEvent,
    Diagnostic,
    DiagnosticKind,
    ExceptionPeriod,
    ItemFlags,
    RawRow,
    RecurrenceRule,
    UnknownTimezoneError,
)
from .shared import datetime_from_micro_epoch, log_msg
from .timezones import TimezoneResolver

EXDATE_PREFIX = "EXDATE:"
RRULE_PREFIX = "RRULE:"
RDATE_PREFIXES = ("RDATE;", "RDATE:")

EXDATE_FORMATS = ("%Y%m%dT%H%M%S", "%Y%m%d")


class ReaderState(Enum):
    NEED_ROW = "need_row"
    HAVE_ROW = "have_row"
    FAILED = "failed"


def parse_exdate(value: str) -> date:
    """
    Parse 'yyyyMMddTHHmmss[Z]' (or a bare 'yyyyMMdd') and truncate it to
    its date.
    """
    text = value.strip().rstrip("Z")
    for fmt in EXDATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"Invalid exception date: '{value}'")


def normalize_calendar_names(calendars: Mapping[str, str] | None) -> dict[str, str]:
    return {str(k).strip().lower(): v for k, v in (calendars or {}).items()}


class EventReader:
    """
    Pull events out of an ordered row source.

    ``read()`` reports whether another event is available and ``next()``
    returns it; iterating the reader does both. The sequence is forward
    only: reading again means re-running the query.

    Recoverable problems (bad rules, unknown lines, missing calendar
    names, untitled rows) are logged and collected in ``diagnostics``.
    An unresolvable timezone raises ``UnknownTimezoneError``.
    """

    def __init__(
        self,
        rows: Iterable,
        calendars: Mapping[str, str] | None = None,
        resolver: TimezoneResolver | None = None,
    ):
        self._rows = iter(rows)
        self._calendars = normalize_calendar_names(calendars)
        self._resolver = resolver or TimezoneResolver()
        self._row: Optional[RawRow] = None
        self.state = ReaderState.NEED_ROW
        self.diagnostics: list[Diagnostic] = []

    def __iter__(self) -> Iterator[CalendarEvent]:
        return self

    def __next__(self) -> CalendarEvent:
        return self.next()

    def _advance(self) -> bool:
        row = next(self._rows, None)
        if row is None:
            self._row = None
            self.state = ReaderState.NEED_ROW
            return False
        self._row = row if isinstance(row, RawRow) else RawRow._make(row)
        self.state = ReaderState.HAVE_ROW
        return True

    def read(self) -> bool:
        if self.state is ReaderState.FAILED:
            return False
        while True:
            if self.state is ReaderState.NEED_ROW and not self._advance():
                return False
            if self._row.title is not None:
                return True
            self._report(
                DiagnosticKind.NULL_TITLE,
                self._row.event_id,
                f"Skipping row without a title for event {self._row.event_id!r}.",
            )
            self.state = ReaderState.NEED_ROW

    def next(self) -> CalendarEvent:
        if not self.read():
            raise StopIteration
        row = self._row
        try:
            event = self._make_event(row)
        except UnknownTimezoneError:
            self._row = None
            self.state = ReaderState.FAILED
            raise
        self._add_payload(event, row.recurrence_payload)

        while self._advance():
            nxt = self._row
            if nxt.event_id != row.event_id or nxt.recurrence_id is not None:
                # the buffered row opens the next event
                break
            if nxt.title is None:
                self._report(
                    DiagnosticKind.NULL_TITLE,
                    nxt.event_id,
                    f"Skipping row without a title for event {nxt.event_id!r}.",
                )
                continue
            self._add_payload(event, nxt.recurrence_payload)

        return event

    def _make_event(self, row: RawRow) -> CalendarEvent:
        calendar_name = self._calendars.get(str(row.calendar_id).strip().lower())
        if calendar_name is None:
            self._report(
                DiagnosticKind.MISSING_CALENDAR,
                row.event_id,
                f"No name for calendar {row.calendar_id!r} of event {row.title!r}.",
            )
            calendar_name = ""

        start = self._resolver.resolve(datetime_from_micro_epoch(row.start), row.start_tz)
        end = self._resolver.resolve(datetime_from_micro_epoch(row.end), row.end_tz)

        event = CalendarEvent(
            uid=row.event_id,
            title=row.title,
            calendar_name=calendar_name,
            start=start,
            end=end,
            all_day=bool(int(row.flags or 0) & ItemFlags.ALL_DAY),
        )
        if row.recurrence_id is not None:
            event.recurrence_id = self._resolver.resolve(
                datetime_from_micro_epoch(row.recurrence_id), row.start_tz
            )
        if row.stamp is not None:
            event.stamp = datetime_from_micro_epoch(row.stamp)
        return event

    def _add_payload(self, event: CalendarEvent, payload: Optional[str]):
        if payload is None:
            return
        line = payload.strip()  # storage lines carry a stray newline
        if not line:
            return

        if line.startswith(EXDATE_PREFIX):
            for value in line[len(EXDATE_PREFIX) :].split(","):
                try:
                    day = parse_exdate(value)
                except ValueError:
                    self._report(
                        DiagnosticKind.MALFORMED_EXDATE,
                        event.uid,
                        f'Failed to parse exception date "{value}" for event "{event.title}", skipping.',
                    )
                    continue
                event.exceptions.append(ExceptionPeriod(day))
        elif line.startswith(RRULE_PREFIX):
            try:
                rule = rrulestr(line, dtstart=event.start, ignoretz=True)
            except (ValueError, TypeError) as e:
                self._report(
                    DiagnosticKind.MALFORMED_RULE,
                    event.uid,
                    f'Failed to parse rule "{line}" for event "{event.title}", skipping: {e}',
                )
                return
            if getattr(rule, "_interval", 1) < 1:
                self._report(
                    DiagnosticKind.MALFORMED_RULE,
                    event.uid,
                    f'Failed to parse rule "{line}" for event "{event.title}", skipping: '
                    "interval must be positive",
                )
                return
            event.rules.append(RecurrenceRule(text=line, rule=rule))
        elif line.startswith(RDATE_PREFIXES):
            self._report(
                DiagnosticKind.UNHANDLED_RDATE,
                event.uid,
                f'Unhandled rule "{line}" for event "{event.title}", skipping.',
            )
        else:
            self._report(
                DiagnosticKind.UNRECOGNIZED_LINE,
                event.uid,
                f'Unknown rule "{line}" for event "{event.title}", skipping.',
            )

    def _report(self, kind: DiagnosticKind, event_id: str, message: str):
        diagnostic = Diagnostic(kind, event_id, message)
        self.diagnostics.append(diagnostic)
        log_msg(str(diagnostic))
