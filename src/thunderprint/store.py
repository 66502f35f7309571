import re
import sqlite3
from contextlib import closing
from pathlib import Path
from typing import Iterator, Optional

from .models import CalendarEvent, Diagnostic, StoreError
from .reader import EventReader
from .shared import log_msg
from .timezones import TimezoneResolver

DATABASE_PATH = Path("calendar-data") / "local.sqlite"
PREFS_PATH = Path("prefs.js")

CALENDAR_NAME_REGEX = re.compile(
    r'user_pref\("calendar\.registry\.([a-zA-Z0-9-]+)\.name",\s*"([^"]+)"\)'
)

# Series rows come before their override rows (NULL sorts first), and
# only series rows are joined with recurrence lines.
EVENTS_QUERY = """
    SELECT e.cal_id, e.title, e.event_start, e.event_end, r.icalString,
           e.id, e.flags, e.event_start_tz, e.event_end_tz,
           e.recurrence_id, e.event_stamp
    FROM cal_events e
    LEFT OUTER JOIN cal_recurrence r
        ON e.id = r.item_id AND e.cal_id = r.cal_id AND e.recurrence_id IS NULL
    ORDER BY e.id, e.recurrence_id
"""


def read_calendar_names(prefs_path: str | Path) -> dict[str, str]:
    """
    Map calendar ids to display names using the calendar registry entries
    of a Thunderbird ``prefs.js``.
    """
    try:
        text = Path(prefs_path).read_text(encoding="utf-8")
    except OSError as e:
        raise StoreError(f"Cannot read prefs file {prefs_path}: {e}") from e
    calendars = {}
    for calendar_id, name in CALENDAR_NAME_REGEX.findall(text):
        calendars[calendar_id.lower()] = name
    return calendars


class CalendarStore:
    """
    Read-only access to the calendar storage of a Thunderbird profile.
    """

    def __init__(
        self,
        db_path: str | Path,
        prefs_path: str | Path | None = None,
        resolver: Optional[TimezoneResolver] = None,
    ):
        self.db_path = Path(db_path)
        self.prefs_path = Path(prefs_path) if prefs_path else None
        self.resolver = resolver or TimezoneResolver()
        self.diagnostics: list[Diagnostic] = []
        self._calendars: Optional[dict[str, str]] = None

    @classmethod
    def from_profile(cls, profile_path: str | Path, **kwargs) -> "CalendarStore":
        profile = Path(profile_path).expanduser()
        prefs = profile / PREFS_PATH
        return cls(profile / DATABASE_PATH, prefs if prefs.exists() else None, **kwargs)

    def calendar_names(self) -> dict[str, str]:
        if self._calendars is None:
            if self.prefs_path is None:
                self._calendars = {}
            else:
                self._calendars = read_calendar_names(self.prefs_path)
                log_msg(
                    f"found {len(self._calendars)} calendars in {self.prefs_path}"
                )
        return self._calendars

    def connect(self) -> sqlite3.Connection:
        if not self.db_path.is_file():
            raise StoreError(f"Calendar database not found: {self.db_path}")
        uri = f"{self.db_path.resolve().as_uri()}?mode=ro"
        try:
            return sqlite3.connect(uri, uri=True)
        except sqlite3.Error as e:
            raise StoreError(f"Cannot open {self.db_path}: {e}") from e

    def events(self) -> Iterator[CalendarEvent]:
        """
        Yield the assembled events of every calendar. Diagnostics of the
        pass are available in ``diagnostics`` as the events are read.
        """
        calendars = self.calendar_names()
        with closing(self.connect()) as conn:
            try:
                cursor = conn.execute(EVENTS_QUERY)
            except sqlite3.Error as e:
                raise StoreError(f"Cannot query {self.db_path}: {e}") from e

            reader = EventReader(cursor, calendars, self.resolver)
            self.diagnostics = reader.diagnostics
            count = 0
            while reader.read():
                yield reader.next()
                count += 1

        log_msg(
            f"read {count} events from {self.db_path} with {len(self.diagnostics)} diagnostics"
        )
