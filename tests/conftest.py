"""
Shared pytest fixtures for thunderprint tests.

This module provides common fixtures used across all test files, including:
- An isolated workspace home (config and logs)
- Time freezing utilities
- Row and occurrence factories
- A temporary Thunderbird profile with a storage database
"""

import sqlite3

import pytest
from datetime import date, datetime, timedelta
from freezegun import freeze_time

from thunderprint.models import CalendarEvent, ItemFlags, Occurrence, RawRow
from thunderprint.shared import EPOCH

HOME_CALENDAR_ID = "5f3c2a9e-0b7d-4c1e-9a6f-2d8e1b4c7a90"
TASKS_CALENDAR_ID = "a1b2c3d4-e5f6-4789-8abc-def012345678"


def micro(value: str | datetime) -> int:
    """Microseconds since the epoch for an ISO string or naive datetime."""
    dt = datetime.fromisoformat(value) if isinstance(value, str) else value
    return int((dt - EPOCH).total_seconds()) * 1_000_000


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """
    Point the workspace home at a temporary directory so that config.toml
    and the diagnostic logs never touch the real user directory.
    """
    home = tmp_path / "tp-home"
    monkeypatch.setenv("THUNDERPRINT_HOME", str(home))
    monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
    return home


@pytest.fixture
def frozen_time():
    """
    Provides a freezegun context that freezes time to 2024-01-15 12:00:00.
    """
    with freeze_time("2024-01-15 12:00:00") as frozen:
        yield frozen


@pytest.fixture
def make_row():
    """
    Returns a factory for RawRow values with sensible defaults.

    Usage:
        def test_something(make_row):
            row = make_row("1", payload="RRULE:FREQ=DAILY;COUNT=3")
    """

    def _make(
        event_id: str,
        title: str | None = "Event",
        start: str = "2024-01-01T10:00:00",
        end: str = "2024-01-01T11:00:00",
        payload: str | None = None,
        flags: int = 0,
        start_tz: str = "floating",
        end_tz: str | None = None,
        recurrence_id: str | None = None,
        stamp: str | None = None,
        calendar_id: str = HOME_CALENDAR_ID,
    ) -> RawRow:
        return RawRow(
            calendar_id=calendar_id,
            title=title,
            start=micro(start),
            end=micro(end),
            recurrence_payload=payload,
            event_id=event_id,
            flags=flags,
            start_tz=start_tz,
            end_tz=end_tz or start_tz,
            recurrence_id=micro(recurrence_id) if recurrence_id else None,
            stamp=micro(stamp) if stamp else None,
        )

    return _make


@pytest.fixture
def calendars():
    return {HOME_CALENDAR_ID: "Home", TASKS_CALENDAR_ID: "Tasks"}


@pytest.fixture
def make_event():
    """Returns a factory for CalendarEvent values."""

    def _make(
        uid: str,
        title: str | None = None,
        start: str = "2024-01-01T00:00:00",
        days: int = 1,
        hours: float | None = None,
        all_day: bool = True,
        calendar_name: str = "Home",
    ) -> CalendarEvent:
        start_dt = datetime.fromisoformat(start)
        extent = timedelta(hours=hours) if hours is not None else timedelta(days=days)
        return CalendarEvent(
            uid=uid,
            title=title or uid,
            calendar_name=calendar_name,
            start=start_dt,
            end=start_dt + extent,
            all_day=all_day,
        )

    return _make


@pytest.fixture
def make_occurrence(make_event):
    """
    Returns a factory for all-day occurrences spanning ``days`` days from
    ``first``.
    """

    def _make(uid: str, first: date, days: int = 1, title: str | None = None):
        event = make_event(uid, title, start=first.isoformat(), days=days)
        return Occurrence(event, event.start, event.end)

    return _make


class StorageProfile:
    """
    A Thunderbird-like profile directory holding prefs.js and
    calendar-data/local.sqlite with the tables the event query reads.
    """

    def __init__(self, path):
        self.path = path
        self.db_path = path / "calendar-data" / "local.sqlite"
        self.prefs_path = path / "prefs.js"
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(self.db_path)
        self.conn.executescript(
            """
            CREATE TABLE cal_events (
                cal_id TEXT, id TEXT, time_created INTEGER, last_modified INTEGER,
                title TEXT, priority INTEGER, privacy TEXT, ical_status TEXT,
                flags INTEGER, event_start INTEGER, event_end INTEGER,
                event_stamp INTEGER, event_start_tz TEXT, event_end_tz TEXT,
                recurrence_id INTEGER, recurrence_id_tz TEXT,
                alarm_last_ack INTEGER, offline_journal INTEGER
            );
            CREATE TABLE cal_recurrence (
                item_id TEXT, cal_id TEXT, icalString TEXT
            );
            """
        )

    def add_event(
        self,
        event_id: str,
        title: str | None,
        start: str,
        end: str,
        tz: str = "floating",
        all_day: bool = False,
        recurrence_id: str | None = None,
        calendar_id: str = HOME_CALENDAR_ID,
        lines: tuple[str, ...] = (),
    ):
        self.conn.execute(
            """
            INSERT INTO cal_events (cal_id, id, title, flags, event_start,
                event_end, event_stamp, event_start_tz, event_end_tz, recurrence_id)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                calendar_id,
                event_id,
                title,
                int(ItemFlags.ALL_DAY) if all_day else 0,
                micro(start),
                micro(end),
                micro("2023-12-01T08:00:00"),
                tz,
                tz,
                micro(recurrence_id) if recurrence_id else None,
            ),
        )
        for line in lines:
            self.conn.execute(
                "INSERT INTO cal_recurrence (item_id, cal_id, icalString) VALUES (?, ?, ?)",
                (event_id, calendar_id, f"{line}\n"),
            )
        self.conn.commit()

    def write_prefs(self, calendars: dict[str, str]):
        lines = ['// Mozilla User Preferences', 'user_pref("browser.startup.page", 3);']
        for calendar_id, name in calendars.items():
            lines.append(f'user_pref("calendar.registry.{calendar_id}.name", "{name}");')
            lines.append(f'user_pref("calendar.registry.{calendar_id}.type", "storage");')
        self.prefs_path.write_text("\n".join(lines) + "\n", encoding="utf-8")

    def close(self):
        self.conn.close()


@pytest.fixture
def storage_profile(tmp_path, calendars):
    """
    Provides a profile directory with an empty storage database and a
    prefs.js naming the Home and Tasks calendars.
    """
    profile = StorageProfile(tmp_path / "abcd.default")
    profile.write_prefs(calendars)
    yield profile
    profile.close()
