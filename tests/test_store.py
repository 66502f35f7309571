"""
Tests for reading events from a Thunderbird storage database.
"""

import sqlite3
from datetime import date, datetime

import pytest

from thunderprint.models import DiagnosticKind, StoreError, UnknownTimezoneError
from thunderprint.store import CalendarStore, read_calendar_names

from conftest import HOME_CALENDAR_ID, TASKS_CALENDAR_ID


@pytest.mark.integration
class TestCalendarStore:
    def test_events_from_profile(self, storage_profile):
        storage_profile.add_event(
            "b-standup",
            "Standup",
            "2024-01-01T08:00:00",
            "2024-01-01T08:15:00",
            tz="Europe/Berlin",
            lines=("RRULE:FREQ=DAILY;COUNT=5", "EXDATE:20240103T080000Z"),
        )
        storage_profile.add_event(
            "a-trip",
            "Trip",
            "2024-01-10T00:00:00",
            "2024-01-13T00:00:00",
            all_day=True,
        )
        storage_profile.add_event(
            "c-call",
            "Call mum",
            "2024-01-02T17:00:00",
            "2024-01-02T17:00:00",
            calendar_id=TASKS_CALENDAR_ID,
        )

        store = CalendarStore.from_profile(storage_profile.path)
        events = list(store.events())

        assert [e.uid for e in events] == ["a-trip", "b-standup", "c-call"]
        trip, standup, call = events
        assert trip.all_day and trip.calendar_name == "Home"
        assert standup.start == datetime(2024, 1, 1, 9, 0)
        assert [r.text for r in standup.rules] == ["RRULE:FREQ=DAILY;COUNT=5"]
        assert [p.day for p in standup.exceptions] == [date(2024, 1, 3)]
        assert standup.stamp == datetime(2023, 12, 1, 8, 0)
        assert call.calendar_name == "Tasks"
        assert store.diagnostics == []

    def test_override_rows_follow_their_series(self, storage_profile):
        storage_profile.add_event(
            "ev",
            "Moved",
            "2024-01-03T15:00:00",
            "2024-01-03T16:00:00",
            recurrence_id="2024-01-03T10:00:00",
        )
        storage_profile.add_event(
            "ev",
            "Series",
            "2024-01-01T10:00:00",
            "2024-01-01T11:00:00",
            lines=("RRULE:FREQ=DAILY;COUNT=5", "EXDATE:20240105T100000"),
        )

        events = list(CalendarStore.from_profile(storage_profile.path).events())

        assert [e.title for e in events] == ["Series", "Moved"]
        series, moved = events
        assert len(series.rules) == 1 and len(series.exceptions) == 1
        assert moved.recurrence_id == datetime(2024, 1, 3, 10, 0)
        assert moved.rules == [] and moved.exceptions == []

    def test_untitled_and_bad_rules_are_diagnosed(self, storage_profile):
        storage_profile.add_event("1", None, "2024-01-01T10:00:00", "2024-01-01T11:00:00")
        storage_profile.add_event(
            "2",
            "Gym",
            "2024-01-01T18:00:00",
            "2024-01-01T19:00:00",
            lines=("RRULE:FREQ=SOMETIMES",),
        )

        store = CalendarStore.from_profile(storage_profile.path)
        events = list(store.events())

        assert [e.title for e in events] == ["Gym"]
        assert [d.kind for d in store.diagnostics] == [
            DiagnosticKind.NULL_TITLE,
            DiagnosticKind.MALFORMED_RULE,
        ]

    def test_unknown_timezone_propagates(self, storage_profile):
        storage_profile.add_event(
            "1", "Odd", "2024-01-01T10:00:00", "2024-01-01T11:00:00", tz="Atlantis/Capital"
        )
        with pytest.raises(UnknownTimezoneError):
            list(CalendarStore.from_profile(storage_profile.path).events())

    def test_without_prefs_names_are_empty(self, storage_profile):
        storage_profile.add_event("1", "Lunch", "2024-01-01T12:00:00", "2024-01-01T13:00:00")
        store = CalendarStore(storage_profile.db_path)
        (event,) = list(store.events())
        assert event.calendar_name == ""
        assert [d.kind for d in store.diagnostics] == [DiagnosticKind.MISSING_CALENDAR]

    def test_missing_database(self, tmp_path):
        store = CalendarStore(tmp_path / "nope.sqlite")
        with pytest.raises(StoreError):
            list(store.events())

    def test_database_is_opened_read_only(self, storage_profile):
        conn = CalendarStore.from_profile(storage_profile.path).connect()
        try:
            with pytest.raises(sqlite3.OperationalError):
                conn.execute("DELETE FROM cal_events")
        finally:
            conn.close()


@pytest.mark.unit
class TestCalendarNames:
    def test_registry_names(self, storage_profile):
        assert read_calendar_names(storage_profile.prefs_path) == {
            HOME_CALENDAR_ID: "Home",
            TASKS_CALENDAR_ID: "Tasks",
        }

    def test_missing_prefs(self, tmp_path):
        with pytest.raises(StoreError):
            read_calendar_names(tmp_path / "prefs.js")
