"""
Lane layout for all-day events.

Within one week-row every all-day event keeps the same vertical lane on
each day it spans, so that it reads as a continuous bar. Lanes vacated
below a still-running event stay in place as filler.
"""

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import TYPE_CHECKING, Iterable, Iterator, Optional

from .models import Occurrence

if TYPE_CHECKING:
    from .expander import EventCalendar


def day_sort_key(occurrence: Occurrence):
    """All-day first, then start, then title."""
    return (not occurrence.event.all_day, occurrence.start, occurrence.event.title)


def sort_day_occurrences(occurrences: Iterable[Occurrence]) -> list[Occurrence]:
    return sorted(occurrences, key=day_sort_key)


def lane_label(
    occurrence: Optional[Occurrence],
    day: date,
    filler: str = "-",
    left_mark: str = "< ",
    right_mark: str = " >",
) -> str:
    if occurrence is None:
        return filler
    label = occurrence.event.title
    if occurrence.spans_multiple_days:
        if occurrence.start.date() < day:
            label = f"{left_mark}{label}"
        if occurrence.last_day > day:
            label = f"{label}{right_mark}"
    return label


class LaneAssignment:
    def __init__(self):
        self.lanes: list[Optional[Occurrence]] = []
        self.day: Optional[date] = None

    def reset(self):
        self.lanes = []
        self.day = None

    def lane_of(self, uid: str) -> Optional[int]:
        for i, occupant in enumerate(self.lanes):
            if occupant is not None and occupant.event.uid == uid:
                return i
        return None

    def advance(
        self, day: date, active: Iterable[Occurrence]
    ) -> list[Optional[Occurrence]]:
        """
        Move the layout to ``day``; ``active`` holds the all-day
        occurrences touching it, in display order.
        """
        active = list(active)
        present = {occurrence.event.uid for occurrence in active}

        for i, occupant in enumerate(self.lanes):
            if occupant is not None and occupant.event.uid not in present:
                self.lanes[i] = None

        while self.lanes and self.lanes[-1] is None:
            self.lanes.pop()

        free = 0
        for occurrence in active:
            i = self.lane_of(occurrence.event.uid)
            if i is not None:
                self.lanes[i] = occurrence
                continue
            while free < len(self.lanes) and self.lanes[free] is not None:
                free += 1
            if free == len(self.lanes):
                self.lanes.append(occurrence)
            else:
                self.lanes[free] = occurrence

        self.day = day
        return list(self.lanes)

    def labels(self, filler="-", left_mark="< ", right_mark=" >") -> list[str]:
        return [
            lane_label(occupant, self.day, filler, left_mark, right_mark)
            for occupant in self.lanes
        ]


@dataclass
class DayLayout:
    day: date
    lanes: list[Optional[Occurrence]] = field(default_factory=list)
    labels: list[str] = field(default_factory=list)
    timed: list[Occurrence] = field(default_factory=list)


def month_layout(
    calendar: "EventCalendar",
    month: date,
    week_start: int = 0,
    filler: str = "-",
    left_mark: str = "< ",
    right_mark: str = " >",
) -> Iterator[DayLayout]:
    """
    Walk the days of ``month``. Lanes start empty on the first of the
    month and at every ``week_start`` weekday (0 = Monday).
    """
    lanes = LaneAssignment()
    day = month.replace(day=1)
    while day.month == month.month:
        if day.weekday() == week_start:
            lanes.reset()

        occurrences = calendar.day_occurrences(day)
        all_day = [o for o in occurrences if o.event.all_day]
        timed = [o for o in occurrences if not o.event.all_day]

        yield DayLayout(
            day=day,
            lanes=lanes.advance(day, all_day),
            labels=lanes.labels(filler, left_mark, right_mark),
            timed=timed,
        )
        day += timedelta(days=1)
