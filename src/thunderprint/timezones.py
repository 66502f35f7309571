from datetime import datetime, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .models import UnknownTimezoneError

FLOATING = "floating"
VTIMEZONE_MARKER = "BEGIN:VTIMEZONE"


class TimezoneResolver:
    """
    Shift stored UTC instants into the wall-clock time of a named zone.

    Zone lookups are cached per resolver; unknown names are cached as
    ``None`` so a repeated bad name fails without another lookup.
    """

    def __init__(self):
        self._zones: dict[str, Optional[tzinfo]] = {}

    def zone(self, zone_name: str) -> Optional[tzinfo]:
        if zone_name not in self._zones:
            try:
                self._zones[zone_name] = ZoneInfo(zone_name)
            except (ZoneInfoNotFoundError, ValueError, OSError):
                self._zones[zone_name] = None
        return self._zones[zone_name]

    def resolve(self, instant: datetime, zone_name: str) -> datetime:
        if not zone_name:
            raise UnknownTimezoneError(zone_name)
        if zone_name == FLOATING:
            return instant
        if zone_name.startswith(VTIMEZONE_MARKER):
            # embedded definitions are not interpreted yet
            return instant

        zone = self.zone(zone_name)
        if zone is None:
            raise UnknownTimezoneError(zone_name)

        offset = instant.replace(tzinfo=timezone.utc).astimezone(zone).utcoffset()
        return instant + offset


_default_resolver = TimezoneResolver()


def resolve(instant: datetime, zone_name: str) -> datetime:
    return _default_resolver.resolve(instant, zone_name)
