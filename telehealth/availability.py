"""Availability policies: turning platform slots into a day's bookable times.

``TrustRemoteAvailability`` reports whatever the platform computed and
explains an empty day.  ``FallbackGridAvailability`` fabricates a weekday
grid when the platform has nothing; those slots are never checked against
real bookings, so the grid is demo-only and refused in production (see
``Settings.validate_startup``).
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from telehealth.platforms.base import RemoteSlot

log = logging.getLogger("telehealth.availability")


def isoformat_utc(dt: datetime) -> str:
    """``2025-06-02T09:00:00Z`` style timestamp."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def day_range(day: date, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """UTC bounds of 00:00:00 to 23:59:59 on ``day`` in ``tz``."""
    start = datetime.combine(day, time(0, 0, 0), tzinfo=tz)
    end = datetime.combine(day, time(23, 59, 59), tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def format_display_date(dt: datetime, tz: ZoneInfo) -> str:
    local = dt.astimezone(tz)
    return f"{local:%A, %B} {local.day}, {local.year}"


def format_clock_time(dt: datetime, tz: ZoneInfo) -> str:
    local = dt.astimezone(tz)
    return f"{local.strftime('%I').lstrip('0')}:{local:%M %p} {local.tzname()}"


def format_display_time(dt: datetime, tz: ZoneInfo) -> str:
    """e.g. ``Monday, June 2, 2025 at 9:00 AM EDT``."""
    return f"{format_display_date(dt, tz)} at {format_clock_time(dt, tz)}"


@dataclass
class AvailabilitySlot:
    start_at: datetime
    display_time: str
    team_member_id: str = ""
    duration_minutes: int = 0

    def to_dict(self) -> dict:
        return {
            "startAt": isoformat_utc(self.start_at),
            "time": self.display_time,
            "teamMemberId": self.team_member_id,
            "durationMinutes": self.duration_minutes,
        }


@dataclass
class AvailabilityResult:
    day: date
    slots: list[AvailabilitySlot] = field(default_factory=list)
    message: str = ""
    fallback: bool = False

    def to_dict(self) -> dict:
        data: dict = {
            "date": self.day.isoformat(),
            "availabilities": [s.to_dict() for s in self.slots],
        }
        if self.message:
            data["message"] = self.message
        if self.fallback:
            data["fallback"] = True
        return data


class AvailabilityPolicy(ABC):
    """Maps remote slots for one day into an ``AvailabilityResult``."""

    def __init__(self, tz: ZoneInfo) -> None:
        self._tz = tz

    def resolve(
        self,
        day: date,
        remote_slots: list[RemoteSlot],
        provider_id: str,
        duration_minutes: int,
    ) -> AvailabilityResult:
        slots = [
            AvailabilitySlot(
                start_at=s.start_at,
                display_time=format_display_time(s.start_at, self._tz),
                team_member_id=s.team_member_id or provider_id,
                duration_minutes=s.duration_minutes or duration_minutes,
            )
            for s in remote_slots
            if s.start_at.astimezone(self._tz).date() == day
        ]
        dropped = len(remote_slots) - len(slots)
        if dropped:
            log.warning("Dropped %d slot(s) outside %s", dropped, day.isoformat())

        if slots:
            slots.sort(key=lambda s: s.start_at)
            return AvailabilityResult(day=day, slots=slots)
        return self._when_empty(day, provider_id, duration_minutes)

    @abstractmethod
    def _when_empty(
        self, day: date, provider_id: str, duration_minutes: int
    ) -> AvailabilityResult:
        """Result to return when the platform has no open slots."""


class TrustRemoteAvailability(AvailabilityPolicy):
    def _when_empty(
        self, day: date, provider_id: str, duration_minutes: int
    ) -> AvailabilityResult:
        return AvailabilityResult(
            day=day,
            message=(
                f"No appointments are available on {day:%A, %B} {day.day}. "
                "Please choose another date."
            ),
        )


class FallbackGridAvailability(AvailabilityPolicy):
    """Weekday grid between ``start_hour`` and ``end_hour`` (demo only)."""

    def __init__(
        self,
        tz: ZoneInfo,
        start_hour: int = 9,
        end_hour: int = 17,
        slot_minutes: int = 60,
    ) -> None:
        if not 0 <= start_hour < end_hour <= 23:
            raise ValueError(f"Invalid fallback hours: {start_hour}-{end_hour}")
        if slot_minutes <= 0:
            raise ValueError(f"Invalid fallback slot length: {slot_minutes} minutes")
        super().__init__(tz)
        self._start_hour = start_hour
        self._end_hour = end_hour
        self._slot_minutes = slot_minutes

    def _when_empty(
        self, day: date, provider_id: str, duration_minutes: int
    ) -> AvailabilityResult:
        if day.weekday() >= 5:
            return AvailabilityResult(
                day=day,
                message="No appointments are available on weekends. Please choose a weekday.",
            )

        log.warning("No remote availability on %s, returning fallback grid", day.isoformat())
        slots: list[AvailabilitySlot] = []
        cursor = datetime.combine(day, time(self._start_hour), tzinfo=self._tz)
        end = datetime.combine(day, time(self._end_hour), tzinfo=self._tz)
        step = timedelta(minutes=self._slot_minutes)
        while cursor < end:
            start_utc = cursor.astimezone(timezone.utc)
            slots.append(
                AvailabilitySlot(
                    start_at=start_utc,
                    display_time=format_display_time(start_utc, self._tz),
                    team_member_id=provider_id,
                    duration_minutes=duration_minutes,
                )
            )
            cursor += step

        return AvailabilityResult(
            day=day,
            slots=slots,
            message=(
                "Demo availability only: these times are not checked against "
                "existing bookings."
            ),
            fallback=True,
        )
