"""
Domain models for booking, work windows and slot calculations.

All instants are naive (local wall-clock) pendulum DateTimes. The system
never attaches a timezone, so a slot computed for 09:00 is booked at 09:00.
"""

from dataclasses import dataclass, field
from datetime import date as Date, time
from typing import List, Optional, Tuple

import pendulum
from pendulum import DateTime

from .exceptions import InvalidRequestError

DEFAULT_SERVICE_DURATION_MINUTES = 30

DEFAULT_DURATION_MINUTES = 30
DEFAULT_BUFFER_MINUTES = 15
DEFAULT_GRANULARITY_MINUTES = 15

# Upper bound for any minute field of a request (one full day)
MAX_REQUEST_MINUTES = 24 * 60

SLOT_FORMAT = "YYYY-MM-DD[T]HH:mm:ss"


def parse_date(value: str) -> Date:
    """
    Parse a ``YYYY-MM-DD`` string into a calendar date.

    Raises:
        InvalidRequestError: If the string is not a valid date
    """
    try:
        day = pendulum.from_format(value.strip(), "YYYY-MM-DD").date()
    except (ValueError, AttributeError) as exc:
        raise InvalidRequestError(f"Invalid date '{value}', expected YYYY-MM-DD") from exc

    # Slots are formatted with an unpadded year token
    if day.year < 1000:
        raise InvalidRequestError(f"Invalid date '{value}', year must be between 1000 and 9999")
    return day


def parse_time_of_day(value: str) -> time:
    """Parse an ``HH:MM`` string into a time of day."""
    try:
        hour_str, minute_str = value.strip().split(":")
        return time(hour=int(hour_str), minute=int(minute_str))
    except (ValueError, AttributeError) as exc:
        raise InvalidRequestError(f"Invalid time '{value}', expected HH:MM") from exc


def format_time_of_day(value: time) -> str:
    return f"{value.hour:02d}:{value.minute:02d}"


def at(day: Date, time_of_day: time) -> DateTime:
    """Combine a date and a time of day into a naive DateTime."""
    return pendulum.naive(
        day.year, day.month, day.day,
        time_of_day.hour, time_of_day.minute, time_of_day.second
    )


def format_slot(instant: DateTime) -> str:
    """Format an instant as a local date-time string without offset."""
    return instant.format(SLOT_FORMAT)


def day_bounds(day: Date) -> Tuple[DateTime, DateTime]:
    """The full calendar day, 00:00:00 through 23:59:59 inclusive."""
    return at(day, time(0, 0, 0)), at(day, time(23, 59, 59))


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable half-open time range [start, end).

    Invariant: end must not precede start. Zero-length ranges are allowed
    so that a zero-minute candidate can still be tested for conflicts.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.end < self.start:
            raise ValueError(f"Start time {self.start} must not be after end time {self.end}")

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return int((self.end - self.start).total_seconds() / 60)

    def overlaps(self, other: "TimeRange") -> bool:
        """
        Check if this range overlaps with another.

        Touching ranges do not overlap: [09:00, 10:00) and [10:00, 11:00)
        are disjoint.
        """
        return not (self.end <= other.start or self.start >= other.end)

    def __str__(self) -> str:
        return f"{self.start.format('DD.MM.YYYY HH:mm')} - {self.end.format('HH:mm')}"


@dataclass(frozen=True)
class WorkWindow:
    """
    A configured time-of-day interval during which bookings are allowed.

    Weekday uses Monday=0 .. Sunday=6.
    """
    weekday: int
    start: time
    end: time
    id: Optional[int] = None

    def __post_init__(self):
        if not 0 <= self.weekday <= 6:
            raise InvalidRequestError(f"Weekday must be between 0 and 6, got {self.weekday}")
        if self.start >= self.end:
            raise InvalidRequestError(
                f"Window start {format_time_of_day(self.start)} must be before "
                f"end {format_time_of_day(self.end)}"
            )

    def on(self, day: Date) -> TimeRange:
        """Get the concrete range of this window on a specific date."""
        return TimeRange(start=at(day, self.start), end=at(day, self.end))


@dataclass
class Client:
    name: str
    phone: str
    email: Optional[str] = None
    id: Optional[int] = None


@dataclass
class Service:
    """A catalog entry with a price and a duration in minutes."""
    name: str
    price: float
    duration_minutes: int = DEFAULT_SERVICE_DURATION_MINUTES
    id: Optional[int] = None


@dataclass
class Appointment:
    """
    A booking binding a client to one or more services at a start instant.

    Only appointments that are not completed occupy the calendar.
    """
    client_id: int
    start: DateTime
    service_ids: List[int] = field(default_factory=list)
    price: float = 0.0
    completed: bool = False
    id: Optional[int] = None


@dataclass(frozen=True)
class SlotRequest:
    """
    Parameters of an availability query for one calendar date.
    """
    date: Date
    duration_minutes: int = DEFAULT_DURATION_MINUTES
    buffer_minutes: int = DEFAULT_BUFFER_MINUTES
    granularity_minutes: int = DEFAULT_GRANULARITY_MINUTES

    def __post_init__(self):
        for name in ("duration_minutes", "buffer_minutes", "granularity_minutes"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidRequestError(f"{name} must be an integer, got {value!r}")
            if value < 0:
                raise InvalidRequestError(f"{name} must not be negative, got {value}")
            if value > MAX_REQUEST_MINUTES:
                raise InvalidRequestError(f"{name} must be at most {MAX_REQUEST_MINUTES}, got {value}")
        # A zero step would never advance the scan cursor
        if self.granularity_minutes == 0:
            raise InvalidRequestError("granularity_minutes must be greater than zero")
