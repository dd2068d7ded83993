"""
Core business logic for calculating bookable slot start times.

This is the heart of the application - pure domain logic without any
external dependencies (no database, no HTTP, no I/O). Callers fetch the
day's work windows, pending appointments and service durations, and hand
them over already loaded.
"""

from datetime import date as Date, time
from typing import Iterable, List, Mapping, Sequence

from pendulum import DateTime

from .exceptions import InvalidRequestError
from .models import (
    DEFAULT_SERVICE_DURATION_MINUTES,
    Appointment,
    SlotRequest,
    TimeRange,
    WorkWindow,
    at,
    format_slot,
)

DEFAULT_WINDOW_START = time(8, 0)
DEFAULT_WINDOW_END = time(18, 0)


def _shift(instant: DateTime, minutes: int) -> DateTime:
    """Move an instant forward, rejecting results outside the calendar."""
    try:
        return instant.add(minutes=minutes)
    except (OverflowError, ValueError) as exc:
        raise InvalidRequestError(
            f"{instant.to_datetime_string()} plus {minutes} minutes is outside the supported calendar"
        ) from exc


class SlotCalculator:
    """
    Calculates bookable start times for one date.

    Algorithm:
    1. Resolve the work windows for the date's weekday (or the fallback window)
    2. Turn every pending appointment of the day into an occupied interval,
       padded with the buffer after its end
    3. Walk each window with a fixed step, accepting a start when its
       padded candidate interval is disjoint from every occupied interval
    4. Concatenate accepted starts in window order
    """

    def __init__(
        self,
        fallback_start: time = DEFAULT_WINDOW_START,
        fallback_end: time = DEFAULT_WINDOW_END
    ):
        self.fallback_start = fallback_start
        self.fallback_end = fallback_end

    def find_available_slots(
        self,
        request: SlotRequest,
        windows: Sequence[WorkWindow],
        appointments: Iterable[Appointment],
        service_durations: Mapping[int, int]
    ) -> List[str]:
        """
        Find all bookable slot starts for the requested date.

        Args:
            request: Date, duration, buffer and granularity of the query
            windows: Work windows configured for the date's weekday
            appointments: Pending appointments starting on that date
            service_durations: Duration in minutes per service id

        Returns:
            Chronological (per window) list of ``YYYY-MM-DDTHH:MM:SS`` strings
        """
        ranges = self.windows_for(request.date, windows)
        occupied = self.occupied_intervals(
            appointments,
            service_durations,
            request.buffer_minutes
        )
        starts = self.scan(
            ranges,
            occupied,
            request.duration_minutes,
            request.buffer_minutes,
            request.granularity_minutes
        )
        return [format_slot(start) for start in starts]

    def windows_for(self, day: Date, windows: Sequence[WorkWindow]) -> List[TimeRange]:
        """
        Get the concrete scan ranges for a date.

        Windows configured for other weekdays are ignored. When none match,
        the fallback window is used for this date only.
        """
        weekday = day.weekday()
        matching = sorted(
            (w for w in windows if w.weekday == weekday),
            key=lambda w: (w.start, w.end)
        )

        if not matching:
            return [TimeRange(start=at(day, self.fallback_start), end=at(day, self.fallback_end))]

        return [w.on(day) for w in matching]

    def occupied_intervals(
        self,
        appointments: Iterable[Appointment],
        service_durations: Mapping[int, int],
        buffer_minutes: int
    ) -> List[TimeRange]:
        """
        Convert pending appointments into occupied intervals.

        The buffer is appended after the appointment only; the start is never
        moved earlier. Unknown services count as zero minutes, and a total of
        zero falls back to the default service duration.

        Raises:
            InvalidRequestError: If an appointment would end past the last
                representable date
        """
        occupied: List[TimeRange] = []

        for appointment in appointments:
            if appointment.completed:
                continue

            total = sum(service_durations.get(ref, 0) for ref in appointment.service_ids)
            if total == 0:
                total = DEFAULT_SERVICE_DURATION_MINUTES

            occupied.append(
                TimeRange(
                    start=appointment.start,
                    end=_shift(appointment.start, total + buffer_minutes)
                )
            )

        return occupied

    def scan(
        self,
        windows: Sequence[TimeRange],
        occupied: Sequence[TimeRange],
        duration_minutes: int,
        buffer_minutes: int,
        granularity_minutes: int
    ) -> List[DateTime]:
        """
        Probe each window at a fixed step and keep the conflict-free starts.

        Only the unpadded duration has to fit in the window; the trailing
        buffer may extend past the window end. The cursor always advances by
        one step, even after a rejection.

        Raises:
            InvalidRequestError: If a padded interval runs past the last
                representable date
        """
        if granularity_minutes <= 0:
            raise ValueError("granularity_minutes must be greater than zero")

        slots: List[DateTime] = []

        for window in windows:
            # Offsets from the window start whose unpadded duration still fits
            last_offset = window.duration_minutes() - duration_minutes

            for offset in range(0, last_offset + 1, granularity_minutes):
                cursor = _shift(window.start, offset)
                need = TimeRange(
                    start=cursor,
                    end=_shift(cursor, duration_minutes + buffer_minutes)
                )

                if not any(need.overlaps(busy) for busy in occupied):
                    slots.append(cursor)

        return slots
