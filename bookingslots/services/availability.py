"""
Application service for computing bookable slots.

The service coordinates reading work windows, pending appointments and
service durations from the store and delegates the actual availability
calculation to the domain-level ``SlotCalculator``. The store dependency
is described by a protocol so tests can swap in a stub.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Protocol, Sequence

from pendulum import DateTime

from ..domain.exceptions import AvailabilityUnavailableError, StorageError
from ..domain.models import (
    DEFAULT_BUFFER_MINUTES,
    DEFAULT_DURATION_MINUTES,
    DEFAULT_GRANULARITY_MINUTES,
    Appointment,
    SlotRequest,
    WorkWindow,
    day_bounds,
    parse_date,
)
from ..domain.slot_calculator import SlotCalculator

logger = logging.getLogger(__name__)


class AvailabilityStoreProtocol(Protocol):
    """Protocol describing the store reads needed by the availability service."""

    def list_appointments_in_range(self, start: DateTime, end: DateTime) -> List[Appointment]:
        """Return pending appointments starting within [start, end]."""

    def service_durations(self, service_ids: Sequence[int]) -> Dict[int, int]:
        """Return duration in minutes per known service id."""

    def work_windows_for_weekday(self, weekday: int) -> List[WorkWindow]:
        """Return configured windows for a weekday (Monday=0)."""


class AvailabilityService:
    """
    Orchestrates store reads and slot calculation for one date.
    """

    def __init__(
        self,
        store: AvailabilityStoreProtocol,
        slot_calculator: SlotCalculator,
        default_duration_minutes: int = DEFAULT_DURATION_MINUTES,
        default_buffer_minutes: int = DEFAULT_BUFFER_MINUTES,
        default_granularity_minutes: int = DEFAULT_GRANULARITY_MINUTES,
    ) -> None:
        self._store = store
        self._slot_calculator = slot_calculator
        self.default_duration_minutes = default_duration_minutes
        self.default_buffer_minutes = default_buffer_minutes
        self.default_granularity_minutes = default_granularity_minutes

    def build_request(
        self,
        date: str,
        duration_minutes: Optional[int] = None,
        buffer_minutes: Optional[int] = None,
        granularity_minutes: Optional[int] = None,
    ) -> SlotRequest:
        """
        Validate raw query input into a ``SlotRequest``.

        Missing minute fields take the configured defaults (30/15/15 unless
        overridden).

        Raises:
            InvalidRequestError: If the date or any minute field is invalid
        """
        day = parse_date(date)

        return SlotRequest(
            date=day,
            duration_minutes=self.default_duration_minutes if duration_minutes is None else duration_minutes,
            buffer_minutes=self.default_buffer_minutes if buffer_minutes is None else buffer_minutes,
            granularity_minutes=(
                self.default_granularity_minutes if granularity_minutes is None else granularity_minutes
            ),
        )

    def find_slots(self, request: SlotRequest) -> List[str]:
        """
        Read the day's data and compute the bookable slot starts.

        Raises:
            AvailabilityUnavailableError: If the store could not be read
        """
        try:
            windows = self._store.work_windows_for_weekday(request.date.weekday())
            day_start, day_end = day_bounds(request.date)
            appointments = self._store.list_appointments_in_range(day_start, day_end)
            refs = [ref for appointment in appointments for ref in appointment.service_ids]
            durations = self._store.service_durations(refs)
        except StorageError as exc:
            logger.error("Could not compute availability for %s: %s", request.date, exc)
            raise AvailabilityUnavailableError(
                f"Availability for {request.date.isoformat()} is temporarily unavailable"
            ) from exc

        slots = self._slot_calculator.find_available_slots(
            request=request,
            windows=windows,
            appointments=appointments,
            service_durations=durations,
        )

        logger.debug(
            "%d slot(s) on %s for %d min (+%d buffer, step %d) across %d window(s), %d pending appointment(s)",
            len(slots),
            request.date,
            request.duration_minutes,
            request.buffer_minutes,
            request.granularity_minutes,
            len(windows) or 1,
            len(appointments),
        )
        return slots

