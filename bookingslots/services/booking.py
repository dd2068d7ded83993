"""
Application service for committing appointments.

The commit guard is weaker than the availability scan: it only refuses a
start instant that exactly equals the start of another pending
appointment. Interval overlap is checked by the scan, not here.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from numbers import Real
from typing import Callable, List, Optional, Sequence

import pendulum
from pendulum import DateTime

from ..adapters.sqlite_store import BookingStore
from ..domain.exceptions import (
    AppointmentConflictError,
    InvalidRequestError,
)
from ..domain.models import Appointment

logger = logging.getLogger(__name__)

NAIVE_FORMATS = ("YYYY-MM-DD HH:mm:ss", "YYYY-MM-DD[T]HH:mm:ss", "YYYY-MM-DD HH:mm", "YYYY-MM-DD[T]HH:mm")


def local_now() -> DateTime:
    """Current local wall-clock time, without timezone."""
    return pendulum.now().naive()


def parse_start(value) -> DateTime:
    """
    Parse an appointment start into a naive local DateTime.

    Accepted inputs:
    - numeric epoch seconds, read as UTC wall-clock
    - RFC 3339 / ISO 8601 strings with an offset; the offset is dropped
      and the wall-clock part is kept
    - naive ``YYYY-MM-DD HH:MM[:SS]`` strings, with a space or ``T``

    Raises:
        InvalidRequestError: For any other input
    """
    if isinstance(value, bool):
        raise InvalidRequestError("Unsupported start format")

    if isinstance(value, datetime):
        return pendulum.naive(
            value.year, value.month, value.day,
            value.hour, value.minute, value.second
        )

    if isinstance(value, Real):
        try:
            utc = datetime.fromtimestamp(int(value), tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as exc:
            raise InvalidRequestError(f"Invalid numeric timestamp: {value}") from exc
        return parse_start(utc)

    if isinstance(value, str):
        text = value.strip()
        for fmt in NAIVE_FORMATS:
            try:
                parsed = pendulum.from_format(text, fmt)
            except ValueError:
                continue
            return parse_start(parsed)

        try:
            parsed = pendulum.parse(text, exact=True)
        except (ValueError, TypeError) as exc:
            raise InvalidRequestError(f"Failed to parse start '{value}': {exc}") from exc

        if not isinstance(parsed, datetime):
            raise InvalidRequestError(f"Start '{value}' must include a time of day")
        return parse_start(parsed)

    raise InvalidRequestError(f"Unsupported start format: {value!r}")


class BookingService:
    """
    Creates and maintains appointments on top of the store.
    """

    def __init__(
        self,
        store: BookingStore,
        allow_past: bool = False,
        clock: Callable[[], DateTime] = local_now,
    ) -> None:
        self._store = store
        self.allow_past = allow_past
        self._clock = clock

    def book(
        self,
        client_id: int,
        service_ids: Sequence[int],
        start: DateTime,
        price: Optional[float] = None,
        completed: bool = False,
    ) -> Appointment:
        """
        Commit a new appointment.

        The price defaults to the sum of the selected services' prices. The
        conflict check and the insert run under one hold of the store lock.

        Raises:
            InvalidRequestError: No services selected, or start in the past
            NotFoundError: Unknown client or service
            AppointmentConflictError: A pending appointment starts at ``start``
        """
        if not service_ids:
            raise InvalidRequestError("At least one service must be selected")

        if not self.allow_past and start < self._clock():
            raise InvalidRequestError("Cannot book an appointment in the past")

        with self._store.locked():
            self._store.get_client(client_id)
            services = [self._store.get_service(ref) for ref in service_ids]

            if not completed and self._store.has_conflict(start):
                logger.info("Rejected booking at %s: start already taken", start)
                raise AppointmentConflictError(
                    f"An appointment already exists at {start.to_datetime_string()}"
                )

            if price is None:
                price = round(sum(s.price for s in services), 2)

            appointment = self._store.add_appointment(
                Appointment(
                    client_id=client_id,
                    start=start,
                    service_ids=list(service_ids),
                    price=price,
                    completed=completed,
                )
            )

        logger.info("Booked appointment %s for client %s at %s", appointment.id, client_id, start)
        return appointment

    def reschedule(
        self,
        appointment_id: int,
        start: Optional[DateTime] = None,
        service_ids: Optional[Sequence[int]] = None,
        price: Optional[float] = None,
        completed: Optional[bool] = None,
    ) -> Appointment:
        """
        Update an appointment in place.

        A new start is guarded by the same exact-start check as ``book``,
        ignoring the appointment being moved.
        """
        with self._store.locked():
            current = self._store.get_appointment(appointment_id)
            will_be_pending = not (current.completed if completed is None else completed)

            if start is not None and start != current.start and will_be_pending:
                if self._store.has_conflict(start):
                    raise AppointmentConflictError(
                        f"An appointment already exists at {start.to_datetime_string()}"
                    )

            return self._store.update_appointment(
                appointment_id,
                start=start,
                service_ids=service_ids,
                price=price,
                completed=completed,
            )

    def complete(self, appointment_id: int) -> Appointment:
        """Mark an appointment as done; it stops blocking the calendar."""
        appointment = self._store.update_appointment(appointment_id, completed=True)
        logger.info("Appointment %s marked as completed", appointment_id)
        return appointment

    def cancel(self, appointment_id: int) -> None:
        self._store.delete_appointment(appointment_id)
        logger.info("Appointment %s deleted", appointment_id)

    def appointments(self, completed: Optional[bool] = None, client_id: Optional[int] = None) -> List[Appointment]:
        if client_id is not None:
            # Surface unknown clients as 404 instead of an empty list
            self._store.get_client(client_id)
        return self._store.list_appointments(completed=completed, client_id=client_id)

