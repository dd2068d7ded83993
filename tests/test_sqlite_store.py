"""
Tests for the SQLite store.
"""

from datetime import time

import pendulum
import pytest
from sqlalchemy.exc import OperationalError

from bookingslots.adapters.sqlite_store import BookingStore, WorkWindowRecord
from bookingslots.domain.exceptions import NotFoundError, ReferentialIntegrityError, StorageError
from bookingslots.domain.models import Appointment, Client, Service, WorkWindow


def book(store, client, services, hour, minute=0, day=25, completed=False):
    return store.add_appointment(
        Appointment(
            client_id=client.id,
            start=pendulum.naive(2024, 11, day, hour, minute),
            service_ids=[s.id for s in services],
            price=10.0,
            completed=completed,
        )
    )


class TestClients:
    """Tests for client persistence."""

    def test_add_and_get(self, store):
        created = store.add_client(Client(name="Maria", phone="555"))

        assert created.id is not None
        assert store.get_client(created.id) == created

    def test_update(self, store, client):
        updated = store.update_client(client.id, Client(name="Joao S.", phone="123", email=None))

        assert updated.name == "Joao S."
        assert store.get_client(client.id).phone == "123"

    def test_missing_client(self, store):
        with pytest.raises(NotFoundError):
            store.get_client(999)

    def test_search_is_case_insensitive_and_limited(self, store):
        for name in ["Ana Souza", "anabela", "Bruno", "Mariana"]:
            store.add_client(Client(name=name, phone="1"))

        found = store.list_clients(search="ANA")

        assert [c.name for c in found] == ["Ana Souza", "Mariana", "anabela"]
        assert len(store.list_clients(search="ana", limit=2)) == 2

    def test_cannot_delete_client_with_appointments(self, store, client, haircut):
        book(store, client, [haircut], 10)

        with pytest.raises(ReferentialIntegrityError):
            store.delete_client(client.id)
        assert store.get_client(client.id).id == client.id

    def test_delete_client_without_appointments(self, store, client):
        store.delete_client(client.id)

        with pytest.raises(NotFoundError):
            store.get_client(client.id)


class TestServices:
    """Tests for service persistence."""

    def test_service_durations(self, store, haircut, beard):
        durations = store.service_durations([haircut.id, beard.id, haircut.id, 999])

        assert durations == {haircut.id: 30, beard.id: 45}

    def test_service_durations_for_no_ids(self, store):
        assert store.service_durations([]) == {}

    def test_delete_service_keeps_appointments(self, store, client, haircut, beard):
        appointment = book(store, client, [haircut, beard], 10)

        store.delete_service(beard.id)

        remaining = store.get_appointment(appointment.id)
        assert remaining.service_ids == [haircut.id]
        with pytest.raises(NotFoundError):
            store.get_service(beard.id)

    def test_update_service(self, store, haircut):
        updated = store.update_service(haircut.id, Service(name="Haircut", price=50.0, duration_minutes=40))

        assert updated.price == 50.0
        assert store.service_durations([haircut.id]) == {haircut.id: 40}


class TestAppointments:
    """Tests for appointment persistence."""

    def test_add_requires_known_services(self, store, client, haircut):
        with pytest.raises(NotFoundError):
            store.add_appointment(
                Appointment(client_id=client.id, start=pendulum.naive(2024, 11, 25, 10), service_ids=[haircut.id, 42])
            )

    def test_add_requires_known_client(self, store, haircut):
        with pytest.raises(NotFoundError):
            store.add_appointment(
                Appointment(client_id=77, start=pendulum.naive(2024, 11, 25, 10), service_ids=[haircut.id])
            )

    def test_round_trip_keeps_naive_start(self, store, client, haircut, beard):
        created = book(store, client, [beard, haircut], 9, 15)

        loaded = store.get_appointment(created.id)

        assert loaded.start == pendulum.naive(2024, 11, 25, 9, 15)
        assert loaded.start.tzinfo is None
        assert loaded.service_ids == sorted([haircut.id, beard.id])

    def test_range_excludes_completed_and_other_days(self, store, client, haircut):
        pending = book(store, client, [haircut], 10)
        book(store, client, [haircut], 11, completed=True)
        book(store, client, [haircut], 10, day=26)
        late = book(store, client, [haircut], 23, 30)

        found = store.list_appointments_in_range(
            pendulum.naive(2024, 11, 25, 0, 0, 0),
            pendulum.naive(2024, 11, 25, 23, 59, 59),
        )

        assert [a.id for a in found] == [pending.id, late.id]

    def test_conflict_is_exact_start_only(self, store, client, haircut):
        book(store, client, [haircut], 10)

        assert store.has_conflict(pendulum.naive(2024, 11, 25, 10, 0))
        assert not store.has_conflict(pendulum.naive(2024, 11, 25, 10, 15))

    def test_completed_appointment_is_not_a_conflict(self, store, client, haircut):
        book(store, client, [haircut], 10, completed=True)

        assert not store.has_conflict(pendulum.naive(2024, 11, 25, 10, 0))

    def test_list_filters(self, store, client, haircut):
        other = store.add_client(Client(name="Maria", phone="555"))
        first = book(store, client, [haircut], 11)
        second = book(store, other, [haircut], 9, completed=True)

        assert [a.id for a in store.list_appointments()] == [second.id, first.id]
        assert [a.id for a in store.list_appointments(completed=False)] == [first.id]
        assert [a.id for a in store.list_appointments(client_id=other.id)] == [second.id]

    def test_partial_update(self, store, client, haircut, beard):
        appointment = book(store, client, [haircut], 10)

        updated = store.update_appointment(appointment.id, service_ids=[beard.id], completed=True)

        assert updated.service_ids == [beard.id]
        assert updated.completed is True
        assert updated.start == appointment.start
        assert updated.price == appointment.price

    def test_delete(self, store, client, haircut):
        appointment = book(store, client, [haircut], 10)

        store.delete_appointment(appointment.id)

        with pytest.raises(NotFoundError):
            store.get_appointment(appointment.id)


class TestWorkWindows:
    """Tests for work window persistence."""

    def test_windows_are_ordered(self, store):
        store.add_work_window(WorkWindow(weekday=2, start=time(9, 0), end=time(12, 0)))
        store.add_work_window(WorkWindow(weekday=0, start=time(14, 0), end=time(18, 0)))
        store.add_work_window(WorkWindow(weekday=0, start=time(8, 0), end=time(12, 0)))

        windows = store.list_work_windows()

        assert [(w.weekday, w.start) for w in windows] == [(0, time(8, 0)), (0, time(14, 0)), (2, time(9, 0))]
        assert [w.start for w in store.work_windows_for_weekday(0)] == [time(8, 0), time(14, 0)]
        assert store.work_windows_for_weekday(4) == []

    def test_unreadable_rows_are_skipped(self, store):
        store.add_work_window(WorkWindow(weekday=0, start=time(8, 0), end=time(12, 0)))
        with store._transaction("insert broken row") as session:
            session.add(WorkWindowRecord(weekday=0, start_time="late", end_time="18:00"))

        windows = store.work_windows_for_weekday(0)

        assert [(w.start, w.end) for w in windows] == [(time(8, 0), time(12, 0))]

    def test_delete(self, store):
        window = store.add_work_window(WorkWindow(weekday=0, start=time(8, 0), end=time(12, 0)))

        store.delete_work_window(window.id)

        assert store.list_work_windows() == []
        with pytest.raises(NotFoundError):
            store.delete_work_window(window.id)


class TestLifecycle:
    """Opening and closing the store."""

    def test_context_manager_closes_store(self, monkeypatch):
        closed = []

        with BookingStore(":memory:") as opened:
            monkeypatch.setattr(opened, "close", lambda: closed.append(opened))
            opened.add_client(Client(name="Maria", phone="555"))

        assert closed == [opened]

    def test_context_manager_closes_on_error(self, monkeypatch):
        closed = []

        with pytest.raises(NotFoundError):
            with BookingStore(":memory:") as opened:
                monkeypatch.setattr(opened, "close", lambda: closed.append(opened))
                opened.get_client(1)

        assert closed == [opened]


class TestStorageFailures:
    """Driver errors surface as StorageError."""

    def test_driver_error_is_wrapped(self, store, monkeypatch):
        def broken(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("database is locked"))

        monkeypatch.setattr(store._session, "scalars", broken)

        with pytest.raises(StorageError):
            store.list_appointments_in_range(
                pendulum.naive(2024, 11, 25, 0, 0, 0),
                pendulum.naive(2024, 11, 25, 23, 59, 59),
            )

    def test_file_database_persists(self, tmp_path):
        path = tmp_path / "nested" / "bookings.db"
        first = BookingStore(str(path))
        created = first.add_client(Client(name="Maria", phone="555"))
        first.close()

        second = BookingStore(str(path))
        try:
            assert second.get_client(created.id).name == "Maria"
        finally:
            second.close()
