"""
Shared fixtures.
"""

import pytest

from bookingslots.adapters.sqlite_store import BookingStore
from bookingslots.domain.models import Client, Service


@pytest.fixture
def store():
    """Fresh in-memory store per test."""
    booking_store = BookingStore(":memory:")
    yield booking_store
    booking_store.close()


@pytest.fixture
def client(store):
    return store.add_client(Client(name="Joao Silva", phone="11999990000", email="joao@example.com"))


@pytest.fixture
def haircut(store):
    return store.add_service(Service(name="Haircut", price=40.0, duration_minutes=30))


@pytest.fixture
def beard(store):
    return store.add_service(Service(name="Beard", price=25.0, duration_minutes=45))
