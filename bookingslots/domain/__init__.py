"""
Domain layer - Pure business logic without external dependencies.
"""

from .models import Appointment, Client, Service, SlotRequest, TimeRange, WorkWindow
from .slot_calculator import SlotCalculator

__all__ = [
    "Appointment",
    "Client",
    "Service",
    "SlotRequest",
    "TimeRange",
    "WorkWindow",
    "SlotCalculator",
]
