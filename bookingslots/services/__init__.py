"""
Service layer helpers that orchestrate the store and domain logic.
"""

from .availability import AvailabilityService, AvailabilityStoreProtocol
from .booking import BookingService

__all__ = ["AvailabilityService", "AvailabilityStoreProtocol", "BookingService"]
