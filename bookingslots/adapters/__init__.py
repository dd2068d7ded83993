"""
Adapters layer - Persistence for the booking domain (embedded SQLite).
"""

from .sqlite_store import BookingStore

__all__ = ["BookingStore"]
