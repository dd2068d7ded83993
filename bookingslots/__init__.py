"""
bookingslots - appointment booking with slot availability for a single-location business.
"""

__version__ = "0.1.0"
