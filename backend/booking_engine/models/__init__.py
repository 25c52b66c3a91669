"""
Database models for the booking engine.
"""

from .booking import BookingRecord

__all__ = ["BookingRecord"]
