# backend/booking_engine/repositories/__init__.py
"""
Repository layer for booking snapshots.

Key Components:
- BookingRepository: interface the engine depends on
- InMemoryBookingRepository: thread-safe in-process store
- SqlAlchemyBookingRepository: relational store with optimistic versioning
"""

from .booking_repository import (
    BookingRepository,
    InMemoryBookingRepository,
    SqlAlchemyBookingRepository,
)

__all__ = ["BookingRepository", "InMemoryBookingRepository", "SqlAlchemyBookingRepository"]
