# backend/tests/conftest.py
"""
Pytest configuration shared by every test.

Settings are read once at import time, so the environment is pinned here
before anything from booking_engine is imported. Tests never talk to Redis:
the lock backend is forced to the in-process implementation.
"""

import os

os.environ["BOOKING_ENVIRONMENT"] = "test"
os.environ["BOOKING_LOCK_BACKEND"] = "local"
os.environ["BOOKING_TIMEZONE"] = "UTC"

import pytest

from booking_engine.core.capacity_lock import LocalCapacityLockManager
from booking_engine.core.config import BookingPolicy
from booking_engine.repositories.booking_repository import InMemoryBookingRepository
from booking_engine.services.booking_service import BookingService
from tests.factories.booking_builders import FrozenClock


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def policy() -> BookingPolicy:
    return BookingPolicy()


@pytest.fixture
def repository() -> InMemoryBookingRepository:
    return InMemoryBookingRepository()


@pytest.fixture
def lock_manager() -> LocalCapacityLockManager:
    return LocalCapacityLockManager(wait_seconds=2.0)


@pytest.fixture
def booking_service(repository, policy, lock_manager, clock) -> BookingService:
    """Service wired to the in-memory store and a frozen clock in UTC."""
    return BookingService(
        repository,
        policy=policy,
        lock_manager=lock_manager,
        clock=clock,
        tz_name="UTC",
    )
