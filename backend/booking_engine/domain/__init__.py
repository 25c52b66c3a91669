"""Value objects shared by every booking component."""

from booking_engine.domain.time_slot import TimeInterval, TimeOfDay

__all__ = ["TimeInterval", "TimeOfDay"]
