# backend/booking_engine/core/config.py
"""
Engine configuration.

BookingPolicy carries every business constant (capacities, rates, windows,
refund tiers, multipliers). It is immutable and injected into each component
at construction. Settings wraps it together with the infrastructure knobs
and is loaded once from the environment (prefix BOOKING_, nested fields
separated by "__", e.g. BOOKING_POLICY__CATERING_COST=25000).
"""

from datetime import date
import logging
from typing import Dict, FrozenSet, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import pytz

from booking_engine.core.enums import RateUnit, SpaceType
from booking_engine.domain.time_slot import TimeInterval, TimeOfDay

logger = logging.getLogger(__name__)

_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


class SpaceConfig(BaseModel):
    """Capacity and pricing for one space type."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    max_capacity: int = Field(gt=0)
    base_rate: int = Field(ge=0, description="Rate in the currency's smallest unit")
    rate_unit: RateUnit
    features: Tuple[str, ...] = ()


class RefundTier(BaseModel):
    """Refund percentage granted when notice is at least min_hours."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    min_hours: float
    percentage: int = Field(ge=0, le=100)


def _default_spaces() -> Dict[SpaceType, SpaceConfig]:
    return {
        SpaceType.PRIVATE_OFFICE: SpaceConfig(
            name="Private Office",
            max_capacity=4,
            base_rate=50000,
            rate_unit=RateUnit.DAY,
            features=("desk", "chair", "wifi", "storage", "phone_booth"),
        ),
        SpaceType.SHARED_DESK: SpaceConfig(
            name="Shared Workspace",
            max_capacity=20,
            base_rate=20000,
            rate_unit=RateUnit.DAY,
            features=("desk", "chair", "wifi", "power_outlet"),
        ),
        SpaceType.MEETING_ROOM: SpaceConfig(
            name="Meeting Room",
            max_capacity=12,
            base_rate=30000,
            rate_unit=RateUnit.HOUR,
            features=("projector", "whiteboard", "video_conference", "wifi"),
        ),
        SpaceType.WORKSHOP_SPACE: SpaceConfig(
            name="Workshop Space",
            max_capacity=30,
            base_rate=100000,
            rate_unit=RateUnit.DAY,
            features=("tables", "chairs", "projector", "sound_system"),
        ),
        SpaceType.CONFERENCE_ROOM: SpaceConfig(
            name="Conference Room",
            max_capacity=50,
            base_rate=80000,
            rate_unit=RateUnit.DAY,
            features=("stage", "sound_system", "projector", "recording"),
        ),
        SpaceType.STUDIO: SpaceConfig(
            name="Creative Studio",
            max_capacity=15,
            base_rate=60000,
            rate_unit=RateUnit.DAY,
            features=("lighting", "backdrop", "camera_equipment"),
        ),
    }


def _default_refund_tiers() -> List[RefundTier]:
    return [
        RefundTier(min_hours=48, percentage=95),
        RefundTier(min_hours=24, percentage=85),
        RefundTier(min_hours=12, percentage=70),
        RefundTier(min_hours=2, percentage=50),
    ]


class BookingPolicy(BaseModel):
    """
    Immutable business rules shared by every booking component.

    Weekdays use Python numbering (Monday=0 ... Sunday=6). Amounts are
    integers in the currency's smallest unit.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    spaces: Dict[SpaceType, SpaceConfig] = Field(default_factory=_default_spaces)
    currency: str = "IRR"
    hours_per_day_rate: int = Field(default=8, gt=0)

    opening_time: TimeOfDay = TimeOfDay(8 * 60)
    closing_time: TimeOfDay = TimeOfDay(20 * 60)
    operating_days: FrozenSet[int] = frozenset({0, 1, 2, 3, 4, 5})
    weekend_days: FrozenSet[int] = frozenset({5, 6})
    weekend_discount_percent: int = Field(default=10, ge=0, le=100)

    min_duration_hours: float = Field(default=1, gt=0)
    max_duration_hours: float = Field(default=12, gt=0)
    advance_booking_days: int = Field(default=90, ge=0)
    payment_window_minutes: int = 30
    catering_cost: int = Field(default=20000, ge=0)
    reschedule_notice_hours: int = 24

    checkin_opens_minutes_before: int = Field(default=60, ge=0)
    checkin_closes_minutes_after: int = Field(default=120, ge=0)
    checkin_early_threshold_minutes: int = 15
    checkin_on_time_threshold_minutes: int = 15
    checkin_late_threshold_minutes: int = 60

    refund_tiers: List[RefundTier] = Field(default_factory=_default_refund_tiers)

    overtime_grace_minutes: int = Field(default=15, ge=0)
    overtime_multiplier: float = Field(default=1.5, ge=0)
    early_checkout_threshold_minutes: int = Field(default=60, ge=0)
    early_checkout_refund_multiplier: float = Field(default=0.5, ge=0)
    checkout_early_status_minutes: int = 30
    checkout_overtime_status_minutes: int = 60

    @field_validator("operating_days", "weekend_days")
    @classmethod
    def _validate_weekdays(cls, value: FrozenSet[int]) -> FrozenSet[int]:
        invalid = [day for day in value if day < 0 or day > 6]
        if invalid:
            raise ValueError(f"Weekdays must be between 0 (Monday) and 6 (Sunday): {invalid}")
        return value

    @field_validator("refund_tiers")
    @classmethod
    def _sort_refund_tiers(cls, value: List[RefundTier]) -> List[RefundTier]:
        return sorted(value, key=lambda tier: tier.min_hours, reverse=True)

    @model_validator(mode="after")
    def _validate_bounds(self) -> "BookingPolicy":
        if self.opening_time >= self.closing_time:
            raise ValueError("opening_time must be before closing_time")
        if self.min_duration_hours > self.max_duration_hours:
            raise ValueError("min_duration_hours cannot exceed max_duration_hours")
        missing = [space.value for space in SpaceType if space not in self.spaces]
        if missing:
            raise ValueError(f"Missing space configuration for: {', '.join(missing)}")
        return self

    def space(self, space_type: SpaceType) -> SpaceConfig:
        return self.spaces[SpaceType(space_type)]

    @property
    def operating_hours(self) -> TimeInterval:
        return TimeInterval(self.opening_time, self.closing_time)

    def is_operating_day(self, booking_date: date) -> bool:
        return booking_date.weekday() in self.operating_days

    def is_weekend(self, booking_date: date) -> bool:
        return booking_date.weekday() in self.weekend_days

    def refund_tier_for(self, hours_until_event: float) -> Optional[RefundTier]:
        """Highest tier whose threshold the notice meets, or None (0% refund)."""
        for tier in self.refund_tiers:
            if hours_until_event >= tier.min_hours:
                return tier
        return None


class Settings(BaseSettings):
    """Process-level settings, read once at import time."""

    model_config = SettingsConfigDict(
        env_prefix="BOOKING_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: str = "development"
    log_level: str = "INFO"
    timezone: str = "Asia/Tehran"

    database_url: str = "sqlite+pysqlite:///./bookings.db"

    lock_backend: Literal["local", "redis"] = "local"
    redis_url: str = "redis://localhost:6379/0"
    lock_namespace: str = "booking_engine"
    capacity_lock_ttl_seconds: int = Field(default=30, gt=0)
    capacity_lock_wait_seconds: float = Field(default=5.0, gt=0)

    policy: BookingPolicy = Field(default_factory=BookingPolicy)

    @field_validator("timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        if value not in pytz.all_timezones_set:
            raise ValueError(f"Unknown timezone: {value}")
        return value

    @field_validator("log_level")
    @classmethod
    def _normalise_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"Unknown log level: {value}")
        return level


settings = Settings()
