# backend/booking_engine/services/base.py
"""
Base Service Pattern for the booking engine.

Provides common functionality for all service classes including:
- Policy injection
- A replaceable clock
- Logging
- Performance monitoring
"""

from datetime import datetime, timezone
from functools import wraps
import logging
import time
from typing import Any, Callable, Optional, TypeVar, cast

from booking_engine.core.config import BookingPolicy, settings
from booking_engine.monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

F = TypeVar("F", bound=Callable[..., Any])


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BaseService:
    """
    Base class for all service layer components.

    Every component receives the same immutable BookingPolicy at
    construction; nothing reads configuration per call.
    """

    def __init__(
        self,
        policy: Optional[BookingPolicy] = None,
        *,
        clock: Optional[Clock] = None,
        tz_name: Optional[str] = None,
    ):
        """
        Initialize base service.

        Args:
            policy: Business rules; defaults to the process settings
            clock: Returns the current aware datetime (tests pin it)
            tz_name: Timezone booking dates and times are expressed in
        """
        self.policy = policy or settings.policy
        self.clock = clock or utc_now
        self.tz_name = tz_name or settings.timezone
        self.logger = logging.getLogger(self.__class__.__name__)

    def now(self) -> datetime:
        return self.clock()

    @staticmethod
    def measure_operation(operation_name: str) -> Callable[[F], F]:
        """
        Decorator to measure operation performance.

        Usage:
            @BaseService.measure_operation("approve_booking")
            def approve_booking(self, request):
                ...

        Args:
            operation_name: Name of the operation for metrics

        Returns:
            Decorator function
        """

        def decorator(func: F) -> F:
            @wraps(func)
            def wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
                start_time = time.time()
                success = False
                error_type = None

                try:
                    result = func(self, *args, **kwargs)
                    # Operations that report failure as a result still count as errors.
                    success = getattr(result, "ok", True)
                    if not success:
                        error_kind = getattr(result, "error_kind", None)
                        error_type = getattr(error_kind, "value", None)
                    return result
                except Exception as e:
                    error_type = type(e).__name__
                    raise
                finally:
                    elapsed = time.time() - start_time

                    if elapsed > 1.0:
                        self.logger.warning(
                            f"Slow operation detected: {operation_name} took {elapsed:.2f}s"
                        )

                    try:
                        prometheus_metrics.record_service_operation(
                            service=self.__class__.__name__,
                            operation=operation_name,
                            duration=elapsed,
                            status="success" if success else "error",
                            error_type=error_type,
                        )
                    except Exception:
                        # Don't let metrics collection break the operation
                        logger.debug("metrics_record_failed", exc_info=True)

            wrapper._operation_name = operation_name  # type: ignore[attr-defined]
            wrapper._is_measured = True  # type: ignore[attr-defined]
            return cast(F, wrapper)

        return decorator
