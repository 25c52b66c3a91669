# backend/tests/unit/test_observability.py
"""
Metrics, request-id logging and serialised results.
"""

import logging
from unittest.mock import patch

from booking_engine.core.enums import ErrorKind
from booking_engine.core.exceptions import OutOfPolicyWindowException
from booking_engine.core.request_context import (
    LOG_FORMAT,
    RequestIdFilter,
    attach_request_id_filter,
    configure_logging,
    get_request_id,
    request_scope,
)
from booking_engine.core.ulid_helper import generate_booking_number, is_valid_ulid, parse_ulid
from booking_engine.monitoring.prometheus_metrics import REGISTRY, prometheus_metrics
from booking_engine.schemas import results
from booking_engine.schemas.booking_requests import ApproveBookingRequest
from booking_engine.schemas.results import OperationResult
from booking_engine.services import booking_policy_validator, checkout_reconciliation, refund_policy_engine
from tests.factories.booking_builders import FROZEN_NOW, create_request


def _sample(name, **labels):
    return REGISTRY.get_sample_value(name, labels) or 0.0


class TestPrometheusMetrics:
    """Counters fed by the booking service."""

    def test_transition_and_operation_counters(self, booking_service):
        """A committed approval counts one transition and one successful operation."""
        transitions = dict(event="approve", from_status="pending", to_status="confirmed")
        operations = dict(service="BookingService", operation="approve_booking", status="success")
        before_transitions = _sample("booking_engine_transitions_total", **transitions)
        before_operations = _sample("booking_engine_service_operations_total", **operations)

        booking = booking_service.create_booking(create_request()).booking
        booking_service.approve_booking(
            ApproveBookingRequest(booking_id=booking.id, approved_by="admin", payment_confirmed=True)
        )

        assert _sample("booking_engine_transitions_total", **transitions) == before_transitions + 1
        assert _sample("booking_engine_service_operations_total", **operations) == before_operations + 1

    def test_failed_result_counts_as_error(self, booking_service):
        """Operations that return ok=False are recorded with their error kind."""
        labels = dict(service="BookingService", operation="get_booking", error_type="not_found")
        before = _sample("booking_engine_errors_total", **labels)

        booking_service.get_booking("missing")

        assert _sample("booking_engine_errors_total", **labels) == before + 1

    def test_overrides_are_counted(self, booking_service):
        """Each override that bypasses a guard is counted by flag."""
        before = _sample("booking_engine_overrides_total", flag="override_payment_check")
        booking = booking_service.create_booking(create_request()).booking

        booking_service.approve_booking(
            ApproveBookingRequest(booking_id=booking.id, approved_by="admin", override_payment_check=True)
        )

        assert _sample("booking_engine_overrides_total", flag="override_payment_check") == before + 1

    def test_exposition(self):
        """The registry renders in Prometheus text format."""
        prometheus_metrics.record_rejection("create_booking", "capacity_exceeded")

        body = prometheus_metrics.get_metrics().decode()

        assert "booking_engine_rejections_total" in body
        assert prometheus_metrics.get_content_type().startswith("text/plain")


class TestRequestContext:
    """Request ids bound to log records."""

    def test_scope_sets_and_resets(self):
        """The id is visible inside the block only."""
        assert get_request_id() is None
        with request_scope("req-42") as request_id:
            assert request_id == "req-42"
            assert get_request_id() == "req-42"
        assert get_request_id() is None

    def test_filter_adds_request_id(self):
        """Log records get the current id, or a placeholder outside a request."""
        record = logging.LogRecord("booking", logging.INFO, __file__, 1, "msg", None, None)
        RequestIdFilter().filter(record)
        assert record.request_id == "no-request"

        record = logging.LogRecord("booking", logging.INFO, __file__, 1, "msg", None, None)
        with request_scope("req-7"):
            RequestIdFilter().filter(record)
        assert record.request_id == "req-7"

    def test_attach_filter_to_handlers(self):
        """Every handler on the target logger gets the request-id filter."""
        target = logging.getLogger("booking_engine.tests.request_id")
        handler = logging.StreamHandler()
        target.addHandler(handler)
        try:
            attach_request_id_filter(target)
            assert any(isinstance(f, RequestIdFilter) for f in handler.filters)
        finally:
            target.removeHandler(handler)

    def test_configure_logging(self):
        """Host processes get the request-id format and filter in one call."""
        with patch("booking_engine.core.request_context.logging.basicConfig") as basic_config, patch(
            "booking_engine.core.request_context.attach_request_id_filter"
        ) as attach:
            configure_logging("DEBUG")

        basic_config.assert_called_once_with(level="DEBUG", format=LOG_FORMAT)
        attach.assert_called_once_with()


class TestIdentifiers:
    """ULIDs and booking numbers."""

    def test_ulid_validation(self):
        """Only well-formed ULIDs parse."""
        assert is_valid_ulid("01ARZ3NDEKTSV4RRFFQ69G5FAV")
        assert not is_valid_ulid("not-a-ulid")
        assert parse_ulid("") is None

    def test_booking_number_encodes_time(self):
        """Booking numbers carry the creation time in milliseconds."""
        number = generate_booking_number(FROZEN_NOW)
        prefix, millis, suffix = number.split("-")
        assert prefix == "BOOK"
        assert int(millis) == int(FROZEN_NOW.timestamp() * 1000)
        assert len(suffix) == 5


class TestOperationResultPayload:
    """Results serialise to plain JSON-ready dictionaries."""

    def test_failure_payload(self):
        """Failures carry kind, reason and override flag."""
        result = OperationResult.failure(
            OutOfPolicyWindowException(
                "Too late to check in",
                reason="check_in_window_closed",
                override_flag="override_time_restrictions",
            )
        )

        payload = result.to_payload()

        assert payload["ok"] is False
        assert payload["error_kind"] == "out_of_policy_window"
        assert payload["error_detail"]["override_flag"] == "override_time_restrictions"
        assert result.reason_code == "check_in_window_closed"
        assert result.error_kind == ErrorKind.OUT_OF_POLICY_WINDOW

    def test_success_payload(self, booking_service):
        """Bookings and intents are flattened to JSON types."""
        result = booking_service.create_booking(create_request())

        payload = result.to_payload()

        assert payload["booking"]["start_time"] == "10:00"
        assert payload["booking"]["booking_date"] == "2026-06-03"
        assert payload["side_effect_intents"][0]["type"] == "notify"
        assert payload["side_effect_intents"][0]["template"] == "booking_created"
        assert result.reason_code is None


class TestModuleLoggers:
    """Modules log under their dotted import path."""

    def test_logger_names(self):
        """Reconciliation, refunds, validation and results each carry a module logger."""
        modules = [checkout_reconciliation, refund_policy_engine, booking_policy_validator, results]

        assert [module.logger.name for module in modules] == [module.__name__ for module in modules]
