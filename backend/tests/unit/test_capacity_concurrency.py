# backend/tests/unit/test_capacity_concurrency.py
"""
Concurrent approvals against one space and day.

Pending bookings hold no capacity, so any number can be created. Approving
them from many threads at once must never commit more than the room holds.
"""

from concurrent.futures import ThreadPoolExecutor
import threading

from booking_engine.core.capacity_lock import LocalCapacityLockManager
from booking_engine.core.enums import BookingStatus, ErrorKind, SpaceType
from booking_engine.schemas.booking_requests import ApproveBookingRequest, CancelBookingRequest
from booking_engine.services.booking_service import BookingService
from booking_engine.services.capacity_allocator import peak_occupancy
from tests.factories.booking_builders import WEDNESDAY, create_request


def _approve_all(service, bookings, workers):
    barrier = threading.Barrier(workers)

    def approve(booking):
        barrier.wait()
        return service.approve_booking(
            ApproveBookingRequest(booking_id=booking.id, approved_by="admin", payment_confirmed=True)
        )

    with ThreadPoolExecutor(max_workers=workers) as pool:
        return list(pool.map(approve, bookings))


class TestConcurrentApprovals:
    """The capacity lock serializes approvals per space and day."""

    def test_parallel_approvals_never_oversell(self, booking_service, repository):
        """10 pending x 2 people compete for a 12-person room: exactly 6 win."""
        bookings = [
            booking_service.create_booking(create_request(user_id=f"user-{i}", capacity_requested=2)).booking
            for i in range(10)
        ]

        results = _approve_all(booking_service, bookings, workers=10)

        approved = [result for result in results if result.ok]
        refused = [result for result in results if not result.ok]
        assert len(approved) == 6
        assert {result.error_kind for result in refused} == {ErrorKind.CAPACITY_EXCEEDED}

        holders = repository.find_capacity_holders(SpaceType.MEETING_ROOM, WEDNESDAY)
        assert peak_occupancy(holders) == 12

    def test_release_then_reserve(self, booking_service, repository):
        """Cancellations racing with approvals still respect the maximum."""
        full = [
            booking_service.create_booking(create_request(user_id=f"held-{i}", capacity_requested=6)).booking
            for i in range(2)
        ]
        created = [
            booking_service.create_booking(create_request(user_id=f"wait-{i}", capacity_requested=6))
            for i in range(3)
        ]
        assert all(result.ok for result in created)
        waiting = [result.booking for result in created]
        for booking in full:
            assert booking_service.approve_booking(
                ApproveBookingRequest(booking_id=booking.id, approved_by="admin", payment_confirmed=True)
            ).ok
        barrier = threading.Barrier(4)

        def cancel():
            barrier.wait()
            return booking_service.cancel_booking(
                CancelBookingRequest(booking_id=full[0].id, cancelled_by="admin", reason="Freed")
            )

        def approve(booking):
            barrier.wait()
            return booking_service.approve_booking(
                ApproveBookingRequest(booking_id=booking.id, approved_by="admin", payment_confirmed=True)
            )

        with ThreadPoolExecutor(max_workers=4) as pool:
            cancel_future = pool.submit(cancel)
            approvals = [pool.submit(approve, booking) for booking in waiting]
            assert cancel_future.result().ok
            outcomes = [future.result() for future in approvals]

        assert sum(1 for outcome in outcomes if outcome.ok) <= 1
        holders = repository.find_capacity_holders(SpaceType.MEETING_ROOM, WEDNESDAY)
        assert peak_occupancy(holders) <= 12
        assert repository.get_by_id(full[0].id).status == BookingStatus.CANCELLED

    def test_lock_timeout_is_infrastructure_error(self, repository, policy, clock):
        """An approval that cannot get the lock fails without side effects."""
        lock_manager = LocalCapacityLockManager(wait_seconds=0.05)
        service = BookingService(repository, policy=policy, lock_manager=lock_manager, clock=clock, tz_name="UTC")
        booking = service.create_booking(create_request()).booking

        with lock_manager.hold([(SpaceType.MEETING_ROOM, WEDNESDAY)]):
            result = service.approve_booking(
                ApproveBookingRequest(booking_id=booking.id, approved_by="admin", payment_confirmed=True)
            )

        assert result.error_kind == ErrorKind.INFRASTRUCTURE_ERROR
        assert result.reason_code == "CONCURRENCY_CONFLICT"
        assert result.side_effect_intents == ()
        assert repository.get_by_id(booking.id).status == BookingStatus.PENDING
