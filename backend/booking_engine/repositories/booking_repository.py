# backend/booking_engine/repositories/booking_repository.py
"""
Booking repositories.

The engine only depends on BookingRepository. Two adapters ship with it:
an in-memory store used by tests and single-process embedding, and a
SQLAlchemy store that keeps the snapshot as JSON next to indexed query
columns. Both return detached copies, so callers can mutate what they get
back without touching stored state, and both reject a save whose
expected_version no longer matches.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
import copy
from datetime import date
import logging
import threading
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from booking_engine.core.enums import CAPACITY_HOLDING_STATUSES, SpaceType
from booking_engine.core.exceptions import ConcurrencyConflictException, RepositoryException
from booking_engine.database import get_dialect_name
from booking_engine.models.booking import BookingRecord
from booking_engine.schemas.booking import Booking

logger = logging.getLogger(__name__)

_HOLDING_VALUES = sorted(status.value for status in CAPACITY_HOLDING_STATUSES)


class BookingRepository(ABC):
    """
    Abstract booking store.

    Implementations must never hand out references to stored state.
    """

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Unit of work around one operation's writes. No-op by default."""
        yield

    @abstractmethod
    def get_by_id(self, booking_id: str, for_update: bool = False) -> Optional[Booking]:
        """
        Retrieve a booking by id.

        Args:
            booking_id: Booking ULID
            for_update: Lock the row until the surrounding transaction ends,
                where the backend supports it

        Returns:
            A detached snapshot, or None if unknown
        """

    @abstractmethod
    def get_by_booking_number(self, booking_number: str) -> Optional[Booking]:
        """Retrieve a booking by its human-facing number."""

    @abstractmethod
    def find_capacity_holders(
        self,
        space_type: SpaceType,
        booking_date: date,
        exclude_booking_id: Optional[str] = None,
    ) -> List[Booking]:
        """
        Bookings for space_type on booking_date whose status holds capacity.

        Interval filtering is left to the caller; a day has few enough
        bookings per space that a re-scan is cheap.
        """

    @abstractmethod
    def list_for_space(
        self,
        space_type: SpaceType,
        start_date: date,
        end_date: date,
    ) -> List[Booking]:
        """All bookings for space_type with start_date <= booking_date <= end_date."""

    @abstractmethod
    def add(self, booking: Booking) -> Booking:
        """
        Persist a new booking.

        Returns:
            The stored snapshot with version set to 1

        Raises:
            RepositoryException: If the id or booking number already exists
        """

    @abstractmethod
    def save(self, booking: Booking, expected_version: int) -> Booking:
        """
        Replace a stored booking.

        Returns:
            The stored snapshot with version incremented

        Raises:
            ConcurrencyConflictException: If the stored version differs
        """


class InMemoryBookingRepository(BookingRepository):
    """Thread-safe dictionary-backed store."""

    def __init__(self) -> None:
        self._bookings: Dict[str, Booking] = {}
        self._numbers: Dict[str, str] = {}
        self._lock = threading.RLock()
        self.logger = logging.getLogger(f"{__name__}.InMemoryBookingRepository")

    def get_by_id(self, booking_id: str, for_update: bool = False) -> Optional[Booking]:
        with self._lock:
            booking = self._bookings.get(booking_id)
            return copy.deepcopy(booking) if booking else None

    def get_by_booking_number(self, booking_number: str) -> Optional[Booking]:
        with self._lock:
            booking_id = self._numbers.get(booking_number)
            return self.get_by_id(booking_id) if booking_id else None

    def find_capacity_holders(
        self,
        space_type: SpaceType,
        booking_date: date,
        exclude_booking_id: Optional[str] = None,
    ) -> List[Booking]:
        with self._lock:
            return [
                copy.deepcopy(booking)
                for booking in self._bookings.values()
                if booking.space_type == space_type
                and booking.booking_date == booking_date
                and booking.holds_capacity
                and booking.id != exclude_booking_id
            ]

    def list_for_space(
        self,
        space_type: SpaceType,
        start_date: date,
        end_date: date,
    ) -> List[Booking]:
        with self._lock:
            matches = [
                copy.deepcopy(booking)
                for booking in self._bookings.values()
                if booking.space_type == space_type and start_date <= booking.booking_date <= end_date
            ]
        return sorted(matches, key=lambda b: (b.booking_date, b.start_time, b.booking_number))

    def add(self, booking: Booking) -> Booking:
        with self._lock:
            if booking.id in self._bookings:
                raise RepositoryException(f"Booking {booking.id} already exists")
            if booking.booking_number in self._numbers:
                raise RepositoryException(f"Booking number {booking.booking_number} already exists")
            stored = booking.model_copy(deep=True)
            stored.version = 1
            self._bookings[stored.id] = stored
            self._numbers[stored.booking_number] = stored.id
            return copy.deepcopy(stored)

    def save(self, booking: Booking, expected_version: int) -> Booking:
        with self._lock:
            current = self._bookings.get(booking.id)
            if current is None:
                raise RepositoryException(f"Booking {booking.id} does not exist")
            if current.version != expected_version:
                raise ConcurrencyConflictException(
                    "Booking was modified concurrently",
                    details={
                        "booking_id": booking.id,
                        "expected_version": expected_version,
                        "stored_version": current.version,
                    },
                )
            stored = booking.model_copy(deep=True)
            stored.version = expected_version + 1
            self._bookings[stored.id] = stored
            return copy.deepcopy(stored)


class SqlAlchemyBookingRepository(BookingRepository):
    """
    SQLAlchemy-backed store.

    Writes only flush; transaction() commits or rolls back the session, so
    the service controls the unit of work.
    """

    def __init__(self, db: Session):
        self.db = db
        self.logger = logging.getLogger(f"{__name__}.SqlAlchemyBookingRepository")

    @property
    def dialect_name(self) -> str:
        return get_dialect_name(self.db)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        try:
            yield
            self.db.commit()
        except SQLAlchemyError as exc:
            self.logger.error("Repository transaction failed: %s", exc)
            self.db.rollback()
            raise RepositoryException(f"Failed to commit booking changes: {exc}") from exc
        except Exception:
            self.db.rollback()
            raise

    @staticmethod
    def _to_domain(record: BookingRecord) -> Booking:
        booking = Booking.model_validate(record.snapshot)
        booking.version = record.version
        return booking

    @staticmethod
    def _columns(booking: Booking) -> Dict[str, Any]:
        return {
            "booking_number": booking.booking_number,
            "user_id": booking.user_id,
            "space_type": booking.space_type.value,
            "booking_date": booking.booking_date,
            "start_minutes": booking.start_time.minutes,
            "end_minutes": booking.end_time.minutes,
            "status": booking.status.value,
            "capacity_requested": booking.capacity_requested,
            "version": booking.version,
            "snapshot": booking.model_dump(mode="json"),
            "created_at": booking.created_at,
            "updated_at": booking.updated_at,
        }

    def _supports_row_locks(self) -> bool:
        return self.dialect_name not in {"sqlite", ""}

    def get_by_id(self, booking_id: str, for_update: bool = False) -> Optional[Booking]:
        try:
            stmt = select(BookingRecord).where(BookingRecord.id == booking_id)
            if for_update and self._supports_row_locks():
                stmt = stmt.with_for_update()
            record = self.db.execute(stmt).scalar_one_or_none()
            return self._to_domain(record) if record else None
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting booking {booking_id}: {str(e)}")
            raise RepositoryException(f"Failed to retrieve booking: {str(e)}")

    def get_by_booking_number(self, booking_number: str) -> Optional[Booking]:
        try:
            stmt = select(BookingRecord).where(BookingRecord.booking_number == booking_number)
            record = self.db.execute(stmt).scalar_one_or_none()
            return self._to_domain(record) if record else None
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting booking number {booking_number}: {str(e)}")
            raise RepositoryException(f"Failed to retrieve booking: {str(e)}")

    def find_capacity_holders(
        self,
        space_type: SpaceType,
        booking_date: date,
        exclude_booking_id: Optional[str] = None,
    ) -> List[Booking]:
        try:
            stmt = select(BookingRecord).where(
                BookingRecord.space_type == SpaceType(space_type).value,
                BookingRecord.booking_date == booking_date,
                BookingRecord.status.in_(_HOLDING_VALUES),
            )
            if exclude_booking_id:
                stmt = stmt.where(BookingRecord.id != exclude_booking_id)
            return [self._to_domain(record) for record in self.db.execute(stmt).scalars()]
        except SQLAlchemyError as e:
            self.logger.error(f"Error scanning capacity for {space_type} on {booking_date}: {str(e)}")
            raise RepositoryException(f"Failed to scan capacity: {str(e)}")

    def list_for_space(
        self,
        space_type: SpaceType,
        start_date: date,
        end_date: date,
    ) -> List[Booking]:
        try:
            stmt = (
                select(BookingRecord)
                .where(
                    BookingRecord.space_type == SpaceType(space_type).value,
                    BookingRecord.booking_date >= start_date,
                    BookingRecord.booking_date <= end_date,
                )
                .order_by(
                    BookingRecord.booking_date,
                    BookingRecord.start_minutes,
                    BookingRecord.booking_number,
                )
            )
            return [self._to_domain(record) for record in self.db.execute(stmt).scalars()]
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing bookings for {space_type}: {str(e)}")
            raise RepositoryException(f"Failed to list bookings: {str(e)}")

    def add(self, booking: Booking) -> Booking:
        stored = booking.model_copy(deep=True)
        stored.version = 1
        record = BookingRecord(id=stored.id, **self._columns(stored))
        try:
            self.db.add(record)
            self.db.flush()
        except IntegrityError as exc:
            self.logger.error("Integrity error creating booking: %s", exc, exc_info=True)
            self.db.rollback()
            raise RepositoryException(f"Integrity constraint violated: {exc}") from exc
        except SQLAlchemyError as e:
            self.logger.error(f"Error creating booking: {str(e)}")
            self.db.rollback()
            raise RepositoryException(f"Failed to create booking: {str(e)}")
        return stored

    def save(self, booking: Booking, expected_version: int) -> Booking:
        stored = booking.model_copy(deep=True)
        stored.version = expected_version + 1
        try:
            # Compare-and-swap on version so concurrent writers cannot both win.
            result = self.db.execute(
                update(BookingRecord)
                .where(
                    BookingRecord.id == booking.id,
                    BookingRecord.version == expected_version,
                )
                .values(**self._columns(stored))
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                self.db.expire_all()
                return stored
            stored_version = self.db.execute(
                select(BookingRecord.version).where(BookingRecord.id == booking.id)
            ).scalar_one_or_none()
        except SQLAlchemyError as e:
            self.logger.error(f"Error saving booking {booking.id}: {str(e)}")
            self.db.rollback()
            raise RepositoryException(f"Failed to save booking: {str(e)}")
        if stored_version is None:
            raise RepositoryException(f"Booking {booking.id} does not exist")
        raise ConcurrencyConflictException(
            "Booking was modified concurrently",
            details={
                "booking_id": booking.id,
                "expected_version": expected_version,
                "stored_version": stored_version,
            },
        )

