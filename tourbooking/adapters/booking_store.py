"""
Tour booking persistence on SQLAlchemy.

The ``(school_id, scheduled_at)`` unique constraint is what keeps two
processes from committing the same slot; in-process locking alone cannot.
"""

import logging
import threading
from contextlib import contextmanager, nullcontext
from datetime import timedelta
from typing import Iterator, List

import pendulum
from pendulum import DateTime
from sqlalchemy import (
    Column,
    DateTime as SqlDateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    select,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from ..domain.exceptions import UniqueConstraintViolation
from ..domain.models import BOOKING_DURATION_MINUTES, Booking, Contact, EventRef

logger = logging.getLogger(__name__)

Base = declarative_base()


class TourBookingRecord(Base):
    __tablename__ = "tour_bookings"
    __table_args__ = (
        UniqueConstraint("school_id", "scheduled_at", name="uq_tour_bookings_school_slot"),
        Index("ix_tour_bookings_school_scheduled", "school_id", "scheduled_at"),
    )

    id = Column(Integer, primary_key=True)
    school_id = Column(String(64), nullable=False)

    # Contact
    parent_name = Column(String(255), nullable=False, default="")
    phone = Column(String(64), nullable=False, default="")
    email = Column(String(255), nullable=False, default="")
    child_age = Column(String(32), nullable=False, default="")
    reason = Column(Text, nullable=False, default="")

    # Stored as naive UTC
    scheduled_at = Column(SqlDateTime, nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=BOOKING_DURATION_MINUTES)

    # External calendar reference
    calendar_provider = Column(String(16), nullable=False, default="")
    calendar_event_id = Column(String(1024), nullable=False, default="")

    source_call_ref = Column(String(64), nullable=True)
    created_at = Column(SqlDateTime, nullable=False)


def _to_naive_utc(moment: DateTime):
    return moment.in_timezone("UTC").naive()


def _from_naive_utc(value) -> DateTime:
    return pendulum.instance(value, tz="UTC")


def _to_booking(record: TourBookingRecord) -> Booking:
    external_event = None
    if record.calendar_provider and record.calendar_event_id:
        external_event = EventRef(
            provider=record.calendar_provider, event_id=record.calendar_event_id
        )

    return Booking(
        school_id=record.school_id,
        contact=Contact(
            name=record.parent_name,
            phone=record.phone,
            email=record.email,
            reason=record.reason,
            child_age=record.child_age,
        ),
        scheduled_at=_from_naive_utc(record.scheduled_at),
        duration_minutes=record.duration_minutes,
        external_event=external_event,
        source_call_ref=record.source_call_ref,
        booking_id=record.id,
        created_at=_from_naive_utc(record.created_at),
    )


class SqlBookingStore:
    """
    Booking store backed by any SQLAlchemy database URL.

    ``sqlite://`` gives a private in-memory database shared by all sessions
    of this store.
    """

    def __init__(self, database_url: str = "sqlite://", echo: bool = False):
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            self.engine = create_engine(
                database_url,
                echo=echo,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
            # One shared connection; calls arrive from executor threads
            self._connection_lock = threading.RLock()
        else:
            self.engine = create_engine(database_url, echo=echo, pool_pre_ping=True)
            self._connection_lock = nullcontext()

        self._session_factory = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)

    def create_all(self) -> None:
        """Create the bookings table if needed."""
        Base.metadata.create_all(self.engine)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        with self._connection_lock:
            session = self._session_factory()
            try:
                yield session
            finally:
                session.close()

    def find_bookings(
        self,
        school_id: str,
        window_start: DateTime,
        window_end: DateTime,
    ) -> List[Booking]:
        """
        Return the school's bookings whose interval intersects the window.
        """
        # Widened by one booking length so bookings starting just before
        # the window still match; the exact test happens below.
        lower = _to_naive_utc(window_start) - timedelta(minutes=BOOKING_DURATION_MINUTES)
        upper = _to_naive_utc(window_end)

        with self._session() as session:
            records = session.scalars(
                select(TourBookingRecord)
                .where(TourBookingRecord.school_id == school_id)
                .where(TourBookingRecord.scheduled_at > lower)
                .where(TourBookingRecord.scheduled_at < upper)
                .order_by(TourBookingRecord.scheduled_at)
            ).all()

        bookings = [_to_booking(record) for record in records]

        return [
            booking for booking in bookings
            if booking.scheduled_at < window_end and booking.interval.end > window_start
        ]

    def insert_booking(self, booking: Booking) -> Booking:
        """
        Persist a new booking and return it with its id.

        Raises:
            UniqueConstraintViolation: If the school already has a booking at that time
        """
        record = TourBookingRecord(
            school_id=booking.school_id,
            parent_name=booking.contact.name,
            phone=booking.contact.phone,
            email=booking.contact.email,
            child_age=booking.contact.child_age,
            reason=booking.contact.reason,
            scheduled_at=_to_naive_utc(booking.scheduled_at),
            duration_minutes=booking.duration_minutes,
            calendar_provider=booking.external_event.provider if booking.external_event else "",
            calendar_event_id=booking.external_event.event_id if booking.external_event else "",
            source_call_ref=booking.source_call_ref,
            created_at=_to_naive_utc(booking.created_at or pendulum.now("UTC")),
        )

        with self._session() as session:
            session.add(record)
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                logger.info(
                    "Rejected duplicate booking for school %s at %s",
                    booking.school_id, booking.scheduled_at,
                )
                raise UniqueConstraintViolation(
                    f"School {booking.school_id} already has a booking at {booking.scheduled_at}"
                ) from e

            return _to_booking(record)

    def list_bookings(self, school_id: str, limit: int = 50) -> List[Booking]:
        """Return the school's most recent bookings, newest first."""
        with self._session() as session:
            records = session.scalars(
                select(TourBookingRecord)
                .where(TourBookingRecord.school_id == school_id)
                .order_by(TourBookingRecord.scheduled_at.desc())
                .limit(limit)
            ).all()

        return [_to_booking(record) for record in records]
