"""
Tests for the SQLAlchemy booking store.
"""

import pendulum
import pytest

from conftest import SCHOOL, at
from tourbooking.adapters.booking_store import SqlBookingStore
from tourbooking.domain.exceptions import UniqueConstraintViolation
from tourbooking.domain.models import Booking, Contact, EventRef


def _booking(hhmm, school_id=SCHOOL, **kwargs):
    return Booking(school_id=school_id, contact=Contact(name="Ana"), scheduled_at=at(hhmm), **kwargs)


def test_insert_assigns_id_and_round_trips_fields(booking_store):
    saved = booking_store.insert_booking(_booking(
        "10:00",
        external_event=EventRef(provider="outlook", event_id="AAMk"),
        source_call_ref="call-1",
    ))

    assert saved.booking_id is not None
    assert saved.scheduled_at == at("10:00")
    assert saved.scheduled_at.timezone_name == "UTC"
    assert saved.external_event == EventRef(provider="outlook", event_id="AAMk")
    assert saved.contact.name == "Ana"
    assert saved.source_call_ref == "call-1"
    assert saved.created_at is not None


def test_scheduled_at_stored_in_utc(booking_store):
    berlin = pendulum.parse("2025-03-03 11:00", tz="Europe/Berlin")

    booking_store.insert_booking(
        Booking(school_id=SCHOOL, contact=Contact(), scheduled_at=berlin)
    )

    assert booking_store.list_bookings(SCHOOL)[0].scheduled_at == at("10:00")


def test_duplicate_slot_rejected(booking_store):
    booking_store.insert_booking(_booking("10:00"))

    with pytest.raises(UniqueConstraintViolation):
        booking_store.insert_booking(_booking("10:00"))

    assert len(booking_store.list_bookings(SCHOOL)) == 1


def test_same_time_other_school_allowed(booking_store):
    booking_store.insert_booking(_booking("10:00"))
    booking_store.insert_booking(_booking("10:00", school_id="school-2"))

    assert len(booking_store.list_bookings(SCHOOL)) == 1
    assert len(booking_store.list_bookings("school-2")) == 1


def test_find_bookings_intersecting_window(booking_store):
    for hhmm in ["09:45", "10:00", "10:50", "11:00"]:
        booking_store.insert_booking(_booking(hhmm))

    found = booking_store.find_bookings(SCHOOL, at("10:05"), at("11:00"))

    # 09:45-10:00 and 11:00-11:15 only touch the window
    assert [booking.scheduled_at for booking in found] == [at("10:00"), at("10:50")]


def test_find_bookings_includes_booking_starting_before_window(booking_store):
    booking_store.insert_booking(_booking("09:55"))

    found = booking_store.find_bookings(SCHOOL, at("10:00"), at("10:15"))

    assert len(found) == 1


def test_list_bookings_newest_first_with_limit(booking_store):
    for hhmm in ["09:00", "11:00", "10:00"]:
        booking_store.insert_booking(_booking(hhmm))

    listed = booking_store.list_bookings(SCHOOL, limit=2)

    assert [booking.scheduled_at for booking in listed] == [at("11:00"), at("10:00")]


def test_file_database_shared_between_stores(tmp_path):
    url = f"sqlite:///{tmp_path / 'bookings.db'}"
    first = SqlBookingStore(url)
    first.create_all()
    second = SqlBookingStore(url)

    first.insert_booking(_booking("10:00"))

    with pytest.raises(UniqueConstraintViolation):
        second.insert_booking(_booking("10:00"))
