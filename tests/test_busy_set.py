"""
Tests for busy-set aggregation.
"""

import asyncio

import pytest

from conftest import SCHOOL, Engine, StubCalendarClient, at, connection, span
from tourbooking.domain.exceptions import AggregationError, ProviderErrorKind
from tourbooking.domain.models import Booking, Contact


def _busy_set(engine, start="09:00", end="17:00"):
    return asyncio.run(engine.aggregator.get_busy_set(SCHOOL, at(start), at(end)))


def _book(store, hhmm, school_id=SCHOOL):
    return store.insert_booking(
        Booking(school_id=school_id, contact=Contact(name="Ana"), scheduled_at=at(hhmm))
    )


def test_without_connection_uses_bookings_only(engine):
    """Degraded mode: no calendar connected is not an error."""
    _book(engine.booking_store, "10:00")

    busy_set = _busy_set(engine)

    assert busy_set.intervals == (span("10:00", "10:15"),)
    assert busy_set.connection is None
    assert busy_set.provider is None


def test_union_of_calendar_and_bookings(google_engine, google_client):
    google_client.busy = [span("13:00", "14:30")]
    _book(google_engine.booking_store, "10:00")

    busy_set = _busy_set(google_engine)

    assert set(busy_set.intervals) == {span("13:00", "14:30"), span("10:00", "10:15")}
    assert busy_set.provider == "google"
    assert google_client.fetch_calls[0]["credential"] == "token-abc"
    assert google_client.fetch_calls[0]["start"] == at("09:00")
    assert google_client.fetch_calls[0]["end"] == at("17:00")


def test_other_schools_bookings_ignored(engine):
    _book(engine.booking_store, "10:00", school_id="school-2")

    assert _busy_set(engine).intervals == ()


def test_provider_failure_aborts_aggregation():
    """Bookings alone are never returned when the connected calendar fails."""
    client = StubCalendarClient(fetch_error=ProviderErrorKind.RATE_LIMITED)
    engine = Engine(connections=[connection("google")], clients={"google": client})
    _book(engine.booking_store, "10:00")

    with pytest.raises(AggregationError) as exc_info:
        _busy_set(engine)

    assert exc_info.value.provider_error.kind is ProviderErrorKind.RATE_LIMITED
    assert exc_info.value.provider_error.provider == "google"


def test_slow_provider_times_out_as_unreachable():
    client = StubCalendarClient(delay=0.5)
    engine = Engine(
        connections=[connection("google")], clients={"google": client}, call_deadline=0.05
    )

    with pytest.raises(AggregationError) as exc_info:
        _busy_set(engine)

    assert exc_info.value.provider_error.kind is ProviderErrorKind.UNREACHABLE


def test_disconnected_calendar_is_degraded_mode():
    client = StubCalendarClient(fetch_error=ProviderErrorKind.UNAUTHORIZED)
    engine = Engine(
        connections=[connection("google", connected=False)], clients={"google": client}
    )

    busy_set = _busy_set(engine)

    assert busy_set.connection is None
    assert client.fetch_calls == []


def test_google_preferred_over_outlook():
    google = StubCalendarClient(provider="google", busy=[span("09:00", "10:00")])
    outlook = StubCalendarClient(provider="outlook", busy=[span("11:00", "12:00")])
    engine = Engine(
        connections=[connection("outlook", credential="ms"), connection("google")],
        clients={"google": google, "outlook": outlook},
    )

    busy_set = _busy_set(engine)

    assert busy_set.provider == "google"
    assert busy_set.intervals == (span("09:00", "10:00"),)
    assert outlook.fetch_calls == []


def test_outlook_used_when_google_disconnected():
    google = StubCalendarClient(provider="google")
    outlook = StubCalendarClient(provider="outlook", busy=[span("11:00", "12:00")])
    engine = Engine(
        connections=[connection("google", connected=False), connection("outlook", credential="ms")],
        clients={"google": google, "outlook": outlook},
    )

    busy_set = _busy_set(engine)

    assert busy_set.provider == "outlook"
    assert outlook.fetch_calls[0]["credential"] == "ms"
    assert google.fetch_calls == []


def test_conflicts_with(google_engine, google_client):
    google_client.busy = [span("13:00", "14:30")]

    busy_set = _busy_set(google_engine)

    assert busy_set.conflicts_with(span("14:15", "14:30"))
    assert not busy_set.conflicts_with(span("14:30", "14:45"))
    assert not busy_set.conflicts_with(span("12:45", "13:00"))
