from datetime import datetime, timedelta, timezone

import pytest

from cafe_engine.application.assignment_service import AssignmentService
from cafe_engine.application.extension_service import ExtensionService
from cafe_engine.application.session_service import SessionService
from cafe_engine.domain.assignment import RoomAssignment
from cafe_engine.domain.exceptions import BookingValidationError, WrongStateError
from cafe_engine.domain.session_clock import as_utc, remaining
from cafe_engine.domain.state_machine import BookingStatus, PaymentStatus

T0 = datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def active_booking(db, cafe, make_walk_in):
    booking = make_walk_in(
        systems=[{"room_type": "VIP", "terminal_type": "PC", "number_of_terminals": 2}],
        duration=1.0,
    )
    AssignmentService(db).assign(
        cafe.id,
        booking.id,
        [RoomAssignment("VIP", ("PC01", "PC02"))],
        now=T0,
    )
    db.commit()
    return booking


def test_extend_active_session_moves_end_time(db, cafe, active_booking):
    booking = ExtensionService(db).extend(
        cafe.id, active_booking.id, 1.0, now=T0 + timedelta(minutes=40)
    )
    db.commit()

    assert booking.extended_time == 1.0
    assert booking.total_hours == 2.0
    assert as_utc(booking.session_end_time) == T0 + timedelta(hours=2)
    # 2 PCs at 100/h for one extra hour
    assert booking.extension_payment_amount_paise == 20_000
    assert booking.extension_payment_status == PaymentStatus.PENDING

    clock = remaining(booking.session_start_time, booking.total_hours, T0 + timedelta(minutes=40))
    assert clock.remaining_minutes == 80


def test_pending_extension_charges_accumulate(db, cafe, active_booking):
    service = ExtensionService(db)
    service.extend(cafe.id, active_booking.id, 1.0, now=T0 + timedelta(minutes=10))
    db.commit()
    booking = service.extend(cafe.id, active_booking.id, 0.5, now=T0 + timedelta(minutes=20))
    db.commit()

    assert booking.extended_time == 1.5
    assert booking.extension_payment_amount_paise == 30_000


def test_settled_extension_starts_a_new_charge(db, cafe, active_booking):
    service = ExtensionService(db)
    service.extend(cafe.id, active_booking.id, 1.0, now=T0 + timedelta(minutes=10))
    db.commit()
    confirmed = service.confirm_extension_payment(cafe.id, active_booking.id, "completed")
    db.commit()
    assert confirmed.extension_payment_status == PaymentStatus.COMPLETED

    booking = service.extend(cafe.id, active_booking.id, 0.5, now=T0 + timedelta(minutes=20))
    db.commit()

    assert booking.extension_payment_amount_paise == 10_000
    assert booking.extension_payment_status == PaymentStatus.PENDING


def test_explicit_extension_amount_wins(db, cafe, active_booking):
    booking = ExtensionService(db).extend(
        cafe.id,
        active_booking.id,
        0.5,
        payment_amount=75,
        now=T0 + timedelta(minutes=10),
    )
    db.commit()

    assert booking.extension_payment_amount_paise == 7_500


def test_subset_of_terminals_extends_whole_booking(db, cafe, active_booking):
    booking = ExtensionService(db).extend(
        cafe.id,
        active_booking.id,
        0.5,
        terminal_ids=["PC02"],
        now=T0 + timedelta(minutes=10),
    )
    db.commit()

    assert booking.extended_time == 0.5
    assert as_utc(booking.session_end_time) == T0 + timedelta(hours=1.5)


@pytest.mark.parametrize("terminal_ids", [[], ["PC03"], ["PC01", "PS01"]])
def test_terminals_outside_booking_are_rejected(db, cafe, active_booking, terminal_ids):
    with pytest.raises(BookingValidationError):
        ExtensionService(db).extend(
            cafe.id,
            active_booking.id,
            1.0,
            terminal_ids=terminal_ids,
            now=T0 + timedelta(minutes=10),
        )


def test_extend_booked_booking_before_start(db, cafe, make_walk_in):
    booking = make_walk_in(
        systems=[{"room_type": "Console", "terminal_type": "PS5", "number_of_terminals": 2}],
        duration=1.0,
    )

    extended = ExtensionService(db).extend(cafe.id, booking.id, 1.0, now=T0)
    db.commit()

    assert extended.status == BookingStatus.BOOKED
    assert extended.extended_time == 1.0
    assert extended.session_end_time is None
    # 2 PS5 at 150/h
    assert extended.extension_payment_amount_paise == 30_000


def test_session_started_after_extension_uses_total_hours(db, cafe, make_walk_in):
    booking = make_walk_in(duration=1.0)
    ExtensionService(db).extend(cafe.id, booking.id, 0.5, now=T0)
    db.commit()

    started = AssignmentService(db).assign(
        cafe.id, booking.id, [RoomAssignment("VIP", ("PC01",))], now=T0
    )
    db.commit()

    assert as_utc(started.session_end_time) == T0 + timedelta(hours=1.5)


@pytest.mark.parametrize("hours", [0, -0.5, 0.25, 1.1, 1e11])
def test_invalid_hours_are_rejected(db, cafe, active_booking, hours):
    with pytest.raises(BookingValidationError):
        ExtensionService(db).extend(cafe.id, active_booking.id, hours, now=T0)


def test_extension_cannot_take_booking_past_the_longest_session(db, cafe, make_walk_in):
    booking = make_walk_in(duration=20.0)
    service = ExtensionService(db)

    with pytest.raises(BookingValidationError):
        service.extend(cafe.id, booking.id, 4.5, now=T0)
    db.rollback()

    service.extend(cafe.id, booking.id, 4.0, now=T0)
    db.commit()
    started = AssignmentService(db).assign(
        cafe.id, booking.id, [RoomAssignment("VIP", ("PC01",))], now=T0
    )

    assert as_utc(started.session_end_time) == T0 + timedelta(hours=24)


def test_expired_session_cannot_be_extended(db, cafe, active_booking):
    with pytest.raises(WrongStateError):
        ExtensionService(db).extend(
            cafe.id, active_booking.id, 1.0, now=T0 + timedelta(hours=1, minutes=1)
        )


def test_completed_session_cannot_be_extended(db, cafe, active_booking):
    SessionService(db).end_session(cafe.id, active_booking.id)
    db.commit()

    with pytest.raises(WrongStateError):
        ExtensionService(db).extend(cafe.id, active_booking.id, 1.0, now=T0)


def test_confirm_without_pending_extension(db, cafe, active_booking):
    with pytest.raises(WrongStateError):
        ExtensionService(db).confirm_extension_payment(cafe.id, active_booking.id, "completed")


def test_failed_extension_payment_is_recorded(db, cafe, active_booking):
    service = ExtensionService(db)
    service.extend(cafe.id, active_booking.id, 0.5, now=T0 + timedelta(minutes=5))
    db.commit()

    booking = service.confirm_extension_payment(cafe.id, active_booking.id, "failed")
    db.commit()

    assert booking.extension_payment_status == PaymentStatus.FAILED
    assert booking.extended_time == 0.5
