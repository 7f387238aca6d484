from datetime import datetime, timedelta, timezone

import pytest

from cafe_engine.application.assignment_service import AssignmentService
from cafe_engine.application.booking_service import BookingService
from cafe_engine.application.cancellation_service import CancellationService
from cafe_engine.application.extension_service import ExtensionService
from cafe_engine.domain.assignment import RoomAssignment
from cafe_engine.domain.exceptions import (
    CancellationWindowClosedError,
    WrongStateError,
)
from cafe_engine.domain.state_machine import BookingStatus, TerminalStatus
from cafe_engine.infrastructure.db.models import Booking
from cafe_engine.infrastructure.refunds import RefundDescriptor
from cafe_engine.infrastructure.repositories.terminal_repository import TerminalRepository

T0 = datetime(2026, 3, 1, 18, 0, tzinfo=timezone.utc)


class RecordingGateway:

    def __init__(self):
        self.refunded = []

    def refund(self, booking, amount_paise, receipt=None):
        self.refunded.append((booking.id, amount_paise, receipt))
        return RefundDescriptor(
            method="razorpay",
            amount_paise=amount_paise,
            status="processed",
            message="Refund initiated with the payment provider.",
            reference="rfnd_test_1",
        )


class FailingGateway:

    def refund(self, booking, amount_paise, receipt=None):
        raise ConnectionError("provider unreachable")


def _start(db, cafe, booking, now=T0):
    AssignmentService(db).assign(
        cafe.id, booking.id, [RoomAssignment("VIP", ("PC01",))], now=now
    )
    db.commit()


def test_cancel_unstarted_booking_without_payment(db, cafe, make_walk_in):
    booking = make_walk_in()

    cancelled, refund = CancellationService(db).cancel(cafe.id, booking.id, now=T0)
    db.commit()

    assert cancelled.status == BookingStatus.CANCELLED
    assert cancelled.permanently_cancelled is True
    assert refund is None
    assert cancelled.refunds == []


def test_cancel_paid_session_within_window_refunds(db, cafe, make_walk_in):
    booking = make_walk_in(payment_method="cash")
    _start(db, cafe, booking)

    cancelled, refund = CancellationService(db).cancel(
        cafe.id, booking.id, now=T0 + timedelta(minutes=14)
    )
    db.commit()

    assert cancelled.status == BookingStatus.CANCELLED
    assert refund.method == "cash"
    assert refund.amount_paise == 10_000
    assert refund.status == "pending"
    assert [(item.method, item.amount_paise) for item in cancelled.refunds] == [("cash", 10_000)]

    terminal = TerminalRepository(db).get_in_room(cafe.id, "VIP", "PC01")
    assert terminal.status == TerminalStatus.AVAILABLE
    assert terminal.active_booking_id is None


def test_refund_gateway_is_pluggable(db, cafe, make_walk_in):
    booking = make_walk_in()
    BookingService(db).record_payment(
        cafe.id, booking.id, "completed", method="upi", amount=100, reference="pay_123"
    )
    db.commit()
    gateway = RecordingGateway()

    service = CancellationService(db, gateway)
    cancelled, refund = service.cancel(cafe.id, booking.id, now=T0)
    db.commit()
    assert gateway.refunded == []
    assert refund.status == "pending"

    refund = service.settle_refund(refund)
    db.commit()

    assert gateway.refunded == [(booking.id, 10_000, refund.id)]
    assert refund.reference == "rfnd_test_1"
    assert cancelled.refunds[0].reference == "rfnd_test_1"
    assert cancelled.refunds[0].status == "processed"


def test_cancel_after_window_is_refused(db, cafe, make_walk_in):
    booking = make_walk_in()
    _start(db, cafe, booking)

    with pytest.raises(CancellationWindowClosedError):
        CancellationService(db).cancel(cafe.id, booking.id, now=T0 + timedelta(minutes=15))

    db.expire_all()
    assert db.get(Booking, booking.id).status == BookingStatus.ACTIVE


def test_cancel_is_permanent(db, cafe, make_walk_in):
    booking = make_walk_in()
    CancellationService(db).cancel(cafe.id, booking.id, now=T0)
    db.commit()

    with pytest.raises(WrongStateError):
        CancellationService(db).cancel(cafe.id, booking.id, now=T0)
    with pytest.raises(WrongStateError):
        AssignmentService(db).assign(
            cafe.id, booking.id, [RoomAssignment("VIP", ("PC01",))], now=T0
        )
    with pytest.raises(WrongStateError):
        ExtensionService(db).extend(cafe.id, booking.id, 1.0, now=T0)
    with pytest.raises(WrongStateError):
        BookingService(db).record_payment(cafe.id, booking.id, "completed")


def test_cancelled_terminal_can_be_reassigned(db, cafe, make_walk_in):
    first = make_walk_in()
    second = make_walk_in()
    _start(db, cafe, first)
    CancellationService(db).cancel(cafe.id, first.id, now=T0 + timedelta(minutes=5))
    db.commit()

    _start(db, cafe, second, now=T0 + timedelta(minutes=6))

    terminal = TerminalRepository(db).get_in_room(cafe.id, "VIP", "PC01")
    assert terminal.active_booking_id == second.id


def test_completed_extension_payment_is_refunded_with_base_payment(db, cafe, make_walk_in):
    booking = make_walk_in(payment_method="cash")
    _start(db, cafe, booking)
    extensions = ExtensionService(db)
    extensions.extend(cafe.id, booking.id, 1.0, now=T0 + timedelta(minutes=2))
    extensions.confirm_extension_payment(cafe.id, booking.id, "completed")
    db.commit()

    cancelled, refund = CancellationService(db).cancel(
        cafe.id, booking.id, now=T0 + timedelta(minutes=5)
    )
    db.commit()

    assert refund.amount_paise == 20_000
    assert [item.amount_paise for item in cancelled.refunds] == [20_000]


def test_completed_extension_payment_alone_is_refunded(db, cafe, make_walk_in):
    booking = make_walk_in()
    _start(db, cafe, booking)
    extensions = ExtensionService(db)
    extensions.extend(cafe.id, booking.id, 0.5, now=T0 + timedelta(minutes=2))
    extensions.confirm_extension_payment(cafe.id, booking.id, "completed")
    db.commit()

    cancelled, refund = CancellationService(db).cancel(
        cafe.id, booking.id, now=T0 + timedelta(minutes=5)
    )
    db.commit()

    assert cancelled.amount_paid_paise == 0
    assert refund is not None
    assert refund.amount_paise == 5_000
    assert refund.status == "pending"


def test_pending_extension_payment_is_not_refunded(db, cafe, make_walk_in):
    booking = make_walk_in(payment_method="cash")
    _start(db, cafe, booking)
    ExtensionService(db).extend(cafe.id, booking.id, 1.0, now=T0 + timedelta(minutes=2))
    db.commit()

    _, refund = CancellationService(db).cancel(
        cafe.id, booking.id, now=T0 + timedelta(minutes=5)
    )

    assert refund.amount_paise == 10_000


def test_gateway_failure_keeps_cancellation_and_marks_refund_failed(db, cafe, make_walk_in):
    booking = make_walk_in(payment_method="upi")
    _start(db, cafe, booking)
    service = CancellationService(db, FailingGateway())
    _, refund = service.cancel(cafe.id, booking.id, now=T0 + timedelta(minutes=5))
    db.commit()

    refund = service.settle_refund(refund)
    db.commit()

    db.expire_all()
    stored = db.get(Booking, booking.id)
    assert stored.status == BookingStatus.CANCELLED
    assert [(item.status, item.amount_paise) for item in stored.refunds] == [("failed", 10_000)]


def test_settled_refund_is_not_issued_twice(db, cafe, make_walk_in):
    booking = make_walk_in()
    BookingService(db).record_payment(
        cafe.id, booking.id, "completed", method="upi", amount=100, reference="pay_123"
    )
    db.commit()
    gateway = RecordingGateway()
    service = CancellationService(db, gateway)
    _, refund = service.cancel(cafe.id, booking.id, now=T0)
    db.commit()

    service.settle_refund(refund)
    service.settle_refund(refund)

    assert len(gateway.refunded) == 1
