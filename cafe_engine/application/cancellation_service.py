import logging
from datetime import datetime

from sqlalchemy.orm import Session

from cafe_engine.application.booking_service import load_booking
from cafe_engine.domain.exceptions import BookingConflictError
from cafe_engine.domain.policies import ensure_cancellable
from cafe_engine.domain.session_clock import utc_now
from cafe_engine.domain.state_machine import (
    BookingStateMachine,
    BookingStatus,
    PaymentStatus,
)
from cafe_engine.infrastructure.db.models import Booking, RefundRecord
from cafe_engine.infrastructure.refunds import ManualRefundGateway
from cafe_engine.infrastructure.repositories.booking_repository import BookingRepository
from cafe_engine.infrastructure.repositories.terminal_repository import TerminalRepository

logger = logging.getLogger(__name__)


def refundable_paise(booking: Booking) -> int:
    """Sum of the booking's completed payments, base and extension."""
    amount = 0
    if booking.payment_status == PaymentStatus.COMPLETED:
        amount += booking.amount_paid_paise
    if booking.extension_payment_status == PaymentStatus.COMPLETED:
        amount += booking.extension_payment_amount_paise
    return amount


class CancellationService:
    """Cancels bookings and settles their refunds.

    ``cancel`` only records a pending refund. The caller commits, then calls
    ``settle_refund`` so the payment provider is never charged for a
    cancellation that did not persist.
    """

    def __init__(self, db: Session, refund_gateway=None):
        self.db = db
        self.refund_gateway = refund_gateway or ManualRefundGateway()
        self.booking_repository = BookingRepository(db)
        self.terminal_repository = TerminalRepository(db)

    def cancel(
        self,
        cafe_id: str,
        booking_id: str,
        now: datetime | None = None,
    ) -> tuple[Booking, RefundRecord | None]:
        now = now or utc_now()
        booking = load_booking(self.booking_repository, cafe_id, booking_id)

        ensure_cancellable(booking, now)
        BookingStateMachine.validate_transition(booking.status, BookingStatus.CANCELLED)

        criteria = []
        if booking.session_start_time is None:
            # An unstarted booking has no window; it must still be unstarted.
            criteria.append(Booking.session_start_time.is_(None))

        cancelled = self.booking_repository.compare_and_set(
            booking.id,
            booking.status,
            *criteria,
            status=BookingStatus.CANCELLED,
            permanently_cancelled=True,
        )
        if not cancelled:
            self.db.rollback()
            raise BookingConflictError(
                "Booking was updated by another action, please refresh."
            )

        released = self.terminal_repository.release_for_booking(booking.id)

        refund = None
        amount_paise = refundable_paise(booking)
        if amount_paise > 0:
            refund = self.booking_repository.add_refund(
                booking_id=booking.id,
                method=booking.payment_method or "cash",
                amount_paise=amount_paise,
                status="pending",
                message="Refund awaiting settlement.",
                reference=None,
            )

        self.db.flush()
        self.db.refresh(booking)
        logger.info(
            "Booking cancelled. booking_id=%s released_terminals=%s refund_paise=%s",
            booking.id,
            released,
            amount_paise,
        )
        return booking, refund

    def settle_refund(self, refund: RefundRecord) -> RefundRecord:
        if refund.status != "pending" or refund.reference:
            return refund

        booking = refund.booking
        try:
            outcome = self.refund_gateway.refund(
                booking, refund.amount_paise, receipt=refund.id
            )
        except Exception:
            logger.exception(
                "Refund gateway call failed. booking_id=%s refund_id=%s",
                booking.id,
                refund.id,
            )
            refund.status = "failed"
            refund.message = "Refund could not be issued and needs manual follow-up."
        else:
            refund.method = outcome.method
            refund.amount_paise = outcome.amount_paise
            refund.status = outcome.status
            refund.message = outcome.message
            refund.reference = outcome.reference

        self.db.flush()
        logger.info(
            "Refund settled. booking_id=%s refund_id=%s status=%s",
            booking.id,
            refund.id,
            refund.status,
        )
        return refund
