# cafe_engine/infrastructure/refunds.py

from dataclasses import dataclass
import logging
import os

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RefundDescriptor:
    method: str
    amount_paise: int
    status: str
    message: str
    reference: str | None = None


class ManualRefundGateway:
    """Records a full refund of the amount paid for settlement at the counter."""

    def refund(self, booking, amount_paise: int, receipt: str | None = None) -> RefundDescriptor:
        return RefundDescriptor(
            method=booking.payment_method or "cash",
            amount_paise=amount_paise,
            status="pending",
            message="Refund recorded for manual settlement.",
        )


class RazorpayRefundGateway:
    """Refunds online payments through Razorpay; anything else falls back to manual.

    A refund larger than the captured online payment (an extension settled at
    the counter) is left for manual settlement as a whole.
    """

    def __init__(self, client=None):
        self._client = client
        self._fallback = ManualRefundGateway()

    def refund(self, booking, amount_paise: int, receipt: str | None = None) -> RefundDescriptor:
        if not booking.payment_reference or amount_paise > booking.amount_paid_paise:
            return self._fallback.refund(booking, amount_paise, receipt)

        import razorpay

        client = self._client or _razorpay_client()
        payload = {
            "amount": amount_paise,
            "notes": {"booking_id": booking.id},
        }
        if receipt:
            payload["receipt"] = receipt
        try:
            result = client.payment.refund(booking.payment_reference, payload)
        except (
            razorpay.errors.BadRequestError,
            razorpay.errors.GatewayError,
            razorpay.errors.ServerError,
        ) as exc:
            logger.warning(
                "Razorpay refund failed. booking_id=%s payment_id=%s error=%s",
                booking.id,
                booking.payment_reference,
                exc,
            )
            return RefundDescriptor(
                method="razorpay",
                amount_paise=amount_paise,
                status="failed",
                message="Refund could not be issued online and needs manual follow-up.",
            )

        return RefundDescriptor(
            method="razorpay",
            amount_paise=result.get("amount", amount_paise),
            status=result.get("status", "pending"),
            message="Refund initiated with the payment provider.",
            reference=result.get("id"),
        )


def _razorpay_client():
    import razorpay

    key_id = os.getenv("RAZORPAY_KEY_ID")
    key_secret = os.getenv("RAZORPAY_KEY_SECRET")
    if not key_id or not key_secret:
        raise RuntimeError(
            "Razorpay keys not configured. Set RAZORPAY_KEY_ID and RAZORPAY_KEY_SECRET."
        )
    return razorpay.Client(auth=(key_id, key_secret))


def get_refund_gateway():
    provider = os.getenv("REFUND_PROVIDER", "manual").lower()
    if provider == "razorpay":
        return RazorpayRefundGateway()
    return ManualRefundGateway()
