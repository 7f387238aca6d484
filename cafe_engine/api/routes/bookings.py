import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from cafe_engine.api.deps import (
    get_db,
    get_owner_cafe,
    get_refund_gateway,
    get_sweeper,
)
from cafe_engine.api.errors import domain_errors
from cafe_engine.api.presenters import booking_fields, booking_response, refund_response
from cafe_engine.api.routes.systems import to_room_assignments
from cafe_engine.api.schemas.schemas import (
    BookingResponse,
    CancelBookingResponse,
    ExtensionPaymentRequest,
    MobileBookingRequest,
    MobileBookingResponse,
    PaymentRequest,
    StartMobileSessionRequest,
    SweepResponse,
    VerifyOTPRequest,
    VerifyOTPResponse,
    WalkInBookingRequest,
)
from cafe_engine.application.assignment_service import AssignmentService
from cafe_engine.application.booking_service import BookingService
from cafe_engine.application.cancellation_service import CancellationService
from cafe_engine.application.expiry_sweeper import ExpirySweeper
from cafe_engine.application.extension_service import ExtensionService
from cafe_engine.application.otp_gate import OTPGate
from cafe_engine.infrastructure.db.models import Cafe

router = APIRouter(prefix="/api/bookings", tags=["bookings"])
logger = logging.getLogger(__name__)


def _requirements(request) -> list[dict]:
    return [item.model_dump() for item in request.systems_booked]


@router.get("", response_model=list[BookingResponse])
def list_bookings(
    cafe: Cafe = Depends(get_owner_cafe),
    db: Session = Depends(get_db),
    sweeper: ExpirySweeper = Depends(get_sweeper),
):
    sweeper.sweep(cafe_id=cafe.id)
    db.expire_all()
    return [booking_response(booking) for booking in BookingService(db).list_bookings(cafe.id)]


@router.post("/walk-in", response_model=BookingResponse, status_code=201)
def create_walk_in_booking(
    request: WalkInBookingRequest,
    cafe: Cafe = Depends(get_owner_cafe),
    db: Session = Depends(get_db),
):
    with domain_errors():
        booking = BookingService(db).create_walk_in_booking(
            cafe=cafe,
            walk_in_customer_name=request.walk_in_customer_name,
            phone_number=request.phone_number,
            systems_booked=_requirements(request),
            duration=request.duration,
            booking_date=request.booking_date,
            start_time=request.start_time,
            payment_method=request.payment_method,
            amount_paid=request.amount_paid,
        )
    return booking_response(booking)


@router.post("/mobile", response_model=MobileBookingResponse, status_code=201)
def create_mobile_booking(
    request: MobileBookingRequest,
    cafe: Cafe = Depends(get_owner_cafe),
    db: Session = Depends(get_db),
):
    with domain_errors():
        booking = BookingService(db).create_mobile_booking(
            cafe=cafe,
            customer_id=request.customer_id,
            systems_booked=_requirements(request),
            duration=request.duration,
            booking_date=request.booking_date,
            start_time=request.start_time,
            phone_number=request.phone_number,
        )
    return MobileBookingResponse.model_validate({**booking_fields(booking), "otp": booking.otp})


@router.post("/auto-complete-expired", response_model=SweepResponse)
def auto_complete_expired(
    cafe: Cafe = Depends(get_owner_cafe),
    sweeper: ExpirySweeper = Depends(get_sweeper),
):
    result = sweeper.sweep(cafe_id=cafe.id)
    return SweepResponse(
        message=f"Completed {len(result.completed)} expired session(s).",
        count=len(result.completed),
        completed_bookings=result.completed,
        system_updates_count=result.released_terminals,
    )


@router.post("/start-mobile-session", response_model=BookingResponse)
def start_mobile_session(
    request: StartMobileSessionRequest,
    cafe: Cafe = Depends(get_owner_cafe),
    db: Session = Depends(get_db),
):
    with domain_errors():
        booking = AssignmentService(db).start_mobile_session(
            cafe.id,
            request.booking_id,
            request.otp,
            to_room_assignments(request.assignments),
        )
    return booking_response(booking)


@router.get("/{booking_id}", response_model=BookingResponse)
def get_booking(
    booking_id: str,
    cafe: Cafe = Depends(get_owner_cafe),
    db: Session = Depends(get_db),
):
    with domain_errors():
        booking = BookingService(db).get_booking(cafe.id, booking_id)
    return booking_response(booking)


@router.post("/{booking_id}/cancel", response_model=CancelBookingResponse)
def cancel_booking(
    booking_id: str,
    cafe: Cafe = Depends(get_owner_cafe),
    db: Session = Depends(get_db),
    refund_gateway=Depends(get_refund_gateway),
):
    service = CancellationService(db, refund_gateway)
    with domain_errors():
        booking, refund = service.cancel(cafe.id, booking_id)
    db.commit()
    if refund is not None:
        refund = service.settle_refund(refund)
    return CancelBookingResponse(
        booking=booking_response(booking),
        refund=refund_response(refund),
    )


@router.post("/{booking_id}/verify-otp", response_model=VerifyOTPResponse)
def verify_otp(
    booking_id: str,
    request: VerifyOTPRequest,
    cafe: Cafe = Depends(get_owner_cafe),
    db: Session = Depends(get_db),
):
    with domain_errors():
        verified = OTPGate(db).verify(cafe.id, booking_id, request.otp)
    return VerifyOTPResponse(success=verified)


@router.post("/{booking_id}/payment", response_model=BookingResponse)
def record_payment(
    booking_id: str,
    request: PaymentRequest,
    cafe: Cafe = Depends(get_owner_cafe),
    db: Session = Depends(get_db),
):
    with domain_errors():
        booking = BookingService(db).record_payment(
            cafe.id,
            booking_id,
            result=request.result,
            method=request.method,
            amount=request.amount,
            reference=request.reference,
        )
    return booking_response(booking)


@router.post("/{booking_id}/extension-payment", response_model=BookingResponse)
def record_extension_payment(
    booking_id: str,
    request: ExtensionPaymentRequest,
    cafe: Cafe = Depends(get_owner_cafe),
    db: Session = Depends(get_db),
):
    with domain_errors():
        booking = ExtensionService(db).confirm_extension_payment(
            cafe.id,
            booking_id,
            request.result,
        )
    return booking_response(booking)
