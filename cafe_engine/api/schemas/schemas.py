from datetime import date, datetime
from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from cafe_engine.domain.state_machine import (
    BookingSource,
    BookingStatus,
    PaymentStatus,
    TerminalStatus,
)


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# -----------------------------
# Requests
# -----------------------------
class SystemRequirementIn(CamelModel):
    room_type: str
    terminal_type: str = Field(
        validation_alias=AliasChoices("terminalType", "systemType", "terminal_type"),
    )
    number_of_terminals: int = Field(
        validation_alias=AliasChoices(
            "numberOfTerminals",
            "numberOfSystems",
            "number_of_terminals",
        ),
    )


class _RequirementsRequest(CamelModel):
    systems_booked: list[SystemRequirementIn] = Field(default_factory=list)
    duration: float
    booking_date: date | None = None
    start_time: str | None = None

    @model_validator(mode="before")
    @classmethod
    def fold_single_requirement(cls, data):
        # Older clients send one room/system pair instead of a list.
        if not isinstance(data, dict):
            return data
        if data.get("systemsBooked") or data.get("systems_booked"):
            return data
        if "roomType" not in data:
            return data
        data = dict(data)
        data["systemsBooked"] = [
            {
                "roomType": data.pop("roomType"),
                "systemType": data.pop("systemType", None),
                "numberOfSystems": data.pop("numberOfSystems", 1),
            }
        ]
        return data


class WalkInBookingRequest(_RequirementsRequest):
    walk_in_customer_name: str = Field(
        validation_alias=AliasChoices(
            "walkInCustomerName",
            "customerName",
            "walk_in_customer_name",
        ),
    )
    phone_number: str
    payment_method: str | None = None
    amount_paid: float | None = Field(default=None, ge=0)


class MobileBookingRequest(_RequirementsRequest):
    customer_id: str
    phone_number: str | None = None


class RoomAssignmentIn(CamelModel):
    room_type: str
    terminal_ids: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("terminalIds", "systemIds", "terminal_ids"),
    )


class StartSessionRequest(CamelModel):
    booking_id: str
    assignments: list[RoomAssignmentIn]


class StartMobileSessionRequest(StartSessionRequest):
    otp: str


class EndSessionRequest(CamelModel):
    booking_id: str


class ExtendSessionRequest(CamelModel):
    booking_id: str
    hours_to_add: float
    terminal_ids: list[str] | None = Field(
        default=None,
        validation_alias=AliasChoices("terminalIds", "systemIds", "terminal_ids"),
    )
    extension_payment_amount: float | None = Field(default=None, ge=0)

    @model_validator(mode="before")
    @classmethod
    def fold_single_terminal(cls, data):
        # Older clients extend one terminal at a time.
        if not isinstance(data, dict) or "systemId" not in data:
            return data
        if any(key in data for key in ("terminalIds", "systemIds", "terminal_ids")):
            return data
        data = dict(data)
        data["terminalIds"] = [data.pop("systemId")]
        return data


class VerifyOTPRequest(CamelModel):
    otp: str


class PaymentRequest(CamelModel):
    result: Literal["completed", "failed"]
    method: str | None = None
    amount: float | None = Field(default=None, ge=0)
    reference: str | None = None


class ExtensionPaymentRequest(CamelModel):
    result: Literal["completed", "failed"]


class MaintenanceRequest(CamelModel):
    status: TerminalStatus


class CafeOpenRequest(CamelModel):
    is_open: bool


# -----------------------------
# Responses
# -----------------------------
class SystemRequirementResponse(CamelModel):
    room_type: str
    terminal_type: str
    number_of_terminals: int


class AssignedTerminalResponse(CamelModel):
    terminal_id: str
    room_type: str
    terminal_type: str
    price_per_hour: int


class SessionRemainingResponse(CamelModel):
    expired: bool
    remaining_ms: int
    remaining_minutes: int
    percentage: float
    end_time: datetime


class BookingResponse(CamelModel):
    id: str
    cafe_id: str
    source: BookingSource
    customer_id: str | None
    walk_in_customer_name: str | None
    phone_number: str | None
    systems_booked: list[SystemRequirementResponse]
    assigned_systems: list[AssignedTerminalResponse]
    duration: float
    extended_time: float
    total_hours: float
    status: BookingStatus
    permanently_cancelled: bool
    booking_date: date | None
    start_time: str | None
    session_start_time: datetime | None
    session_end_time: datetime | None
    otp_verified: bool
    total_price: float
    currency: str
    payment_status: PaymentStatus
    payment_method: str | None
    amount_paid: float
    payment_reference: str | None
    extension_payment_amount: float
    extension_payment_status: PaymentStatus
    can_cancel: bool
    session: SessionRemainingResponse | None
    created_at: datetime | None


class MobileBookingResponse(BookingResponse):
    otp: str


class RefundResponse(CamelModel):
    method: str
    amount: float
    status: str
    message: str
    reference: str | None = None


class CancelBookingResponse(CamelModel):
    booking: BookingResponse
    refund: RefundResponse | None = None


class SweepResponse(CamelModel):
    message: str
    count: int
    completed_bookings: list[str]
    system_updates_count: int


class VerifyOTPResponse(CamelModel):
    success: bool


class TerminalResponse(CamelModel):
    terminal_id: str
    type: str
    price_per_hour: int
    status: TerminalStatus
    active_booking_id: str | None


class RoomResponse(CamelModel):
    name: str
    terminals: list[TerminalResponse]


class CafeResponse(CamelModel):
    id: str
    name: str
    is_open: bool
    rooms: list[RoomResponse]


class TerminalTypeAvailability(CamelModel):
    type: str
    price_per_hour: int
    total: int
    available: int
    active: int
    under_maintenance: int


class RoomAvailability(CamelModel):
    name: str
    types: list[TerminalTypeAvailability]


class ActiveSessionResponse(CamelModel):
    booking_id: str
    terminal_ids: list[str]
    expired: bool
    remaining_ms: int
    remaining_minutes: int
    percentage: float
    end_time: datetime


class AvailabilityResponse(CamelModel):
    cafe_id: str
    is_open: bool
    rooms: list[RoomAvailability]
    active_sessions: list[ActiveSessionResponse]
