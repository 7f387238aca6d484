# cafe_engine/infrastructure/db/models.py

from sqlalchemy import (
    String,
    Integer,
    Float,
    Boolean,
    Date,
    DateTime,
    Enum,
    Text,
    UniqueConstraint,
    CheckConstraint,
    ForeignKey,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from datetime import date, datetime
from uuid import uuid4

from cafe_engine.infrastructure.db.session import Base
from cafe_engine.domain.state_machine import (
    BookingSource,
    BookingStatus,
    PaymentStatus,
    TerminalStatus,
)


def _uuid() -> str:
    return str(uuid4())


payment_status_enum = Enum(PaymentStatus, name="payment_status")


class Cafe(Base):
    __tablename__ = "cafes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    is_open: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    rooms: Mapped[list["Room"]] = relationship(
        back_populates="cafe",
        order_by="Room.position",
        cascade="all, delete-orphan",
    )


class Room(Base):
    __tablename__ = "rooms"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    cafe_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("cafes.id"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(64), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    cafe: Mapped[Cafe] = relationship(back_populates="rooms")
    terminals: Mapped[list["Terminal"]] = relationship(
        back_populates="room",
        order_by="Terminal.position",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("cafe_id", "name", name="uq_room_name_per_cafe"),
    )


class Terminal(Base):
    """
    A bookable PC or console. terminal_id is the human readable code
    (e.g. PC01) and is unique within the cafe.
    """

    __tablename__ = "terminals"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    cafe_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("cafes.id"),
        nullable=False,
    )
    room_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("rooms.id"),
        nullable=False,
    )
    terminal_id: Mapped[str] = mapped_column(String(32), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    price_per_hour: Mapped[int] = mapped_column(Integer, nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[TerminalStatus] = mapped_column(
        Enum(TerminalStatus, name="terminal_status"),
        nullable=False,
        default=TerminalStatus.AVAILABLE,
    )
    active_booking_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("bookings.id"),
        nullable=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    room: Mapped[Room] = relationship(back_populates="terminals")

    __table_args__ = (
        UniqueConstraint("cafe_id", "terminal_id", name="uq_terminal_id_per_cafe"),
        CheckConstraint("price_per_hour >= 0", name="ck_terminal_price_nonnegative"),
        CheckConstraint(
            "(status = 'ACTIVE') = (active_booking_id IS NOT NULL)",
            name="ck_terminal_active_has_booking",
        ),
    )


class Booking(Base):
    """
    Booking table reflecting domain state.
    Domain controls transitions; every write is a conditional update.
    """

    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    cafe_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("cafes.id"),
        nullable=False,
        index=True,
    )
    source: Mapped[BookingSource] = mapped_column(
        Enum(BookingSource, name="booking_source"),
        nullable=False,
        default=BookingSource.WALK_IN,
    )
    customer_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    walk_in_customer_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    phone_number: Mapped[str | None] = mapped_column(String(16), nullable=True)

    duration: Mapped[float] = mapped_column(Float, nullable=False)
    extended_time: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    status: Mapped[BookingStatus] = mapped_column(
        Enum(BookingStatus, name="booking_status"),
        nullable=False,
        default=BookingStatus.BOOKED,
    )
    permanently_cancelled: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )
    booking_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    start_time: Mapped[str | None] = mapped_column(String(16), nullable=True)
    session_start_time: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    session_end_time: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    otp: Mapped[str | None] = mapped_column(String(6), nullable=True)
    otp_verified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    total_price_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(8), nullable=False, default="INR")
    payment_status: Mapped[PaymentStatus] = mapped_column(
        payment_status_enum,
        nullable=False,
        default=PaymentStatus.NOT_SET,
    )
    payment_method: Mapped[str | None] = mapped_column(String(32), nullable=True)
    amount_paid_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    payment_reference: Mapped[str | None] = mapped_column(String(128), nullable=True)
    extension_payment_amount_paise: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )
    extension_payment_status: Mapped[PaymentStatus] = mapped_column(
        payment_status_enum,
        nullable=False,
        default=PaymentStatus.NOT_SET,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    systems_booked: Mapped[list["BookingRequirement"]] = relationship(
        back_populates="booking",
        order_by="BookingRequirement.position",
        cascade="all, delete-orphan",
    )
    assigned_systems: Mapped[list["AssignedTerminal"]] = relationship(
        back_populates="booking",
        order_by="AssignedTerminal.terminal_id",
        cascade="all, delete-orphan",
    )
    refunds: Mapped[list["RefundRecord"]] = relationship(
        back_populates="booking",
        order_by="RefundRecord.created_at",
        cascade="all, delete-orphan",
    )

    @property
    def total_hours(self) -> float:
        return self.duration + self.extended_time

    __table_args__ = (
        CheckConstraint("duration > 0", name="ck_booking_duration_positive"),
        CheckConstraint("extended_time >= 0", name="ck_booking_extended_nonnegative"),
    )


class BookingRequirement(Base):
    __tablename__ = "booking_requirements"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    booking_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("bookings.id"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    room_type: Mapped[str] = mapped_column(String(64), nullable=False)
    terminal_type: Mapped[str] = mapped_column(String(32), nullable=False)
    number_of_terminals: Mapped[int] = mapped_column(Integer, nullable=False)

    booking: Mapped[Booking] = relationship(back_populates="systems_booked")

    __table_args__ = (
        CheckConstraint(
            "number_of_terminals > 0",
            name="ck_requirement_count_positive",
        ),
    )


class AssignedTerminal(Base):
    __tablename__ = "assigned_terminals"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    booking_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("bookings.id"),
        nullable=False,
    )
    terminal_id: Mapped[str] = mapped_column(String(32), nullable=False)
    room_type: Mapped[str] = mapped_column(String(64), nullable=False)
    terminal_type: Mapped[str] = mapped_column(String(32), nullable=False)
    price_per_hour: Mapped[int] = mapped_column(Integer, nullable=False)

    booking: Mapped[Booking] = relationship(back_populates="assigned_systems")

    __table_args__ = (
        UniqueConstraint(
            "booking_id",
            "terminal_id",
            name="uq_assigned_terminal_per_booking",
        ),
    )


class RefundRecord(Base):
    __tablename__ = "refund_records"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    booking_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("bookings.id"),
        nullable=False,
    )
    method: Mapped[str] = mapped_column(String(32), nullable=False)
    amount_paise: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    reference: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    booking: Mapped[Booking] = relationship(back_populates="refunds")

    __table_args__ = (
        CheckConstraint("amount_paise >= 0", name="ck_refund_amount_nonnegative"),
    )
