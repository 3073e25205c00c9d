"""
Booking models: bookings, their seats, food/drink lines and payments.
"""

import enum
import uuid
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import CheckConstraint, Enum, ForeignKey, Integer, Numeric, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


class BookingType(str, enum.Enum):
    """Where the booking was made."""
    OFFLINE = "offline"
    ONLINE = "online"


class PaymentMethod(str, enum.Enum):
    """How the booking is paid."""
    PAY_ON_PICKUP = "pay_on_pickup"
    PREPAID = "prepaid"


class BookingStatus(str, enum.Enum):
    """Enumeration for booking status."""
    PENDING = "pending"
    PAID = "paid"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    """Enumeration for payment status."""
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class Booking(Base):
    """A confirmed seat booking for one showtime."""

    __tablename__ = "bookings"

    # Operator or customer that created the booking
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    showtime_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("showtimes.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    type: Mapped[BookingType] = mapped_column(Enum(BookingType), nullable=False, default=BookingType.OFFLINE)
    status: Mapped[BookingStatus] = mapped_column(
        Enum(BookingStatus),
        nullable=False,
        default=BookingStatus.PENDING,
        index=True
    )
    payment_method: Mapped[PaymentMethod] = mapped_column(
        Enum(PaymentMethod),
        nullable=False,
        default=PaymentMethod.PAY_ON_PICKUP
    )
    total_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))

    booking_seats: Mapped[List["BookingSeat"]] = relationship(
        "BookingSeat",
        back_populates="booking",
        cascade="all, delete-orphan",
        lazy="selectin"
    )
    booking_food_drinks: Mapped[List["BookingFoodDrink"]] = relationship(
        "BookingFoodDrink",
        back_populates="booking",
        cascade="all, delete-orphan",
        lazy="selectin"
    )

    __table_args__ = (
        CheckConstraint("total_price >= 0", name="ck_bookings_total_price_non_negative"),
    )

    def __repr__(self) -> str:
        """String representation of the booking."""
        return (
            f"<Booking(id={self.id}, showtime_id={self.showtime_id}, "
            f"seats={len(self.booking_seats)}, status={self.status.value})>"
        )


class BookingSeat(Base):
    """A booked seat. One row per (showtime, seat) at most."""

    __tablename__ = "booking_seats"

    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    showtime_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("showtimes.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    seat_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("seats.id", ondelete="CASCADE"),
        nullable=False
    )

    booking: Mapped["Booking"] = relationship("Booking", back_populates="booking_seats")

    __table_args__ = (
        UniqueConstraint("showtime_id", "seat_id", name="uq_booking_seats_showtime_seat"),
    )


class BookingFoodDrink(Base):
    """A food/drink line item on a booking."""

    __tablename__ = "booking_food_drinks"

    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    food_drink_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("food_drinks.id", ondelete="RESTRICT"),
        nullable=False
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    booking: Mapped["Booking"] = relationship("Booking", back_populates="booking_food_drinks")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_booking_food_drinks_quantity_positive"),
    )


class Payment(Base):
    """A prepaid payment attempt correlated with a booking."""

    __tablename__ = "payments"

    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    method: Mapped[PaymentMethod] = mapped_column(Enum(PaymentMethod), nullable=False, default=PaymentMethod.PREPAID)
    status: Mapped[PaymentStatus] = mapped_column(Enum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING)
    redirect_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_payments_amount_non_negative"),
    )
