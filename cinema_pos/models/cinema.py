"""
Room and seat models describing the seat layout of a screening room.
"""

import enum
import uuid
from decimal import Decimal
from typing import Any, List, Optional

from sqlalchemy import JSON, Boolean, CheckConstraint, Enum, ForeignKey, Numeric, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


class SeatType(str, enum.Enum):
    """Seat and layout cell types."""
    EMPTY = "EMPTY"
    NORMAL = "NORMAL"
    VIP = "VIP"
    COUPLE = "COUPLE"
    DISABLED = "DISABLED"
    BLOCKED = "BLOCKED"  # pillars, walkways


class Room(Base):
    """A screening room with its seat layout grid."""

    __tablename__ = "rooms"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    cinema_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True, index=True)

    # List of {"row": "A", "col": 1, "type": "NORMAL"} cells
    seat_layout: Mapped[List[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)

    # Per-type surcharges used when a seat carries no extra price of its own
    vip_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    couple_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    seats: Mapped[List["Seat"]] = relationship(
        "Seat",
        back_populates="room",
        cascade="all, delete-orphan",
        order_by="Seat.seat_number"
    )

    __table_args__ = (
        CheckConstraint("vip_price >= 0", name="ck_rooms_vip_price_non_negative"),
        CheckConstraint("couple_price >= 0", name="ck_rooms_couple_price_non_negative"),
    )


class Seat(Base):
    """A physical seat in a room. Catalog data, never changed by bookings."""

    __tablename__ = "seats"

    room_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("rooms.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    seat_number: Mapped[str] = mapped_column(String(10), nullable=False)
    seat_type: Mapped[SeatType] = mapped_column(Enum(SeatType), nullable=False, default=SeatType.NORMAL)
    extra_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))

    room: Mapped["Room"] = relationship("Room", back_populates="seats")

    __table_args__ = (
        UniqueConstraint("room_id", "seat_number", name="uq_seats_room_number"),
        CheckConstraint("extra_price >= 0", name="ck_seats_extra_price_non_negative"),
    )

    def __repr__(self) -> str:
        """String representation of the seat."""
        return f"<Seat(id={self.id}, room_id={self.room_id}, number='{self.seat_number}', type={self.seat_type.value})>"
