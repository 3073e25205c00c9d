"""
Showtime and food/drink catalog models.
"""

import enum
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional, TYPE_CHECKING

from sqlalchemy import Boolean, CheckConstraint, DateTime, Enum, ForeignKey, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

if TYPE_CHECKING:
    from .cinema import Room


class Showtime(Base):
    """A scheduled screening of a movie in a specific room."""

    __tablename__ = "showtimes"

    room_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("rooms.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    movie_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True, index=True)

    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    end_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Base ticket price, before seat surcharges
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    room: Mapped["Room"] = relationship("Room")

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_showtimes_price_non_negative"),
    )


class FoodDrinkType(str, enum.Enum):
    """Food and drink categories."""
    SNACK = "SNACK"
    DRINK = "DRINK"
    COMBO = "COMBO"


class FoodDrink(Base):
    """A food or drink item sold alongside tickets."""

    __tablename__ = "food_drinks"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    type: Mapped[FoodDrinkType] = mapped_column(Enum(FoodDrinkType), nullable=False, default=FoodDrinkType.SNACK)
    is_available: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_food_drinks_price_non_negative"),
    )
