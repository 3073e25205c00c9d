"""
Prepaid checkout: registers a pending payment and returns the gateway redirect.
"""

import logging
from decimal import Decimal
from typing import Optional
from urllib.parse import urlencode
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import get_settings
from ..models.booking import Booking, BookingStatus, Payment, PaymentMethod, PaymentStatus
from ..schemas.booking import CheckoutRequest, CheckoutResponse, PaymentStatusResponse
from ..utils.dependencies import Operator
from ..utils.exceptions import BookingNotFoundError, PaymentServiceError, ValidationError
from ..utils.logging_config import log_business_event

logger = logging.getLogger(__name__)


class PaymentService:
    """Service class for prepaid checkout."""

    def __init__(self, db: AsyncSession, gateway_url: Optional[str] = None):
        self.db = db
        self.gateway_url = gateway_url if gateway_url is not None else get_settings().payment_gateway_url

    async def checkout(self, request: CheckoutRequest, operator: Operator) -> CheckoutResponse:
        """
        Start a prepaid checkout for a pending booking.

        Raises:
            BookingNotFoundError: If the booking does not exist
            ValidationError: If the booking is not pending or the amount differs
            PaymentServiceError: If no payment gateway is configured
        """
        booking = await self.db.get(Booking, request.booking_id)
        if booking is None:
            raise BookingNotFoundError(str(request.booking_id))

        if booking.status != BookingStatus.PENDING:
            raise ValidationError(
                f"Booking {booking.id} is {booking.status.value}, only pending bookings can be paid"
            )
        if Decimal(request.amount) != booking.total_price:
            raise ValidationError(
                "Checkout amount does not match the booking total",
                details={"expected": str(booking.total_price), "received": str(request.amount)},
            )
        if not self.gateway_url:
            raise PaymentServiceError("Payment gateway is not configured")

        payment = Payment(
            booking_id=booking.id,
            user_id=operator.user_id,
            amount=booking.total_price,
            method=PaymentMethod.PREPAID,
            status=PaymentStatus.PENDING,
        )
        self.db.add(payment)
        await self.db.flush()

        payment.redirect_url = self._redirect_url(payment)
        booking.payment_method = PaymentMethod.PREPAID
        await self.db.commit()

        log_business_event(
            "checkout_started",
            {"booking_id": str(booking.id), "payment_id": str(payment.id), "amount": str(payment.amount)},
            user_id=operator.user_id,
        )
        return CheckoutResponse(url=payment.redirect_url, payment_id=payment.id, booking_id=booking.id)

    async def get_payment_status(self, booking_id: UUID) -> PaymentStatusResponse:
        """Latest payment of a booking, if any, with the booking status."""
        booking = await self.db.get(Booking, booking_id)
        if booking is None:
            raise BookingNotFoundError(str(booking_id))

        result = await self.db.execute(
            select(Payment)
            .where(Payment.booking_id == booking_id)
            .order_by(Payment.created_at.desc())
            .limit(1)
        )
        payment = result.scalar_one_or_none()

        return PaymentStatusResponse(
            payment_id=payment.id if payment else None,
            booking_id=booking.id,
            status=payment.status if payment else None,
            booking_status=booking.status,
            amount=payment.amount if payment else None,
        )

    def _redirect_url(self, payment: Payment) -> str:
        query = urlencode({
            "payment_id": str(payment.id),
            "booking_id": str(payment.booking_id),
            "amount": str(payment.amount),
        })
        separator = "&" if "?" in self.gateway_url else "?"
        return f"{self.gateway_url}{separator}{query}"
