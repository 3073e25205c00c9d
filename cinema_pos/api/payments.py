"""
Prepaid checkout API endpoints.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..middleware.error_handler import status_code_for
from ..schemas.booking import CheckoutRequest, CheckoutResponse, PaymentStatusResponse
from ..services.payment_service import PaymentService
from ..utils.dependencies import Operator, get_current_operator
from ..utils.exceptions import CinemaPosError, PaymentServiceError

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/checkout", response_model=CheckoutResponse)
async def checkout(
    request: CheckoutRequest,
    operator: Operator = Depends(get_current_operator),
    db: AsyncSession = Depends(get_db)
):
    """
    Start a prepaid checkout for a pending booking.

    Returns the payment page URL. The booking stays pending until the
    payment provider reports back.
    """
    try:
        return await PaymentService(db).checkout(request, operator)
    except PaymentServiceError as e:
        logger.error(f"Checkout failed for booking {request.booking_id}: {e.message}")
        raise HTTPException(status_code=status_code_for(e), detail=e.to_dict())
    except CinemaPosError as e:
        raise HTTPException(status_code=status_code_for(e), detail=e.to_dict())


@router.get("/{booking_id}/status", response_model=PaymentStatusResponse)
async def get_payment_status(
    booking_id: UUID,
    operator: Operator = Depends(get_current_operator),
    db: AsyncSession = Depends(get_db)
):
    """Latest payment state of a booking."""
    try:
        return await PaymentService(db).get_payment_status(booking_id)
    except CinemaPosError as e:
        raise HTTPException(status_code=status_code_for(e), detail=e.to_dict())
