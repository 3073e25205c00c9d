"""
Food and drink API endpoints.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..schemas.catalog import FoodDrinkListResponse
from ..services.catalog_service import CatalogService
from ..utils.dependencies import Operator, get_current_operator

router = APIRouter(prefix="/food-drinks", tags=["food-drinks"])


@router.get("", response_model=FoodDrinkListResponse)
async def list_food_drinks(
    operator: Operator = Depends(get_current_operator),
    db: AsyncSession = Depends(get_db)
):
    """List available food and drinks for the order summary."""
    return await CatalogService(db).list_food_drinks()
