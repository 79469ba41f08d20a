"""
API routes for manually tracked competitors.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from repricer.api.dependencies import get_competitor_list_service
from repricer.models.schemas import CompetitorCreate, ManualCompetitorList
from repricer.services.competitor_list import CompetitorListService

router = APIRouter(prefix="/api/v1/listings/{item_id}/competitors", tags=["competitors"])


@router.get("", response_model=ManualCompetitorList)
async def get_competitors(
    item_id: str,
    user_id: str = Query(..., min_length=1),
    service: CompetitorListService = Depends(get_competitor_list_service),
):
    return await service.get(user_id, item_id)


@router.post("", response_model=ManualCompetitorList, status_code=201)
async def add_competitor(
    item_id: str,
    request: CompetitorCreate,
    user_id: str = Query(..., min_length=1),
    service: CompetitorListService = Depends(get_competitor_list_service),
):
    """
    Track a competitor by item id or by eBay URL.

    **Request example:**
    ```json
    {
        "product_url": "https://www.ebay.com/itm/256123456789",
        "title": "Same part, other seller",
        "price": 5.27,
        "condition": "New"
    }
    ```
    """
    return await service.add_competitor(user_id, item_id, request)


@router.delete("/{competitor_item_id}", response_model=ManualCompetitorList)
async def remove_competitor(
    item_id: str,
    competitor_item_id: str,
    user_id: str = Query(..., min_length=1),
    service: CompetitorListService = Depends(get_competitor_list_service),
):
    return await service.remove_competitor(user_id, item_id, competitor_item_id)


@router.put("/monitoring", response_model=ManualCompetitorList)
async def set_monitoring(
    item_id: str,
    enabled: bool = Query(...),
    frequency: Optional[int] = Query(None, ge=1, description="Minutes between checks"),
    user_id: str = Query(..., min_length=1),
    service: CompetitorListService = Depends(get_competitor_list_service),
):
    return await service.set_monitoring(user_id, item_id, enabled, frequency)
