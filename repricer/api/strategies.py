"""
API routes for pricing strategies and their listing bindings.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from repricer.api.dependencies import get_config_store
from repricer.models.schemas import (
    ApplyStrategyRequest,
    Listing,
    PricingStrategy,
    StrategyFields,
    StrategyUpdate,
)
from repricer.services.config_store import ConfigStore

router = APIRouter(prefix="/api/v1", tags=["strategies"])


@router.get("/strategies", response_model=list[PricingStrategy])
async def list_strategies(
    is_active: Optional[bool] = Query(None, description="Filter by activity"),
    store: ConfigStore = Depends(get_config_store),
):
    """All pricing strategies, sorted by name."""
    return await store.strategies.list_all(is_active)


@router.post("/strategies", response_model=PricingStrategy, status_code=201)
async def create_strategy(
    request: StrategyFields,
    store: ConfigStore = Depends(get_config_store),
):
    """
    Create a pricing strategy.

    `BEAT_LOWEST` needs `beat_by` and `value`, `STAY_ABOVE` needs
    `stay_above_by` and `value`. Percentages are decimals (0.10 = 10%).

    **Request example:**
    ```json
    {
        "strategy_name": "Undercut by 2 cents",
        "repricing_rule": "BEAT_LOWEST",
        "beat_by": "AMOUNT",
        "value": 0.02,
        "no_competition_action": "KEEP_CURRENT"
    }
    ```
    """
    return await store.create_strategy(request)


@router.get("/strategies/{strategy_id}", response_model=PricingStrategy)
async def get_strategy(strategy_id: str, store: ConfigStore = Depends(get_config_store)):
    return await store.strategies.get(strategy_id)


@router.patch("/strategies/{strategy_id}", response_model=PricingStrategy)
async def update_strategy(
    strategy_id: str,
    request: StrategyUpdate,
    store: ConfigStore = Depends(get_config_store),
):
    return await store.update_strategy(strategy_id, request)


@router.delete("/strategies/{strategy_id}", status_code=204)
async def delete_strategy(strategy_id: str, store: ConfigStore = Depends(get_config_store)):
    """Delete a strategy. Fails with 409 while it is applied to any listing."""
    await store.delete_strategy(strategy_id)
    return Response(status_code=204)


@router.post("/strategies/{strategy_id}/default", response_model=PricingStrategy)
async def set_default_strategy(strategy_id: str, store: ConfigStore = Depends(get_config_store)):
    return await store.set_default_strategy(strategy_id)


@router.put("/listings/{item_id}/strategy", response_model=Listing)
async def apply_strategy(
    item_id: str,
    request: ApplyStrategyRequest,
    store: ConfigStore = Depends(get_config_store),
):
    """Attach a strategy to a listing, replacing the one it had."""
    return await store.apply_strategy(
        item_id,
        request.strategy_id,
        sku=request.sku,
        title=request.title,
        min_price=request.min_price,
        max_price=request.max_price,
    )


@router.delete("/listings/{item_id}/strategy", response_model=Listing)
async def remove_strategy(item_id: str, store: ConfigStore = Depends(get_config_store)):
    return await store.remove_strategy(item_id)
