"""
API routes for competitor rules.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from repricer.api.dependencies import get_config_store
from repricer.models.schemas import (
    ApplyRuleRequest,
    CompetitorRule,
    Listing,
    RuleFields,
    RuleUpdate,
)
from repricer.services.config_store import ConfigStore

router = APIRouter(prefix="/api/v1", tags=["rules"])


@router.get("/rules", response_model=list[CompetitorRule])
async def list_rules(
    is_active: Optional[bool] = Query(None, description="Filter by activity"),
    store: ConfigStore = Depends(get_config_store),
):
    return await store.rules.list_all(is_active)


@router.post("/rules", response_model=CompetitorRule, status_code=201)
async def create_rule(request: RuleFields, store: ConfigStore = Depends(get_config_store)):
    """
    Create a competitor rule.

    The price window is expressed in percent of the listing's own price:
    `min_percent_of_current_price=50` ignores competitors cheaper than half
    of it.
    """
    return await store.create_rule(request)


@router.get("/rules/{rule_id}", response_model=CompetitorRule)
async def get_rule(rule_id: str, store: ConfigStore = Depends(get_config_store)):
    return await store.rules.get(rule_id)


@router.patch("/rules/{rule_id}", response_model=CompetitorRule)
async def update_rule(
    rule_id: str,
    request: RuleUpdate,
    store: ConfigStore = Depends(get_config_store),
):
    return await store.update_rule(rule_id, request)


@router.delete("/rules/{rule_id}", status_code=204)
async def delete_rule(rule_id: str, store: ConfigStore = Depends(get_config_store)):
    await store.delete_rule(rule_id)
    return Response(status_code=204)


@router.post("/rules/{rule_id}/default", response_model=CompetitorRule)
async def set_default_rule(rule_id: str, store: ConfigStore = Depends(get_config_store)):
    return await store.set_default_rule(rule_id)


@router.put("/listings/{item_id}/rule", response_model=Listing)
async def apply_rule(
    item_id: str,
    request: ApplyRuleRequest,
    store: ConfigStore = Depends(get_config_store),
):
    return await store.apply_rule(item_id, request.rule_id, sku=request.sku, title=request.title)


@router.delete("/listings/{item_id}/rule", response_model=Listing)
async def remove_rule(item_id: str, store: ConfigStore = Depends(get_config_store)):
    return await store.remove_rule(item_id)
