"""
API routes for running strategies and reading execution history.
"""
from fastapi import APIRouter, Depends, Query

from repricer.api.dependencies import get_history_sink, get_strategy_executor
from repricer.models.schemas import BatchResult, ExecutionRecord, ExecutionResult
from repricer.repositories.base import ExecutionHistorySink
from repricer.services.strategy_executor import StrategyExecutor

router = APIRouter(prefix="/api/v1", tags=["execution"])


@router.post("/execute/{item_id}", response_model=ExecutionResult)
async def execute_for_item(
    item_id: str,
    executor: StrategyExecutor = Depends(get_strategy_executor),
):
    """
    Reprice one listing now.

    Always answers 200 with a structured result; check `success`,
    `price_changed` and `reason`.
    """
    return await executor.execute_for_item(item_id)


@router.post("/execute", response_model=BatchResult)
async def execute_all_active(executor: StrategyExecutor = Depends(get_strategy_executor)):
    """Reprice every listing with an active strategy."""
    return await executor.execute_all_active()


@router.get("/history/{item_id}", response_model=list[ExecutionRecord])
async def get_history(
    item_id: str,
    limit: int = Query(100, ge=1, le=1000),
    history: ExecutionHistorySink = Depends(get_history_sink),
):
    """Price changes pushed for a listing, newest first."""
    return await history.list_for_item(item_id, limit)
