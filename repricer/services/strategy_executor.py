"""
Repricing orchestrator.

Per item: load strategy -> fetch current price -> resolve competitor price
-> calculate -> guard -> push -> record.
"""
import asyncio
from decimal import Decimal
from typing import Optional

import structlog

from repricer.collectors.base import MarketplaceGateway, call_upstream
from repricer.core.config import Settings, get_settings
from repricer.core.errors import UpstreamUnavailable
from repricer.models.schemas import (
    BatchError,
    BatchResult,
    ChangeDirection,
    ExecutionRecord,
    ExecutionResult,
    Listing,
    PricingStrategy,
    StrategyExecutionEntry,
)
from repricer.repositories.base import ExecutionHistorySink
from repricer.services.competitor_resolver import CompetitorPriceResolver
from repricer.services.config_store import ConfigStore
from repricer.services.execution_guard import ExecutionGuard
from repricer.services.price_calculator import calculate_price, round_price

logger = structlog.get_logger()

REASON_NO_STRATEGY = "no_strategy_assigned"
REASON_COOLDOWN = "cooldown"
REASON_NO_CURRENT_PRICE = "current_price_unavailable"
REASON_ALREADY_OPTIMAL = "price_already_optimal"
REASON_UPDATED = "price_updated"
REASON_PUSH_FAILED = "push_failed"


class StrategyExecutor:
    """
    Runs pricing strategies against listings.

    Args:
        store: Strategy, rule and listing configuration
        resolver: Competitor price resolution
        gateway: Marketplace collaborator for current prices and pushes
        guard: Cooldown, minimum-change and history de-dup
        history: Sink for executed price changes
        settings: Application settings (defaults to the cached settings)
    """

    def __init__(
        self,
        store: ConfigStore,
        resolver: CompetitorPriceResolver,
        gateway: MarketplaceGateway,
        guard: ExecutionGuard,
        history: ExecutionHistorySink,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.resolver = resolver
        self.gateway = gateway
        self.guard = guard
        self.history = history
        self.settings = settings or get_settings()

    @property
    def timeout(self) -> float:
        return self.settings.collaborator_timeout_seconds

    async def execute_for_item(self, item_id: str) -> ExecutionResult:
        """
        Evaluate and apply the listing's strategy once.

        Ordinary outcomes (no strategy, cooldown, unchanged price, upstream
        failure) come back as a structured result instead of raising.
        """
        log = logger.bind(item_id=item_id)

        strategy = await self.store.load_strategy(item_id)
        if strategy is None:
            log.info("No active strategy assigned")
            return ExecutionResult(item_id=item_id, success=False, reason=REASON_NO_STRATEGY)

        if not self.guard.try_acquire(item_id):
            return ExecutionResult(
                item_id=item_id,
                success=True,
                price_changed=False,
                reason=REASON_COOLDOWN,
                strategy_name=strategy.name,
            )

        listing = await self.store.get_listing(item_id) or Listing(item_id=item_id)

        try:
            current_price = await call_upstream(
                self.gateway.get_current_price(item_id), self.timeout, "Current price fetch"
            )
        except UpstreamUnavailable as e:
            self.guard.release(item_id)
            log.warning("Current price unavailable", error=e.message)
            return ExecutionResult(
                item_id=item_id,
                success=False,
                reason=REASON_NO_CURRENT_PRICE,
                error=e.message,
                strategy_name=strategy.name,
            )

        if current_price is None or current_price <= 0:
            self.guard.release(item_id)
            log.warning("Listing has no usable current price")
            return ExecutionResult(
                item_id=item_id,
                success=False,
                reason=REASON_NO_CURRENT_PRICE,
                error="Could not determine current price",
                strategy_name=strategy.name,
            )

        rule = await self.store.load_rule(item_id)
        competitor = await self.resolver.resolve(
            item_id,
            listing.user_id,
            rule,
            listing=listing,
            current_price=current_price,
        )

        new_price = calculate_price(
            strategy,
            competitor.price,
            current_price,
            listing_min=listing.min_price,
            listing_max=listing.max_price,
            snap_threshold=self.settings.stay_above_snap_threshold,
            fallback_min=strategy.min_price,
            fallback_max=strategy.max_price,
        )
        old_price = round_price(current_price)
        change = new_price - old_price

        result = ExecutionResult(
            item_id=item_id,
            success=True,
            old_price=old_price,
            new_price=new_price,
            competitor_price=competitor.price,
            competitor_source=competitor.source,
            change_amount=change,
            strategy_name=strategy.name,
        )

        if not self.guard.should_apply(item_id, old_price, new_price):
            log.info("Price already optimal", price=str(old_price))
            result.reason = REASON_ALREADY_OPTIMAL
            return result

        try:
            push = await call_upstream(
                self.gateway.push_price(item_id, listing.sku, new_price),
                self.timeout,
                "Price push",
            )
        except UpstreamUnavailable as e:
            log.error("Price push failed", error=e.message, new_price=str(new_price))
            result.success = False
            result.reason = REASON_PUSH_FAILED
            result.error = e.message
            return result

        if not push.success:
            log.error("Price push rejected", error=push.error, new_price=str(new_price))
            result.success = False
            result.reason = REASON_PUSH_FAILED
            result.error = push.error or "Price update was not accepted"
            result.push_method = push.method
            return result

        result.price_changed = True
        result.reason = REASON_UPDATED
        result.push_method = push.method

        await self._record(strategy, listing, result, competitor.sample_count)

        log.info(
            "Price updated",
            old_price=str(old_price),
            new_price=str(new_price),
            competitor_price=str(competitor.price) if competitor.price is not None else None,
            strategy=strategy.name,
        )
        return result

    async def _record(
        self,
        strategy: PricingStrategy,
        listing: Listing,
        result: ExecutionResult,
        competitor_count: int,
    ) -> None:
        """
        Write the execution record unless the same outcome was just recorded.

        The price is already live on eBay at this point, so storage failures
        are logged and reported through ``result.recorded`` instead of raised.
        """
        item_id = result.item_id
        old_price, new_price = result.old_price, result.new_price

        try:
            await self.store.record_strategy_execution(
                strategy.id,
                StrategyExecutionEntry(
                    item_id=item_id,
                    old_price=old_price,
                    new_price=new_price,
                    competitor_price=result.competitor_price,
                ),
            )
        except Exception as e:
            logger.error(
                "Strategy history update failed",
                item_id=item_id,
                strategy_id=strategy.id,
                error=str(e),
                exc_info=True,
            )

        if not self.guard.should_record(item_id, new_price):
            logger.info("Duplicate execution record suppressed", item_id=item_id, new_price=str(new_price))
            result.recorded = True
            return

        change = new_price - old_price
        percentage = round_price(change / old_price * 100) if old_price else Decimal("0")
        try:
            await self.history.record(
                ExecutionRecord(
                    item_id=item_id,
                    sku=listing.sku,
                    old_price=old_price,
                    new_price=new_price,
                    competitor_price=result.competitor_price,
                    change_amount=change,
                    change_percentage=percentage,
                    change_direction=ChangeDirection.INCREASED if change > 0 else ChangeDirection.DECREASED,
                    strategy_id=strategy.id,
                    strategy_name=strategy.name,
                    repricing_rule=strategy.repricing_rule,
                    min_price=listing.min_price,
                    max_price=listing.max_price,
                    competitor_count=competitor_count,
                    push_method=result.push_method,
                )
            )
        except Exception as e:
            logger.error(
                "Execution record not written",
                item_id=item_id,
                new_price=str(new_price),
                error=str(e),
                exc_info=True,
            )
            return

        self.guard.mark_recorded(item_id, new_price)
        result.recorded = True

    async def _execute_isolated(self, item_id: str, semaphore: asyncio.Semaphore) -> ExecutionResult:
        async with semaphore:
            try:
                return await self.execute_for_item(item_id)
            except Exception as e:
                logger.error("Execution failed", item_id=item_id, error=str(e), exc_info=True)
                return ExecutionResult(item_id=item_id, success=False, reason="error", error=str(e))

    async def execute_all_active(self) -> BatchResult:
        """Run every listing that has an active strategy, a few at a time."""
        listings = await self.store.list_active_bindings()
        semaphore = asyncio.Semaphore(self.settings.max_concurrent_executions)

        logger.info("Starting repricing run", listings=len(listings))

        results = await asyncio.gather(
            *(self._execute_isolated(listing.item_id, semaphore) for listing in listings)
        )

        batch = BatchResult(total=len(results), results=list(results))
        for result in results:
            if result.success:
                batch.succeeded += 1
            else:
                batch.failed += 1
                batch.errors.append(
                    BatchError(item_id=result.item_id, error=result.error or result.reason or "unknown")
                )
            if result.price_changed:
                batch.price_changes += 1

        logger.info(
            "Repricing run completed",
            total=batch.total,
            succeeded=batch.succeeded,
            failed=batch.failed,
            price_changes=batch.price_changes,
        )
        return batch
