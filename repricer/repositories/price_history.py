"""
Execution history sink.
Stores pushed price changes in PostgreSQL.
"""
from decimal import Decimal

import structlog
from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from repricer.models.database import PriceChange
from repricer.models.schemas import ChangeDirection, ExecutionRecord, RepricingRule
from repricer.repositories.base import ExecutionHistorySink

logger = structlog.get_logger()


class SqlExecutionHistory(ExecutionHistorySink):
    """Writes execution records to the ``price_changes`` table."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def record(self, record: ExecutionRecord) -> None:
        """Append one execution record."""
        row = PriceChange(
            item_id=record.item_id,
            sku=record.sku,
            old_price=record.old_price,
            new_price=record.new_price,
            currency=record.currency,
            competitor_price=record.competitor_price,
            change_amount=record.change_amount,
            change_percentage=record.change_percentage,
            change_direction=record.change_direction.value,
            strategy_id=record.strategy_id,
            strategy_name=record.strategy_name,
            repricing_rule=record.repricing_rule.value if record.repricing_rule else None,
            min_price=record.min_price,
            max_price=record.max_price,
            competitor_count=record.competitor_count,
            source=record.source,
            push_method=record.push_method,
            success=record.success,
            executed_at=record.timestamp,
        )

        async with self.session_maker() as session:
            session.add(row)
            await session.commit()

        logger.info(
            "Price change recorded",
            item_id=record.item_id,
            old_price=str(record.old_price),
            new_price=str(record.new_price),
        )

    async def list_for_item(self, item_id: str, limit: int = 100) -> list[ExecutionRecord]:
        """Most recent execution records for an item, newest first."""
        stmt = (
            select(PriceChange)
            .where(PriceChange.item_id == item_id)
            .order_by(desc(PriceChange.executed_at))
            .limit(limit)
        )

        async with self.session_maker() as session:
            result = await session.execute(stmt)
            rows = result.scalars().all()

        return [
            ExecutionRecord(
                item_id=r.item_id,
                sku=r.sku,
                old_price=r.old_price,
                new_price=r.new_price,
                currency=r.currency,
                competitor_price=r.competitor_price,
                change_amount=r.change_amount,
                change_percentage=r.change_percentage or Decimal("0"),
                change_direction=ChangeDirection(r.change_direction),
                strategy_id=r.strategy_id,
                strategy_name=r.strategy_name,
                repricing_rule=RepricingRule(r.repricing_rule) if r.repricing_rule else None,
                min_price=r.min_price,
                max_price=r.max_price,
                competitor_count=r.competitor_count or 0,
                source=r.source,
                push_method=r.push_method,
                success=r.success,
                timestamp=r.executed_at,
            )
            for r in rows
        ]
