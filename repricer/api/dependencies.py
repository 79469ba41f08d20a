"""
Service wiring shared by the API routes and the scheduler.
"""
from functools import lru_cache

from repricer.collectors.base import MarketplaceGateway
from repricer.collectors.ebay import EbayMarketplaceGateway
from repricer.core.config import get_settings
from repricer.core.database import get_session_maker
from repricer.repositories.base import ExecutionHistorySink
from repricer.repositories.configs import rule_repository, strategy_repository
from repricer.repositories.listings import MongoCompetitorListRepository, MongoListingRepository
from repricer.repositories.price_history import SqlExecutionHistory
from repricer.services.competitor_list import CompetitorListService
from repricer.services.competitor_resolver import CompetitorPriceResolver
from repricer.services.config_store import ConfigStore
from repricer.services.execution_guard import get_execution_guard
from repricer.services.strategy_executor import StrategyExecutor


@lru_cache
def get_gateway() -> MarketplaceGateway:
    return EbayMarketplaceGateway()


@lru_cache
def get_config_store() -> ConfigStore:
    return ConfigStore(
        strategy_repository(),
        rule_repository(),
        MongoListingRepository(),
        history_limit=get_settings().strategy_history_limit,
    )


@lru_cache
def get_competitor_repository() -> MongoCompetitorListRepository:
    return MongoCompetitorListRepository()


@lru_cache
def get_competitor_list_service() -> CompetitorListService:
    return CompetitorListService(get_competitor_repository())


@lru_cache
def get_history_sink() -> ExecutionHistorySink:
    return SqlExecutionHistory(get_session_maker())


@lru_cache
def get_strategy_executor() -> StrategyExecutor:
    store = get_config_store()
    resolver = CompetitorPriceResolver(
        get_competitor_repository(),
        get_gateway(),
        stats=store,
    )
    return StrategyExecutor(
        store=store,
        resolver=resolver,
        gateway=get_gateway(),
        guard=get_execution_guard(),
        history=get_history_sink(),
    )
