"""
Shared fixtures: in-memory repositories, a scripted marketplace gateway and
a controllable clock.
"""
import asyncio
from decimal import Decimal
from typing import Optional

import pytest

from repricer.collectors.base import CompetitorOffer, MarketplaceGateway, PushResult, SearchQuery
from repricer.core.config import Settings
from repricer.models.schemas import (
    CompetitorRule,
    ExecutionRecord,
    Listing,
    ManualCompetitorList,
    PricingStrategy,
)
from repricer.repositories.base import (
    CompetitorListRepository,
    ConfigRepository,
    ExecutionHistorySink,
    ListingRepository,
)
from repricer.services.competitor_resolver import CompetitorPriceResolver
from repricer.services.config_store import ConfigStore
from repricer.services.execution_guard import ExecutionGuard
from repricer.services.strategy_executor import StrategyExecutor


class ManualClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _walk(doc: dict, path: str) -> tuple[dict, str]:
    *parents, leaf = path.split(".")
    for key in parents:
        doc = doc[key]
    return doc, leaf


class InMemoryConfigRepository(ConfigRepository):
    def __init__(self, name_field: str):
        self.name_field = name_field
        self.items: dict = {}
        # yield to the event loop on reads, as a real driver would
        self.yield_on_get = False

    async def get(self, config_id):
        if self.yield_on_get:
            await asyncio.sleep(0)
        config = self.items.get(config_id)
        return config.model_copy(deep=True) if config else None

    async def find_by_name(self, name):
        for config in self.items.values():
            if getattr(config, self.name_field) == name:
                return config.model_copy(deep=True)
        return None

    async def list_all(self, is_active=None):
        configs = [
            c.model_copy(deep=True)
            for c in self.items.values()
            if is_active is None or c.is_active == is_active
        ]
        return sorted(configs, key=lambda c: getattr(c, self.name_field))

    async def insert(self, config):
        self.items[config.id] = config.model_copy(deep=True)
        return config

    async def save(self, config):
        self.items[config.id] = config.model_copy(deep=True)
        return config

    async def delete(self, config_id):
        return self.items.pop(config_id, None) is not None

    async def clear_default(self, except_id=None):
        for config in self.items.values():
            if config.id != except_id:
                config.is_default = False

    async def find_applied(self, item_id):
        return [
            c.model_copy(deep=True)
            for c in self.items.values()
            if any(entry.item_id == item_id for entry in c.applies_to)
        ]

    async def append_history(self, config_id, path, entry, limit, set_fields=None, inc_fields=None):
        config = self.items.get(config_id)
        if config is None:
            return False

        doc = config.model_dump()
        container, leaf = _walk(doc, path)
        container[leaf] = (container[leaf] + [entry.model_dump()])[-limit:]
        for key, value in (set_fields or {}).items():
            container, leaf = _walk(doc, key)
            container[leaf] = value
        for key, value in (inc_fields or {}).items():
            container, leaf = _walk(doc, key)
            container[leaf] += value

        self.items[config_id] = type(config).model_validate(doc)
        return True


class InMemoryListingRepository(ListingRepository):
    def __init__(self):
        self.items: dict[str, Listing] = {}

    async def get(self, item_id):
        listing = self.items.get(item_id)
        return listing.model_copy(deep=True) if listing else None

    async def save(self, listing):
        self.items[listing.item_id] = listing.model_copy(deep=True)
        return listing

    async def list_with_strategy(self):
        return [
            listing.model_copy(deep=True)
            for listing in sorted(self.items.values(), key=lambda item: item.item_id)
            if listing.strategy_id
        ]


class InMemoryCompetitorListRepository(CompetitorListRepository):
    def __init__(self):
        self.items: dict[tuple[str, str], ManualCompetitorList] = {}
        self.saves = 0

    async def get(self, user_id, item_id):
        found = self.items.get((user_id, item_id))
        return found.model_copy(deep=True) if found else None

    async def save(self, competitor_list):
        self.saves += 1
        key = (competitor_list.user_id, competitor_list.item_id)
        self.items[key] = competitor_list.model_copy(deep=True)
        return competitor_list

    async def update_prices(self, user_id, item_id, prices):
        stored = self.items.get((user_id, item_id))
        if stored is None:
            return 0
        updated = 0
        for competitor in stored.competitors:
            if competitor.competitor_item_id in prices:
                competitor.price = prices[competitor.competitor_item_id]
                updated += 1
        return updated

    async def mark_checked(self, user_id, item_id, checked_at, lowest_price):
        stored = self.items.get((user_id, item_id))
        if stored is not None:
            stored.last_monitoring_check = checked_at
            stored.last_lowest_price = lowest_price


class InMemoryHistory(ExecutionHistorySink):
    def __init__(self):
        self.records: list[ExecutionRecord] = []

    async def record(self, record):
        self.records.append(record)

    async def list_for_item(self, item_id, limit=100):
        found = [r for r in reversed(self.records) if r.item_id == item_id]
        return found[:limit]


class FakeGateway(MarketplaceGateway):
    """Marketplace gateway scripted through plain attributes."""

    def __init__(self):
        self.current_prices: dict[str, Optional[Decimal]] = {}
        self.competitor_prices: dict[str, Optional[Decimal]] = {}
        self.failing_competitors: set[str] = set()
        self.failing_items: set[str] = set()
        self.search_results: list[CompetitorOffer] = []
        self.search_queries: list[SearchQuery] = []
        self.push_result = PushResult(success=True, method="ReviseInventoryStatus")
        self.push_error: Optional[Exception] = None
        self.pushes: list[tuple[str, Optional[str], Decimal]] = []

    async def get_current_price(self, item_id):
        if item_id in self.failing_items:
            raise RuntimeError("connection reset")
        return self.current_prices.get(item_id)

    async def refresh_competitor_price(self, competitor_item_id):
        if competitor_item_id in self.failing_competitors:
            raise RuntimeError("competitor lookup failed")
        return self.competitor_prices.get(competitor_item_id)

    async def search_competitors_live(self, query):
        self.search_queries.append(query)
        return list(self.search_results)

    async def push_price(self, item_id, sku, new_price):
        if self.push_error is not None:
            raise self.push_error
        self.pushes.append((item_id, sku, new_price))
        return self.push_result


@pytest.fixture
def settings():
    return Settings(
        refresh_competitor_prices=True,
        live_search_enabled=False,
        collaborator_timeout_seconds=2.0,
        max_concurrent_executions=3,
    )


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def strategy_repo():
    return InMemoryConfigRepository("strategy_name")


@pytest.fixture
def rule_repo():
    return InMemoryConfigRepository("rule_name")


@pytest.fixture
def listing_repo():
    return InMemoryListingRepository()


@pytest.fixture
def competitor_repo():
    return InMemoryCompetitorListRepository()


@pytest.fixture
def history():
    return InMemoryHistory()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def store(strategy_repo, rule_repo, listing_repo):
    return ConfigStore(strategy_repo, rule_repo, listing_repo, history_limit=5)


@pytest.fixture
def guard(clock):
    return ExecutionGuard(cooldown_seconds=60, dedupe_seconds=120, clock=clock)


@pytest.fixture
def resolver(competitor_repo, gateway, store, settings):
    return CompetitorPriceResolver(competitor_repo, gateway, stats=store, settings=settings)


@pytest.fixture
def executor(store, resolver, gateway, guard, history, settings):
    return StrategyExecutor(
        store=store,
        resolver=resolver,
        gateway=gateway,
        guard=guard,
        history=history,
        settings=settings,
    )


def _make_strategy(**overrides) -> PricingStrategy:
    fields = {
        "strategy_name": "Beat by 2 cents",
        "repricing_rule": "BEAT_LOWEST",
        "beat_by": "AMOUNT",
        "value": Decimal("0.02"),
    }
    fields.update(overrides)
    return PricingStrategy(**fields)


def _make_rule(**overrides) -> CompetitorRule:
    fields = {"rule_name": "Default rule"}
    fields.update(overrides)
    return CompetitorRule(**fields)


@pytest.fixture
def make_strategy():
    return _make_strategy


@pytest.fixture
def make_rule():
    return _make_rule
