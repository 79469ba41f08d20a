"""
Storage contracts consumed by the repricing services.

MongoDB and SQL implementations live beside this module; tests provide
in-memory implementations of the same interfaces.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel

from repricer.models.schemas import (
    CompetitorRule,
    ExecutionRecord,
    Listing,
    ManualCompetitorList,
    PricingStrategy,
)

ConfigT = TypeVar("ConfigT", PricingStrategy, CompetitorRule)


class ConfigRepository(ABC, Generic[ConfigT]):
    """Persistence for named, attachable configurations (strategies, rules)."""

    @abstractmethod
    async def get(self, config_id: str) -> Optional[ConfigT]:
        pass

    @abstractmethod
    async def find_by_name(self, name: str) -> Optional[ConfigT]:
        pass

    @abstractmethod
    async def list_all(self, is_active: Optional[bool] = None) -> list[ConfigT]:
        """List configurations sorted by name, optionally filtered by activity."""
        pass

    @abstractmethod
    async def insert(self, config: ConfigT) -> ConfigT:
        pass

    @abstractmethod
    async def save(self, config: ConfigT) -> ConfigT:
        """Replace the stored document with this one."""
        pass

    @abstractmethod
    async def delete(self, config_id: str) -> bool:
        pass

    @abstractmethod
    async def clear_default(self, except_id: Optional[str] = None) -> None:
        """Unset ``is_default`` on every configuration except ``except_id``."""
        pass

    @abstractmethod
    async def find_applied(self, item_id: str) -> list[ConfigT]:
        """Configurations whose ``applies_to`` mentions ``item_id``."""
        pass

    @abstractmethod
    async def append_history(
        self,
        config_id: str,
        path: str,
        entry: BaseModel,
        limit: int,
        set_fields: Optional[dict[str, Any]] = None,
        inc_fields: Optional[dict[str, int]] = None,
    ) -> bool:
        """
        Append ``entry`` to the list at dotted ``path`` in one atomic update,
        keeping only the newest ``limit`` entries. ``set_fields`` and
        ``inc_fields`` are applied in the same update. False if no such
        configuration exists.
        """
        pass


class ListingRepository(ABC):
    """Persistence for listing bindings."""

    @abstractmethod
    async def get(self, item_id: str) -> Optional[Listing]:
        pass

    @abstractmethod
    async def save(self, listing: Listing) -> Listing:
        """Upsert by item id."""
        pass

    @abstractmethod
    async def list_with_strategy(self) -> list[Listing]:
        """Listings that reference a strategy."""
        pass


class CompetitorListRepository(ABC):
    """Persistence for manual competitor lists, unique per (user, item)."""

    @abstractmethod
    async def get(self, user_id: str, item_id: str) -> Optional[ManualCompetitorList]:
        pass

    @abstractmethod
    async def save(self, competitor_list: ManualCompetitorList) -> ManualCompetitorList:
        """Upsert by (user id, item id)."""
        pass

    @abstractmethod
    async def update_prices(self, user_id: str, item_id: str, prices: dict[str, Decimal]) -> int:
        """
        Set the price of each listed competitor that is still tracked.

        Membership is never changed; competitors removed in the meantime are
        skipped. Returns how many competitors were updated.
        """
        pass

    @abstractmethod
    async def mark_checked(
        self,
        user_id: str,
        item_id: str,
        checked_at: datetime,
        lowest_price: Optional[Decimal],
    ) -> None:
        """Record when the list was last refreshed and its lowest price."""
        pass


class ExecutionHistorySink(ABC):
    """Append-only sink for executed price changes."""

    @abstractmethod
    async def record(self, record: ExecutionRecord) -> None:
        pass

    @abstractmethod
    async def list_for_item(self, item_id: str, limit: int = 100) -> list[ExecutionRecord]:
        pass
