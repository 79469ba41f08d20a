"""
MongoDB repositories for listing bindings and manual competitor lists.
"""
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional

from motor.motor_asyncio import AsyncIOMotorCollection

from repricer.db.mongodb import competitors_collection, listings_collection
from repricer.models.schemas import Listing, ManualCompetitorList, utcnow
from repricer.repositories.base import CompetitorListRepository, ListingRepository
from repricer.repositories.configs import to_document


class MongoListingRepository(ListingRepository):
    """Listings keyed by eBay item id."""

    def __init__(self, collection: Callable[[], AsyncIOMotorCollection] = listings_collection):
        self._collection = collection

    @property
    def collection(self) -> AsyncIOMotorCollection:
        return self._collection()

    async def get(self, item_id: str) -> Optional[Listing]:
        doc = await self.collection.find_one({"item_id": item_id}, projection={"_id": 0})
        return Listing.model_validate(doc) if doc else None

    async def save(self, listing: Listing) -> Listing:
        listing.updated_at = utcnow()
        await self.collection.replace_one(
            {"item_id": listing.item_id}, to_document(listing), upsert=True
        )
        return listing

    async def list_with_strategy(self) -> list[Listing]:
        cursor = self.collection.find(
            {"strategy_id": {"$ne": None}}, projection={"_id": 0}
        ).sort("item_id", 1)
        return [Listing.model_validate(doc) async for doc in cursor]


class MongoCompetitorListRepository(CompetitorListRepository):
    """Manual competitor lists, one document per (user, item)."""

    def __init__(self, collection: Callable[[], AsyncIOMotorCollection] = competitors_collection):
        self._collection = collection

    @property
    def collection(self) -> AsyncIOMotorCollection:
        return self._collection()

    async def get(self, user_id: str, item_id: str) -> Optional[ManualCompetitorList]:
        doc = await self.collection.find_one(
            {"user_id": user_id, "item_id": item_id}, projection={"_id": 0}
        )
        return ManualCompetitorList.model_validate(doc) if doc else None

    async def save(self, competitor_list: ManualCompetitorList) -> ManualCompetitorList:
        competitor_list.updated_at = utcnow()
        await self.collection.replace_one(
            {"user_id": competitor_list.user_id, "item_id": competitor_list.item_id},
            to_document(competitor_list),
            upsert=True,
        )
        return competitor_list

    async def update_prices(self, user_id: str, item_id: str, prices: dict[str, Decimal]) -> int:
        updated = 0
        for competitor_item_id, price in prices.items():
            result = await self.collection.update_one(
                {
                    "user_id": user_id,
                    "item_id": item_id,
                    "competitors.competitor_item_id": competitor_item_id,
                },
                {"$set": {"competitors.$.price": str(price)}},
            )
            updated += result.modified_count
        return updated

    async def mark_checked(
        self,
        user_id: str,
        item_id: str,
        checked_at: datetime,
        lowest_price: Optional[Decimal],
    ) -> None:
        await self.collection.update_one(
            {"user_id": user_id, "item_id": item_id},
            {
                "$set": {
                    "last_monitoring_check": checked_at.isoformat(),
                    "last_lowest_price": str(lowest_price) if lowest_price is not None else None,
                    "updated_at": utcnow().isoformat(),
                }
            },
        )
