"""
MongoDB repositories for pricing strategies and competitor rules.
"""
from typing import Any, Callable, Generic, Optional

from motor.motor_asyncio import AsyncIOMotorCollection
from pydantic import BaseModel
from pydantic_core import to_jsonable_python

from repricer.db.mongodb import rules_collection, strategies_collection
from repricer.models.schemas import CompetitorRule, PricingStrategy
from repricer.repositories.base import ConfigRepository, ConfigT


def to_document(model: BaseModel) -> dict[str, Any]:
    """Serialize a schema for storage; Decimals become strings."""
    return model.model_dump(mode="json")


class MongoConfigRepository(ConfigRepository[ConfigT], Generic[ConfigT]):
    """
    Stores one configuration type in one collection keyed by ``id``.

    Args:
        collection: Returns the backing collection
        model: Stored model class
        name_field: Attribute holding the unique human name
    """

    def __init__(
        self,
        collection: Callable[[], AsyncIOMotorCollection],
        model: type[ConfigT],
        name_field: str,
    ):
        self._collection = collection
        self.model = model
        self.name_field = name_field

    @property
    def collection(self) -> AsyncIOMotorCollection:
        return self._collection()

    def _load(self, doc: Optional[dict]) -> Optional[ConfigT]:
        if not doc:
            return None
        return self.model.model_validate(doc)

    async def get(self, config_id: str) -> Optional[ConfigT]:
        doc = await self.collection.find_one({"id": config_id}, projection={"_id": 0})
        return self._load(doc)

    async def find_by_name(self, name: str) -> Optional[ConfigT]:
        doc = await self.collection.find_one({self.name_field: name}, projection={"_id": 0})
        return self._load(doc)

    async def list_all(self, is_active: Optional[bool] = None) -> list[ConfigT]:
        query: dict[str, Any] = {}
        if is_active is not None:
            query["is_active"] = is_active

        cursor = self.collection.find(query, projection={"_id": 0}).sort(self.name_field, 1)
        return [self.model.model_validate(doc) async for doc in cursor]

    async def insert(self, config: ConfigT) -> ConfigT:
        await self.collection.insert_one(to_document(config))
        return config

    async def save(self, config: ConfigT) -> ConfigT:
        await self.collection.replace_one({"id": config.id}, to_document(config), upsert=True)
        return config

    async def delete(self, config_id: str) -> bool:
        result = await self.collection.delete_one({"id": config_id})
        return result.deleted_count > 0

    async def clear_default(self, except_id: Optional[str] = None) -> None:
        query: dict[str, Any] = {"is_default": True}
        if except_id:
            query["id"] = {"$ne": except_id}
        await self.collection.update_many(query, {"$set": {"is_default": False}})

    async def find_applied(self, item_id: str) -> list[ConfigT]:
        cursor = self.collection.find({"applies_to.item_id": item_id}, projection={"_id": 0})
        return [self.model.model_validate(doc) async for doc in cursor]

    async def append_history(
        self,
        config_id: str,
        path: str,
        entry: BaseModel,
        limit: int,
        set_fields: Optional[dict[str, Any]] = None,
        inc_fields: Optional[dict[str, int]] = None,
    ) -> bool:
        update: dict[str, Any] = {
            "$push": {path: {"$each": [to_document(entry)], "$slice": -limit}},
        }
        if set_fields:
            update["$set"] = to_jsonable_python(set_fields)
        if inc_fields:
            update["$inc"] = inc_fields

        result = await self.collection.update_one({"id": config_id}, update)
        return result.matched_count > 0


def strategy_repository() -> MongoConfigRepository[PricingStrategy]:
    return MongoConfigRepository(strategies_collection, PricingStrategy, "strategy_name")


def rule_repository() -> MongoConfigRepository[CompetitorRule]:
    return MongoConfigRepository(rules_collection, CompetitorRule, "rule_name")
