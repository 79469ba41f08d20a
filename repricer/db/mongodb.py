"""
MongoDB access for repricing configuration.

Four collections hold the engine's documents: pricing strategies,
competitor rules, listing bindings and manual competitor lists. Their
indexes are declared here and created once at startup.
"""
from typing import Optional

import structlog
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import ASCENDING, IndexModel
from pymongo.errors import PyMongoError

from repricer.core.config import Settings, get_settings

logger = structlog.get_logger()

_client: Optional[AsyncIOMotorClient] = None


def get_mongo_client() -> AsyncIOMotorClient:
    """Process-wide client, opened on first use."""
    global _client

    if _client is None:
        settings = get_settings()
        _client = AsyncIOMotorClient(
            settings.mongo_uri,
            appname=settings.app_name,
            uuidRepresentation="standard",
            serverSelectionTimeoutMS=3000,
        )
    return _client


def get_mongo_db() -> AsyncIOMotorDatabase:
    return get_mongo_client()[get_settings().mongo_db]


def strategies_collection() -> AsyncIOMotorCollection:
    return get_mongo_db()[get_settings().mongo_strategies_collection]


def rules_collection() -> AsyncIOMotorCollection:
    return get_mongo_db()[get_settings().mongo_rules_collection]


def listings_collection() -> AsyncIOMotorCollection:
    return get_mongo_db()[get_settings().mongo_listings_collection]


def competitors_collection() -> AsyncIOMotorCollection:
    return get_mongo_db()[get_settings().mongo_competitors_collection]


def _config_indexes(name_field: str) -> list[IndexModel]:
    return [
        IndexModel([("id", ASCENDING)], unique=True, name="idx_id"),
        IndexModel([(name_field, ASCENDING)], unique=True, name="idx_name"),
        IndexModel([("applies_to.item_id", ASCENDING)], name="idx_applies_to_item"),
        IndexModel([("is_active", ASCENDING)], name="idx_is_active"),
    ]


def collection_indexes(settings: Settings) -> dict[str, list[IndexModel]]:
    """Index declarations keyed by collection name."""
    return {
        settings.mongo_strategies_collection: _config_indexes("strategy_name"),
        settings.mongo_rules_collection: _config_indexes("rule_name"),
        settings.mongo_listings_collection: [
            IndexModel([("item_id", ASCENDING)], unique=True, name="idx_item_id"),
            IndexModel([("strategy_id", ASCENDING)], name="idx_strategy_id"),
        ],
        settings.mongo_competitors_collection: [
            IndexModel([("user_id", ASCENDING), ("item_id", ASCENDING)], unique=True, name="idx_user_item"),
            IndexModel([("competitors.competitor_item_id", ASCENDING)], name="idx_competitor_item"),
        ],
    }


async def ensure_indexes() -> None:
    """Create every declared index; existing ones are left alone by MongoDB."""
    db = get_mongo_db()
    for name, indexes in collection_indexes(get_settings()).items():
        created = await db[name].create_indexes(indexes)
        logger.info("MongoDB indexes ensured", collection=name, indexes=created)


def close_mongo_client() -> None:
    global _client

    if _client is not None:
        _client.close()
        _client = None


async def check_mongo_connection() -> tuple[bool, Optional[str]]:
    """
    Ping the server.

    Returns:
        tuple: (is_connected, error_message)
    """
    try:
        await get_mongo_client().admin.command("ping")
        return True, None
    except PyMongoError as e:
        return False, str(e)
