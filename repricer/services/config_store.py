"""
Configuration store for pricing strategies and competitor rules.

Owns validation, name uniqueness, the applies-to bookkeeping and the
single-strategy-per-listing binding.
"""
from decimal import Decimal
from typing import Any, Generic, Optional

import pydantic
import structlog

from repricer.core.errors import ConflictError, NotFoundError, ValidationError
from repricer.models.schemas import (
    AppliedListing,
    CompetitorRule,
    Listing,
    PricingStrategy,
    RuleExecutionEntry,
    RuleFields,
    RuleUpdate,
    StrategyExecutionEntry,
    StrategyFields,
    StrategyUpdate,
    utcnow,
)
from repricer.repositories.base import ConfigRepository, ConfigT, ListingRepository

logger = structlog.get_logger()


def _validation_message(exc: pydantic.ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "__root__")
        msg = err.get("msg", "invalid value")
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts)


class ConfigCollection(Generic[ConfigT]):
    """
    CRUD and listing attachment for one configuration type.

    Args:
        repository: Storage for the configurations
        model: Stored model class
        name_field: Attribute holding the unique human name
        label: Used in error messages ("Pricing strategy", "Competitor rule")
        history_limit: Bound for per-configuration execution history
    """

    def __init__(
        self,
        repository: ConfigRepository[ConfigT],
        model: type[ConfigT],
        name_field: str,
        label: str,
        history_limit: int = 50,
    ):
        self.repository = repository
        self.model = model
        self.name_field = name_field
        self.label = label
        self.history_limit = history_limit

    def _build(self, data: dict[str, Any]) -> ConfigT:
        try:
            return self.model.model_validate(data)
        except pydantic.ValidationError as e:
            raise ValidationError(_validation_message(e)) from e

    async def _ensure_unique_name(self, name: str, exclude_id: Optional[str] = None) -> None:
        existing = await self.repository.find_by_name(name)
        if existing and existing.id != exclude_id:
            raise ConflictError(f'{self.label} with name "{name}" already exists')

    async def get(self, config_id: str) -> ConfigT:
        config = await self.repository.get(config_id)
        if config is None:
            raise NotFoundError(f"{self.label} not found")
        return config

    async def list_all(self, is_active: Optional[bool] = None) -> list[ConfigT]:
        return await self.repository.list_all(is_active)

    async def create(self, fields: dict[str, Any]) -> ConfigT:
        """Create a configuration that is not yet applied to any listing."""
        data = dict(fields)
        data.pop("id", None)
        data["applies_to"] = []
        config = self._build(data)

        await self._ensure_unique_name(getattr(config, self.name_field))
        if config.is_default:
            await self.repository.clear_default()

        await self.repository.insert(config)
        logger.info("Configuration created", kind=self.label, config_id=config.id)
        return config

    async def update(self, config_id: str, updates: dict[str, Any]) -> ConfigT:
        """Apply a partial update; the merged document is re-validated."""
        config = await self.get(config_id)

        new_name = updates.get(self.name_field)
        if isinstance(new_name, str):
            new_name = new_name.strip()
            updates = {**updates, self.name_field: new_name}
        if new_name and new_name != getattr(config, self.name_field):
            await self._ensure_unique_name(new_name, exclude_id=config.id)

        merged = config.model_dump()
        merged.update({k: v for k, v in updates.items() if k not in ("id", "applies_to")})
        merged["updated_at"] = utcnow()
        updated = self._build(merged)

        if updates.get("is_default") is True:
            await self.repository.clear_default(except_id=updated.id)

        await self.repository.save(updated)
        logger.info("Configuration updated", kind=self.label, config_id=config_id)
        return updated

    async def delete(self, config_id: str) -> None:
        config = await self.get(config_id)
        if config.applies_to:
            raise ConflictError(
                f"Cannot delete a {self.label.lower()} that is applied to one or more items"
            )
        await self.repository.delete(config_id)
        logger.info("Configuration deleted", kind=self.label, config_id=config_id)

    async def set_default(self, config_id: str) -> ConfigT:
        """Make this the only default configuration (last writer wins)."""
        config = await self.get(config_id)
        await self.repository.clear_default(except_id=config.id)
        config.is_default = True
        config.updated_at = utcnow()
        return await self.repository.save(config)

    async def apply_to_listing(
        self,
        config_id: str,
        item_id: str,
        sku: Optional[str] = None,
        title: Optional[str] = None,
    ) -> ConfigT:
        """Attach to a listing, replacing any previous entry for the same item/SKU."""
        if not item_id:
            raise ValidationError("Item ID is required")

        config = await self.get(config_id)
        config.applies_to = [e for e in config.applies_to if not e.matches(item_id, sku)]
        config.applies_to.append(AppliedListing(item_id=item_id, sku=sku, title=title))
        config.usage_count += 1
        config.last_used = utcnow()
        config.updated_at = utcnow()
        return await self.repository.save(config)

    async def remove_from_listing(
        self,
        config_id: str,
        item_id: str,
        sku: Optional[str] = None,
    ) -> ConfigT:
        config = await self.get(config_id)
        remaining = [e for e in config.applies_to if not e.matches(item_id, sku)]
        if len(remaining) == len(config.applies_to):
            raise NotFoundError(f"Item not found in {self.label.lower()}'s applied items")

        config.applies_to = remaining
        config.updated_at = utcnow()
        return await self.repository.save(config)

    async def detach_everywhere(self, item_id: str, keep_id: Optional[str] = None) -> None:
        """Remove ``item_id`` from every configuration except ``keep_id``."""
        for config in await self.repository.find_applied(item_id):
            if config.id == keep_id:
                continue
            config.applies_to = [e for e in config.applies_to if e.item_id != item_id]
            config.updated_at = utcnow()
            await self.repository.save(config)


class ConfigStore:
    """
    Strategies, rules and their listing bindings.

    A listing carries at most one strategy and one competitor rule; applying
    a new one detaches the item from whatever it used before.
    """

    def __init__(
        self,
        strategy_repository: ConfigRepository[PricingStrategy],
        rule_repository: ConfigRepository[CompetitorRule],
        listing_repository: ListingRepository,
        history_limit: int = 50,
    ):
        self.strategies: ConfigCollection[PricingStrategy] = ConfigCollection(
            strategy_repository, PricingStrategy, "strategy_name", "Pricing strategy", history_limit
        )
        self.rules: ConfigCollection[CompetitorRule] = ConfigCollection(
            rule_repository, CompetitorRule, "rule_name", "Competitor rule", history_limit
        )
        self.listings = listing_repository

    # ---------- strategies ----------

    async def create_strategy(self, fields: StrategyFields | dict[str, Any]) -> PricingStrategy:
        data = fields.model_dump() if isinstance(fields, StrategyFields) else fields
        return await self.strategies.create(data)

    async def update_strategy(
        self,
        strategy_id: str,
        updates: StrategyUpdate | dict[str, Any]
    ) -> PricingStrategy:
        data = updates.model_dump(exclude_unset=True) if isinstance(updates, StrategyUpdate) else updates
        return await self.strategies.update(strategy_id, data)

    async def delete_strategy(self, strategy_id: str) -> None:
        await self.strategies.delete(strategy_id)

    async def apply_strategy(
        self,
        item_id: str,
        strategy_id: str,
        sku: Optional[str] = None,
        title: Optional[str] = None,
        min_price: Optional[Decimal] = None,
        max_price: Optional[Decimal] = None,
    ) -> Listing:
        """Make ``strategy_id`` the listing's only strategy, with optional bounds."""
        if min_price is not None and max_price is not None and min_price > max_price:
            raise ValidationError("Minimum price cannot be greater than maximum price")

        strategy = await self.strategies.get(strategy_id)
        await self.strategies.detach_everywhere(item_id, keep_id=strategy.id)
        await self.strategies.apply_to_listing(strategy.id, item_id, sku, title)

        listing = await self.listings.get(item_id) or Listing(item_id=item_id)
        listing.strategy_id = strategy.id
        listing.sku = sku or listing.sku
        listing.title = title or listing.title
        listing.min_price = min_price
        listing.max_price = max_price
        if listing.user_id is None:
            listing.user_id = strategy.created_by
        await self.listings.save(listing)

        logger.info("Strategy applied", item_id=item_id, strategy_id=strategy.id)
        return listing

    async def remove_strategy(self, item_id: str) -> Listing:
        listing = await self.listings.get(item_id)
        if listing is None or listing.strategy_id is None:
            raise NotFoundError(f"No strategy assigned to item {item_id}")

        try:
            await self.strategies.remove_from_listing(listing.strategy_id, item_id)
        except NotFoundError:
            logger.warning(
                "Listing referenced a strategy that did not list it",
                item_id=item_id,
                strategy_id=listing.strategy_id,
            )

        listing.strategy_id = None
        await self.listings.save(listing)
        logger.info("Strategy removed", item_id=item_id)
        return listing

    async def set_default_strategy(self, strategy_id: str) -> PricingStrategy:
        return await self.strategies.set_default(strategy_id)

    async def load_strategy(self, item_id: str) -> Optional[PricingStrategy]:
        """The listing's active strategy, or None."""
        listing = await self.listings.get(item_id)
        if listing is None or listing.strategy_id is None:
            return None
        strategy = await self.strategies.repository.get(listing.strategy_id)
        if strategy is None or not strategy.is_active:
            return None
        return strategy

    async def record_strategy_execution(
        self,
        strategy_id: str,
        entry: StrategyExecutionEntry
    ) -> None:
        """Append to the strategy's bounded execution history."""
        await self.strategies.repository.append_history(
            strategy_id,
            "execution_history",
            entry,
            self.strategies.history_limit,
            set_fields={"last_used": entry.timestamp},
        )

    # ---------- competitor rules ----------

    async def create_rule(self, fields: RuleFields | dict[str, Any]) -> CompetitorRule:
        data = fields.model_dump() if isinstance(fields, RuleFields) else fields
        return await self.rules.create(data)

    async def update_rule(self, rule_id: str, updates: RuleUpdate | dict[str, Any]) -> CompetitorRule:
        data = updates.model_dump(exclude_unset=True) if isinstance(updates, RuleUpdate) else updates
        return await self.rules.update(rule_id, data)

    async def delete_rule(self, rule_id: str) -> None:
        await self.rules.delete(rule_id)

    async def apply_rule(
        self,
        item_id: str,
        rule_id: str,
        sku: Optional[str] = None,
        title: Optional[str] = None,
    ) -> Listing:
        rule = await self.rules.get(rule_id)
        await self.rules.detach_everywhere(item_id, keep_id=rule.id)
        await self.rules.apply_to_listing(rule.id, item_id, sku, title)

        listing = await self.listings.get(item_id) or Listing(item_id=item_id)
        listing.competitor_rule_id = rule.id
        listing.sku = sku or listing.sku
        listing.title = title or listing.title
        if listing.user_id is None:
            listing.user_id = rule.created_by
        await self.listings.save(listing)

        logger.info("Competitor rule applied", item_id=item_id, rule_id=rule.id)
        return listing

    async def remove_rule(self, item_id: str) -> Listing:
        listing = await self.listings.get(item_id)
        if listing is None or listing.competitor_rule_id is None:
            raise NotFoundError(f"No competitor rule assigned to item {item_id}")

        try:
            await self.rules.remove_from_listing(listing.competitor_rule_id, item_id)
        except NotFoundError:
            logger.warning(
                "Listing referenced a rule that did not list it",
                item_id=item_id,
                rule_id=listing.competitor_rule_id,
            )

        listing.competitor_rule_id = None
        await self.listings.save(listing)
        return listing

    async def set_default_rule(self, rule_id: str) -> CompetitorRule:
        return await self.rules.set_default(rule_id)

    async def load_rule(self, item_id: str) -> Optional[CompetitorRule]:
        """The listing's active competitor rule, or None."""
        listing = await self.listings.get(item_id)
        if listing is None or listing.competitor_rule_id is None:
            return None
        rule = await self.rules.repository.get(listing.competitor_rule_id)
        if rule is None or not rule.is_active:
            return None
        return rule

    async def record_rule_execution(self, rule_id: str, entry: RuleExecutionEntry) -> None:
        await self.rules.repository.append_history(
            rule_id,
            "execution_stats.execution_history",
            entry,
            self.rules.history_limit,
            set_fields={"execution_stats.last_execution": entry.date},
            inc_fields={
                "execution_stats.total_competitors_found": entry.competitors_found,
                "execution_stats.competitors_excluded": entry.competitors_excluded,
            },
        )

    # ---------- listings ----------

    async def get_listing(self, item_id: str) -> Optional[Listing]:
        return await self.listings.get(item_id)

    async def list_active_bindings(self) -> list[Listing]:
        """Listings whose strategy exists and is active."""
        active_ids = {s.id for s in await self.strategies.list_all(is_active=True)}
        return [
            listing
            for listing in await self.listings.list_with_strategy()
            if listing.strategy_id in active_ids
        ]
