"""
Competitor price discovery.

Resolves the lowest qualifying competitor price for a listing from the
user's manual competitor list, falling back to a live marketplace search
when no manual data exists.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Iterable, Optional, Protocol

import structlog

from repricer.collectors.base import MarketplaceGateway, SearchQuery, call_upstream
from repricer.core.config import Settings, get_settings
from repricer.core.errors import UpstreamUnavailable
from repricer.models.schemas import (
    CompetitorRule,
    CompetitorSource,
    Listing,
    ManualCompetitorList,
    RuleExecutionEntry,
    utcnow,
)
from repricer.repositories.base import CompetitorListRepository

logger = structlog.get_logger()


class PricedCompetitor(Protocol):
    """Fields shared by manual competitors and live search offers."""
    price: Decimal
    title: str
    condition: Optional[str]
    locale: Optional[str]
    seller_id: Optional[str]


@dataclass
class CompetitorPriceResult:
    """Lowest qualifying competitor price and how it was obtained."""
    price: Optional[Decimal]
    sample_count: int
    source: CompetitorSource
    found: int = 0
    excluded: int = 0
    had_manual_data: bool = False


def is_excluded(
    competitor: PricedCompetitor,
    rule: CompetitorRule,
    current_price: Optional[Decimal] = None
) -> bool:
    """Whether ``rule`` filters this competitor out."""
    if competitor.locale and competitor.locale in rule.exclude_countries:
        return True
    if competitor.condition and competitor.condition in rule.exclude_conditions:
        return True
    if competitor.seller_id and competitor.seller_id in rule.exclude_sellers:
        return True

    title = (competitor.title or "").lower()
    if any(word and word.lower() in title for word in rule.exclude_product_title_words):
        return True

    if current_price is not None and current_price > 0:
        low = current_price * rule.min_percent_of_current_price / 100
        high = current_price * rule.max_percent_of_current_price / 100
        if competitor.price < low or competitor.price > high:
            return True

    return False


def lowest_price(competitors: Iterable[PricedCompetitor]) -> Optional[Decimal]:
    """Minimum positive price, or None."""
    prices = [c.price for c in competitors if c.price is not None and c.price > 0]
    return min(prices) if prices else None


def refresh_due(manual: ManualCompetitorList, now: Optional[datetime] = None) -> bool:
    """Whether ``monitoring_frequency`` minutes have passed since the last check."""
    last = manual.last_monitoring_check
    if last is None:
        return True
    if last.tzinfo is None:
        last = last.replace(tzinfo=timezone.utc)
    return (now or utcnow()) - last >= timedelta(minutes=manual.monitoring_frequency)


class RuleStatsRecorder(Protocol):
    async def record_rule_execution(self, rule_id: str, entry: RuleExecutionEntry) -> None:
        ...


class CompetitorPriceResolver:
    """
    Finds the price a listing competes against.

    Args:
        competitors: Manual competitor lists
        gateway: Marketplace collaborator for refreshes and live search
        stats: Optional recorder for competitor rule execution stats
        settings: Application settings (defaults to the cached settings)
    """

    def __init__(
        self,
        competitors: CompetitorListRepository,
        gateway: MarketplaceGateway,
        stats: Optional[RuleStatsRecorder] = None,
        settings: Optional[Settings] = None,
    ):
        self.competitors = competitors
        self.gateway = gateway
        self.stats = stats
        self.settings = settings or get_settings()

    @property
    def timeout(self) -> float:
        return self.settings.collaborator_timeout_seconds

    async def resolve(
        self,
        item_id: str,
        user_id: Optional[str],
        rule: Optional[CompetitorRule] = None,
        *,
        listing: Optional[Listing] = None,
        current_price: Optional[Decimal] = None,
    ) -> CompetitorPriceResult:
        """
        Resolve the lowest qualifying competitor price.

        Manual competitors win when any survive the rule's filters. Live
        search runs only when the user has no manual competitors at all.
        """
        manual = await self.competitors.get(user_id, item_id) if user_id else None
        had_manual_data = bool(manual and manual.competitors)

        if had_manual_data:
            if (
                self.settings.refresh_competitor_prices
                and manual.monitoring_enabled
                and refresh_due(manual)
            ):
                manual = await self._refresh(manual)

            candidates = [c for c in manual.competitors if c.price > 0]
            kept = [c for c in candidates if not (rule and is_excluded(c, rule, current_price))]
            price = lowest_price(kept)
            result = CompetitorPriceResult(
                price=price,
                sample_count=len(kept),
                source=CompetitorSource.MANUAL if price is not None else CompetitorSource.NONE,
                found=len(manual.competitors),
                excluded=len(candidates) - len(kept),
                had_manual_data=True,
            )
            if price is None:
                logger.info(
                    "All manual competitors filtered out",
                    item_id=item_id,
                    found=result.found,
                    excluded=result.excluded,
                )
        elif self.settings.live_search_enabled:
            result = await self._search_live(item_id, rule, listing, current_price)
        else:
            result = CompetitorPriceResult(price=None, sample_count=0, source=CompetitorSource.NONE)

        if rule is not None and self.stats is not None:
            try:
                await self.stats.record_rule_execution(
                    rule.id,
                    RuleExecutionEntry(
                        item_id=item_id,
                        sku=listing.sku if listing else None,
                        competitors_found=result.found,
                        competitors_excluded=result.excluded,
                        final_competitors_used=result.sample_count,
                    ),
                )
            except Exception as e:
                logger.error("Rule stats not recorded", rule_id=rule.id, error=str(e), exc_info=True)

        logger.info(
            "Competitor price resolved",
            item_id=item_id,
            source=result.source.value,
            price=str(result.price) if result.price is not None else None,
            sample_count=result.sample_count,
        )
        return result

    async def _refresh(self, manual: ManualCompetitorList) -> ManualCompetitorList:
        """
        Refresh cached competitor prices; failures keep the cached price.

        Prices are written back per competitor so that competitors added or
        removed while the refresh was running are left as the user set them.
        Returns the list as stored after the write.
        """
        prices: dict[str, Decimal] = {}
        for competitor in manual.competitors:
            try:
                price = await call_upstream(
                    self.gateway.refresh_competitor_price(competitor.competitor_item_id),
                    self.timeout,
                    "Competitor price refresh",
                )
            except UpstreamUnavailable as e:
                logger.warning(
                    "Competitor refresh failed, keeping cached price",
                    competitor_item_id=competitor.competitor_item_id,
                    error=e.message,
                )
                continue

            if price is not None and price > 0 and price != competitor.price:
                prices[competitor.competitor_item_id] = price

        updated = 0
        if prices:
            updated = await self.competitors.update_prices(manual.user_id, manual.item_id, prices)

        current = await self.competitors.get(manual.user_id, manual.item_id)
        if current is None:
            return manual.model_copy(update={"competitors": []})

        await self.competitors.mark_checked(
            manual.user_id, manual.item_id, utcnow(), lowest_price(current.competitors)
        )

        logger.debug(
            "Competitor prices refreshed",
            item_id=manual.item_id,
            competitors=len(current.competitors),
            updated=updated,
        )
        return current

    def _build_query(
        self,
        item_id: str,
        rule: Optional[CompetitorRule],
        listing: Optional[Listing]
    ) -> Optional[SearchQuery]:
        if listing is None:
            return None

        query = SearchQuery(item_id=item_id, limit=self.settings.competitor_search_limit)
        if listing.mpn and rule is not None and rule.find_competitors_based_on_mpn:
            query.mpn = listing.mpn
        elif listing.upc:
            query.upc = listing.upc
        elif listing.ean:
            query.ean = listing.ean
        elif listing.title:
            query.keywords = listing.title
        else:
            return None
        return query

    async def _search_live(
        self,
        item_id: str,
        rule: Optional[CompetitorRule],
        listing: Optional[Listing],
        current_price: Optional[Decimal],
    ) -> CompetitorPriceResult:
        query = self._build_query(item_id, rule, listing)
        if query is None:
            logger.info("No identifiers for live competitor search", item_id=item_id)
            return CompetitorPriceResult(price=None, sample_count=0, source=CompetitorSource.NONE)

        try:
            offers = await call_upstream(
                self.gateway.search_competitors_live(query),
                self.timeout,
                "Live competitor search",
            )
        except UpstreamUnavailable as e:
            logger.warning("Live competitor search failed", item_id=item_id, error=e.message)
            return CompetitorPriceResult(price=None, sample_count=0, source=CompetitorSource.NONE)

        seen: set[str] = set()
        unique = []
        for offer in offers:
            if offer.item_id == item_id or offer.item_id in seen:
                continue
            seen.add(offer.item_id)
            unique.append(offer)
        unique = unique[:query.limit]

        candidates = [o for o in unique if o.price is not None and o.price > 0]
        kept = [o for o in candidates if not (rule and is_excluded(o, rule, current_price))]
        price = lowest_price(kept)

        return CompetitorPriceResult(
            price=price,
            sample_count=len(kept),
            source=CompetitorSource.API_SEARCH if price is not None else CompetitorSource.NONE,
            found=len(unique),
            excluded=len(candidates) - len(kept),
        )
