"""
Manual competitor list management.
"""
from typing import Optional

import structlog

from repricer.collectors.ebay.url_parser import EbayUrlParser
from repricer.core.errors import ConflictError, NotFoundError, ValidationError
from repricer.models.schemas import Competitor, CompetitorCreate, ManualCompetitorList
from repricer.repositories.base import CompetitorListRepository

logger = structlog.get_logger()


class CompetitorListService:
    """Curates the competitors a user tracks for one of their listings."""

    def __init__(self, repository: CompetitorListRepository):
        self.repository = repository

    async def get(self, user_id: str, item_id: str) -> ManualCompetitorList:
        """The list for (user, item); an empty list when none was saved yet."""
        existing = await self.repository.get(user_id, item_id)
        return existing or ManualCompetitorList(user_id=user_id, item_id=item_id)

    async def add_competitor(
        self,
        user_id: str,
        item_id: str,
        request: CompetitorCreate
    ) -> ManualCompetitorList:
        """
        Add a competitor by item id or by eBay listing URL.

        Raises:
            ValidationError: URL is not an eBay listing, or the item is the
                seller's own listing
            ConflictError: competitor already tracked for this listing
        """
        competitor_item_id = request.competitor_item_id
        locale = request.locale
        product_url = request.product_url

        if product_url:
            parsed = EbayUrlParser.parse(product_url)
            if not parsed.success:
                raise ValidationError(parsed.error or "Invalid eBay URL")
            if competitor_item_id and competitor_item_id != parsed.item_id:
                raise ValidationError("competitor_item_id does not match product_url")
            competitor_item_id = parsed.item_id
            locale = locale or parsed.region
            product_url = parsed.canonical_url
        elif not EbayUrlParser.validate_item_id(competitor_item_id):
            raise ValidationError(f"Invalid eBay item ID: {competitor_item_id}")

        if competitor_item_id == item_id:
            raise ValidationError("A listing cannot compete with itself")

        competitor_list = await self.get(user_id, item_id)
        if any(c.competitor_item_id == competitor_item_id for c in competitor_list.competitors):
            raise ConflictError(f"Competitor {competitor_item_id} is already tracked")

        competitor_list.competitors.append(
            Competitor(
                competitor_item_id=competitor_item_id,
                title=request.title,
                price=request.price,
                currency=request.currency.upper(),
                condition=request.condition,
                image_url=request.image_url,
                product_url=product_url or EbayUrlParser.build_canonical_url(competitor_item_id),
                locale=locale or "US",
                seller_id=request.seller_id,
            )
        )
        await self.repository.save(competitor_list)

        logger.info(
            "Competitor added",
            item_id=item_id,
            competitor_item_id=competitor_item_id,
            price=str(request.price),
        )
        return competitor_list

    async def remove_competitor(
        self,
        user_id: str,
        item_id: str,
        competitor_item_id: str
    ) -> ManualCompetitorList:
        competitor_list = await self.repository.get(user_id, item_id)
        if competitor_list is None:
            raise NotFoundError("Competitor not found")

        remaining = [c for c in competitor_list.competitors if c.competitor_item_id != competitor_item_id]
        if len(remaining) == len(competitor_list.competitors):
            raise NotFoundError("Competitor not found")

        competitor_list.competitors = remaining
        await self.repository.save(competitor_list)
        logger.info("Competitor removed", item_id=item_id, competitor_item_id=competitor_item_id)
        return competitor_list

    async def set_monitoring(
        self,
        user_id: str,
        item_id: str,
        enabled: bool,
        frequency: Optional[int] = None
    ) -> ManualCompetitorList:
        if frequency is not None and frequency < 1:
            raise ValidationError("Monitoring frequency must be at least 1 minute")

        competitor_list = await self.get(user_id, item_id)
        competitor_list.monitoring_enabled = enabled
        if frequency is not None:
            competitor_list.monitoring_frequency = frequency
        return await self.repository.save(competitor_list)
