"""
eBay implementation of the marketplace gateway.
"""
from decimal import Decimal
from typing import Optional

import structlog

from repricer.collectors.base import CompetitorOffer, MarketplaceGateway, PushResult, SearchQuery
from repricer.collectors.ebay.api_client import EbayApiClient, EbayApiError
from repricer.collectors.ebay.seller_client import EbaySellerClient

logger = structlog.get_logger()


class EbayMarketplaceGateway(MarketplaceGateway):
    """
    Browse API for competitor data, Trading API for the seller's listings.

    Own-listing prices come from the Trading API when a user token is
    configured and from the Browse API otherwise.
    """

    def __init__(
        self,
        api_client: Optional[EbayApiClient] = None,
        seller_client: Optional[EbaySellerClient] = None,
    ):
        self.api_client = api_client or EbayApiClient()
        self.seller_client = seller_client or EbaySellerClient()

    async def get_current_price(self, item_id: str) -> Optional[Decimal]:
        if self.seller_client.settings.ebay_seller_configured:
            return await self.seller_client.get_current_price(item_id)
        return await self.api_client.get_item_price(item_id)

    async def refresh_competitor_price(self, competitor_item_id: str) -> Optional[Decimal]:
        try:
            return await self.api_client.get_item_price(competitor_item_id)
        except EbayApiError as e:
            if e.code == "ITEM_NOT_FOUND":
                logger.info("Competitor listing no longer available", competitor_item_id=competitor_item_id)
                return None
            raise

    async def search_competitors_live(self, query: SearchQuery) -> list[CompetitorOffer]:
        offers = await self.api_client.search(query)
        logger.debug("Live competitor search", item_id=query.item_id, results=len(offers))
        return offers

    async def push_price(self, item_id: str, sku: Optional[str], new_price: Decimal) -> PushResult:
        return await self.seller_client.revise_price(item_id, sku, new_price)

    async def close(self) -> None:
        await self.api_client.close()
        await self.seller_client.close()
