"""
eBay marketplace adapter.
"""
from repricer.collectors.ebay.api_client import EbayApiClient, EbayApiError
from repricer.collectors.ebay.gateway import EbayMarketplaceGateway
from repricer.collectors.ebay.seller_client import EbaySellerClient
from repricer.collectors.ebay.url_parser import EbayUrlParser, ParsedEbayUrl

__all__ = [
    "EbayApiClient",
    "EbayApiError",
    "EbayMarketplaceGateway",
    "EbaySellerClient",
    "EbayUrlParser",
    "ParsedEbayUrl",
]
