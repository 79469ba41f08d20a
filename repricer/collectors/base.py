"""
Marketplace gateway interface.

The repricing engine reaches eBay only through this contract. Prices arrive
already normalized to a single ``Decimal`` plus currency; source-specific
field names never leak past the adapter.
"""
import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Awaitable, Optional, TypeVar

from repricer.core.errors import RepricerError, UpstreamUnavailable

T = TypeVar("T")


async def call_upstream(awaitable: Awaitable[T], timeout: float, operation: str) -> T:
    """
    Await a gateway call with a timeout.

    Timeouts and gateway failures surface as ``UpstreamUnavailable``.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as e:
        raise UpstreamUnavailable(f"{operation} timed out after {timeout}s") from e
    except RepricerError:
        raise
    except Exception as e:
        raise UpstreamUnavailable(f"{operation} failed: {e}") from e


@dataclass
class CompetitorOffer:
    """A competing listing as seen on the marketplace."""
    item_id: str
    title: str
    price: Decimal
    currency: str = "USD"
    condition: Optional[str] = None
    locale: Optional[str] = None
    seller_id: Optional[str] = None
    image_url: Optional[str] = None
    item_url: Optional[str] = None


@dataclass
class SearchQuery:
    """Identifiers used to look for competitors of a listing."""
    item_id: str
    keywords: Optional[str] = None
    mpn: Optional[str] = None
    upc: Optional[str] = None
    ean: Optional[str] = None
    limit: int = 50


@dataclass
class PushResult:
    """Outcome of pushing a price to the marketplace."""
    success: bool
    method: Optional[str] = None
    error: Optional[str] = None


class MarketplaceGateway(ABC):
    """
    Collaborator contract for listing prices.

    Implementations may retry internally; callers apply their own timeout.
    """

    @abstractmethod
    async def get_current_price(self, item_id: str) -> Optional[Decimal]:
        """
        Current price of one of the seller's own listings.

        Returns:
            The price, or None when the listing has no usable price
        """
        pass

    @abstractmethod
    async def refresh_competitor_price(self, competitor_item_id: str) -> Optional[Decimal]:
        """Live price of a competitor listing, or None when unavailable."""
        pass

    @abstractmethod
    async def search_competitors_live(self, query: SearchQuery) -> list[CompetitorOffer]:
        """Search the marketplace for listings competing with ``query.item_id``."""
        pass

    @abstractmethod
    async def push_price(
        self,
        item_id: str,
        sku: Optional[str],
        new_price: Decimal
    ) -> PushResult:
        """Revise the listing's price."""
        pass

    async def close(self) -> None:
        """Release network resources."""
        return None
