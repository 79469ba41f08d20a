"""
eBay API client for Browse API.
Used to read competitor prices and to search for competing listings.
"""
import base64
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import httpx
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from repricer.collectors.base import CompetitorOffer, SearchQuery
from repricer.core.config import get_settings
from repricer.models.schemas import utcnow


class EbayApiError(Exception):
    """Custom exception for eBay API errors."""
    def __init__(self, message: str, code: str = None, status_code: int = None):
        self.message = message
        self.code = code
        self.status_code = status_code
        super().__init__(message)


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, EbayApiError):
        return exc.code not in ("AUTH_NOT_CONFIGURED", "ITEM_NOT_FOUND")
    return isinstance(exc, httpx.HTTPError)


def parse_amount(value: Any) -> Optional[Decimal]:
    """Parse an API amount, returning None for missing or malformed values."""
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


class EbayApiClient:
    """
    Client for eBay Browse API.

    Handles OAuth authentication, item lookups and item searches.
    https://developer.ebay.com/api-docs/buy/browse/overview.html
    """

    # API endpoints
    SANDBOX_AUTH_URL = "https://api.sandbox.ebay.com/identity/v1/oauth2/token"
    PRODUCTION_AUTH_URL = "https://api.ebay.com/identity/v1/oauth2/token"

    SANDBOX_API_URL = "https://api.sandbox.ebay.com/buy/browse/v1"
    PRODUCTION_API_URL = "https://api.ebay.com/buy/browse/v1"

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None):
        self.settings = get_settings()
        self._access_token: Optional[str] = None
        self._token_expires_at: Optional[datetime] = None
        self._http_client = http_client

    @property
    def auth_url(self) -> str:
        if self.settings.ebay_sandbox_mode:
            return self.SANDBOX_AUTH_URL
        return self.PRODUCTION_AUTH_URL

    @property
    def api_url(self) -> str:
        if self.settings.ebay_sandbox_mode:
            return self.SANDBOX_API_URL
        return self.PRODUCTION_API_URL

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                timeout=30.0,
                follow_redirects=True
            )
        return self._http_client

    async def close(self):
        """Close HTTP client."""
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    def _get_basic_auth_header(self) -> str:
        """Generate Basic Auth header for OAuth."""
        credentials = f"{self.settings.ebay_app_id}:{self.settings.ebay_cert_id}"
        encoded = base64.b64encode(credentials.encode()).decode()
        return f"Basic {encoded}"

    def _headers(self, token: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {token}",
            "X-EBAY-C-MARKETPLACE-ID": self.settings.ebay_marketplace_id,
            "Content-Type": "application/json",
        }

    async def _ensure_token(self) -> str:
        """Ensure we have a valid access token."""
        # Check if current token is still valid
        if (self._access_token and self._token_expires_at and
                utcnow() < self._token_expires_at - timedelta(minutes=5)):
            return self._access_token

        await self._refresh_token()
        return self._access_token

    @retry(
        retry=retry_if_exception(_is_retryable),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    async def _refresh_token(self) -> None:
        """Refresh OAuth application access token."""
        if not self.settings.ebay_api_configured:
            raise EbayApiError(
                "eBay API credentials not configured",
                code="AUTH_NOT_CONFIGURED"
            )

        client = await self._get_http_client()

        response = await client.post(
            self.auth_url,
            headers={
                "Authorization": self._get_basic_auth_header(),
                "Content-Type": "application/x-www-form-urlencoded"
            },
            data={
                "grant_type": "client_credentials",
                "scope": "https://api.ebay.com/oauth/api_scope"
            }
        )

        if response.status_code != 200:
            raise EbayApiError(
                f"Failed to get access token: {response.text}",
                code="AUTH_FAILED",
                status_code=response.status_code
            )

        data = response.json()
        self._access_token = data["access_token"]
        # Token typically expires in 2 hours
        expires_in = data.get("expires_in", 7200)
        self._token_expires_at = utcnow() + timedelta(seconds=expires_in)

    @retry(
        retry=retry_if_exception(_is_retryable),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    async def get_item(self, item_id: str) -> dict[str, Any]:
        """
        Get item details from eBay Browse API.

        Args:
            item_id: eBay legacy item ID

        Returns:
            Raw API response data
        """
        token = await self._ensure_token()
        client = await self._get_http_client()

        response = await client.get(
            f"{self.api_url}/item/get_item_by_legacy_id",
            headers=self._headers(token),
            params={"legacy_item_id": item_id},
        )

        if response.status_code == 404:
            raise EbayApiError(
                f"Item not found: {item_id}",
                code="ITEM_NOT_FOUND",
                status_code=404
            )

        if response.status_code != 200:
            raise EbayApiError(
                f"API request failed: {response.text}",
                code="API_ERROR",
                status_code=response.status_code
            )

        return response.json()

    async def get_item_price(self, item_id: str) -> Optional[Decimal]:
        """Current price of any listing, or None when it has none."""
        data = await self.get_item(item_id)
        return parse_amount((data.get("price") or {}).get("value"))

    @staticmethod
    def _build_search_params(query: SearchQuery) -> dict[str, Any]:
        params: dict[str, Any] = {
            "limit": min(query.limit, 200),  # eBay API max 200
            "sort": "price",
        }
        if query.upc or query.ean:
            params["gtin"] = query.upc or query.ean
        elif query.mpn:
            params["q"] = query.mpn
        else:
            params["q"] = query.keywords
        params["filter"] = "buyingOptions:{FIXED_PRICE}"
        return params

    @staticmethod
    def parse_search_item(item_data: dict[str, Any]) -> Optional[CompetitorOffer]:
        """Map one ``itemSummaries`` entry to an offer; None when it has no price."""
        price_info = item_data.get("price") or {}
        price = parse_amount(price_info.get("value"))
        if price is None:
            return None

        image_info = item_data.get("image") or (item_data.get("thumbnailImages") or [{}])[0]

        return CompetitorOffer(
            item_id=item_data.get("legacyItemId") or item_data.get("itemId", ""),
            title=item_data.get("title", ""),
            price=price,
            currency=price_info.get("currency", "USD"),
            condition=item_data.get("condition"),
            locale=(item_data.get("itemLocation") or {}).get("country"),
            seller_id=(item_data.get("seller") or {}).get("username"),
            image_url=image_info.get("imageUrl"),
            item_url=item_data.get("itemWebUrl"),
        )

    @retry(
        retry=retry_if_exception(_is_retryable),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    async def search(self, query: SearchQuery) -> list[CompetitorOffer]:
        """
        Search fixed-price listings by GTIN, MPN or keywords.

        Args:
            query: Identifiers of the listing to find competitors for

        Returns:
            Offers sorted by price, cheapest first
        """
        token = await self._ensure_token()
        client = await self._get_http_client()

        response = await client.get(
            f"{self.api_url}/item_summary/search",
            params=self._build_search_params(query),
            headers=self._headers(token),
        )

        if response.status_code != 200:
            raise EbayApiError(
                f"API returned status {response.status_code}: {response.text[:200]}",
                code="API_ERROR",
                status_code=response.status_code
            )

        data = response.json()
        offers = []
        for item_data in data.get("itemSummaries", []):
            offer = self.parse_search_item(item_data)
            if offer is not None:
                offers.append(offer)
        return offers
