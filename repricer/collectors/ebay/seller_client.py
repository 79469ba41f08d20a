"""
eBay Trading API client for the seller's own listings.
Reads current listing prices and revises them.
"""
import xml.etree.ElementTree as ET
from decimal import Decimal
from typing import Optional
from xml.sax.saxutils import escape

import httpx
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from repricer.collectors.base import PushResult
from repricer.collectors.ebay.api_client import EbayApiError, parse_amount
from repricer.core.config import get_settings

logger = structlog.get_logger()

NS = "{urn:ebay:apis:eBLBaseComponents}"


class EbaySellerClient:
    """
    Client for the eBay Trading API (XML over HTTPS).

    Authenticates with the seller's user token.
    https://developer.ebay.com/devzone/xml/docs/reference/ebay/
    """

    SANDBOX_URL = "https://api.sandbox.ebay.com/ws/api.dll"
    PRODUCTION_URL = "https://api.ebay.com/ws/api.dll"

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None):
        self.settings = get_settings()
        self._http_client = http_client

    @property
    def api_url(self) -> str:
        if self.settings.ebay_sandbox_mode:
            return self.SANDBOX_URL
        return self.PRODUCTION_URL

    async def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=30.0)
        return self._http_client

    async def close(self):
        """Close HTTP client."""
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    def _envelope(self, call_name: str, body: str) -> str:
        token = escape(self.settings.ebay_user_token)
        return (
            '<?xml version="1.0" encoding="utf-8"?>'
            f'<{call_name}Request xmlns="urn:ebay:apis:eBLBaseComponents">'
            f"<RequesterCredentials><eBayAuthToken>{token}</eBayAuthToken></RequesterCredentials>"
            "<ErrorLanguage>en_US</ErrorLanguage>"
            "<WarningLevel>High</WarningLevel>"
            f"{body}"
            f"</{call_name}Request>"
        )

    @retry(
        retry=retry_if_exception_type(httpx.HTTPError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    async def _call(self, call_name: str, body: str) -> ET.Element:
        """Send one Trading API call and return the parsed response root."""
        if not self.settings.ebay_seller_configured:
            raise EbayApiError("eBay user token not configured", code="AUTH_NOT_CONFIGURED")

        client = await self._get_http_client()
        response = await client.post(
            self.api_url,
            content=self._envelope(call_name, body).encode("utf-8"),
            headers={
                "Content-Type": "text/xml; charset=utf-8",
                "X-EBAY-API-CALL-NAME": call_name,
                "X-EBAY-API-SITEID": self.settings.ebay_site_id,
                "X-EBAY-API-COMPATIBILITY-LEVEL": self.settings.ebay_compatibility_level,
                "X-EBAY-API-APP-NAME": self.settings.ebay_app_id,
                "X-EBAY-API-DEV-NAME": self.settings.ebay_dev_id,
                "X-EBAY-API-CERT-NAME": self.settings.ebay_cert_id,
            },
        )

        if response.status_code != 200:
            raise EbayApiError(
                f"{call_name} failed: HTTP {response.status_code}",
                code="API_ERROR",
                status_code=response.status_code,
            )

        try:
            return ET.fromstring(response.content)
        except ET.ParseError as e:
            raise EbayApiError(f"{call_name} returned malformed XML", code="PARSE_ERROR") from e

    @staticmethod
    def ack_ok(root: ET.Element) -> bool:
        """True for ``Success`` and ``Warning`` acknowledgements."""
        return root.findtext(f"{NS}Ack") in ("Success", "Warning")

    @staticmethod
    def error_message(root: ET.Element) -> str:
        messages = [
            e.findtext(f"{NS}LongMessage") or e.findtext(f"{NS}ShortMessage") or ""
            for e in root.findall(f"{NS}Errors")
            if e.findtext(f"{NS}SeverityCode") != "Warning"
        ]
        return "; ".join(m for m in messages if m) or "Unknown eBay error"

    async def get_current_price(self, item_id: str) -> Optional[Decimal]:
        """
        Current price of one of the seller's listings via GetItem.

        Falls back from ``StartPrice`` to ``SellingStatus/CurrentPrice``.
        """
        root = await self._call(
            "GetItem",
            f"<ItemID>{escape(item_id)}</ItemID><DetailLevel>ReturnAll</DetailLevel>",
        )
        if not self.ack_ok(root):
            raise EbayApiError(self.error_message(root), code="API_ERROR")

        item = root.find(f"{NS}Item")
        if item is None:
            return None

        for path in (f"{NS}StartPrice", f"{NS}SellingStatus/{NS}CurrentPrice"):
            price = parse_amount(item.findtext(path))
            if price is not None and price > 0:
                return price
        return None

    async def revise_price(self, item_id: str, sku: Optional[str], new_price: Decimal) -> PushResult:
        """
        Revise a listing's price.

        ReviseInventoryStatus first; ReviseItem when that call is rejected.
        """
        price = f"{new_price:.2f}"
        sku_xml = f"<SKU>{escape(sku)}</SKU>" if sku else ""

        root = await self._call(
            "ReviseInventoryStatus",
            f"<InventoryStatus><ItemID>{escape(item_id)}</ItemID>{sku_xml}"
            f"<StartPrice>{price}</StartPrice></InventoryStatus>",
        )
        if self.ack_ok(root):
            return PushResult(success=True, method="ReviseInventoryStatus")

        first_error = self.error_message(root)
        logger.warning(
            "ReviseInventoryStatus rejected, trying ReviseItem",
            item_id=item_id,
            error=first_error,
        )

        root = await self._call(
            "ReviseItem",
            f"<Item><ItemID>{escape(item_id)}</ItemID><StartPrice>{price}</StartPrice></Item>",
        )
        if self.ack_ok(root):
            return PushResult(success=True, method="ReviseItem")

        return PushResult(success=False, method="ReviseItem", error=self.error_message(root))
