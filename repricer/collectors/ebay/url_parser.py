"""
eBay URL parsing utilities.
Extracts the competitor item id and marketplace region from listing URLs.
"""
import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import parse_qs, urlparse


@dataclass
class ParsedEbayUrl:
    """Result of parsing a competitor listing URL."""
    success: bool
    original_url: str
    item_id: Optional[str] = None
    region: Optional[str] = None
    canonical_url: Optional[str] = None
    error: Optional[str] = None


class EbayUrlParser:
    """
    Parser for eBay listing URLs.

    Supported URL formats:
    - https://www.ebay.com/itm/256123456789
    - https://www.ebay.com/itm/product-title/256123456789
    - https://www.ebay.com/itm/256123456789?var=...
    - https://www.ebay.com/sch/...?item=256123456789
    - Regional domains: ebay.co.uk, ebay.de, ebay.fr, etc.
    """

    # Domain -> region code used as the competitor's locale
    REGIONS = {
        "ebay.com": "US",
        "ebay.co.uk": "UK",
        "ebay.de": "DE",
        "ebay.fr": "FR",
        "ebay.ca": "CA",
        "ebay.com.au": "AU",
        "ebay.it": "IT",
        "ebay.es": "ES",
        "ebay.nl": "NL",
        "ebay.be": "BE",
        "ebay.at": "AT",
        "ebay.ch": "CH",
        "ebay.ie": "IE",
        "ebay.pl": "PL",
        "ebay.ph": "PH",
        "ebay.com.sg": "SG",
        "ebay.com.my": "MY",
        "ebay.co.jp": "JP",
    }

    ITEM_URL_PATTERN = re.compile(
        r"/itm/(?:[^/]+/)?(\d{9,15})(?:[?#/]|$)",
        re.IGNORECASE
    )

    ITEM_ID_PATTERN = re.compile(r"^\d{9,15}$")

    @classmethod
    def _host(cls, url: str) -> str:
        host = urlparse(url.strip().lower()).netloc.split(":")[0]
        return host[4:] if host.startswith("www.") else host

    @classmethod
    def get_region(cls, url: str) -> Optional[str]:
        """Region code (e.g. 'US', 'UK', 'DE') or None for non-eBay hosts."""
        host = cls._host(url)
        # Longest domain first so ebay.com.au wins over ebay.com
        for domain in sorted(cls.REGIONS, key=len, reverse=True):
            if host == domain or host.endswith(f".{domain}"):
                return cls.REGIONS[domain]
        return None

    @classmethod
    def is_ebay_url(cls, url: str) -> bool:
        """Check if URL is from an eBay domain."""
        return cls.get_region(url) is not None

    @classmethod
    def extract_item_id(cls, url: str) -> Optional[str]:
        """
        Extract eBay item ID from URL.

        Args:
            url: eBay listing URL

        Returns:
            Item ID string or None if not found
        """
        match = cls.ITEM_URL_PATTERN.search(url)
        if match:
            return match.group(1)

        query_params = parse_qs(urlparse(url).query)
        for param in ("item", "itemId", "itemid"):
            if param in query_params:
                item_id = query_params[param][0]
                if cls.ITEM_ID_PATTERN.match(item_id):
                    return item_id

        return None

    @classmethod
    def build_canonical_url(cls, item_id: str, region: str = "US") -> str:
        """Canonical listing URL for an item in a region."""
        domain = next((d for d, r in cls.REGIONS.items() if r == region), "ebay.com")
        return f"https://www.{domain}/itm/{item_id}"

    @classmethod
    def parse(cls, url: str) -> ParsedEbayUrl:
        """
        Parse eBay URL and extract all relevant information.

        Args:
            url: URL to parse

        Returns:
            ParsedEbayUrl with parsing results
        """
        region = cls.get_region(url)
        if region is None:
            return ParsedEbayUrl(
                success=False,
                original_url=url,
                error="Not a valid eBay URL"
            )

        item_id = cls.extract_item_id(url)
        if not item_id:
            return ParsedEbayUrl(
                success=False,
                original_url=url,
                error="Could not extract item ID from URL"
            )

        return ParsedEbayUrl(
            success=True,
            original_url=url,
            item_id=item_id,
            region=region,
            canonical_url=cls.build_canonical_url(item_id, region),
        )

    @classmethod
    def validate_item_id(cls, item_id: str) -> bool:
        """Validate eBay item ID format."""
        return bool(cls.ITEM_ID_PATTERN.match(item_id))
