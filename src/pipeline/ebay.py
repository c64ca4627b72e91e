"""
CardScan — eBay Browse API Client

Prices a scanned card from recent eBay listings. The query is the card's
synthesized search string, so a graded card is priced against graded
listings and a numbered parallel against that parallel.

Authentication: OAuth2 Client Credentials flow, token cached on the client
instance until shortly before expiry.
"""

from __future__ import annotations

import base64
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from statistics import median
from typing import Any, Mapping

import httpx
import structlog
from pydantic import BaseModel

from src.config import settings
from src.scanner import CardRecord
from src.scanner.search_string import build_search_string

logger = structlog.get_logger(__name__)

_TWO_DP = Decimal("0.01")


class PriceEstimate(BaseModel):
    """Summary of listing prices for one search string."""
    search_string: str
    median: Decimal
    low: Decimal
    high: Decimal
    sample_size: int


class eBayClient:
    """
    eBay Browse API client for card price lookups.

    Usage:
        async with eBayClient() as client:
            estimate = await client.get_price_estimate(card)
    """

    def __init__(self) -> None:
        self._client: httpx.AsyncClient | None = None
        self._access_token: str | None = None
        self._token_expires_at: datetime = datetime.min.replace(tzinfo=timezone.utc)

    async def __aenter__(self) -> "eBayClient":
        self._client = httpx.AsyncClient(timeout=settings.EBAY_TIMEOUT_SECONDS)
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self._client:
            await self._client.aclose()

    async def _get_access_token(self) -> str:
        """
        OAuth2 Client Credentials flow using EBAY_APP_ID + EBAY_CERT_ID.

        Returns empty string if credentials are not configured or the token
        request fails.
        """
        if not settings.EBAY_APP_ID or not settings.EBAY_CERT_ID:
            return ""

        now = datetime.now(timezone.utc)
        if self._access_token and now < self._token_expires_at:
            return self._access_token

        if not self._client:
            return ""

        credentials = f"{settings.EBAY_APP_ID}:{settings.EBAY_CERT_ID}"
        encoded = base64.b64encode(credentials.encode()).decode()

        try:
            response = await self._client.post(
                settings.EBAY_OAUTH_URL,
                headers={
                    "Authorization": f"Basic {encoded}",
                    "Content-Type": "application/x-www-form-urlencoded",
                },
                data={
                    "grant_type": "client_credentials",
                    "scope": settings.EBAY_OAUTH_SCOPE,
                },
            )
            response.raise_for_status()
            data = response.json()

            token = data.get("access_token", "")
            expires_in = int(data.get("expires_in", 7200))

            self._access_token = token
            self._token_expires_at = now + timedelta(
                seconds=expires_in - settings.EBAY_TOKEN_SAFETY_MARGIN_SECONDS
            )

            logger.info("ebay_token_refreshed", expires_in=expires_in, source="ebay")
            return token

        except Exception as e:
            logger.error("ebay_token_fetch_failed", error=str(e), source="ebay")
            return ""

    async def search_listings(
        self, query: str, limit: int | None = None
    ) -> list[dict[str, Any]]:
        """
        Search eBay listings for a query.

        GET /buy/browse/v1/item_summary/search
            ?q={query}&category_ids={EBAY_CATEGORY_ID}&limit={limit}

        Returns list of dicts:
            {item_id, title, price_usd, condition, listing_url, seller}

        Returns [] on an empty query, any error or missing credentials.
        """
        if not self._client or not query:
            return []

        token = await self._get_access_token()
        if not token:
            logger.warning("ebay_search_skipped_no_token", query=query, source="ebay")
            return []

        try:
            response = await self._client.get(
                f"{settings.EBAY_BROWSE_URL}/item_summary/search",
                headers={"Authorization": f"Bearer {token}"},
                params={
                    "q": query,
                    "category_ids": settings.EBAY_CATEGORY_ID,
                    "limit": str(limit or settings.EBAY_SEARCH_LIMIT),
                },
            )
            response.raise_for_status()
            data = response.json()

            results: list[dict[str, Any]] = []
            for item in data.get("itemSummaries", []):
                price_value = (item.get("price") or {}).get("value")
                try:
                    price_usd = Decimal(str(price_value)) if price_value is not None else None
                except (InvalidOperation, TypeError):
                    price_usd = None

                results.append({
                    "item_id": item.get("itemId", ""),
                    "title": item.get("title", ""),
                    "price_usd": price_usd,
                    "condition": item.get("condition"),
                    "listing_url": item.get("itemWebUrl", ""),
                    "seller": (item.get("seller") or {}).get("username"),
                })

            logger.info(
                "ebay_search_complete",
                query=query,
                result_count=len(results),
                source="ebay",
            )
            return results

        except Exception as e:
            logger.error("ebay_search_failed", query=query, error=str(e), source="ebay")
            return []

    async def get_price_estimate(
        self, card: CardRecord | Mapping[str, Any]
    ) -> PriceEstimate | None:
        """
        Median/low/high of listing prices for a card.

        Uses the card's stored ebay_search_string when present, otherwise
        synthesizes one. Returns None if no priced listings are found.
        """
        if isinstance(card, Mapping):
            search_string = card.get("ebay_search_string") or build_search_string(card)
        else:
            search_string = card.ebay_search_string or build_search_string(card)

        listings = await self.search_listings(search_string)
        prices = [
            listing["price_usd"]
            for listing in listings
            if listing.get("price_usd") is not None
        ]

        if not prices:
            logger.debug("ebay_no_prices_found", search_string=search_string, source="ebay")
            return None

        estimate = PriceEstimate(
            search_string=search_string,
            median=Decimal(str(median(prices))).quantize(_TWO_DP),
            low=min(prices).quantize(_TWO_DP),
            high=max(prices).quantize(_TWO_DP),
            sample_size=len(prices),
        )
        logger.info(
            "ebay_price_estimated",
            search_string=search_string,
            median_price=str(estimate.median),
            sample_size=estimate.sample_size,
            source="ebay",
        )
        return estimate
