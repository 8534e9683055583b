# coinvault/providers/cryptonews.py
from __future__ import annotations

from typing import Any, Dict, List, Sequence

from coinvault.providers.base import ProviderClient, expect_list
from coinvault.ratelimit import DAY, RateLimit


def _items(payload: Any) -> List[Dict[str, Any]]:
    return expect_list(payload, "data")


class CryptoNewsClient(ProviderClient):
    """cryptonews-api.com. The free tier allows 50 requests a day, so TTLs are long."""

    name = "cryptonews"
    base_url = "https://cryptonews-api.com/api/v1"
    limits = (RateLimit("day", 50, DAY),)
    default_ttl = 600.0

    def auth_params(self) -> Dict[str, str]:
        return {"token": self.api_key}

    async def get_latest_news(self, page: int = 1, items: int = 10) -> List[Dict[str, Any]]:
        params = {"section": "general", "items": items, "page": page}
        return await self.request("/category", params, ttl=600, extract=_items)

    async def get_news_by_coin(self, tickers: Sequence[str], items: int = 10, page: int = 1) -> List[Dict[str, Any]]:
        params = {"tickers": ",".join(tickers), "items": items, "page": page}
        return await self.request("", params, ttl=600, extract=_items)

    async def get_news_by_topic(self, topics: Sequence[str], items: int = 10, page: int = 1) -> List[Dict[str, Any]]:
        params = {"topics": ",".join(topics), "items": items, "page": page}
        return await self.request("/category", {"section": "general", **params}, ttl=600, extract=_items)

    async def get_trending_news(self, items: int = 10) -> List[Dict[str, Any]]:
        return await self.request("/trending-headlines", {"items": items}, ttl=900, extract=_items)
