# coinvault/providers/newsapi.py
from __future__ import annotations

from typing import Any, Dict, List

from coinvault.providers.base import ProviderClient, expect_dict, expect_list
from coinvault.ratelimit import MINUTE, RateLimit

CRYPTO_QUERY = "cryptocurrency OR bitcoin OR blockchain"


def _articles(payload: Any) -> List[Dict[str, Any]]:
    body = expect_dict(payload, "status")
    if body["status"] != "ok":
        raise ValueError(body.get("message") or "Invalid news API response")
    return expect_list(body, "articles")


class NewsApiClient(ProviderClient):
    name = "newsapi"
    base_url = "https://newsapi.org/v2"
    limits = (RateLimit("minute", 30, MINUTE),)
    default_ttl = 300.0

    def auth_headers(self) -> Dict[str, str]:
        return {"X-Api-Key": self.api_key}

    async def get_latest_news(self, page: int = 1, page_size: int = 10) -> List[Dict[str, Any]]:
        params = {"q": CRYPTO_QUERY, "language": "en", "sortBy": "publishedAt",
                  "page": page, "pageSize": page_size}
        return await self.request("/everything", params, ttl=300, extract=_articles)

    async def get_top_headlines(self, country: str = "us", page_size: int = 5) -> List[Dict[str, Any]]:
        params = {"category": "business", "q": "crypto OR bitcoin OR blockchain",
                  "country": country, "pageSize": page_size}
        return await self.request("/top-headlines", params, ttl=300, extract=_articles)

    async def search_news(self, query: str, page: int = 1, page_size: int = 10) -> List[Dict[str, Any]]:
        if not query.strip():
            return await self.get_latest_news(page, page_size)
        params = {"q": query, "language": "en", "sortBy": "relevancy",
                  "page": page, "pageSize": page_size}
        return await self.request("/everything", params, ttl=300, extract=_articles)
