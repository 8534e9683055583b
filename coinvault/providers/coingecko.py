# coinvault/providers/coingecko.py
from __future__ import annotations

from typing import Any, Dict, List, Sequence

from coinvault.providers.base import ProviderClient, expect_dict, expect_list
from coinvault.ratelimit import MINUTE, RateLimit


def _prices(payload: Any) -> Dict[str, Dict[str, Any]]:
    # { "<coin id>": { "<currency>": price, ... } }
    return expect_dict(payload)


class CoinGeckoClient(ProviderClient):
    """Spot prices and market listings. Free tier is 10-30 calls/min; stay at 25."""

    name = "coingecko"
    base_url = "https://api.coingecko.com/api/v3"
    limits = (RateLimit("minute", 25, MINUTE),)
    requires_key = False
    default_ttl = 300.0

    def auth_headers(self) -> Dict[str, str]:
        return {"x-cg-demo-api-key": self.api_key} if self.api_key else {}

    async def get_prices(self, coin_ids: Sequence[str], currencies: Sequence[str] = ("usd",)) -> Dict[str, Dict[str, Any]]:
        params = {
            "ids": ",".join(coin_ids),
            "vs_currencies": ",".join(currencies),
            "include_market_cap": "true",
            "include_24hr_vol": "true",
            "include_24hr_change": "true",
        }
        return await self.request("/simple/price", params, ttl=60, extract=_prices)

    async def get_trending_coins(self) -> Dict[str, Any]:
        return await self.request("/search/trending", ttl=300, extract=lambda p: expect_dict(p, "coins"))

    async def get_coin_details(self, coin_id: str) -> Dict[str, Any]:
        params = {
            "localization": "false",
            "tickers": "false",
            "community_data": "false",
            "developer_data": "false",
        }
        return await self.request(f"/coins/{coin_id}", params, ttl=3600, extract=lambda p: expect_dict(p, "id"))

    async def get_coin_markets(self, currency: str = "usd", page: int = 1, per_page: int = 100) -> List[Dict[str, Any]]:
        params = {
            "vs_currency": currency,
            "order": "market_cap_desc",
            "per_page": per_page,
            "page": page,
            "sparkline": "false",
        }
        return await self.request("/coins/markets", params, ttl=120, extract=expect_list)
