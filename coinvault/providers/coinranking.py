# coinvault/providers/coinranking.py
from __future__ import annotations

from typing import Any, Dict

from coinvault.providers.base import ProviderClient, expect_dict
from coinvault.ratelimit import MINUTE, MONTH, RateLimit


def _envelope(payload: Any) -> Dict[str, Any]:
    # { "status": "success", "data": {...} }
    body = expect_dict(payload, "status")
    if body["status"] != "success":
        raise ValueError(f"API returned error: {body['status']}")
    return expect_dict(body, "data")["data"]


def _coins(payload: Any) -> Dict[str, Any]:
    data = _envelope(payload)
    expect_dict(data, "coins")
    return data


class CoinrankingClient(ProviderClient):
    """Market data (coins, history, exchanges). Free tier: 20/min, 10,000/month."""

    name = "coinranking"
    base_url = "https://api.coinranking.com/v2"
    limits = (
        RateLimit("minute", 20, MINUTE),
        RateLimit("month", 10_000, MONTH),
    )
    default_ttl = 60.0

    def auth_headers(self) -> Dict[str, str]:
        return {"x-access-token": self.api_key}

    async def get_coins(self, limit: int = 50, offset: int = 0, time_period: str = "24h",
                        fresh: bool = False) -> Dict[str, Any]:
        params = {"limit": limit, "offset": offset, "timePeriod": time_period}
        return await self.request("/coins", params, ttl=60, extract=_coins, use_cache=not fresh)

    async def get_coin(self, uuid: str, time_period: str = "24h") -> Dict[str, Any]:
        return await self.request(f"/coin/{uuid}", {"timePeriod": time_period}, ttl=60, extract=_envelope)

    async def get_coin_history(self, uuid: str, time_period: str = "24h") -> Dict[str, Any]:
        return await self.request(f"/coin/{uuid}/history", {"timePeriod": time_period}, ttl=300, extract=_envelope)

    async def get_global_stats(self, fresh: bool = False) -> Dict[str, Any]:
        return await self.request("/stats", ttl=300, extract=_envelope, use_cache=not fresh)

    async def get_exchanges(self, limit: int = 50, offset: int = 0) -> Dict[str, Any]:
        return await self.request("/exchanges", {"limit": limit, "offset": offset}, ttl=3600, extract=_envelope)

    async def get_markets(self, limit: int = 50, offset: int = 0) -> Dict[str, Any]:
        return await self.request("/markets", {"limit": limit, "offset": offset}, ttl=300, extract=_envelope)

    async def search_coins(self, query: str, limit: int = 10) -> Dict[str, Any]:
        return await self.request("/search-suggestions", {"query": query, "limit": limit}, ttl=300, extract=_envelope)
