# coinvault/providers/defillama.py
from __future__ import annotations

from typing import Any, Dict, List

from coinvault.providers.base import ProviderClient, expect_dict, expect_list
from coinvault.ratelimit import MINUTE, RateLimit

YIELDS_URL = "https://yields.llama.fi"
STABLECOINS_URL = "https://stablecoins.llama.fi"


def _protocols(payload: Any) -> List[Dict[str, Any]]:
    # /protocols answers with a bare list; older mirrors wrap it
    if isinstance(payload, dict):
        return expect_list(payload, "protocols")
    return expect_list(payload)


class DefiLlamaClient(ProviderClient):
    """DeFi TVL, yields and stablecoins. No key; descriptive data, long TTLs."""

    name = "defillama"
    base_url = "https://api.llama.fi"
    limits = (RateLimit("5min", 300, 5 * MINUTE),)
    requires_key = False
    default_ttl = 1800.0

    async def get_protocols(self) -> List[Dict[str, Any]]:
        return await self.request("/protocols", ttl=1800, extract=_protocols)

    async def get_protocol_tvl(self, protocol: str) -> List[Dict[str, Any]]:
        return await self.request(f"/protocol/{protocol}", ttl=3600,
                                  extract=lambda p: expect_list(p, "tvl"))

    async def get_chains_tvl(self) -> List[Dict[str, Any]]:
        return await self.request("/v2/chains", ttl=1800, extract=expect_list)

    async def get_global_tvl(self) -> List[Dict[str, Any]]:
        return await self.request("/v2/historicalChainTvl", ttl=3600, extract=expect_list)

    async def get_yield_pools(self, limit: int = 100) -> List[Dict[str, Any]]:
        pools = await self.request("/pools", ttl=1800, base_url=YIELDS_URL,
                                   extract=lambda p: expect_list(expect_dict(p, "data"), "data"))
        return pools[:limit]

    async def get_stablecoins(self) -> List[Dict[str, Any]]:
        return await self.request("/stablecoins", {"includePrices": "true"}, ttl=3600,
                                  base_url=STABLECOINS_URL,
                                  extract=lambda p: expect_list(p, "peggedAssets"))
