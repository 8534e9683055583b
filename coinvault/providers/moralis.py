# coinvault/providers/moralis.py
from __future__ import annotations

from typing import Any, Dict, List

from coinvault.providers.base import ProviderClient, expect_dict, expect_list
from coinvault.ratelimit import MONTH, RateLimit


def _result(payload: Any) -> List[Dict[str, Any]]:
    return expect_list(payload, "result")


class MoralisClient(ProviderClient):
    """NFT index across EVM chains. Free tier: 25,000 calls/month."""

    name = "moralis"
    base_url = "https://deep-index.moralis.io/api/v2"
    limits = (
        RateLimit("second", 10, 1.0),
        RateLimit("month", 25_000, MONTH),
    )
    default_ttl = 900.0

    def auth_headers(self) -> Dict[str, str]:
        return {"X-API-Key": self.api_key}

    async def get_wallet_nfts(self, address: str, chain: str = "eth", limit: int = 100) -> List[Dict[str, Any]]:
        params = {"chain": chain, "format": "decimal", "limit": limit}
        return await self.request(f"/{address}/nft", params, ttl=900, extract=_result)

    async def get_nft(self, token_address: str, token_id: str, chain: str = "eth") -> Dict[str, Any]:
        params = {"chain": chain, "format": "decimal"}
        return await self.request(f"/nft/{token_address}/{token_id}", params, ttl=1800,
                                  extract=lambda p: expect_dict(p, "token_address", "token_id"))

    async def get_nft_transfers(self, address: str, chain: str = "eth", limit: int = 100) -> List[Dict[str, Any]]:
        params = {"chain": chain, "format": "decimal", "limit": limit}
        return await self.request(f"/{address}/nft/transfers", params, ttl=600, extract=_result)

    async def get_wallet_collections(self, address: str, chain: str = "eth", limit: int = 100) -> List[Dict[str, Any]]:
        params = {"chain": chain, "limit": limit}
        return await self.request(f"/{address}/nft/collections", params, ttl=1800, extract=_result)

    async def get_collection_stats(self, token_address: str, chain: str = "eth") -> Dict[str, Any]:
        return await self.request(f"/nft/{token_address}/stats", {"chain": chain}, ttl=3600, extract=expect_dict)

    async def get_native_balance(self, address: str, chain: str = "eth") -> str:
        return await self.request(f"/{address}/balance", {"chain": chain}, ttl=30,
                                  extract=lambda p: str(expect_dict(p, "balance")["balance"]))
