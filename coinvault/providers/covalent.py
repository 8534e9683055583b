# coinvault/providers/covalent.py
from __future__ import annotations

import base64
from typing import Any, Dict, List

from coinvault.providers.base import ProviderClient, expect_dict, expect_list
from coinvault.ratelimit import MONTH, RateLimit


def _data(payload: Any) -> Dict[str, Any]:
    body = expect_dict(payload, "data")
    if body.get("error"):
        raise ValueError(body.get("error_message") or "Covalent error")
    return expect_dict(body["data"])


def _items(payload: Any) -> List[Dict[str, Any]]:
    return expect_list(_data(payload), "items")


class CovalentClient(ProviderClient):
    """Multi-chain balances and portfolio history. ~3,333 requests/month on the free tier."""

    name = "covalent"
    base_url = "https://api.covalenthq.com/v1"
    limits = (
        RateLimit("second", 5, 1.0),
        RateLimit("month", 3_333, MONTH),
    )
    default_ttl = 60.0

    def auth_headers(self) -> Dict[str, str]:
        token = base64.b64encode(f"{self.api_key}:".encode("utf-8")).decode("ascii")
        return {"Authorization": f"Basic {token}"}

    async def get_token_balances(self, chain_id: int, address: str) -> List[Dict[str, Any]]:
        return await self.request(f"/{chain_id}/address/{address}/balances_v2/", ttl=60, extract=_items)

    async def get_nfts(self, chain_id: int, address: str) -> List[Dict[str, Any]]:
        params = {"nft": "true", "no-nft-fetch": "false"}
        return await self.request(f"/{chain_id}/address/{address}/balances_v2/", params, ttl=300, extract=_items)

    async def get_portfolio_history(self, chain_id: int, address: str, days: int = 30) -> Dict[str, Any]:
        return await self.request(f"/{chain_id}/address/{address}/portfolio_v2/", {"days": days},
                                  ttl=3600, extract=_data)
