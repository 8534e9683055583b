# coinvault/providers/cryptocompare.py
from __future__ import annotations

from typing import Any, Dict, List, Sequence

from coinvault.providers.base import ProviderClient, expect_dict, expect_list
from coinvault.ratelimit import MONTH, RateLimit


def _history(payload: Any) -> List[Dict[str, Any]]:
    body = expect_dict(payload, "Response", "Data")
    if body["Response"] != "Success":
        raise ValueError(body.get("Message") or "CryptoCompare error")
    return expect_list(body["Data"], "Data")


def _signals(payload: Any) -> Dict[str, Any]:
    body = expect_dict(payload, "Response", "Data")
    if body["Response"] != "Success":
        raise ValueError(body.get("Message") or "CryptoCompare error")
    return expect_dict(body["Data"])


class CryptoCompareClient(ProviderClient):
    """OHLCV history and trading signals. Key optional; 100,000 calls/month."""

    name = "cryptocompare"
    base_url = "https://min-api.cryptocompare.com/data"
    limits = (
        RateLimit("second", 50, 1.0),
        RateLimit("month", 100_000, MONTH),
    )
    requires_key = False
    default_ttl = 600.0

    def auth_headers(self) -> Dict[str, str]:
        return {"authorization": f"Apikey {self.api_key}"} if self.api_key else {}

    async def get_historical_daily(self, fsym: str, tsym: str = "USD", limit: int = 30) -> List[Dict[str, Any]]:
        params = {"fsym": fsym, "tsym": tsym, "limit": limit}
        return await self.request("/v2/histoday", params, ttl=3600, extract=_history)

    async def get_historical_hourly(self, fsym: str, tsym: str = "USD", limit: int = 24) -> List[Dict[str, Any]]:
        params = {"fsym": fsym, "tsym": tsym, "limit": limit}
        return await self.request("/v2/histohour", params, ttl=600, extract=_history)

    async def get_multiple_prices(self, fsyms: Sequence[str], tsyms: Sequence[str] = ("USD",)) -> Dict[str, Any]:
        params = {"fsyms": ",".join(fsyms), "tsyms": ",".join(tsyms)}
        return await self.request("/pricemulti", params, ttl=60, extract=_price_matrix)

    async def get_trading_signals(self, fsym: str) -> Dict[str, Any]:
        return await self.request("/tradingsignals/intotheblock/latest", {"fsym": fsym}, ttl=600, extract=_signals)


def _price_matrix(payload: Any) -> Dict[str, Any]:
    body = expect_dict(payload)
    if body.get("Response") == "Error":
        raise ValueError(body.get("Message") or "CryptoCompare error")
    return body
