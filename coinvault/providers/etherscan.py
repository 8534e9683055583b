# coinvault/providers/etherscan.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

from coinvault.errors import QuotaExceeded
from coinvault.providers.base import ProviderClient, expect_dict
from coinvault.ratelimit import DAY, RateLimit

NO_RESULTS = ("No transactions found", "No records found")
REMOTE_RETRY_AFTER = 1.0


def _result(payload: Any) -> Any:
    # { "status": "1", "message": "OK", "result": ... }; status "0" is an error
    body = expect_dict(payload, "status", "result")
    if str(body["status"]) == "0":
        message = str(body.get("message") or "")
        if message in NO_RESULTS:
            return []
        # the remote quota is reported in-band with HTTP 200
        if "rate limit" in str(body["result"]).lower():
            raise QuotaExceeded(EtherscanClient.name, "remote", REMOTE_RETRY_AFTER)
        raise ValueError(f"Etherscan API error: {message or body['result']}")
    return body["result"]


class EtherscanClient(ProviderClient):
    """Ethereum explorer. Free tier: 5 calls/sec (we use 4), 100,000 calls/day."""

    name = "etherscan"
    base_url = "https://api.etherscan.io/api"
    limits = (
        RateLimit("second", 4, 1.0),
        RateLimit("day", 100_000, DAY),
    )
    default_ttl = 60.0

    def auth_params(self) -> Dict[str, str]:
        return {"apikey": self.api_key}

    async def _call(self, module: str, action: str, params: Optional[Dict[str, Any]] = None, ttl: float = 60) -> Any:
        query = {"module": module, "action": action, **(params or {})}
        return await self.request("", query, ttl=ttl, extract=_result)

    async def get_balance(self, address: str) -> str:
        """Wei balance, as the decimal string Etherscan returns."""
        return await self._call("account", "balance", {"address": address, "tag": "latest"}, ttl=30)

    async def get_token_balance(self, address: str, contract_address: str) -> str:
        params = {"address": address, "contractaddress": contract_address, "tag": "latest"}
        return await self._call("account", "tokenbalance", params, ttl=30)

    async def get_transactions(self, address: str, start_block: int = 0, end_block: int = 99999999,
                               page: int = 1, offset: int = 10) -> List[Dict[str, Any]]:
        params = {
            "address": address,
            "startblock": start_block,
            "endblock": end_block,
            "page": page,
            "offset": offset,
            "sort": "desc",
        }
        return await self._call("account", "txlist", params, ttl=60)

    async def get_token_transactions(self, address: str, contract_address: Optional[str] = None,
                                     page: int = 1, offset: int = 10) -> List[Dict[str, Any]]:
        params = {
            "address": address,
            "contractaddress": contract_address,
            "page": page,
            "offset": offset,
            "sort": "desc",
        }
        return await self._call("account", "tokentx", params, ttl=60)

    async def get_gas_price(self) -> Dict[str, Any]:
        return await self._call("gastracker", "gasoracle", ttl=30)
