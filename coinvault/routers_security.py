# coinvault/routers_security.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from coinvault.deps import get_services, provider_or_404, touch_session
from coinvault.money import scale_units, to_display_float
from coinvault.services import ServiceContainer

router = APIRouter(tags=["security"])

ETH_DECIMALS = 18


class ApiKeyUpdate(BaseModel):
    api_key: Optional[str] = None


class SessionConfigUpdate(BaseModel):
    timeout_minutes: Optional[float] = Field(None, gt=0)
    warning_minutes: Optional[float] = Field(None, ge=0)


def _session_status(services: ServiceContainer) -> dict:
    session = services.session
    session.poll()
    return {
        "state": session.state.value,
        "time_remaining_seconds": round(session.time_remaining(), 1),
        "idle_seconds": round(session.idle_seconds(), 1),
        "timeout_minutes": session.config.timeout_minutes,
        "warning_minutes": session.config.warning_minutes,
        "paused": session.paused,
        "wallet_locked": services.is_wallet_locked(),
    }


# ---------------------- Session ----------------------

@router.get("/session")
async def session_status(services: ServiceContainer = Depends(get_services)):
    return _session_status(services)


@router.post("/session/activity")
async def session_activity(services: ServiceContainer = Depends(get_services)):
    accepted = services.record_activity()
    return {"accepted": accepted, **_session_status(services)}


@router.post("/session/unlock")
async def session_unlock(services: ServiceContainer = Depends(get_services)):
    services.session.unlock()
    return _session_status(services)


@router.post("/session/lock")
async def session_lock(services: ServiceContainer = Depends(get_services)):
    services.lock_session()
    return _session_status(services)


@router.post("/session/pause")
async def session_pause(services: ServiceContainer = Depends(get_services)):
    services.pause_session()
    return _session_status(services)


@router.post("/session/resume")
async def session_resume(services: ServiceContainer = Depends(get_services)):
    services.resume_session()
    return _session_status(services)


@router.put("/session/config")
async def session_config(body: SessionConfigUpdate, services: ServiceContainer = Depends(touch_session)):
    services.session.update_config(body.timeout_minutes, body.warning_minutes)
    return _session_status(services)


# ---------------------- Wallet lock ----------------------

@router.get("/wallet/status")
async def wallet_status(services: ServiceContainer = Depends(touch_session)):
    return {"locked": services.is_wallet_locked(), "session": services.session.state.value}


@router.post("/wallet/lock")
async def wallet_lock(services: ServiceContainer = Depends(touch_session)):
    services.lock_wallet()
    return {"locked": True}


@router.post("/wallet/unlock")
async def wallet_unlock(services: ServiceContainer = Depends(touch_session)):
    services.unlock_wallet()
    return {"locked": services.is_wallet_locked()}


# ---------------------- Wallet reads (behind the security gate) ----------------------

@router.get("/wallet/{address}/balance")
async def wallet_balance(address: str, services: ServiceContainer = Depends(touch_session)):
    client = services.provider("etherscan")
    wei = await services.gate.guarded("view balances", lambda: client.get_balance(address))
    return {"address": address, "wei": wei, "eth": str(scale_units(wei, ETH_DECIMALS))}


@router.get("/wallet/{address}/transactions")
async def wallet_transactions(address: str, page: int = Query(1, ge=1), size: int = Query(10, ge=1, le=100),
                              services: ServiceContainer = Depends(touch_session)):
    client = services.provider("etherscan")
    return await services.gate.guarded(
        "view transactions", lambda: client.get_transactions(address, page=page, offset=size)
    )


@router.get("/wallet/{address}/tokens")
async def wallet_tokens(address: str, chain_id: int = 1, services: ServiceContainer = Depends(touch_session)):
    client = services.provider("covalent")
    return await services.gate.guarded("view balances", lambda: client.get_token_balances(chain_id, address))


@router.get("/wallet/{address}/nfts")
async def wallet_nfts(address: str, chain: str = "eth", limit: int = Query(100, ge=1, le=100),
                      services: ServiceContainer = Depends(touch_session)):
    client = services.provider("moralis")
    return await services.gate.guarded("view NFTs", lambda: client.get_wallet_nfts(address, chain=chain, limit=limit))


@router.get("/wallet/{address}/nft-transfers")
async def wallet_nft_transfers(address: str, chain: str = "eth", limit: int = Query(100, ge=1, le=100),
                               services: ServiceContainer = Depends(touch_session)):
    client = services.provider("moralis")
    return await services.gate.guarded(
        "view NFT transfers", lambda: client.get_nft_transfers(address, chain=chain, limit=limit)
    )


@router.get("/wallet/{address}/native-balance")
async def wallet_native_balance(address: str, chain: str = "eth",
                                services: ServiceContainer = Depends(touch_session)):
    client = services.provider("moralis")
    wei = await services.gate.guarded("view balances", lambda: client.get_native_balance(address, chain=chain))
    amount = scale_units(wei, ETH_DECIMALS)
    return {"address": address, "chain": chain, "wei": wei, "amount": str(amount),
            "display": to_display_float(amount, 6)}


@router.get("/wallet/{address}/token-balance")
async def wallet_token_balance(address: str, contract: str = Query(..., min_length=1),
                               decimals: int = Query(18, ge=0, le=36),
                               services: ServiceContainer = Depends(touch_session)):
    client = services.provider("etherscan")
    raw = await services.gate.guarded("view balances", lambda: client.get_token_balance(address, contract))
    return {"address": address, "contract": contract, "raw": raw, "amount": str(scale_units(raw, decimals))}


@router.get("/wallet/{address}/token-transfers")
async def wallet_token_transfers(address: str, contract: Optional[str] = None, page: int = Query(1, ge=1),
                                 size: int = Query(10, ge=1, le=100),
                                 services: ServiceContainer = Depends(touch_session)):
    client = services.provider("etherscan")
    return await services.gate.guarded(
        "view transactions",
        lambda: client.get_token_transactions(address, contract_address=contract, page=page, offset=size),
    )


@router.get("/wallet/{address}/collections")
async def wallet_collections(address: str, chain: str = "eth", limit: int = Query(100, ge=1, le=100),
                             services: ServiceContainer = Depends(touch_session)):
    client = services.provider("moralis")
    return await services.gate.guarded(
        "view NFTs", lambda: client.get_wallet_collections(address, chain=chain, limit=limit)
    )


@router.get("/wallet/{address}/nft-holdings")
async def wallet_nft_holdings(address: str, chain_id: int = 1, services: ServiceContainer = Depends(touch_session)):
    client = services.provider("covalent")
    return await services.gate.guarded("view NFTs", lambda: client.get_nfts(chain_id, address))


@router.get("/wallet/{address}/portfolio")
async def wallet_portfolio(address: str, chain_id: int = 1, days: int = Query(30, ge=1, le=365),
                           services: ServiceContainer = Depends(touch_session)):
    client = services.provider("covalent")
    return await services.gate.guarded(
        "view portfolio", lambda: client.get_portfolio_history(chain_id, address, days=days)
    )


# ---------------------- Provider keys ----------------------

@router.put("/providers/{name}/key")
async def set_provider_key(name: str, body: ApiKeyUpdate, services: ServiceContainer = Depends(touch_session)):
    provider_or_404(services, name)
    services.gate.ensure_unlocked("change API keys")
    await services.store_api_key(name, body.api_key)
    return {"provider": name, "configured": bool(body.api_key)}
