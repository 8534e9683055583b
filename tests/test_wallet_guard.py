# tests/test_wallet_guard.py
import asyncio

import httpx
import pytest

from coinvault.config import Settings
from coinvault.errors import AccessDenied
from coinvault.notices import NoticeBus
from coinvault.secretbox import EncryptedBlob
from coinvault.secrets_store import JwtToken, TokenPair
from coinvault.services import ServiceContainer
from coinvault.session import SessionMonitor
from coinvault.storage import MemoryStore
from coinvault.wallet import WALLET_LOCKED_KEY, SecurityGate, WalletLock


def run_async(coro):
    return asyncio.run(coro)


class FakeClock:
    def __init__(self, now: float):
        self.now = now

    def __call__(self) -> float:
        return self.now


def _container(handler):
    settings = Settings(moralis_api_key="mo-key", etherscan_api_key="es-key", state_path=None,
                        passphrase=None, session_timeout_minutes=5, session_warning_minutes=1,
                        retry_delay_seconds=0.0)
    mono = FakeClock(100.0)
    services = ServiceContainer(settings, storage=MemoryStore(), transport=httpx.MockTransport(handler),
                                clock=FakeClock(1_700_000_000.0), monotonic=mono)
    return services, mono


def _nfts(request):
    return httpx.Response(200, json={"result": [{"token_id": "1", "name": "Punk"}]})


def test_wallet_lock_is_persisted_and_notifies():
    store = MemoryStore()
    bus = NoticeBus()
    changes = []
    wallet = WalletLock(store, bus)
    wallet.on_change(changes.append)
    wallet.lock()
    assert WalletLock(store).is_locked()
    assert store.get(WALLET_LOCKED_KEY) == "true"
    wallet.unlock()
    assert not wallet.is_locked()
    assert changes == [True, False]
    assert bus.recent()[0].title == "Wallet Locked"


def test_locked_wallet_denies_without_network_call():
    calls = []

    def handler(request):
        calls.append(request)
        return _nfts(request)

    services, _ = _container(handler)
    client = services.provider("moralis")
    services.lock_wallet()

    with pytest.raises(AccessDenied) as exc:
        run_async(services.gate.guarded("view NFTs", lambda: client.get_wallet_nfts("0xabc")))
    assert exc.value.notice.variant == "destructive"
    assert exc.value.notice.title == "Wallet Locked"
    assert calls == []
    assert services.notices.recent()[-1].variant == "destructive"


def test_unlock_restores_access():
    calls = []

    def handler(request):
        calls.append(request)
        return _nfts(request)

    services, _ = _container(handler)
    client = services.provider("moralis")
    services.lock_wallet()
    services.unlock_wallet()

    async def scenario():
        nfts = await services.gate.guarded("view NFTs", lambda: client.get_wallet_nfts("0xabc"))
        await services.cache.clear()
        return nfts

    assert run_async(scenario())[0]["name"] == "Punk"
    assert len(calls) == 1


def test_session_timeout_locks_wallet_and_clears_tokens():
    services, mono = _container(_nfts)
    tokens = TokenPair(
        access_token=JwtToken(token="a", expires_at=1_700_003_600),
        refresh_token=JwtToken(token="r", expires_at=1_700_086_400),
    )
    run_async(services.secrets.store_tokens(tokens))
    mono.now += 300

    with pytest.raises(AccessDenied) as exc:
        services.gate.ensure_unlocked("connect a wallet")
    assert exc.value.notice.title == "Session Locked"
    assert services.is_wallet_locked()
    assert not services.secrets.has_tokens()
    assert not services.record_activity()


def test_explicit_session_lock_denies_and_clears_tokens():
    services, _ = _container(_nfts)
    tokens = TokenPair(
        access_token=JwtToken(token="a", expires_at=1_700_003_600),
        refresh_token=JwtToken(token="r", expires_at=1_700_086_400),
    )
    run_async(services.secrets.store_tokens(tokens))
    services.lock_session()

    assert services.gate.denial("transfer") is not None
    assert not services.secrets.has_tokens()
    services.session.unlock()
    assert services.gate.denial("transfer") is None


def test_gate_allows_when_session_active_and_wallet_unlocked():
    session = SessionMonitor(clock=FakeClock(0.0))
    gate = SecurityGate(session, WalletLock(MemoryStore()))
    assert gate.denial("transfer") is None
    gate.ensure_unlocked("transfer")


def test_container_encrypt_decrypt():
    services, _ = _container(_nfts)

    async def scenario():
        blob = await services.encrypt("seed words stay secret")
        assert isinstance(blob, EncryptedBlob)
        return await services.decrypt(blob)

    assert run_async(scenario()) == "seed words stay secret"


def test_container_lifecycle_starts_and_stops_session_timer():
    services, _ = _container(_nfts)

    async def scenario():
        await services.initialize()
        running = services.session.running
        await services.cleanup()
        return running, services.session.running

    assert run_async(scenario()) == (True, False)
