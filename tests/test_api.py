# tests/test_api.py
import httpx
from fastapi.testclient import TestClient

from coinvault.config import Settings
from coinvault.main import create_app
from coinvault.storage import MemoryStore


def _handler(request: httpx.Request) -> httpx.Response:
    host, path = request.url.host, request.url.path
    if host == "api.coinranking.com":
        if path.endswith("/coins"):
            return httpx.Response(200, json={"status": "success",
                                             "data": {"coins": [{"symbol": "BTC", "price": "65000.12"}]}})
        return httpx.Response(500, json={})
    if host == "deep-index.moralis.io":
        if path.endswith("/balance"):
            return httpx.Response(200, json={"balance": "1500000000000000000"})
        return httpx.Response(200, json={"result": [{"token_id": "7"}]})
    if host == "api.llama.fi":
        return httpx.Response(200, json=[{"name": "Lido", "tvl": 1.25}, {"name": "Aave", "tvl": 0.5}])
    return httpx.Response(404, json={})


def _client(storage=None, **overrides) -> TestClient:
    base = dict(coinranking_api_key="cr-key", moralis_api_key="mo-key", newsapi_api_key=None,
                state_path=None, passphrase=None, retry_attempts=1, retry_delay_seconds=0.0)
    base.update(overrides)
    storage = storage if storage is not None else MemoryStore()
    app = create_app(Settings(**base), storage=storage, transport=httpx.MockTransport(_handler))
    return TestClient(app)


def test_health_reports_keys_without_values():
    with _client() as client:
        r = client.get("/health")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "ok"
    assert body["keys_loaded"]["coinranking"] is True
    assert body["keys_loaded"]["newsapi"] is False
    assert "cr-key" not in r.text


def test_market_route_and_request_id_header():
    with _client() as client:
        r = client.get("/market/coins", headers={"x-request-id": "req-1"})
        metrics = client.get("/_metrics").json()
    assert r.status_code == 200
    assert r.json()["coins"][0]["symbol"] == "BTC"
    assert r.headers["x-request-id"] == "req-1"
    assert metrics["counters"]["http.requests.total"] >= 1


def test_quota_exceeded_maps_to_429_with_retry_after():
    with _client() as client:
        statuses = [client.get("/market/coins", params={"offset": i}).status_code for i in range(21)]
        last = client.get("/market/coins", params={"offset": 99})
        usage = client.get("/usage", params={"provider": "coinranking"}).json()
    assert statuses[:20] == [200] * 20
    assert statuses[20] == 429
    assert last.status_code == 429
    assert int(last.headers["Retry-After"]) >= 1
    assert usage["coinranking"]["last_minute"] == 20


def test_missing_key_maps_to_424():
    with _client() as client:
        r = client.get("/news/latest")
    assert r.status_code == 424
    assert r.json()["provider"] == "newsapi"


def test_upstream_failure_maps_to_502():
    with _client() as client:
        r = client.get("/market/stats")
    assert r.status_code == 502
    assert r.json()["upstream_status"] == 500


def test_locked_wallet_maps_to_423_and_unlock_restores():
    with _client() as client:
        assert client.post("/wallet/lock").json() == {"locked": True}
        denied = client.get("/wallet/0xabc/nfts")
        notices = client.get("/notices").json()
        client.post("/wallet/unlock")
        allowed = client.get("/wallet/0xabc/nfts")
        status = client.get("/wallet/status").json()
    assert denied.status_code == 423
    assert denied.json()["notice"]["variant"] == "destructive"
    assert any(n["title"] == "Wallet Locked" and n["variant"] == "destructive" for n in notices)
    assert allowed.status_code == 200
    assert allowed.json() == [{"token_id": "7"}]
    assert status["locked"] is False


def test_session_routes():
    with _client() as client:
        session = client.get("/session").json()
        touched = client.post("/session/activity").json()
        updated = client.put("/session/config", json={"timeout_minutes": 10}).json()
        unlocked = client.post("/session/unlock").json()
    assert session["state"] == "active"
    assert touched["accepted"] is True
    assert updated["timeout_minutes"] == 10
    assert unlocked["state"] == "active"


def test_usage_unknown_provider_is_404_and_defi_limit():
    with _client() as client:
        assert client.get("/usage", params={"provider": "nope"}).status_code == 404
        protocols = client.get("/defi/protocols", params={"limit": 1}).json()
        usage = client.get("/usage").json()
    assert protocols == [{"name": "Lido", "tvl": 1.25}]
    assert set(usage) >= {"coinranking", "defillama", "moralis"}


def test_native_balance_is_scaled_from_wei():
    with _client() as client:
        r = client.get("/wallet/0xabc/native-balance")
    assert r.status_code == 200
    body = r.json()
    assert body["amount"] == "1.500000000000000000"
    assert body["display"] == 1.5


def test_provider_key_is_stored_encrypted_and_restored_on_restart():
    storage = MemoryStore()
    with _client(storage, passphrase="pw") as client:
        r = client.put("/providers/newsapi/key", json={"api_key": "na-secret"})
        assert client.get("/health").json()["keys_loaded"]["newsapi"] is True
    assert r.json() == {"provider": "newsapi", "configured": True}
    assert storage.get("secret:api_key:newsapi") is not None
    assert "na-secret" not in storage.get("secret:api_key:newsapi")

    with _client(storage, passphrase="pw") as client:
        assert client.get("/health").json()["keys_loaded"]["newsapi"] is True
        assert client.put("/providers/nope/key", json={"api_key": "x"}).status_code == 404


def test_explicit_session_lock_pause_and_resume():
    with _client() as client:
        paused = client.post("/session/pause").json()
        resumed = client.post("/session/resume").json()
        locked = client.post("/session/lock").json()
        denied = client.get("/wallet/0xabc/nfts")
        client.post("/session/unlock")
        allowed = client.get("/wallet/0xabc/nfts")
    assert paused["paused"] is True
    assert resumed["paused"] is False
    assert resumed["state"] == "active"
    assert locked["state"] == "locked"
    assert denied.status_code == 423
    assert allowed.status_code == 200
