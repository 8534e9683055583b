# tests/test_secrets_store.py
import asyncio

import pytest

from coinvault.secretbox import SecretBox
from coinvault.secrets_store import JwtToken, SecretStore, TokenPair
from coinvault.storage import JsonFileStore, MemoryStore


def run_async(coro):
    return asyncio.run(coro)


NOW = 1_700_000_000


def _pair(access_expires=NOW + 3600, refresh_expires=NOW + 86400):
    return TokenPair(
        access_token=JwtToken(token="access.jwt", expires_at=access_expires),
        refresh_token=JwtToken(token="refresh.jwt", expires_at=refresh_expires),
    )


def test_tokens_are_stored_encrypted_with_paired_iv_keys():
    storage = MemoryStore()
    store = SecretStore(SecretBox.generate(), storage, clock=lambda: NOW)

    async def scenario():
        await store.store_tokens(_pair())
        return await store.get_access_token(), await store.get_refresh_token()

    access, refresh = run_async(scenario())
    assert access.token == "access.jwt"
    assert refresh.token == "refresh.jwt"
    assert storage.get("access_token_iv")
    assert storage.get("refresh_token_iv")
    assert "access.jwt" not in storage.get("access_token")
    assert store.has_tokens()


def test_auth_headers_only_for_live_token():
    store = SecretStore(SecretBox.generate(), MemoryStore(), clock=lambda: NOW)

    async def scenario(pair):
        await store.store_tokens(pair)
        return await store.auth_headers()

    assert run_async(scenario(_pair())) == {"Authorization": "Bearer access.jwt"}
    # inside the 30 s expiry buffer counts as expired, and so does the refresh token here
    assert run_async(scenario(_pair(access_expires=NOW + 20, refresh_expires=NOW + 20))) == {}
    assert not store.has_tokens()


def test_expired_access_token_is_refreshed_while_refresh_token_lives():
    storage = MemoryStore()
    store = SecretStore(SecretBox.generate(), storage, clock=lambda: NOW)

    async def scenario():
        await store.store_tokens(_pair(access_expires=NOW - 10))
        headers = await store.auth_headers()
        return headers, await store.get_access_token(), await store.get_refresh_token()

    headers, access, refresh = run_async(scenario())
    assert access.token != "access.jwt"
    assert access.token.startswith("access_token_")
    assert access.expires_at == NOW + 3600
    assert headers == {"Authorization": f"Bearer {access.token}"}
    assert refresh.token == "refresh.jwt"


def test_refresh_without_live_refresh_token_clears_tokens():
    storage = MemoryStore()
    store = SecretStore(SecretBox.generate(), storage, clock=lambda: NOW)

    async def scenario():
        await store.store_tokens(_pair(access_expires=NOW - 10, refresh_expires=NOW - 10))
        return await store.refresh_access_token()

    assert run_async(scenario()) is None
    assert storage.keys() == []
    assert run_async(store.refresh_access_token()) is None


def test_is_token_expired():
    store = SecretStore(SecretBox.generate(), MemoryStore(), clock=lambda: NOW)
    assert store.is_token_expired(None)
    assert store.is_token_expired(JwtToken(token="t", expires_at=NOW + 30))
    assert not store.is_token_expired(JwtToken(token="t", expires_at=NOW + 31))


def test_clear_tokens_removes_all_records():
    storage = MemoryStore()
    store = SecretStore(SecretBox.generate(), storage)
    run_async(store.store_tokens(_pair()))
    store.clear_tokens()
    assert storage.keys() == []
    assert not store.has_tokens()
    assert run_async(store.get_access_token()) is None


def test_named_secrets_round_trip_and_delete():
    storage = MemoryStore()
    store = SecretStore(SecretBox.generate(), storage)

    async def scenario():
        await store.put_secret("moralis", "mo-key")
        value = await store.get_secret("moralis")
        store.delete_secret("moralis")
        return value, await store.get_secret("moralis")

    assert run_async(scenario()) == ("mo-key", None)
    assert storage.keys("secret:") == []


def test_record_from_another_key_is_discarded_and_reported_absent():
    storage = MemoryStore()
    run_async(SecretStore(SecretBox.generate(), storage).put_secret("etherscan", "es-key"))

    fresh = SecretStore(SecretBox.generate(), storage)
    assert run_async(fresh.get_secret("etherscan")) is None
    assert storage.get("secret:etherscan") is None
    assert storage.get("secret:etherscan_iv") is None


def test_legacy_plaintext_record_is_readable():
    storage = MemoryStore({"secret:legacy": "plain-value"})
    store = SecretStore(SecretBox.generate(), storage)
    assert run_async(store.get_secret("legacy")) == "plain-value"


def test_passphrase_key_survives_restart(tmp_path):
    path = tmp_path / "state.json"
    box = SecretBox.from_passphrase("pw", "salt", iterations=1_000)
    run_async(SecretStore(box, JsonFileStore(path)).put_secret("covalent", "cv-key"))

    reopened = SecretStore(SecretBox.from_passphrase("pw", "salt", iterations=1_000), JsonFileStore(path))
    assert run_async(reopened.get_secret("covalent")) == "cv-key"


class FailingIvStore(MemoryStore):
    """Raises on IV writes once ``fail`` is set, like a full disk would."""

    fail = False

    def set(self, key: str, value: str) -> None:
        if self.fail and key.endswith("_iv"):
            raise OSError("No space left on device")
        super().set(key, value)


def test_failed_iv_write_never_leaves_ciphertext_readable_as_plaintext():
    storage = FailingIvStore()
    store = SecretStore(SecretBox.generate(), storage)
    storage.fail = True
    with pytest.raises(OSError):
        run_async(store.put_secret("api_key:moralis", "real-key"))
    assert storage.get("secret:api_key:moralis") is None
    assert run_async(store.get_secret("api_key:moralis")) is None


def test_failed_iv_write_keeps_the_previous_secret():
    storage = FailingIvStore()
    store = SecretStore(SecretBox.generate(), storage)
    run_async(store.put_secret("api_key:moralis", "old-key"))
    storage.fail = True
    with pytest.raises(OSError):
        run_async(store.put_secret("api_key:moralis", "new-key"))
    assert run_async(store.get_secret("api_key:moralis")) == "old-key"
