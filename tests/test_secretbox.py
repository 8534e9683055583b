# tests/test_secretbox.py
import asyncio

import pytest

from coinvault.errors import DecryptionFailure
from coinvault.secretbox import EncryptedBlob, SecretBox
from coinvault.security_utils import generate_secure_token, sanitize_input


def run_async(coro):
    return asyncio.run(coro)


@pytest.mark.parametrize("text", ["", "sk_live_123", '{"a": [1, 2], "b": "c,d"}', "ключ 🔑"])
def test_encrypt_then_decrypt_returns_original(text):
    box = SecretBox.generate()

    async def scenario():
        blob = await box.encrypt(text)
        assert blob.is_encrypted
        assert blob.iv
        return await box.decrypt(blob)

    assert run_async(scenario()) == text


def test_ciphertext_differs_per_call():
    box = SecretBox.generate()
    a = box.encrypt_sync("same")
    b = box.encrypt_sync("same")
    assert a.iv != b.iv
    assert a.ciphertext != b.ciphertext


def test_wrong_key_raises_decryption_failure():
    blob = SecretBox.generate().encrypt_sync("secret")
    with pytest.raises(DecryptionFailure):
        SecretBox.generate().decrypt_sync(blob)


def test_tampered_ciphertext_raises():
    box = SecretBox.generate()
    blob = box.encrypt_sync("secret")
    tampered = blob.model_copy(update={"ciphertext": "AAAA" + blob.ciphertext[4:]})
    with pytest.raises(DecryptionFailure):
        box.decrypt_sync(tampered)


def test_missing_or_garbage_iv_raises():
    box = SecretBox.generate()
    blob = box.encrypt_sync("secret")
    with pytest.raises(DecryptionFailure):
        box.decrypt_sync(blob.model_copy(update={"iv": ""}))
    with pytest.raises(DecryptionFailure):
        box.decrypt_sync(blob.model_copy(update={"iv": "not base64!"}))


def test_legacy_plaintext_blob_is_returned_as_is():
    box = SecretBox.generate()
    assert box.decrypt_sync(EncryptedBlob(ciphertext="old-token", is_encrypted=False)) == "old-token"


def test_passphrase_derivation_is_deterministic():
    a = SecretBox.from_passphrase("correct horse", "salt", iterations=1_000)
    b = SecretBox.from_passphrase("correct horse", "salt", iterations=1_000)
    other = SecretBox.from_passphrase("correct horse", "pepper", iterations=1_000)
    blob = a.encrypt_sync("api-key")
    assert b.decrypt_sync(blob) == "api-key"
    with pytest.raises(DecryptionFailure):
        other.decrypt_sync(blob)


def test_key_length_and_passphrase_are_checked():
    with pytest.raises(ValueError):
        SecretBox(b"short")
    with pytest.raises(ValueError):
        SecretBox.from_passphrase("", "salt")


def test_blob_json_round_trip_and_bad_json():
    blob = SecretBox.generate().encrypt_sync("x")
    assert EncryptedBlob.from_json(blob.to_json()) == blob
    with pytest.raises(DecryptionFailure):
        EncryptedBlob.from_json('{"iv": "abc"}')


def test_secure_token_and_sanitize():
    token = generate_secure_token(16)
    assert len(token) == 32
    int(token, 16)
    assert generate_secure_token() != generate_secure_token()
    assert sanitize_input('<script>alert("x")</script>') == "&lt;script&gt;alert(&quot;x&quot;)&lt;/script&gt;"
