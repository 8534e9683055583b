# coinvault/secretbox.py
"""
Symmetric encryption for secrets persisted at rest.

The key is mandatory. Either it is random and lives only in this process
(``SecretBox.generate()``; data written with it is unreadable after the
process exits), or it is derived from a passphrase with PBKDF2
(``SecretBox.from_passphrase``). There is no plaintext downgrade on the
write path.
"""
from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from pydantic import BaseModel, ValidationError

from coinvault.errors import DecryptionFailure, EncryptionFailure

logger = logging.getLogger(__name__)

KEY_BYTES = 32
IV_BYTES = 12
PBKDF2_ITERATIONS = 100_000


class EncryptedBlob(BaseModel):
    ciphertext: str
    iv: str = ""
    is_encrypted: bool = True

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, raw: str) -> "EncryptedBlob":
        try:
            return cls.model_validate_json(raw)
        except ValidationError as exc:
            raise DecryptionFailure(f"not an encrypted blob: {exc.error_count()} error(s)") from exc


class SecretBox:
    def __init__(self, key: bytes):
        if len(key) != KEY_BYTES:
            raise ValueError(f"key must be {KEY_BYTES} bytes")
        self._aead = AESGCM(key)

    @classmethod
    def generate(cls) -> "SecretBox":
        return cls(AESGCM.generate_key(bit_length=KEY_BYTES * 8))

    @classmethod
    def from_passphrase(cls, passphrase: str, salt: str, iterations: int = PBKDF2_ITERATIONS) -> "SecretBox":
        if not passphrase:
            raise ValueError("passphrase must not be empty")
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_BYTES,
            salt=salt.encode("utf-8"),
            iterations=iterations,
        )
        return cls(kdf.derive(passphrase.encode("utf-8")))

    async def encrypt(self, plaintext: str) -> EncryptedBlob:
        return await asyncio.to_thread(self.encrypt_sync, plaintext)

    async def decrypt(self, blob: EncryptedBlob) -> str:
        return await asyncio.to_thread(self.decrypt_sync, blob)

    def encrypt_sync(self, plaintext: str) -> EncryptedBlob:
        iv = os.urandom(IV_BYTES)
        try:
            sealed = self._aead.encrypt(iv, plaintext.encode("utf-8"), None)
        except (OverflowError, UnicodeEncodeError) as exc:
            raise EncryptionFailure(f"encryption failed: {exc.__class__.__name__}") from exc
        return EncryptedBlob(
            ciphertext=base64.b64encode(sealed).decode("ascii"),
            iv=base64.b64encode(iv).decode("ascii"),
            is_encrypted=True,
        )

    def decrypt_sync(self, blob: EncryptedBlob) -> str:
        if not blob.is_encrypted:
            # legacy record written before encryption was mandatory
            logger.warning("reading a plaintext record; re-store it to encrypt it")
            return blob.ciphertext
        if not blob.iv:
            raise DecryptionFailure("encrypted blob has no IV")
        try:
            iv = base64.b64decode(blob.iv, validate=True)
            sealed = base64.b64decode(blob.ciphertext, validate=True)
            return self._aead.decrypt(iv, sealed, None).decode("utf-8")
        except (binascii.Error, InvalidTag, ValueError) as exc:
            raise DecryptionFailure(f"decryption failed: {exc.__class__.__name__}") from exc
