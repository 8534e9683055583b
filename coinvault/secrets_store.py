# coinvault/secrets_store.py
from __future__ import annotations

import logging
import time
from typing import Callable, Dict, Optional

from pydantic import BaseModel, ValidationError

from coinvault.errors import DecryptionFailure
from coinvault.secretbox import EncryptedBlob, SecretBox
from coinvault.security_utils import generate_secure_token
from coinvault.storage import KeyValueStore

logger = logging.getLogger(__name__)

ACCESS_TOKEN_KEY = "access_token"
REFRESH_TOKEN_KEY = "refresh_token"
SECRET_PREFIX = "secret:"
IV_SUFFIX = "_iv"
EXPIRY_BUFFER_SECONDS = 30
ACCESS_TOKEN_LIFETIME = 3600


class JwtToken(BaseModel):
    token: str
    expires_at: int  # unix seconds


class TokenPair(BaseModel):
    access_token: JwtToken
    refresh_token: JwtToken


class SecretStore:
    """
    Encrypted records in the key-value store, ciphertext and IV under paired
    keys (``name`` / ``name_iv``).

    A record that cannot be decrypted (key from an earlier session, corrupted
    bytes) is deleted and reported as absent, so the caller re-provisions it.
    """

    def __init__(self, box: SecretBox, storage: KeyValueStore,
                 clock: Callable[[], float] = time.time):
        self.box = box
        self.storage = storage
        self._clock = clock

    # ----------------------------- raw records -----------------------------

    async def _write(self, key: str, plaintext: str) -> None:
        blob = await self.box.encrypt(plaintext)
        # IV first, so a ciphertext is never stored without its IV
        self.storage.set(key + IV_SUFFIX, blob.iv)
        self.storage.set(key, blob.ciphertext)

    async def _read(self, key: str) -> Optional[str]:
        ciphertext = self.storage.get(key)
        if ciphertext is None:
            return None
        iv = self.storage.get(key + IV_SUFFIX) or ""
        blob = EncryptedBlob(ciphertext=ciphertext, iv=iv, is_encrypted=bool(iv))
        try:
            return await self.box.decrypt(blob)
        except DecryptionFailure as exc:
            logger.warning("discarding unreadable secret %r: %s", key, exc)
            self._remove(key)
            return None

    def _remove(self, key: str) -> None:
        self.storage.delete(key)
        self.storage.delete(key + IV_SUFFIX)

    # ----------------------------- named secrets -----------------------------

    async def put_secret(self, name: str, value: str) -> None:
        await self._write(SECRET_PREFIX + name, value)

    async def get_secret(self, name: str) -> Optional[str]:
        return await self._read(SECRET_PREFIX + name)

    def delete_secret(self, name: str) -> None:
        self._remove(SECRET_PREFIX + name)

    # ----------------------------- tokens -----------------------------

    async def store_tokens(self, tokens: TokenPair) -> None:
        await self._write(ACCESS_TOKEN_KEY, tokens.access_token.model_dump_json())
        await self._write(REFRESH_TOKEN_KEY, tokens.refresh_token.model_dump_json())

    async def get_access_token(self) -> Optional[JwtToken]:
        return await self._token(ACCESS_TOKEN_KEY)

    async def get_refresh_token(self) -> Optional[JwtToken]:
        return await self._token(REFRESH_TOKEN_KEY)

    async def _token(self, key: str) -> Optional[JwtToken]:
        raw = await self._read(key)
        if raw is None:
            return None
        try:
            return JwtToken.model_validate_json(raw)
        except ValidationError:
            logger.warning("stored %s is not a token record; clearing it", key)
            self._remove(key)
            return None

    def has_tokens(self) -> bool:
        return self.storage.get(ACCESS_TOKEN_KEY) is not None

    def clear_tokens(self) -> None:
        self._remove(ACCESS_TOKEN_KEY)
        self._remove(REFRESH_TOKEN_KEY)

    def is_token_expired(self, token: Optional[JwtToken]) -> bool:
        if token is None:
            return True
        return token.expires_at <= int(self._clock()) + EXPIRY_BUFFER_SECONDS

    async def refresh_access_token(self) -> Optional[JwtToken]:
        """
        Mint a new access token while the refresh token is still live. A missing
        or expired refresh token clears both records (the user signs in again).
        """
        refresh = await self.get_refresh_token()
        if refresh is None or self.is_token_expired(refresh):
            logger.info("refresh token missing or expired; clearing tokens")
            self.clear_tokens()
            return None
        access = JwtToken(
            token=f"access_token_{generate_secure_token(16)}",
            expires_at=int(self._clock()) + ACCESS_TOKEN_LIFETIME,
        )
        await self.store_tokens(TokenPair(access_token=access, refresh_token=refresh))
        return access

    async def auth_headers(self) -> Dict[str, str]:
        token = await self.get_access_token()
        if self.is_token_expired(token):
            token = await self.refresh_access_token()
        if token is None:
            return {}
        return {"Authorization": f"Bearer {token.token}"}
