# coinvault/errors.py
from __future__ import annotations

from typing import Optional

from coinvault.notices import Notice


class CoinVaultError(Exception):
    """Base for every error raised by the access and security layers."""


class ProviderError(CoinVaultError):
    def __init__(self, provider: str, message: str):
        super().__init__(message)
        self.provider = provider


class QuotaExceeded(ProviderError):
    """A rate or monthly limit was hit. The request was not sent."""

    def __init__(self, provider: str, limit: str, retry_after: float = 0.0):
        super().__init__(provider, f"{provider} rate limit '{limit}' exceeded. Please try again later.")
        self.limit = limit
        self.retry_after = max(0.0, retry_after)


class TransientNetworkFailure(ProviderError):
    """Non-2xx, timeout or unreadable body. Retried with increasing delay."""

    def __init__(self, provider: str, message: str, status_code: Optional[int] = None):
        super().__init__(provider, message)
        self.status_code = status_code


class MalformedResponse(TransientNetworkFailure):
    pass


class AuthMissing(ProviderError):
    def __init__(self, provider: str):
        super().__init__(provider, f"{provider} API key not set. Configure it before first use.")


class SecretStoreError(CoinVaultError):
    pass


class EncryptionFailure(SecretStoreError):
    pass


class DecryptionFailure(SecretStoreError):
    pass


class AccessDenied(CoinVaultError):
    """Session locked or wallet locked; carries the notice to show."""

    def __init__(self, notice: Notice):
        super().__init__(notice.description)
        self.notice = notice
