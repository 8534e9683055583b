# coinvault/services.py
"""
Explicitly constructed service graph. Every container owns its own cache,
rate windows, in-flight map, session timers and secret key; nothing is
shared between containers except the process-wide ``metrics`` registry.
"""
from __future__ import annotations

import logging
import time
from typing import Callable, Dict, List, Mapping, Optional

import httpx

from coinvault.cache import TTLCache
from coinvault.config import Settings
from coinvault.dedupe import RequestDeduplicator
from coinvault.metrics import Metrics, metrics as default_metrics
from coinvault.notices import NoticeBus
from coinvault.providers import PROVIDER_CLASSES, ProviderClient
from coinvault.ratelimit import SlidingWindowRateLimiter, UsageStats
from coinvault.refresh import MarketRefresher
from coinvault.secretbox import EncryptedBlob, SecretBox
from coinvault.secrets_store import SecretStore
from coinvault.session import SessionConfig, SessionMonitor
from coinvault.storage import KeyValueStore, open_store
from coinvault.wallet import SecurityGate, WalletLock

logger = logging.getLogger(__name__)

API_KEY_SECRET = "api_key:"


class ServiceContainer:
    def __init__(
        self,
        settings: Settings,
        *,
        storage: Optional[KeyValueStore] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.time,
        monotonic: Callable[[], float] = time.monotonic,
        metrics: Optional[Metrics] = None,
    ):
        self.settings = settings
        self.storage = storage if storage is not None else open_store(settings.state_path)
        self.metrics = metrics or default_metrics
        self.notices = NoticeBus()
        self.cache = TTLCache(clock=monotonic)
        self.limiter = SlidingWindowRateLimiter(clock=clock, notices=self.notices, store=self.storage)
        self.deduper = RequestDeduplicator()

        if settings.passphrase:
            self.box = SecretBox.from_passphrase(settings.passphrase, settings.salt)
        else:
            self.box = SecretBox.generate()
        self.secrets = SecretStore(self.box, self.storage, clock=clock)

        self.wallet = WalletLock(self.storage, self.notices)
        self.session = SessionMonitor(
            SessionConfig(
                timeout_minutes=settings.session_timeout_minutes,
                warning_minutes=settings.session_warning_minutes,
            ),
            on_timeout=self._on_session_timeout,
            notices=self.notices,
            storage=self.storage,
            clock=monotonic,
        )
        self.gate = SecurityGate(self.session, self.wallet, self.notices)

        keys = settings.api_keys()
        self.providers: Dict[str, ProviderClient] = {}
        for cls in PROVIDER_CLASSES:
            self.providers[cls.name] = cls(
                keys.get(cls.name),
                cache=self.cache,
                limiter=self.limiter,
                deduper=self.deduper,
                snapshots=self.storage,
                transport=transport,
                timeout=settings.http_timeout_seconds,
                retry_attempts=settings.retry_attempts,
                retry_delay=settings.retry_delay_seconds,
                snapshot_limit=settings.snapshot_limit,
                metrics=self.metrics,
            )
        self.refresher = MarketRefresher(
            self.providers["coinranking"],
            settings.market_refresh_minutes * 60,
            metrics=self.metrics,
        )
        self._initialized = False

    # ----------------------------- lifecycle -----------------------------

    async def initialize(self) -> None:
        if self._initialized:
            return
        self.limiter.load()
        await self._restore_api_keys()
        self.session.start()
        self.refresher.start()
        self._initialized = True
        logger.info("services initialized (%d providers)", len(self.providers))

    async def cleanup(self) -> None:
        await self.refresher.stop()
        await self.session.stop()
        await self.cache.clear()
        self.limiter.prune()
        self.limiter.save()
        self._initialized = False

    # ----------------------------- collaborator API -----------------------------

    def provider(self, name: str) -> ProviderClient:
        return self.providers[name]

    def update_api_keys(self, keys: Mapping[str, Optional[str]]) -> None:
        for name, key in keys.items():
            if name not in self.providers:
                raise KeyError(f"unknown provider {name!r}")
            self.providers[name].set_api_key(key)

    async def store_api_key(self, name: str, key: Optional[str]) -> None:
        """Set a provider key at runtime and keep it, encrypted, for the next start."""
        client = self.providers[name]
        if key:
            await self.secrets.put_secret(API_KEY_SECRET + name, key)
        else:
            self.secrets.delete_secret(API_KEY_SECRET + name)
        client.set_api_key(key)

    async def _restore_api_keys(self) -> None:
        for name, client in self.providers.items():
            if client.api_key:
                continue
            key = await self.secrets.get_secret(API_KEY_SECRET + name)
            if key:
                client.set_api_key(key)
                logger.info("restored stored %s key", name)

    def get_usage_stats(self, provider: Optional[str] = None) -> Dict[str, UsageStats]:
        names: List[str] = [provider] if provider else list(self.providers)
        return {name: self.providers[name].usage() for name in names}

    def reset_quota_warning(self, provider: str) -> None:
        self.providers[provider].reset_quota_warning()

    def record_activity(self) -> bool:
        self.session.poll()
        return self.session.touch()

    def lock_session(self) -> None:
        """Explicit lock; like a timeout it drops the stored session tokens."""
        self.session.lock()
        self.secrets.clear_tokens()

    def pause_session(self) -> None:
        self.session.pause()

    def resume_session(self) -> None:
        self.session.resume()

    def lock_wallet(self) -> None:
        self.wallet.lock()

    def unlock_wallet(self) -> None:
        self.wallet.unlock()

    def is_wallet_locked(self) -> bool:
        return self.wallet.is_locked()

    async def encrypt(self, text: str) -> EncryptedBlob:
        return await self.box.encrypt(text)

    async def decrypt(self, blob: EncryptedBlob) -> str:
        return await self.box.decrypt(blob)

    def _on_session_timeout(self) -> None:
        self.secrets.clear_tokens()
        self.wallet.lock()
