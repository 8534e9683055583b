# coinvault/providers/base.py
from __future__ import annotations

import json
import logging
import time
from collections import OrderedDict
from decimal import Decimal
from typing import Any, Callable, Dict, Optional, Sequence, Tuple
from urllib.parse import urlencode

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_incrementing

from coinvault.cache import TTLCache
from coinvault.dedupe import RequestDeduplicator
from coinvault.errors import AuthMissing, MalformedResponse, QuotaExceeded, TransientNetworkFailure
from coinvault.metrics import Metrics, metrics as default_metrics
from coinvault.ratelimit import RateLimit, SlidingWindowRateLimiter, UsageStats
from coinvault.storage import KeyValueStore

logger = logging.getLogger(__name__)

Extractor = Callable[[Any], Any]
SNAPSHOT_PREFIX = "snapshot:"
SNAPSHOT_LIMIT = 50  # per provider


def _identity(payload: Any) -> Any:
    return payload


def decode_json(body: str) -> Any:
    # floats stay Decimal from the wire on
    return json.loads(body, parse_float=Decimal)


class ProviderClient:
    """
    Shared request pipeline for one external API:

      canonical key -> TTL cache -> deduplicator -> rate limiter -> GET
      (retry with linearly increasing delay) -> shape check -> cache + snapshot

    On a final QuotaExceeded/TransientNetworkFailure the last good response
    (snapshot) is served instead when one exists. AuthMissing fails fast.
    Subclasses set the class attributes and add the auth they need.
    """

    name: str = ""
    base_url: str = ""
    limits: Sequence[RateLimit] = ()
    requires_key: bool = True
    default_ttl: float = 300.0

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        cache: TTLCache,
        limiter: SlidingWindowRateLimiter,
        deduper: RequestDeduplicator,
        snapshots: Optional[KeyValueStore] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0,
        retry_attempts: int = 3,
        retry_delay: float = 1.0,
        snapshot_limit: int = SNAPSHOT_LIMIT,
        metrics: Optional[Metrics] = None,
    ):
        self.api_key = api_key or ""
        self.cache = cache
        self.limiter = limiter
        self.deduper = deduper
        self.snapshots = snapshots
        self.timeout = timeout
        self.retry_attempts = max(1, retry_attempts)
        self.retry_delay = retry_delay
        self.snapshot_limit = max(1, snapshot_limit)
        self.metrics = metrics or default_metrics
        self._transport = transport
        self._snapshot_order: Optional["OrderedDict[str, None]"] = None

    # ----------------------------- configuration -----------------------------

    def set_api_key(self, api_key: Optional[str]) -> None:
        self.api_key = api_key or ""

    def auth_headers(self) -> Dict[str, str]:
        return {}

    def auth_params(self) -> Dict[str, str]:
        return {}

    def usage(self) -> UsageStats:
        return self.limiter.usage(self.name, self.limits)

    def reset_quota_warning(self) -> None:
        self.limiter.reset_quota_warning(self.name)

    # ----------------------------- pipeline -----------------------------

    def cache_key(self, url: str, params: Dict[str, Any]) -> str:
        query = urlencode(sorted((k, str(v)) for k, v in params.items()))
        return f"{self.name}:{url}?{query}"

    async def request(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        *,
        ttl: Optional[float] = None,
        extract: Extractor = _identity,
        use_cache: bool = True,
        base_url: Optional[str] = None,
    ) -> Any:
        url = (base_url or self.base_url) + endpoint
        params = {k: v for k, v in (params or {}).items() if v is not None}
        key = self.cache_key(url, params)

        if use_cache:
            cached = await self.cache.get(key)
            if cached is not None:
                self.metrics.inc(f"cache.hit.{self.name}")
                logger.debug("cache hit %s", key)
                return cached
            self.metrics.inc(f"cache.miss.{self.name}")

        if self.deduper.in_flight(key):
            self.metrics.inc(f"dedupe.shared.{self.name}")
        return await self.deduper.dedupe(key, lambda: self._load(key, url, params, ttl, extract))

    async def _load(self, key: str, url: str, params: Dict[str, Any],
                    ttl: Optional[float], extract: Extractor) -> Any:
        if self.requires_key and not self.api_key:
            raise AuthMissing(self.name)

        t0 = time.perf_counter()
        try:
            body, result = await self._fetch(url, params, extract)
        except (QuotaExceeded, TransientNetworkFailure) as exc:
            stale = self._stale(key, extract)
            if stale is not None:
                self.metrics.inc(f"provider.{self.name}.stale")
                logger.warning("%s failed (%s); serving last good response for %s", self.name, exc, key)
                return stale
            logger.error("%s request failed: %s", self.name, exc)
            raise
        finally:
            self.metrics.observe_ms(f"provider.{self.name}.ms", (time.perf_counter() - t0) * 1000)

        await self.cache.set(key, result, self.default_ttl if ttl is None else ttl)
        self._remember(key, body)
        return result

    async def _fetch(self, url: str, params: Dict[str, Any], extract: Extractor) -> Tuple[str, Any]:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_incrementing(start=self.retry_delay, increment=self.retry_delay),
            retry=retry_if_exception_type(TransientNetworkFailure),
            before_sleep=self._before_sleep,
            reraise=True,
        )
        outcome: Tuple[str, Any] = ("", None)
        async for attempt in retrying:
            with attempt:
                outcome = await self._attempt(url, params, extract)
        return outcome

    def _before_sleep(self, retry_state) -> None:
        self.metrics.inc(f"provider.{self.name}.retry")
        logger.debug("%s attempt %d failed, retrying: %s", self.name,
                     retry_state.attempt_number, retry_state.outcome.exception())

    async def _attempt(self, url: str, params: Dict[str, Any], extract: Extractor) -> Tuple[str, Any]:
        violated = self.limiter.try_acquire(self.name, self.limits)
        if violated is not None:
            self.metrics.inc(f"quota.rejected.{self.name}")
            raise QuotaExceeded(self.name, violated.name, self.limiter.retry_after(self.name, violated))

        headers = {"Accept": "application/json", **self.auth_headers()}
        query = {**params, **self.auth_params()}
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as c:
                r = await c.get(url, params=query, headers=headers)
        except httpx.HTTPError as exc:
            raise TransientNetworkFailure(self.name, f"{self.name} request failed: {exc.__class__.__name__}") from exc

        if r.status_code == 429:
            raise QuotaExceeded(self.name, "remote", _retry_after(r))
        if not r.is_success:
            raise TransientNetworkFailure(
                self.name, f"{self.name} API error: {r.status_code} {r.reason_phrase}", r.status_code
            )
        content_type = r.headers.get("content-type", "")
        if content_type and "json" not in content_type:
            raise MalformedResponse(self.name, f"{self.name} did not return JSON: {r.text[:100]}", r.status_code)

        body = r.text
        return body, self._parse(body, extract)

    def _parse(self, body: str, extract: Extractor) -> Any:
        try:
            payload = decode_json(body)
        except json.JSONDecodeError as exc:
            raise MalformedResponse(self.name, f"{self.name} returned malformed JSON: {exc}") from exc
        try:
            return extract(payload)
        except (KeyError, TypeError, ValueError) as exc:
            raise MalformedResponse(self.name, f"unexpected {self.name} response: {exc}") from exc

    # ----------------------------- stale-on-error -----------------------------

    def _snapshot_index(self) -> "OrderedDict[str, None]":
        # least recently stored first; records from an earlier run start out oldest
        if self._snapshot_order is None:
            prefix = SNAPSHOT_PREFIX + self.name + ":"
            stored = sorted(k[len(SNAPSHOT_PREFIX):] for k in self.snapshots.keys(prefix))
            self._snapshot_order = OrderedDict.fromkeys(stored)
        return self._snapshot_order

    def _remember(self, key: str, body: str) -> None:
        if self.snapshots is None:
            return
        index = self._snapshot_index()
        try:
            self.snapshots.set(SNAPSHOT_PREFIX + key, body)
            index[key] = None
            index.move_to_end(key)
            while len(index) > self.snapshot_limit:
                oldest, _ = index.popitem(last=False)
                self.snapshots.delete(SNAPSHOT_PREFIX + oldest)
                logger.debug("evicted snapshot %s", oldest)
        except OSError as exc:
            logger.warning("could not persist snapshot for %s: %s", key, exc)

    def _stale(self, key: str, extract: Extractor) -> Any:
        if self.snapshots is None:
            return None
        body = self.snapshots.get(SNAPSHOT_PREFIX + key)
        if not body:
            return None
        try:
            return extract(decode_json(body))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError):
            logger.warning("discarding unreadable snapshot for %s", key)
            self.snapshots.delete(SNAPSHOT_PREFIX + key)
            self._snapshot_index().pop(key, None)
            return None


# ----------------------------- shape helpers -----------------------------

def expect_dict(payload: Any, *keys: str) -> Dict[str, Any]:
    if not isinstance(payload, dict):
        raise TypeError(f"expected object, got {type(payload).__name__}")
    missing = [k for k in keys if k not in payload]
    if missing:
        raise KeyError(f"missing {', '.join(missing)}")
    return payload


def expect_list(payload: Any, field: Optional[str] = None) -> list:
    value = expect_dict(payload, field)[field] if field else payload
    if not isinstance(value, list):
        raise TypeError(f"expected list{' at ' + field if field else ''}, got {type(value).__name__}")
    return value


def _retry_after(r: httpx.Response) -> float:
    try:
        return float(r.headers.get("retry-after", "0"))
    except ValueError:
        return 0.0
