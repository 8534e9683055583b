# coinvault/refresh.py
"""
Background market refresh.

Every ``interval_seconds`` the top coins and the global stats are fetched
past the cache, which also renews their snapshots. A round is skipped while
the provider is close to its quota: at 80 % of the minute limit or 90 % of
the monthly limit. ``start()`` runs the loop as a task on the current event
loop and ``stop()`` disposes of it.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

from coinvault.errors import ProviderError
from coinvault.metrics import Metrics, metrics as default_metrics
from coinvault.providers.coinranking import CoinrankingClient

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 100
MINUTE_HEADROOM = 0.8
MONTH_HEADROOM = 0.9


class MarketRefresher:
    def __init__(
        self,
        client: CoinrankingClient,
        interval_seconds: float = 300.0,
        *,
        limit: int = DEFAULT_LIMIT,
        metrics: Optional[Metrics] = None,
    ):
        self.client = client
        self.interval_seconds = interval_seconds
        self.limit = limit
        self.metrics = metrics or default_metrics
        self._task: Optional[asyncio.Task] = None

    def has_headroom(self) -> bool:
        usage = self.client.usage()
        minute = usage.limits.get("minute")
        month = usage.limits.get("month")
        if minute is not None and usage.last_minute >= minute * MINUTE_HEADROOM:
            return False
        if month is not None and usage.last_month >= month * MONTH_HEADROOM:
            return False
        return True

    async def refresh_once(self) -> bool:
        """One refresh round. Returns False when it was skipped or failed."""
        if not self.client.api_key:
            logger.debug("market refresh skipped: %s key not set", self.client.name)
            return False
        if not self.has_headroom():
            logger.info("market refresh skipped: %s is close to its rate limits", self.client.name)
            self.metrics.inc("refresh.market.skipped")
            return False
        try:
            await asyncio.gather(
                self.client.get_coins(limit=self.limit, fresh=True),
                self.client.get_global_stats(fresh=True),
            )
        except ProviderError as exc:
            logger.warning("market refresh failed: %s", exc)
            self.metrics.inc("refresh.market.failed")
            return False
        self.metrics.inc("refresh.market.ok")
        return True

    # ----------------------------- lifecycle -----------------------------

    def start(self) -> None:
        if self.interval_seconds <= 0 or self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name="market-refresh")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            await self.refresh_once()
