# coinvault/wallet.py
from __future__ import annotations

import logging
from typing import Awaitable, Callable, List, Optional, TypeVar

from coinvault.errors import AccessDenied
from coinvault.notices import Notice, NoticeBus
from coinvault.session import SessionMonitor
from coinvault.storage import KeyValueStore

logger = logging.getLogger(__name__)

WALLET_LOCKED_KEY = "wallet_locked"

T = TypeVar("T")
LockListener = Callable[[bool], None]


class WalletLock:
    """Persisted, explicitly toggled wallet lock; independent of the idle session."""

    def __init__(self, storage: KeyValueStore, notices: Optional[NoticeBus] = None):
        self._storage = storage
        self._notices = notices
        self._listeners: List[LockListener] = []

    def is_locked(self) -> bool:
        return self._storage.get(WALLET_LOCKED_KEY) == "true"

    def lock(self) -> None:
        self._storage.set(WALLET_LOCKED_KEY, "true")
        self._changed(True)
        if self._notices is not None:
            self._notices.notify("Wallet Locked", "Your wallet has been locked for security.")

    def unlock(self) -> None:
        self._storage.delete(WALLET_LOCKED_KEY)
        self._changed(False)
        if self._notices is not None:
            self._notices.notify("Wallet Unlocked", "Your wallet is unlocked.")

    def on_change(self, listener: LockListener) -> None:
        self._listeners.append(listener)

    def _changed(self, locked: bool) -> None:
        logger.info("wallet %s", "locked" if locked else "unlocked")
        for listener in list(self._listeners):
            try:
                listener(locked)
            except Exception:
                logger.exception("wallet lock listener failed")


class SecurityGate:
    """
    Wallet-sensitive operations (connect, transfer, balance and NFT reads)
    need both: session not LOCKED, wallet not explicitly locked.
    """

    def __init__(self, session: SessionMonitor, wallet: WalletLock,
                 notices: Optional[NoticeBus] = None):
        self.session = session
        self.wallet = wallet
        self._notices = notices

    def denial(self, action: str) -> Optional[Notice]:
        self.session.poll()
        if self.session.is_locked:
            return Notice(
                title="Session Locked",
                description=f"Unlock your session to {action}.",
                variant="destructive",
            )
        if self.wallet.is_locked():
            return Notice(
                title="Wallet Locked",
                description=f"Your wallet is locked. Unlock it to {action}.",
                variant="destructive",
            )
        return None

    def ensure_unlocked(self, action: str) -> None:
        notice = self.denial(action)
        if notice is None:
            return
        if self._notices is not None:
            self._notices.publish(notice)
        raise AccessDenied(notice)

    async def guarded(self, action: str, factory: Callable[[], Awaitable[T]]) -> T:
        self.ensure_unlocked(action)
        return await factory()
