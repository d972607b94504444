from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator

from roc.domain.errors import ConcurrencyError


class WalletLocks:
    """Per-wallet serialization point for balance mutations.

    Locks are always taken in ascending wallet id order, so an operation
    holding several wallets (a transfer) cannot deadlock against another.
    """

    def __init__(self, timeout: float = 10.0):
        self.timeout = float(timeout)
        self._guard = threading.Lock()
        self._locks: dict[int, threading.Lock] = {}

    def _lock_for(self, wallet_id: int) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(wallet_id)
            if lock is None:
                lock = self._locks[wallet_id] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, *wallet_ids: int) -> Iterator[None]:
        acquired: list[threading.Lock] = []
        try:
            for wallet_id in sorted({int(w) for w in wallet_ids}):
                lock = self._lock_for(wallet_id)
                if not lock.acquire(timeout=self.timeout):
                    raise ConcurrencyError(f"Timed out waiting for wallet {wallet_id}.")
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
