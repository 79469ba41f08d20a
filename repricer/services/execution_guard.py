"""
Execution guard: cooldown, minimum-change and history de-duplication.
"""
import threading
import time
from decimal import Decimal
from typing import Callable, Hashable, Optional

import structlog

from repricer.core.config import get_settings

logger = structlog.get_logger()

Clock = Callable[[], float]


class ExpiringKeyStore:
    """
    Key -> timestamp map whose entries expire after ``ttl_seconds``.

    Expired entries are purged lazily on access. Safe to share between
    tasks and threads of one process.
    """

    def __init__(self, ttl_seconds: float, clock: Clock = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[Hashable, float] = {}
        self._lock = threading.Lock()

    def _purge(self, now: float) -> None:
        expired = [k for k, ts in self._entries.items() if now - ts >= self.ttl_seconds]
        for key in expired:
            del self._entries[key]

    def contains(self, key: Hashable) -> bool:
        with self._lock:
            now = self._clock()
            self._purge(now)
            return key in self._entries

    def touch(self, key: Hashable) -> None:
        with self._lock:
            self._entries[key] = self._clock()

    def add_if_absent(self, key: Hashable) -> bool:
        """Insert ``key`` unless a live entry exists. Returns True if inserted."""
        with self._lock:
            now = self._clock()
            self._purge(now)
            if key in self._entries:
                return False
            self._entries[key] = now
            return True

    def discard(self, key: Hashable) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            self._purge(self._clock())
            return len(self._entries)


class ExecutionGuard:
    """
    Decides whether a recomputed price is worth pushing.

    - per-item cooldown: an item claimed within ``cooldown_seconds`` is
      skipped entirely, which absorbs overlapping manual and scheduled
      triggers
    - minimum change: deltas below ``min_delta`` are not applied
    - history de-dup: the same ``(item_id, new_price)`` is recorded at most
      once per ``dedupe_seconds``
    """

    def __init__(
        self,
        cooldown_seconds: float = 60.0,
        dedupe_seconds: float = 120.0,
        min_delta: Decimal = Decimal("0.01"),
        clock: Clock = time.monotonic,
    ):
        self.min_delta = min_delta
        self._cooldowns = ExpiringKeyStore(cooldown_seconds, clock)
        self._recent_records = ExpiringKeyStore(dedupe_seconds, clock)

    def try_acquire(self, item_id: str) -> bool:
        """Claim the item for one execution. False while it is cooling down."""
        acquired = self._cooldowns.add_if_absent(item_id)
        if not acquired:
            logger.info("Item in cooldown, skipping execution", item_id=item_id)
        return acquired

    def in_cooldown(self, item_id: str) -> bool:
        return self._cooldowns.contains(item_id)

    def release(self, item_id: str) -> None:
        """Drop an item's cooldown early."""
        self._cooldowns.discard(item_id)

    def should_apply(
        self,
        item_id: str,
        old_price: Decimal,
        new_price: Decimal
    ) -> bool:
        """True when the price moved by at least ``min_delta``."""
        delta = new_price - old_price
        if abs(delta) < self.min_delta:
            logger.debug(
                "Price change below threshold",
                item_id=item_id,
                old_price=str(old_price),
                new_price=str(new_price),
            )
            return False
        return True

    @staticmethod
    def _record_key(item_id: str, new_price: Decimal) -> tuple[str, Decimal]:
        return item_id, Decimal(new_price).normalize()

    def should_record(self, item_id: str, new_price: Decimal) -> bool:
        """True unless the same outcome was recorded within the de-dup window."""
        return not self._recent_records.contains(self._record_key(item_id, new_price))

    def mark_recorded(self, item_id: str, new_price: Decimal) -> None:
        self._recent_records.touch(self._record_key(item_id, new_price))


_guard: Optional[ExecutionGuard] = None


def get_execution_guard() -> ExecutionGuard:
    """Process-wide guard built from settings."""
    global _guard
    if _guard is None:
        settings = get_settings()
        _guard = ExecutionGuard(
            cooldown_seconds=settings.cooldown_seconds,
            dedupe_seconds=settings.history_dedupe_seconds,
            min_delta=settings.min_price_delta,
        )
    return _guard
