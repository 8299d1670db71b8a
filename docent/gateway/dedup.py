"""
Deduplication Guard

Chat platforms retry webhooks and users double-send. The guard keeps at
most one in-flight request per (user, query) fingerprint and suppresses
repeats that arrive shortly after one completes.

Two tables, both owned by the guard:
- processing: key -> entry, for requests currently being answered
- completed: fingerprint -> completion time, kept for ``ttl_seconds``

Check and insert happen under one lock, with no awaits in between, so
the guard holds on a threaded server too. A periodic sweep expires
completed entries and force-removes processing entries that outlived
``processing_timeout_seconds`` (a request that never reported back).
"""

import asyncio
import logging
import threading
import time
from collections import OrderedDict
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Callable, Dict, Optional, Set, Tuple

from ..common.config import DedupConfig

logger = logging.getLogger("docent.gateway.dedup")

FINGERPRINT_QUERY_CHARS = 100

Fingerprint = Tuple[str, str]


class DedupReason(str, Enum):
    ALREADY_PROCESSING = "already_processing"
    RECENTLY_PROCESSED = "recently_processed"


@dataclass(frozen=True)
class DedupDecision:
    proceed: bool
    reason: Optional[DedupReason] = None
    key: Optional[str] = None  # set by claim() when proceeding


@dataclass
class DedupEntry:
    """A request currently being answered"""
    fingerprint: Fingerprint
    created_at: float
    handle: Any = None


def fingerprint(user_id: str, normalized_query: str) -> Fingerprint:
    return (user_id, normalized_query[:FINGERPRINT_QUERY_CHARS])


class DeduplicationGuard:
    """
    In-process duplicate suppression for one platform.

    Args:
        ttl_seconds: How long a completed fingerprint blocks repeats
        processing_timeout_seconds: Age after which an in-flight entry is
            considered leaked and removed by the sweep
        sweep_interval_seconds: Period of the background sweep task
        sweep_batch_size: Max entries examined per lock hold
        clock: Seconds source, monotonic by default
        name: Label for logs and stats
    """

    def __init__(
        self,
        ttl_seconds: float = 3.0,
        processing_timeout_seconds: float = 30.0,
        sweep_interval_seconds: float = 30.0,
        sweep_batch_size: int = 500,
        clock: Callable[[], float] = time.monotonic,
        name: str = "default",
    ):
        self.ttl_seconds = ttl_seconds
        self.processing_timeout_seconds = processing_timeout_seconds
        self.sweep_interval_seconds = sweep_interval_seconds
        self.sweep_batch_size = max(1, sweep_batch_size)
        self.name = name
        self._clock = clock
        self._lock = threading.Lock()
        # insertion order == age order, so sweeps only look at the front
        self._processing: "OrderedDict[str, DedupEntry]" = OrderedDict()
        self._in_flight: Dict[Fingerprint, Set[str]] = {}
        self._completed: "OrderedDict[Fingerprint, float]" = OrderedDict()
        self._sweep_task: Optional[asyncio.Task] = None
        self._suppressed = 0
        self._leaked = 0

    @classmethod
    def from_config(cls, config: DedupConfig, platform: str, **kwargs) -> "DeduplicationGuard":
        ttl = config.teams_ttl_seconds if platform == "teams" else config.slack_ttl_seconds
        return cls(
            ttl_seconds=ttl,
            processing_timeout_seconds=config.processing_timeout_seconds,
            sweep_interval_seconds=config.sweep_interval_seconds,
            sweep_batch_size=config.sweep_batch_size,
            name=platform,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Check / claim / complete
    # ------------------------------------------------------------------

    def _check_locked(self, fp: Fingerprint, now: float) -> DedupDecision:
        if self._in_flight.get(fp):
            return DedupDecision(proceed=False, reason=DedupReason.ALREADY_PROCESSING)
        completed_at = self._completed.get(fp)
        if completed_at is not None and now - completed_at < self.ttl_seconds:
            return DedupDecision(proceed=False, reason=DedupReason.RECENTLY_PROCESSED)
        return DedupDecision(proceed=True)

    def _insert_locked(
        self, fp: Fingerprint, event_type: str, event_id: str, now: float, handle: Any
    ) -> str:
        key = f"{fp[0]}|{fp[1]}|{event_type}|{event_id}|{int(now * 1000)}"
        # same event id in the same millisecond: keep keys unique
        suffix = 1
        base = key
        while key in self._processing:
            key = f"{base}#{suffix}"
            suffix += 1
        self._processing[key] = DedupEntry(
            fingerprint=fp, created_at=now, handle=handle
        )
        self._in_flight.setdefault(fp, set()).add(key)
        return key

    def should_process(
        self, user_id: str, normalized_query: str, event_type: str, event_id: str
    ) -> DedupDecision:
        """
        Read-only check. Event type and id are not part of the fingerprint.

        Pair with mark_processing() only from a single-threaded caller;
        claim() does both atomically.
        """
        fp = fingerprint(user_id, normalized_query)
        with self._lock:
            decision = self._check_locked(fp, self._clock())
        if not decision.proceed:
            logger.info(
                "[%s] Skipping duplicate from %s (%s, event %s)",
                self.name, user_id, decision.reason.value, event_id,
            )
        return decision

    def mark_processing(
        self,
        user_id: str,
        normalized_query: str,
        event_type: str,
        event_id: str,
        handle: Any = None,
    ) -> str:
        fp = fingerprint(user_id, normalized_query)
        with self._lock:
            return self._insert_locked(fp, event_type, event_id, self._clock(), handle)

    def claim(
        self,
        user_id: str,
        normalized_query: str,
        event_type: str,
        event_id: str,
        handle: Any = None,
    ) -> DedupDecision:
        """Check and insert as one atomic step. The returned key is set when proceeding."""
        fp = fingerprint(user_id, normalized_query)
        with self._lock:
            now = self._clock()
            decision = self._check_locked(fp, now)
            if decision.proceed:
                key = self._insert_locked(fp, event_type, event_id, now, handle)
                decision = DedupDecision(proceed=True, key=key)
            else:
                self._suppressed += 1
        if not decision.proceed:
            logger.info(
                "[%s] Skipping duplicate from %s (%s, event %s)",
                self.name, user_id, decision.reason.value, event_id,
            )
        return decision

    def mark_completed(self, key: str, user_id: str, normalized_query: str) -> None:
        """Move a fingerprint from processing to completed. Call on success and on failure."""
        fp = fingerprint(user_id, normalized_query)
        with self._lock:
            entry = self._processing.pop(key, None)
            if entry is not None:
                keys = self._in_flight.get(entry.fingerprint)
                if keys is not None:
                    keys.discard(key)
                    if not keys:
                        del self._in_flight[entry.fingerprint]
            self._completed.pop(fp, None)
            self._completed[fp] = self._clock()

    @asynccontextmanager
    async def track(
        self,
        user_id: str,
        normalized_query: str,
        event_type: str,
        event_id: str,
        handle: Any = None,
    ) -> AsyncIterator[DedupDecision]:
        """
        Claim, run the body, then always mark completed.

            async with guard.track(user, query, "app_mention", event_id) as decision:
                if decision.proceed:
                    await answer()
        """
        decision = self.claim(user_id, normalized_query, event_type, event_id, handle)
        try:
            yield decision
        finally:
            if decision.proceed:
                self.mark_completed(decision.key, user_id, normalized_query)

    # ------------------------------------------------------------------
    # Sweep
    # ------------------------------------------------------------------

    def _sweep_batch(self) -> Tuple[int, bool]:
        """Examine at most sweep_batch_size entries. Returns (removed, more_work)."""
        removed = 0
        examined = 0
        with self._lock:
            now = self._clock()

            while self._completed and examined < self.sweep_batch_size:
                fp, completed_at = next(iter(self._completed.items()))
                examined += 1
                if now - completed_at <= self.ttl_seconds:
                    break
                del self._completed[fp]
                removed += 1

            while self._processing and examined < self.sweep_batch_size:
                key, entry = next(iter(self._processing.items()))
                examined += 1
                if now - entry.created_at <= self.processing_timeout_seconds:
                    break
                del self._processing[key]
                keys = self._in_flight.get(entry.fingerprint)
                if keys is not None:
                    keys.discard(key)
                    if not keys:
                        del self._in_flight[entry.fingerprint]
                self._leaked += 1
                removed += 1
                logger.warning(
                    "[%s] Removed leaked processing entry %s (age %.1fs)",
                    self.name, key, now - entry.created_at,
                )

        return removed, examined >= self.sweep_batch_size

    def sweep(self) -> int:
        """Expire old entries, releasing the lock between batches."""
        total = 0
        while True:
            removed, more = self._sweep_batch()
            total += removed
            if not more or removed == 0:
                break
        if total:
            logger.debug("[%s] Sweep removed %d entries", self.name, total)
        return total

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval_seconds)
            while True:
                removed, more = self._sweep_batch()
                if not more or removed == 0:
                    break
                await asyncio.sleep(0)

    def start(self) -> None:
        """Start the recurring sweep on the running event loop."""
        if self._sweep_task is not None and not self._sweep_task.done():
            return
        self._sweep_task = asyncio.get_running_loop().create_task(self._sweep_loop())
        logger.debug("[%s] Sweep task started (every %.0fs)", self.name, self.sweep_interval_seconds)

    async def stop(self) -> None:
        task, self._sweep_task = self._sweep_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    @property
    def running(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "name": self.name,
                "processing": len(self._processing),
                "completed": len(self._completed),
                "suppressed": self._suppressed,
                "leaked": self._leaked,
                "ttl_seconds": self.ttl_seconds,
            }
