"""Rate-limited work queue driving the rotation reconciler, with its retry policy."""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
import time
from collections import deque
from typing import Callable, Hashable, Optional

logger = logging.getLogger(__name__)

MAX_NUM_OF_REQUEUES = 5
REQUEUE_DELAY = 10.0

BASE_DELAY = 0.005
MAX_DELAY = 1000.0
BUCKET_QPS = 10.0
BUCKET_BURST = 100

Clock = Callable[[], float]


class _ExponentialFailureLimiter:
    """Per-item delay that doubles with every failure, up to a cap."""

    def __init__(self, base: float = BASE_DELAY, cap: float = MAX_DELAY):
        self._base = base
        self._cap = cap
        self._failures: dict[Hashable, int] = {}

    def when(self, key: Hashable) -> float:
        failures = self._failures.get(key, 0)
        self._failures[key] = failures + 1
        try:
            delay = self._base * (2 ** failures)
        except OverflowError:
            return self._cap
        return min(delay, self._cap)

    def num_requeues(self, key: Hashable) -> int:
        return self._failures.get(key, 0)

    def forget(self, key: Hashable) -> None:
        self._failures.pop(key, None)


class _TokenBucketLimiter:
    """Overall rate limit shared by every item."""

    def __init__(self, clock: Clock, rate: float = BUCKET_QPS, burst: int = BUCKET_BURST):
        self._clock = clock
        self._rate = rate
        self._burst = float(burst)
        self._tokens = float(burst)
        self._last = clock()

    def when(self, key: Hashable) -> float:
        now = self._clock()
        elapsed = max(0.0, now - self._last)
        self._tokens = min(self._burst, self._tokens + elapsed * self._rate)
        self._last = now
        self._tokens -= 1.0
        if self._tokens >= 0:
            return 0.0
        return -self._tokens / self._rate


class RateLimitingQueue:
    """A de-duplicating work queue with delayed and rate-limited re-adds.

    An item is never handed out twice at once: re-adding an item that is being
    processed puts it back in line only once ``done`` is called for it.
    """

    def __init__(self, clock: Optional[Clock] = None):
        self._clock: Clock = clock or time.monotonic
        self._lock = threading.Lock()
        self._queue: deque[Hashable] = deque()
        self._dirty: set[Hashable] = set()
        self._processing: set[Hashable] = set()
        self._waiting: list[tuple[float, int, Hashable]] = []
        self._ready_at: dict[Hashable, float] = {}
        self._sequence = itertools.count()
        self._failures = _ExponentialFailureLimiter()
        self._bucket = _TokenBucketLimiter(self._clock)

    def _add_locked(self, key: Hashable) -> None:
        if key in self._dirty:
            return
        self._dirty.add(key)
        if key in self._processing:
            return
        self._queue.append(key)

    def _promote_locked(self) -> None:
        now = self._clock()
        while self._waiting and self._waiting[0][0] <= now:
            ready, _, key = heapq.heappop(self._waiting)
            if self._ready_at.get(key) != ready:
                continue
            del self._ready_at[key]
            self._add_locked(key)

    def add(self, key: Hashable) -> None:
        """Queue an item unless it is already waiting to be processed."""
        with self._lock:
            self._promote_locked()
            self._add_locked(key)

    def add_after(self, key: Hashable, delay: float) -> None:
        """Queue an item once ``delay`` seconds have passed."""
        with self._lock:
            self._promote_locked()
            if delay <= 0:
                self._add_locked(key)
                return
            ready = self._clock() + delay
            current = self._ready_at.get(key)
            if current is not None and current <= ready:
                return
            self._ready_at[key] = ready
            heapq.heappush(self._waiting, (ready, next(self._sequence), key))

    def add_rate_limited(self, key: Hashable) -> None:
        """Queue an item after the delay its failure count and the rate limit call for."""
        with self._lock:
            delay = max(self._failures.when(key), self._bucket.when(key))
        self.add_after(key, delay)

    def get(self) -> Optional[Hashable]:
        """Hand out the next ready item, or None when nothing is ready."""
        with self._lock:
            self._promote_locked()
            if not self._queue:
                return None
            key = self._queue.popleft()
            self._processing.add(key)
            self._dirty.discard(key)
            return key

    def done(self, key: Hashable) -> None:
        """Mark an item as processed; a re-add made meanwhile is queued now."""
        with self._lock:
            self._processing.discard(key)
            if key in self._dirty:
                self._queue.append(key)

    def forget(self, key: Hashable) -> None:
        """Reset the failure count of an item."""
        with self._lock:
            self._failures.forget(key)

    def num_requeues(self, key: Hashable) -> int:
        """How many rate-limited re-adds the item has had since it was last forgotten."""
        with self._lock:
            return self._failures.num_requeues(key)

    def __len__(self) -> int:
        with self._lock:
            self._promote_locked()
            return len(self._queue)


def handle_error(
    queue: RateLimitingQueue,
    error: Optional[BaseException],
    key: Hashable,
    rate_limited: bool,
) -> None:
    """Decide how an item is retried after processing.

    Success forgets the item. A plain failure re-queues it after ten seconds.
    A rate-limited failure is re-queued with backoff until the retry budget is
    spent, after which the item is dropped.
    """
    if error is None:
        queue.forget(key)
        return
    if not rate_limited:
        queue.add_after(key, REQUEUE_DELAY)
        return
    if queue.num_requeues(key) < MAX_NUM_OF_REQUEUES:
        queue.add_rate_limited(key)
        return
    logger.info("retry budget exceeded, dropping from queue (spcps=%s)", key)
    queue.forget(key)