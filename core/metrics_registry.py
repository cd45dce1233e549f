import logging
import threading
import time
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

# One bucket per minute for the trailing hour
ROLLING_WINDOW_BUCKETS = 60
BUCKET_DURATION_SECONDS = 60.0
WINDOW_SECONDS = 3600.0


class WindowMetrics(BaseModel):
    total_requests: int = 0
    successes: int = 0
    failures: int = 0
    endpoint_hits: Dict[str, int] = Field(default_factory=dict)


class MetricsSnapshot(BaseModel):
    """Serializable view of the registry, as returned by GET /metrics."""
    all_time: WindowMetrics
    last_hour: WindowMetrics


def classify_status(status_code: int):
    """Returns (is_success, is_failure); 1xx and 3xx are neither."""
    return 200 <= status_code < 300, 400 <= status_code < 600


class TimeBucket:
    """
    One-minute slice of the rolling window. Buckets are allocated once and
    recycled through reset(); start_time is None until first use.
    """

    __slots__ = ("start_time", "requests", "successes", "failures", "endpoint_hits")

    def __init__(self):
        self.start_time: Optional[float] = None
        self.requests = 0
        self.successes = 0
        self.failures = 0
        self.endpoint_hits: Dict[str, int] = {}

    def reset(self, start_time: float) -> None:
        self.start_time = start_time
        self.requests = 0
        self.successes = 0
        self.failures = 0
        self.endpoint_hits.clear()

    def is_expired(self, now: float) -> bool:
        if self.start_time is None:
            return True
        return now - self.start_time >= BUCKET_DURATION_SECONDS

    def is_within_window(self, now: float, window: float = WINDOW_SECONDS) -> bool:
        if self.start_time is None:
            return False
        return now - self.start_time < window


class MetricsRegistry:
    """
    Process-wide request statistics: all-time counters, all-time hits per
    canonical endpoint, and a rolling one-hour window of minute buckets.

    One instance is created at startup and shared by every request. All
    mutation goes through record(); it is safe to call from any thread or
    task. Locks are held only for in-memory updates.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock

        self._counter_lock = threading.Lock()
        self._total_requests = 0
        self._total_successes = 0
        self._total_failures = 0

        self._hits_lock = threading.Lock()
        self._endpoint_hits: Dict[str, int] = {}

        self._window_lock = threading.Lock()
        self._buckets: List[TimeBucket] = [TimeBucket() for _ in range(ROLLING_WINDOW_BUCKETS)]
        self._current_index = 0

    def record(self, endpoint: str, status_code: int) -> None:
        """
        Record one completed request.

        Args:
            endpoint: Canonical endpoint key (see normalize_path)
            status_code: Final HTTP status sent to the client
        """
        now = self._clock()
        is_success, is_failure = classify_status(status_code)

        with self._counter_lock:
            self._total_requests += 1
            if is_success:
                self._total_successes += 1
            elif is_failure:
                self._total_failures += 1

        with self._hits_lock:
            self._endpoint_hits[endpoint] = self._endpoint_hits.get(endpoint, 0) + 1

        self._update_rolling_window(now, endpoint, is_success, is_failure)

    def _update_rolling_window(self, now: float, endpoint: str, is_success: bool, is_failure: bool) -> None:
        with self._window_lock:
            bucket = self._buckets[self._current_index]
            if bucket.is_expired(now):
                self._current_index = (self._current_index + 1) % ROLLING_WINDOW_BUCKETS
                bucket = self._buckets[self._current_index]
                bucket.reset(now)

            bucket.requests += 1
            if is_success:
                bucket.successes += 1
            if is_failure:
                bucket.failures += 1
            bucket.endpoint_hits[endpoint] = bucket.endpoint_hits.get(endpoint, 0) + 1

    @property
    def total_requests(self) -> int:
        return self._total_requests

    @property
    def total_successes(self) -> int:
        return self._total_successes

    @property
    def total_failures(self) -> int:
        return self._total_failures

    def endpoint_hits(self) -> Dict[str, int]:
        with self._hits_lock:
            return dict(self._endpoint_hits)

    def all_time(self) -> WindowMetrics:
        with self._counter_lock:
            total, successes, failures = self._total_requests, self._total_successes, self._total_failures
        return WindowMetrics(
            total_requests=total,
            successes=successes,
            failures=failures,
            endpoint_hits=self.endpoint_hits(),
        )

    def last_hour(self) -> WindowMetrics:
        """Sum of every bucket started within the trailing hour."""
        now = self._clock()
        result = WindowMetrics()

        with self._window_lock:
            for bucket in self._buckets:
                if not bucket.is_within_window(now):
                    continue
                result.total_requests += bucket.requests
                result.successes += bucket.successes
                result.failures += bucket.failures
                for endpoint, count in bucket.endpoint_hits.items():
                    result.endpoint_hits[endpoint] = result.endpoint_hits.get(endpoint, 0) + count

        return result

    def current_bucket(self) -> TimeBucket:
        """The bucket receiving records right now (read-only use)."""
        return self._buckets[self._current_index]

    def buckets(self) -> List[TimeBucket]:
        return list(self._buckets)

    def snapshot(self) -> MetricsSnapshot:
        # last_hour is read first so its sums never exceed the all-time totals
        last_hour = self.last_hour()
        return MetricsSnapshot(all_time=self.all_time(), last_hour=last_hour)
