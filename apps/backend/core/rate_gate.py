"""
Process-wide admission gate for outbound requests.

Every fetch worker calls `acquire()` on the same RateGate before it touches the
network, so the request rate against the site stays under `rate` per second no
matter how many workers are running.
"""
import time
import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class RateGate:
    """
    Token-interval limiter: admissions are spaced at least 1/rate seconds apart.

    The last admission timestamp is the only state. It is replaced only through
    `_compare_and_set`, whose lock covers the compare and the write and nothing
    else. Waiting happens outside the lock; a worker that loses the race simply
    re-reads the timestamp and computes a new wait.
    """

    def __init__(self, rate: float, clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep):
        """
        Args:
            rate: Maximum admissions per second (must be > 0)
            clock: Monotonic clock returning seconds
            sleep: Sleep function (injectable for tests)
        """
        if rate is None or rate <= 0:
            raise ValueError(f"rate must be positive, got {rate!r}")
        self._rate = float(rate)
        self._interval = 1.0 / self._rate
        self._clock = clock
        self._sleep = sleep
        self._last_admission: Optional[float] = None
        self._cas_lock = threading.Lock()

    @property
    def rate(self) -> float:
        return self._rate

    @property
    def interval(self) -> float:
        return self._interval

    def _compare_and_set(self, expected: Optional[float], new: float) -> bool:
        with self._cas_lock:
            if self._last_admission != expected:
                return False
            self._last_admission = new
            return True

    def _wait_time(self, last: Optional[float], now: float) -> float:
        if last is None:
            return 0.0
        return max(0.0, self._interval - (now - last))

    def acquire(self) -> float:
        """
        Block until this caller is admitted.

        Returns:
            The admission timestamp (on the gate's clock)
        """
        waited = 0.0
        while True:
            last = self._last_admission
            now = self._clock()
            wait = self._wait_time(last, now)
            if wait > 0:
                self._sleep(wait)
                waited += wait
                continue
            if self._compare_and_set(last, now):
                if waited > 0:
                    logger.debug(f"[rate_gate] Admitted after waiting {waited:.3f}s")
                return now

    def try_acquire(self) -> bool:
        """Claim the next slot only if it is available right now."""
        last = self._last_admission
        now = self._clock()
        if self._wait_time(last, now) > 0:
            return False
        return self._compare_and_set(last, now)

    def reset(self):
        """Forget the last admission; the next caller is admitted immediately."""
        with self._cas_lock:
            self._last_admission = None
