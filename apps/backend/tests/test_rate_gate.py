"""
Unit tests for the shared rate gate.
"""

import threading

import pytest

from core.rate_gate import RateGate


class FakeClock:
    """Monotonic clock that only moves when something sleeps on it."""

    def __init__(self, start: float = 100.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += seconds


class TestRateGateConstruction:

    @pytest.mark.parametrize("rate", [0, -1, -0.5])
    def test_non_positive_rate_rejected(self, rate):
        with pytest.raises(ValueError):
            RateGate(rate)

    def test_interval_is_inverse_of_rate(self):
        gate = RateGate(4)
        assert gate.rate == 4.0
        assert gate.interval == 0.25


class TestRateGateAcquire:

    def test_first_acquire_is_immediate(self):
        clock = FakeClock()
        gate = RateGate(2, clock=clock, sleep=clock.sleep)

        assert gate.acquire() == 100.0
        assert clock.sleeps == []

    def test_consecutive_acquires_are_spaced(self):
        """Admissions are at least 1/rate apart on the gate's clock."""
        clock = FakeClock()
        gate = RateGate(2, clock=clock, sleep=clock.sleep)

        admissions = [gate.acquire() for _ in range(4)]

        assert admissions == [100.0, 100.5, 101.0, 101.5]
        assert sum(clock.sleeps) == pytest.approx(1.5)

    def test_no_wait_after_interval_has_passed(self):
        clock = FakeClock()
        gate = RateGate(1, clock=clock, sleep=clock.sleep)
        gate.acquire()
        clock.now += 5

        gate.acquire()

        assert clock.sleeps == []

    def test_concurrent_acquires_respect_interval(self):
        """N acquires from several threads span at least (N-1)/rate seconds."""
        rate = 50.0
        gate = RateGate(rate)
        admissions = []
        lock = threading.Lock()

        def worker():
            for _ in range(3):
                ts = gate.acquire()
                with lock:
                    admissions.append(ts)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        admissions.sort()
        assert len(admissions) == 12
        assert admissions[-1] - admissions[0] >= (len(admissions) - 1) / rate - 1e-9
        for earlier, later in zip(admissions, admissions[1:]):
            assert later - earlier >= gate.interval - 1e-9


class TestRateGateTryAcquire:

    def test_try_acquire_claims_free_slot(self):
        clock = FakeClock()
        gate = RateGate(1, clock=clock, sleep=clock.sleep)

        assert gate.try_acquire() is True
        assert gate.try_acquire() is False

        clock.now += 1.0
        assert gate.try_acquire() is True

    def test_try_acquire_never_double_admits(self):
        """With a frozen clock, only one of many racing callers gets the slot."""
        clock = FakeClock()
        gate = RateGate(1, clock=clock, sleep=clock.sleep)
        barrier = threading.Barrier(8)
        results = []
        lock = threading.Lock()

        def worker():
            barrier.wait()
            admitted = gate.try_acquire()
            with lock:
                results.append(admitted)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(True) == 1

    def test_reset_frees_the_slot(self):
        clock = FakeClock()
        gate = RateGate(1, clock=clock, sleep=clock.sleep)
        gate.acquire()
        assert gate.try_acquire() is False

        gate.reset()

        assert gate.try_acquire() is True
