import threading
import time

import pytest

from beacon.discovery.timing import PeriodicTimer, ThreadScheduler, stop_timers
from support import assert_true_soon

TEST_INTERVAL = 0.02


class Counter:
    def __init__(self):
        self._lock = threading.Lock()
        self.count = 0

    def __call__(self):
        with self._lock:
            self.count += 1


@pytest.fixture
def counter():
    return Counter()


@pytest.mark.timeout(5)
def test_timer_ticks_repeatedly(counter):
    timer = PeriodicTimer(TEST_INTERVAL, counter)
    timer.start()
    try:
        assert_true_soon(lambda: counter.count >= 3)
    finally:
        timer.stop()


@pytest.mark.timeout(5)
def test_timer_ticks_immediately(counter):
    timer = PeriodicTimer(10, counter)
    timer.start()
    try:
        assert_true_soon(lambda: counter.count == 1)
    finally:
        timer.stop()


@pytest.mark.timeout(5)
def test_timer_not_immediate(counter):
    timer = PeriodicTimer(10, counter, immediate=False)
    timer.start()
    time.sleep(0.1)
    timer.stop()
    assert counter.count == 0


@pytest.mark.timeout(5)
def test_no_ticks_after_stop(counter):
    timer = PeriodicTimer(TEST_INTERVAL, counter)
    timer.start()
    assert_true_soon(lambda: counter.count >= 2)
    timer.stop()
    count = counter.count
    time.sleep(TEST_INTERVAL * 5)
    assert counter.count == count
    assert not timer.running


@pytest.mark.timeout(5)
def test_stop_waits_for_tick_in_flight():
    started = threading.Event()
    finished = threading.Event()

    def slow_tick():
        started.set()
        time.sleep(0.2)
        finished.set()

    timer = PeriodicTimer(10, slow_tick)
    timer.start()
    assert started.wait(timeout=2)
    timer.stop()
    assert finished.is_set()


@pytest.mark.timeout(5)
def test_stop_from_own_tick(counter):
    def tick():
        counter()
        timer.stop()

    timer = PeriodicTimer(TEST_INTERVAL, tick)
    timer.start()
    assert_true_soon(lambda: timer.cancelled)
    time.sleep(TEST_INTERVAL * 5)
    assert counter.count == 1


@pytest.mark.timeout(5)
def test_failing_tick_keeps_running(counter):
    def tick():
        counter()
        raise RuntimeError("tick failure")

    timer = PeriodicTimer(TEST_INTERVAL, tick)
    timer.start()
    try:
        assert_true_soon(lambda: counter.count >= 3)
    finally:
        timer.stop()


def test_start_twice(counter):
    timer = PeriodicTimer(10, counter)
    timer.start()
    try:
        with pytest.raises(RuntimeError):
            timer.start()
    finally:
        timer.stop()


def test_stop_unstarted_timer(counter):
    timer = PeriodicTimer(10, counter)
    timer.stop()
    assert timer.cancelled


@pytest.mark.timeout(5)
def test_scheduler_and_stop_timers(counter):
    scheduler = ThreadScheduler()
    timers = [scheduler.schedule_periodic(TEST_INTERVAL, counter) for _ in range(3)]
    assert_true_soon(lambda: counter.count >= 6)
    stop_timers(*timers, None)
    count = counter.count
    time.sleep(TEST_INTERVAL * 5)
    assert counter.count == count
