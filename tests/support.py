"""
Fakes and helpers shared by the discovery tests.
"""
import queue
import threading
import time
from contextlib import suppress
from typing import Callable

from beacon.discovery.errors import TransportError
from beacon.discovery.transport import MulticastTransport

DEFAULT_INTERVAL = 0.02
DEFAULT_TIMEOUT = 2.0


def assert_true_soon(
    p: Callable, *, interval=DEFAULT_INTERVAL, timeout=DEFAULT_TIMEOUT
):
    __tracebackhide__ = True  # hide this function in the test traceback
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        with suppress(Exception):
            if p():
                break
        time.sleep(interval)
    assert p()


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class ManualTimer:
    """
    Timer handle that only ticks when told to.
    """

    def __init__(self, interval, callback, name):
        self.interval = interval
        self.callback = callback
        self.name = name
        self.cancelled = False
        self.joined = False
        self.ticks = 0

    def cancel(self):
        self.cancelled = True

    def join(self):
        self.joined = True

    def fire(self):
        if self.cancelled:
            return False
        self.ticks += 1
        self.callback()
        return True


class ManualScheduler:
    def __init__(self):
        self.timers = []

    def schedule_periodic(self, interval, callback, name=""):
        timer = ManualTimer(interval, callback, name)
        self.timers.append(timer)
        return timer

    @property
    def active_timers(self):
        return [timer for timer in self.timers if not timer.cancelled]

    def named(self, prefix):
        return [timer for timer in self.active_timers if timer.name.startswith(prefix)]

    def fire_all(self, cycles=1):
        for _ in range(cycles):
            for timer in list(self.active_timers):
                timer.fire()


class FakeNetwork:
    """
    In-memory multicast group: everything sent by one transport is delivered,
    synchronously, to every open transport including the sender.
    """

    def __init__(self):
        self.transports = []

    def transport(self, address="192.168.1.10", port=5353):
        return FakeTransport(self, address, port)

    def deliver(self, data, source):
        for transport in list(self.transports):
            transport.receive(data, source)


class FakeTransport:
    def __init__(self, network: FakeNetwork, address: str, port: int):
        self.network = network
        self.address = address
        self.port = port
        self.is_open = False
        self.handler = None
        self.sent = []
        self.fail_sends = False
        self.fail_open = False
        self.close_count = 0

    def open(self):
        if self.fail_open:
            raise TransportError("Could not join multicast group")
        self.is_open = True
        self.network.transports.append(self)

    def start_receiving(self, handler):
        self.handler = handler

    def send_to_group(self, data):
        if not self.is_open or self.fail_sends:
            return False
        self.sent.append(data)
        self.network.deliver(data, (self.address, self.port))
        return True

    def receive(self, data, address):
        if self.is_open and self.handler is not None:
            self.handler(data, address)

    def close(self):
        self.close_count += 1
        if self.is_open:
            self.network.transports.remove(self)
            self.is_open = False


class RecordingTransport:
    """
    Thread-safe transport that just remembers what was sent.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._sent = []
        self.fail_sends = False

    @property
    def sent(self):
        with self._lock:
            return list(self._sent)

    def send_to_group(self, data):
        if self.fail_sends:
            return False
        with self._lock:
            self._sent.append(data)
        return True


def multicast_available() -> bool:
    """
    Whether this host can join a multicast group and receive its own datagrams back.
    """
    transport = MulticastTransport(port=0)
    try:
        transport.open()
    except TransportError:
        return False
    received = queue.Queue()
    try:
        transport.start_receiving(lambda data, address: received.put(data))
        if not transport.send_to_group(b"probe"):
            return False
        try:
            return received.get(timeout=1.0) == b"probe"
        except queue.Empty:
            return False
    finally:
        transport.close()
