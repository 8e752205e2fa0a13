"""
Module providing the periodic timers that drive announcements, discovery queries
and expiry sweeps.
"""
import logging
import threading
from typing import Callable, Optional, Protocol


class TimerHandle(Protocol):
    """
    Opaque handle to a periodic task, as handed out by a :class:`Scheduler`.
    """

    def cancel(self) -> None:
        """
        Requests that no further ticks are started. Does not block.
        """
        ...

    def join(self) -> None:
        """
        Blocks until any tick in flight has completed.
        """
        ...


class Scheduler(Protocol):
    def schedule_periodic(
        self, interval: float, callback: Callable[[], None], name: str = ""
    ) -> TimerHandle: ...


class PeriodicTimer:
    """
    Calls a callback on a daemon thread immediately and then every interval seconds, until cancelled.

    :param interval: Number of seconds between ticks.
    :param callback: Callable invoked on every tick. Exceptions it raises are logged
        and do not stop the timer.
    :param name: Name of the underlying thread.
    :param immediate: Whether the first tick happens straight away, rather than after one interval.
    """

    def __init__(
        self,
        interval: float,
        callback: Callable[[], None],
        name: str = "",
        immediate: bool = True,
    ):
        self.logger = logging.getLogger(__name__)
        self.interval = interval
        self.callback = callback
        self.immediate = immediate
        self._cancel = threading.Event()
        self._thread = threading.Thread(
            target=self._run, name=name or None, daemon=True
        )

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    @property
    def running(self) -> bool:
        return self._thread.is_alive() and not self.cancelled

    def start(self):
        if self._thread.ident is not None:
            raise RuntimeError("Timer already started!")
        self._thread.start()

    def cancel(self):
        self._cancel.set()

    def join(self):
        # a tick that stops its own timer must not wait for itself
        if self._thread is threading.current_thread() or self._thread.ident is None:
            return
        self._thread.join()

    def stop(self):
        """
        Cancels the timer and waits for any tick in flight, so no tick happens after this returns.
        """
        self.cancel()
        self.join()

    def _run(self):
        if self.immediate and not self._cancel.is_set():
            self._tick()
        while not self._cancel.wait(self.interval):
            self._tick()

    def _tick(self):
        try:
            self.callback()
        except Exception:
            self.logger.exception(f"Error in periodic task {self._thread.name}")


class ThreadScheduler:
    """
    Scheduler running each periodic task on its own :class:`PeriodicTimer` thread.
    """

    def __init__(self, immediate: bool = True):
        self.immediate = immediate

    def schedule_periodic(
        self, interval: float, callback: Callable[[], None], name: str = ""
    ) -> PeriodicTimer:
        timer = PeriodicTimer(interval, callback, name=name, immediate=self.immediate)
        timer.start()
        return timer


def stop_timers(*handles: Optional[TimerHandle]):
    """
    Cancels all the given timers, then waits for each of them.
    """
    handles = [handle for handle in handles if handle is not None]
    for handle in handles:
        handle.cancel()
    for handle in handles:
        handle.join()
