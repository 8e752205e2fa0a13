"""
Module providing the periodic removal of managed services that have gone quiet.
"""
import logging
from typing import List, Optional

from beacon.discovery.config import DEFAULT_SERVICE_TIMEOUT, DEFAULT_SWEEP_INTERVAL
from beacon.discovery.record import ManagedServiceInfo
from beacon.discovery.registry import ManagedServiceRegistry
from beacon.discovery.timing import Scheduler, ThreadScheduler, TimerHandle, stop_timers


class ExpirySweeper:
    """
    Removes managed services with no activity for longer than a timeout.

    Activity is recorded each time a service's announcement or query is sent, so a
    service is only swept once its timers have stopped, or its sends have been
    failing, for the whole timeout. Services seen on the network are not affected.

    :param registry: The registry to sweep.
    :param timeout: Seconds of inactivity after which a managed service is removed.
    :param interval: Seconds between sweeps once started.
    :param scheduler: Creates the sweep timer.
    """

    def __init__(
        self,
        registry: ManagedServiceRegistry,
        timeout: float = DEFAULT_SERVICE_TIMEOUT,
        interval: float = DEFAULT_SWEEP_INTERVAL,
        scheduler: Optional[Scheduler] = None,
    ):
        self.logger = logging.getLogger(__name__)
        self.registry = registry
        self.timeout = timeout
        self.interval = interval
        self._scheduler = scheduler or ThreadScheduler(immediate=False)
        self._timer: Optional[TimerHandle] = None

    @property
    def running(self) -> bool:
        return self._timer is not None

    def start(self):
        if self._timer is not None:
            raise RuntimeError("Expiry sweeper already running!")
        self._timer = self._scheduler.schedule_periodic(
            self.interval, self.sweep, name="expiry-sweeper"
        )

    def stop(self):
        timer, self._timer = self._timer, None
        stop_timers(timer)

    def sweep(self, now: Optional[float] = None) -> List[ManagedServiceInfo]:
        """
        Remove every stale managed service now.

        :param now: Time to measure inactivity against, defaults to the registry's clock.
        :return: The services removed.
        """
        removed = self.registry.remove_stale(self.timeout, now=now)
        for service in removed:
            self.logger.info(
                f"Service {service.name} has been deregistered due to timeout."
            )
        return removed
