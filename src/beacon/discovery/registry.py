"""
Module providing the registry of services announced and discovered by this process.
"""
import logging
import threading
import time
import uuid
from functools import partial
from typing import Callable, Dict, Iterable, List, Optional, Protocol

from beacon.discovery.codec import encode_announcement, encode_discovery_query
from beacon.discovery.config import (
    DEFAULT_ANNOUNCE_INTERVAL,
    DEFAULT_DISCOVERY_INTERVAL,
)
from beacon.discovery.errors import LookupMiss
from beacon.discovery.record import (
    DiscoveryQuery,
    ManagedService,
    ManagedServiceInfo,
    validate_name,
    validate_port,
    validate_tags,
)
from beacon.discovery.timing import Scheduler, ThreadScheduler, stop_timers
from beacon.discovery.utils import get_local_hostname


class GroupSender(Protocol):
    def send_to_group(self, data: bytes) -> bool: ...


class ManagedServiceRegistry:
    """
    Keeps track of the services this process announces and looks for, each with
    its own periodic timers.

    Every operation is serialised by a single lock, and can be called from any
    thread, including from within a timer tick or a discovery handler. Timers are
    detached while holding the lock and waited for once it is released, so once a
    stop operation returns no further tick will send anything for that service.

    Two managed services are the same if their names are equal and their tags are
    equal in the same order.

    :param transport: Used to send announcements and queries to the group.
    :param scheduler: Creates the periodic timers. Defaults to a thread per timer.
    :param hostname: Host name put in announcements, defaults to the local host name.
    :param announce_interval: Seconds between announcements of a service.
    :param discovery_interval: Seconds between discovery queries for a service.
    :param clock: Monotonic clock used to record activity.
    """

    def __init__(
        self,
        transport: GroupSender,
        scheduler: Optional[Scheduler] = None,
        *,
        hostname: Optional[str] = None,
        announce_interval: float = DEFAULT_ANNOUNCE_INTERVAL,
        discovery_interval: float = DEFAULT_DISCOVERY_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ):
        if scheduler is None:
            scheduler = ThreadScheduler()
        if hostname is None:
            hostname = get_local_hostname()
        self.logger = logging.getLogger(__name__)
        self.hostname = hostname
        self.announce_interval = announce_interval
        self.discovery_interval = discovery_interval
        self._transport = transport
        self._scheduler = scheduler
        self._clock = clock
        self._services: Dict[uuid.UUID, ManagedService] = {}
        self._lock = threading.RLock()
        self._closed = False

    @property
    def services(self) -> List[ManagedServiceInfo]:
        with self._lock:
            return [service.info() for service in self._services.values()]

    def get(self, service_id: uuid.UUID) -> Optional[ManagedServiceInfo]:
        with self._lock:
            service = self._services.get(service_id)
            return service.info() if service is not None else None

    def find(self, name: str, tags: Iterable[str]) -> Optional[ManagedServiceInfo]:
        with self._lock:
            try:
                return self._find(name, tuple(tags)).info()
            except LookupMiss:
                return None

    def announce(self, name: str, port: int, tags: Iterable[str]) -> uuid.UUID:
        """
        Start announcing a new service every announcement interval.

        A new managed service is always created, use
        :meth:`start_continuous_announcement` to reuse an existing one.

        :return: The identifier of the managed service.
        :raises InvalidArgument: If the service cannot be announced with these values.
        """
        name, port, tags = self._validate_announcement(name, port, tags)
        with self._lock:
            service = self._add(ManagedService(name, port, tags))
            self._start_announcement(service)
        return service.id

    def discover(self, name: str, tags: Iterable[str]) -> uuid.UUID:
        """
        Start sending queries for a service every discovery interval.

        A new managed service is always created, use
        :meth:`start_continuous_discovery` to reuse an existing one.

        :return: The identifier of the managed service.
        :raises InvalidArgument: If the service cannot be queried with these values.
        """
        name, tags = self._validate_query(name, tags)
        with self._lock:
            service = self._add(ManagedService(name, 0, tags))
            self._start_discovery(service)
        return service.id

    def start_continuous_announcement(
        self, name: str, port: int, tags: Iterable[str]
    ) -> uuid.UUID:
        """
        Ensure a service with this name and these tags is being announced on the given port.

        An existing managed service is reused, with its port updated, and its timer
        is only started if it is not already running.

        :return: The identifier of the managed service.
        """
        name, port, tags = self._validate_announcement(name, port, tags)
        with self._lock:
            try:
                service = self._find(name, tags)
                service.port = port
            except LookupMiss:
                service = self._add(ManagedService(name, port, tags))
            self._start_announcement(service)
        return service.id

    def start_continuous_discovery(self, name: str, tags: Iterable[str]) -> uuid.UUID:
        """
        Ensure queries are being sent for a service with this name and these tags.

        :return: The identifier of the managed service.
        """
        name, tags = self._validate_query(name, tags)
        with self._lock:
            try:
                service = self._find(name, tags)
            except LookupMiss:
                service = self._add(ManagedService(name, 0, tags))
            self._start_discovery(service)
        return service.id

    def stop_announcement(self, name: str, tags: Iterable[str]) -> bool:
        """
        Stop announcing the service with this name and these tags. The managed
        service itself is kept.

        :return: ``False`` if no such service is being announced, in which case nothing changes.
        """
        return self._stop(name, tuple(tags), "announcement_timer", "announcement")

    def stop_discovery(self, name: str, tags: Iterable[str]) -> bool:
        """
        Stop sending queries for the service with this name and these tags. The
        managed service itself is kept.

        :return: ``False`` if no such service is being discovered, in which case nothing changes.
        """
        return self._stop(name, tuple(tags), "discovery_timer", "discovery")

    def stop_all_announcements(self) -> int:
        """
        :return: The number of announcements stopped.
        """
        return self._stop_all("announcement_timer", "announcement")

    def stop_all_discoveries(self) -> int:
        """
        :return: The number of discoveries stopped.
        """
        return self._stop_all("discovery_timer", "discovery")

    def remove(self, service_id: uuid.UUID) -> bool:
        """
        Stop all timers of a managed service and forget it.

        :return: ``False`` if there is no managed service with this identifier.
        """
        with self._lock:
            try:
                service = self._pop(service_id)
            except LookupMiss as e:
                self.logger.warning(e.args[0])
                return False
            timers = self._detach_timers(service)
        stop_timers(*timers)
        self.logger.info(f"Service {service.name} has been manually removed.")
        return True

    def remove_stale(
        self, timeout: float, now: Optional[float] = None
    ) -> List[ManagedServiceInfo]:
        """
        Forget every managed service with no activity for more than ``timeout`` seconds,
        stopping its timers.

        :return: The services removed.
        """
        with self._lock:
            if now is None:
                now = self._clock()
            stale = [
                service
                for service in self._services.values()
                if now - service.last_activity > timeout
            ]
            timers = []
            for service in stale:
                del self._services[service.id]
                timers += self._detach_timers(service)
        stop_timers(*timers)
        return [service.info() for service in stale]

    def answer_query(self, query: DiscoveryQuery) -> int:
        """
        Send an immediate announcement for every announced service matching a query.

        :return: The number of announcements sent.
        """
        with self._lock:
            matches = [
                service.id
                for service in self._services.values()
                if service.announcing and service.matches(query.name, query.tags)
            ]
        return sum(1 for service_id in matches if self._send_announcement(service_id))

    def close(self):
        """
        Stop every timer and forget all managed services.
        """
        with self._lock:
            self._closed = True
            services = list(self._services.values())
            self._services.clear()
            timers = [
                timer for service in services for timer in self._detach_timers(service)
            ]
        stop_timers(*timers)

    def _validate_announcement(self, name, port, tags):
        name = validate_name(name)
        port = validate_port(port)
        tags = validate_tags(tags)
        # raises if the message would not fit in a datagram
        encode_announcement(name, port, tags, hostname=self.hostname)
        return name, port, tags

    @staticmethod
    def _validate_query(name, tags):
        name = validate_name(name)
        tags = validate_tags(tags)
        encode_discovery_query(name, tags)
        return name, tags

    def _add(self, service: ManagedService) -> ManagedService:
        if self._closed:
            raise RuntimeError("Managed service registry has been closed.")
        service.last_activity = self._clock()
        self._services[service.id] = service
        return service

    def _pop(self, service_id: uuid.UUID) -> ManagedService:
        try:
            return self._services.pop(service_id)
        except KeyError:
            raise LookupMiss(f"No managed service with id {service_id}")

    def _find(self, name: str, tags: tuple, timer_attribute: Optional[str] = None):
        matches = [
            service for service in self._services.values() if service.matches(name, tags)
        ]
        if timer_attribute is not None:
            # prefer a service that is actually running the timer being looked for
            matches.sort(key=lambda service: getattr(service, timer_attribute) is None)
        if not matches:
            raise LookupMiss(f"Service not found: {name} {list(tags)}")
        return matches[0]

    @staticmethod
    def _detach_timers(service: ManagedService) -> list:
        timers = [service.announcement_timer, service.discovery_timer]
        service.announcement_timer = None
        service.discovery_timer = None
        return [timer for timer in timers if timer is not None]

    def _start_announcement(self, service: ManagedService):
        if service.announcement_timer is not None:
            return
        service.announcement_timer = self._scheduler.schedule_periodic(
            self.announce_interval,
            partial(self._send_announcement, service.id),
            name=f"announce-{service.name}",
        )
        self.logger.info(f"Continuous announcement started for service: {service.name}")

    def _start_discovery(self, service: ManagedService):
        if service.discovery_timer is not None:
            return
        service.discovery_timer = self._scheduler.schedule_periodic(
            self.discovery_interval,
            partial(self._send_discovery_query, service.id),
            name=f"discover-{service.name}",
        )
        self.logger.info(f"Continuous discovery started for service: {service.name}")

    def _stop(self, name: str, tags: tuple, timer_attribute: str, kind: str) -> bool:
        with self._lock:
            try:
                service = self._find(name, tags, timer_attribute)
            except LookupMiss as e:
                self.logger.warning(e.args[0])
                return False
            timer = getattr(service, timer_attribute)
            setattr(service, timer_attribute, None)
        if timer is None:
            self.logger.warning(f"Continuous {kind} already stopped for service: {name}")
            return False
        stop_timers(timer)
        self.logger.info(f"Continuous {kind} stopped for service: {name}")
        return True

    def _stop_all(self, timer_attribute: str, kind: str) -> int:
        with self._lock:
            stopped = []
            for service in self._services.values():
                timer = getattr(service, timer_attribute)
                if timer is not None:
                    setattr(service, timer_attribute, None)
                    stopped.append((service.name, timer))
        stop_timers(*(timer for _, timer in stopped))
        for name, _ in stopped:
            self.logger.info(f"Continuous {kind} stopped for service: {name}")
        return len(stopped)

    def _send_announcement(self, service_id: uuid.UUID) -> bool:
        with self._lock:
            service = self._services.get(service_id)
            if service is None or not service.announcing:
                return False
            message = encode_announcement(
                service.name, service.port, service.tags, hostname=self.hostname
            )
        return self._send(service_id, message)

    def _send_discovery_query(self, service_id: uuid.UUID) -> bool:
        with self._lock:
            service = self._services.get(service_id)
            if service is None or not service.discovering:
                return False
            message = encode_discovery_query(service.name, service.tags)
        return self._send(service_id, message)

    def _send(self, service_id: uuid.UUID, message: bytes) -> bool:
        if not self._transport.send_to_group(message):
            return False
        with self._lock:
            service = self._services.get(service_id)
            if service is not None:
                service.last_activity = self._clock()
        return True

    def __contains__(self, service_id) -> bool:
        with self._lock:
            return service_id in self._services

    def __len__(self):
        with self._lock:
            return len(self._services)
