"""
Module providing the service discovery engine.
"""
import logging
import threading
import time
import uuid
from typing import Callable, Iterable, List, Optional, Tuple

from beacon.discovery.codec import decode, decode_query
from beacon.discovery.config import DiscoveryConfig
from beacon.discovery.events import (
    CompletionHandler,
    DiscoveryEventStream,
    RecordHandler,
    Subscription,
)
from beacon.discovery.record import ManagedServiceInfo
from beacon.discovery.registry import ManagedServiceRegistry
from beacon.discovery.sweeper import ExpirySweeper
from beacon.discovery.timing import Scheduler, ThreadScheduler
from beacon.discovery.transport import MulticastTransport
from beacon.discovery.utils import (
    get_local_hostname,
    get_multicast_interfaces,
    resolve_interface_address,
)


class ServiceDiscovery:
    """
    Announces local services and discovers remote ones over a multicast group.

    Construction joins the group, starts listening for messages and starts the
    expiry sweeper. Every announcement received, including this engine's own, is
    published to :attr:`events` as a :class:`ServiceRecord`.

    >>> with ServiceDiscovery() as discovery:  # doctest: +SKIP
    ...     discovery.start_continuous_announcement("MyService1", 8081, ["role1"])
    ...     discovery.start_continuous_discovery("MyService2", ["role2"])
    ...     with discovery.events.listen() as records:
    ...         print(records.get(timeout=10))

    :param config: Settings for the engine, defaults to :class:`DiscoveryConfig` defaults.
    :param transport: Transport to use instead of a :class:`MulticastTransport` built
        from the configuration.
    :param scheduler: Creates the periodic timers, defaults to a thread per timer.
    :param hostname: Host name to announce, defaults to the local host name.
    :param clock: Monotonic clock used to measure inactivity.
    :param autostart: Whether to start straight away. If not, call :meth:`start`.
    """

    def __init__(
        self,
        config: Optional[DiscoveryConfig] = None,
        *,
        transport=None,
        scheduler: Optional[Scheduler] = None,
        hostname: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic,
        autostart: bool = True,
    ):
        self.logger = logging.getLogger(__name__)
        self._transport = None
        self._registry: Optional[ManagedServiceRegistry] = None
        self._sweeper: Optional[ExpirySweeper] = None
        self._events = DiscoveryEventStream()
        self._closed = False
        self._started = False
        self._close_lock = threading.Lock()

        if config is None:
            config = DiscoveryConfig()
        sweep_scheduler = scheduler
        if scheduler is None:
            scheduler = ThreadScheduler()
            sweep_scheduler = ThreadScheduler(immediate=False)
        if hostname is None:
            hostname = get_local_hostname()
        self.config = config
        self.hostname = hostname

        if transport is None:
            interface = None
            if config.interface is not None:
                interface = resolve_interface_address(config.interface)
            transport = MulticastTransport(
                group=config.group,
                port=config.port,
                ttl=config.ttl,
                interface=interface,
                loopback=config.loopback,
            )
        self._transport = transport
        self._registry = ManagedServiceRegistry(
            transport,
            scheduler,
            hostname=hostname,
            announce_interval=config.announce_interval,
            discovery_interval=config.discovery_interval,
            clock=clock,
        )
        self._sweeper = ExpirySweeper(
            self._registry,
            timeout=config.service_timeout,
            interval=config.sweep_interval,
            scheduler=sweep_scheduler,
        )
        if autostart:
            self.start()

    @property
    def events(self) -> DiscoveryEventStream:
        return self._events

    @property
    def registry(self) -> ManagedServiceRegistry:
        return self._registry

    @property
    def port(self) -> int:
        return self._transport.port

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def services(self) -> List[ManagedServiceInfo]:
        """
        Snapshot of the services this engine is announcing or discovering.
        """
        return self._registry.services

    def start(self):
        """
        Join the multicast group, start receiving and start the expiry sweeper.

        If any step fails, everything acquired so far is released before the error is raised.

        :raises TransportError: If the multicast group cannot be joined.
        :raises RuntimeError: If already started or closed.
        """
        if self._closed:
            raise RuntimeError("Service discovery has been closed.")
        if self._started:
            raise RuntimeError("Service discovery already running!")
        self._started = True
        try:
            if not self._transport.is_open:
                self._transport.open()
            self._transport.start_receiving(self._handle_datagram)
            self._sweeper.start()
        except Exception:
            self.close()
            raise
        self.logger.info(
            f"Service discovery running on {self.config.group}:{self.port} as {self.hostname}"
        )
        self.log_interfaces()

    def log_interfaces(self, level=logging.DEBUG):
        self.logger.log(level, "Able to join the multicast group on the following IPV4 addresses:")
        for address in get_multicast_interfaces():
            self.logger.log(level, f"  - {address.address}")

    def announce(self, name: str, port: int, tags: Iterable[str]) -> uuid.UUID:
        return self._registry.announce(name, port, tags)

    def discover(self, name: str, tags: Iterable[str]) -> uuid.UUID:
        return self._registry.discover(name, tags)

    def start_continuous_announcement(
        self, name: str, port: int, tags: Iterable[str]
    ) -> uuid.UUID:
        return self._registry.start_continuous_announcement(name, port, tags)

    def start_continuous_discovery(self, name: str, tags: Iterable[str]) -> uuid.UUID:
        return self._registry.start_continuous_discovery(name, tags)

    def stop_announcement(self, name: str, tags: Iterable[str]) -> bool:
        return self._registry.stop_announcement(name, tags)

    def stop_discovery(self, name: str, tags: Iterable[str]) -> bool:
        return self._registry.stop_discovery(name, tags)

    def stop_all_announcements(self) -> int:
        return self._registry.stop_all_announcements()

    def stop_all_discoveries(self) -> int:
        return self._registry.stop_all_discoveries()

    def remove(self, service_id: uuid.UUID) -> bool:
        return self._registry.remove(service_id)

    def sweep(self, now: Optional[float] = None) -> List[ManagedServiceInfo]:
        return self._sweeper.sweep(now)

    def subscribe(
        self,
        on_record: RecordHandler,
        on_completed: Optional[CompletionHandler] = None,
    ) -> Subscription:
        return self._events.subscribe(on_record, on_completed)

    def _handle_datagram(self, data: bytes, address: Tuple[str, int]):
        record = decode(data)
        if record is not None:
            self._events.publish(record)
            return
        if self.config.answer_queries:
            query = decode_query(data)
            if query is not None:
                self._registry.answer_query(query)
                return
        self.logger.debug(f"Ignoring datagram from {address}")

    def close(self):
        """
        Stop every timer, leave the multicast group and complete the event stream.

        Safe to call more than once, and after a failed start.
        """
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        if self._sweeper is not None:
            self._sweeper.stop()
        if self._registry is not None:
            self._registry.close()
        if self._transport is not None:
            self._transport.close()
        self._events.complete()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
