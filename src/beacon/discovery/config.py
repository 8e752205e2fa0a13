"""
Configuration of the discovery engine.
"""
import ipaddress
from dataclasses import dataclass
from typing import Optional

from beacon.discovery.errors import InvalidArgument

MULTICAST_GROUP = "224.0.0.251"
MULTICAST_PORT = 5353
MULTICAST_TTL = 255
MAXIMUM_MESSAGE_SIZE = 9000

DEFAULT_ANNOUNCE_INTERVAL = 5.0
DEFAULT_DISCOVERY_INTERVAL = 5.0
DEFAULT_SERVICE_TIMEOUT = 30.0
DEFAULT_SWEEP_INTERVAL = 5.0


def _validate_positive(name: str, value: float):
    if value <= 0:
        raise InvalidArgument(f"{name} must be a positive number of seconds, got {value}")


@dataclass(kw_only=True)
class DiscoveryConfig:
    """
    Settings for a :class:`ServiceDiscovery` engine.

    The defaults match the well known mDNS group and port, with announcements
    and discovery queries every 5 seconds and managed services expiring after
    30 seconds without activity.

    :param group: IPv4 multicast group to join and send to.
    :param port: UDP port to bind. ``0`` binds an ephemeral port, which peers must
        then be configured with.
    :param ttl: Multicast time to live for outgoing datagrams.
    :param interface: Optional address or host name of the local interface to join
        the group on. By default the operating system picks one.
    :param loopback: Whether datagrams sent by this host are delivered back to it.
    :param announce_interval: Seconds between announcements of a service.
    :param discovery_interval: Seconds between discovery queries for a service.
    :param service_timeout: Seconds without activity after which a managed service
        is removed by the sweeper.
    :param sweep_interval: Seconds between sweeps for stale managed services.
    :param answer_queries: Whether to answer a matching discovery query with an
        immediate announcement, rather than waiting for the next tick.
    """

    group: str = MULTICAST_GROUP
    port: int = MULTICAST_PORT
    ttl: int = MULTICAST_TTL
    interface: Optional[str] = None
    loopback: bool = True
    announce_interval: float = DEFAULT_ANNOUNCE_INTERVAL
    discovery_interval: float = DEFAULT_DISCOVERY_INTERVAL
    service_timeout: float = DEFAULT_SERVICE_TIMEOUT
    sweep_interval: float = DEFAULT_SWEEP_INTERVAL
    answer_queries: bool = False

    def __post_init__(self):
        try:
            group = ipaddress.IPv4Address(self.group)
        except ValueError:
            raise InvalidArgument(f"Given group {self.group} is not a valid IPv4 address.")
        if not group.is_multicast:
            raise InvalidArgument(f"Given group {self.group} is not a multicast address.")
        if not 0 <= self.port <= 65535:
            raise InvalidArgument(f"Port must be in the range 0-65535, got {self.port}")
        if not 0 <= self.ttl <= 255:
            raise InvalidArgument(f"TTL must be in the range 0-255, got {self.ttl}")
        _validate_positive("announce_interval", self.announce_interval)
        _validate_positive("discovery_interval", self.discovery_interval)
        _validate_positive("service_timeout", self.service_timeout)
        _validate_positive("sweep_interval", self.sweep_interval)
