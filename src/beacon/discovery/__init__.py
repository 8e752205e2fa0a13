"""
Module providing service announcement and discovery over IPv4 multicast.

Processes announce named services, each with a port and a list of tags, by
periodically sending a short text message to a multicast group, and look for
services by periodically sending queries. Every announcement received is
published to subscribers as a :class:`ServiceRecord`.

An example announcement is:

.. code::

    _services._dns-sd._udp.local PTR MyService1._tcp.local
    MyService1._tcp.local SRV 0 0 8081 myhost.local
    MyService1._tcp.local TXT "tags=role1"

The :class:`ServiceDiscovery` class wires together the :class:`MulticastTransport`,
the :class:`ManagedServiceRegistry` of local services and their timers, the
:class:`ExpirySweeper` and the :class:`DiscoveryEventStream`.
"""
from beacon.discovery.config import DiscoveryConfig
from beacon.discovery.engine import ServiceDiscovery
from beacon.discovery.errors import (
    DecodeError,
    DiscoveryError,
    InvalidArgument,
    LookupMiss,
    TransportError,
)
from beacon.discovery.events import DiscoveryEventStream, Subscription
from beacon.discovery.record import (
    DiscoveryQuery,
    ManagedService,
    ManagedServiceInfo,
    ServiceRecord,
)
from beacon.discovery.registry import ManagedServiceRegistry
from beacon.discovery.sweeper import ExpirySweeper
from beacon.discovery.transport import MulticastTransport

__version__ = "1.0.0"
