"""
Exceptions raised by the discovery engine.
"""


class DiscoveryError(Exception):
    """
    Base class for all errors raised by :mod:`beacon.discovery`.
    """


class TransportError(DiscoveryError, OSError):
    """
    Raised when the multicast socket cannot be bound, cannot join the group,
    or fails to send or receive.

    Only :meth:`MulticastTransport.open` lets this escape to the caller; send and
    receive faults are logged and swallowed by the transport.
    """


class DecodeError(DiscoveryError, ValueError):
    """
    Raised by the strict parsers when a datagram is not a well formed message.
    """


class LookupMiss(DiscoveryError, KeyError):
    """
    Raised internally when no managed service matches a name and tag sequence,
    or an identifier. Public stop and remove operations report it as a no-op.
    """


class InvalidArgument(DiscoveryError, ValueError):
    """
    Raised synchronously when a service name, port, tag sequence or
    configuration value is out of range.
    """
