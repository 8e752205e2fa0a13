import ipaddress
import socket

import psutil
from psutil._common import snicaddr

from beacon.discovery.errors import InvalidArgument


def get_local_hostname() -> str:
    """
    The host name announced in location records, without the ``.local`` suffix.
    """
    return socket.gethostname()


def get_ipv4_addresses() -> list[snicaddr]:
    """
    Gets all the IPV4 addresses currently available on all active interfaces.

    :return: A list of address entries, as returned by :func:`psutil.net_if_addrs`.
    """
    active_ifs = {name for name, stats in psutil.net_if_stats().items() if stats.isup}
    return [
        addr
        for name, addrs in psutil.net_if_addrs().items()
        if name in active_ifs
        for addr in addrs
        if addr.family == socket.AddressFamily.AF_INET
    ]


def get_multicast_interfaces() -> list[snicaddr]:
    """
    Gets the IPV4 addresses of active interfaces other than loopback, which are
    the ones a multicast group is usefully joined on.
    """
    return [
        addr
        for addr in get_ipv4_addresses()
        if not ipaddress.ip_address(addr.address).is_loopback
    ]


def resolve_interface_address(
    host: str,
    ipv4_addrs: list[snicaddr] | None = None,
) -> str:
    """
    Resolves a host name or address to the IPv4 address of an active local interface.

    :param host: An IPv4 address or a host name that resolves to one.
    :param ipv4_addrs: Optional list of interface addresses to check against. If none are
        given, the addresses of all active interfaces are used.
    :return: The IPv4 address of the matching interface.
    :raises InvalidArgument: If the host cannot be resolved, or does not belong to an
        active local interface.
    """
    try:
        address = socket.gethostbyname(host)
    except socket.error:
        raise InvalidArgument(f"Could not resolve interface {host}.")
    if ipv4_addrs is None:
        ipv4_addrs = get_ipv4_addresses()
    if not any(item.address == address for item in ipv4_addrs):
        raise InvalidArgument(
            f"Interface {host} ({address}) is not an active local IPv4 interface."
        )
    return address
