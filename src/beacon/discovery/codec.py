"""
Encoding and decoding of the text messages exchanged on the multicast group.

An announcement asserts a pointer from the service discovery meta name to the
service, a location for it and a text record carrying its tags:

.. code::

    _services._dns-sd._udp.local PTR Example._tcp.local
    Example._tcp.local SRV 0 0 8081 myhost.local
    Example._tcp.local TXT "tags=role1,blue"

A discovery query carries only the pointer and text lines. Lines are
terminated by ``\\r\\n`` and the whole message is encoded with UTF-8. The layout
mimics DNS-SD records but is not compatible with real mDNS traffic.
"""
from typing import Iterable, Optional

from beacon.discovery.config import MAXIMUM_MESSAGE_SIZE
from beacon.discovery.errors import DecodeError, InvalidArgument
from beacon.discovery.record import (
    DiscoveryQuery,
    ServiceRecord,
    validate_name,
    validate_port,
    validate_tags,
)
from beacon.discovery.utils import get_local_hostname

LINE_SEPARATOR = "\r\n"
POINTER_PREFIX = "_services._dns-sd._udp.local PTR"
NAME_DELIMITER = "._"
SERVICE_SUFFIX = "._tcp.local"
HOST_SUFFIX = ".local"
POINTER_RECORD = "PTR"
LOCATION_RECORD = "SRV"
TEXT_RECORD = "TXT"
TAGS_MARKER = '"tags='


def _service_domain(name: str) -> str:
    return f"{name}{SERVICE_SUFFIX}"


def _pointer_line(name: str) -> str:
    return f"{POINTER_PREFIX} {_service_domain(name)}"


def _location_line(name: str, port: int, hostname: str) -> str:
    return f"{_service_domain(name)} {LOCATION_RECORD} 0 0 {port} {hostname}{HOST_SUFFIX}"


def _text_line(name: str, tags: Iterable[str]) -> str:
    return f'{_service_domain(name)} {TEXT_RECORD} {TAGS_MARKER}{",".join(tags)}"'


def _to_message(lines) -> bytes:
    message = "".join(line + LINE_SEPARATOR for line in lines).encode("utf-8")
    if len(message) > MAXIMUM_MESSAGE_SIZE:
        raise InvalidArgument(
            f"Message exceeds the maximum message size of {MAXIMUM_MESSAGE_SIZE}"
        )
    return message


def encode_announcement(
    name: str, port: int, tags: Iterable[str], hostname: Optional[str] = None
) -> bytes:
    """
    Encodes an announcement of a service running on this host.

    :param name: Name of the service.
    :param port: Port the service listens on.
    :param tags: Labels attached to the service, in order.
    :param hostname: Host name to announce, defaults to the local host name.
    :return: The UTF-8 encoded message.
    :raises InvalidArgument: If any field cannot be represented in the message.
    """
    name = validate_name(name)
    port = validate_port(port)
    tags = validate_tags(tags)
    if hostname is None:
        hostname = get_local_hostname()
    return _to_message(
        [
            _pointer_line(name),
            _location_line(name, port, hostname),
            _text_line(name, tags),
        ]
    )


def encode_discovery_query(name: str, tags: Iterable[str]) -> bytes:
    """
    Encodes a query for a service. It has no location line, as there is no host or port to ask with.
    """
    name = validate_name(name)
    tags = validate_tags(tags)
    return _to_message([_pointer_line(name), _text_line(name, tags)])


def _split_lines(data: bytes) -> list[str]:
    try:
        message = data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError(f"Message is not valid UTF-8: {e}")
    return [line for line in message.split(LINE_SEPARATOR) if line]


def _record_type(line: str) -> Optional[str]:
    tokens = line.split(" ")
    return tokens[1] if len(tokens) > 1 else None


def _find_record(lines, record_type: str) -> Optional[str]:
    return next((line for line in lines if _record_type(line) == record_type), None)


def _parse_name(pointer_line: str) -> str:
    tokens = pointer_line.split(" ")
    if len(tokens) < 3 or not tokens[2]:
        raise DecodeError(f"Pointer line does not name a service: {pointer_line!r}")
    name = tokens[2].split(NAME_DELIMITER)[0]
    if not name:
        raise DecodeError(f"Pointer line has an empty service name: {pointer_line!r}")
    return name


def _parse_port(location_line: str) -> int:
    tokens = location_line.split(" ")
    try:
        port = int(tokens[-2])
    except (IndexError, ValueError):
        return 0
    return port if 0 <= port <= 65535 else 0


def _parse_host(location_line: str) -> str:
    return location_line.split(" ")[-1].rstrip(".")


def _parse_tags(text_line: str) -> tuple[str, ...]:
    if TAGS_MARKER not in text_line:
        return ()
    value = text_line.split(TAGS_MARKER)[-1].rstrip('"')
    if not value:
        return ()
    return tuple(value.split(","))


def _find_pointer(lines) -> str:
    pointer = next((line for line in lines if line.startswith(POINTER_PREFIX)), None)
    if pointer is None:
        raise DecodeError("Message has no pointer line.")
    return pointer


def parse_announcement(data: bytes) -> ServiceRecord:
    """
    Parses an announcement into a :class:`ServiceRecord`.

    An unparsable port becomes ``0`` and a missing tags marker gives no tags, but
    the pointer, location and text lines must all be present.

    :raises DecodeError: If the message is not UTF-8 or a required line is missing.
    """
    lines = _split_lines(data)
    pointer = _find_pointer(lines)
    location = _find_record(lines, LOCATION_RECORD)
    text = _find_record(lines, TEXT_RECORD)
    if location is None:
        raise DecodeError("Message has no location line.")
    if text is None:
        raise DecodeError("Message has no text line.")
    return ServiceRecord(
        name=_parse_name(pointer),
        host=_parse_host(location),
        port=_parse_port(location),
        tags=_parse_tags(text),
    )


def parse_query(data: bytes) -> DiscoveryQuery:
    """
    Parses a discovery query.

    :raises DecodeError: If the message is not a query, including when it is an announcement.
    """
    lines = _split_lines(data)
    pointer = _find_pointer(lines)
    text = _find_record(lines, TEXT_RECORD)
    if text is None:
        raise DecodeError("Message has no text line.")
    if _find_record(lines, LOCATION_RECORD) is not None:
        raise DecodeError("Message is an announcement, not a query.")
    return DiscoveryQuery(name=_parse_name(pointer), tags=_parse_tags(text))


def decode(data: bytes) -> Optional[ServiceRecord]:
    """
    Decodes an announcement, returning ``None`` rather than raising if it is malformed.
    """
    try:
        return parse_announcement(data)
    except DecodeError:
        return None


def decode_query(data: bytes) -> Optional[DiscoveryQuery]:
    """
    Decodes a discovery query, returning ``None`` rather than raising if it is not one.
    """
    try:
        return parse_query(data)
    except DecodeError:
        return None
