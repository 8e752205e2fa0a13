"""
Module defining discovered service records and locally managed services.
"""
import uuid
from collections import namedtuple
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Tuple

from beacon.discovery.errors import InvalidArgument

_FORBIDDEN_TAG_CHARACTERS = (",", '"', "\r", "\n")

ManagedServiceInfo = namedtuple(
    "ManagedServiceInfo",
    ["id", "name", "port", "tags", "announcing", "discovering", "last_activity"],
)


def validate_name(name: str) -> str:
    if not isinstance(name, str) or not name:
        raise InvalidArgument(f"Service name must be a non-empty string, got {name!r}")
    if any(character.isspace() for character in name):
        raise InvalidArgument(f"Service name must not contain whitespace: {name!r}")
    if "._" in name:
        raise InvalidArgument(f"Service name must not contain '._': {name!r}")
    return name


def validate_port(port: int) -> int:
    if isinstance(port, bool) or not isinstance(port, int):
        raise InvalidArgument(f"Port must be an integer, got {port!r}")
    if not 0 <= port <= 65535:
        raise InvalidArgument(f"Port must be in the range 0-65535, got {port}")
    return port


def validate_tags(tags: Iterable[str]) -> Tuple[str, ...]:
    """
    Normalises a tag sequence into a tuple, preserving order.

    :param tags: Labels attached to a service.
    :return: The tags as a tuple.
    :raises InvalidArgument: If the tags are given as a single string, or any tag is
        empty or contains a character that cannot be carried by the text record.
    """
    if isinstance(tags, (str, bytes)):
        raise InvalidArgument(f"Tags must be a sequence of strings, not a single string: {tags!r}")
    try:
        tags = tuple(tags)
    except TypeError:
        raise InvalidArgument(f"Tags must be a sequence of strings, got {tags!r}")
    for tag in tags:
        if not isinstance(tag, str) or not tag:
            raise InvalidArgument(f"Tags must be non-empty strings, got {tag!r}")
        if any(character in tag for character in _FORBIDDEN_TAG_CHARACTERS):
            raise InvalidArgument(f"Tag contains a reserved character: {tag!r}")
    return tags


@dataclass(frozen=True)
class ServiceRecord:
    """
    A service observed on the network.

    A fresh record is produced for every announcement received; deciding which
    records refer to the same service is up to the consumer.
    """

    name: str
    host: str
    port: int
    tags: Tuple[str, ...] = ()

    @property
    def role(self) -> Optional[str]:
        """
        The first tag, conventionally used to discriminate between roles.
        """
        return self.tags[0] if self.tags else None

    def __str__(self):
        return f"{self.name} at {self.host}:{self.port} {list(self.tags)}"


@dataclass(frozen=True)
class DiscoveryQuery:
    """
    A request, seen on the network, for a service with the given name and tags.
    """

    name: str
    tags: Tuple[str, ...] = ()


@dataclass(eq=False)
class ManagedService:
    """
    A local intent to announce and/or discover a service.

    Instances are owned by :class:`ManagedServiceRegistry`, which is the only
    component allowed to touch the timer handles.
    """

    name: str
    port: int = 0
    tags: Tuple[str, ...] = ()
    last_activity: float = 0.0
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    announcement_timer: Any = None
    discovery_timer: Any = None

    @property
    def announcing(self) -> bool:
        return self.announcement_timer is not None

    @property
    def discovering(self) -> bool:
        return self.discovery_timer is not None

    def matches(self, name: str, tags: Iterable[str]) -> bool:
        """
        Whether this service has exactly the given name and the given tags in the same order.
        """
        return self.name == name and self.tags == tuple(tags)

    def info(self) -> ManagedServiceInfo:
        return ManagedServiceInfo(
            id=self.id,
            name=self.name,
            port=self.port,
            tags=self.tags,
            announcing=self.announcing,
            discovering=self.discovering,
            last_activity=self.last_activity,
        )

    def __repr__(self):
        return f"ManagedService({self.name!r}, port={self.port}, tags={list(self.tags)}, id={self.id})"
