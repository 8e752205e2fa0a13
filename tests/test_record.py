import dataclasses

import pytest

from beacon.discovery.errors import InvalidArgument
from beacon.discovery.record import (
    ManagedService,
    ServiceRecord,
    validate_tags,
)


@pytest.fixture
def service():
    return ManagedService("MyService1", 8081, ("role1", "blue"))


def test_record_immutable():
    record = ServiceRecord("MyService1", "host.local", 8081, ("role1",))
    with pytest.raises(dataclasses.FrozenInstanceError):
        record.port = 8082


def test_record_equality_and_hash():
    a = ServiceRecord("MyService1", "host.local", 8081, ("role1",))
    b = ServiceRecord("MyService1", "host.local", 8081, ("role1",))
    assert a == b
    assert len({a, b}) == 1


def test_record_role_without_tags():
    assert ServiceRecord("MyService1", "host.local", 8081).role is None


def test_managed_service_unique_ids():
    assert ManagedService("a").id != ManagedService("a").id


def test_matches_ordered_tags(service):
    assert service.matches("MyService1", ["role1", "blue"])
    assert not service.matches("MyService1", ["blue", "role1"])
    assert not service.matches("MyService1", ["role1"])
    assert not service.matches("MyService2", ["role1", "blue"])


def test_info_has_no_timers(service):
    service.announcement_timer = object()
    info = service.info()
    assert info.announcing
    assert not info.discovering
    assert info.id == service.id
    assert info.tags == ("role1", "blue")
    assert not hasattr(info, "announcement_timer")


def test_validate_tags_from_generator():
    assert validate_tags(tag for tag in ["a", "b"]) == ("a", "b")


@pytest.mark.parametrize("tags", [None, 5, b"role1", ["role\n1"]])
def test_validate_tags_invalid(tags):
    with pytest.raises(InvalidArgument):
        validate_tags(tags)


def test_invalid_argument_is_value_error():
    with pytest.raises(ValueError):
        validate_tags("role1")
