import string

import pytest
from hypothesis import given, strategies as st

from beacon.discovery.codec import (
    decode,
    decode_query,
    encode_announcement,
    encode_discovery_query,
    parse_announcement,
    parse_query,
)
from beacon.discovery.errors import DecodeError, InvalidArgument
from beacon.discovery.record import DiscoveryQuery, ServiceRecord
from beacon.discovery.utils import get_local_hostname

HOSTNAME = "testhost"

ANNOUNCEMENT = (
    b"_services._dns-sd._udp.local PTR MyService1._tcp.local\r\n"
    b"MyService1._tcp.local SRV 0 0 8081 testhost.local\r\n"
    b'MyService1._tcp.local TXT "tags=role1,blue"\r\n'
)

QUERY = (
    b"_services._dns-sd._udp.local PTR MyService1._tcp.local\r\n"
    b'MyService1._tcp.local TXT "tags=role1,blue"\r\n'
)


def service_names():
    return st.text(
        st.characters(blacklist_categories=("Z", "C"), blacklist_characters="."),
        min_size=1,
        max_size=30,
    )


def service_tags():
    tag = st.text(alphabet=string.ascii_letters + string.digits + "-_: ", min_size=1, max_size=12)
    return st.lists(tag, max_size=5)


def test_encode_announcement():
    message = encode_announcement("MyService1", 8081, ["role1", "blue"], hostname=HOSTNAME)
    assert message == ANNOUNCEMENT


def test_encode_discovery_query():
    assert encode_discovery_query("MyService1", ["role1", "blue"]) == QUERY


def test_encode_announcement_default_hostname():
    record = decode(encode_announcement("Svc", 9001, ["roleA"]))
    assert record.host == f"{get_local_hostname()}.local"


def test_decode_announcement():
    record = decode(ANNOUNCEMENT)
    assert record == ServiceRecord(
        name="MyService1", host="testhost.local", port=8081, tags=("role1", "blue")
    )
    assert record.role == "role1"


@given(name=service_names(), port=st.integers(0, 65535), tags=service_tags())
def test_announcement_round_trip(name, port, tags):
    record = decode(encode_announcement(name, port, tags, hostname=HOSTNAME))
    assert record is not None
    assert record.name == name
    assert record.port == port
    assert record.tags == tuple(tags)
    assert record.host == f"{HOSTNAME}.local"


@given(name=service_names(), tags=service_tags())
def test_query_carries_name_and_tags_but_no_location(name, tags):
    message = encode_discovery_query(name, tags)
    assert decode(message) is None
    assert decode_query(message) == DiscoveryQuery(name=name, tags=tuple(tags))


def test_announcement_is_not_a_query():
    assert decode_query(ANNOUNCEMENT) is None
    with pytest.raises(DecodeError):
        parse_query(ANNOUNCEMENT)


def test_query_with_empty_name():
    message = (
        b"_services._dns-sd._udp.local PTR ._tcp.local\r\n"
        b'._tcp.local TXT "tags=role1"\r\n'
    )
    assert decode_query(message) is None
    with pytest.raises(DecodeError):
        parse_query(message)


@pytest.mark.parametrize(
    "message",
    [
        b"",
        b"\r\n\r\n",
        # missing text line
        b"_services._dns-sd._udp.local PTR MyService1._tcp.local\r\n"
        b"MyService1._tcp.local SRV 0 0 8081 testhost.local\r\n",
        # missing pointer line
        b"MyService1._tcp.local SRV 0 0 8081 testhost.local\r\n"
        b'MyService1._tcp.local TXT "tags=role1"\r\n',
        # pointer line without a target
        b"_services._dns-sd._udp.local PTR\r\n"
        b"MyService1._tcp.local SRV 0 0 8081 testhost.local\r\n"
        b'MyService1._tcp.local TXT "tags=role1"\r\n',
        # pointer target with an empty service name
        b"_services._dns-sd._udp.local PTR ._tcp.local\r\n"
        b"._tcp.local SRV 0 0 8081 testhost.local\r\n"
        b'._tcp.local TXT "tags=role1"\r\n',
        # not UTF-8
        b"\xff\xfe\x00\x01",
        # a real mDNS query packet
        b"\x00\x00\x00\x00\x00\x01\x00\x00\x00\x00\x00\x00\x05_http\x04_tcp\x05local\x00\x00\x0c\x00\x01",
    ],
)
def test_decode_malformed(message):
    assert decode(message) is None
    with pytest.raises(DecodeError):
        parse_announcement(message)


def test_decode_truncated():
    assert decode(ANNOUNCEMENT[: ANNOUNCEMENT.index(b"MyService1._tcp.local TXT")]) is None


def test_decode_unparsable_port():
    message = ANNOUNCEMENT.replace(b"8081", b"eighty")
    record = decode(message)
    assert record.port == 0
    assert record.host == "testhost.local"


def test_decode_out_of_range_port():
    record = decode(ANNOUNCEMENT.replace(b"8081", b"70000"))
    assert record.port == 0


def test_decode_missing_tags_marker():
    message = ANNOUNCEMENT.replace(b'"tags=role1,blue"', b'"colour=blue"')
    assert decode(message).tags == ()


def test_decode_empty_tags():
    record = decode(encode_announcement("MyService1", 8081, [], hostname=HOSTNAME))
    assert record.tags == ()


def test_decode_host_trailing_dot():
    message = ANNOUNCEMENT.replace(b"testhost.local", b"testhost.local.")
    assert decode(message).host == "testhost.local"


def test_decode_lines_in_any_order():
    lines = ANNOUNCEMENT.split(b"\r\n")
    message = b"\r\n".join([lines[2], lines[0], lines[1]])
    assert decode(message) == decode(ANNOUNCEMENT)


def test_service_name_containing_record_type():
    record = decode(encode_announcement("MySRVTXTService", 1234, ["a"], hostname=HOSTNAME))
    assert record.name == "MySRVTXTService"
    assert record.port == 1234


@pytest.mark.parametrize(
    "utf_str",
    [
        "한국어",
        "😀",
    ],
)
def test_utf8_round_trip(utf_str):
    record = decode(encode_announcement("Service" + utf_str, 80, [utf_str], hostname=HOSTNAME))
    assert record.name == "Service" + utf_str
    assert record.tags == (utf_str,)


def test_encode_too_long():
    with pytest.raises(InvalidArgument):
        encode_announcement("a" * 9000, 80, [], hostname=HOSTNAME)


@pytest.mark.parametrize(
    "name, port, tags",
    [
        ("", 80, []),
        ("My Service", 80, []),
        ("My._Service", 80, []),
        ("Service", -1, []),
        ("Service", 65536, []),
        ("Service", "80", []),
        ("Service", 80, "role1"),
        ("Service", 80, ["role1,role2"]),
        ("Service", 80, ['"quoted"']),
        ("Service", 80, [""]),
        ("Service", 80, [1]),
    ],
)
def test_encode_invalid_arguments(name, port, tags):
    with pytest.raises(InvalidArgument):
        encode_announcement(name, port, tags, hostname=HOSTNAME)
