import pytest

from sntp.packet import (
    OFF_ORIGINATE_TIMESTAMP,
    OFF_RECEIVE_TIMESTAMP,
    OFF_REFERENCE_ID,
    OFF_REFERENCE_TIMESTAMP,
    OFF_TRANSMIT_TIMESTAMP,
    PACKET_LENGTH,
    datetime_to_ticks,
    write_timestamp,
)
from sntp.resolver import ReverseLookupError


def build_reply(header=0x24, stratum=1, poll=6, precision=0, root_delay=b'\x00\x00\x00\x00',
                root_dispersion=b'\x00\x00\x00\x00', ref_id=b'GPS\x00',
                reference=None, originate=None, receive=None, transmit=None) -> bytes:
    """
    Server reply with the given fields, timestamps are aware datetimes or tick counts.
    """
    buffer = bytearray(PACKET_LENGTH)
    buffer[0] = header
    buffer[1] = stratum
    buffer[2] = poll
    buffer[3] = precision
    buffer[4:8] = root_delay
    buffer[8:12] = root_dispersion
    buffer[OFF_REFERENCE_ID:OFF_REFERENCE_ID + 4] = ref_id

    for offset, value in ((OFF_REFERENCE_TIMESTAMP, reference),
                          (OFF_ORIGINATE_TIMESTAMP, originate),
                          (OFF_RECEIVE_TIMESTAMP, receive),
                          (OFF_TRANSMIT_TIMESTAMP, transmit)):
        if value is None:
            continue
        ticks = value if isinstance(value, int) else datetime_to_ticks(value)
        write_timestamp(buffer, offset, ticks)

    return bytes(buffer)


class FakeResolver:
    def __init__(self, names=None):
        self.names = names or {}
        self.asked = []

    def lookup(self, address):
        self.asked.append(address)
        try:
            return self.names[address]
        except KeyError:
            raise ReverseLookupError(address)


class FakeTransport:
    """
    Answers every exchange through ``respond(request) -> bytes`` or raises ``error``.
    """

    def __init__(self, respond=None, error=None):
        self.respond = respond
        self.error = error
        self.requests = []

    def exchange(self, host, port, payload, timeout):
        self.requests.append((host, port, payload, timeout))
        if self.error is not None:
            raise self.error
        return self.respond(payload)


class StepClock:
    """
    Returns the given datetimes one after another.
    """

    def __init__(self, *moments):
        self.moments = list(moments)

    def __call__(self):
        return self.moments.pop(0)


@pytest.fixture
def reply_factory():
    return build_reply


@pytest.fixture
def resolver():
    return FakeResolver({'192.168.1.10': 'ntp1.example.net'})
