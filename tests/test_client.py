import datetime
import socket
import threading

import pytest

from conftest import FakeResolver, FakeTransport, StepClock, build_reply
from sntp.client import SNTPClient, UDPTransport, is_response_valid
from sntp.errors import InvalidResponse, ResolutionFailure, SNTPError, TransportFailure
from sntp.packet import OFF_TRANSMIT_TIMESTAMP, TICKS_PER_SECOND, Mode, build_request, datetime_to_ticks, read_timestamp

UTC = datetime.timezone.utc
SENT = datetime.datetime(2024, 1, 1, tzinfo=UTC)
RECEIVED = SENT + datetime.timedelta(milliseconds=25)


def echo_server(server_ahead_ticks=TICKS_PER_SECOND):
    """
    Reply that echoes the request transmit time, server clock ahead by ``server_ahead_ticks``.
    """
    def respond(request):
        originate = read_timestamp(request, OFF_TRANSMIT_TIMESTAMP)
        receive = originate + 100_000 + server_ahead_ticks
        return build_reply(originate=originate, receive=receive, transmit=receive + 50_000)
    return respond


def make_client(transport, resolver=None):
    return SNTPClient('time.example.org', 123, 0.5, transport=transport,
                      resolver=resolver or FakeResolver(), clock=StepClock(SENT, RECEIVED), tz=UTC)


def test_is_response_valid():
    assert is_response_valid(build_reply(header=0x24))
    assert not is_response_valid(bytes(10))
    assert not is_response_valid(b'')
    assert not is_response_valid(build_reply(header=0x23))


def test_query():
    transport = FakeTransport(echo_server())
    client = make_client(transport)

    result = client.query()

    assert result.packet.mode is Mode.SERVER
    assert result.destination_ticks == datetime_to_ticks(RECEIVED)
    assert result.round_trip_delay == 200_000
    assert result.local_clock_offset == TICKS_PER_SECOND
    assert result.round_trip_delay_ms == 20.0
    assert result.local_clock_offset_ms == 1000.0
    assert client.last_result is result


def test_query_sends_request():
    transport = FakeTransport(echo_server())

    make_client(transport).query()

    (host, port, payload, timeout), = transport.requests
    assert (host, port, timeout) == ('time.example.org', 123, 0.5)
    assert payload == build_request(SENT)


def test_query_after_era_rollover():
    sent = datetime.datetime(2036, 3, 1, tzinfo=UTC)
    client = SNTPClient('time.example.org', transport=FakeTransport(echo_server()), resolver=FakeResolver(),
                        clock=StepClock(sent, sent + datetime.timedelta(milliseconds=25)), tz=UTC)

    result = client.query()

    assert result.round_trip_delay == 200_000
    assert result.local_clock_offset == TICKS_PER_SECOND


def test_short_reply():
    client = make_client(FakeTransport(lambda request: bytes(10)))

    with pytest.raises(InvalidResponse) as error:
        client.query()

    assert error.value.host == 'time.example.org'
    assert error.value.length == 10
    assert client.last_result is None


def test_reply_in_client_mode():
    client = make_client(FakeTransport(lambda request: build_reply(header=0x23)))

    with pytest.raises(InvalidResponse) as error:
        client.query()

    assert 'CLIENT' in str(error.value)


def test_transport_failure_is_propagated():
    failure = TransportFailure('time.example.org', 123, 'no answer in 0.5 s')
    client = make_client(FakeTransport(error=failure))

    with pytest.raises(TransportFailure) as error:
        client.query()

    assert error.value is failure
    assert isinstance(error.value, SNTPError)


def test_resolution_failure(monkeypatch):
    def fail(host):
        raise socket.gaierror(socket.EAI_NONAME, 'Name or service not known')

    monkeypatch.setattr(socket, 'gethostbyname', fail)

    with pytest.raises(ResolutionFailure) as error:
        UDPTransport().exchange('nowhere.invalid', 123, build_request(), 0.1)

    assert error.value.host == 'nowhere.invalid'


@pytest.fixture
def udp_server():
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind(('127.0.0.1', 0))
    sock.settimeout(2)
    yield sock
    sock.close()


def test_udp_exchange(udp_server):
    reply = build_reply()

    def serve():
        data, address = udp_server.recvfrom(1024)
        udp_server.sendto(reply, address)

    thread = threading.Thread(target=serve, daemon=True)
    thread.start()

    response = UDPTransport().exchange('127.0.0.1', udp_server.getsockname()[1], build_request(), 2)
    thread.join(2)

    assert response == reply


def test_udp_timeout(udp_server):
    with pytest.raises(TransportFailure) as error:
        UDPTransport().exchange('127.0.0.1', udp_server.getsockname()[1], build_request(), 0.2)

    assert error.value.port == udp_server.getsockname()[1]


def test_udp_socket_error(monkeypatch):
    def refuse(self, address):
        raise ConnectionRefusedError(111, 'Connection refused')

    monkeypatch.setattr(socket.socket, 'connect', refuse)

    with pytest.raises(TransportFailure) as error:
        UDPTransport().exchange('127.0.0.1', 123, build_request(), 0.2)

    assert error.value.host == '127.0.0.1'
    assert error.value.port == 123
    assert 'Connection refused' in error.value.reason
    assert isinstance(error.value.__cause__, ConnectionRefusedError)
