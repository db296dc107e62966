import datetime
import logging
import socket
from typing import Callable, NamedTuple, Optional

from sntp.errors import InvalidResponse, ResolutionFailure, TransportFailure
from sntp.packet import ERA_TICKS, PACKET_LENGTH, Mode, SNTPPacket, build_request, datetime_to_ticks, utc_now
from sntp.resolver import SystemResolver
from sntp.roundtrip import local_clock_offset, round_trip_delay, ticks_to_milliseconds

logger = logging.getLogger(__name__)

PORT = 123
TIMEOUT = 1.0
BUFFER_SIZE = 1024


class UDPTransport:
    """
    One datagram out, one datagram back.
    """

    @staticmethod
    def resolve(host: str) -> str:
        try:
            return socket.gethostbyname(host)
        except (socket.gaierror, UnicodeError) as e:
            raise ResolutionFailure(host, str(e)) from e

    def exchange(self, host: str, port: int, payload: bytes, timeout: float) -> bytes:
        """
        Send request and wait for the reply.

        :param host: server name or address
        :param port: server port
        :param payload: request bytes
        :param timeout: seconds to wait for send and for receive
        :return: reply bytes, any length
        """
        address = self.resolve(host)

        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.settimeout(timeout)
            try:
                sock.connect((address, port))
                sock.send(payload)
                logger.debug('Sent %d bytes to %s:%d', len(payload), address, port)

                response = sock.recv(BUFFER_SIZE)
            except socket.timeout as e:
                raise TransportFailure(host, port, f'no answer in {timeout} s') from e
            except OSError as e:
                raise TransportFailure(host, port, str(e)) from e

        logger.debug('Received %d bytes from %s:%d', len(response), address, port)
        return response


def is_response_valid(data: bytes) -> bool:
    if len(data) < PACKET_LENGTH:
        return False

    return Mode.from_raw(data[0] & 0x07) is Mode.SERVER


class QueryResult(NamedTuple):
    packet: SNTPPacket
    destination_ticks: int
    round_trip_delay: int
    local_clock_offset: int

    @property
    def round_trip_delay_ms(self) -> float:
        return ticks_to_milliseconds(self.round_trip_delay)

    @property
    def local_clock_offset_ms(self) -> float:
        return ticks_to_milliseconds(self.local_clock_offset)


class SNTPClient:
    """
    Query a time server and estimate the local clock offset.

    A client holds one outstanding request at a time; use one client per
    concurrent query.
    """

    def __init__(self,
                 host: str,
                 port: int = PORT,
                 timeout: float = TIMEOUT,
                 transport=None,
                 resolver=None,
                 clock: Optional[Callable[[], datetime.datetime]] = None,
                 tz: Optional[datetime.tzinfo] = None
                 ):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.transport = transport or UDPTransport()
        self.resolver = resolver or SystemResolver()
        self.clock = clock or utc_now
        self.tz = tz
        self.last_result: Optional[QueryResult] = None

    def query(self) -> QueryResult:
        request = build_request(self.clock())
        response = self.transport.exchange(self.host, self.port, request, self.timeout)
        # wire timestamps carry no era, keep the local one on the same scale
        destination = datetime_to_ticks(self.clock()) % ERA_TICKS

        if len(response) < PACKET_LENGTH:
            logger.warning('Short reply from %s: %d bytes', self.host, len(response))
            raise InvalidResponse(self.host, len(response), f'{len(response)} bytes, expected {PACKET_LENGTH}')

        if not is_response_valid(response):
            mode = Mode.from_raw(response[0] & 0x07)
            logger.warning('Reply from %s has mode %s', self.host, mode.name)
            raise InvalidResponse(self.host, len(response), f'mode {mode.name}, expected {Mode.SERVER.name}')

        packet = SNTPPacket.from_bytes(response, self.resolver, self.tz)
        timestamps = (packet.originate_ticks, packet.receive_ticks, packet.transmit_ticks, destination)

        self.last_result = QueryResult(
            packet,
            destination,
            round_trip_delay(*timestamps),
            local_clock_offset(*timestamps)
        )
        return self.last_result
