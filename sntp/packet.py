"""
SNTP packet codec (RFC 2030 header, no authentication fields).

Structure of the header:

     0 1 2 3 4 5 6 7 8 9 0 1 2 3 4 5 6 7 8 9 0 1 2 3 4 5 6 7 8 9 0 1
    +-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+
    |LI | VN  |Mode |    Stratum    |     Poll      |   Precision   |
    +-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+
    |                          Root Delay                           |
    |                       Root Dispersion                         |
    |                     Reference Identifier                      |
    |                   Reference Timestamp (64)                    |
    |                   Originate Timestamp (64)                    |
    |                    Receive Timestamp (64)                     |
    |                    Transmit Timestamp (64)                    |
    +-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+
"""
import datetime
import enum
import struct
from typing import NamedTuple, Optional

from sntp.resolver import ReverseLookupError

PACKET_LENGTH = 48

OFF_REFERENCE_ID = 12
OFF_REFERENCE_TIMESTAMP = 16
OFF_ORIGINATE_TIMESTAMP = 24
OFF_RECEIVE_TIMESTAMP = 32
OFF_TRANSMIT_TIMESTAMP = 40

# 100 ns ticks
TICKS_PER_SECOND = 10_000_000
# one NTP era, 2**32 seconds
ERA_TICKS = 2 ** 32 * TICKS_PER_SECOND
NTP_EPOCH = datetime.datetime(1900, 1, 1)

NOT_AVAILABLE = 'N/A'

# LI = 0, VN = 3, Mode = 3 (client)
REQUEST_HEADER = 0x1B

_TIMESTAMP = struct.Struct('!I I')


class LeapIndicator(enum.IntEnum):
    NO_WARNING = 0
    LAST_MINUTE_61 = 1
    LAST_MINUTE_59 = 2
    ALARM = 3


class Mode(enum.IntEnum):
    UNKNOWN = 0
    SYMMETRIC_ACTIVE = 1
    SYMMETRIC_PASSIVE = 2
    CLIENT = 3
    SERVER = 4
    BROADCAST = 5

    @classmethod
    def from_raw(cls, value: int) -> 'Mode':
        # 0, 6 and 7 are reserved
        if 1 <= value <= 5:
            return cls(value)
        return cls.UNKNOWN


class Stratum(enum.Enum):
    UNSPECIFIED = 'unspecified'
    PRIMARY_REFERENCE = 'primary reference'
    SECONDARY_REFERENCE = 'secondary reference'
    RESERVED = 'reserved'

    @classmethod
    def from_raw(cls, value: int) -> 'Stratum':
        if value == 0:
            return cls.UNSPECIFIED
        if value == 1:
            return cls.PRIMARY_REFERENCE
        if value <= 15:
            return cls.SECONDARY_REFERENCE
        return cls.RESERVED


class HeaderByte(NamedTuple):
    """
    First byte of the packet split into its three bit fields.

    The mode is kept raw so that reserved values survive a round trip.
    """
    leap_indicator: LeapIndicator
    version_number: int
    raw_mode: int

    @classmethod
    def unpack(cls, value: int) -> 'HeaderByte':
        return cls(LeapIndicator(value >> 6 & 0x03), (value & 0x38) >> 3, value & 0x07)

    def pack(self) -> int:
        return self.leap_indicator << 6 | self.version_number << 3 | self.raw_mode

    @property
    def mode(self) -> Mode:
        return Mode.from_raw(self.raw_mode)


def datetime_to_ticks(value: datetime.datetime) -> int:
    """
    Ticks elapsed since the NTP epoch. Aware datetimes are converted to UTC first.
    """
    if value.tzinfo is not None:
        value = value.astimezone(datetime.timezone.utc).replace(tzinfo=None)
    delta = value - NTP_EPOCH
    seconds = delta.days * 24 * 3600 + delta.seconds
    return seconds * TICKS_PER_SECOND + delta.microseconds * (TICKS_PER_SECOND // 1_000_000)


def ticks_to_datetime(ticks: int) -> datetime.datetime:
    """
    Naive UTC datetime for a tick count; digits below one microsecond are dropped.
    """
    return NTP_EPOCH + datetime.timedelta(microseconds=ticks // (TICKS_PER_SECOND // 1_000_000))


def to_zone(value: datetime.datetime, tz: Optional[datetime.tzinfo] = None) -> datetime.datetime:
    """
    Reinterpret a naive UTC datetime in ``tz`` (the system local zone when omitted).
    """
    return value.replace(tzinfo=datetime.timezone.utc).astimezone(tz)


def read_timestamp(data: bytes, offset: int) -> int:
    """
    Decode the 64-bit fixed-point timestamp at ``offset`` into ticks since 1900.

    :param data: packet bytes
    :param offset: position of the seconds word
    :return: tick count
    """
    seconds, fraction = _TIMESTAMP.unpack_from(data, offset)
    return seconds * TICKS_PER_SECOND + ((fraction * TICKS_PER_SECOND) >> 32)


def write_timestamp(buffer: bytearray, offset: int, ticks: int) -> None:
    """
    Encode ``ticks`` since 1900 as a 64-bit fixed-point timestamp at ``offset``.

    The fraction is rounded up so that ``read_timestamp`` gives back the same tick.
    Seconds wrap modulo 2**32, times from 2036-02-07T06:28:16Z on land in era 1.
    """
    seconds, remainder = divmod(ticks, TICKS_PER_SECOND)
    fraction = -(-(remainder << 32) // TICKS_PER_SECOND)
    _TIMESTAMP.pack_into(buffer, offset, seconds & 0xFFFFFFFF, fraction)


def utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def build_request(now: Optional[datetime.datetime] = None) -> bytes:
    """
    Client request: version 3, mode client, everything zero except the transmit timestamp.

    :param now: time to put into the transmit timestamp, current UTC time by default
    :return: 48 bytes ready to send
    """
    buffer = bytearray(PACKET_LENGTH)
    buffer[0] = REQUEST_HEADER
    write_timestamp(buffer, OFF_TRANSMIT_TIMESTAMP, datetime_to_ticks(now or utc_now()))
    return bytes(buffer)


def reference_id(data: bytes, stratum: Stratum, version_number: int, resolver=None) -> str:
    """
    Human readable reference identifier.

    Primary servers put a four character code here, version 3 secondary servers
    put the IPv4 address of their own source.

    :param data: packet bytes
    :param stratum: decoded stratum class
    :param version_number: decoded protocol version
    :param resolver: object with ``lookup(address) -> str`` used for reverse DNS,
        failures (``ReverseLookupError`` or ``OSError``) give N/A
    :return: code, "host (address)" or N/A
    """
    raw = data[OFF_REFERENCE_ID:OFF_REFERENCE_ID + 4]

    if stratum in (Stratum.UNSPECIFIED, Stratum.PRIMARY_REFERENCE):
        return raw.decode('latin-1')

    if stratum is Stratum.SECONDARY_REFERENCE and version_number == 3:
        address = '.'.join(str(octet) for octet in raw)
        if resolver is None:
            return NOT_AVAILABLE
        try:
            return f'{resolver.lookup(address)} ({address})'
        except (ReverseLookupError, OSError):
            return NOT_AVAILABLE

    return NOT_AVAILABLE


class SNTPPacket:
    """
    Decoded view of a server reply. Build one with ``from_bytes``.
    """

    def __init__(self, raw: bytes, reference_id: str = NOT_AVAILABLE, tz: Optional[datetime.tzinfo] = None):
        if len(raw) < PACKET_LENGTH:
            raise ValueError(f'NTP packet must be {PACKET_LENGTH} bytes, got {len(raw)}')

        self.raw = bytes(raw[:PACKET_LENGTH])
        self.header = HeaderByte.unpack(self.raw[0])
        self.stratum_level = self.raw[1]
        self.reference_id = reference_id

        self.reference_ticks = read_timestamp(self.raw, OFF_REFERENCE_TIMESTAMP)
        self.originate_ticks = read_timestamp(self.raw, OFF_ORIGINATE_TIMESTAMP)
        self.receive_ticks = read_timestamp(self.raw, OFF_RECEIVE_TIMESTAMP)
        self.transmit_ticks = read_timestamp(self.raw, OFF_TRANSMIT_TIMESTAMP)

        # server times are shown in the display zone, originate is echoed back as sent
        self.reference_timestamp = to_zone(ticks_to_datetime(self.reference_ticks), tz)
        self.originate_timestamp = ticks_to_datetime(self.originate_ticks)
        self.receive_timestamp = to_zone(ticks_to_datetime(self.receive_ticks), tz)
        self.transmit_timestamp = to_zone(ticks_to_datetime(self.transmit_ticks), tz)

    @classmethod
    def from_bytes(cls, data: bytes, resolver=None, tz: Optional[datetime.tzinfo] = None) -> 'SNTPPacket':
        packet = cls(data, tz=tz)
        packet.reference_id = reference_id(packet.raw, packet.stratum, packet.version_number, resolver)
        return packet

    def to_bytes(self) -> bytes:
        return self.raw

    @property
    def leap_indicator(self) -> LeapIndicator:
        return self.header.leap_indicator

    @property
    def version_number(self) -> int:
        return self.header.version_number

    @property
    def mode(self) -> Mode:
        return self.header.mode

    @property
    def stratum(self) -> Stratum:
        return Stratum.from_raw(self.stratum_level)

    @property
    def poll_interval(self) -> int:
        """Maximum interval between successive messages, seconds."""
        return round(2 ** self.raw[2])

    @property
    def precision(self) -> float:
        """Clock precision, milliseconds. The exponent byte is read unsigned."""
        return 1000 * 2.0 ** self.raw[3]

    @property
    def root_delay(self) -> float:
        """Round trip time to the primary reference source, milliseconds."""
        return self._fixed_point_ms(4)

    @property
    def root_dispersion(self) -> float:
        """Nominal error relative to the primary reference source, milliseconds."""
        return self._fixed_point_ms(8)

    def _fixed_point_ms(self, offset: int) -> float:
        b0, b1, b2, b3 = self.raw[offset:offset + 4]
        value = 256 * (256 * (256 * b0 + b1) + b2) + b3
        return 1000 * (value / 0x10000)

    def __str__(self):
        return f"""
        leap indicator: {self.leap_indicator.name}
        version number: {self.version_number}
        mode: {self.mode.name}
        stratum: {self.stratum.value} ({self.stratum_level})
        poll interval: {self.poll_interval} s
        precision: {self.precision} ms
        root delay: {self.root_delay} ms
        root dispersion: {self.root_dispersion} ms
        reference id: {self.reference_id}
        reference timestamp: {self.reference_timestamp}
        originate timestamp: {self.originate_timestamp}
        receive timestamp: {self.receive_timestamp}
        transmit timestamp: {self.transmit_timestamp}
        """
