from sntp.client import QueryResult, SNTPClient, UDPTransport, is_response_valid
from sntp.errors import InvalidResponse, ResolutionFailure, SNTPError, TransportFailure
from sntp.packet import HeaderByte, LeapIndicator, Mode, SNTPPacket, Stratum, build_request
from sntp.roundtrip import local_clock_offset, round_trip_delay
