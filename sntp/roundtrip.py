"""
Delay and offset estimate from the four timestamps of one exchange.

T1 originate (client send), T2 receive (server), T3 transmit (server),
T4 destination (client receive). All values are ticks of the same clock scale.
"""
from sntp.packet import TICKS_PER_SECOND

TICKS_PER_MILLISECOND = TICKS_PER_SECOND // 1000


def round_trip_delay(originate: int, receive: int, transmit: int, destination: int) -> int:
    return (receive - originate) + (destination - transmit)


def local_clock_offset(originate: int, receive: int, transmit: int, destination: int) -> int:
    """
    Offset of the server clock relative to the local one, truncated towards zero.
    """
    difference = (receive - originate) - (destination - transmit)
    if difference < 0:
        return -(-difference // 2)
    return difference // 2


def ticks_to_milliseconds(ticks: int) -> float:
    return ticks / TICKS_PER_MILLISECOND
