"""
Poll an SNTP server several times and report the local clock offset.
"""
import logging
from argparse import ArgumentParser
from typing import Optional

from prettytable import PrettyTable

from sntp.client import SNTPClient
from sntp.config import Config, load_config
from sntp.errors import SNTPError
from sntp.packet import SNTPPacket
from sntp.resolver import DNSLibResolver, SystemResolver


class Args:
    """
    Args parser to extract args from command line.
    """

    def __init__(self, argv=None):
        args = self._parse_args(argv)
        self.config_path: Optional[str] = args.config
        self.verbose: bool = args.verbose
        self.overrides = {
            key: value for key, value in (
                ('host', args.host),
                ('port', args.port),
                ('timeout', args.timeout),
                ('count', args.count),
                ('dns_server', args.dns_server),
            ) if value is not None
        }

    @staticmethod
    def _parse_args(argv):
        parser = ArgumentParser(description='SNTP client: query a time server and estimate clock offset.')

        parser.add_argument('host', type=str, nargs='?', help='time server name or address')
        parser.add_argument('-p', '--port', type=int, dest='port', help='server port (default 123)')
        parser.add_argument('-t', '--timeout', type=float, dest='timeout', help='seconds to wait for an answer')
        parser.add_argument('-c', '--count', type=int, dest='count', help='number of queries')
        parser.add_argument('--dns-server', type=str, dest='dns_server',
                            help='DNS server for reference id lookups instead of the system resolver')
        parser.add_argument('--config', type=str, dest='config', help='.properties file with defaults')
        parser.add_argument('-v', '--verbose', action='store_true', help='print every field of the last reply')

        return parser.parse_args(argv)

    def make_config(self) -> Config:
        config = load_config(self.config_path) if self.config_path else Config()
        return config._replace(**self.overrides)


def create_table(packet: SNTPPacket) -> PrettyTable:
    """
    Table with every decoded field of a reply.

    :param packet: decoded reply
    :return: table with field names and values
    """
    packet_table = PrettyTable()
    packet_table.field_names = ['Field', 'Value']
    packet_table.align = 'l'

    packet_table.add_row(['Leap indicator', packet.leap_indicator.name])
    packet_table.add_row(['Version number', packet.version_number])
    packet_table.add_row(['Mode', packet.mode.name])
    packet_table.add_row(['Stratum', f'{packet.stratum.value} ({packet.stratum_level})'])
    packet_table.add_row(['Poll interval, s', packet.poll_interval])
    packet_table.add_row(['Precision, ms', packet.precision])
    packet_table.add_row(['Root delay, ms', packet.root_delay])
    packet_table.add_row(['Root dispersion, ms', packet.root_dispersion])
    packet_table.add_row(['Reference id', packet.reference_id])
    packet_table.add_row(['Reference timestamp', packet.reference_timestamp])
    packet_table.add_row(['Originate timestamp', packet.originate_timestamp])
    packet_table.add_row(['Receive timestamp', packet.receive_timestamp])
    packet_table.add_row(['Transmit timestamp', packet.transmit_timestamp])

    return packet_table


def make_client(config: Config) -> SNTPClient:
    resolver = DNSLibResolver(config.dns_server) if config.dns_server else SystemResolver()
    return SNTPClient(config.host, config.port, config.timeout, resolver=resolver)


def poll(client: SNTPClient, count: int) -> list[float]:
    """
    Query the server ``count`` times, the first answer only warms up the path.

    :return: kept offsets in milliseconds
    """
    offsets = []

    for i in range(count):
        try:
            result = client.query()
        except SNTPError as e:
            print(f'ERROR: {e}')
            continue

        if i != 0:
            offsets.append(result.local_clock_offset_ms)
        print(f'{i} {result.local_clock_offset_ms:+.3f}ms delay {result.round_trip_delay_ms:.3f}ms')

    return offsets


def main(argv=None) -> int:
    args = Args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format='%(asctime)s %(name)s %(levelname)s %(message)s')

    try:
        config = args.make_config()
    except (OSError, ValueError) as e:
        print(f'ERROR: {e}')
        return 1

    client = make_client(config)
    offsets = poll(client, config.count)

    if offsets:
        print(f'Avg offset {sum(offsets) / len(offsets):.3f}ms from {len(offsets)} records')

    if args.verbose and client.last_result is not None:
        print(create_table(client.last_result.packet))

    return 0


if __name__ == '__main__':
    raise SystemExit(main())
