"""
Reverse DNS lookups used to decorate reference identifiers of secondary servers.
"""
import ipaddress
import logging
import socket

from dnslib import DNSError, DNSRecord, QTYPE, RCODE

logger = logging.getLogger(__name__)

DNS_SERVER = '77.88.8.1'  # yandex


class ReverseLookupError(Exception):
    pass


class SystemResolver:
    """
    Reverse lookup through the operating system resolver.
    """

    def lookup(self, address: str) -> str:
        try:
            hostname, _, _ = socket.gethostbyaddr(address)
        except OSError as e:
            logger.debug('Reverse lookup of %s failed: %s', address, e)
            raise ReverseLookupError(address) from e

        return hostname


class DNSLibResolver:
    """
    Reverse lookup with a PTR query sent straight to a DNS server.
    """

    def __init__(self, server: str = DNS_SERVER, port: int = 53, timeout: float = 2):
        self.server = server
        self.port = port
        self.timeout = timeout

    @staticmethod
    def make_query(address: str) -> DNSRecord:
        return DNSRecord.question(ipaddress.ip_address(address).reverse_pointer, 'PTR')

    @staticmethod
    def parse_response(response: bytes) -> str:
        """
        Extract host name from PTR response.

        :param response: raw DNS answer
        :return: host name without the trailing dot
        """
        try:
            record = DNSRecord.parse(response)
        except DNSError as e:
            raise ReverseLookupError('malformed DNS response') from e

        if record.header.rcode != RCODE.NOERROR:
            raise ReverseLookupError(f'rcode {record.header.rcode}')

        for rr in record.rr:
            if rr.rtype == QTYPE.PTR:
                return str(rr.rdata).rstrip('.')

        raise ReverseLookupError('no PTR record in answer')

    def lookup(self, address: str) -> str:
        try:
            query = self.make_query(address)
            response = query.send(self.server, self.port, timeout=self.timeout)
        except ValueError as e:
            raise ReverseLookupError(address) from e
        except OSError as e:
            logger.debug('PTR query for %s to %s failed: %s', address, self.server, e)
            raise ReverseLookupError(address) from e

        return self.parse_response(response)
