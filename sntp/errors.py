class SNTPError(Exception):
    """
    Base class for failures of a single query.
    """


class ResolutionFailure(SNTPError):
    def __init__(self, host: str, reason: str = ''):
        self.host = host
        self.reason = reason
        super().__init__(f'Cannot resolve {host}: {reason}' if reason else f'Cannot resolve {host}')


class TransportFailure(SNTPError):
    def __init__(self, host: str, port: int, reason: str):
        self.host = host
        self.port = port
        self.reason = reason
        super().__init__(f'{host}:{port}: {reason}')


class InvalidResponse(SNTPError):
    def __init__(self, host: str, length: int, reason: str):
        self.host = host
        self.length = length
        self.reason = reason
        super().__init__(f'Invalid response from {host}: {reason}')
