from typing import NamedTuple

from jproperties import Properties

from sntp.client import PORT, TIMEOUT


class Config(NamedTuple):
    host: str = 'localhost'
    port: int = PORT
    timeout: float = TIMEOUT
    count: int = 10
    dns_server: str = ''


_CONVERTERS = {
    'host': str,
    'port': int,
    'timeout': float,
    'count': int,
    'dns_server': str,
}


def load_config(path: str, defaults: Config = Config()) -> Config:
    """
    Read settings from a .properties file on top of the defaults.

    :param path: file with lines like ``host = pool.ntp.org``
    :param defaults: values for the keys that are missing in the file
    :return: merged settings
    """
    configs = Properties()
    with open(path, 'rb') as config_file:
        configs.load(config_file, 'utf-8')

    overrides = {}
    for key, convert in _CONVERTERS.items():
        value = configs.get(key)
        if value is None:
            continue
        try:
            overrides[key] = convert(value.data.strip())
        except ValueError as e:
            raise ValueError(f'Bad value for {key} in {path}: {value.data!r}') from e

    return defaults._replace(**overrides)
