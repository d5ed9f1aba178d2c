"""
Dashboard configuration, read once from the environment at startup
"""

import os
from dataclasses import dataclass

DEFAULT_PRICE_FEED_URL = (
    'https://api.coingecko.com/api/v3/simple/price'
    '?ids=grin&vs_currencies=usd%2Cbtc&include_24hr_vol=true'
)

LOCAL_HOSTS = ('127.0.0.1', '0.0.0.0', 'localhost', '::1')


class ConfigError(Exception):
    pass


def read_secret(path):
    """Read an API secret file, expanding a leading tilde."""
    if not path:
        return ''
    full_path = os.path.expanduser(path)
    try:
        with open(full_path, 'r') as f:
            return f.read().strip()
    except OSError as e:
        raise ConfigError(f"Cannot read secret file {full_path}: {e}") from e


def _enabled(value):
    return (value or '').strip().lower() in ('enabled', '1', 'true', 'yes')


def _number(environ, name, default, kind=int):
    raw = environ.get(name, '')
    if raw is None or str(raw).strip() == '':
        return default
    try:
        return kind(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from e


@dataclass(frozen=True)
class Config:
    host: str = '127.0.0.1'
    port: str = '3413'
    proto: str = 'http'
    user: str = 'grin'
    api_secret: str = ''
    foreign_api_secret: str = ''
    grin_dir: str = ''
    coingecko_api: bool = False
    price_feed_url: str = DEFAULT_PRICE_FEED_URL
    public_api: bool = False
    external_nodes: tuple = ()
    database: str = ''
    poll_interval: float = 15.0
    rpc_timeout: float = 10.0
    market_every: int = 10
    history_limit: int = 0
    listen_host: str = '0.0.0.0'
    listen_port: int = 8080

    @classmethod
    def from_env(cls, environ=None):
        """Build the configuration from environment variables."""
        if environ is None:
            environ = os.environ

        external_nodes = tuple(
            node.strip().rstrip('/')
            for node in environ.get('GRIN_EXTERNAL_NODES', '').split(',')
            if node.strip()
        )
        grin_dir = environ.get('GRIN_DIR', '')

        config = cls(
            host=environ.get('GRIN_RPC_HOST', '127.0.0.1'),
            port=environ.get('GRIN_RPC_PORT', '3413').strip(),
            proto=environ.get('GRIN_RPC_PROTO', 'http'),
            user=environ.get('GRIN_RPC_USER', 'grin'),
            api_secret=read_secret(environ.get('GRIN_API_SECRET_PATH', '')),
            foreign_api_secret=read_secret(environ.get('GRIN_FOREIGN_API_SECRET_PATH', '')),
            grin_dir=os.path.expanduser(grin_dir) if grin_dir else '',
            coingecko_api=_enabled(environ.get('GRIN_COINGECKO_API')),
            price_feed_url=environ.get('GRIN_PRICE_FEED_URL', DEFAULT_PRICE_FEED_URL),
            public_api=_enabled(environ.get('GRIN_PUBLIC_API')),
            external_nodes=external_nodes,
            database=os.path.expanduser(environ.get('GRIN_DATABASE', '')),
            poll_interval=_number(environ, 'GRIN_POLL_INTERVAL', 15.0, float),
            rpc_timeout=_number(environ, 'GRIN_RPC_TIMEOUT', 10.0, float),
            market_every=_number(environ, 'GRIN_MARKET_EVERY', 10),
            history_limit=_number(environ, 'GRIN_HISTORY_LIMIT', 0),
            listen_host=environ.get('DASHBOARD_HOST', '0.0.0.0'),
            listen_port=_number(environ, 'DASHBOARD_PORT', 8080),
        )
        if config.market_every < 1:
            raise ConfigError("GRIN_MARKET_EVERY must be at least 1")
        if config.history_limit < 0:
            raise ConfigError("GRIN_HISTORY_LIMIT must not be negative")
        return config

    def rpc_url(self, scope):
        """Node API endpoint for the 'owner' or 'foreign' scope."""
        if self.port:
            return f"{self.proto}://{self.host}:{self.port}/v2/{scope}"
        return f"{self.proto}://{self.host}/v2/{scope}"

    def secret_for(self, scope):
        return self.api_secret if scope == 'owner' else self.foreign_api_secret

    def is_local_node(self):
        return self.host in LOCAL_HOSTS
