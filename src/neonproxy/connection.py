"""
Backend connection handling with SQLAlchemy's asyncio extension.

SQLAlchemy is used exclusively for connection management and pooling; queries
run on the underlying psycopg `AsyncConnection` so clients keep PostgreSQL's
native `$1` placeholders. Two engines are used by the proxy:

1. A pooled engine, bounded to `pool_max_connections`, shared by all HTTP
   requests.
2. A `NullPool` engine that hands out one dedicated connection per WebSocket
   session.

Both engines run in autocommit mode: single HTTP statements commit on their
own, and WebSocket clients drive transactions with explicit BEGIN/COMMIT.
"""
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import psycopg
import sqlalchemy as sa
from neonproxy.options import ProxyOptions
from psycopg.types.string import TextLoader
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool

__all__ = [
    'BackendConnection',
    'configure_connection',
    'connect',
    'create_engine_for_options',
    'create_url_from_options',
    'pooled_connection',
]

logger = logging.getLogger(__name__)

POSTGRES_SCHEMES = {'postgres', 'postgresql', 'postgresql+psycopg'}

# Loaded as their PostgreSQL text form. JSON is tagged from its text, and the
# others have no Python rendering matching PostgreSQL's output.
TEXT_LOADED_TYPES = (
    'json', 'jsonb',
    'interval', 'timetz',
    'int4range', 'int8range', 'numrange', 'daterange', 'tsrange', 'tstzrange',
    'int4multirange', 'int8multirange', 'nummultirange', 'datemultirange',
    'tsmultirange', 'tstzmultirange',
)


class BackendConnection:
    """Wraps a SQLAlchemy async connection to track calls and execution time

    The psycopg connection is exposed as `driver_connection` for the query
    executor; the SQLAlchemy connection owns checkout and release.
    """

    def __init__(self, sa_connection: AsyncConnection,
                 driver_connection: psycopg.AsyncConnection) -> None:
        self.sa_connection = sa_connection
        self.driver_connection = driver_connection
        self.calls = 0
        self.time = 0.0

    def addcall(self, elapsed: float) -> None:
        """Track execution statistics

        Args:
            elapsed: Time in seconds that the query took to execute

        """
        self.time += elapsed
        self.calls += 1

    @property
    def closed(self) -> bool:
        return self.sa_connection.closed

    async def close(self) -> None:
        """Release the connection to its engine and log statistics.
        """
        if self.sa_connection.closed:
            return
        await self.sa_connection.close()
        logger.debug(f'Connection closed: {self.calls} queries in {self.time:.2f}s (avg: {self.time/max(1,self.calls):.3f}s per query)')


def create_url_from_options(options: ProxyOptions) -> sa.URL:
    """Convert the configured connection string to a SQLAlchemy URL.

    `postgres://` and `postgresql://` URLs are pointed at the psycopg driver.

    Raises
        ValueError: If the URL does not name a PostgreSQL backend
    """
    url = sa.make_url(options.connection_string)
    if url.drivername not in POSTGRES_SCHEMES:
        raise ValueError(f'Unsupported database type: {url.drivername}')
    return url.set(drivername='postgresql+psycopg')


def configure_connection(dbapi_connection: Any, connection_record: Any = None) -> None:
    """Configure a freshly opened psycopg connection.

    Registered as the engine's `connect` event listener. JSON, interval,
    timetz and range columns are loaded as their text form.
    """
    driver = getattr(dbapi_connection, 'driver_connection', dbapi_connection)
    for name in TEXT_LOADED_TYPES:
        driver.adapters.register_loader(name, TextLoader)


def create_engine_for_options(options: ProxyOptions, use_pool: bool = False,
                              engine_factory=create_async_engine,
                              **kwargs: Any) -> AsyncEngine:
    """Create an async SQLAlchemy engine for the given options.

    Args:
        options: ProxyOptions object
        use_pool: Whether to use connection pooling
        engine_factory: Function to create engines (defaults to create_async_engine)
        **kwargs: Additional arguments passed to engine factory

    Returns
        sqlalchemy.ext.asyncio.AsyncEngine: SQLAlchemy engine
    """
    url = create_url_from_options(options)

    engine_kwargs = {'echo': False, 'isolation_level': 'AUTOCOMMIT'}

    # Configure pooling based on use_pool parameter
    if not use_pool:
        engine_kwargs['poolclass'] = NullPool
    else:
        engine_kwargs['pool_size'] = options.pool_max_connections
        engine_kwargs['max_overflow'] = 0
        engine_kwargs['pool_timeout'] = options.pool_wait_timeout
        engine_kwargs['pool_pre_ping'] = True

    engine_kwargs.update(kwargs)

    engine = engine_factory(url, **engine_kwargs)
    event.listen(engine.sync_engine, 'connect', configure_connection)
    logger.debug(f"Created {'pooled' if use_pool else 'dedicated'} engine for {options.masked_connection_string}")

    return engine


async def connect(engine: AsyncEngine) -> BackendConnection:
    """Check out a connection from the engine.

    For a `NullPool` engine this opens a new backend connection that lives
    until `close()` is called.
    """
    sa_connection = await engine.connect()
    try:
        raw = await sa_connection.get_raw_connection()
    except Exception:
        await sa_connection.close()
        raise
    return BackendConnection(sa_connection, raw.driver_connection)


@asynccontextmanager
async def pooled_connection(engine: AsyncEngine) -> AsyncIterator[BackendConnection]:
    """Borrow a connection for the duration of one request.
    """
    cn = await connect(engine)
    try:
        yield cn
    finally:
        await cn.close()
