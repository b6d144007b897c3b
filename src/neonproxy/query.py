"""
Query execution against a backend connection.

Statements are sent through a psycopg raw cursor, so parameters are bound
server-side to PostgreSQL's own `$1, $2, ...` placeholders. The SQL text is
never rewritten or escaped here.
"""
import logging
import time
from collections.abc import Sequence
from functools import wraps
from typing import Any

import psycopg
from neonproxy.connection import BackendConnection
from neonproxy.row import DictRowFactory

__all__ = ['command_tag', 'execute']

DataRow = dict[str, Any]
ResultSet = list[DataRow]

logger = logging.getLogger(__name__)


def dumpsql(func):
    """Decorator for logging SQL queries and parameters."""
    @wraps(func)
    async def wrapper(cn: BackendConnection, sql: str, params: Sequence[Any] | None = None):
        start = time.time()
        logger.debug(f'SQL:\n{sql}\nargs: {params}')
        try:
            return await func(cn, sql, params)
        except Exception:
            logger.error(f'Error with query:\nSQL:\n{sql}\nargs: {params}')
            raise
        finally:
            cn.addcall(time.time() - start)
    return wrapper


@dumpsql
async def execute(cn: BackendConnection, sql: str,
                  params: Sequence[Any] | None = None) -> ResultSet:
    """Execute a SQL statement and return its rows as ordered mappings.

    With no parameters the text goes out unchanged, so several statements
    separated by semicolons may be sent at once; the rows of the last
    statement that produced a result set are returned. Statements without a
    result set (DDL, plain INSERT/UPDATE) return an empty list.

    Backend failures propagate as psycopg errors; nothing is retried.
    """
    args = list(params) if params else None
    rows: ResultSet = []
    async with psycopg.AsyncRawCursor(cn.driver_connection,
                                      row_factory=DictRowFactory) as cursor:
        await cursor.execute(sql, args)
        while True:
            if cursor.description is not None:
                rows = await cursor.fetchall()
            if not cursor.nextset():
                break
    logger.debug(f'Query returned {len(rows)} row(s)')
    return rows


def command_tag(sql: str) -> str:
    """Return the statement's leading keyword, upper-cased.

    >>> command_tag('  select 1')
    'SELECT'
    >>> command_tag('')
    ''
    """
    words = sql.split(maxsplit=1)
    return words[0].upper() if words else ''
