"""
Mock backend objects for proxy tests.

Provides stand-ins for the pieces that normally need a live PostgreSQL
server: backend connections, psycopg errors with diagnostics, and a
connector that the SessionManager can use.

Usage:
    def test_session(fake_connector):
        manager = SessionManager(engine=None, connector=fake_connector)
"""
from types import SimpleNamespace
from unittest.mock import AsyncMock

import psycopg
import pytest
from neonproxy.errors import DIAGNOSTIC_FIELDS

DIAGNOSTIC_ATTRS = ('message_primary', *DIAGNOSTIC_FIELDS.values())


class FakeConnection:
    """Minimal BackendConnection double recording closes and calls."""

    def __init__(self):
        self.closed = False
        self.calls = 0
        self.time = 0.0
        self.driver_connection = object()

    def addcall(self, elapsed):
        self.time += elapsed
        self.calls += 1

    async def close(self):
        self.closed = True


def make_pg_error(cls=psycopg.errors.UniqueViolation, message='boom', **diag):
    """Create a psycopg error carrying the given diagnostic attributes.

    Diagnostic attribute names are psycopg's (`message_detail`,
    `constraint_name`, ...); unspecified ones read as None.
    """
    fields = dict.fromkeys(DIAGNOSTIC_ATTRS)
    fields.update(diag)

    class FakeError(cls):
        @property
        def diag(self):
            return SimpleNamespace(**fields)

    FakeError.__name__ = cls.__name__
    return FakeError(message)


@pytest.fixture
def fake_connection():
    return FakeConnection()


@pytest.fixture
def fake_connector():
    """Connector returning a new FakeConnection per session.

    The created connections are available as `fake_connector.created`.
    """
    created = []

    async def _connect(engine):
        cn = FakeConnection()
        created.append(cn)
        return cn

    connector = AsyncMock(side_effect=_connect)
    connector.created = created
    return connector
