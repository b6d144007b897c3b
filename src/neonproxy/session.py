"""
WebSocket session management.

Each open WebSocket owns exactly one dedicated backend connection for its
whole life, which is what makes multi-statement transactions (BEGIN ...
COMMIT) possible over the persistent transport. The session table belongs to
one `SessionManager` instance; connections are released only when their
socket closes.

Lifecycle:
    open(key)          -> dedicated connection created and registered
    handle(key, frame) -> query executed on that connection, reply returned
    close(key)         -> connection closed and unregistered
"""
import logging
from collections.abc import Awaitable, Callable, Hashable
from typing import Any

from neonproxy.connection import BackendConnection, connect
from neonproxy.contracts import parse_message
from neonproxy.errors import translate
from neonproxy.exceptions import SessionError
from neonproxy.query import execute
from neonproxy.result import relay_result
from sqlalchemy.ext.asyncio import AsyncEngine

__all__ = ['SessionManager']

logger = logging.getLogger(__name__)

Connector = Callable[[AsyncEngine], Awaitable[BackendConnection]]


def error_reply(message: str, code: str | None = None, **diagnostics: Any) -> dict[str, Any]:
    reply = {'type': 'error', 'message': message}
    if code is not None:
        reply['code'] = code
    reply.update(diagnostics)
    return reply


class SessionManager:
    """Owns the mapping of open sockets to dedicated backend connections.
    """

    def __init__(self, engine: AsyncEngine, connector: Connector | None = None) -> None:
        """Initialize the manager

        Args:
            engine: Engine handing out dedicated (unpooled) connections
            connector: Coroutine function opening a BackendConnection
        """
        self.engine = engine
        self._connector = connector or connect
        self._sessions: dict[Hashable, BackendConnection] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._sessions

    async def open(self, key: Hashable) -> BackendConnection:
        """Create and register the dedicated connection for a new socket.

        Raises
            SessionError: If a session is already registered under `key`
        """
        if key in self._sessions:
            raise SessionError(f'Session already open for {key!r}')
        cn = await self._connector(self.engine)
        self._sessions[key] = cn
        logger.info(f'Session opened ({len(self._sessions)} active)')
        return cn

    async def handle(self, key: Hashable, frame: str | bytes) -> dict[str, Any]:
        """Process one inbound frame and return the reply to send.

        Frames for the same key must be handled one at a time, in arrival
        order; the dedicated connection never runs overlapping statements.
        Failures become error replies and the session stays open.
        """
        cn = self._sessions.get(key)
        if cn is None:
            logger.warning('Message received for a connection without a session')
            return error_reply('No database connection')

        try:
            message = parse_message(frame)
            if not message.is_query:
                return error_reply('Unknown message type')
            rows = await execute(cn, message.query, message.args)
            return {'type': 'result', 'data': relay_result(rows, message.query).to_dict()}
        except Exception as e:
            logger.error('WebSocket query error', exc_info=True)
            envelope = translate(e).to_dict()
            return error_reply(**envelope)

    async def close(self, key: Hashable) -> None:
        """Close the socket's dedicated connection and forget the session.

        Unknown keys are ignored.
        """
        cn = self._sessions.pop(key, None)
        if cn is None:
            return
        try:
            await cn.close()
        except Exception as e:
            logger.debug(f'Error closing session connection: {e}')
        logger.info(f'Session closed ({len(self._sessions)} active)')

    async def close_all(self) -> None:
        """Close every open session, used at shutdown."""
        for key in list(self._sessions):
            await self.close(key)
