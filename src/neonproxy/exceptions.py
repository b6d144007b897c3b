"""
Proxy-specific exception classes.
"""
import psycopg


class ProxyError(Exception):
    """Base class for all proxy errors.

    `code` is the classification reported to clients when the failure does
    not carry a PostgreSQL SQLSTATE.
    """
    code = 'PROXY_ERROR'


class InvalidRequest(ProxyError):
    """Malformed client input: unparsable body or message, missing query.
    """
    code = 'INVALID_REQUEST'


class SessionError(ProxyError):
    """Error opening or addressing a WebSocket session.
    """
    code = 'SESSION_ERROR'


# Define exception groups
DbConnectionError = (
    psycopg.OperationalError,    # Connection/timeout issues
    psycopg.InterfaceError,      # Connection interface issues
)

IntegrityError = (
    psycopg.IntegrityError,      # Postgres constraint violations
)

ProgrammingError = (
    psycopg.ProgrammingError,    # Postgres syntax/query errors
    psycopg.DataError,           # Invalid input for a type
)
