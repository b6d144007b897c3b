"""
Local stand-in for Neon's serverless HTTP/WebSocket query endpoint.

Clients built for Neon's serverless driver can point at this proxy to run
against a plain PostgreSQL server, which keeps automated tests fast and
offline:

- `POST /sql` runs one statement on a pooled connection and answers with
  the column-tagged result envelope the driver parses
- `/v2` opens a WebSocket session with its own dedicated connection, so
  transactions work across messages
"""
__version__ = '1.1.1'

from neonproxy.encoding import array_literal, parse_array_literal
from neonproxy.encoding import serialize_value
from neonproxy.errors import ErrorEnvelope, translate
from neonproxy.exceptions import InvalidRequest, ProxyError, SessionError
from neonproxy.options import ProxyOptions
from neonproxy.result import ResultEnvelope, encode_result, relay_result
from neonproxy.server import ProxyServer, create_app, main
from neonproxy.session import SessionManager
from neonproxy.types import Column, TypeTag, infer_type_tag

__all__ = [
    'create_app',
    'main',
    'ProxyServer',
    'ProxyOptions',
    'SessionManager',
    'encode_result',
    'relay_result',
    'serialize_value',
    'array_literal',
    'parse_array_literal',
    'infer_type_tag',
    'translate',
    'Column',
    'TypeTag',
    'ResultEnvelope',
    'ErrorEnvelope',
    'ProxyError',
    'InvalidRequest',
    'SessionError',
]
