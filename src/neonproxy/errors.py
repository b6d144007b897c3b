"""
Translation of failures into the client's error envelope.

PostgreSQL reports failures with a SQLSTATE and a set of diagnostic fields;
psycopg exposes them as `exc.sqlstate` and `exc.diag`. The envelope carries
them under the names the client driver reads. Failures raised by the proxy
itself carry a classification `code` instead.
"""
import logging
from dataclasses import asdict, dataclass
from typing import Any

import psycopg
from neonproxy.exceptions import DbConnectionError, ProxyError

__all__ = ['DEFAULT_MESSAGE', 'UNKNOWN_CODE', 'ErrorEnvelope', 'translate']

logger = logging.getLogger(__name__)

DEFAULT_MESSAGE = 'Unknown error'
UNKNOWN_CODE = 'UNKNOWN'

# envelope field -> psycopg Diagnostic attribute
DIAGNOSTIC_FIELDS = {
    'severity': 'severity',
    'detail': 'message_detail',
    'hint': 'message_hint',
    'position': 'statement_position',
    'where': 'context',
    'schema': 'schema_name',
    'table': 'table_name',
    'column': 'column_name',
    'data_type': 'datatype_name',
    'constraint': 'constraint_name',
}


@dataclass
class ErrorEnvelope:
    """Error reported to clients.

    Only `message` and `code` are always present; the optional diagnostics
    are omitted from the wire form when the backend did not supply them.
    """
    message: str
    code: str
    severity: str | None = None
    detail: str | None = None
    hint: str | None = None
    position: str | None = None
    where: str | None = None
    schema: str | None = None
    table: str | None = None
    column: str | None = None
    data_type: str | None = None
    constraint: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = {k: v for k, v in asdict(self).items() if v is not None}
        if 'data_type' in data:
            data['dataType'] = data.pop('data_type')
        return data


def _classify(exc: BaseException) -> str | None:
    """Secondary classification when no SQLSTATE is available.
    """
    if isinstance(exc, ProxyError):
        return exc.code
    if isinstance(exc, psycopg.Error):
        return type(exc).__name__
    return None


def _message(exc: BaseException) -> str:
    diag = getattr(exc, 'diag', None)
    primary = getattr(diag, 'message_primary', None)
    return primary or str(exc) or DEFAULT_MESSAGE


def translate(exc: BaseException) -> ErrorEnvelope:
    """Map any exception to an ErrorEnvelope. Never raises.

    The code is the SQLSTATE when the backend supplied one, then the
    exception's classification, then `UNKNOWN`.
    """
    try:
        diag = getattr(exc, 'diag', None)
        optional = {name: getattr(diag, attr, None) for name, attr in DIAGNOSTIC_FIELDS.items()}
        envelope = ErrorEnvelope(
            message=_message(exc),
            code=getattr(exc, 'sqlstate', None) or _classify(exc) or UNKNOWN_CODE,
            **optional,
        )
    except Exception:
        logger.error(f'Failed to translate {type(exc).__name__}', exc_info=True)
        return ErrorEnvelope(message=DEFAULT_MESSAGE, code=UNKNOWN_CODE)

    if isinstance(exc, DbConnectionError):
        logger.error(f'Backend connection failure: {envelope.message}')
    else:
        logger.debug(f'Translated {type(exc).__name__} to code {envelope.code}')
    return envelope
