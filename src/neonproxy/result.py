"""
Result envelopes returned to clients.

`encode_result` builds the fully tagged envelope of the HTTP path.
`relay_result` builds the WebSocket envelope, which reports every column as
text and relays values untouched.
"""
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from neonproxy.encoding import serialize_value
from neonproxy.query import command_tag
from neonproxy.types import Column, infer_columns

__all__ = ['ResultEnvelope', 'encode_result', 'relay_result']

logger = logging.getLogger(__name__)

Rows = Sequence[Mapping[str, Any]]


@dataclass
class ResultEnvelope:
    """Query result in the shape the client driver expects.
    """
    fields: list[Column] = field(default_factory=list)
    rows: list[list[Any]] = field(default_factory=list)
    row_count: int = 0
    command: str = ''

    def to_dict(self) -> dict[str, Any]:
        return {
            'fields': [c.to_dict() for c in self.fields],
            'rows': self.rows,
            'rowCount': self.row_count,
            'command': self.command,
        }


def encode_result(rows: Rows, sql: str) -> ResultEnvelope:
    """Tag columns from the first row and serialize every value by its tag.
    """
    columns = infer_columns(rows)
    names = Column.get_names(columns)
    encoded = [
        [serialize_value(row.get(name), column.type_tag)
         for name, column in zip(names, columns)]
        for row in rows
    ]
    return ResultEnvelope(columns, encoded, len(rows), command_tag(sql))


def relay_result(rows: Rows, sql: str) -> ResultEnvelope:
    """Report every column under the text tag and relay values unmodified.
    """
    names = list(rows[0].keys()) if rows else []
    return ResultEnvelope(
        [Column.untagged(name) for name in names],
        [[row.get(name) for name in names] for row in rows],
        len(rows),
        command_tag(sql),
    )
