"""
Column type tags and type inference for result sets.

The driver path does not hand column metadata to the encoder, so every
column's tag is inferred from the value it holds in the first row. The
inference is an ordered chain of typed predicates; the first predicate that
accepts a value decides its tag.

A column whose first-row value is NULL is tagged as text even when later rows
hold typed values. That is the accepted limit of sampling one row.
"""
import datetime
import json
import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal
from enum import IntEnum
from typing import Any, Self

from psycopg.postgres import types

__all__ = [
    'ARRAY_TAGS',
    'Column',
    'JSON_TAGS',
    'TypeTag',
    'infer_columns',
    'infer_type_tag',
    'is_sequence',
]

logger = logging.getLogger(__name__)

_oid = lambda x: types.get(x).oid
_aoid = lambda x: types.get(x).array_oid

# Pseudo-type, not part of the driver's type registry.
ANYARRAY_OID = 2277


class TypeTag(IntEnum):
    """PostgreSQL type OIDs reported as a column's `dataTypeID`.
    """
    BOOL = _oid('bool')
    INT4 = _oid('int4')
    FLOAT8 = _oid('float8')
    TEXT = _oid('text')
    JSON = _oid('json')
    JSONB = _oid('jsonb')
    TIMESTAMP = _oid('timestamp')
    TIMESTAMPTZ = _oid('timestamptz')
    BOOL_ARRAY = _aoid('bool')
    INT4_ARRAY = _aoid('int4')
    FLOAT8_ARRAY = _aoid('float8')
    TEXT_ARRAY = _aoid('text')


# Tags whose sequence values are rendered as array literals.
ARRAY_TAGS: frozenset[int] = frozenset(
    [_aoid(name) for name in (
        'bool', 'int2', 'int4', 'int8', 'text', 'bpchar', 'varchar',
        'float4', 'float8', 'date', 'time', 'timestamptz', 'numeric',
        'json', 'jsonb', 'timestamp', 'oid',
    )]
    + [ANYARRAY_OID]
)

JSON_TAGS: frozenset[int] = frozenset([TypeTag.JSON, TypeTag.JSONB])


@dataclass(frozen=True)
class Column:
    """Column descriptor of an encoded result."""
    name: str
    type_tag: int

    def to_dict(self) -> dict[str, Any]:
        return {'name': self.name, 'dataTypeID': int(self.type_tag)}

    @classmethod
    def untagged(cls, name: str) -> Self:
        return cls(name, TypeTag.TEXT)

    @staticmethod
    def get_names(columns: Sequence['Column']) -> list[str]:
        return [c.name for c in columns]


def is_sequence(value: Any) -> bool:
    """True for list-like values; strings and bytes are scalars here."""
    return isinstance(value, Sequence) and not isinstance(value, str | bytes | bytearray)


def _is_number(value: Any) -> bool:
    return isinstance(value, int | float | Decimal) and not isinstance(value, bool)


def _is_whole(value: int | float | Decimal) -> bool:
    if isinstance(value, int):
        return True
    if isinstance(value, float):
        return value.is_integer()
    return value.is_finite() and value == value.to_integral_value()


def _looks_like_json(value: str) -> bool:
    text = value.strip()
    if not ((text.startswith('{') and text.endswith('}'))
            or (text.startswith('[') and text.endswith(']'))):
        return False
    try:
        json.loads(text)
    except ValueError:
        return False
    return True


def _number_tag(value: int | float | Decimal) -> TypeTag:
    return TypeTag.INT4 if _is_whole(value) else TypeTag.FLOAT8


def _array_tag(value: Sequence[Any]) -> TypeTag:
    first = next((el for el in value if el is not None), None)
    if isinstance(first, bool):
        return TypeTag.BOOL_ARRAY
    if _is_number(first):
        return TypeTag.INT4_ARRAY if _is_whole(first) else TypeTag.FLOAT8_ARRAY
    return TypeTag.TEXT_ARRAY


_INFERENCE_CHAIN: tuple[tuple[Callable[[Any], bool], Callable[[Any], TypeTag]], ...] = (
    (lambda v: isinstance(v, bool), lambda v: TypeTag.BOOL),
    (_is_number, _number_tag),
    (lambda v: isinstance(v, datetime.date), lambda v: TypeTag.TIMESTAMPTZ),
    (is_sequence, _array_tag),
    (lambda v: isinstance(v, Mapping), lambda v: TypeTag.JSONB),
    (lambda v: isinstance(v, str) and _looks_like_json(v), lambda v: TypeTag.JSONB),
)


def infer_type_tag(value: Any) -> TypeTag:
    """Infer the type tag for a sampled column value.

    Priority:
    1. boolean
    2. number (integer tag when whole, else double precision)
    3. date or datetime (timestamp with time zone)
    4. sequence (array tag from the first non-null element)
    5. mapping (jsonb)
    6. string holding a JSON object or array (jsonb)
    7. text
    """
    for accepts, tag_for in _INFERENCE_CHAIN:
        if accepts(value):
            return tag_for(value)
    return TypeTag.TEXT


def infer_columns(rows: Sequence[Mapping[str, Any]]) -> list[Column]:
    """Describe the columns of a result set from its first row.

    Returns an empty list for an empty result, whatever columns the query
    declared.
    """
    if not rows:
        return []
    first = rows[0]
    columns = [Column(name, infer_type_tag(value)) for name, value in first.items()]
    logger.debug(f'Inferred column tags: {[(c.name, int(c.type_tag)) for c in columns]}')
    return columns
