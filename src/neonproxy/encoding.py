"""
Value serialization for the HTTP wire format.

Values are rendered the way PostgreSQL's text protocol would send them for
the column's type tag, because the client parses every value according to
the tag it was given:

- timestamps as `YYYY-MM-DD HH:MM:SS.mmm[+00]` in UTC
- booleans as `t` / `f`
- arrays as brace-delimited literals
- JSON as JSON text

Anything else passes through and is rendered by `json_default` when the
standard JSON encoder cannot handle it.
"""
import datetime
import json
import math
from collections.abc import Mapping, Sequence
from typing import Any

from neonproxy.types import ARRAY_TAGS, JSON_TAGS, TypeTag, is_sequence

__all__ = [
    'array_literal',
    'format_timestamp',
    'interval_text',
    'iso_string',
    'json_default',
    'json_safe',
    'parse_array_literal',
    'serialize_value',
]

# Characters that force an array element to be double-quoted.
QUOTE_CHARS = frozenset('"\\,{} ')

_NON_FINITE = {math.inf: 'Infinity', -math.inf: '-Infinity'}

_DAY_MICROSECONDS = 86_400_000_000


def _non_finite_text(value: float) -> str:
    return _NON_FINITE.get(value, 'NaN')


def _as_utc(value: datetime.date) -> datetime.datetime:
    """Normalize a date or datetime to an aware UTC datetime.

    Naive datetimes are taken to be UTC already; plain dates are UTC midnight.
    """
    if not isinstance(value, datetime.datetime):
        return datetime.datetime.combine(value, datetime.time(), tzinfo=datetime.UTC)
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.UTC)
    return value.astimezone(datetime.UTC)


def format_timestamp(value: datetime.date, with_tz: bool) -> str:
    """Render a date value in PostgreSQL timestamp text form, UTC, milliseconds.

    >>> format_timestamp(datetime.datetime(2025, 1, 15, 10, 30, 0, 123456), True)
    '2025-01-15 10:30:00.123+00'
    """
    d = _as_utc(value)
    base = (f'{d.year:04d}-{d.month:02d}-{d.day:02d} '
            f'{d.hour:02d}:{d.minute:02d}:{d.second:02d}.{d.microsecond // 1000:03d}')
    return f'{base}+00' if with_tz else base


def iso_string(value: datetime.date) -> str:
    """Render a date value as an ISO-8601 UTC string with milliseconds.

    >>> iso_string(datetime.date(2025, 1, 15))
    '2025-01-15T00:00:00.000Z'
    """
    d = _as_utc(value)
    return (f'{d.year:04d}-{d.month:02d}-{d.day:02d}T'
            f'{d.hour:02d}:{d.minute:02d}:{d.second:02d}.{d.microsecond // 1000:03d}Z')


def interval_text(value: datetime.timedelta) -> str:
    """Render a timedelta in PostgreSQL's default interval output style.

    >>> interval_text(datetime.timedelta(days=1, hours=2))
    '1 day 02:00:00'
    >>> interval_text(datetime.timedelta(hours=-2, microseconds=500000))
    '-01:59:59.5'
    """
    days = value.days
    micros = value.seconds * 1_000_000 + value.microseconds
    # Python keeps the time part positive; PostgreSQL gives it the sign of the whole.
    if days < 0 and micros:
        days += 1
        micros -= _DAY_MICROSECONDS

    parts = []
    if days:
        parts.append('1 day' if days == 1 else f'{days} days')
    if micros or not days:
        seconds, fraction = divmod(abs(micros), 1_000_000)
        minutes, seconds = divmod(seconds, 60)
        hours, minutes = divmod(minutes, 60)
        text = f"{'-' if micros < 0 else ''}{hours:02d}:{minutes:02d}:{seconds:02d}"
        if fraction:
            text += f'.{fraction:06d}'.rstrip('0')
        parts.append(text)
    return ' '.join(parts)


def _quote_element(text: str) -> str:
    if text == '' or text.upper() == 'NULL' or not QUOTE_CHARS.isdisjoint(text):
        return '"' + text.replace('\\', '\\\\').replace('"', '\\"') + '"'
    return text


def _array_element(el: Any) -> str:
    if el is None:
        return 'NULL'
    if isinstance(el, str):
        return _quote_element(el)
    if isinstance(el, bool):
        return 't' if el else 'f'
    if isinstance(el, float) and not math.isfinite(el):
        return _non_finite_text(el)
    if isinstance(el, datetime.timedelta):
        return _quote_element(interval_text(el))
    if is_sequence(el):
        return array_literal(el)
    if isinstance(el, datetime.date):
        aware = isinstance(el, datetime.datetime) and el.tzinfo is not None
        return _quote_element(format_timestamp(el, aware))
    if isinstance(el, Mapping):
        return _quote_element(json.dumps(el, default=json_default))
    return _quote_element(str(el))


def array_literal(values: Sequence[Any]) -> str:
    """Render a sequence as a PostgreSQL array literal.

    >>> array_literal(['a', 'b,c', 'd"e', None])
    '{a,"b,c","d\\\\"e",NULL}'
    """
    return '{' + ','.join(_array_element(el) for el in values) + '}'


def parse_array_literal(text: str) -> list[str | None]:
    """Decode a one-dimensional array literal into its text elements.

    Unquoted `NULL` becomes None; quoted elements are unescaped.

    Raises
        ValueError: If the text is not a brace-delimited literal
    """
    if not (text.startswith('{') and text.endswith('}')):
        raise ValueError(f'Not an array literal: {text!r}')
    body = text[1:-1]
    if not body:
        return []

    items: list[str | None] = []
    i, n = 0, len(body)
    while True:
        if i < n and body[i] == '"':
            i += 1
            buf = []
            while i < n and body[i] != '"':
                if body[i] == '\\':
                    i += 1
                buf.append(body[i])
                i += 1
            if i >= n:
                raise ValueError(f'Unterminated quoted element in {text!r}')
            i += 1
            items.append(''.join(buf))
        else:
            end = body.find(',', i)
            end = n if end == -1 else end
            token = body[i:end]
            items.append(None if token == 'NULL' else token)
            i = end
        if i >= n:
            break
        if body[i] != ',':
            raise ValueError(f'Expected a comma at position {i + 1} in {text!r}')
        i += 1
    return items


def serialize_value(value: Any, type_tag: int) -> Any:
    """Encode one raw value for the wire according to its column's tag.

    The checks are ordered: null, dates, booleans, arrays, JSON, then
    passthrough.
    """
    if value is None:
        return None

    if isinstance(value, datetime.date):
        if type_tag == TypeTag.TIMESTAMPTZ:
            return format_timestamp(value, True)
        if type_tag == TypeTag.TIMESTAMP:
            return format_timestamp(value, False)
        return iso_string(value)

    if type_tag == TypeTag.BOOL and isinstance(value, bool):
        return 't' if value else 'f'

    if type_tag in ARRAY_TAGS and is_sequence(value):
        return array_literal(value)

    if type_tag in JSON_TAGS and (isinstance(value, Mapping) or is_sequence(value)):
        return json.dumps(value, default=json_default)

    if isinstance(value, float) and not math.isfinite(value):
        return _non_finite_text(value)

    return value


def json_default(value: Any) -> Any:
    """`default` hook for json.dumps covering values the driver may return.

    Dates render as ISO-8601 UTC strings, times in ISO form, intervals in
    PostgreSQL's interval style, byte strings in PostgreSQL hex form
    (`\\x...`); everything else (Decimal, UUID, network addresses) by its
    string form.
    """
    if isinstance(value, datetime.date):
        return iso_string(value)
    if isinstance(value, datetime.time):
        return value.isoformat()
    if isinstance(value, datetime.timedelta):
        return interval_text(value)
    if isinstance(value, bytes | bytearray | memoryview):
        return '\\x' + bytes(value).hex()
    if isinstance(value, set | frozenset):
        return list(value)
    return str(value)


def json_safe(value: Any) -> Any:
    """Replace non-finite floats, which JSON cannot represent, with their
    PostgreSQL text form, inside lists and mappings too.

    >>> json_safe([1.5, float('nan'), {'x': float('-inf')}])
    [1.5, 'NaN', {'x': '-Infinity'}]
    """
    if isinstance(value, float):
        return value if math.isfinite(value) else _non_finite_text(value)
    if isinstance(value, Mapping):
        return {k: json_safe(v) for k, v in value.items()}
    if is_sequence(value):
        return [json_safe(v) for v in value]
    return value
