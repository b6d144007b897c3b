"""
End-to-end tests of `POST /sql` against PostgreSQL.
"""
import json

import pytest

pytestmark = pytest.mark.postgres


def test_select_true(sql):
    response = sql('SELECT true AS val')
    assert response.status_code == 200
    assert response.json() == {
        'fields': [{'name': 'val', 'dataTypeID': 16}],
        'rows': [['t']],
        'rowCount': 1,
        'command': 'SELECT',
    }
    assert response.headers['access-control-allow-origin'] == '*'


def test_zero_rows(sql):
    result = sql('SELECT 1 AS n WHERE false').json()
    assert result == {'fields': [], 'rows': [], 'rowCount': 0, 'command': 'SELECT'}


def test_positional_parameters(sql):
    result = sql('SELECT $1::int + 1 AS n, $2::text AS s', 41, 'hello').json()
    assert result['fields'] == [{'name': 'n', 'dataTypeID': 23}, {'name': 's', 'dataTypeID': 25}]
    assert result['rows'] == [[42, 'hello']]


def test_text_array_roundtrip(sql, users_table):
    insert = sql(f'INSERT INTO {users_table} (email, tags) VALUES ($1, $2::text[])',
                 'a@example.com', '{a,"b,c","d\\"e"}')
    assert insert.status_code == 200, insert.text
    assert insert.json()['command'] == 'INSERT'

    result = sql(f'SELECT tags FROM {users_table}').json()
    assert result['fields'] == [{'name': 'tags', 'dataTypeID': 1009}]
    assert result['rows'] == [['{a,"b,c","d\\"e"}']]


def test_timestamptz_text_form(sql):
    result = sql("SELECT '2025-01-15 05:30:00.123456-05'::timestamptz AS at").json()
    assert result['fields'] == [{'name': 'at', 'dataTypeID': 1184}]
    assert result['rows'] == [['2025-01-15 10:30:00.123+00']]


def test_jsonb_is_json_text(sql):
    result = sql("""SELECT '{"a": [1, 2]}'::jsonb AS doc""").json()
    assert result['fields'] == [{'name': 'doc', 'dataTypeID': 3802}]
    assert json.loads(result['rows'][0][0]) == {'a': [1, 2]}


def test_numbers_and_nulls(sql):
    result = sql('SELECT 7 AS i, 2.5::float8 AS f, NULL::int AS missing').json()
    assert [f['dataTypeID'] for f in result['fields']] == [23, 701, 25]
    assert result['rows'] == [[7, 2.5, None]]


def test_boolean_array(sql):
    result = sql('SELECT ARRAY[true, NULL, false] AS flags').json()
    assert result['fields'] == [{'name': 'flags', 'dataTypeID': 1000}]
    assert result['rows'] == [['{t,NULL,f}']]


def test_rows_follow_column_order(sql):
    result = sql("SELECT 'x' AS b, 'y' AS a FROM generate_series(1, 3)").json()
    assert [f['name'] for f in result['fields']] == ['b', 'a']
    assert result['rows'] == [['x', 'y']] * 3
    assert result['rowCount'] == 3


def test_interval_uses_postgres_text(sql):
    result = sql("SELECT '1 day 2 hours'::interval AS d").json()
    assert result['fields'] == [{'name': 'd', 'dataTypeID': 25}]
    assert result['rows'] == [['1 day 02:00:00']]


def test_range_and_timetz_use_postgres_text(sql):
    result = sql("SELECT int4range(1, 5) AS r, '10:30:00+02'::timetz AS t").json()
    assert result['rows'] == [['[1,5)', '10:30:00+02']]


def test_non_finite_floats(sql):
    result = sql("SELECT 'NaN'::float8 AS n, ARRAY['Infinity'::float8, 1.5] AS a").json()
    assert result['rows'] == [['NaN', '{Infinity,1.5}']]
