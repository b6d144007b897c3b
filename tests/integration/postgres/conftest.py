"""
Fixtures for integration tests against a live PostgreSQL container.
"""
import time

import pytest


@pytest.fixture
def test_table_prefix():
    """Generate a unique test table prefix for isolation."""
    return f'test_proxy_{int(time.time() * 1000)}'


@pytest.fixture
def users_table(sql, test_table_prefix):
    """A throwaway users table with a unique email constraint."""
    name = f'{test_table_prefix}_users'
    response = sql(f'CREATE TABLE {name} (id serial PRIMARY KEY, email text UNIQUE NOT NULL, tags text[])')
    assert response.status_code == 200, response.text
    yield name
    sql(f'DROP TABLE IF EXISTS {name}')
