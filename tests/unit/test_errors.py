"""
Tests for translating failures into the client error envelope.
"""
import psycopg
from neonproxy.errors import DEFAULT_MESSAGE, UNKNOWN_CODE, ErrorEnvelope
from neonproxy.errors import translate
from neonproxy.exceptions import InvalidRequest, SessionError
from tests.fixtures.mocks import make_pg_error


class TestCodePrecedence:

    def test_sqlstate_wins(self):
        exc = make_pg_error(psycopg.errors.UniqueViolation, 'duplicate key')
        assert translate(exc).code == '23505'

    def test_classification_when_no_sqlstate(self):
        exc = psycopg.OperationalError('connection refused')
        assert translate(exc).code == 'OperationalError'

    def test_proxy_errors_use_their_code(self):
        assert translate(InvalidRequest('bad body')).code == 'INVALID_REQUEST'
        assert translate(SessionError('no session')).code == 'SESSION_ERROR'

    def test_unknown_sentinel(self):
        assert translate(RuntimeError('boom')).code == UNKNOWN_CODE


class TestMessage:

    def test_primary_message_preferred(self):
        exc = make_pg_error(psycopg.errors.UndefinedTable, 'ERROR: relation "nope" does not exist\nLINE 1: ...',
                            message_primary='relation "nope" does not exist')
        assert translate(exc).message == 'relation "nope" does not exist'

    def test_falls_back_to_exception_text(self):
        assert translate(ValueError('bad value')).message == 'bad value'

    def test_default_when_empty(self):
        assert translate(RuntimeError()).message == DEFAULT_MESSAGE


class TestDiagnostics:

    def test_unique_violation_envelope(self):
        exc = make_pg_error(
            psycopg.errors.UniqueViolation,
            'duplicate key value violates unique constraint "users_email_key"',
            message_primary='duplicate key value violates unique constraint "users_email_key"',
            severity='ERROR',
            message_detail='Key (email)=(a@b.c) already exists.',
            schema_name='public',
            table_name='users',
            constraint_name='users_email_key',
        )
        assert translate(exc).to_dict() == {
            'message': 'duplicate key value violates unique constraint "users_email_key"',
            'code': '23505',
            'severity': 'ERROR',
            'detail': 'Key (email)=(a@b.c) already exists.',
            'schema': 'public',
            'table': 'users',
            'constraint': 'users_email_key',
        }

    def test_all_fields_copied_verbatim(self):
        exc = make_pg_error(
            psycopg.errors.InvalidTextRepresentation, 'bad input',
            severity='ERROR',
            message_detail='detail',
            message_hint='hint',
            statement_position='8',
            context='PL/pgSQL function f() line 3',
            schema_name='s',
            table_name='t',
            column_name='c',
            datatype_name='integer',
            constraint_name='k',
        )
        envelope = translate(exc)
        assert envelope.code == '22P02'
        assert envelope.to_dict() == {
            'message': 'bad input',
            'code': '22P02',
            'severity': 'ERROR',
            'detail': 'detail',
            'hint': 'hint',
            'position': '8',
            'where': 'PL/pgSQL function f() line 3',
            'schema': 's',
            'table': 't',
            'column': 'c',
            'dataType': 'integer',
            'constraint': 'k',
        }

    def test_absent_fields_are_omitted(self):
        assert translate(RuntimeError('x')).to_dict() == {'message': 'x', 'code': UNKNOWN_CODE}


def test_translate_never_raises():
    class Unprintable(Exception):
        def __str__(self):
            raise RuntimeError('cannot render')

    envelope = translate(Unprintable())
    assert envelope == ErrorEnvelope(message=DEFAULT_MESSAGE, code=UNKNOWN_CODE)
