"""
Tests for the row-access client: query building and error wrapping
"""

import unittest
from types import SimpleNamespace

from postgrest.exceptions import APIError

from lms_app.database.client import DataClient, Op, not_null
from lms_app.utils.errors import DataError


class RecordingQuery:
    """Chainable stand-in for a postgrest request builder"""

    def __init__(self, log, response=None, error=None):
        self.log = log
        self.response = response or SimpleNamespace(data=[], count=0)
        self.error = error

    @property
    def not_(self):
        self.log.append(('not_',))
        return self

    def __getattr__(self, name):
        def method(*args, **kwargs):
            self.log.append((name, args, kwargs))
            return self
        return method

    def execute(self):
        if self.error:
            raise self.error
        return self.response


class RecordingSupabase:
    def __init__(self, response=None, error=None):
        self.log = []
        self.response = response
        self.error = error

    def table(self, name):
        self.log.append(('table', (name,), {}))
        return RecordingQuery(self.log, self.response, self.error)

    def rpc(self, name, params):
        self.log.append(('rpc', (name, params), {}))
        return RecordingQuery(self.log, self.response, self.error)


class TestQueryBuilding(unittest.TestCase):

    def client(self, data=None, count=None, error=None):
        self.backend = RecordingSupabase(SimpleNamespace(data=data, count=count), error)
        return DataClient(self.backend)

    def calls(self):
        return [entry[:2] for entry in self.backend.log]

    def test_select_translates_filters_and_order(self):
        rows = self.client(data=[{'id': 1}]).select(
            'attempt',
            {'user_id': 7, 'status': ['in_progress', 'submitted'], 'score': not_null(),
             'end_time': None, 'start_time': Op('gte', '2025-01-01')},
            order=[('start_time', True), ('id', False)],
            columns='*, ujian(judul)',
            limit=5
        )

        self.assertEqual(rows, [{'id': 1}])
        self.assertEqual(self.calls(), [
            ('table', ('attempt',)),
            ('select', ('*, ujian(judul)',)),
            ('eq', ('user_id', 7)),
            ('in_', ('status', ['in_progress', 'submitted'])),
            ('not_',),
            ('is_', ('score', 'null')),
            ('is_', ('end_time', 'null')),
            ('gte', ('start_time', '2025-01-01')),
            ('order', ('start_time',)),
            ('order', ('id',)),
            ('limit', (5,)),
        ])
        orders = [entry[2] for entry in self.backend.log if entry[0] == 'order']
        self.assertEqual(orders, [{'desc': True}, {'desc': False}])

    def test_string_order_with_minus_is_descending(self):
        client = self.client()
        client.select('kelas', order='-nama')
        self.assertIn(('order', ('nama',), {'desc': True}), self.backend.log)

    def test_unknown_operator_is_rejected(self):
        with self.assertRaises(DataError):
            self.client().select('kelas', {'nama': Op('regex', '.*')})

    def test_count_uses_head_request(self):
        client = self.client(count=12)
        self.assertEqual(client.count('users', {'role': 'siswa'}), 12)
        select = [entry for entry in self.backend.log if entry[0] == 'select'][0]
        self.assertEqual(select[2], {'count': 'exact', 'head': True})

    def test_insert_returns_stored_row(self):
        client = self.client(data=[{'id': 9, 'nama': 'X-A'}])
        self.assertEqual(client.insert('kelas', {'nama': 'X-A'}), {'id': 9, 'nama': 'X-A'})

    def test_insert_without_returned_row_fails(self):
        with self.assertRaises(DataError):
            self.client(data=[]).insert('kelas', {'nama': 'X-A'})

    def test_upsert_passes_conflict_key(self):
        client = self.client()
        client.upsert('jawaban', {'attempt_id': 1, 'soal_id': 2}, on_conflict='attempt_id,soal_id')
        upsert = [entry for entry in self.backend.log if entry[0] == 'upsert'][0]
        self.assertEqual(upsert[2], {'on_conflict': 'attempt_id,soal_id'})

    def test_unfiltered_writes_are_refused(self):
        client = self.client()
        with self.assertRaises(DataError):
            client.update('attempt', {}, {'status': 'graded'})
        with self.assertRaises(DataError):
            client.delete('bank_soal', None)
        self.assertEqual(self.backend.log, [], "Nothing may reach the backend")

    def test_rpc_returns_data(self):
        client = self.client(data={'score': 80})
        self.assertEqual(client.rpc('grade_objective_attempt', {'p_attempt_id': 3}), {'score': 80})
        self.assertEqual(self.backend.log[0], ('rpc', ('grade_objective_attempt', {'p_attempt_id': 3}), {}))


class TestErrorWrapping(unittest.TestCase):

    def test_api_error_becomes_data_error(self):
        error = APIError({'message': 'duplicate key value', 'code': '23505', 'hint': None, 'details': None})
        client = DataClient(RecordingSupabase(error=error))

        with self.assertRaises(DataError) as ctx:
            client.insert('attempt', {'ujian_id': 1})

        self.assertEqual(ctx.exception.code, '23505')
        self.assertEqual(str(ctx.exception), 'duplicate key value')
        self.assertIs(ctx.exception.cause, error)

    def test_network_error_becomes_data_error(self):
        client = DataClient(RecordingSupabase(error=ConnectionError("timed out")))
        with self.assertRaises(DataError) as ctx:
            client.select('kelas')
        self.assertIn("timed out", str(ctx.exception))


if __name__ == '__main__':
    unittest.main()
