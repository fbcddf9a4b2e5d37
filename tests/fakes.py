"""In-memory stand-ins for the backend, auth service and clock used by the tests."""

import copy
import threading
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from lms_app.config import SERVER_TIME_PROCEDURE
from lms_app.database.client import Op
from lms_app.utils.errors import DataError


class FakeClock:
    def __init__(self, start=None):
        self.now = start or datetime(2025, 3, 1, 8, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


def _lookup(row, column):
    """Column value, following 'table.column' into embedded rows"""
    value = row
    for part in column.split('.'):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def _matches(row, filters):
    for column, expected in (filters or {}).items():
        actual = _lookup(row, column)
        if isinstance(expected, Op):
            if expected.name == 'not_is':
                if actual is None:
                    return False
            elif expected.name == 'is':
                if actual is not None:
                    return False
            elif expected.name == 'in':
                if actual not in expected.value:
                    return False
            elif expected.name == 'gte':
                if actual is None or actual < expected.value:
                    return False
            elif expected.name == 'lte':
                if actual is None or actual > expected.value:
                    return False
            elif expected.name == 'neq':
                if actual == expected.value:
                    return False
            else:
                raise NotImplementedError(expected.name)
        elif isinstance(expected, (list, set, tuple)):
            if actual not in expected:
                return False
        elif expected is None:
            if actual is not None:
                return False
        elif actual != expected:
            return False
    return True


class FakeDataClient:
    """Implements the DataClient interface over dict tables.

    `calls` records (operation, collection, payload). `fail(op, collection)`
    makes matching calls raise DataError, `times` times or forever.
    """

    def __init__(self, server_clock=None):
        self.tables = {}
        self.calls = []
        self.server_clock = server_clock or (lambda: datetime.now(timezone.utc))
        self.procedures = {SERVER_TIME_PROCEDURE: lambda params: self.server_clock().isoformat()}
        self._failures = {}
        self._next_id = 1
        self._lock = threading.Lock()
        self.auth = FakeAuth()

    # ---- helpers -------------------------------------------------------------

    def fail(self, op, collection, times=None, message="backend unavailable"):
        self._failures[(op, collection)] = [times, message]

    def heal(self, op, collection):
        self._failures.pop((op, collection), None)

    def _check(self, op, collection):
        entry = self._failures.get((op, collection))
        if entry is None:
            return
        remaining, message = entry
        if remaining is not None:
            if remaining <= 0:
                return
            entry[0] = remaining - 1
        raise DataError(message, code='PGRST000')

    def table(self, collection):
        return self.tables.setdefault(collection, [])

    def seed(self, collection, *rows):
        for row in rows:
            row = dict(row)
            if 'id' not in row:
                row['id'] = self._new_id()
            self.table(collection).append(row)
        return rows

    def calls_for(self, op, collection=None):
        return [c for c in self.calls if c[0] == op and (collection is None or c[1] == collection)]

    def _new_id(self):
        value = self._next_id
        self._next_id += 1
        return value

    # ---- DataClient interface ------------------------------------------------

    def select(self, collection, filters=None, order=None, columns='*', limit=None):
        with self._lock:
            self.calls.append(('select', collection, filters))
            self._check('select', collection)
            rows = [copy.deepcopy(r) for r in self.table(collection) if _matches(r, filters)]
        if isinstance(order, tuple) and len(order) == 2 and isinstance(order[1], bool):
            column, descending = order
            rows.sort(key=lambda r: (r.get(column) is None, r.get(column) or 0), reverse=descending)
        elif isinstance(order, str):
            descending = order.startswith('-')
            column = order.lstrip('-')
            rows.sort(key=lambda r: r.get(column) or '', reverse=descending)
        return rows[:limit] if limit else rows

    def select_one(self, collection, filters=None, order=None, columns='*'):
        rows = self.select(collection, filters, order=order, columns=columns, limit=1)
        return rows[0] if rows else None

    def count(self, collection, filters=None, columns='id'):
        return len(self.select(collection, filters))

    def insert(self, collection, row):
        with self._lock:
            self.calls.append(('insert', collection, copy.deepcopy(row)))
            self._check('insert', collection)
            many = isinstance(row, list)
            stored = []
            for item in (row if many else [row]):
                item = dict(item)
                item.setdefault('id', self._new_id())
                if collection == 'attempt':
                    item.setdefault('start_time', self.server_clock().isoformat())
                self.table(collection).append(item)
                stored.append(copy.deepcopy(item))
        return stored if many else stored[0]

    def update(self, collection, filters, patch):
        with self._lock:
            self.calls.append(('update', collection, (filters, copy.deepcopy(patch))))
            self._check('update', collection)
            for item in self.table(collection):
                if _matches(item, filters):
                    item.update(patch)

    def upsert(self, collection, row, on_conflict):
        keys = on_conflict.split(',')
        with self._lock:
            self.calls.append(('upsert', collection, copy.deepcopy(row)))
            self._check('upsert', collection)
            for item in self.table(collection):
                if all(item.get(k) == row.get(k) for k in keys):
                    item.update(row)
                    return
            item = dict(row)
            item.setdefault('id', self._new_id())
            self.table(collection).append(item)

    def delete(self, collection, filters):
        with self._lock:
            self.calls.append(('delete', collection, filters))
            self._check('delete', collection)
            self.tables[collection] = [r for r in self.table(collection) if not _matches(r, filters)]

    def rpc(self, procedure, params=None):
        with self._lock:
            self.calls.append(('rpc', procedure, params))
            self._check('rpc', procedure)
        handler = self.procedures.get(procedure)
        return handler(params) if handler else None


class FakeAuth:
    """Mimics the parts of the Supabase auth client the portal uses"""

    def __init__(self):
        self.users = {}  # email -> (password, auth_id)
        self.session_user = None
        self.listeners = []
        self.fail_sign_out = False

    def add_user(self, email, password, auth_id):
        self.users[email] = (password, auth_id)

    def sign_in_with_password(self, credentials):
        entry = self.users.get(credentials['email'])
        if not entry or entry[0] != credentials['password']:
            raise Exception("Invalid login credentials")
        self.session_user = SimpleNamespace(id=entry[1])
        self._emit('SIGNED_IN')
        return SimpleNamespace(user=self.session_user, session=SimpleNamespace(user=self.session_user))

    def sign_up(self, credentials):
        if credentials['email'] in self.users:
            raise Exception("User already registered")
        auth_id = f"auth-{len(self.users) + 1}"
        self.add_user(credentials['email'], credentials['password'], auth_id)
        self.last_sign_up = credentials
        return SimpleNamespace(user=SimpleNamespace(id=auth_id), session=None)

    def sign_out(self):
        if self.fail_sign_out:
            raise Exception("network down")
        self.session_user = None
        self._emit('SIGNED_OUT')

    def get_session(self):
        if self.session_user is None:
            return None
        return SimpleNamespace(user=self.session_user)

    def on_auth_state_change(self, callback):
        self.listeners.append(callback)
        return SimpleNamespace(unsubscribe=lambda: self.listeners.remove(callback))

    def _emit(self, event):
        session = SimpleNamespace(user=self.session_user) if self.session_user else None
        for listener in list(self.listeners):
            listener(event, session)


class RecordingAudit:
    """AuditLogger replacement that remembers actions"""

    def __init__(self):
        self.events = []

    def __getattr__(self, name):
        if not name.startswith('log_'):
            raise AttributeError(name)

        def record(*args, **kwargs):
            self.events.append((name, args, kwargs))
        return record

    def names(self):
        return [event[0] for event in self.events]
