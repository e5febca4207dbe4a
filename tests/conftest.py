import copy
import re
from types import SimpleNamespace

import pytest


class FakeQuery:
    """In-memory stand-in for a PostgREST query builder."""

    def __init__(self, client, table):
        self.client = client
        self.table_name = table
        self.action = 'select'
        self.payload = None
        self.on_conflict = ''
        self.filters = []
        self.orders = []
        self.limit_n = None
        self.embeds = []

    # builders
    def select(self, columns='*'):
        self.action = 'select'
        self.embeds = re.findall(r'(\w+)\(', columns)
        return self

    def insert(self, payload):
        self.action, self.payload = 'insert', payload
        return self

    def update(self, payload):
        self.action, self.payload = 'update', payload
        return self

    def upsert(self, payload, on_conflict=''):
        self.action, self.payload, self.on_conflict = 'upsert', payload, on_conflict
        return self

    def delete(self):
        self.action = 'delete'
        return self

    # filters
    def eq(self, column, value):
        self.filters.append(lambda r: r.get(column) == value)
        return self

    def neq(self, column, value):
        self.filters.append(lambda r: r.get(column) != value)
        return self

    def is_(self, column, value):
        assert value == 'null'
        self.filters.append(lambda r: r.get(column) is None)
        return self

    def in_(self, column, values):
        values = list(values)
        self.filters.append(lambda r: r.get(column) in values)
        return self

    def gte(self, column, value):
        self.filters.append(lambda r: r.get(column) is not None and str(r[column]) >= value)
        return self

    def lte(self, column, value):
        self.filters.append(lambda r: r.get(column) is not None and str(r[column]) <= value)
        return self

    def or_(self, expression):
        clauses = []
        for part in expression.split(','):
            column, op, pattern = part.split('.', 2)
            assert op == 'ilike'
            regex = re.compile('^' + '.*'.join(re.escape(p) for p in pattern.split('%')) + '$', re.IGNORECASE)
            clauses.append((column, regex))
        self.filters.append(lambda r: any(rx.match(str(r.get(col) or '')) for col, rx in clauses))
        return self

    def order(self, column, desc=False):
        self.orders.append((column, desc))
        return self

    def limit(self, n):
        self.limit_n = n
        return self

    def _matches(self, row):
        return all(f(row) for f in self.filters)

    def _new_id(self):
        self.client.counter += 1
        return f"{self.table_name}-{self.client.counter}"

    def execute(self):
        self.client.calls.append((self.table_name, self.action))
        if self.table_name in self.client.fail_tables:
            raise Exception(f"{self.table_name} unavailable")
        rows = self.client.tables.setdefault(self.table_name, [])

        if self.action == 'select':
            result = [copy.deepcopy(r) for r in rows if self._matches(r)]
            for column, desc in reversed(self.orders):
                result.sort(key=lambda r: (r.get(column) is None, r.get(column) or ''), reverse=desc)
            if self.limit_n is not None:
                result = result[:self.limit_n]
            for embed in self.embeds:
                fk = embed[:-1] + '_id'
                related = {r['id']: r for r in self.client.tables.get(embed, [])}
                for r in result:
                    r[embed] = copy.deepcopy(related.get(r.get(fk)))
            return SimpleNamespace(data=result)

        if self.action == 'insert':
            payload = self.payload if isinstance(self.payload, list) else [self.payload]
            inserted = []
            for item in payload:
                row = copy.deepcopy(item)
                row.setdefault('id', self._new_id())
                rows.append(row)
                inserted.append(copy.deepcopy(row))
            return SimpleNamespace(data=inserted)

        if self.action == 'update':
            updated = []
            for r in rows:
                if self._matches(r):
                    r.update(copy.deepcopy(self.payload))
                    updated.append(copy.deepcopy(r))
            return SimpleNamespace(data=updated)

        if self.action == 'upsert':
            keys = [k.strip() for k in self.on_conflict.split(',') if k.strip()] or ['id']
            payload = self.payload if isinstance(self.payload, list) else [self.payload]
            result = []
            for item in payload:
                existing = next((r for r in rows if all(r.get(k) == item.get(k) for k in keys)), None)
                if existing is not None:
                    existing.update(copy.deepcopy(item))
                    result.append(copy.deepcopy(existing))
                else:
                    row = copy.deepcopy(item)
                    row.setdefault('id', self._new_id())
                    rows.append(row)
                    result.append(copy.deepcopy(row))
            return SimpleNamespace(data=result)

        if self.action == 'delete':
            deleted = [r for r in rows if self._matches(r)]
            self.client.tables[self.table_name] = [r for r in rows if not self._matches(r)]
            return SimpleNamespace(data=deleted)

        raise AssertionError(f"unknown action {self.action}")


class FakeAuth:
    def __init__(self):
        self.users = {}
        self.signed_out = False

    def add_user(self, user_id, email, password):
        self.users[email] = (password, user_id)

    def sign_in_with_password(self, credentials):
        entry = self.users.get(credentials['email'])
        if entry is None or entry[0] != credentials['password']:
            raise Exception("Invalid login credentials")
        return SimpleNamespace(user=SimpleNamespace(id=entry[1], email=credentials['email']))

    def sign_out(self):
        self.signed_out = True


class FakeRpc:
    def __init__(self, client, name, params):
        self.client, self.name, self.params = client, name, params

    def execute(self):
        self.client.rpc_calls.append((self.name, self.params))
        return SimpleNamespace(data=None)


class FakeSupabase:
    def __init__(self, tables=None):
        self.tables = copy.deepcopy(tables or {})
        self.calls = []
        self.rpc_calls = []
        self.fail_tables = set()
        self.counter = 0
        self.auth = FakeAuth()

    def table(self, name):
        return FakeQuery(self, name)

    def rpc(self, name, params):
        return FakeRpc(self, name, params)

    def writes(self, table):
        return [action for t, action in self.calls if t == table and action != 'select']


@pytest.fixture
def fake_client():
    return FakeSupabase()
