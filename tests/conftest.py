# tests/conftest.py
import uuid
from types import SimpleNamespace

import pytest

from alchemist import create_app
from alchemist.services.realtime import ChangeFeed


# ---------- in-memory stand-ins for the supabase-py client ----------

class FakeResponse:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    def __init__(self, db, table):
        self.db = db
        self.table = table
        self.op = "select"
        self.payload = None
        self.filters = []
        self.max_rows = None

    def select(self, *_cols):
        self.op = "select"
        return self

    def insert(self, row):
        self.op, self.payload = "insert", row
        return self

    def update(self, patch):
        self.op, self.payload = "update", patch
        return self

    def eq(self, col, value):
        self.filters.append((col, value))
        return self

    def limit(self, n):
        self.max_rows = n
        return self

    def _matches(self, row):
        return all(str(row.get(c)) == str(v) for c, v in self.filters)

    def execute(self):
        self.db.calls.append((self.table, self.op))
        if self.table in self.db.fail_tables:
            raise RuntimeError(f"{self.table} unavailable")
        rows = self.db.tables.setdefault(self.table, [])
        if self.op == "insert":
            new_rows = self.payload if isinstance(self.payload, list) else [self.payload]
            out = []
            for r in new_rows:
                r = dict(r)
                r.setdefault("id", str(uuid.uuid4()))
                rows.append(r)
                out.append(dict(r))
            return FakeResponse(out)
        matched = [r for r in rows if self._matches(r)]
        if self.op == "update":
            for r in matched:
                r.update(self.payload)
        if self.max_rows is not None:
            matched = matched[: self.max_rows]
        return FakeResponse([dict(r) for r in matched])


class FakeBucket:
    def __init__(self, name, fail_times=0):
        self.name = name
        self.fail_times = fail_times
        self.upload_calls = []
        self.objects = {}

    def upload(self, path, data, options=None):
        self.upload_calls.append((path, options))
        if len(self.upload_calls) <= self.fail_times:
            raise ConnectionError("storage timeout")
        self.objects[path] = data
        return SimpleNamespace(path=path)

    def get_public_url(self, path):
        return f"https://storage.example.test/{self.name}/{path}"


class FakeStorage:
    def __init__(self):
        self.buckets = {}

    def from_(self, name):
        return self.buckets.setdefault(name, FakeBucket(name))


class FakeAuth:
    def __init__(self):
        self.tokens = {}

    def get_user(self, token):
        if token not in self.tokens:
            raise RuntimeError("invalid JWT")
        return SimpleNamespace(user=SimpleNamespace(**self.tokens[token]))


class FakeRpc:
    def __init__(self, db, name, params):
        self.db, self.name, self.params = db, name, params

    def execute(self):
        self.db.rpc_calls.append((self.name, self.params))
        return FakeResponse(None)


class FakeSupabase:
    def __init__(self):
        self.tables = {}
        self.calls = []
        self.rpc_calls = []
        self.fail_tables = set()
        self.storage = FakeStorage()
        self.auth = FakeAuth()

    def table(self, name):
        return FakeQuery(self, name)

    def rpc(self, name, params):
        return FakeRpc(self, name, params)

    def rows(self, name):
        return self.tables.setdefault(name, [])


class FakeHttpResponse:
    def __init__(self, status_code=200, body=None, text=""):
        self.status_code = status_code
        self._body = body
        self.text = text
        self.content = b"{}" if body is not None else b""

    def json(self):
        return self._body


class FakeHttp:
    """Records posts; answers with a fixed response."""

    def __init__(self, response=None):
        self.response = response or FakeHttpResponse(200, {})
        self.posts = []

    def post(self, url, json=None, **kwargs):
        self.posts.append((url, json, kwargs))
        return self.response


# ---------- fixtures ----------

@pytest.fixture
def fake_supabase():
    return FakeSupabase()


@pytest.fixture
def app(fake_supabase):
    return create_app("test", overrides={
        "SUPABASE": fake_supabase,
        "SUPABASE_ADMIN": fake_supabase,
        "CHANGE_FEED": ChangeFeed(),
        "STRIPE_SECRET_KEY": "sk_test_123",
        "STRIPE_PUBLISHABLE_KEY": "pk_test_123",
        "STRIPE_WEBHOOK_SECRET": "whsec_test",
        "RESEND_API_KEY": "re_test",
    })


@pytest.fixture
def client(app):
    with app.test_client() as c:
        yield c


@pytest.fixture
def login(client, fake_supabase):
    """Open a server session for a user; returns the user id."""
    def _login(user_id=None, email="user@example.com", **profile):
        user_id = user_id or str(uuid.uuid4())
        token = f"token-{user_id}"
        fake_supabase.auth.tokens[token] = {"id": user_id, "email": email}
        if profile:
            fake_supabase.rows("profiles").append({"id": user_id, "email": email, **profile})
        r = client.post("/api/session/login", json={"access_token": token})
        assert r.status_code == 200, r.get_json()
        return user_id
    return _login
