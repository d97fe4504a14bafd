from __future__ import annotations

import itertools
import uuid
from collections import defaultdict
from types import SimpleNamespace
from urllib.parse import unquote

import pytest
from supabase import AuthApiError, PostgrestAPIError

from prepbanker.app import create_app


class FakeResult:
    def __init__(self, data, count=None):
        self.data = data
        self.count = count


class FakeQuery:
    """Chainable stand-in for a postgrest request builder, backed by plain lists."""

    def __init__(self, backend: "FakeSupabase", table: str):
        self.backend = backend
        self.table = table
        self.op = "select"
        self.filters: list[tuple[str, object]] = []
        self.order_by: tuple[str, bool] | None = None
        self.max_rows: int | None = None
        self.payload = None
        self.count_mode = None

    def select(self, *columns, count=None):
        self.op = "select"
        self.count_mode = count
        return self

    def insert(self, payload):
        self.op = "insert"
        self.payload = payload
        return self

    def update(self, payload):
        self.op = "update"
        self.payload = payload
        return self

    def delete(self):
        self.op = "delete"
        return self

    def eq(self, column, value):
        self.filters.append((column, value))
        return self

    def order(self, column, desc=False):
        self.order_by = (column, desc)
        return self

    def limit(self, n):
        self.max_rows = n
        return self

    def _matches(self, row: dict) -> bool:
        return all(row.get(col) == val for col, val in self.filters)

    def execute(self):
        self.backend.check_failure(self.table, self.op)
        rows = self.backend.tables[self.table]

        if self.op == "insert":
            items = self.payload if isinstance(self.payload, list) else [self.payload]
            inserted = [self.backend.stamp(dict(item)) for item in items]
            rows.extend(inserted)
            return FakeResult(inserted)

        matched = [r for r in rows if self._matches(r)]
        if self.op == "update":
            for r in matched:
                r.update(self.payload)
            return FakeResult(matched)
        if self.op == "delete":
            self.backend.tables[self.table] = [r for r in rows if not self._matches(r)]
            return FakeResult(matched)

        if self.order_by:
            column, desc = self.order_by
            matched.sort(key=lambda r: str(r.get(column) or ""), reverse=desc)
        total = len(matched)
        if self.max_rows is not None:
            matched = matched[: self.max_rows]
        return FakeResult([dict(r) for r in matched], total if self.count_mode else None)


class FakeRpc:
    def __init__(self, backend: "FakeSupabase", fn: str, params: dict):
        self.backend = backend
        self.fn = fn
        self.params = params

    def execute(self):
        self.backend.check_failure("rpc", self.fn)
        self.backend.rpc_calls.append((self.fn, self.params))
        return FakeResult(None)


class FakeAuth:
    def __init__(self):
        self.users: dict[str, dict] = {}
        self.sign_outs = 0
        self.sessions: list[tuple[str, str]] = []
        self.reset_requests: list[tuple[str, dict]] = []
        self.verified_tokens: list[str] = []
        self.password_updates: list[str] = []
        self.valid_recovery_tokens = {"good-token"}

    def add_user(self, email: str, password: str, full_name: str = "") -> dict:
        user = {"id": str(uuid.uuid4()), "email": email, "password": password, "full_name": full_name}
        self.users[email] = user
        return user

    def _user(self, record: dict):
        return SimpleNamespace(
            id=record["id"],
            email=record["email"],
            user_metadata={"full_name": record["full_name"]},
        )

    def sign_in_with_password(self, credentials: dict):
        record = self.users.get(credentials["email"])
        if record is None or record["password"] != credentials["password"]:
            raise AuthApiError("Invalid login credentials", 400, "invalid_credentials")
        session = SimpleNamespace(access_token=f"access-{record['id']}", refresh_token=f"refresh-{record['id']}")
        return SimpleNamespace(user=self._user(record), session=session)

    def sign_up(self, credentials: dict):
        if credentials["email"] in self.users:
            raise AuthApiError("User already registered", 422, "user_already_exists")
        metadata = credentials.get("options", {}).get("data", {})
        record = self.add_user(credentials["email"], credentials["password"], metadata.get("full_name", ""))
        record["metadata"] = metadata
        return SimpleNamespace(user=self._user(record), session=None)

    def set_session(self, access_token: str, refresh_token: str):
        self.sessions.append((access_token, refresh_token))

    def sign_out(self):
        self.sign_outs += 1

    def reset_password_for_email(self, email: str, options: dict):
        self.reset_requests.append((email, options))

    def verify_otp(self, params: dict):
        if params.get("token_hash") not in self.valid_recovery_tokens:
            raise AuthApiError("Token has expired or is invalid", 403, "otp_expired")
        self.verified_tokens.append(params["token_hash"])
        return SimpleNamespace(user=None, session=None)

    def update_user(self, attributes: dict):
        self.password_updates.append(attributes["password"])
        return SimpleNamespace(user=None)


class FakeSupabase:
    """In-memory double for ``supabase.Client`` covering the calls the portal makes."""

    def __init__(self):
        self.tables: dict[str, list[dict]] = defaultdict(list)
        self.failures: set = set()
        self.rpc_calls: list[tuple[str, dict]] = []
        self.tokens: list[str] = []
        self.keys: list[str] = []
        self.auth = FakeAuth()
        self.postgrest = SimpleNamespace(auth=self.tokens.append)
        self._clock = itertools.count(1)

    def stamp(self, row: dict) -> dict:
        row.setdefault("id", str(uuid.uuid4()))
        row.setdefault("created_at", f"2025-01-01T00:00:{next(self._clock):02d}+00:00")
        return row

    def seed(self, table: str, *rows: dict) -> list[dict]:
        stamped = [self.stamp(dict(r)) for r in rows]
        self.tables[table].extend(stamped)
        return stamped

    def fail(self, table: str, op: str | None = None) -> None:
        self.failures.add((table, op) if op else table)

    def check_failure(self, table: str, op: str) -> None:
        if table in self.failures or (table, op) in self.failures:
            raise PostgrestAPIError({"message": f"{op} on {table} failed", "code": "XX000"})

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rpc(self, fn: str, params: dict) -> FakeRpc:
        return FakeRpc(self, fn, params)


@pytest.fixture()
def fake() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture()
def app(fake):
    def factory(url, key):
        fake.keys.append(key)
        return fake

    return create_app(
        {
            "TESTING": True,
            "SECRET_KEY": "test-secret",
            "SUPABASE_URL": "http://supabase.test",
            "SUPABASE_ANON_KEY": "anon-key",
            "SUPABASE_SERVICE_ROLE_KEY": "service-key",
            "ADMIN_USERNAME": "admin",
            "ADMIN_PASSWORD": "admin-pass",
            "ADMIN_PASSWORD_HASH": "",
            "SUPABASE_CLIENT_FACTORY": factory,
        }
    )


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def user_client(client):
    with client.session_transaction() as sess:
        sess["user"] = {"id": "user-1", "email": "asha@example.com", "full_name": "Asha Rao"}
        sess["access_token"] = "access-user-1"
        sess["refresh_token"] = "refresh-user-1"
    return client


@pytest.fixture()
def admin_client(client):
    with client.session_transaction() as sess:
        sess["admin_auth"] = True
    return client


@pytest.fixture()
def ctx(app):
    with app.test_request_context():
        yield


@pytest.fixture()
def location():
    def _location(resp) -> str:
        return unquote(resp.headers.get("Location", ""))

    return _location
