"""Shared pytest fixtures for GearFlow tests."""

import copy
import fnmatch
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Ensure project root is on sys.path so 'gearflow' is importable.
_project_root = str(Path(__file__).resolve().parent.parent)
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from gearflow.exceptions import AuthenticationError, BackendError  # noqa: E402
from gearflow.utils.helpers import parse_timestamp  # noqa: E402

NOW = datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _reset_db_engine():
    """Autouse fixture: reset the global DB engine before and after every test.

    This prevents cross-test pollution when tests create their own in-memory
    databases.
    """
    from gearflow.database import reset_engine
    reset_engine()
    yield
    reset_engine()


@pytest.fixture()
def test_db():
    """Provide an in-memory SQLite database with all tables created.

    Yields a database URL string. The engine is automatically torn down
    after the test by the autouse ``_reset_db_engine`` fixture.
    """
    from gearflow.database import reset_engine, init_db
    reset_engine()
    db_url = "sqlite:///:memory:"
    init_db(database_url=db_url, echo=False)
    yield db_url


# ---------------------------------------------------------------------------
# In-memory backend
# ---------------------------------------------------------------------------


def _comparable(value):
    if isinstance(value, str):
        parsed = parse_timestamp(value)
        if parsed is not None:
            return parsed
    return value


def _matches(row, filters):
    for column, op, value in filters or ():
        actual = row.get(column)
        if op == "eq" and actual != value:
            return False
        if op == "neq" and actual == value:
            return False
        if op == "is" and actual is not value and actual != value:
            return False
        if op == "in" and actual not in value:
            return False
        if op == "ilike" and not fnmatch.fnmatch(str(actual or "").lower(), value.replace("%", "*").lower()):
            return False
        if op in ("lt", "lte", "gt", "gte"):
            if actual is None:
                return False
            left, right = _comparable(actual), _comparable(value)
            if op == "lt" and not left < right:
                return False
            if op == "lte" and not left <= right:
                return False
            if op == "gt" and not left > right:
                return False
            if op == "gte" and not left >= right:
                return False
    return True


class FakeBackend:
    """Dict-backed stand-in for ``BackendClient`` with the same async surface.

    ``gear_requests`` selects that ask for ``gear_request_gears(...)`` get
    their line items embedded the way the REST API returns them.
    """

    def __init__(self, tables=None, users=None):
        self.tables = copy.deepcopy(tables or {})
        self.users = dict(users or {})
        self.rpc_calls = []
        self.rpc_results = {}
        self.fail_tables = set()
        self.closed = False
        self._seq = 0

    def rows(self, table):
        return self.tables.setdefault(table, [])

    def find(self, table, row_id):
        return next((r for r in self.rows(table) if r.get("id") == row_id), None)

    async def select(self, table, columns="*", filters=None, order=None, limit=None, offset=None):
        if table in self.fail_tables:
            raise BackendError("relation unavailable: " + table, status_code=500)
        rows = [copy.deepcopy(r) for r in self.rows(table) if _matches(r, filters)]
        if order:
            column, _, rest = order.partition(".")
            present = [r for r in rows if r.get(column) is not None]
            missing = [r for r in rows if r.get(column) is None]
            present.sort(key=lambda r: _comparable(r[column]), reverse=rest.startswith("desc"))
            rows = present + missing
        if table == "gear_requests" and "gear_request_gears(" in columns:
            for row in rows:
                row.setdefault("gear_request_gears", [
                    {"gear_id": line["gear_id"], "quantity": line.get("quantity", 1)}
                    for line in self.rows("gear_request_gears")
                    if line.get("gear_request_id") == row.get("id")
                ])
        if offset:
            rows = rows[offset:]
        if limit is not None:
            rows = rows[:limit]
        return rows

    async def select_one(self, table, columns="*", filters=None):
        rows = await self.select(table, columns=columns, filters=filters, limit=1)
        return rows[0] if rows else None

    async def count(self, table, filters=None):
        return len(await self.select(table, filters=filters))

    async def insert(self, table, values):
        items = values if isinstance(values, list) else [values]
        stored = []
        for item in items:
            self._seq += 1
            row = dict(item)
            row.setdefault("id", "{0}-{1}".format(table, self._seq))
            row.setdefault("created_at", NOW.isoformat())
            self.rows(table).append(row)
            stored.append(copy.deepcopy(row))
        return stored

    async def update(self, table, values, filters):
        if not filters:
            raise ValueError("update requires at least one filter")
        updated = []
        for row in self.rows(table):
            if _matches(row, filters):
                row.update(values)
                updated.append(copy.deepcopy(row))
        return updated

    async def delete(self, table, filters):
        self.tables[table] = [r for r in self.rows(table) if not _matches(r, filters)]

    async def rpc(self, function, params=None):
        params = params or {}
        self.rpc_calls.append((function, params))
        if function in self.rpc_results:
            return self.rpc_results[function]
        if function == "cancel_gear_request":
            await self.update(
                "gear_requests", {"status": "Cancelled"}, [("id", "eq", params["p_request_id"])],
            )
            return None
        if function == "log_gear_activity":
            rows = await self.insert("gear_activity_log", {
                "user_id": params.get("p_user_id"),
                "gear_id": params.get("p_gear_id"),
                "request_id": params.get("p_request_id"),
                "activity_type": params.get("p_activity_type"),
                "status": params.get("p_status"),
                "notes": params.get("p_notes"),
                "details": params.get("p_details"),
            })
            return rows[0]["id"]
        return None

    async def get_user(self, access_token):
        user = self.users.get(access_token)
        if user is None:
            raise AuthenticationError("Authentication failed")
        return dict(user)

    async def aclose(self):
        self.closed = True

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()


def sample_tables():
    """Three profiles, three gears, three requests and their activity."""
    return {
        "profiles": [
            {"id": "admin-1", "full_name": "Ada Admin", "email": "ada@example.com", "role": "Admin"},
            {"id": "user-1", "full_name": "Alice", "email": "alice@example.com", "role": "User"},
            {"id": "user-2", "full_name": "Bob", "email": "bob@example.com", "role": "User"},
        ],
        "gears": [
            {"id": "gear-1", "name": "Camera", "category": "Video", "status": "Checked Out",
             "condition": "Good", "checked_out_to": "user-2",
             "current_request_id": "req-2", "created_at": "2024-01-01T00:00:00Z"},
            {"id": "gear-2", "name": "Tripod", "category": "Support", "status": "Available",
             "condition": "Good", "created_at": "2024-01-01T00:00:00Z"},
            {"id": "gear-3", "name": "Microphone", "category": "Audio", "status": "Available",
             "condition": "Good", "created_at": "2024-01-01T00:00:00Z"},
        ],
        "gear_requests": [
            {"id": "req-1", "user_id": "user-1", "status": "Pending",
             "expected_duration": "48hours", "reason": "Shoot",
             "created_at": "2024-03-02T09:00:00Z", "due_date": None},
            {"id": "req-2", "user_id": "user-2", "status": "Checked Out",
             "expected_duration": "1 week",
             "created_at": "2024-03-01T08:00:00Z", "due_date": "2024-03-05T08:00:00Z"},
            {"id": "req-3", "user_id": "user-1", "status": "Checked In",
             "expected_duration": "48hours",
             "created_at": "2024-03-01T00:00:00Z", "due_date": "2024-03-03T00:00:00Z"},
        ],
        "gear_request_gears": [
            {"id": "line-1", "gear_request_id": "req-1", "gear_id": "gear-2", "quantity": 1},
            {"id": "line-2", "gear_request_id": "req-2", "gear_id": "gear-1", "quantity": 1},
            {"id": "line-3", "gear_request_id": "req-3", "gear_id": "gear-3", "quantity": 1},
        ],
        "gear_activity_log": [
            {"id": "act-1", "user_id": "user-2", "gear_id": "gear-1", "request_id": "req-2",
             "activity_type": "Checkout", "created_at": "2024-03-01T10:00:00Z"},
            {"id": "act-2", "user_id": "user-1", "gear_id": "gear-3", "request_id": "req-3",
             "activity_type": "Checkout", "created_at": "2024-03-01T11:00:00Z"},
            {"id": "act-3", "user_id": "user-1", "gear_id": "gear-3", "request_id": "req-3",
             "activity_type": "Check-in", "created_at": "2024-03-03T09:30:00Z"},
        ],
        "notifications": [
            {"id": "n-1", "user_id": "user-1", "title": "Welcome", "message": "Hi",
             "type": "system", "is_read": False, "created_at": "2024-03-01T00:00:00Z"},
            {"id": "n-2", "user_id": "user-1", "title": "Old", "message": "Seen",
             "type": "system", "is_read": True, "created_at": "2024-02-01T00:00:00Z"},
            {"id": "n-3", "user_id": "user-2", "title": "Bob's", "message": "Private",
             "type": "system", "is_read": False, "created_at": "2024-03-02T00:00:00Z"},
        ],
        "checkins": [],
    }


TOKENS = {
    "admin-token": {"id": "admin-1", "email": "ada@example.com"},
    "alice-token": {"id": "user-1", "email": "alice@example.com"},
    "bob-token": {"id": "user-2", "email": "bob@example.com"},
}


@pytest.fixture()
def fake_backend():
    """A FakeBackend seeded with :func:`sample_tables` and three tokens."""
    return FakeBackend(sample_tables(), users=TOKENS)


@pytest.fixture()
def empty_backend():
    return FakeBackend(users=TOKENS)
