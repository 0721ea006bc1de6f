"""
Pytest configuration and fixtures for Yanuka tests.

InMemoryStore is a StoreClient double that evaluates compiled queries the
way PostgREST does for the cases the data layer relies on, in particular
``data->>field`` yielding TEXT (booleans become "true"/"false", numbers
their digits) while ``data->field`` keeps jsonb values that compare and sort
by type, so the JSON-column compiler is exercised end-to-end.
"""

import asyncio
import copy
import json
import operator
import os
from collections import defaultdict

import pytest

# Set test environment before importing yanuka modules
os.environ["YANUKA_ENV"] = "development"
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_ANON_KEY", "test-anon-key-not-real")

from yanuka.db.adapter import ChangeKind, RowChange
from yanuka.db.collections import DATA_COLUMN, Encoding, default_registry
from yanuka.db.errors import RelationNotProvisioned, StoreTransportError
from yanuka.db.query import Operator, is_json_path, is_text_path
from yanuka.db.repository import DocumentRepository

_COMPARE = {
    Operator.GT: operator.gt,
    Operator.GTE: operator.ge,
    Operator.LT: operator.lt,
    Operator.LTE: operator.le,
}


def _extract(row: dict, column: str):
    """Column value, or a JSON path evaluated the way Postgres does."""
    if not is_json_path(column):
        return row.get(column)
    text = is_text_path(column)
    field = column.split("->>" if text else "->", 1)[1]
    value = (row.get(DATA_COLUMN) or {}).get(field)
    if not text or value is None:
        return value
    # ->> yields TEXT for every scalar
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def _sort_key(value):
    """jsonb ordering across types: string < number < boolean < containers."""
    if isinstance(value, bool):
        return (2, value)
    if isinstance(value, (int, float)):
        return (1, value)
    if isinstance(value, str):
        return (0, value)
    return (3, json.dumps(value, sort_keys=True))


def _matches(row: dict, f) -> bool:
    actual = _extract(row, f.column)
    if f.op == Operator.EQ:
        return actual == f.value
    if actual is None:
        return False
    if f.op == Operator.NEQ:
        return actual != f.value
    try:
        return _COMPARE[f.op](actual, f.value)
    except TypeError:
        return False


class InMemoryStore:
    """
    Relational StoreClient double backed by dicts.

    Every call yields to the loop once before touching data, so concurrent
    callers interleave like real network round trips.
    """

    def __init__(self, missing_tables=()):
        self.tables: dict[str, list[dict]] = defaultdict(list)
        self.missing = set(missing_tables)
        self.calls: list[tuple[str, str]] = []
        self.callbacks: dict[str, list] = defaultdict(list)
        self.channels_opened = 0
        self.channels_closed = 0

    def _check(self, method: str, table: str) -> None:
        self.calls.append((method, table))
        if table in self.missing:
            raise RelationNotProvisioned(table)

    def _find(self, table: str, row_id: str) -> dict | None:
        for row in self.tables[table]:
            if row["id"] == row_id:
                return row
        return None

    def emit(self, table: str, change: RowChange) -> None:
        for callback in list(self.callbacks[table]):
            callback(change)

    async def select(self, table, filters, order=None, limit=None, offset=None):
        await asyncio.sleep(0)
        self._check("select", table)
        rows = [row for row in self.tables[table] if all(_matches(row, f) for f in filters)]
        if order:
            present = [row for row in rows if _extract(row, order.column) is not None]
            absent = [row for row in rows if _extract(row, order.column) is None]
            present.sort(key=lambda row: _sort_key(_extract(row, order.column)), reverse=order.descending)
            rows = present + absent
        rows = rows[offset or 0:]
        if limit is not None:
            rows = rows[:limit]
        return copy.deepcopy(rows)

    async def insert(self, table, row):
        await asyncio.sleep(0)
        self._check("insert", table)
        if self._find(table, row["id"]) is not None:
            raise StoreTransportError("duplicate key value violates unique constraint", code="23505")
        stored = copy.deepcopy(row)
        self.tables[table].append(stored)
        self.emit(table, RowChange(kind=ChangeKind.INSERT, new=copy.deepcopy(stored)))
        return copy.deepcopy(stored)

    async def update(self, table, row_id, partial_row):
        await asyncio.sleep(0)
        self._check("update", table)
        row = self._find(table, row_id)
        if row is None:
            return None
        before = copy.deepcopy(row)
        row.update(copy.deepcopy(partial_row))
        self.emit(table, RowChange(kind=ChangeKind.UPDATE, new=copy.deepcopy(row), old=before))
        return copy.deepcopy(row)

    async def delete(self, table, row_id):
        await asyncio.sleep(0)
        self._check("delete", table)
        row = self._find(table, row_id)
        if row is not None:
            self.tables[table].remove(row)
            self.emit(table, RowChange(kind=ChangeKind.DELETE, old={"id": row_id}))

    async def count(self, table, filters):
        await asyncio.sleep(0)
        self._check("count", table)
        return sum(1 for row in self.tables[table] if all(_matches(row, f) for f in filters))

    async def subscribe(self, table, callback):
        self.callbacks[table].append(callback)
        self.channels_opened += 1

        async def unsubscribe():
            self.callbacks[table].remove(callback)
            self.channels_closed += 1

        return unsubscribe


class SelectOnlyStore(InMemoryStore):
    """A store without a count-only path."""

    count = None


class TickClock:
    """Strictly increasing ISO timestamps, one per call."""

    def __init__(self):
        self.ticks = 0

    def __call__(self) -> str:
        self.ticks += 1
        return f"2026-10-19T08:00:00.{self.ticks:06d}+00:00"


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def clock():
    return TickClock()


@pytest.fixture(params=[Encoding.JSON_COLUMN, Encoding.FLAT_COLUMNS], ids=["json", "flat"])
def encoding(request):
    return request.param


@pytest.fixture
def registry(encoding):
    return default_registry(encoding)


@pytest.fixture
def repo(store, registry, clock):
    """Repository over the in-memory store, once per encoding."""
    return DocumentRepository(store, registry=registry, clock=clock)


@pytest.fixture
def json_repo(store, clock):
    return DocumentRepository(store, registry=default_registry(Encoding.JSON_COLUMN), clock=clock)


@pytest.fixture
def flat_repo(store, clock):
    return DocumentRepository(store, registry=default_registry(Encoding.FLAT_COLUMNS), clock=clock)


@pytest.fixture
def make_store():
    return InMemoryStore


@pytest.fixture
def select_only_store():
    return SelectOnlyStore()


@pytest.fixture
def sample_books():
    return [
        {"title": "Likutei Moharan", "author": "Rebbe Nachman", "isActive": True, "orderIndex": 1},
        {"title": "Sefer HaMidot", "author": "Rebbe Nachman", "isActive": True, "orderIndex": 2},
        {"title": "Orchot Tzadikim", "author": "Unknown", "isActive": False, "orderIndex": 3},
    ]
