"""
Shared test fixtures.

Unit tests run against an in-memory SQLite database wrapped in the small part
of the asyncpg pool/connection API that ``techstore.db`` uses (``acquire``,
``transaction``, ``fetch``, ``fetchrow``, ``fetchval``, ``execute``). SQL is
passed through with ``$n`` placeholders rewritten to ``?n``.

Tests marked ``postgresql`` talk to a real server and are skipped unless
TECHSTORE_TEST_DATABASE_URL points at one that accepts connections.
"""

import asyncio
import os
import re
import sqlite3
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

import pytest
from fastapi.testclient import TestClient

from techstore import db
from techstore.auth import create_access_token, hash_password
from techstore.rate_limit import limiter
from techstore.schema import SCHEMA_STATEMENTS
from techstore.settings import settings


POSTGRESQL_URL = os.environ.get("TECHSTORE_TEST_DATABASE_URL", "")

DEFAULT_PASSWORD = "secret123"

sqlite3.register_adapter(Decimal, str)
sqlite3.register_adapter(datetime, lambda value: value.isoformat())
sqlite3.register_converter("NUMERIC", lambda raw: Decimal(raw.decode()).quantize(Decimal("0.01")))
sqlite3.register_converter("TIMESTAMPTZ", lambda raw: datetime.fromisoformat(raw.decode()))
sqlite3.register_converter("BOOLEAN", lambda raw: bool(int(raw)))

_PLACEHOLDER_RE = re.compile(r"\$(\d+)")


def to_sqlite(sql: str) -> str:
    sql = sql.replace("BIGSERIAL PRIMARY KEY", "INTEGER PRIMARY KEY AUTOINCREMENT")
    return _PLACEHOLDER_RE.sub(r"?\1", sql)


class SQLiteConnection:
    """asyncpg.Connection look-alike over one sqlite3 connection."""

    def __init__(self, raw: sqlite3.Connection):
        self.raw = raw

    def _run(self, sql: str, args):
        return self.raw.execute(to_sqlite(sql), args)

    async def fetch(self, sql: str, *args):
        return self._run(sql, args).fetchall()

    async def fetchrow(self, sql: str, *args):
        rows = self._run(sql, args).fetchall()
        return rows[0] if rows else None

    async def fetchval(self, sql: str, *args):
        row = await self.fetchrow(sql, *args)
        return row[0] if row is not None else None

    async def execute(self, sql: str, *args) -> str:
        self._run(sql, args)
        return "OK"

    @asynccontextmanager
    async def transaction(self):
        self.raw.execute("BEGIN")
        try:
            yield self
        except BaseException:
            self.raw.execute("ROLLBACK")
            raise
        else:
            self.raw.execute("COMMIT")


class SQLitePool:
    """asyncpg.Pool look-alike. Counts acquisitions so tests can assert storage was untouched."""

    def __init__(self):
        raw = sqlite3.connect(
            ":memory:",
            detect_types=sqlite3.PARSE_DECLTYPES,
            check_same_thread=False,
            isolation_level=None,
        )
        raw.row_factory = sqlite3.Row
        raw.execute("PRAGMA foreign_keys = ON")
        self.conn = SQLiteConnection(raw)
        self.acquired = 0

    @asynccontextmanager
    async def acquire(self, timeout=None):
        self.acquired += 1
        yield self.conn

    async def close(self):
        self.conn.raw.close()

    # --- Seeding and inspection helpers (synchronous, bypass the app) ---

    def create_schema(self):
        for statement in SCHEMA_STATEMENTS:
            self.conn.raw.execute(to_sqlite(statement))

    def add_user(self, name: str = "Asha Rao", email: str = "asha@example.com", password: str = DEFAULT_PASSWORD) -> int:
        now = datetime.now(timezone.utc)
        cur = self.conn.raw.execute(
            "INSERT INTO users (name, email, password_hash, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
            (name, email.lower(), hash_password(password), now, now),
        )
        return cur.lastrowid

    def add_product(
        self,
        name: str = "Ryzen 9 7950X",
        price: str = "1099.00",
        category: str = "processors",
        stock: int = 10,
        product_id: Optional[int] = None,
    ) -> int:
        now = datetime.now(timezone.utc)
        cur = self.conn.raw.execute(
            """
            INSERT INTO products (id, name, price, category, description, image, image_alt, stock, created_at, updated_at)
            VALUES (?, ?, ?, ?, '', '', ?, ?, ?, ?)
            """,
            (product_id, name, Decimal(price), category, name, stock, now, now),
        )
        return cur.lastrowid

    def rows(self, sql: str, *args) -> list:
        return self.conn.raw.execute(sql, args).fetchall()

    def count(self, table: str) -> int:
        return self.conn.raw.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]


# --- Marker-based skipping ---


def _can_connect_postgresql() -> bool:
    if not POSTGRESQL_URL:
        return False
    try:
        import asyncpg

        async def try_connect():
            conn = await asyncpg.connect(POSTGRESQL_URL, timeout=3)
            await conn.close()

        asyncio.run(try_connect())
    except Exception:
        return False
    return True


_pg_available: Optional[bool] = None


def _is_pg_available() -> bool:
    global _pg_available
    if _pg_available is None:
        _pg_available = _can_connect_postgresql()
    return _pg_available


def pytest_collection_modifyitems(config: pytest.Config, items: list) -> None:
    """Skip postgresql-marked tests when no server is reachable."""
    for item in items:
        if "postgresql" in item.keywords and not _is_pg_available():
            item.add_marker(pytest.mark.skip(reason="PostgreSQL is not available"))


# --- Fixtures ---


@pytest.fixture(autouse=True)
def fast_test_settings(monkeypatch):
    """Cheap password hashing and no throttling in tests."""
    monkeypatch.setattr(settings, "bcrypt_rounds", 4)
    monkeypatch.setattr(limiter, "enabled", False)


@pytest.fixture
def pool(monkeypatch):
    """In-memory database with the full schema, installed as the app's pool."""
    fake = SQLitePool()
    fake.create_schema()
    monkeypatch.setattr(db, "_pool", fake)
    yield fake
    fake.conn.raw.close()


@pytest.fixture
def client(pool):
    from techstore.main import app
    return TestClient(app)


def auth_headers(user_id: int) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}
