"""Test fixtures for the ledger MCP server tests."""

import itertools
from collections.abc import Callable
from pathlib import Path

import pytest

from ledger_mcp.database import Database
from ledger_mcp.ledger import LedgerService


@pytest.fixture
def db() -> Database:
    """Create in-memory database with schema."""
    database = Database(":memory:")
    database.init_schema()
    return database


@pytest.fixture
def ticking_db() -> Database:
    """In-memory database whose clock advances one microsecond per row."""
    ticks = itertools.count(1)

    def clock() -> str:
        return f"2026-01-01T00:00:00.{next(ticks):06d}+00:00"

    database = Database(":memory:", clock=clock)
    database.init_schema()
    return database


@pytest.fixture
def frozen_db() -> Database:
    """In-memory database where every row gets the same creation timestamp."""
    database = Database(":memory:", clock=lambda: "2026-01-01T00:00:00.000000+00:00")
    database.init_schema()
    return database


@pytest.fixture
def count_rows() -> Callable[[Database, str], int]:
    """Count the rows of a table through a store's connection."""

    def count(database: Database, table: str) -> int:
        row = database.connect().execute(f"SELECT COUNT(*) FROM {table}").fetchone()  # noqa: S608
        return row[0]

    return count


@pytest.fixture
def export_dir(tmp_path: Path) -> Path:
    return tmp_path / "exports"


@pytest.fixture
def ledger(ticking_db: Database, export_dir: Path) -> LedgerService:
    """Ledger service over a ticking in-memory database."""
    return LedgerService(ticking_db, export_dir)


@pytest.fixture
def populated_db(db: Database) -> Database:
    """User with one zero-balance account and one account opened at 2000.

    Mirrors the seed data shipped with the schema.
    """
    user_id = db.create_user("Valentin Montagne", "contact@vm-it-consulting.com")
    db.create_user("Amélie Dal", "amelie.dal@gmail.com")
    db.create_account("Checking", 0, user_id)
    db.create_account("Compte courant", 2000, user_id)
    return db
