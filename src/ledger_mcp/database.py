"""SQLite schema and storage operations for the ledger."""

import sqlite3
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any

from .exceptions import ConcurrencyError, IntegrityError, NotFoundError
from .models import Account, Transaction, TransactionType, User
from .utils import effect


SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    name         TEXT NOT NULL,
    email        TEXT NOT NULL,
    creation_ts  TEXT NOT NULL,
    accounts     INTEGER NOT NULL DEFAULT 0   -- owned accounts, never decremented
);

CREATE TABLE IF NOT EXISTS accounts (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    name            TEXT NOT NULL,
    amount          TEXT NOT NULL DEFAULT '0',  -- opening_amount + sum of effects
    opening_amount  TEXT NOT NULL DEFAULT '0',
    user_id         INTEGER NOT NULL REFERENCES users (id),
    transactions    INTEGER NOT NULL DEFAULT 0,
    creation_ts     TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS transactions (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    name         TEXT NOT NULL,
    amount       TEXT NOT NULL CHECK (CAST(amount AS REAL) >= 0),
    type         INTEGER NOT NULL CHECK (type IN (0, 1)),  -- 0 out, 1 in
    account_id   INTEGER NOT NULL REFERENCES accounts (id),
    creation_ts  TEXT NOT NULL
);
"""

INDEXES = """
CREATE INDEX IF NOT EXISTS idx_accounts_user ON accounts(user_id);
CREATE INDEX IF NOT EXISTS idx_tx_account_created ON transactions(account_id, creation_ts, id);
"""

TRANSACTION_COLUMNS = "id, name, amount, type, account_id, creation_ts"


def decimal_text(value: object) -> str:
    """Exact text form of an amount as stored in the amount columns."""
    number = value if isinstance(value, Decimal) else Decimal(str(value))
    return str(number)


def utc_timestamp() -> str:
    """Current UTC time as a sortable ISO-8601 string with microseconds."""
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


class Database:
    """SQLite wrapper for the ledger store.

    One connection is shared by every thread. All access goes through
    ``self._lock``, and writes additionally run inside ``BEGIN IMMEDIATE`` so
    other processes on the same file are serialised by sqlite itself.

    Amounts are stored as exact decimal text and only ever added up in
    Python ``Decimal`` arithmetic, never by sqlite.
    """

    def __init__(
        self,
        db_path: str | Path | None = None,
        busy_timeout: float = 5.0,
        clock: Callable[[], str] | None = None,
    ):
        """Initialize database connection settings.

        Args:
            db_path: Path to SQLite file, or None/":memory:" for in-memory DB.
            busy_timeout: Seconds to wait for a competing writer before
                giving up with ConcurrencyError.
            clock: Returns creation timestamps; defaults to utc_timestamp.
        """
        if db_path is None:
            db_path = ":memory:"
        self.db_path = str(db_path)
        self.busy_timeout = busy_timeout
        self._clock = clock or utc_timestamp
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()

    def connect(self) -> sqlite3.Connection:
        """Get or create database connection."""
        with self._lock:
            if self._conn is None:
                # isolation_level=None: transactions are opened explicitly
                conn = sqlite3.connect(
                    self.db_path,
                    timeout=self.busy_timeout,
                    check_same_thread=False,
                    isolation_level=None,
                )
                conn.row_factory = sqlite3.Row
                conn.execute("PRAGMA foreign_keys = ON")
                if self.db_path != ":memory:":
                    conn.execute("PRAGMA journal_mode=WAL")
                self._conn = conn
            return self._conn

    def close(self) -> None:
        """Close database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def init_schema(self) -> None:
        """Create all tables and indexes."""
        with self._lock:
            conn = self.connect()
            conn.executescript(SCHEMA)
            conn.executescript(INDEXES)

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block as one storage transaction.

        Commits on success, rolls back on any exception. sqlite constraint
        failures are re-raised as IntegrityError, busy/locked errors as
        ConcurrencyError.
        """
        with self._lock:
            conn = self.connect()
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.OperationalError as e:
                raise ConcurrencyError(f"Ledger store is busy: {e}") from e

            try:
                yield conn
            except sqlite3.IntegrityError as e:
                conn.execute("ROLLBACK")
                raise IntegrityError(str(e)) from e
            except sqlite3.OperationalError as e:
                conn.execute("ROLLBACK")
                if "locked" in str(e) or "busy" in str(e):
                    raise ConcurrencyError(f"Ledger store is busy: {e}") from e
                raise
            except BaseException:
                conn.execute("ROLLBACK")
                raise

            try:
                conn.execute("COMMIT")
            except sqlite3.OperationalError as e:
                conn.execute("ROLLBACK")
                raise ConcurrencyError(f"Commit failed: {e}") from e

    @contextmanager
    def snapshot(self) -> Iterator[sqlite3.Connection]:
        """Run several reads against one consistent state of the store.

        Holds the connection lock and a read transaction for the whole block,
        so no write from this process or another lands between the reads.
        """
        with self._lock:
            conn = self.connect()
            conn.execute("BEGIN")
            try:
                yield conn
            finally:
                conn.execute("COMMIT")

    def _fetchone(self, sql: str, params: tuple[Any, ...] = ()) -> sqlite3.Row | None:
        with self._lock:
            return self.connect().execute(sql, params).fetchone()

    def _fetchall(self, sql: str, params: tuple[Any, ...] = ()) -> list[sqlite3.Row]:
        with self._lock:
            return self.connect().execute(sql, params).fetchall()

    # -------------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------------

    def create_user(self, name: str, email: str) -> int:
        """Insert a user with zero accounts and return its id."""
        with self.transaction() as conn:
            cursor = conn.execute(
                "INSERT INTO users (name, email, creation_ts, accounts) VALUES (?, ?, ?, 0)",
                (name, email, self._clock()),
            )
            return cursor.lastrowid

    def get_user(self, user_id: int) -> User:
        row = self._fetchone("SELECT * FROM users WHERE id = ?", (user_id,))
        if row is None:
            raise NotFoundError(f"User {user_id} not found")
        return User.from_row(row)

    def list_users(self) -> list[User]:
        rows = self._fetchall("SELECT * FROM users ORDER BY id")
        return [User.from_row(row) for row in rows]

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    def create_account(self, name: str, amount: Decimal, user_id: int) -> int:
        """Insert an account and bump its owner's account counter atomically.

        Raises:
            IntegrityError: If user_id does not reference an existing user.
        """
        with self.transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO accounts
                (name, amount, opening_amount, user_id, transactions, creation_ts)
                VALUES (?, ?, ?, ?, 0, ?)
                """,
                (name, decimal_text(amount), decimal_text(amount), user_id, self._clock()),
            )
            account_id = cursor.lastrowid
            conn.execute(
                "UPDATE users SET accounts = accounts + 1 WHERE id = ?", (user_id,)
            )
            return account_id

    def get_account(self, account_id: int, user_id: int | None = None) -> Account:
        """Fetch an account, optionally requiring it to belong to user_id."""
        if user_id is None:
            row = self._fetchone("SELECT * FROM accounts WHERE id = ?", (account_id,))
        else:
            row = self._fetchone(
                "SELECT * FROM accounts WHERE id = ? AND user_id = ?",
                (account_id, user_id),
            )
        if row is None:
            owner = f" for user {user_id}" if user_id is not None else ""
            raise NotFoundError(f"Account {account_id}{owner} not found")
        return Account.from_row(row)

    def list_accounts(self, user_id: int | None = None) -> list[Account]:
        if user_id is None:
            rows = self._fetchall("SELECT * FROM accounts ORDER BY id")
        else:
            rows = self._fetchall(
                "SELECT * FROM accounts WHERE user_id = ? ORDER BY id", (user_id,)
            )
        return [Account.from_row(row) for row in rows]

    def adjust_account(
        self,
        conn: sqlite3.Connection,
        account_id: int,
        amount_delta: Decimal,
        count_delta: int,
    ) -> Decimal:
        """Apply a balance/counter delta inside an open transaction().

        The new balance is computed in Decimal from the stored text, so the
        result does not depend on the order deltas are applied in. Returns
        the new balance.
        """
        row = conn.execute(
            "SELECT amount FROM accounts WHERE id = ?", (account_id,)
        ).fetchone()
        if row is None:
            raise NotFoundError(f"Account {account_id} not found")

        balance = Decimal(row["amount"]) + Decimal(decimal_text(amount_delta))
        conn.execute(
            "UPDATE accounts SET amount = ?, transactions = transactions + ? WHERE id = ?",
            (decimal_text(balance), count_delta, account_id),
        )
        return balance

    def balance_snapshot(self, account_id: int) -> dict[str, Any]:
        """Cached and recomputed balance figures read from one snapshot."""
        with self.snapshot() as conn:
            account = conn.execute(
                "SELECT amount, opening_amount, transactions FROM accounts WHERE id = ?",
                (account_id,),
            ).fetchone()
            if account is None:
                raise NotFoundError(f"Account {account_id} not found")
            rows = conn.execute(
                "SELECT amount, type FROM transactions WHERE account_id = ?",
                (account_id,),
            ).fetchall()

        effect_sum = sum(
            (effect(row["type"], Decimal(row["amount"])) for row in rows), Decimal(0)
        )
        return {
            "amount": Decimal(account["amount"]),
            "opening_amount": Decimal(account["opening_amount"]),
            "transactions": account["transactions"],
            "effect_sum": effect_sum,
            "row_count": len(rows),
        }

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    def insert_transaction_row(
        self,
        conn: sqlite3.Connection,
        name: str,
        amount: Decimal,
        tx_type: TransactionType,
        account_id: int,
    ) -> int:
        """Insert a transaction row inside an open transaction().

        Does not touch the owning account; see balance.BalanceMaintainer.
        """
        cursor = conn.execute(
            """
            INSERT INTO transactions (name, amount, type, account_id, creation_ts)
            VALUES (?, ?, ?, ?, ?)
            """,
            (name, decimal_text(amount), int(tx_type), account_id, self._clock()),
        )
        return cursor.lastrowid

    def update_transaction_row(
        self,
        conn: sqlite3.Connection,
        transaction_id: int,
        name: str,
        amount: Decimal,
        tx_type: TransactionType,
    ) -> None:
        conn.execute(
            "UPDATE transactions SET name = ?, amount = ?, type = ? WHERE id = ?",
            (name, decimal_text(amount), int(tx_type), transaction_id),
        )

    def delete_transaction_row(self, conn: sqlite3.Connection, transaction_id: int) -> None:
        conn.execute("DELETE FROM transactions WHERE id = ?", (transaction_id,))

    def fetch_transaction(
        self, conn: sqlite3.Connection, transaction_id: int
    ) -> Transaction | None:
        """Read a transaction through an already held connection."""
        row = conn.execute(
            f"SELECT {TRANSACTION_COLUMNS} FROM transactions WHERE id = ?",  # noqa: S608
            (transaction_id,),
        ).fetchone()
        return Transaction.from_row(row) if row else None

    def get_transaction(self, transaction_id: int) -> Transaction:
        with self._lock:
            tx = self.fetch_transaction(self.connect(), transaction_id)
        if tx is None:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        return tx

    def list_transactions(self, account_id: int) -> list[Transaction]:
        """All transactions of an account in creation order (ties by id)."""
        return list(self.iter_account_transactions(account_id))

    def iter_account_transactions(
        self, account_id: int, chunk_size: int = 100
    ) -> Iterator[Transaction]:
        """Lazily stream an account's transactions ordered by (creation_ts, id).

        Each chunk is a complete keyset query resuming after the last row
        seen, so no statement stays open across a yield. Chunks are read at
        different times; run the whole iteration inside ``snapshot()`` when
        the rows must come from one state of the store. The iterator cannot
        be restarted.
        """
        last: tuple[str, int] | None = None
        while True:
            if last is None:
                rows = self._fetchall(
                    f"""
                    SELECT {TRANSACTION_COLUMNS}
                    FROM transactions
                    WHERE account_id = ?
                    ORDER BY creation_ts, id
                    LIMIT ?
                    """,  # noqa: S608
                    (account_id, chunk_size),
                )
            else:
                rows = self._fetchall(
                    f"""
                    SELECT {TRANSACTION_COLUMNS}
                    FROM transactions
                    WHERE account_id = ? AND (creation_ts, id) > (?, ?)
                    ORDER BY creation_ts, id
                    LIMIT ?
                    """,  # noqa: S608
                    (account_id, *last, chunk_size),
                )
            for row in rows:
                yield Transaction.from_row(row)
            if len(rows) < chunk_size:
                return
            last = (rows[-1]["creation_ts"], rows[-1]["id"])
