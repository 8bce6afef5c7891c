"""Async entry point to the ledger core.

Blocking sqlite and file work runs in worker threads so the event loop is
never held up by storage I/O.
"""

import asyncio
from pathlib import Path
from typing import Any

import structlog

from .balance import BalanceMaintainer
from .budget import transactions_within_budget
from .database import Database
from .exports import CsvExporter, ExportPayload
from .models import Account, Transaction, User
from .validators import (
    NAME_MAX_LENGTH,
    parse_id,
    parse_number,
    validate_email,
    validate_required_str,
)

logger = structlog.get_logger(__name__)


class LedgerService:
    """Users, accounts, balance-maintained transactions, budgets and exports."""

    def __init__(self, db: Database, export_dir: str | Path):
        """Initialize the service.

        Args:
            db: Ledger store with its schema already created.
            export_dir: Directory holding the shared CSV export artifact.
        """
        self.db = db
        self.balances = BalanceMaintainer(db)
        self.exporter = CsvExporter(db, export_dir)
        self._export_lock = asyncio.Lock()

    # -------------------------------------------------------------------------
    # Users and accounts
    # -------------------------------------------------------------------------

    async def create_user(self, name: object, email: object) -> int:
        name = validate_required_str(name, "name", NAME_MAX_LENGTH)
        email = validate_email(email)
        user_id = await asyncio.to_thread(self.db.create_user, name, email)
        logger.info("user_created", user_id=user_id)
        return user_id

    async def get_user(self, user_id: object) -> User:
        return await asyncio.to_thread(self.db.get_user, parse_id(user_id, "user_id"))

    async def list_users(self) -> list[User]:
        return await asyncio.to_thread(self.db.list_users)

    async def create_account(self, name: object, amount: object, user_id: object) -> int:
        """Create an account with an opening amount and count it on its owner.

        Raises:
            ValidationError: bad name, amount or id.
            IntegrityError: user_id does not reference a user.
        """
        name = validate_required_str(name, "name", NAME_MAX_LENGTH)
        opening = parse_number(0 if amount is None else amount, "amount")
        owner = parse_id(user_id, "user_id")
        account_id = await asyncio.to_thread(self.db.create_account, name, opening, owner)
        logger.info("account_created", account_id=account_id, user_id=owner)
        return account_id

    async def get_account(self, account_id: object, user_id: object | None = None) -> Account:
        owner = parse_id(user_id, "user_id") if user_id is not None else None
        return await asyncio.to_thread(
            self.db.get_account, parse_id(account_id, "account_id"), owner
        )

    async def list_accounts(self, user_id: object | None = None) -> list[Account]:
        owner = parse_id(user_id, "user_id") if user_id is not None else None
        return await asyncio.to_thread(self.db.list_accounts, owner)

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    async def create_transaction(
        self, name: object, amount: object, tx_type: object, account_id: object
    ) -> Transaction:
        return await self.balances.insert_transaction(
            name, amount, tx_type, parse_id(account_id, "account_id")
        )

    async def update_transaction(
        self,
        transaction_id: object,
        *,
        name: object | None = None,
        amount: object | None = None,
        tx_type: object | None = None,
    ) -> Transaction:
        return await self.balances.update_transaction(
            parse_id(transaction_id, "transaction_id"),
            name=name,
            amount=amount,
            tx_type=tx_type,
        )

    async def delete_transaction(self, transaction_id: object) -> Transaction:
        return await self.balances.delete_transaction(
            parse_id(transaction_id, "transaction_id")
        )

    async def get_transaction(self, transaction_id: object) -> Transaction:
        return await asyncio.to_thread(
            self.db.get_transaction, parse_id(transaction_id, "transaction_id")
        )

    async def list_transactions(self, account_id: object) -> list[Transaction]:
        account_id = parse_id(account_id, "account_id")
        await asyncio.to_thread(self.db.get_account, account_id)
        return await asyncio.to_thread(self.db.list_transactions, account_id)

    async def verify_balance(self, account_id: object) -> dict[str, Any]:
        """Compare the cached balance and counter with values recomputed from rows."""
        account_id = parse_id(account_id, "account_id")
        snap = await asyncio.to_thread(self.db.balance_snapshot, account_id)
        expected = snap["opening_amount"] + snap["effect_sum"]
        consistent = (
            snap["amount"] == expected
            and snap["transactions"] == snap["row_count"]
        )
        if not consistent:
            logger.warning(
                "balance_drift",
                account_id=account_id,
                amount=str(snap["amount"]),
                expected_amount=str(expected),
                transactions=snap["transactions"],
                expected_transactions=snap["row_count"],
            )
        return {
            "account_id": account_id,
            "amount": snap["amount"],
            "expected_amount": expected,
            "transactions": snap["transactions"],
            "expected_transactions": snap["row_count"],
            "consistent": consistent,
        }

    # -------------------------------------------------------------------------
    # Budgets and exports
    # -------------------------------------------------------------------------

    async def transactions_within_budget(
        self, account_id: object, budget: object
    ) -> list[Transaction]:
        """Creation-ordered prefix whose running magnitude total is <= budget.

        The prefix is read from a single snapshot of the store.
        """
        account_id = parse_id(account_id, "account_id")

        def collect() -> list[Transaction]:
            with self.db.snapshot():
                return list(transactions_within_budget(self.db, account_id, budget))

        return await asyncio.to_thread(collect)

    async def export_transactions(self, account_id: object) -> Path:
        """Write the account's CSV artifact, replacing any previous export."""
        account_id = parse_id(account_id, "account_id")
        async with self._export_lock:
            return await asyncio.to_thread(self.exporter.export_account, account_id)

    async def read_export(self, filename: str | None = None) -> ExportPayload:
        async with self._export_lock:
            return await asyncio.to_thread(self.exporter.read_artifact, filename)
