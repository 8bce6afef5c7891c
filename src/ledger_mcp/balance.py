"""Balance maintenance for transaction writes.

Every insert, update and delete of a transaction is applied together with its
effect on the owning account (balance and transaction counter) inside one
storage transaction. Writers targeting the same account are additionally
ordered by a per-account ``asyncio.Lock``.
"""

import asyncio
import weakref
from dataclasses import dataclass
from decimal import Decimal

import structlog

from .database import Database
from .exceptions import NotFoundError
from .models import Transaction, TransactionType
from .utils import effect, format_transaction_name, reformat_for_type
from .validators import NAME_MAX_LENGTH, parse_amount, parse_transaction_type, validate_required_str

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class BalanceDelta:
    """Change to apply to an account row."""

    amount: Decimal
    transactions: int = 0


def insert_delta(tx_type: TransactionType, amount: Decimal) -> BalanceDelta:
    return BalanceDelta(effect(tx_type, amount), 1)


def update_delta(
    old_type: TransactionType,
    old_amount: Decimal,
    new_type: TransactionType,
    new_amount: Decimal,
) -> BalanceDelta:
    return BalanceDelta(effect(new_type, new_amount) - effect(old_type, old_amount), 0)


def delete_delta(tx_type: TransactionType, amount: Decimal) -> BalanceDelta:
    return BalanceDelta(-effect(tx_type, amount), -1)


class BalanceMaintainer:
    """Applies transaction writes and their balance effect as one unit."""

    def __init__(self, db: Database):
        self.db = db
        self._locks: weakref.WeakValueDictionary[int, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def lock_for(self, account_id: int) -> asyncio.Lock:
        """Lock serialising balance adjustments of a single account.

        A lock lives only while some writer holds or awaits it, so ids that
        are rejected by the store do not accumulate.
        """
        lock = self._locks.get(account_id)
        if lock is None:
            lock = self._locks[account_id] = asyncio.Lock()
        return lock

    async def insert_transaction(
        self, name: object, amount: object, tx_type: object, account_id: int
    ) -> Transaction:
        """Format the name, insert the row and apply its effect.

        Raises:
            ValidationError: Invalid type, amount or name; nothing is written.
            IntegrityError: account_id does not reference an account.
        """
        tx_type = parse_transaction_type(tx_type)
        magnitude = parse_amount(amount)
        formatted = format_transaction_name(
            tx_type, validate_required_str(name, "name", NAME_MAX_LENGTH)
        )

        async with self.lock_for(account_id):
            # The storage transaction runs to completion in its thread even if
            # the awaiting task is cancelled.
            tx = await asyncio.to_thread(
                self._insert, formatted, magnitude, tx_type, account_id
            )

        logger.info(
            "transaction_inserted",
            transaction_id=tx.id,
            account_id=account_id,
            delta=str(effect(tx.type, tx.amount)),
        )
        return tx

    def _insert(
        self, name: str, amount: Decimal, tx_type: TransactionType, account_id: int
    ) -> Transaction:
        delta = insert_delta(tx_type, amount)
        with self.db.transaction() as conn:
            tx_id = self.db.insert_transaction_row(conn, name, amount, tx_type, account_id)
            self.db.adjust_account(conn, account_id, delta.amount, delta.transactions)
            return self.db.fetch_transaction(conn, tx_id)

    async def update_transaction(
        self,
        transaction_id: int,
        *,
        name: object | None = None,
        amount: object | None = None,
        tx_type: object | None = None,
    ) -> Transaction:
        """Amend a transaction and add ``effect(new) - effect(old)`` to its account.

        Omitted fields keep their current value. A new raw name is formatted
        with the resulting type.
        """
        new_type = parse_transaction_type(tx_type) if tx_type is not None else None
        new_amount = parse_amount(amount) if amount is not None else None
        raw_name = (
            validate_required_str(name, "name", NAME_MAX_LENGTH) if name is not None else None
        )

        current = await asyncio.to_thread(self.db.get_transaction, transaction_id)
        async with self.lock_for(current.account_id):
            tx, delta = await asyncio.to_thread(
                self._update, transaction_id, raw_name, new_amount, new_type
            )

        logger.info(
            "transaction_updated",
            transaction_id=tx.id,
            account_id=tx.account_id,
            delta=str(delta.amount),
        )
        return tx

    def _update(
        self,
        transaction_id: int,
        raw_name: str | None,
        new_amount: Decimal | None,
        new_type: TransactionType | None,
    ) -> tuple[Transaction, BalanceDelta]:
        with self.db.transaction() as conn:
            old = self.db.fetch_transaction(conn, transaction_id)
            if old is None:
                raise NotFoundError(f"Transaction {transaction_id} not found")

            tx_type = old.type if new_type is None else new_type
            amount = old.amount if new_amount is None else new_amount
            if raw_name is not None:
                name = format_transaction_name(tx_type, raw_name)
            elif tx_type != old.type:
                name = reformat_for_type(old.name, old.type, tx_type)
            else:
                name = old.name

            delta = update_delta(old.type, old.amount, tx_type, amount)
            self.db.update_transaction_row(conn, transaction_id, name, amount, tx_type)
            self.db.adjust_account(conn, old.account_id, delta.amount, delta.transactions)
            return self.db.fetch_transaction(conn, transaction_id), delta

    async def delete_transaction(self, transaction_id: int) -> Transaction:
        """Remove a transaction and reverse exactly its own effect."""
        current = await asyncio.to_thread(self.db.get_transaction, transaction_id)
        async with self.lock_for(current.account_id):
            tx = await asyncio.to_thread(self._delete, transaction_id)

        logger.info(
            "transaction_deleted",
            transaction_id=tx.id,
            account_id=tx.account_id,
            delta=str(-effect(tx.type, tx.amount)),
        )
        return tx

    def _delete(self, transaction_id: int) -> Transaction:
        with self.db.transaction() as conn:
            old = self.db.fetch_transaction(conn, transaction_id)
            if old is None:
                raise NotFoundError(f"Transaction {transaction_id} not found")
            delta = delete_delta(old.type, old.amount)
            self.db.delete_transaction_row(conn, transaction_id)
            self.db.adjust_account(conn, old.account_id, delta.amount, delta.transactions)
            return old
