"""Row models for users, accounts and transactions."""

import sqlite3
from dataclasses import dataclass
from decimal import Decimal
from enum import IntEnum
from typing import Any


class TransactionType(IntEnum):
    """Direction of a transaction. Stored as 0/1 in the transactions table."""

    OUT = 0
    IN = 1


@dataclass(frozen=True)
class User:
    id: int
    name: str
    email: str
    creation_ts: str
    accounts: int = 0

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "User":
        return cls(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            creation_ts=row["creation_ts"],
            accounts=row["accounts"],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "creation_ts": self.creation_ts,
            "accounts": self.accounts,
        }


@dataclass(frozen=True)
class Account:
    id: int
    name: str
    amount: Decimal
    user_id: int
    creation_ts: str
    transactions: int = 0
    opening_amount: Decimal = Decimal(0)

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Account":
        return cls(
            id=row["id"],
            name=row["name"],
            amount=Decimal(str(row["amount"])),
            user_id=row["user_id"],
            creation_ts=row["creation_ts"],
            transactions=row["transactions"],
            opening_amount=Decimal(str(row["opening_amount"])),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "amount": self.amount,
            "opening_amount": self.opening_amount,
            "user_id": self.user_id,
            "transactions": self.transactions,
            "creation_ts": self.creation_ts,
        }


@dataclass(frozen=True)
class Transaction:
    id: int
    name: str
    amount: Decimal
    type: TransactionType
    account_id: int
    creation_ts: str

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Transaction":
        return cls(
            id=row["id"],
            name=row["name"],
            amount=Decimal(str(row["amount"])),
            type=TransactionType(row["type"]),
            account_id=row["account_id"],
            creation_ts=row["creation_ts"],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "amount": self.amount,
            "type": int(self.type),
            "account_id": self.account_id,
            "creation_ts": self.creation_ts,
        }
