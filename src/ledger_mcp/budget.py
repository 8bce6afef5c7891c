"""Budget queries: which transactions fit under a running spending ceiling."""

from collections.abc import Iterable, Iterator
from decimal import Decimal

from .database import Database
from .models import Transaction
from .validators import parse_number


def take_within_budget(
    transactions: Iterable[Transaction], budget: Decimal
) -> Iterator[Transaction]:
    """Yield transactions while the running total of their magnitudes stays <= budget.

    The running total sums stored magnitudes, not signed effects. Magnitudes
    are never negative, so the total only grows and the first overflow ends
    the scan. The result is always a prefix of ``transactions``.
    """
    ceiling = Decimal(str(budget))
    running_total = Decimal(0)
    for tx in transactions:
        running_total += Decimal(str(tx.amount))
        if running_total > ceiling:
            return
        yield tx


def transactions_within_budget(
    db: Database, account_id: int, budget: object
) -> Iterator[Transaction]:
    """Lazy, non-restartable prefix of an account's transactions within budget.

    Transactions are taken in creation order, ties broken by id.

    Raises:
        ValidationError: budget is not a finite number.
        NotFoundError: account does not exist.
    """
    ceiling = parse_number(budget, "budget")
    db.get_account(account_id)
    return take_within_budget(db.iter_account_transactions(account_id), ceiling)
