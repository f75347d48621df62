"""
Expense Ledger

In-memory view of the expense collection backed by an ExpenseStoreInterface.

DESIGN DECISION: Every mutation goes through one routine, _commit:
1. Build the new collection
2. Persist it
3. Only then swap it in and recompute the summary

If the store write fails, nothing in memory changes, so the ledger always
equals the last successful persist. The tool executor and direct deletions
from the UI both use this path, which keeps them serialized on the event loop.
"""

from collections import OrderedDict
from datetime import date, datetime, timezone, tzinfo
from decimal import Decimal
from typing import Callable, Iterable

import structlog

from vozfinancas.models.expense import CategoryTotal, Expense, Summary, utc_now
from vozfinancas.services.storage.interface import ExpenseStoreInterface


log = structlog.get_logger(__name__)


def compute_summary(
    expenses: Iterable[Expense],
    today: date,
    tz: tzinfo = timezone.utc,
) -> Summary:
    """
    Derive the summary from a collection.

    daily sums the expenses whose timestamp, seen in tz, falls on today.
    by_category has one entry per distinct category name in order of first
    appearance; together the entries cover every expense exactly once.
    """
    daily = Decimal("0.00")
    totals: "OrderedDict[str, Decimal]" = OrderedDict()

    for expense in expenses:
        if expense.date.astimezone(tz).date() == today:
            daily += expense.amount
        totals[expense.category_name] = (
            totals.get(expense.category_name, Decimal("0.00")) + expense.amount
        )

    return Summary(
        daily=daily,
        by_category=[CategoryTotal(name=name, total=total) for name, total in totals.items()],
    )


class ExpenseLedger:
    """
    The client's expense collection and its derived summary.

    Usage:
        ledger = ExpenseLedger(LocalExpenseStore(JsonFileKeyValueStore(path)))
        ledger.load()
        expense = ledger.add(Decimal("25"), "almoço", "Alimentação")
        ledger.summary.daily  # Decimal("25.00")
    """

    def __init__(
        self,
        store: ExpenseStoreInterface,
        clock: Callable[[], datetime] = utc_now,
        tz: tzinfo = timezone.utc,
    ):
        self._store = store
        self._clock = clock
        self._tz = tz
        self._expenses: list[Expense] = []
        self._summary = Summary()
        self._last_id = 0

    def load(self) -> list[Expense]:
        """Read the persisted collection and recompute the summary."""
        expenses = self._store.load()
        self._expenses = list(expenses)
        self._last_id = max((e.id for e in self._expenses), default=0)
        self._summary = compute_summary(self._expenses, self.today(), self._tz)
        log.info("ledger_loaded", count=len(self._expenses))
        return self.expenses

    @property
    def expenses(self) -> list[Expense]:
        """A copy of the collection, in insertion order."""
        return list(self._expenses)

    @property
    def summary(self) -> Summary:
        return self._summary

    def today(self) -> date:
        return self._clock().astimezone(self._tz).date()

    def refresh_summary(self) -> Summary:
        """Recompute the summary, e.g. after midnight passed."""
        self._summary = compute_summary(self._expenses, self.today(), self._tz)
        return self._summary

    def expenses_on(self, day: date) -> list[Expense]:
        """Expenses recorded on day (in the ledger's timezone), newest first."""
        matching = [e for e in self._expenses if e.date.astimezone(self._tz).date() == day]
        return sorted(matching, key=lambda e: (e.date, e.id), reverse=True)

    def _next_id(self, now: datetime) -> int:
        millis = int(now.timestamp() * 1000)
        return max(millis, self._last_id + 1)

    def add(self, amount: Decimal, description: str, category: str) -> Expense:
        """
        Record a new expense stamped with the current time.

        Raises:
            ValueError: If the fields don't form a valid Expense
            StorageError: If persisting fails (ledger left unchanged)
        """
        now = self._clock()
        expense = Expense(
            id=self._next_id(now),
            amount=amount,
            description=description,
            category_name=category,
            date=now,
        )
        self._commit(self._expenses + [expense])
        self._last_id = expense.id
        log.info(
            "expense_added",
            expense_id=expense.id,
            amount=str(expense.amount),
            category=expense.category_name,
        )
        return expense

    def delete(self, expense_id: int) -> bool:
        """
        Remove an expense by id.

        Returns False (and writes nothing) when the id is not present.
        """
        remaining = [e for e in self._expenses if e.id != expense_id]
        if len(remaining) == len(self._expenses):
            log.info("expense_delete_noop", expense_id=expense_id)
            return False
        self._commit(remaining)
        log.info("expense_deleted", expense_id=expense_id)
        return True

    def _commit(self, expenses: list[Expense]) -> None:
        self._store.save(expenses)
        self._expenses = expenses
        self._summary = compute_summary(self._expenses, self.today(), self._tz)
