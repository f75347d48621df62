"""Tests for the expense ledger and summary derivation."""

import random
from datetime import date, datetime, timezone
from decimal import Decimal
from zoneinfo import ZoneInfo

import pytest

from conftest import FakeClock, MemoryExpenseStore
from vozfinancas.ledger import ExpenseLedger, compute_summary
from vozfinancas.models.expense import Expense
from vozfinancas.services.storage.interface import StorageError


class TestExpenseLedger:
    """Tests for add/delete and persistence."""

    def test_add_persists_and_updates_summary(self, ledger, store):
        """Test that a single add shows up in the store and the summary."""
        expense = ledger.add(Decimal("25.00"), "almoço", "Alimentação")

        assert store.saved == [expense]
        assert ledger.summary.daily == Decimal("25.00")
        assert ledger.summary.total_for("Alimentação") == Decimal("25.00")

    def test_two_adds_same_category(self, ledger, clock):
        """Test that amounts in one category are summed."""
        ledger.add(Decimal("40"), "mercado", "Alimentação")
        clock.advance(minutes=5)
        ledger.add(Decimal("60"), "feira", "Alimentação")

        summary = ledger.summary
        assert summary.daily == Decimal("100.00")
        assert [(c.name, c.total) for c in summary.by_category] == [
            ("Alimentação", Decimal("100.00"))
        ]

    def test_ids_strictly_increase_within_same_millisecond(self, ledger):
        """Test that ids stay unique when the clock doesn't move."""
        first = ledger.add(Decimal("1"), "a", "x")
        second = ledger.add(Decimal("2"), "b", "x")
        assert second.id == first.id + 1

    def test_id_is_millisecond_timestamp(self, ledger, clock):
        expense = ledger.add(Decimal("1"), "a", "x")
        assert expense.id == int(clock.now.timestamp() * 1000)
        assert expense.date == clock.now

    def test_delete_removes_expense(self, ledger, store):
        expense = ledger.add(Decimal("10"), "café", "Alimentação")
        assert ledger.delete(expense.id) is True
        assert ledger.expenses == []
        assert store.saved == []
        assert ledger.summary.daily == Decimal("0.00")
        assert ledger.summary.by_category == []

    def test_delete_unknown_id_is_noop(self, ledger, store):
        """Test that deleting an absent id changes nothing and writes nothing."""
        ledger.add(Decimal("10"), "café", "Alimentação")
        saves = store.saves
        before = ledger.summary

        assert ledger.delete(999) is False
        assert store.saves == saves
        assert ledger.summary == before

    def test_failed_save_leaves_state_unchanged(self, ledger, store):
        """Test that a store failure keeps the last persisted state."""
        ledger.add(Decimal("10"), "café", "Alimentação")
        store.fail_next_save = True

        with pytest.raises(StorageError):
            ledger.add(Decimal("99"), "tênis", "Lazer")

        assert len(ledger.expenses) == 1
        assert ledger.summary.daily == Decimal("10.00")
        assert ledger.expenses == store.saved

    def test_load_restores_collection_and_ids(self, clock):
        """Test that a restart sees the same data and keeps ids increasing."""
        old = Expense(
            id=int(clock.now.timestamp() * 1000) + 5000,
            amount=Decimal("5"),
            description="pão",
            category_name="Alimentação",
            date=clock.now,
        )
        ledger = ExpenseLedger(MemoryExpenseStore([old]), clock=clock)
        ledger.load()

        assert ledger.expenses == [old]
        assert ledger.summary.daily == Decimal("5.00")
        assert ledger.add(Decimal("1"), "a", "b").id == old.id + 1

    def test_expenses_on_filters_by_day(self, ledger, clock):
        ledger.add(Decimal("1"), "ontem", "x")
        clock.advance(days=1)
        today = ledger.add(Decimal("2"), "hoje", "x")

        assert ledger.expenses_on(clock.now.date()) == [today]

    def test_summary_daily_only_counts_today(self, ledger, clock):
        ledger.add(Decimal("30"), "ontem", "Lazer")
        clock.advance(days=1)
        ledger.add(Decimal("5"), "hoje", "Lazer")

        assert ledger.summary.daily == Decimal("5.00")
        assert ledger.summary.total_for("Lazer") == Decimal("35.00")


class TestComputeSummary:
    """Tests for summary derivation."""

    def _expense(self, i, amount, category, when):
        return Expense(id=i, amount=amount, description=f"e{i}", category_name=category, date=when)

    def test_timezone_defines_today(self):
        """Test that 'today' is evaluated in the configured timezone."""
        late_utc = datetime(2025, 3, 11, 2, 0, tzinfo=timezone.utc)  # 23:00 on the 10th in São Paulo
        expenses = [self._expense(1, Decimal("8"), "Lazer", late_utc)]

        sao_paulo = ZoneInfo("America/Sao_Paulo")
        assert compute_summary(expenses, date(2025, 3, 10), sao_paulo).daily == Decimal("8.00")
        assert compute_summary(expenses, date(2025, 3, 10), timezone.utc).daily == Decimal("0.00")

    def test_random_sequences_keep_invariants(self):
        """
        Test summary invariants over random add/delete sequences:
        category totals partition the collection and daily equals today's sum.
        """
        rng = random.Random(1234)
        clock = FakeClock()
        store = MemoryExpenseStore()
        ledger = ExpenseLedger(store, clock=clock)
        ledger.load()
        categories = ["Alimentação", "Transporte", "Lazer", "Saúde"]

        for _ in range(200):
            if ledger.expenses and rng.random() < 0.3:
                victim = rng.choice(ledger.expenses)
                ledger.delete(victim.id)
            else:
                amount = Decimal(rng.randint(0, 50000)) / 100
                ledger.add(amount, "item", rng.choice(categories))
            clock.advance(hours=rng.randint(0, 10))

            expenses = ledger.expenses
            summary = ledger.summary
            by_cat = {c.name: c.total for c in summary.by_category}

            assert sum(by_cat.values(), Decimal("0")) == sum((e.amount for e in expenses), Decimal("0"))
            assert set(by_cat) == {e.category_name for e in expenses}
            assert len(summary.by_category) == len(by_cat)

            today = ledger.today()
            expected_daily = sum(
                (e.amount for e in expenses if e.date.date() == today), Decimal("0")
            )
            # Summary is computed at mutation time; refresh before comparing
            assert ledger.refresh_summary().daily == expected_daily
            assert store.saved == expenses
