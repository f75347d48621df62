"""
Abstract Storage Interface

DESIGN DECISION: We define abstract interfaces for storage operations.
This allows us to:
1. Keep the ledger ignorant of where the expense collection lives
2. Use in-memory storage for testing
3. Share one audit-log contract between the client and the backend

There are two expense contracts because the two sides store differently:
the client persists its whole collection as one document under a fixed
namespace, the companion backend keeps a row per expense.
"""

from abc import ABC, abstractmethod
from datetime import date
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from vozfinancas.models.audit import AuditEvent
from vozfinancas.models.expense import Expense, Summary


class KeyValueStoreInterface(ABC):
    """
    A small persistent string-keyed store of JSON values.

    Mirrors what a browser's localStorage offers: whole values are
    replaced on write and the last write wins.
    """

    @abstractmethod
    def get_item(self, key: str) -> Optional[Any]:
        """Return the value stored under key, or None."""
        pass

    @abstractmethod
    def set_item(self, key: str, value: Any) -> None:
        """
        Store value under key, replacing any previous value.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    def remove_item(self, key: str) -> None:
        """Remove key if present."""
        pass


class ExpenseStoreInterface(ABC):
    """
    Persistence for the client's expense collection.

    load/save exchange the complete collection; there are no partial writes.
    """

    @abstractmethod
    def load(self) -> list[Expense]:
        """
        Load the persisted collection.

        Returns:
            The stored expenses, or an empty list if nothing was saved yet
        """
        pass

    @abstractmethod
    def save(self, expenses: list[Expense]) -> None:
        """
        Replace the persisted collection.

        Raises:
            StorageError: If the write fails
        """
        pass


class ExpenseRepositoryInterface(ABC):
    """
    Row-oriented expense storage used by the companion REST backend.
    """

    @abstractmethod
    def list_expenses(self) -> list[Expense]:
        """List all expenses, newest first."""
        pass

    @abstractmethod
    def create_expense(
        self,
        amount: Decimal,
        description: str,
        category: str,
    ) -> int:
        """
        Insert an expense, creating its category if it doesn't exist yet.

        Returns:
            The new expense id
        """
        pass

    @abstractmethod
    def delete_expense(self, expense_id: int) -> bool:
        """
        Delete an expense by ID.

        Returns:
            True if a row was deleted, False if the id was unknown
        """
        pass

    @abstractmethod
    def get_summary(self, today: date) -> Summary:
        """
        Compute totals.

        Args:
            today: Expenses dated on or after this day count as daily
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one recording session).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class CorruptDataError(StorageError):
    """Stored data could not be parsed."""
    pass
