"""
SQLite storage for the companion REST backend.

Uses SQLAlchemy so the backend can point at another database through
SERVER_DATABASE_URL without code changes.

Tables:
- categories: id, name (unique). Seeded with the default categories.
- expenses: id, amount, description, category_id, date.
- audit_log: one row per AuditEvent, append-only.
"""

import json
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Iterator, Optional
from uuid import UUID

import structlog
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    create_engine,
    func,
    select,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, relationship, sessionmaker
from sqlalchemy.pool import StaticPool

from vozfinancas.models.audit import AuditEvent, AuditEventType, AuditSeverity
from vozfinancas.models.expense import CategoryTotal, Expense, Summary
from vozfinancas.services.storage.interface import (
    AuditStorageInterface,
    ExpenseRepositoryInterface,
    StorageError,
)


log = structlog.get_logger(__name__)

Base = declarative_base()

DEFAULT_CATEGORIES = (
    "Alimentação",
    "Transporte",
    "Lazer",
    "Saúde",
    "Educação",
    "Outros",
)


def _utcnow_naive() -> datetime:
    # SQLite has no timezone support; all stored timestamps are naive UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)


class CategoryRow(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), unique=True, nullable=False)

    expenses = relationship("ExpenseRow", back_populates="category")


class ExpenseRow(Base):
    __tablename__ = "expenses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    amount = Column(Float, nullable=False)
    description = Column(Text, nullable=False)
    category_id = Column(Integer, ForeignKey("categories.id"))
    date = Column(DateTime, nullable=False, default=_utcnow_naive, index=True)

    category = relationship("CategoryRow", back_populates="expenses")

    def to_model(self) -> Expense:
        return Expense(
            id=self.id,
            amount=Decimal(str(self.amount)),
            description=self.description,
            category_name=self.category.name if self.category else "",
            date=self.date,
        )


class AuditLogRow(Base):
    __tablename__ = "audit_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(String(36), unique=True, nullable=False)
    timestamp = Column(DateTime, nullable=False)
    event_type = Column(String(50), nullable=False)
    severity = Column(String(20), nullable=False)
    entity_type = Column(String(50))
    entity_id = Column(String(100))
    correlation_id = Column(String(36), index=True)
    description = Column(String(500), nullable=False)
    details_json = Column(Text)
    error_message = Column(Text)
    is_user_action = Column(Boolean, default=False)

    @classmethod
    def from_event(cls, event: AuditEvent) -> "AuditLogRow":
        ts = event.timestamp
        if ts.tzinfo is not None:
            ts = ts.astimezone(timezone.utc).replace(tzinfo=None)
        return cls(
            event_id=str(event.event_id),
            timestamp=ts,
            event_type=event.event_type.value,
            severity=event.severity.value,
            entity_type=event.entity_type,
            entity_id=event.entity_id,
            correlation_id=str(event.correlation_id) if event.correlation_id else None,
            description=event.description,
            details_json=json.dumps(event.details) if event.details else None,
            error_message=event.error_message,
            is_user_action=bool(event.is_user_action),
        )

    def to_event(self) -> AuditEvent:
        return AuditEvent(
            event_id=UUID(self.event_id),
            timestamp=self.timestamp.replace(tzinfo=timezone.utc),
            event_type=AuditEventType(self.event_type),
            severity=AuditSeverity(self.severity),
            entity_type=self.entity_type,
            entity_id=self.entity_id,
            correlation_id=UUID(self.correlation_id) if self.correlation_id else None,
            description=self.description,
            details=json.loads(self.details_json) if self.details_json else {},
            error_message=self.error_message,
            is_user_action=bool(self.is_user_action),
        )


class Database:
    """
    Engine and session factory for one database URL.
    """

    def __init__(self, url: str, echo: bool = False):
        kwargs: dict = {"echo": echo}
        if url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}  # Required for SQLite
            if url in ("sqlite://", "sqlite:///:memory:"):
                # One shared connection, or every session gets its own empty db
                kwargs["poolclass"] = StaticPool
        self.url = url
        self.engine = create_engine(url, **kwargs)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    def init_db(self) -> None:
        """Create all tables and seed the default categories. Idempotent."""
        Base.metadata.create_all(bind=self.engine)
        with self.SessionLocal() as db:
            existing = set(db.scalars(select(CategoryRow.name)))
            for name in DEFAULT_CATEGORIES:
                if name not in existing:
                    db.add(CategoryRow(name=name))
            db.commit()
        log.info("database_initialized", url=self.url)

    def get_db(self) -> Iterator[Session]:
        """FastAPI dependency that yields a DB session and closes it after the request."""
        db = self.SessionLocal()
        try:
            yield db
        finally:
            db.close()


class SQLiteExpenseRepository(ExpenseRepositoryInterface):
    """Expense rows stored through one SQLAlchemy session."""

    def __init__(self, db: Session):
        self._db = db

    def list_expenses(self) -> list[Expense]:
        rows = self._db.scalars(
            select(ExpenseRow).order_by(ExpenseRow.date.desc(), ExpenseRow.id.desc())
        )
        return [row.to_model() for row in rows]

    def _find_or_create_category(self, name: str) -> CategoryRow:
        category = self._db.scalars(
            select(CategoryRow).where(CategoryRow.name == name)
        ).first()
        if category is None:
            category = CategoryRow(name=name)
            self._db.add(category)
            self._db.flush()
        return category

    def create_expense(
        self,
        amount: Decimal,
        description: str,
        category: str,
    ) -> int:
        try:
            category_row = self._find_or_create_category(category)
            row = ExpenseRow(
                amount=float(amount),
                description=description,
                category_id=category_row.id,
            )
            self._db.add(row)
            self._db.commit()
        except SQLAlchemyError as e:
            self._db.rollback()
            raise StorageError(f"Failed to create expense: {e}") from e
        log.info("expense_row_created", expense_id=row.id, category=category)
        return row.id

    def delete_expense(self, expense_id: int) -> bool:
        try:
            row = self._db.get(ExpenseRow, expense_id)
            if row is None:
                return False
            self._db.delete(row)
            self._db.commit()
        except SQLAlchemyError as e:
            self._db.rollback()
            raise StorageError(f"Failed to delete expense {expense_id}: {e}") from e
        log.info("expense_row_deleted", expense_id=expense_id)
        return True

    def get_summary(self, today: date) -> Summary:
        start = datetime.combine(today, time.min)
        daily = self._db.scalar(
            select(func.sum(ExpenseRow.amount)).where(ExpenseRow.date >= start)
        )
        rows = self._db.execute(
            select(CategoryRow.name, func.sum(ExpenseRow.amount))
            .select_from(ExpenseRow)
            .join(CategoryRow, ExpenseRow.category_id == CategoryRow.id)
            .group_by(CategoryRow.name)
            .order_by(CategoryRow.name)
        )
        return Summary(
            daily=Decimal(str(daily or 0)),
            by_category=[
                CategoryTotal(name=name, total=Decimal(str(total or 0)))
                for name, total in rows
            ],
        )


class SQLiteAuditStorage(AuditStorageInterface):
    """Audit events appended to the audit_log table."""

    def __init__(self, database: Database):
        self._database = database

    def append_event(self, event: AuditEvent) -> bool:
        with self._database.SessionLocal() as db:
            db.add(AuditLogRow.from_event(event))
            db.commit()
        return True

    def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        with self._database.SessionLocal() as db:
            rows = db.scalars(
                select(AuditLogRow)
                .where(AuditLogRow.correlation_id == str(correlation_id))
                .order_by(AuditLogRow.timestamp, AuditLogRow.id)
            )
            return [row.to_event() for row in rows]

    def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        with self._database.SessionLocal() as db:
            rows = db.scalars(
                select(AuditLogRow)
                .order_by(AuditLogRow.timestamp.desc(), AuditLogRow.id.desc())
                .limit(limit)
            )
            return [row.to_event() for row in rows]


def create_database(url: Optional[str] = None) -> Database:
    """Create and initialize the database at url (configured URL by default)."""
    if url is None:
        from vozfinancas.config import get_settings
        url = get_settings().server.database_url
    database = Database(url)
    database.init_db()
    return database
