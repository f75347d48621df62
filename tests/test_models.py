"""
Tests for VozFinanças

Test strategy:
1. Unit tests for individual components (models, ledger, audio, executor)
2. Integration tests for flows (with fake devices and a fake live session)
3. No real API calls, devices or network in tests
"""

import json
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from pydantic import ValidationError

from vozfinancas.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from vozfinancas.models.expense import (
    CategoryTotal,
    Expense,
    Summary,
    ToolResponse,
    ToolStatus,
)
from vozfinancas.models.status import AppStatus


class TestExpenseModels:
    """Tests for expense-related Pydantic models."""

    def test_expense_creation(self):
        """Test Expense model creation."""
        expense = Expense(
            id=1741608000000,
            amount=Decimal("25"),
            description="almoço",
            category_name="Alimentação",
            date=datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc),
        )
        assert expense.amount == Decimal("25.00")
        assert expense.category_name == "Alimentação"

    def test_amount_is_quantized_to_cents(self):
        """Test that amounts are rounded to two decimal places."""
        expense = Expense(id=1, amount=Decimal("12.345"), description="x", category_name="y")
        assert expense.amount == Decimal("12.35")

    def test_rejects_negative_amount(self):
        """Test that negative amounts are rejected."""
        with pytest.raises(ValidationError):
            Expense(id=1, amount=Decimal("-1"), description="x", category_name="y")

    def test_rejects_nan_amount(self):
        """Test that NaN is not a valid amount."""
        with pytest.raises(ValidationError):
            Expense(id=1, amount=float("nan"), description="x", category_name="y")

    def test_strips_whitespace(self):
        """Test that whitespace is stripped from text fields."""
        expense = Expense(id=1, amount=1, description="  café ", category_name=" Lazer ")
        assert expense.description == "café"
        assert expense.category_name == "Lazer"

    def test_naive_date_is_utc(self):
        """Test that a naive timestamp is interpreted as UTC."""
        expense = Expense(
            id=1, amount=1, description="x", category_name="y",
            date=datetime(2025, 3, 10, 12, 0),
        )
        assert expense.date.tzinfo == timezone.utc

    def test_json_round_trip_uses_numbers(self):
        """Test that amounts serialize as JSON numbers and dates as ISO text."""
        expense = Expense(
            id=7, amount=Decimal("40.5"), description="uber", category_name="Transporte",
            date=datetime(2025, 3, 10, 8, 30, tzinfo=timezone.utc),
        )
        dumped = expense.model_dump(mode="json")
        assert dumped["amount"] == 40.5
        assert dumped["date"].startswith("2025-03-10T08:30:00")
        assert Expense.model_validate(json.loads(json.dumps(dumped))) == expense


class TestSummaryModel:
    """Tests for the derived summary."""

    def test_serializes_by_category_alias(self):
        """Test that by_category is exposed as byCategory."""
        summary = Summary(
            daily=Decimal("25"),
            by_category=[CategoryTotal(name="Alimentação", total=Decimal("25"))],
        )
        dumped = summary.model_dump(mode="json", by_alias=True)
        assert dumped == {"daily": 25.0, "byCategory": [{"name": "Alimentação", "total": 25.0}]}

    def test_total_for_missing_category(self):
        """Test that an unknown category totals zero."""
        assert Summary().total_for("Lazer") == Decimal("0.00")


class TestToolResponse:
    """Tests for tool responses."""

    def test_ok_payload_wraps_result(self):
        response = ToolResponse(call_id="c1", name="get_summary", result={"daily": 0})
        assert response.ok
        assert response.to_payload() == {"result": {"daily": 0}}

    def test_error_payload_carries_status(self):
        response = ToolResponse(
            call_id="c2",
            name="transfer_money",
            status=ToolStatus.UNSUPPORTED_TOOL,
            error="Unknown tool: transfer_money",
        )
        assert not response.ok
        assert response.to_payload()["status"] == "UnsupportedTool"


class TestAuditModels:
    """Tests for audit models."""

    def test_audit_event_creation(self):
        """Test AuditEvent creation."""
        event = AuditEvent(
            event_type=AuditEventType.EXPENSE_ADDED,
            description="Test event",
        )
        assert event.event_id is not None
        assert event.timestamp is not None
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEventBuilder.expense_added(42, "25.00", "Alimentação")
        log_dict = event.to_log_dict()
        assert log_dict["event_type"] == "expense_added"
        assert log_dict["entity_id"] == "42"
        assert log_dict["details"]["category"] == "Alimentação"

    def test_builder_tool_rejected_is_warning(self):
        """Test that rejected tools are logged as warnings."""
        event = AuditEventBuilder.tool_rejected("foo", "c1", "UnsupportedTool", "Unknown tool")
        assert event.severity == AuditSeverity.WARNING
        assert event.error_message == "Unknown tool"

    def test_builder_microphone_failed(self):
        """Test denied vs unavailable microphone events."""
        denied = AuditEventBuilder.microphone_failed(True, "denied")
        missing = AuditEventBuilder.microphone_failed(False, "no device")
        assert denied.event_type == AuditEventType.MICROPHONE_DENIED
        assert missing.event_type == AuditEventType.MICROPHONE_UNAVAILABLE


class TestAppStatus:
    """Tests for user-facing status lines."""

    def test_error_statuses(self):
        assert AppStatus.CONNECTION_ERROR.is_error
        assert AppStatus.PERMISSION_DENIED.is_error
        assert not AppStatus.LISTENING.is_error
        assert not AppStatus.IDLE.is_error

    def test_idle_text(self):
        assert AppStatus.IDLE.value == "Pronto para ouvir"
