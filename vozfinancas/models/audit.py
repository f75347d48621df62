"""
Audit Models for VozFinanças

Every significant action in the system is logged for audit purposes:
sessions opening and closing, tools the assistant called, expenses that
changed, and failures the user never sees in detail.

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.
    """
    # Recording session
    SESSION_OPENED = "session_opened"
    SESSION_CLOSED = "session_closed"
    SESSION_FAILED = "session_failed"
    SILENCE_TIMEOUT = "silence_timeout"

    # Microphone
    MICROPHONE_DENIED = "microphone_denied"
    MICROPHONE_UNAVAILABLE = "microphone_unavailable"

    # Tool calls
    TOOL_EXECUTED = "tool_executed"
    TOOL_REJECTED = "tool_rejected"

    # Persistence
    EXPENSE_ADDED = "expense_added"
    EXPENSE_DELETED = "expense_deleted"
    REPLICATION_FAILED = "replication_failed"

    # Lock screen
    GATE_SETUP = "gate_setup"
    GATE_UNLOCKED = "gate_unlocked"
    GATE_FAILED = "gate_failed"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'expense', 'session', 'tool')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - all events of one recording session share an id
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.expense_added(expense_id, "25.00", "Alimentação")
        event = AuditEventBuilder.session_closed(correlation_id, reason="silence")
    """

    @staticmethod
    def session_opened(correlation_id: Optional[UUID] = None) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SESSION_OPENED,
            entity_type="session",
            correlation_id=correlation_id,
            description="Live assistant session opened",
            is_user_action=True,
        )

    @staticmethod
    def session_closed(
        correlation_id: Optional[UUID] = None,
        reason: str = "user",
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SESSION_CLOSED,
            entity_type="session",
            correlation_id=correlation_id,
            description=f"Live assistant session closed ({reason})",
            details={"reason": reason},
        )

    @staticmethod
    def session_failed(
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SESSION_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="session",
            correlation_id=correlation_id,
            description="Live assistant session failed",
            error_message=error_message,
        )

    @staticmethod
    def silence_timeout(
        seconds: float,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SILENCE_TIMEOUT,
            entity_type="session",
            correlation_id=correlation_id,
            description=f"Recording stopped after {seconds:g}s of silence",
            details={"timeout_seconds": seconds},
        )

    @staticmethod
    def microphone_failed(
        denied: bool,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.MICROPHONE_DENIED
                if denied
                else AuditEventType.MICROPHONE_UNAVAILABLE
            ),
            severity=AuditSeverity.WARNING,
            entity_type="microphone",
            correlation_id=correlation_id,
            description="Microphone permission denied" if denied else "Microphone unavailable",
            error_message=error_message,
        )

    @staticmethod
    def tool_executed(
        tool_name: str,
        call_id: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TOOL_EXECUTED,
            entity_type="tool",
            entity_id=call_id,
            correlation_id=correlation_id,
            description=f"Tool executed: {tool_name}",
            details={"tool": tool_name},
        )

    @staticmethod
    def tool_rejected(
        tool_name: str,
        call_id: Optional[str],
        status: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TOOL_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="tool",
            entity_id=call_id,
            correlation_id=correlation_id,
            description=f"Tool rejected: {tool_name} ({status})",
            details={"tool": tool_name, "status": status},
            error_message=error_message,
        )

    @staticmethod
    def expense_added(
        expense_id: int,
        amount: str,
        category: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_ADDED,
            entity_type="expense",
            entity_id=str(expense_id),
            correlation_id=correlation_id,
            description=f"Expense added: R$ {amount} in {category}",
            details={"amount": amount, "category": category},
        )

    @staticmethod
    def expense_deleted(
        expense_id: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_DELETED,
            entity_type="expense",
            entity_id=str(expense_id),
            correlation_id=correlation_id,
            description=f"Expense deleted: {expense_id}",
        )

    @staticmethod
    def replication_failed(
        operation: str,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REPLICATION_FAILED,
            severity=AuditSeverity.DEBUG,
            entity_type="replication",
            description=f"Remote replication failed: {operation}",
            details={"operation": operation},
            error_message=error_message,
        )

    @staticmethod
    def gate_event(event_type: AuditEventType) -> AuditEvent:
        descriptions = {
            AuditEventType.GATE_SETUP: "Lock password created",
            AuditEventType.GATE_UNLOCKED: "App unlocked",
            AuditEventType.GATE_FAILED: "Wrong password entered",
        }
        return AuditEvent(
            event_type=event_type,
            severity=(
                AuditSeverity.WARNING
                if event_type == AuditEventType.GATE_FAILED
                else AuditSeverity.INFO
            ),
            entity_type="gate",
            description=descriptions[event_type],
            is_user_action=True,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
