"""
Data Models Package

This package contains all Pydantic models used in VozFinanças.
All data flowing through the system must conform to these schemas.
"""

from vozfinancas.models.expense import (
    CategoryTotal,
    Expense,
    Money,
    ParameterType,
    Summary,
    ToolCall,
    ToolDeclaration,
    ToolParameter,
    ToolResponse,
    ToolStatus,
)
from vozfinancas.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from vozfinancas.models.status import AppStatus

__all__ = [
    # Expense models
    "CategoryTotal",
    "Expense",
    "Money",
    "Summary",
    # Tool models
    "ParameterType",
    "ToolCall",
    "ToolDeclaration",
    "ToolParameter",
    "ToolResponse",
    "ToolStatus",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
    # UI
    "AppStatus",
]
