"""
Companion Backend Router - HTTP API Endpoints

- GET    /api/expenses       - List expenses, newest first
- POST   /api/expenses       - Create expense (category found or created)
- DELETE /api/expenses/{id}  - Delete expense
- GET    /api/summary        - Daily total and totals by category
- GET    /api/audit          - Recent audit events, or one session's trail
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from vozfinancas.audit import AuditLogger
from vozfinancas.models.audit import AuditEvent, AuditEventBuilder
from vozfinancas.models.expense import Expense, Summary
from vozfinancas.services.storage import SQLiteExpenseRepository, StorageError


log = structlog.get_logger(__name__)

router = APIRouter(prefix="/api")


class CreateExpenseRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    amount: Decimal = Field(..., ge=0, allow_inf_nan=False)
    description: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)


class CreateExpenseResponse(BaseModel):
    id: int
    status: str = "success"


class StatusResponse(BaseModel):
    status: str = "success"


# =============================================================================
# DEPENDENCIES
# =============================================================================

def get_db(request: Request):
    """Yield a session from the app's Database and close it after the request."""
    yield from request.app.state.database.get_db()


def get_repository(db: Session = Depends(get_db)) -> SQLiteExpenseRepository:
    return SQLiteExpenseRepository(db)


def get_audit_logger(
    request: Request,
    x_correlation_id: Optional[UUID] = Header(default=None),
) -> AuditLogger:
    """Audit logger for this request, tagged with the caller's correlation id if sent."""
    if x_correlation_id is None:
        return request.app.state.audit_logger
    return AuditLogger(request.app.state.audit_storage, correlation_id=x_correlation_id)


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get("/expenses", response_model=list[Expense])
def list_expenses(repo: SQLiteExpenseRepository = Depends(get_repository)):
    return repo.list_expenses()


@router.post("/expenses", response_model=CreateExpenseResponse)
def create_expense(
    body: CreateExpenseRequest,
    repo: SQLiteExpenseRepository = Depends(get_repository),
    audit: AuditLogger = Depends(get_audit_logger),
):
    try:
        expense_id = repo.create_expense(body.amount, body.description, body.category)
    except StorageError as e:
        log.error("create_expense_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Failed to save expense")
    audit.log(AuditEventBuilder.expense_added(expense_id, str(body.amount), body.category))
    return CreateExpenseResponse(id=expense_id)


@router.delete("/expenses/{expense_id}", response_model=StatusResponse)
def delete_expense(
    expense_id: int,
    repo: SQLiteExpenseRepository = Depends(get_repository),
    audit: AuditLogger = Depends(get_audit_logger),
):
    try:
        deleted = repo.delete_expense(expense_id)
    except StorageError as e:
        log.error("delete_expense_failed", expense_id=expense_id, error=str(e))
        raise HTTPException(status_code=500, detail="Failed to delete expense")
    if deleted:
        audit.log(AuditEventBuilder.expense_deleted(expense_id))
    # Deleting an unknown id is not an error
    return StatusResponse()


@router.get("/summary", response_model=Summary)
def get_summary(repo: SQLiteExpenseRepository = Depends(get_repository)):
    today = datetime.now(timezone.utc).date()
    return repo.get_summary(today)


@router.get("/audit", response_model=list[AuditEvent])
def recent_audit_events(
    request: Request,
    limit: int = Query(default=50, ge=1, le=500),
    correlation_id: Optional[UUID] = None,
):
    storage = request.app.state.audit_storage
    if correlation_id is not None:
        return storage.get_events_by_correlation_id(correlation_id)
    return storage.get_recent_events(limit=limit)
