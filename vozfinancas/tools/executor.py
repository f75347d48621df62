"""
Tool-Call Executor

DESIGN DECISION: Tool execution is DETERMINISTIC and never raises.
The assistant decides which function to call; this engine runs it against
the local ledger and always produces a ToolResponse tagged with the
originating call id. Unknown names, malformed arguments and failures all
become tagged error responses the assistant can talk about.

Mutations are persisted locally first, then replicated to the companion
backend best-effort. A replication problem never changes the response.
"""

from decimal import Decimal
from typing import Any, Callable, Optional, Protocol

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from vozfinancas.audit import AuditLogger
from vozfinancas.ledger import ExpenseLedger
from vozfinancas.models.audit import AuditEventBuilder
from vozfinancas.models.expense import ToolCall, ToolResponse, ToolStatus
from vozfinancas.tools.declarations import (
    ADD_EXPENSE,
    DELETE_EXPENSE,
    GET_EXPENSES,
    GET_SUMMARY,
)


log = structlog.get_logger(__name__)


class ToolError(Exception):
    """Base exception for tool execution errors."""

    status = ToolStatus.EXECUTION_ERROR


class UnsupportedToolError(ToolError):
    """The assistant called a function we never declared."""

    status = ToolStatus.UNSUPPORTED_TOOL


class InvalidToolArgumentsError(ToolError):
    """The arguments don't match the declared parameters."""

    status = ToolStatus.INVALID_ARGUMENTS


class Replicator(Protocol):
    """Where mutations are mirrored after the local write."""

    def notify_created(self, expense_id: int, args: dict[str, Any]) -> None: ...

    def notify_deleted(self, expense_id: int) -> None: ...


class AddExpenseArgs(BaseModel):
    """Arguments of add_expense."""

    model_config = ConfigDict(str_strip_whitespace=True)

    amount: Decimal = Field(..., ge=0, allow_inf_nan=False)
    description: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)


class DeleteExpenseArgs(BaseModel):
    """Arguments of delete_expense."""

    id: int


class ToolCallExecutor:
    """
    Executes the assistant's function calls against an ExpenseLedger.

    GUARANTEES:
    - execute() returns a response for every call, in every case
    - the ledger is only changed by add_expense and delete_expense
    - get_summary reflects every completed mutation and the current date
    """

    def __init__(
        self,
        ledger: ExpenseLedger,
        replicator: Optional[Replicator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._ledger = ledger
        self._replicator = replicator
        self._audit = audit_logger or AuditLogger()
        self._handlers: dict[str, Callable[[dict[str, Any]], Any]] = {
            ADD_EXPENSE: self._add_expense,
            GET_EXPENSES: self._get_expenses,
            DELETE_EXPENSE: self._delete_expense,
            GET_SUMMARY: self._get_summary,
        }

    @property
    def tool_names(self) -> list[str]:
        return list(self._handlers)

    def execute(self, call: ToolCall) -> ToolResponse:
        """
        Execute one tool call.
        """
        try:
            handler = self._handlers.get(call.name)
            if handler is None:
                raise UnsupportedToolError(f"Unknown tool: {call.name}")
            result = handler(call.args)
        except ToolError as e:
            return self._reject(call, e.status, str(e))
        except Exception as e:
            log.exception("tool_failed", tool=call.name, call_id=call.id)
            return self._reject(call, ToolStatus.EXECUTION_ERROR, f"{type(e).__name__}: {e}")

        self._audit.log(AuditEventBuilder.tool_executed(call.name, call.id))
        return ToolResponse(call_id=call.id, name=call.name, result=result)

    def execute_all(self, calls: list[ToolCall]) -> list[ToolResponse]:
        """Execute a batch in order, one response per call."""
        return [self.execute(call) for call in calls]

    def _reject(self, call: ToolCall, status: ToolStatus, message: str) -> ToolResponse:
        self._audit.log(
            AuditEventBuilder.tool_rejected(call.name, call.id, status.value, message)
        )
        return ToolResponse(
            call_id=call.id,
            name=call.name,
            status=status,
            error=message,
        )

    def _parse(self, model: type[BaseModel], args: dict[str, Any]) -> Any:
        try:
            return model.model_validate(args)
        except ValidationError as e:
            fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
            raise InvalidToolArgumentsError(f"Invalid arguments: {fields}") from e

    def _add_expense(self, args: dict[str, Any]) -> dict:
        parsed: AddExpenseArgs = self._parse(AddExpenseArgs, args)
        expense = self._ledger.add(parsed.amount, parsed.description, parsed.category)
        self._audit.log(
            AuditEventBuilder.expense_added(
                expense.id, str(expense.amount), expense.category_name
            )
        )
        self._replicate(
            "create",
            lambda r: r.notify_created(
                expense.id,
                {
                    "amount": float(expense.amount),
                    "description": expense.description,
                    "category": expense.category_name,
                }
            ),
        )
        return {"status": "success", "expense": expense.model_dump(mode="json")}

    def _get_expenses(self, args: dict[str, Any]) -> list[dict]:
        return [e.model_dump(mode="json") for e in self._ledger.expenses]

    def _delete_expense(self, args: dict[str, Any]) -> dict:
        parsed: DeleteExpenseArgs = self._parse(DeleteExpenseArgs, args)
        deleted = self._ledger.delete(parsed.id)
        if deleted:
            self._audit.log(AuditEventBuilder.expense_deleted(parsed.id))
            self._replicate("delete", lambda r: r.notify_deleted(parsed.id))
        return {"status": "success", "deleted": deleted}

    def _get_summary(self, args: dict[str, Any]) -> dict:
        # Recomputed so "daily" follows the calendar, not the last mutation
        return self._ledger.refresh_summary().model_dump(mode="json", by_alias=True)

    def _replicate(self, operation: str, send: Callable[[Replicator], None]) -> None:
        if self._replicator is None:
            return
        try:
            send(self._replicator)
        except Exception as e:
            # The local write already succeeded
            self._audit.log(AuditEventBuilder.replication_failed(operation, str(e)))
