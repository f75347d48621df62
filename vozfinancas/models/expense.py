"""
Expense Models for VozFinanças

All data flowing between the assistant, the ledger and the stores must
conform to these schemas.

DESIGN DECISION: Amounts are Decimal in memory and plain numbers on the wire.
The assistant and the JSON store both speak JSON numbers, but sums over many
expenses must not drift, so every amount is quantized to cents on the way in
and only turned back into a float when serialized.
"""

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Annotated, Any, Optional

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    field_validator,
)


CENTS = Decimal("0.01")


def _quantize(value: Decimal) -> Decimal:
    if not value.is_finite():
        raise ValueError("Amount must be a finite number")
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


Money = Annotated[
    Decimal,
    AfterValidator(_quantize),
    PlainSerializer(float, return_type=float, when_used="json"),
]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Expense(BaseModel):
    """
    A single recorded expense.

    Created by add_expense, removed by delete_expense, otherwise immutable.
    """

    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    id: int = Field(
        ...,
        description="Millisecond timestamp id, strictly increasing within a store"
    )
    amount: Money = Field(
        ...,
        ge=0,
        description="Amount spent (two decimal places)"
    )
    description: str = Field(
        ...,
        description="What the money was spent on"
    )
    category_name: str = Field(
        ...,
        description="Free-text category"
    )
    date: datetime = Field(
        default_factory=utc_now,
        description="When the expense was recorded (UTC)"
    )

    @field_validator("date")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        """Naive timestamps are taken as UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)


class CategoryTotal(BaseModel):
    """Total spent in one category."""

    name: str
    total: Money


class Summary(BaseModel):
    """
    Derived totals over the whole expense collection.

    Never stored: recomputed from the collection after every mutation.
    """

    model_config = ConfigDict(populate_by_name=True)

    daily: Money = Field(
        default=Decimal("0.00"),
        description="Sum of today's expenses"
    )
    by_category: list[CategoryTotal] = Field(
        default_factory=list,
        alias="byCategory",
        description="One entry per distinct category, covering every expense"
    )

    def total_for(self, category: str) -> Decimal:
        """Get the total for a category (zero when absent)."""
        for entry in self.by_category:
            if entry.name == category:
                return entry.total
        return Decimal("0.00")


class ToolStatus(str, Enum):
    """Outcome tag carried by every tool response."""
    OK = "ok"
    UNSUPPORTED_TOOL = "UnsupportedTool"
    INVALID_ARGUMENTS = "InvalidArguments"
    EXECUTION_ERROR = "ExecutionError"


class ToolCall(BaseModel):
    """A function call requested by the assistant."""

    id: Optional[str] = Field(
        default=None,
        description="Call id assigned by the assistant"
    )
    name: str
    args: dict[str, Any] = Field(default_factory=dict)


class ToolResponse(BaseModel):
    """The answer to one ToolCall, tagged with the originating call id."""

    call_id: Optional[str] = None
    name: str
    status: ToolStatus = ToolStatus.OK
    result: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == ToolStatus.OK

    def to_payload(self) -> dict[str, Any]:
        """
        Convert to the JSON object handed back to the assistant.
        """
        if self.ok:
            return {"result": self.result}
        return {"status": self.status.value, "error": self.error or self.status.value}


class ParameterType(str, Enum):
    """JSON schema types used by tool parameters."""
    STRING = "STRING"
    NUMBER = "NUMBER"
    INTEGER = "INTEGER"


class ToolParameter(BaseModel):
    """One named, typed argument of a declared tool."""

    name: str
    type: ParameterType
    description: str
    required: bool = True


class ToolDeclaration(BaseModel):
    """A function the assistant may call."""

    name: str
    description: str
    parameters: list[ToolParameter] = Field(default_factory=list)

    @property
    def required(self) -> list[str]:
        return [p.name for p in self.parameters if p.required]
