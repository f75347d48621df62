"""Assistant tools: declarations and the executor that runs them."""

from vozfinancas.tools.declarations import SYSTEM_PROMPT, TOOL_DECLARATIONS
from vozfinancas.tools.executor import (
    InvalidToolArgumentsError,
    Replicator,
    ToolCallExecutor,
    ToolError,
    UnsupportedToolError,
)

__all__ = [
    "SYSTEM_PROMPT",
    "TOOL_DECLARATIONS",
    "InvalidToolArgumentsError",
    "Replicator",
    "ToolCallExecutor",
    "ToolError",
    "UnsupportedToolError",
]
