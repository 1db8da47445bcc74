"""
Base classes and utilities for kernelgrid
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")

# ==================== EXECUTION FLOW CONTROL ====================

class ExecutionFlowTag(Enum):
    """Execution flow control tags"""
    CONTINUE = "continue"
    RETURN = "return"

@dataclass(frozen=True)
class ExecutionFlow(Generic[T]):
    """Statement outcome inside a lowered kernel body, without exceptions"""
    tag: ExecutionFlowTag
    value: Optional[T] = None

    @classmethod
    def return_value(cls, value: T) -> "ExecutionFlow[T]":
        """Return from the body with value"""
        return cls(ExecutionFlowTag.RETURN, value)

    def is_return(self) -> bool:
        return self.tag == ExecutionFlowTag.RETURN

# Statements that fall through share one instance
CONTINUE: ExecutionFlow[Any] = ExecutionFlow(ExecutionFlowTag.CONTINUE)


def qualified_name(obj: Any) -> Optional[str]:
    """`module:qualname` for importable callables, None for lambdas and closures."""
    module = getattr(obj, "__module__", None)
    qualname = getattr(obj, "__qualname__", None)
    if not module or not qualname or "<" in qualname:
        return None
    return f"{module}:{qualname}"
