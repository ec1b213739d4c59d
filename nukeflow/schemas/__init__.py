"""
nukeflow.schemas - Data structures for batch execution.

OperationSpec -> Invocation -> StepResult -> BatchReport

Lifecycle:
1. OperationSpec: registered once at start, immutable
2. Invocation: one submitted step; arguments may hold SymbolicRefs
3. StepResult: terminal outcome of a step, written once by the executor
4. BatchReport: ordered StepResults plus overall status, returned to the caller

All except OperationSpec are request-scoped and discarded after the report
is returned.
"""

from .operation import OperationSpec
from .invocation import (
    Invocation,
    SymbolicRef,
    REF_KEY,
    iter_refs,
    parse_value,
    serialize_value,
)
from .results import (
    BatchReport,
    BatchStatus,
    StepResult,
    StepStatus,
)

__all__ = [
    # Operation
    "OperationSpec",
    # Invocation
    "Invocation",
    "SymbolicRef",
    "REF_KEY",
    "iter_refs",
    "parse_value",
    "serialize_value",
    # Results
    "BatchReport",
    "BatchStatus",
    "StepResult",
    "StepStatus",
]
