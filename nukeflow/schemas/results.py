"""
Result schemas - step outcomes and the batch report.

StepResult records the terminal outcome of one step.
BatchReport holds one StepResult per submitted step, in submission order,
plus the overall batch status.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class StepStatus(str, Enum):
    """
    Lifecycle of a step.

    Pending -> Ready -> Running -> Succeeded | Failed
    Pending -> Skipped (dependency failed/skipped, batch halted or cancelled)
    """
    PENDING = "pending"
    READY = "ready"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in (StepStatus.SUCCEEDED, StepStatus.FAILED, StepStatus.SKIPPED)


class BatchStatus(str, Enum):
    """Overall status of a batch."""
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    PARTIAL_SUCCESS = "partial_success"


@dataclass(frozen=True)
class StepResult:
    """
    The outcome of a single step.

    Attributes:
        step_id: Identifier of the step
        operation: Operation the step invoked
        status: Terminal status (succeeded, failed, skipped)
        output: Validated operation output (succeeded only)
        error: {"kind": ..., "message": ...} for failed and skipped steps
        started_at: When the step started running (null if skipped)
        completed_at: When the step finished (null if skipped)
    """
    step_id: str
    operation: str
    status: StepStatus
    output: Optional[dict[str, Any]] = None
    error: Optional[dict[str, Any]] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.status.is_terminal:
            raise ValueError(f"StepResult status must be terminal, got {self.status.value}")
        if self.status == StepStatus.SUCCEEDED:
            if self.error is not None:
                raise ValueError("Succeeded steps must not carry an error")
            if self.output is None:
                raise ValueError("Succeeded steps must carry an output")
        else:
            if self.output is not None:
                raise ValueError(f"{self.status.value} steps must not carry an output")
            if self.error is None:
                raise ValueError(f"{self.status.value} steps must carry an error")
        if self.status in (StepStatus.SUCCEEDED, StepStatus.FAILED):
            if self.started_at is None or self.completed_at is None:
                raise ValueError(f"{self.status.value} steps must have started_at and completed_at")
        elif self.started_at is not None or self.completed_at is not None:
            raise ValueError("Skipped steps never ran and have no timestamps")

    @property
    def error_kind(self) -> Optional[str]:
        return self.error["kind"] if self.error else None

    @property
    def duration_ms(self) -> Optional[int]:
        """Calculate execution duration in milliseconds if both timestamps present."""
        if self.started_at and self.completed_at:
            delta = self.completed_at - self.started_at
            return int(delta.total_seconds() * 1000)
        return None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        result: dict[str, Any] = {
            "step_id": self.step_id,
            "operation": self.operation,
            "status": self.status.value,
        }
        if self.output is not None:
            result["output"] = self.output
        if self.error is not None:
            result["error"] = self.error
        if self.started_at is not None:
            result["started_at"] = self.started_at.isoformat()
        if self.completed_at is not None:
            result["completed_at"] = self.completed_at.isoformat()
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StepResult":
        """Deserialize from dictionary."""
        return cls(
            step_id=data["step_id"],
            operation=data["operation"],
            status=StepStatus(data["status"]),
            output=data.get("output"),
            error=data.get("error"),
            started_at=datetime.fromisoformat(data["started_at"]) if data.get("started_at") else None,
            completed_at=datetime.fromisoformat(data["completed_at"]) if data.get("completed_at") else None,
        )


@dataclass(frozen=True)
class BatchReport:
    """
    The combined report for a batch.

    Attributes:
        status: Overall status derived from the step results
        steps: One StepResult per submitted step, in submission order
        batch_id: Identifier of the batch execution (optional)
    """
    status: BatchStatus
    steps: tuple[StepResult, ...] = field(default_factory=tuple)
    batch_id: Optional[str] = None

    @property
    def step_ids(self) -> list[str]:
        return [r.step_id for r in self.steps]

    @property
    def succeeded(self) -> bool:
        return self.status == BatchStatus.SUCCEEDED

    def get(self, step_id: str) -> Optional[StepResult]:
        """Get the result for a specific step."""
        for result in self.steps:
            if result.step_id == step_id:
                return result
        return None

    def __getitem__(self, step_id: str) -> StepResult:
        result = self.get(step_id)
        if result is None:
            raise KeyError(step_id)
        return result

    def _with_status(self, status: StepStatus) -> tuple[StepResult, ...]:
        return tuple(r for r in self.steps if r.status == status)

    @property
    def succeeded_steps(self) -> tuple[StepResult, ...]:
        return self._with_status(StepStatus.SUCCEEDED)

    @property
    def failed_steps(self) -> tuple[StepResult, ...]:
        return self._with_status(StepStatus.FAILED)

    @property
    def skipped_steps(self) -> tuple[StepResult, ...]:
        return self._with_status(StepStatus.SKIPPED)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        result: dict[str, Any] = {
            "status": self.status.value,
            "steps": [r.to_dict() for r in self.steps],
        }
        if self.batch_id is not None:
            result["batch_id"] = self.batch_id
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BatchReport":
        """Deserialize from dictionary."""
        return cls(
            status=BatchStatus(data["status"]),
            steps=tuple(StepResult.from_dict(s) for s in data.get("steps", [])),
            batch_id=data.get("batch_id"),
        )
