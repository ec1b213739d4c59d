"""
Error classes for nukeflow batch execution.

Two families of errors exist:
- Structural errors (DuplicateOperation, UnknownOperation, DanglingReference,
  ValidationError during submission) abort a batch before any step runs and
  are raised to the caller.
- Step errors (MissingOutputField, ExternalExecutionError, ValidationError on
  resolved arguments, Cancelled) are caught by the executor at the step
  boundary and recorded as that step's Failed result.

Every error carries a stable ``kind`` that is written into StepResult error
payloads so reports stay serializable.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Stable identifiers for error payloads in step results."""
    DUPLICATE_OPERATION = "DuplicateOperation"
    UNKNOWN_OPERATION = "UnknownOperation"
    DANGLING_REFERENCE = "DanglingReference"
    VALIDATION_ERROR = "ValidationError"
    MISSING_OUTPUT_FIELD = "MissingOutputField"
    EXTERNAL_EXECUTION_ERROR = "ExternalExecutionError"
    CANCELLED = "Cancelled"
    # Skip reasons
    DEPENDENCY_FAILED = "DependencyFailed"
    BATCH_HALTED = "BatchHalted"
    # Outside step execution
    REGISTRY_FROZEN = "RegistryFrozen"
    CONFIG_ERROR = "ConfigError"


class NukeflowError(Exception):
    """Base exception for nukeflow."""
    kind = ErrorKind.EXTERNAL_EXECUTION_ERROR

    def to_dict(self) -> dict[str, str]:
        """Serialize as a step error payload."""
        return {"kind": self.kind.value, "message": str(self)}


class DuplicateOperation(NukeflowError):
    """An operation with the same name is already registered."""
    kind = ErrorKind.DUPLICATE_OPERATION


class UnknownOperation(NukeflowError):
    """No operation is registered under the requested name."""
    kind = ErrorKind.UNKNOWN_OPERATION


class RegistryFrozen(NukeflowError):
    """Registration attempted after the registry was sealed."""
    kind = ErrorKind.REGISTRY_FROZEN


class DanglingReference(NukeflowError):
    """
    A symbolic reference names a step that is not declared earlier.

    Forward references, self references and references to unknown steps
    all raise this error at graph construction time.
    """
    kind = ErrorKind.DANGLING_REFERENCE

    def __init__(self, step_id: str, referenced_step: str, message: str = ""):
        self.step_id = step_id
        self.referenced_step = referenced_step
        super().__init__(
            message
            or f"Step '{step_id}' references step '{referenced_step}' "
            f"which is not declared before it"
        )


class ValidationError(NukeflowError):
    """Arguments (or a result) do not conform to an operation schema."""
    kind = ErrorKind.VALIDATION_ERROR


class MissingOutputField(NukeflowError):
    """A referenced output field is absent from the producing step's output."""
    kind = ErrorKind.MISSING_OUTPUT_FIELD

    def __init__(self, step_id: str, field: str, message: str = ""):
        self.step_id = step_id
        self.field = field
        super().__init__(
            message or f"Output of step '{step_id}' has no field '{field}'"
        )


class ExternalExecutionError(NukeflowError):
    """
    The external bridge reported a failure.

    Bridges raise this for host-side problems (unknown node, name clash,
    render failure). Any other exception escaping a bridge is wrapped in
    it by the executor.
    """
    kind = ErrorKind.EXTERNAL_EXECUTION_ERROR


class Cancelled(NukeflowError):
    """The batch was cancelled."""
    kind = ErrorKind.CANCELLED


class ConfigError(NukeflowError):
    """Configuration validation error."""
    kind = ErrorKind.CONFIG_ERROR
