"""
Invocation schemas - one submitted step and its symbolic references.

A batch is an ordered sequence of Invocations. Argument values are either
literals or SymbolicRefs pointing at an output field of an earlier step.

Textual reference syntax (JSON/YAML submissions):

    {"$ref": {"step": "<stepId>", "field": "<outputField>"}}

`field` may be a dotted path ("position.x") into nested output mappings.
"""

from dataclasses import dataclass, field
from typing import Any, Iterator, Optional

from nukeflow.errors import ValidationError

REF_KEY = "$ref"


@dataclass(frozen=True)
class SymbolicRef:
    """
    Placeholder for a value produced by an earlier step.

    Attributes:
        step: step_id of the producing step
        field: Output field name or dotted path into the output
    """
    step: str
    field: str

    def __post_init__(self):
        if not isinstance(self.step, str) or not self.step:
            raise ValidationError(f"{REF_KEY} 'step' must be a non-empty string, got {self.step!r}")
        if not isinstance(self.field, str) or not self.field:
            raise ValidationError(f"{REF_KEY} 'field' must be a non-empty string, got {self.field!r}")

    @property
    def path(self) -> list[str]:
        return self.field.split(".")

    def to_dict(self) -> dict[str, Any]:
        return {REF_KEY: {"step": self.step, "field": self.field}}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SymbolicRef":
        """Parse the `{"$ref": {...}}` form."""
        if set(data.keys()) != {REF_KEY}:
            raise ValidationError(
                f"A {REF_KEY} mapping must not have sibling keys, got {sorted(data.keys())}"
            )
        body = data[REF_KEY]
        if not isinstance(body, dict) or set(body.keys()) != {"step", "field"}:
            raise ValidationError(
                f"{REF_KEY} must be a mapping with exactly 'step' and 'field', got {body!r}"
            )
        return cls(step=body["step"], field=body["field"])

    def __str__(self) -> str:
        return f"{self.step}.{self.field}"


def parse_value(value: Any) -> Any:
    """Recursively convert `$ref` mappings into SymbolicRef instances."""
    if isinstance(value, dict):
        if REF_KEY in value:
            return SymbolicRef.from_dict(value)
        return {k: parse_value(v) for k, v in value.items()}
    elif isinstance(value, (list, tuple)):
        return [parse_value(v) for v in value]
    return value


def serialize_value(value: Any) -> Any:
    """Inverse of parse_value: SymbolicRefs back to their `$ref` form."""
    if isinstance(value, SymbolicRef):
        return value.to_dict()
    elif isinstance(value, dict):
        return {k: serialize_value(v) for k, v in value.items()}
    elif isinstance(value, (list, tuple)):
        return [serialize_value(v) for v in value]
    return value


def iter_refs(value: Any) -> Iterator[SymbolicRef]:
    """Yield every SymbolicRef contained in a value, depth first."""
    if isinstance(value, SymbolicRef):
        yield value
    elif isinstance(value, dict):
        for v in value.values():
            yield from iter_refs(v)
    elif isinstance(value, (list, tuple)):
        for v in value:
            yield from iter_refs(v)


@dataclass(frozen=True)
class Invocation:
    """
    A single step of a batch.

    Attributes:
        step_id: Identifier unique within the batch
        operation: Name of a registered operation
        arguments: Parameter name -> literal value or SymbolicRef
    """
    step_id: str
    operation: str
    arguments: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not isinstance(self.step_id, str) or not self.step_id:
            raise ValidationError(f"step id must be a non-empty string, got {self.step_id!r}")
        if not isinstance(self.operation, str) or not self.operation:
            raise ValidationError(f"Step '{self.step_id}': operation name is required")
        if not isinstance(self.arguments, dict):
            raise ValidationError(
                f"Step '{self.step_id}': arguments must be a mapping, "
                f"got {type(self.arguments).__name__}"
            )

    def references(self) -> list[SymbolicRef]:
        return list(iter_refs(self.arguments))

    @property
    def has_references(self) -> bool:
        return any(True for _ in iter_refs(self.arguments))

    def to_dict(self) -> dict[str, Any]:
        return {
            "step_id": self.step_id,
            "operation": self.operation,
            "arguments": serialize_value(self.arguments),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], position: Optional[int] = None) -> "Invocation":
        """
        Parse a submitted step.

        Accepts `id`/`step_id`/`stepId`, `op`/`operation`/`tool` and
        `args`/`arguments`. A step without an id is named `step<position>`.
        """
        if not isinstance(data, dict):
            raise ValidationError(f"Each step must be a mapping, got {type(data).__name__}")

        step_id = _first(data, "step_id", "stepId", "id")
        if step_id is None:
            if position is None:
                raise ValidationError("Step is missing an id")
            step_id = f"step{position}"

        operation = _first(data, "operation", "op", "tool")
        if operation is None:
            raise ValidationError(f"Step '{step_id}' is missing an operation")

        arguments = _first(data, "arguments", "args")
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise ValidationError(
                f"Step '{step_id}': arguments must be a mapping, got {type(arguments).__name__}"
            )

        return cls(
            step_id=str(step_id),
            operation=operation,
            arguments=parse_value(arguments),
        )


def _first(data: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return None
