"""
Resolver - turn a submitted batch into a validated dependency graph.

The resolver:
- Parses submission payloads into Invocations
- Looks up every operation in the OperationRegistry
- Validates arguments (full schema check for literal-only steps, name-level
  check for steps that still hold symbolic references)
- Builds the dependency graph from SymbolicRefs, rejecting references to
  steps that are not declared earlier in the batch

Every error raised here is structural: the batch is rejected before any
step runs.

At execution time `substitute_references` swaps SymbolicRefs for the
values found in earlier step outputs.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from nukeflow.errors import DanglingReference, MissingOutputField, ValidationError
from nukeflow.registry import OperationRegistry
from nukeflow.schemas import Invocation, SymbolicRef

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BatchGraph:
    """
    A validated batch: invocations in submission order plus dependency edges.

    An edge A -> B exists iff B's arguments reference an output of A.
    Every edge points backward in submission order, so the graph is acyclic.

    Attributes:
        invocations: Steps in submission order
        dependencies: step_id -> step_ids it references (deduplicated, in order)
        dependents: step_id -> step_ids that reference it
    """
    invocations: tuple[Invocation, ...]
    dependencies: dict[str, tuple[str, ...]] = field(default_factory=dict)
    dependents: dict[str, tuple[str, ...]] = field(default_factory=dict)
    _positions: dict[str, int] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        positions = {inv.step_id: n for n, inv in enumerate(self.invocations)}
        object.__setattr__(self, "_positions", positions)

    @property
    def order(self) -> list[str]:
        return [inv.step_id for inv in self.invocations]

    def position(self, step_id: str) -> int:
        """Zero-based submission position of a step."""
        return self._positions[step_id]

    def get(self, step_id: str) -> Invocation:
        return self.invocations[self._positions[step_id]]

    def is_independent(self, step_id: str) -> bool:
        return not self.dependencies.get(step_id)

    def transitive_dependents(self, step_id: str) -> list[str]:
        """All steps that directly or indirectly depend on `step_id`, in submission order."""
        seen: set[str] = set()
        queue = deque(self.dependents.get(step_id, ()))
        while queue:
            current = queue.popleft()
            if current in seen:
                continue
            seen.add(current)
            queue.extend(self.dependents.get(current, ()))
        return sorted(seen, key=self.position)

    def __len__(self) -> int:
        return len(self.invocations)


def parse_batch(data: Any) -> tuple[Invocation, ...]:
    """
    Parse a batch submission into Invocations.

    Accepted shapes:
        [{"id": "a", "op": "createNode", "args": {...}}, ...]
        {"steps": [...]}
        {"operations": [{"tool": "createNode", "args": {...}}, ...]}

    Invocation instances in the list are kept as they are.

    Raises:
        ValidationError: If the payload is malformed or step ids repeat
    """
    if isinstance(data, Mapping):
        if "steps" in data:
            steps = data["steps"]
        elif "operations" in data:
            steps = data["operations"]
        else:
            raise ValidationError("Batch must contain 'steps' or 'operations'")
    else:
        steps = data

    if not isinstance(steps, (list, tuple)):
        raise ValidationError(f"Batch steps must be a list, got {type(steps).__name__}")

    invocations = tuple(
        step if isinstance(step, Invocation) else Invocation.from_dict(step, position=n)
        for n, step in enumerate(steps, start=1)
    )
    _check_unique_ids(invocations)
    return invocations


def _check_unique_ids(invocations: Iterable[Invocation]) -> None:
    seen: set[str] = set()
    duplicates: list[str] = []
    for inv in invocations:
        if inv.step_id in seen and inv.step_id not in duplicates:
            duplicates.append(inv.step_id)
        seen.add(inv.step_id)
    if duplicates:
        raise ValidationError(f"Duplicate step IDs: {duplicates}")


def build_graph(
    invocations: Iterable[Invocation],
    registry: OperationRegistry,
) -> BatchGraph:
    """
    Validate invocations and build the dependency graph.

    Args:
        invocations: Steps in submission order
        registry: Registry used to look up and validate operations

    Returns:
        BatchGraph ready for execution

    Raises:
        UnknownOperation: If a step names an unregistered operation
        ValidationError: If step ids repeat or arguments fail validation
        DanglingReference: If a reference is forward, to itself or to an unknown step
    """
    invocations = tuple(invocations)
    _check_unique_ids(invocations)
    all_ids = {inv.step_id for inv in invocations}

    position: dict[str, int] = {}
    dependencies: dict[str, tuple[str, ...]] = {}
    dependents: dict[str, list[str]] = {inv.step_id: [] for inv in invocations}

    for index, inv in enumerate(invocations):
        spec = registry.lookup(inv.operation)

        step_deps: list[str] = []
        for ref in inv.references():
            if ref.step not in position:
                raise DanglingReference(inv.step_id, ref.step, _dangling_message(inv, ref, all_ids))
            if ref.step not in step_deps:
                step_deps.append(ref.step)

        if inv.has_references:
            spec.check_argument_names(inv.arguments.keys())
        else:
            spec.validate_arguments(inv.arguments)

        position[inv.step_id] = index
        dependencies[inv.step_id] = tuple(step_deps)
        for dep in step_deps:
            dependents[dep].append(inv.step_id)

    _assert_acyclic(position, dependencies)

    graph = BatchGraph(
        invocations=invocations,
        dependencies=dependencies,
        dependents={k: tuple(v) for k, v in dependents.items()},
    )
    logger.debug(
        "Built batch graph: %d steps, %d edges",
        len(graph),
        sum(len(d) for d in dependencies.values()),
    )
    return graph


def _dangling_message(inv: Invocation, ref: SymbolicRef, all_ids: set[str]) -> str:
    if ref.step == inv.step_id:
        reason = "references itself"
    elif ref.step in all_ids:
        reason = f"references step '{ref.step}' which is declared after it"
    else:
        reason = f"references unknown step '{ref.step}'"
    return f"Step '{inv.step_id}' {reason} (field '{ref.field}')"


def _assert_acyclic(position: dict[str, int], dependencies: dict[str, tuple[str, ...]]) -> None:
    """Every edge must point to an earlier step."""
    for step_id, deps in dependencies.items():
        for dep in deps:
            if position[dep] >= position[step_id]:
                raise DanglingReference(
                    step_id, dep,
                    f"Dependency cycle: step '{step_id}' depends on later step '{dep}'",
                )


def substitute_references(value: Any, outputs: Mapping[str, Mapping[str, Any]]) -> Any:
    """
    Replace SymbolicRefs in a value with data from earlier step outputs.

    `{"$ref": {"step": "a", "field": "position.x"}}` resolves to
    outputs["a"]["position"]["x"]. Numeric path parts index into lists.

    Args:
        value: The value containing potential SymbolicRefs
        outputs: step_id -> output of succeeded steps

    Returns:
        The value with every SymbolicRef replaced by a literal

    Raises:
        MissingOutputField: If a referenced step output or field is absent
    """
    if isinstance(value, SymbolicRef):
        return _lookup_field(value, outputs)
    elif isinstance(value, dict):
        return {k: substitute_references(v, outputs) for k, v in value.items()}
    elif isinstance(value, (list, tuple)):
        return [substitute_references(v, outputs) for v in value]
    return value


def _lookup_field(ref: SymbolicRef, outputs: Mapping[str, Mapping[str, Any]]) -> Any:
    if ref.step not in outputs:
        raise MissingOutputField(ref.step, ref.field, f"No output available from step '{ref.step}'")

    result: Any = outputs[ref.step]
    for part in ref.path:
        if isinstance(result, Mapping) and part in result:
            result = result[part]
        elif isinstance(result, (list, tuple)) and part.isdigit() and int(part) < len(result):
            result = result[int(part)]
        else:
            raise MissingOutputField(
                ref.step, ref.field,
                f"Output of step '{ref.step}' has no field '{ref.field}' (missing '{part}')",
            )
    return result
