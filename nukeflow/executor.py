"""
Executor - dependency-aware batch execution engine.

The BatchExecutor implements:
- Scheduling of a validated BatchGraph, sequentially or on a bounded pool
  of worker threads when steps are independent
- Reference substitution ($ref values from earlier step outputs)
- Argument and result validation against the OperationSpec
- Failure policies (halt on first failure, continue independent branches)
- Batch-level cancellation

Execution flow:
1. A single coordinator counts, per step, the dependencies still without
   a result; steps with none are Ready from the start
2. When a step finishes only its dependents are re-checked: one whose
   dependency failed or was skipped becomes Skipped, one whose
   dependencies all succeeded becomes Ready
3. Ready steps are dispatched to a worker in submission order while
   capacity allows; after a halt or cancellation every step not yet
   started is Skipped
4. For each running step:
   a. Substitute SymbolicRefs with literal values from earlier outputs
   b. Validate resolved arguments against the input schema
   c. Invoke the bridge exactly once
   d. Validate the output against the result schema
5. The coordinator waits for the next completion and repeats
6. Results are aggregated into a BatchReport in submission order

Per-step errors never escape `execute`; they are recorded as Failed results.
Structural errors (unknown operation, dangling reference, invalid literal
arguments) are raised by the resolver before anything runs.
"""

import heapq
import logging
import threading
from collections import deque
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Optional, Union

from nukeflow.aggregator import aggregate
from nukeflow.bridges import Bridge, SimulatedBridge
from nukeflow.errors import Cancelled, ErrorKind, ExternalExecutionError, NukeflowError
from nukeflow.registry import OperationRegistry
from nukeflow.resolver import BatchGraph, build_graph, parse_batch, substitute_references
from nukeflow.schemas import BatchReport, Invocation, StepResult, StepStatus
from nukeflow.utils import generate_batch_id

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


class FailurePolicy(str, Enum):
    """What happens to the rest of the batch when a step fails."""
    HALT_ON_FIRST_FAILURE = "halt_on_first_failure"
    CONTINUE_INDEPENDENT = "continue_independent"

    @classmethod
    def from_string(cls, value: Union[str, "FailurePolicy"]) -> "FailurePolicy":
        """Parse a policy; accepts snake_case, camelCase and kebab-case spellings."""
        if isinstance(value, FailurePolicy):
            return value
        normalized = "".join(ch for ch in str(value).lower() if ch.isalpha())
        for policy in cls:
            if policy.value.replace("_", "") == normalized:
                return policy
        raise ValueError(
            f"Unknown failure policy: {value}. "
            f"Expected one of {[p.value for p in cls]}"
        )


class CancellationToken:
    """
    Batch-level cancellation signal.

    Once cancelled, no step that is not already running will start.
    Running steps are not interrupted; a bridge may poll
    `raise_if_cancelled()` to stop cooperatively.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise Cancelled("Batch was cancelled")


class BatchExecutor:
    """
    Execution engine for BatchGraphs.

    Usage:
        registry = OperationRegistry.create_default()
        executor = BatchExecutor(registry, bridge=SimulatedBridge(), max_concurrency=4)

        graph = build_graph(parse_batch(steps), registry)
        report = executor.execute(graph, FailurePolicy.CONTINUE_INDEPENDENT)

    With max_concurrency=1 steps run one at a time in submission order.
    """

    def __init__(
        self,
        registry: OperationRegistry,
        bridge: Optional[Bridge] = None,
        max_concurrency: int = 1,
    ):
        """
        Initialize the executor.

        Args:
            registry: Registry holding the contracts of every operation in the batch
            bridge: Host bridge invoked for each step (defaults to SimulatedBridge)
            max_concurrency: Maximum number of steps running at once
        """
        if max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {max_concurrency}")
        self._registry = registry
        self._bridge = bridge if bridge is not None else SimulatedBridge()
        self._max_concurrency = max_concurrency

    @property
    def bridge(self) -> Bridge:
        return self._bridge

    @property
    def max_concurrency(self) -> int:
        return self._max_concurrency

    def execute(
        self,
        graph: BatchGraph,
        failure_policy: Union[FailurePolicy, str] = FailurePolicy.HALT_ON_FIRST_FAILURE,
        token: Optional[CancellationToken] = None,
        batch_id: Optional[str] = None,
    ) -> BatchReport:
        """
        Execute a batch graph.

        Args:
            graph: Validated BatchGraph from the resolver
            failure_policy: halt_on_first_failure or continue_independent
            token: Optional cancellation token
            batch_id: Identifier for logging and the report (generated if omitted)

        Returns:
            BatchReport with one result per step in submission order
        """
        policy = FailurePolicy.from_string(failure_policy)
        token = token or CancellationToken()
        batch_id = batch_id or generate_batch_id()
        log_extra = {"batch_id": batch_id}

        logger.info(
            "Batch %s: executing %d steps (policy=%s, max_concurrency=%d)",
            batch_id, len(graph), policy.value, self._max_concurrency,
            extra=log_extra,
        )

        results: dict[str, StepResult] = {}
        outputs: dict[str, dict[str, Any]] = {}
        running: dict[Future, str] = {}
        # Dependencies of each step that have no result yet
        waiting = {sid: len(graph.dependencies.get(sid, ())) for sid in graph.order}
        ready: list[tuple[int, str]] = []
        halted = False

        def skip(step_id: str, reason: ErrorKind) -> None:
            deps = graph.dependencies.get(step_id, ())
            results[step_id] = _skipped(graph.get(step_id), reason, deps, results)
            logger.info(
                "Step %s skipped (%s)", step_id, reason.value,
                extra={**log_extra, "step_id": step_id, "event": "skipped"},
            )

        def settle(step_id: str) -> None:
            """Release the dependents of a step that now has a result."""
            queue = deque([step_id])
            while queue:
                current = queue.popleft()
                for dependent in graph.dependents.get(current, ()):
                    waiting[dependent] -= 1
                    if waiting[dependent] or dependent in results:
                        continue
                    deps = graph.dependencies.get(dependent, ())
                    reason = self._skip_reason(deps, results, halted, token)
                    if reason is None:
                        heapq.heappush(ready, (graph.position(dependent), dependent))
                    else:
                        skip(dependent, reason)
                        queue.append(dependent)

        for step_id in graph.order:
            if not waiting[step_id]:
                heapq.heappush(ready, (graph.position(step_id), step_id))

        with ThreadPoolExecutor(
            max_workers=self._max_concurrency,
            thread_name_prefix="nukeflow-step",
        ) as pool:
            while True:
                if (halted or token.cancelled) and len(results) + len(running) < len(graph):
                    in_flight = set(running.values())
                    for step_id in graph.order:
                        if step_id in results or step_id in in_flight:
                            continue
                        deps = graph.dependencies.get(step_id, ())
                        skip(step_id, self._skip_reason(deps, results, halted, token))
                    ready.clear()

                while ready and len(running) < self._max_concurrency:
                    _, step_id = heapq.heappop(ready)
                    deps = graph.dependencies.get(step_id, ())
                    step_inputs = {dep: outputs[dep] for dep in deps}
                    future = pool.submit(self._run_step, graph.get(step_id), step_inputs, log_extra)
                    running[future] = step_id

                if not running:
                    if len(results) < len(graph):
                        pending = [sid for sid in graph.order if sid not in results]
                        raise RuntimeError(f"Batch {batch_id} stalled with pending steps {pending}")
                    break

                done, _ = wait(running, return_when=FIRST_COMPLETED)
                for future in sorted(done, key=lambda f: graph.position(running[f])):
                    step_id = running.pop(future)
                    result = future.result()
                    results[step_id] = result
                    if result.status == StepStatus.SUCCEEDED:
                        outputs[step_id] = result.output
                    elif policy == FailurePolicy.HALT_ON_FIRST_FAILURE and not halted:
                        halted = True
                        logger.warning(
                            "Batch %s: step %s failed, halting remaining steps", batch_id, step_id,
                            extra={**log_extra, "step_id": step_id, "event": "halted"},
                        )
                    settle(step_id)

        report = aggregate(results, graph.order, batch_id=batch_id)
        logger.info(
            "Batch %s finished: %s (%d succeeded, %d failed, %d skipped)",
            batch_id, report.status.value,
            len(report.succeeded_steps), len(report.failed_steps), len(report.skipped_steps),
            extra=log_extra,
        )
        return report

    @staticmethod
    def _skip_reason(
        deps: tuple[str, ...],
        results: Mapping[str, StepResult],
        halted: bool,
        token: CancellationToken,
    ) -> Optional[ErrorKind]:
        if token.cancelled:
            return ErrorKind.CANCELLED
        for dep in deps:
            dep_result = results.get(dep)
            if dep_result is not None and dep_result.status != StepStatus.SUCCEEDED:
                return ErrorKind.DEPENDENCY_FAILED
        if halted:
            return ErrorKind.BATCH_HALTED
        return None

    def _run_step(
        self,
        invocation: Invocation,
        step_inputs: Mapping[str, dict[str, Any]],
        log_extra: dict[str, Any],
    ) -> StepResult:
        """
        Run a single step on a worker.

        Args:
            invocation: The step to run
            step_inputs: Outputs of the steps it depends on

        Returns:
            Succeeded or Failed StepResult
        """
        extra = {**log_extra, "step_id": invocation.step_id}
        spec = self._registry.lookup(invocation.operation)
        started_at = _utcnow()
        logger.debug("Step %s running %s", invocation.step_id, invocation.operation, extra=extra)

        try:
            arguments = substitute_references(invocation.arguments, step_inputs)
            arguments = spec.validate_arguments(arguments)
            try:
                raw_output = self._bridge.execute(invocation.operation, arguments)
            except NukeflowError:
                raise
            except Exception as e:
                raise ExternalExecutionError(f"{type(e).__name__}: {e}") from e
            output = spec.validate_result(raw_output)
        except NukeflowError as e:
            completed_at = _utcnow()
            logger.warning(
                "Step %s failed (%s): %s", invocation.step_id, e.kind.value, e,
                extra={**extra, "event": "failed"},
            )
            return StepResult(
                step_id=invocation.step_id,
                operation=invocation.operation,
                status=StepStatus.FAILED,
                error=e.to_dict(),
                started_at=started_at,
                completed_at=completed_at,
            )

        completed_at = _utcnow()
        logger.info(
            "Step %s succeeded (%s)", invocation.step_id, invocation.operation,
            extra={**extra, "event": "succeeded"},
        )
        return StepResult(
            step_id=invocation.step_id,
            operation=invocation.operation,
            status=StepStatus.SUCCEEDED,
            output=output,
            started_at=started_at,
            completed_at=completed_at,
        )


def _skipped(
    invocation: Invocation,
    reason: ErrorKind,
    deps: tuple[str, ...],
    results: Mapping[str, StepResult],
) -> StepResult:
    if reason == ErrorKind.DEPENDENCY_FAILED:
        blocked_by = [d for d in deps if d in results and results[d].status != StepStatus.SUCCEEDED]
        message = f"Dependency did not succeed: {', '.join(blocked_by)}"
    elif reason == ErrorKind.CANCELLED:
        message = "Batch was cancelled before this step started"
    else:
        message = "Batch halted after an earlier step failed"
    return StepResult(
        step_id=invocation.step_id,
        operation=invocation.operation,
        status=StepStatus.SKIPPED,
        error={"kind": reason.value, "message": message},
    )


def execute_batch(
    steps: Any,
    registry: Optional[OperationRegistry] = None,
    bridge: Optional[Bridge] = None,
    failure_policy: Union[FailurePolicy, str] = FailurePolicy.HALT_ON_FIRST_FAILURE,
    max_concurrency: int = 1,
    token: Optional[CancellationToken] = None,
) -> BatchReport:
    """
    Parse, resolve and execute a batch submission.

    Args:
        steps: Submission payload (list of steps or {"steps": [...]})
        registry: Operation registry (defaults to the built-in operations)
        bridge: Host bridge (defaults to a fresh SimulatedBridge)
        failure_policy: halt_on_first_failure or continue_independent
        max_concurrency: Maximum number of steps running at once
        token: Optional cancellation token

    Returns:
        BatchReport

    Raises:
        ValidationError, UnknownOperation, DanglingReference: structural
            problems, raised before any step runs
    """
    registry = registry or OperationRegistry.create_default()
    graph = build_graph(parse_batch(steps), registry)
    executor = BatchExecutor(registry, bridge=bridge, max_concurrency=max_concurrency)
    return executor.execute(graph, failure_policy=failure_policy, token=token)


def execute(envelope: dict[str, Any]) -> BatchReport:
    """
    Execute a batch from an envelope.

    This is the primary public API for nukeflow execution.

    Envelope schema:
        steps: list - Ordered step mappings ({"id", "op", "args"})
        failure_policy: str - halt_on_first_failure (default) or continue_independent
        max_concurrency: int - Worker limit (default 1)
        registry: OperationRegistry - Operation contracts (optional)
        bridge: Bridge - Host bridge (optional, defaults to SimulatedBridge)
        token: CancellationToken - Cancellation signal (optional)

    Args:
        envelope: Execution envelope

    Returns:
        BatchReport; call `.to_dict()` for a serializable form

    Raises:
        KeyError: If steps is not in envelope
    """
    steps = envelope["steps"]
    return execute_batch(
        steps,
        registry=envelope.get("registry"),
        bridge=envelope.get("bridge"),
        failure_policy=envelope.get("failure_policy", FailurePolicy.HALT_ON_FIRST_FAILURE),
        max_concurrency=envelope.get("max_concurrency", 1),
        token=envelope.get("token"),
    )
