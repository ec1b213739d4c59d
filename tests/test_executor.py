"""Tests for nukeflow executor module.

Tests the complete batch lifecycle:
steps -> Invocations -> BatchGraph -> StepResults -> BatchReport
"""

import threading
import time

import pytest

from conftest import RecordingBridge, echo_step, ref
from nukeflow.bridges import CallableBridge, SimulatedBridge
from nukeflow.errors import Cancelled, DanglingReference, ExternalExecutionError, UnknownOperation
from nukeflow.executor import (
    BatchExecutor,
    CancellationToken,
    FailurePolicy,
    execute,
    execute_batch,
)
from nukeflow.resolver import build_graph, parse_batch
from nukeflow.schemas import BatchStatus, StepStatus


def run(steps, registry, bridge, policy=FailurePolicy.HALT_ON_FIRST_FAILURE, concurrency=1, token=None):
    return execute_batch(
        steps,
        registry=registry,
        bridge=bridge,
        failure_policy=policy,
        max_concurrency=concurrency,
        token=token,
    )


# =============================================================================
# FAILURE POLICY TESTS
# =============================================================================


class TestFailurePolicy:
    """Tests for FailurePolicy parsing."""

    @pytest.mark.parametrize("value", [
        "halt_on_first_failure",
        "haltOnFirstFailure",
        "halt-on-first-failure",
        "HALT_ON_FIRST_FAILURE",
    ])
    def test_from_string_spellings(self, value):
        assert FailurePolicy.from_string(value) == FailurePolicy.HALT_ON_FIRST_FAILURE

    def test_from_string_passthrough(self):
        policy = FailurePolicy.CONTINUE_INDEPENDENT
        assert FailurePolicy.from_string(policy) is policy

    def test_from_string_unknown(self):
        with pytest.raises(ValueError, match="Unknown failure policy"):
            FailurePolicy.from_string("retry_forever")


# =============================================================================
# SEQUENTIAL EXECUTION TESTS
# =============================================================================


class TestSequentialExecution:
    """Tests for execution with max_concurrency=1."""

    def test_all_steps_succeed(self, echo_registry, recording_bridge):
        """Independent steps all succeed and the batch succeeds."""
        steps = [echo_step(f"s{i}", f"v{i}") for i in range(1, 4)]

        report = run(steps, echo_registry, recording_bridge)

        assert report.status == BatchStatus.SUCCEEDED
        assert report.step_ids == ["s1", "s2", "s3"]
        assert [r.output["value"] for r in report.steps] == ["v1", "v2", "v3"]

    def test_invocation_order_is_submission_order(self, echo_registry, recording_bridge):
        """At concurrency 1 the bridge sees steps exactly in submission order."""
        steps = [
            echo_step("s1", "a", delay=0.03),
            echo_step("s2", "b", delay=0.0),
            echo_step("s3", "c", delay=0.02),
            echo_step("s4", "d", delay=0.01),
        ]

        run(steps, echo_registry, recording_bridge)

        assert recording_bridge.values == ["a", "b", "c", "d"]

    def test_each_step_invoked_once(self, echo_registry, recording_bridge):
        steps = [echo_step("s1", "a"), echo_step("s2", ref("s1", "value"))]

        run(steps, echo_registry, recording_bridge)

        assert len(recording_bridge.calls) == 2

    def test_reference_substitution(self, echo_registry, recording_bridge):
        """A $ref argument receives the referenced step's output value."""
        steps = [
            echo_step("first", "hello"),
            echo_step("second", ref("first", "value")),
        ]

        report = run(steps, echo_registry, recording_bridge)

        assert report["second"].output == {"value": "hello"}
        assert recording_bridge.calls[1] == ("echo", {"value": "hello", "fail": False, "delay": 0.0})

    def test_bridge_receives_defaults_applied(self, echo_registry, recording_bridge):
        run([echo_step("s1", "x")], echo_registry, recording_bridge)

        assert recording_bridge.calls[0][1] == {"value": "x", "fail": False, "delay": 0.0}

    def test_timestamps_recorded(self, echo_registry, recording_bridge):
        report = run([echo_step("s1", "x")], echo_registry, recording_bridge)

        result = report["s1"]
        assert result.started_at is not None
        assert result.completed_at >= result.started_at
        assert result.duration_ms >= 0

    def test_empty_batch_succeeds(self, echo_registry, recording_bridge):
        report = run([], echo_registry, recording_bridge)

        assert report.status == BatchStatus.SUCCEEDED
        assert report.steps == ()
        assert recording_bridge.calls == []


# =============================================================================
# STEP FAILURE TESTS
# =============================================================================


class TestStepFailures:
    """Tests for errors raised while a step runs."""

    def test_bridge_failure_recorded(self, echo_registry, recording_bridge):
        report = run([echo_step("s1", "x", fail=True)], echo_registry, recording_bridge)

        result = report["s1"]
        assert result.status == StepStatus.FAILED
        assert result.error_kind == "ExternalExecutionError"
        assert "echo failed" in result.error["message"]
        assert result.output is None
        assert report.status == BatchStatus.FAILED

    def test_unexpected_exception_wrapped(self, echo_registry):
        """Exceptions that are not NukeflowErrors become ExternalExecutionError."""
        def explode(operation, arguments):
            raise RuntimeError("host crashed")

        report = run([echo_step("s1", "x")], echo_registry, CallableBridge(explode))

        assert report["s1"].error_kind == "ExternalExecutionError"
        assert "RuntimeError: host crashed" in report["s1"].error["message"]

    def test_invalid_result_fails_step(self, echo_registry):
        """Output not matching the result schema is a ValidationError."""
        report = run([echo_step("s1", "x")], echo_registry, CallableBridge(lambda op, args: {}))

        assert report["s1"].status == StepStatus.FAILED
        assert report["s1"].error_kind == "ValidationError"

    def test_missing_output_field(self, echo_registry, recording_bridge):
        """A reference to an absent output field fails the consuming step."""
        steps = [
            echo_step("s1", "x"),
            echo_step("s2", ref("s1", "nope")),
        ]

        report = run(steps, echo_registry, recording_bridge)

        assert report["s1"].status == StepStatus.SUCCEEDED
        assert report["s2"].status == StepStatus.FAILED
        assert report["s2"].error_kind == "MissingOutputField"
        assert len(recording_bridge.calls) == 1

    def test_resolved_arguments_validated(self, echo_registry, recording_bridge):
        """Arguments that only become invalid after substitution fail the step."""
        steps = [
            echo_step("s1", "not-a-number"),
            {"id": "s2", "op": "echo", "args": {"delay": ref("s1", "value")}},
        ]

        report = run(steps, echo_registry, recording_bridge)

        assert report["s2"].status == StepStatus.FAILED
        assert report["s2"].error_kind == "ValidationError"
        assert len(recording_bridge.calls) == 1


# =============================================================================
# HALT ON FIRST FAILURE TESTS
# =============================================================================


class TestHaltOnFirstFailure:
    """Tests for the halt_on_first_failure policy."""

    def test_remaining_steps_skipped(self, echo_registry, recording_bridge):
        """Step 3 of 5 fails: steps 4 and 5 are skipped and never invoked."""
        steps = [
            echo_step("s1", "a"),
            echo_step("s2", "b"),
            echo_step("s3", "c", fail=True),
            echo_step("s4", "d"),
            echo_step("s5", "e"),
        ]

        report = run(steps, echo_registry, recording_bridge)

        assert recording_bridge.values == ["a", "b", "c"]
        assert [r.status for r in report.steps] == [
            StepStatus.SUCCEEDED,
            StepStatus.SUCCEEDED,
            StepStatus.FAILED,
            StepStatus.SKIPPED,
            StepStatus.SKIPPED,
        ]
        assert report["s4"].error_kind == "BatchHalted"
        assert report["s5"].error_kind == "BatchHalted"
        assert report["s4"].started_at is None
        assert report.status == BatchStatus.FAILED

    def test_dependents_report_dependency_failure(self, echo_registry, recording_bridge):
        """A dependent of the failed step is skipped for its dependency."""
        steps = [
            echo_step("s1", "a", fail=True),
            echo_step("s2", ref("s1", "value")),
            echo_step("s3", "c"),
        ]

        report = run(steps, echo_registry, recording_bridge)

        assert report["s2"].error_kind == "DependencyFailed"
        assert "s1" in report["s2"].error["message"]
        assert report["s3"].error_kind == "BatchHalted"


# =============================================================================
# CONTINUE INDEPENDENT TESTS
# =============================================================================


class TestContinueIndependent:
    """Tests for the continue_independent policy."""

    def test_only_dependents_skipped(self, echo_registry, recording_bridge):
        steps = [
            echo_step("s1", "a"),
            echo_step("s2", "b", fail=True),
            echo_step("s3", ref("s2", "value")),
            echo_step("s4", ref("s3", "value")),
            echo_step("s5", "e"),
            echo_step("s6", ref("s1", "value")),
        ]

        report = run(steps, echo_registry, recording_bridge, policy=FailurePolicy.CONTINUE_INDEPENDENT)

        assert report["s1"].status == StepStatus.SUCCEEDED
        assert report["s2"].status == StepStatus.FAILED
        assert report["s3"].error_kind == "DependencyFailed"
        assert report["s4"].error_kind == "DependencyFailed"
        assert report["s5"].status == StepStatus.SUCCEEDED
        assert report["s6"].output == {"value": "a"}
        assert recording_bridge.values == ["a", "b", "e", "a"]
        assert report.status == BatchStatus.FAILED

    def test_policy_accepts_string(self, echo_registry, recording_bridge):
        steps = [echo_step("s1", "a", fail=True), echo_step("s2", "b")]

        report = run(steps, echo_registry, recording_bridge, policy="continueIndependent")

        assert report["s2"].status == StepStatus.SUCCEEDED


# =============================================================================
# STRUCTURAL ERROR TESTS
# =============================================================================


class TestStructuralErrors:
    """Structural errors abort the batch before anything runs."""

    def test_forward_reference_rejected(self, echo_registry, recording_bridge):
        steps = [
            echo_step("s1", ref("s2", "value")),
            echo_step("s2", "b"),
        ]

        with pytest.raises(DanglingReference):
            run(steps, echo_registry, recording_bridge)
        assert recording_bridge.calls == []

    def test_self_reference_rejected(self, echo_registry, recording_bridge):
        with pytest.raises(DanglingReference, match="itself"):
            run([echo_step("s1", ref("s1", "value"))], echo_registry, recording_bridge)
        assert recording_bridge.calls == []

    def test_unknown_operation_rejected(self, echo_registry, recording_bridge):
        steps = [echo_step("s1", "a"), {"id": "s2", "op": "teleport"}]

        with pytest.raises(UnknownOperation):
            run(steps, echo_registry, recording_bridge)
        assert recording_bridge.calls == []


# =============================================================================
# CONCURRENCY TESTS
# =============================================================================


class TestConcurrency:
    """Tests for bounded concurrent execution."""

    def test_independent_steps_run_concurrently(self, echo_registry):
        """Three independent steps meet at a barrier only if they overlap."""
        bridge = RecordingBridge(barrier=threading.Barrier(3, timeout=5))
        steps = [echo_step(f"s{i}", f"v{i}") for i in range(3)]

        report = run(steps, echo_registry, bridge, concurrency=3)

        assert report.status == BatchStatus.SUCCEEDED
        assert bridge.max_active == 3

    def test_concurrency_is_bounded(self, echo_registry, recording_bridge):
        steps = [echo_step(f"s{i}", f"v{i}", delay=0.02) for i in range(6)]

        report = run(steps, echo_registry, recording_bridge, concurrency=2)

        assert report.status == BatchStatus.SUCCEEDED
        assert recording_bridge.max_active <= 2

    def test_report_order_is_submission_order(self, echo_registry, recording_bridge):
        """Completion order differs from submission order; the report does not."""
        steps = [
            echo_step("slow", "a", delay=0.15),
            echo_step("fast", "b"),
            echo_step("medium", "c", delay=0.05),
        ]

        report = run(steps, echo_registry, recording_bridge, concurrency=3)

        assert report.step_ids == ["slow", "fast", "medium"]

    def test_dependent_waits_for_dependency(self, echo_registry, recording_bridge):
        steps = [
            echo_step("s1", "root", delay=0.1),
            echo_step("s2", ref("s1", "value")),
            echo_step("s3", "other"),
        ]

        report = run(steps, echo_registry, recording_bridge, concurrency=4)

        assert report["s2"].output == {"value": "root"}
        assert recording_bridge.values.index("root") < len(recording_bridge.values) - 1
        assert report["s2"].started_at >= report["s1"].completed_at

    def test_halt_lets_running_steps_finish(self, echo_registry, recording_bridge):
        """Steps already running when a failure is observed still complete."""
        steps = [echo_step("s1", "a", fail=True)] + [
            echo_step(f"s{i}", ref("s1", "value")) for i in range(2, 5)
        ] + [echo_step("s5", "e", delay=0.05)]

        report = run(steps, echo_registry, recording_bridge, concurrency=2)

        assert report["s1"].status == StepStatus.FAILED
        for sid in ("s2", "s3", "s4"):
            assert report[sid].error_kind == "DependencyFailed"
        assert report["s5"].status == StepStatus.SUCCEEDED
        assert sorted(recording_bridge.values) == ["a", "e"]


# =============================================================================
# CANCELLATION TESTS
# =============================================================================


class TestCancellation:
    """Tests for batch-level cancellation."""

    def test_cancelled_before_start(self, echo_registry, recording_bridge):
        token = CancellationToken()
        token.cancel()

        report = run([echo_step("s1", "a"), echo_step("s2", "b")], echo_registry, recording_bridge, token=token)

        assert recording_bridge.calls == []
        assert all(r.error_kind == "Cancelled" for r in report.steps)
        assert report.status == BatchStatus.PARTIAL_SUCCESS

    def test_cancel_mid_batch(self, echo_registry):
        token = CancellationToken()

        def cancelling(operation, arguments):
            if arguments["value"] == "b":
                token.cancel()
            return {"value": arguments["value"]}

        steps = [echo_step(sid, sid) for sid in ("a", "b", "c", "d")]
        report = run(steps, echo_registry, CallableBridge(cancelling), token=token)

        assert report["a"].status == StepStatus.SUCCEEDED
        assert report["b"].status == StepStatus.SUCCEEDED
        assert report["c"].error_kind == "Cancelled"
        assert report["d"].error_kind == "Cancelled"
        assert report.status == BatchStatus.PARTIAL_SUCCESS

    def test_raise_if_cancelled(self):
        token = CancellationToken()
        token.raise_if_cancelled()
        token.cancel()

        assert token.cancelled
        with pytest.raises(Cancelled, match="cancelled"):
            token.raise_if_cancelled()

    def test_bridge_polling_token_fails_step(self, echo_registry):
        """A bridge that checks the token stops with a Cancelled failure."""
        token = CancellationToken()

        def polling(operation, arguments):
            token.cancel()
            token.raise_if_cancelled()
            return {"value": "never"}

        report = run([echo_step("s1", "a"), echo_step("s2", "b")], echo_registry, CallableBridge(polling), token=token)

        assert report["s1"].status == StepStatus.FAILED
        assert report["s1"].error_kind == "Cancelled"
        assert report["s2"].error_kind == "Cancelled"


# =============================================================================
# EXECUTOR API TESTS
# =============================================================================


class TestBatchExecutor:
    """Tests for BatchExecutor construction and public entry points."""

    def test_invalid_concurrency(self, echo_registry):
        with pytest.raises(ValueError, match="max_concurrency"):
            BatchExecutor(echo_registry, max_concurrency=0)

    def test_default_bridge_is_simulated(self, registry):
        executor = BatchExecutor(registry)

        assert isinstance(executor.bridge, SimulatedBridge)

    def test_batch_id_carried_into_report(self, echo_registry, recording_bridge):
        graph = build_graph(parse_batch([echo_step("s1", "a")]), echo_registry)
        executor = BatchExecutor(echo_registry, bridge=recording_bridge)

        report = executor.execute(graph, batch_id="batch-123")

        assert report.batch_id == "batch-123"

    def test_batch_id_generated(self, echo_registry, recording_bridge):
        graph = build_graph(parse_batch([echo_step("s1", "a")]), echo_registry)
        report = BatchExecutor(echo_registry, bridge=recording_bridge).execute(graph)

        assert len(report.batch_id) == 26

    def test_execute_envelope(self, echo_registry, recording_bridge):
        report = execute({
            "steps": [echo_step("s1", "a"), echo_step("s2", "b", fail=True), echo_step("s3", "c")],
            "registry": echo_registry,
            "bridge": recording_bridge,
            "failure_policy": "continue_independent",
        })

        assert report.to_dict()["status"] == "failed"
        assert report["s3"].status == StepStatus.SUCCEEDED

    def test_execute_envelope_requires_steps(self):
        with pytest.raises(KeyError):
            execute({})


# =============================================================================
# SIMULATED HOST SCENARIOS
# =============================================================================


class TestSimulatedScenarios:
    """End-to-end batches of built-in operations on the simulated host."""

    def test_create_then_connect_by_reference(self, registry, simulated_bridge):
        """createNode's generated name flows into connectNodes via $ref."""
        steps = [
            {"id": "blur", "op": "createNode", "args": {"type": "Blur"}},
            {
                "id": "wire",
                "op": "connectNodes",
                "args": {"from": ref("blur", "name"), "to": "Write1"},
            },
        ]

        report = run(steps, registry, simulated_bridge)

        assert report.status == BatchStatus.SUCCEEDED
        assert report["blur"].output["name"] == "Blur1"
        assert report["wire"].output == {"fromNode": "Blur1", "toNode": "Write1", "inputIndex": 0}
        assert simulated_bridge.graph.nodes["Write1"].inputs == ["Blur1"]

    def test_comp_then_render(self, registry, simulated_bridge):
        steps = [
            {"id": "comp", "op": "createBasicComp", "args": {
                "foregroundPath": "/plates/fg.exr",
                "backgroundPath": "/plates/bg.exr",
                "outputPath": "/renders/comp.####.exr",
            }},
            {"id": "render", "op": "execute", "args": {
                "nodeName": ref("comp", "write"),
                "frameRange": "1-10",
            }},
        ]

        report = run(steps, registry, simulated_bridge)

        assert report.status == BatchStatus.SUCCEEDED
        assert report["render"].output["frameCount"] == 10
        assert report["render"].output["file"] == "/renders/comp.####.exr"

    def test_host_error_fails_step(self, registry, simulated_bridge):
        steps = [
            {"id": "knob", "op": "setKnobValue", "args": {"nodeName": "Missing1", "knobName": "size", "value": 3}},
            {"id": "list", "op": "listNodes", "args": {}},
        ]

        report = run(steps, registry, simulated_bridge, policy=FailurePolicy.CONTINUE_INDEPENDENT)

        assert report["knob"].error_kind == "ExternalExecutionError"
        assert "Missing1" in report["knob"].error["message"]
        assert report["list"].output["count"] == 1

    def test_positions_flow_between_steps(self, registry, simulated_bridge):
        """A nested output field is referenced with a dotted path."""
        steps = [
            {"id": "grade", "op": "createNode", "args": {"nodeType": "Grade", "position": {"x": 40, "y": 80}}},
            {"id": "dot", "op": "createNode", "args": {
                "nodeType": "Dot",
                "position": {"x": ref("grade", "position.x"), "y": 200},
            }},
        ]

        report = run(steps, registry, simulated_bridge)

        assert report["dot"].output["position"] == {"x": 40.0, "y": 200.0}

    def test_concurrent_read_only_steps(self, registry, simulated_bridge):
        steps = [{"id": f"q{i}", "op": "filterNodes", "args": {"nodeType": "Write"}} for i in range(4)]

        report = run(steps, registry, simulated_bridge, concurrency=4)

        assert report.status == BatchStatus.SUCCEEDED
        assert all(r.output["count"] == 1 for r in report.steps)


# =============================================================================
# LARGE BATCH TESTS
# =============================================================================


class TestLargeBatches:
    """Scheduling stays linear in the number of steps."""

    def test_many_independent_steps(self, echo_registry, recording_bridge):
        steps = [echo_step(f"s{i}", str(i)) for i in range(3000)]

        started = time.monotonic()
        report = run(steps, echo_registry, recording_bridge)
        elapsed = time.monotonic() - started

        assert report.status == BatchStatus.SUCCEEDED
        assert recording_bridge.values == [str(i) for i in range(3000)]
        assert report.step_ids == [f"s{i}" for i in range(3000)]
        assert elapsed < 20

    def test_long_chain_failure_cascades(self, echo_registry, recording_bridge):
        steps = [echo_step("s0", "x", fail=True)]
        steps += [echo_step(f"s{i}", ref(f"s{i - 1}", "value")) for i in range(1, 2000)]
        steps.append(echo_step("free", "y"))

        report = run(steps, echo_registry, recording_bridge, policy=FailurePolicy.CONTINUE_INDEPENDENT)

        assert report["s0"].status == StepStatus.FAILED
        assert all(r.error["kind"] == "DependencyFailed" for r in report.steps[1:2000])
        assert report["free"].status == StepStatus.SUCCEEDED
        assert recording_bridge.values == ["x", "y"]


def test_external_error_is_nukeflow_error():
    """Bridges may raise ExternalExecutionError directly without wrapping."""
    err = ExternalExecutionError("boom")
    assert err.to_dict() == {"kind": "ExternalExecutionError", "message": "boom"}
