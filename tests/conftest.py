import threading
import time
from typing import Any, Optional

import pytest
from pydantic import Field

from nukeflow.bridges import CallableBridge, SimulatedBridge
from nukeflow.errors import ExternalExecutionError
from nukeflow.operations.common import OperationArgs, OperationResult
from nukeflow.registry import OperationRegistry
from nukeflow.schemas import OperationSpec


class EchoArgs(OperationArgs):
    value: str = ""
    fail: bool = False
    delay: float = Field(0.0, ge=0)


class EchoResult(OperationResult):
    value: str


class PeekArgs(OperationArgs):
    key: str


class PeekResult(OperationResult):
    key: str
    found: Optional[str] = None


ECHO = OperationSpec(name="echo", input_schema=EchoArgs, result_schema=EchoResult, category="test")
PEEK = OperationSpec(
    name="peek", input_schema=PeekArgs, result_schema=PeekResult,
    side_effect_free=True, category="test",
)


class RecordingBridge(CallableBridge):
    """Echoes its input and records every call; `fail=True` raises."""

    def __init__(self, barrier: Optional[threading.Barrier] = None):
        super().__init__(self._handle)
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.active = 0
        self.max_active = 0
        self.barrier = barrier
        self._lock = threading.Lock()

    def _handle(self, operation: str, arguments: dict[str, Any]) -> dict[str, Any]:
        with self._lock:
            self.calls.append((operation, arguments))
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.barrier is not None:
                self.barrier.wait()
            if arguments.get("delay"):
                time.sleep(arguments["delay"])
            if arguments.get("fail"):
                raise ExternalExecutionError(f"echo failed for {arguments.get('value')!r}")
            if operation == "peek":
                return {"key": arguments["key"]}
            return {"value": arguments["value"]}
        finally:
            with self._lock:
                self.active -= 1

    @property
    def values(self) -> list[str]:
        return [args.get("value") for _, args in self.calls]


@pytest.fixture
def echo_registry():
    registry = OperationRegistry()
    registry.register(ECHO)
    registry.register(PEEK)
    return registry.freeze()


@pytest.fixture
def recording_bridge():
    return RecordingBridge()


@pytest.fixture
def registry():
    return OperationRegistry.create_default()


@pytest.fixture
def simulated_bridge():
    """Simulated host with an existing Write node (Write1)."""
    bridge = SimulatedBridge()
    bridge.graph.create_node("Write")
    return bridge


def echo_step(step_id: str, value: Any = None, **args: Any) -> dict[str, Any]:
    """Build an echo step; `value` may be a literal or a $ref mapping."""
    arguments = dict(args)
    if value is not None:
        arguments["value"] = value
    return {"id": step_id, "op": "echo", "args": arguments}


def ref(step: str, field: str) -> dict[str, Any]:
    return {"$ref": {"step": step, "field": field}}
