"""
nukeflow.bridges - the seam between the batch core and the compositing host.

- Bridge: abstract `execute(operation, arguments) -> dict`
- CallableBridge: adapt a plain function
- SimulatedBridge: in-memory ScriptGraph host for dry runs and tests
"""

from nukeflow.bridges.base import Bridge, CallableBridge
from nukeflow.bridges.script_graph import Node, ScriptGraph, parse_frame_range
from nukeflow.bridges.simulated import SimulatedBridge

__all__ = [
    "Bridge",
    "CallableBridge",
    "Node",
    "ScriptGraph",
    "SimulatedBridge",
    "parse_frame_range",
]
