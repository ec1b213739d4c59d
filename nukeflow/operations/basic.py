"""
Basic node operations: create, inspect, connect, position, render.
"""

from typing import Any, Optional

from pydantic import AliasChoices, Field

from nukeflow.schemas import OperationSpec

from .common import KnobValue, OperationArgs, OperationResult, Position


class CreateNodeArgs(OperationArgs):
    nodeType: str = Field(
        validation_alias=AliasChoices("nodeType", "type"),
        description="Type of node to create (e.g., 'Blur', 'Grade', 'Read')",
    )
    name: Optional[str] = Field(None, description="Optional name for the node")
    position: Optional[Position] = Field(None, description="Optional position in the node graph")
    inputs: Optional[list[str]] = Field(None, description="Optional input node names to connect")


class CreateNodeResult(OperationResult):
    name: str = Field(description="Name of the created node (generated when not given)")
    type: str
    position: Position
    inputs: list[str] = Field(default_factory=list)


class SetKnobValueArgs(OperationArgs):
    nodeName: str = Field(description="Name of the node to modify")
    knobName: str = Field(description="Name of the knob to set")
    value: KnobValue = Field(description="Value to set on the knob")


class SetKnobValueResult(OperationResult):
    node: str
    knob: str
    value: KnobValue


class GetNodeArgs(OperationArgs):
    nodeName: str = Field(description="Name of the node to retrieve")


class NodeInfo(OperationResult):
    name: str
    type: str
    knobs: dict[str, Any] = Field(default_factory=dict)
    position: Position
    inputs: list[Optional[str]] = Field(default_factory=list)
    group: Optional[str] = None


class ExecuteArgs(OperationArgs):
    nodeName: str = Field(description="Name of the Write node to execute")
    frameRange: Optional[str] = Field(
        None, description="Optional frame range to render (e.g., '1-10', '1,3,5')"
    )


class ExecuteResult(OperationResult):
    node: str
    frames: list[int]
    frameCount: int
    file: Optional[str] = None


class ConnectNodesArgs(OperationArgs):
    fromNode: str = Field(
        validation_alias=AliasChoices("fromNode", "from"),
        description="Name of the source node",
    )
    toNode: str = Field(
        validation_alias=AliasChoices("toNode", "to"),
        description="Name of the destination node",
    )
    inputIndex: int = Field(0, ge=0, description="Input index on the destination node")


class ConnectNodesResult(OperationResult):
    fromNode: str
    toNode: str
    inputIndex: int


class SetNodePositionArgs(OperationArgs):
    nodeName: str = Field(description="Name of the node to position")
    position: Position


class GetNodePositionArgs(OperationArgs):
    nodeName: str = Field(description="Name of the node to query")


class NodePositionResult(OperationResult):
    name: str
    position: Position


BASIC_OPERATIONS = [
    OperationSpec(
        name="createNode",
        input_schema=CreateNodeArgs,
        result_schema=CreateNodeResult,
        description="Create a new node in the Nuke node graph",
        category="basic",
    ),
    OperationSpec(
        name="setKnobValue",
        input_schema=SetKnobValueArgs,
        result_schema=SetKnobValueResult,
        description="Set a value on a node's knob",
        category="basic",
    ),
    OperationSpec(
        name="getNode",
        input_schema=GetNodeArgs,
        result_schema=NodeInfo,
        side_effect_free=True,
        description="Retrieve information about a node including its knob values",
        category="basic",
    ),
    OperationSpec(
        name="execute",
        input_schema=ExecuteArgs,
        result_schema=ExecuteResult,
        description="Render frames from a Write node",
        category="basic",
    ),
    OperationSpec(
        name="connectNodes",
        input_schema=ConnectNodesArgs,
        result_schema=ConnectNodesResult,
        description="Connect two nodes in the node graph",
        category="basic",
    ),
    OperationSpec(
        name="setNodePosition",
        input_schema=SetNodePositionArgs,
        result_schema=NodePositionResult,
        description="Set the position of a node in the node graph",
        category="basic",
    ),
    OperationSpec(
        name="getNodePosition",
        input_schema=GetNodePositionArgs,
        result_schema=NodePositionResult,
        side_effect_free=True,
        description="Get the position of a node in the node graph",
        category="basic",
    ),
]
