"""
Node organization operations: groups, templates, layout and backdrops.
"""

from typing import Literal, Optional

from pydantic import Field

from nukeflow.schemas import OperationSpec

from .common import HEX_COLOR, OperationArgs, OperationResult, Position


class CreateGroupArgs(OperationArgs):
    name: str = Field(description="Name for the group")
    nodes: list[str] = Field(min_length=1, description="Node names to include in the group")
    position: Optional[Position] = None


class GroupResult(OperationResult):
    name: str
    nodes: list[str]
    position: Position


class CreateLiveGroupArgs(CreateGroupArgs):
    savePath: Optional[str] = Field(None, description="Optional path to save the LiveGroup")


class LiveGroupResult(GroupResult):
    savePath: Optional[str] = None


class LoadTemplateArgs(OperationArgs):
    templatePath: str = Field(description="Path to the template/toolset to load")
    position: Optional[Position] = None


class LoadTemplateResult(OperationResult):
    templatePath: str
    nodes: list[str] = Field(description="Names of the nodes created from the template")


class SaveTemplateArgs(OperationArgs):
    nodes: list[str] = Field(min_length=1, description="Node names to include in the template")
    savePath: str = Field(description="Path to save the template/toolset")
    name: str = Field(description="Name for the template/toolset")


class SaveTemplateResult(OperationResult):
    name: str
    savePath: str
    nodes: list[str]


class AutoArrangeNodesArgs(OperationArgs):
    nodes: Optional[list[str]] = Field(
        None, description="Node names to arrange (defaults to all nodes)"
    )
    direction: Literal["horizontal", "vertical"] = "horizontal"
    spacing: float = Field(100, gt=0, description="Spacing between nodes")


class AutoArrangeNodesResult(OperationResult):
    direction: str
    spacing: float
    positions: dict[str, Position]


class CreateBackdropArgs(OperationArgs):
    name: str = Field(description="Name for the backdrop")
    nodes: list[str] = Field(min_length=1, description="Node names to include in the backdrop")
    label: Optional[str] = None
    color: Optional[str] = Field(None, pattern=HEX_COLOR, description="Backdrop color, e.g. '#FF0000'")


class Bounds(OperationResult):
    x: float
    y: float
    width: float
    height: float


class CreateBackdropResult(OperationResult):
    name: str
    nodes: list[str]
    label: Optional[str] = None
    color: Optional[str] = None
    bounds: Bounds


ORGANIZATION_OPERATIONS = [
    OperationSpec(
        name="createGroup",
        input_schema=CreateGroupArgs,
        result_schema=GroupResult,
        description="Package nodes into a Nuke group",
        category="organization",
    ),
    OperationSpec(
        name="createLiveGroup",
        input_schema=CreateLiveGroupArgs,
        result_schema=LiveGroupResult,
        description="Create a LiveGroup for collaborative workflows",
        category="organization",
    ),
    OperationSpec(
        name="loadTemplate",
        input_schema=LoadTemplateArgs,
        result_schema=LoadTemplateResult,
        description="Load a Nuke toolset/template",
        category="organization",
    ),
    OperationSpec(
        name="saveTemplate",
        input_schema=SaveTemplateArgs,
        result_schema=SaveTemplateResult,
        description="Save nodes as a Nuke toolset/template",
        category="organization",
    ),
    OperationSpec(
        name="autoArrangeNodes",
        input_schema=AutoArrangeNodesArgs,
        result_schema=AutoArrangeNodesResult,
        description="Automatically arrange nodes in the node graph",
        category="organization",
    ),
    OperationSpec(
        name="createBackdrop",
        input_schema=CreateBackdropArgs,
        result_schema=CreateBackdropResult,
        description="Create a backdrop to organize nodes",
        category="organization",
    ),
]
