"""
Project management operations: scripts, project settings, node queries.
"""

from typing import Any, Optional

from pydantic import Field

from nukeflow.schemas import OperationSpec

from .common import NodeSummary, OperationArgs, OperationResult


class LoadScriptArgs(OperationArgs):
    path: str = Field(description="Path of the Nuke script to load")


class SaveScriptArgs(OperationArgs):
    path: Optional[str] = Field(
        None, description="Path to save to (defaults to the current script path)"
    )


class ScriptResult(OperationResult):
    path: str
    nodeCount: int


class ConfigureProjectSettingsArgs(OperationArgs):
    fps: Optional[float] = Field(None, gt=0)
    format: Optional[str] = Field(None, description="Format name, e.g. 'HD_1080'")
    frameRange: Optional[str] = Field(None, description="First and last frame, e.g. '1001-1100'")
    colorManagement: Optional[str] = Field(None, description="e.g. 'OCIO' or 'Nuke'")
    workingSpace: Optional[str] = None


class ProjectSettingsResult(OperationResult):
    settings: dict[str, Any]


class ListNodesArgs(OperationArgs):
    pass


class FilterNodesArgs(OperationArgs):
    nodeType: Optional[str] = Field(None, description="Only nodes of this type")
    namePattern: Optional[str] = Field(None, description="Glob pattern on node names, e.g. 'Read*'")


class NodeListResult(OperationResult):
    nodes: list[NodeSummary]
    count: int


PROJECT_OPERATIONS = [
    OperationSpec(
        name="loadScript",
        input_schema=LoadScriptArgs,
        result_schema=ScriptResult,
        description="Load a Nuke script",
        category="project",
    ),
    OperationSpec(
        name="saveScript",
        input_schema=SaveScriptArgs,
        result_schema=ScriptResult,
        description="Save the current Nuke script",
        category="project",
    ),
    OperationSpec(
        name="configureProjectSettings",
        input_schema=ConfigureProjectSettingsArgs,
        result_schema=ProjectSettingsResult,
        description="Configure project settings",
        category="project",
    ),
    OperationSpec(
        name="listNodes",
        input_schema=ListNodesArgs,
        result_schema=NodeListResult,
        side_effect_free=True,
        description="List all nodes in the script",
        category="project",
    ),
    OperationSpec(
        name="filterNodes",
        input_schema=FilterNodesArgs,
        result_schema=NodeListResult,
        side_effect_free=True,
        description="Filter nodes by type or name",
        category="project",
    ),
]
