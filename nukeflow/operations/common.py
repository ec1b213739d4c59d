"""
Shared pydantic building blocks for operation contracts.
"""

from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class OperationArgs(BaseModel):
    """Base for operation input models. Unknown parameters are rejected."""
    model_config = ConfigDict(extra="forbid")


class OperationResult(BaseModel):
    """Base for operation result models. Bridges may add extra fields."""
    model_config = ConfigDict(extra="allow")


class Position(BaseModel):
    """A location in the node graph."""
    model_config = ConfigDict(extra="forbid")

    x: float = Field(description="X coordinate in the node graph")
    y: float = Field(description="Y coordinate in the node graph")


Scalar = Union[bool, int, float, str]

KnobValue = Union[Scalar, list[Scalar], dict[str, Scalar]]

HEX_COLOR = r"^#[0-9A-Fa-f]{6}$"


def output_name_field() -> Any:
    return Field(None, description="Optional name for the output node")


class PipelineResult(OperationResult):
    """Result of operations that build a chain of nodes."""
    nodes: list[str] = Field(description="Names of the created nodes, upstream first")
    output: str = Field(description="Name of the last node of the pipeline")


class NodeSummary(BaseModel):
    name: str
    type: str
    group: Optional[str] = None
