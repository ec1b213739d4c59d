"""
ScriptGraph - an in-memory model of a Nuke script.

Models just enough of the host to run batches without the application:
nodes with type, knobs, position and input slots; Nuke-style automatic
naming (`Blur1`, `Blur2`, ...); project settings; saved templates and
saved scripts.

All host-side failures raise ExternalExecutionError.
"""

import copy
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from nukeflow.errors import ExternalExecutionError

# Approximate size of a node tile in the DAG, used for backdrop bounds
NODE_WIDTH = 80
NODE_HEIGHT = 18
DEFAULT_Y_STEP = 100

FRAME_PART = re.compile(r"^(-?\d+)(?:-(-?\d+)(?:x(\d+))?)?$")

DEFAULT_SETTINGS: dict[str, Any] = {
    "fps": 24.0,
    "format": "HD_1080",
    "frameRange": "1-100",
    "colorManagement": "Nuke",
    "workingSpace": "scene_linear",
}


def parse_frame_range(text: str) -> list[int]:
    """
    Parse a Nuke frame range.

    Supports single frames ("5"), inclusive ranges ("1-10"), stepped ranges
    ("1-10x2") and comma-separated combinations ("1-3,7,10-20x5").
    Frames are returned sorted without duplicates.

    Raises:
        ValueError: If the text is not a valid frame range
    """
    frames: set[int] = set()
    parts = [p.strip() for p in text.split(",")]
    if not text.strip() or any(not p for p in parts):
        raise ValueError(f"Invalid frame range: {text!r}")

    for part in parts:
        match = FRAME_PART.match(part)
        if not match:
            raise ValueError(f"Invalid frame range: {text!r}")
        first = int(match.group(1))
        last = int(match.group(2)) if match.group(2) is not None else first
        step = int(match.group(3)) if match.group(3) is not None else 1
        if last < first:
            raise ValueError(f"Invalid frame range: {text!r} ({first} > {last})")
        if step < 1:
            raise ValueError(f"Invalid frame range: {text!r} (step must be >= 1)")
        frames.update(range(first, last + 1, step))

    return sorted(frames)


@dataclass
class Node:
    """A node in the script."""
    name: str
    type: str
    knobs: dict[str, Any] = field(default_factory=dict)
    x: float = 0.0
    y: float = 0.0
    inputs: list[Optional[str]] = field(default_factory=list)
    group: Optional[str] = None

    @property
    def position(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y}

    def connected_inputs(self) -> list[str]:
        return [i for i in self.inputs if i is not None]

    def to_info(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "knobs": dict(self.knobs),
            "position": self.position,
            "inputs": list(self.inputs),
            "group": self.group,
        }

    def to_summary(self) -> dict[str, Any]:
        return {"name": self.name, "type": self.type, "group": self.group}


class ScriptGraph:
    """
    In-memory node graph.

    Nodes are kept in creation order. Names are unique across the script.
    """

    def __init__(self) -> None:
        self.nodes: dict[str, Node] = {}
        self.settings: dict[str, Any] = dict(DEFAULT_SETTINGS)
        self.templates: dict[str, list[dict[str, Any]]] = {}
        self.scripts: dict[str, dict[str, Any]] = {}
        self.script_path: Optional[str] = None
        self.renders: list[dict[str, Any]] = []

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    def unique_name(self, node_type: str) -> str:
        """Next free `<Type><N>` name, as the host names new nodes."""
        n = 1
        while f"{node_type}{n}" in self.nodes:
            n += 1
        return f"{node_type}{n}"

    def get(self, name: str) -> Node:
        if name not in self.nodes:
            raise ExternalExecutionError(f"Node not found: {name}")
        return self.nodes[name]

    def require(self, names: Iterable[str]) -> list[Node]:
        return [self.get(name) for name in names]

    def create_node(
        self,
        node_type: str,
        name: Optional[str] = None,
        position: Optional[dict[str, float]] = None,
        inputs: Optional[list[str]] = None,
        knobs: Optional[dict[str, Any]] = None,
    ) -> Node:
        """
        Create a node.

        Without a position the node is placed below its first input, or
        below the lowest node in the script.
        """
        if name is not None and name in self.nodes:
            raise ExternalExecutionError(f"A node named '{name}' already exists")
        inputs = list(inputs or [])
        self.require(inputs)

        node = Node(
            name=name or self.unique_name(node_type),
            type=node_type,
            knobs=dict(knobs or {}),
        )
        if position is not None:
            node.x, node.y = float(position["x"]), float(position["y"])
        elif inputs:
            upstream = self.nodes[inputs[0]]
            node.x, node.y = upstream.x, upstream.y + DEFAULT_Y_STEP
        elif self.nodes:
            node.x = 0.0
            node.y = max(n.y for n in self.nodes.values()) + DEFAULT_Y_STEP

        self.nodes[node.name] = node
        for index, input_name in enumerate(inputs):
            self.connect(input_name, node.name, index)
        return node

    def rename(self, old: str, new: str) -> Node:
        if new == old:
            return self.get(old)
        if new in self.nodes:
            raise ExternalExecutionError(f"A node named '{new}' already exists")
        node = self.nodes.pop(old)
        node.name = new
        self.nodes[new] = node
        for other in self.nodes.values():
            other.inputs = [new if i == old else i for i in other.inputs]
        return node

    def upstream(self, name: str) -> set[str]:
        """Every node feeding into `name`, directly or indirectly."""
        seen: set[str] = set()
        stack = list(self.get(name).connected_inputs())
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            stack.extend(self.nodes[current].connected_inputs())
        return seen

    def connect(self, from_name: str, to_name: str, input_index: int = 0) -> None:
        """Connect `from_name` into input `input_index` of `to_name`."""
        source = self.get(from_name)
        target = self.get(to_name)
        if source.name == target.name:
            raise ExternalExecutionError(f"Cannot connect node '{to_name}' to itself")
        if target.name in self.upstream(source.name):
            raise ExternalExecutionError(
                f"Connecting '{from_name}' to '{to_name}' would create a cycle"
            )
        while len(target.inputs) <= input_index:
            target.inputs.append(None)
        target.inputs[input_index] = source.name

    def chain(
        self,
        source: Optional[str],
        steps: list[tuple[str, dict[str, Any]]],
        output_name: Optional[str] = None,
    ) -> list[str]:
        """
        Create nodes in sequence, each fed by the previous one.

        The first node is fed by `source` (if given). When `output_name`
        is set the last node gets that name.
        """
        if source is not None:
            self.get(source)
        if output_name is not None and output_name in self.nodes:
            raise ExternalExecutionError(f"A node named '{output_name}' already exists")

        created: list[str] = []
        upstream = source
        for node_type, knobs in steps:
            node = self.create_node(
                node_type,
                inputs=[upstream] if upstream else None,
                knobs=knobs,
            )
            created.append(node.name)
            upstream = node.name

        if output_name is not None and created:
            self.rename(created[-1], output_name)
            created[-1] = output_name
        return created

    # ------------------------------------------------------------------
    # Layout
    # ------------------------------------------------------------------

    def topological(self, names: list[str]) -> list[str]:
        """Order `names` upstream first, ties broken by creation order."""
        wanted = set(names)
        creation = [n for n in self.nodes if n in wanted]
        indegree = {
            n: sum(1 for i in set(self.nodes[n].connected_inputs()) if i in wanted)
            for n in creation
        }
        ordered: list[str] = []
        ready = [n for n in creation if indegree[n] == 0]
        while ready:
            current = ready.pop(0)
            ordered.append(current)
            for n in creation:
                if n not in ordered and n not in ready and current in self.nodes[n].connected_inputs():
                    indegree[n] -= 1
                    if indegree[n] == 0:
                        ready.append(n)
            ready.sort(key=creation.index)
        return ordered

    def arrange(self, names: list[str], direction: str, spacing: float) -> dict[str, dict[str, float]]:
        nodes = self.require(names)
        if not nodes:
            return {}
        origin_x = min(n.x for n in nodes)
        origin_y = min(n.y for n in nodes)
        positions: dict[str, dict[str, float]] = {}
        for i, name in enumerate(self.topological(names)):
            node = self.nodes[name]
            if direction == "horizontal":
                node.x, node.y = origin_x + i * spacing, origin_y
            else:
                node.x, node.y = origin_x, origin_y + i * spacing
            positions[name] = node.position
        return positions

    def bounds(self, names: list[str], padding: float = 50) -> dict[str, float]:
        nodes = self.require(names)
        min_x = min(n.x for n in nodes) - padding
        min_y = min(n.y for n in nodes) - padding
        max_x = max(n.x for n in nodes) + NODE_WIDTH + padding
        max_y = max(n.y for n in nodes) + NODE_HEIGHT + padding
        return {"x": min_x, "y": min_y, "width": max_x - min_x, "height": max_y - min_y}

    # ------------------------------------------------------------------
    # Templates and scripts
    # ------------------------------------------------------------------

    def export_nodes(self, names: list[str]) -> list[dict[str, Any]]:
        """Serialize nodes keeping only connections inside the selection."""
        selected = set(names)
        exported = []
        for node in self.require(names):
            exported.append({
                "name": node.name,
                "type": node.type,
                "knobs": copy.deepcopy(node.knobs),
                "x": node.x,
                "y": node.y,
                "inputs": [i if i in selected else None for i in node.inputs],
            })
        return exported

    def import_nodes(
        self,
        exported: list[dict[str, Any]],
        position: Optional[dict[str, float]] = None,
    ) -> list[str]:
        """
        Recreate exported nodes.

        Names are kept when free, otherwise the host's automatic name is used.
        Positions are offset so the selection's top-left corner lands on
        `position`, or below the lowest existing node.
        """
        if not exported:
            return []
        min_x = min(d["x"] for d in exported)
        min_y = min(d["y"] for d in exported)
        if position is not None:
            dx, dy = position["x"] - min_x, position["y"] - min_y
        elif self.nodes:
            dx = -min_x
            dy = max(n.y for n in self.nodes.values()) + DEFAULT_Y_STEP - min_y
        else:
            dx, dy = 0.0, 0.0

        renamed: dict[str, str] = {}
        for data in exported:
            name = data["name"] if data["name"] not in self.nodes else None
            node = self.create_node(
                data["type"],
                name=name,
                position={"x": data["x"] + dx, "y": data["y"] + dy},
                knobs=copy.deepcopy(data["knobs"]),
            )
            renamed[data["name"]] = node.name

        for data in exported:
            for index, input_name in enumerate(data["inputs"]):
                if input_name is not None:
                    self.connect(renamed[input_name], renamed[data["name"]], index)
        return [renamed[d["name"]] for d in exported]

    def snapshot(self) -> dict[str, Any]:
        return {
            "nodes": copy.deepcopy(self.nodes),
            "settings": copy.deepcopy(self.settings),
        }

    def restore(self, snapshot: dict[str, Any]) -> None:
        self.nodes = copy.deepcopy(snapshot["nodes"])
        self.settings = copy.deepcopy(snapshot["settings"])

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, name: object) -> bool:
        return name in self.nodes
