"""
SimulatedBridge - runs every built-in operation against a ScriptGraph.

Used for dry runs, the CLI and tests. Operations are serialized with a
lock because the executor may run independent steps on parallel workers
while the graph itself is single-writer.
"""

import fnmatch
import logging
import threading
from pathlib import PurePosixPath
from typing import Any, Callable, Optional

from nukeflow.errors import ExternalExecutionError

from .base import Bridge
from .script_graph import ScriptGraph, parse_frame_range

logger = logging.getLogger(__name__)

SCREEN_COLORS = {"green": "#00FF00", "blue": "#0000FF", "red": "#FF0000"}

KEYER_NODES = {
    "Keylight": ["OFXuk.co.thefoundry.keylight.keylight_v201"],
    "Primatte": ["Primatte3"],
    "IBK": ["IBKColourV3", "IBKGizmoV3"],
    "UltraKeyer": ["UltraKeyer"],
}

VECTOR_NODES = {"VectorGenerator": "VectorGenerator", "OpticalFlow": "Kronos"}

FORCE_NODES = {
    "gravity": "ParticleGravity",
    "wind": "ParticleWind",
    "turbulence": "ParticleTurbulence",
    "custom": "ParticleExpression",
}

GRAIN_NODES = {
    "add": ["Grain2"],
    "remove": ["Denoise2"],
    "match": ["Denoise2", "Grain2"],
}


def _frames(frame_range: str) -> list[int]:
    try:
        return parse_frame_range(frame_range)
    except ValueError as e:
        raise ExternalExecutionError(str(e)) from e


class SimulatedBridge(Bridge):
    """
    Bridge backed by an in-memory ScriptGraph.

    Usage:
        bridge = SimulatedBridge()
        bridge.graph.create_node("Write")          # seed existing nodes
        executor = BatchExecutor(registry, bridge)
    """

    def __init__(self, graph: Optional[ScriptGraph] = None):
        self.graph = graph or ScriptGraph()
        self._lock = threading.Lock()
        self._handlers: dict[str, Callable[[dict[str, Any]], dict[str, Any]]] = {
            # basic
            "createNode": self._create_node,
            "setKnobValue": self._set_knob_value,
            "getNode": self._get_node,
            "execute": self._execute,
            "connectNodes": self._connect_nodes,
            "setNodePosition": self._set_node_position,
            "getNodePosition": self._get_node_position,
            # organization
            "createGroup": self._create_group,
            "createLiveGroup": self._create_live_group,
            "loadTemplate": self._load_template,
            "saveTemplate": self._save_template,
            "autoArrangeNodes": self._auto_arrange_nodes,
            "createBackdrop": self._create_backdrop,
            # vfx
            "setupCameraTracking": self._setup_camera_tracking,
            "setupDeepCompositing": self._setup_deep_compositing,
            "batchProcess": self._batch_process,
            "setupMachineLearning": self._setup_machine_learning,
            "setupKeying": self._setup_keying,
            "setupMotionBlur": self._setup_motion_blur,
            "createBasicComp": self._create_basic_comp,
            "setupStereoRig": self._setup_stereo_rig,
            "setupParticleSystem": self._setup_particle_system,
            "setupLensDistortion": self._setup_lens_distortion,
            "setupGrainManagement": self._setup_grain_management,
            # project
            "loadScript": self._load_script,
            "saveScript": self._save_script,
            "configureProjectSettings": self._configure_project_settings,
            "listNodes": self._list_nodes,
            "filterNodes": self._filter_nodes,
        }

    @property
    def supported_operations(self) -> list[str]:
        return list(self._handlers)

    def execute(self, operation: str, arguments: dict[str, Any]) -> dict[str, Any]:
        handler = self._handlers.get(operation)
        if handler is None:
            raise ExternalExecutionError(f"Operation not supported by simulated host: {operation}")
        with self._lock:
            logger.debug("simulated %s %s", operation, arguments)
            return handler(arguments)

    # ------------------------------------------------------------------
    # basic
    # ------------------------------------------------------------------

    def _create_node(self, a: dict[str, Any]) -> dict[str, Any]:
        node = self.graph.create_node(
            a["nodeType"], name=a.get("name"), position=a.get("position"), inputs=a.get("inputs"),
        )
        return {
            "name": node.name,
            "type": node.type,
            "position": node.position,
            "inputs": node.connected_inputs(),
        }

    def _set_knob_value(self, a: dict[str, Any]) -> dict[str, Any]:
        node = self.graph.get(a["nodeName"])
        node.knobs[a["knobName"]] = a["value"]
        return {"node": node.name, "knob": a["knobName"], "value": a["value"]}

    def _get_node(self, a: dict[str, Any]) -> dict[str, Any]:
        return self.graph.get(a["nodeName"]).to_info()

    def _execute(self, a: dict[str, Any]) -> dict[str, Any]:
        node = self.graph.get(a["nodeName"])
        if node.type != "Write":
            raise ExternalExecutionError(f"Node '{node.name}' is a {node.type} node, not a Write node")
        if not node.connected_inputs():
            raise ExternalExecutionError(f"Write node '{node.name}' has no input connected")
        frames = _frames(a.get("frameRange") or self.graph.settings["frameRange"])
        render = {
            "node": node.name,
            "frames": frames,
            "frameCount": len(frames),
            "file": node.knobs.get("file"),
        }
        self.graph.renders.append(render)
        return render

    def _connect_nodes(self, a: dict[str, Any]) -> dict[str, Any]:
        self.graph.connect(a["fromNode"], a["toNode"], a["inputIndex"])
        return {"fromNode": a["fromNode"], "toNode": a["toNode"], "inputIndex": a["inputIndex"]}

    def _set_node_position(self, a: dict[str, Any]) -> dict[str, Any]:
        node = self.graph.get(a["nodeName"])
        node.x, node.y = float(a["position"]["x"]), float(a["position"]["y"])
        return {"name": node.name, "position": node.position}

    def _get_node_position(self, a: dict[str, Any]) -> dict[str, Any]:
        node = self.graph.get(a["nodeName"])
        return {"name": node.name, "position": node.position}

    # ------------------------------------------------------------------
    # organization
    # ------------------------------------------------------------------

    def _group(self, a: dict[str, Any], node_type: str) -> dict[str, Any]:
        members = self.graph.require(a["nodes"])
        for member in members:
            if member.group is not None:
                raise ExternalExecutionError(
                    f"Node '{member.name}' already belongs to group '{member.group}'"
                )
        position = a.get("position") or {
            "x": sum(m.x for m in members) / len(members),
            "y": sum(m.y for m in members) / len(members),
        }
        group = self.graph.create_node(node_type, name=a["name"], position=position)
        for member in members:
            member.group = group.name
        return {"name": group.name, "nodes": [m.name for m in members], "position": group.position}

    def _create_group(self, a: dict[str, Any]) -> dict[str, Any]:
        return self._group(a, "Group")

    def _create_live_group(self, a: dict[str, Any]) -> dict[str, Any]:
        # Export before grouping so the saved file holds plain members
        exported = self.graph.export_nodes(a["nodes"])
        result = self._group(a, "LiveGroup")
        save_path = a.get("savePath")
        if save_path:
            self.graph.templates[save_path] = exported
            self.graph.get(result["name"]).knobs["file"] = save_path
        result["savePath"] = save_path
        return result

    def _save_template(self, a: dict[str, Any]) -> dict[str, Any]:
        self.graph.templates[a["savePath"]] = self.graph.export_nodes(a["nodes"])
        return {"name": a["name"], "savePath": a["savePath"], "nodes": list(a["nodes"])}

    def _load_template(self, a: dict[str, Any]) -> dict[str, Any]:
        path = a["templatePath"]
        if path not in self.graph.templates:
            raise ExternalExecutionError(f"Template not found: {path}")
        created = self.graph.import_nodes(self.graph.templates[path], position=a.get("position"))
        return {"templatePath": path, "nodes": created}

    def _auto_arrange_nodes(self, a: dict[str, Any]) -> dict[str, Any]:
        names = a.get("nodes")
        if names is None:
            names = [n.name for n in self.graph.nodes.values() if n.type != "BackdropNode"]
        positions = self.graph.arrange(names, a["direction"], a["spacing"])
        return {"direction": a["direction"], "spacing": a["spacing"], "positions": positions}

    def _create_backdrop(self, a: dict[str, Any]) -> dict[str, Any]:
        bounds = self.graph.bounds(a["nodes"])
        knobs: dict[str, Any] = {
            "label": a.get("label") or a["name"],
            "bdwidth": bounds["width"],
            "bdheight": bounds["height"],
        }
        if a.get("color"):
            knobs["tile_color"] = a["color"]
        self.graph.create_node(
            "BackdropNode",
            name=a["name"],
            position={"x": bounds["x"], "y": bounds["y"]},
            knobs=knobs,
        )
        return {
            "name": a["name"],
            "nodes": list(a["nodes"]),
            "label": a.get("label"),
            "color": a.get("color"),
            "bounds": bounds,
        }

    # ------------------------------------------------------------------
    # vfx
    # ------------------------------------------------------------------

    def _pipeline(self, nodes: list[str], **extra: Any) -> dict[str, Any]:
        return {"nodes": nodes, "output": nodes[-1], **extra}

    def _setup_camera_tracking(self, a: dict[str, Any]) -> dict[str, Any]:
        tracker_knobs: dict[str, Any] = {
            "numberFeatures": a["trackingPoints"],
            "solveMethod": a["solveMethod"],
        }
        if a.get("exportPath"):
            tracker_knobs["exportPath"] = a["exportPath"]
        [tracker] = self.graph.chain(a["sourceName"], [("CameraTracker", tracker_knobs)])
        nodes = [tracker]

        if a["createScene"]:
            camera = self.graph.create_node("Camera3", knobs={"solvedBy": tracker})
            cloud = self.graph.create_node("PointCloudGenerator", inputs=[tracker])
            scene = self.graph.create_node("Scene", inputs=[cloud.name])
            render = self.graph.create_node("ScanlineRender", inputs=[a["sourceName"], scene.name, camera.name])
            nodes += [camera.name, cloud.name, scene.name, render.name]

        return self._pipeline(
            nodes,
            tracker=tracker,
            trackingPoints=a["trackingPoints"],
            solveMethod=a["solveMethod"],
            exportPath=a.get("exportPath"),
        )

    def _setup_deep_compositing(self, a: dict[str, Any]) -> dict[str, Any]:
        steps = [(op, {}) for op in a["operations"]]
        return self._pipeline(self.graph.chain(a["sourceName"], steps, a.get("outputName")))

    def _batch_process(self, a: dict[str, Any]) -> dict[str, Any]:
        frames = _frames(a["frameRange"]) if a.get("frameRange") else None
        out_dir = PurePosixPath(a["outputDir"])
        outputs = [
            str(out_dir / f"{PurePosixPath(path).stem}.{a['fileType']}")
            for path in a["inputFiles"]
        ]
        return {
            "scriptPath": a["scriptPath"],
            "processed": len(outputs),
            "outputs": outputs,
            "threads": a["threads"],
            "frames": frames,
        }

    def _setup_machine_learning(self, a: dict[str, Any]) -> dict[str, Any]:
        knobs = {"modelFile": a["modelPath"], "useGPUIfAvailable": a["gpuEnabled"], **a["inferenceParams"]}
        return self._pipeline(self.graph.chain(a["inputNode"], [("Inference", knobs)], a.get("outputNode")))

    def _setup_keying(self, a: dict[str, Any]) -> dict[str, Any]:
        color = a["customColor"] if a["screenColor"] == "custom" else SCREEN_COLORS[a["screenColor"]]
        steps = [(node_type, {"screenColour": color}) for node_type in KEYER_NODES[a["keyerType"]]]
        if a["despill"]:
            steps.append(("HueCorrect", {"despill": color}))
        if a["edgeRefinement"]:
            steps.append(("EdgeBlur", {}))
        steps.append(("Premult", {}))
        nodes = self.graph.chain(a["sourceName"], steps, a.get("outputName"))
        return self._pipeline(nodes, keyer=nodes[0], screenColor=color)

    def _setup_motion_blur(self, a: dict[str, Any]) -> dict[str, Any]:
        blur_knobs = {"scale": a["amount"], "samples": a["samples"], "shutterAngle": a["shutterAngle"]}
        self.graph.get(a["sourceName"])
        if a.get("vectorName"):
            self.graph.get(a["vectorName"])
            nodes = self.graph.chain(a["vectorName"], [("VectorBlur2", blur_knobs)], a.get("outputName"))
        elif a["vectorMethod"] == "External":
            raise ExternalExecutionError("vectorMethod 'External' requires vectorName")
        else:
            nodes = self.graph.chain(
                a["sourceName"],
                [(VECTOR_NODES[a["vectorMethod"]], {}), ("VectorBlur2", blur_knobs)],
                a.get("outputName"),
            )
        return self._pipeline(nodes)

    def _create_basic_comp(self, a: dict[str, Any]) -> dict[str, Any]:
        g = self.graph
        color_space = a["colorSpace"]
        fg = g.create_node("Read", knobs={"file": a["foregroundPath"], "colorspace": color_space})
        bg = g.create_node("Read", knobs={"file": a["backgroundPath"], "colorspace": color_space})
        nodes = [fg.name, bg.name]

        a_side = fg.name
        if a["includeGrade"]:
            [a_side] = g.chain(fg.name, [("Grade", {})])
            nodes.append(a_side)

        # Merge2 inputs: B (0) is the background, A (1) the foreground
        merge = g.create_node("Merge2", inputs=[bg.name, a_side], knobs={"operation": "over"})
        nodes.append(merge.name)

        finishing: list[tuple[str, dict[str, Any]]] = []
        if a["includeLensEffects"]:
            finishing += [("Flare", {}), ("Aberration", {})]
        if a["includeGrain"]:
            finishing.append(("Grain2", {}))
        finishing.append(("Write", {"file": a["outputPath"], "colorspace": color_space}))
        nodes += g.chain(merge.name, finishing)

        return self._pipeline(
            nodes, foreground=fg.name, background=bg.name, write=nodes[-1], colorSpace=color_space,
        )

    def _setup_stereo_rig(self, a: dict[str, Any]) -> dict[str, Any]:
        rig = {"interocular": a["interocularDistance"], "convergence": a["convergenceDistance"]}
        steps = [("StereoCam2", rig), ("JoinViews", {})]
        return self._pipeline(self.graph.chain(a["sourceName"], steps, a.get("outputName")))

    def _setup_particle_system(self, a: dict[str, Any]) -> dict[str, Any]:
        emitter = {
            "emit_from": a["emitterType"],
            "max_lifetime": a["lifetime"],
            "rate": a["particleCount"],
        }
        steps: list[tuple[str, dict[str, Any]]] = [("ParticleEmitter", emitter)]
        if a["velocityControl"]:
            steps.append(("ParticleSpeed", {}))
        steps += [(FORCE_NODES[force], {}) for force in a["forceNodes"]]
        return self._pipeline(self.graph.chain(None, steps, a.get("outputName")))

    def _setup_lens_distortion(self, a: dict[str, Any]) -> dict[str, Any]:
        knobs = {
            "model": a["distortionModel"],
            "k1": a["k1"],
            "k2": a["k2"],
            "direction": "undistort" if a["undistort"] else "distort",
        }
        return self._pipeline(self.graph.chain(a["sourceName"], [("LensDistortion2", knobs)], a.get("outputName")))

    def _setup_grain_management(self, a: dict[str, Any]) -> dict[str, Any]:
        grain = {"preset": a["grainType"], "size": a["grainSize"], "intensity": a["grainAmount"]}
        steps = [(t, grain if t == "Grain2" else {}) for t in GRAIN_NODES[a["operation"]]]
        return self._pipeline(self.graph.chain(a["sourceName"], steps, a.get("outputName")))

    # ------------------------------------------------------------------
    # project
    # ------------------------------------------------------------------

    def _load_script(self, a: dict[str, Any]) -> dict[str, Any]:
        path = a["path"]
        if path not in self.graph.scripts:
            raise ExternalExecutionError(f"Script not found: {path}")
        self.graph.restore(self.graph.scripts[path])
        self.graph.script_path = path
        return {"path": path, "nodeCount": len(self.graph)}

    def _save_script(self, a: dict[str, Any]) -> dict[str, Any]:
        path = a.get("path") or self.graph.script_path
        if not path:
            raise ExternalExecutionError("Script has never been saved; a path is required")
        self.graph.scripts[path] = self.graph.snapshot()
        self.graph.script_path = path
        return {"path": path, "nodeCount": len(self.graph)}

    def _configure_project_settings(self, a: dict[str, Any]) -> dict[str, Any]:
        updates = {k: v for k, v in a.items() if v is not None}
        if "frameRange" in updates:
            frames = _frames(updates["frameRange"])
            if "," in updates["frameRange"] or "x" in updates["frameRange"]:
                raise ExternalExecutionError(
                    f"Project frame range must be 'first-last', got {updates['frameRange']!r}"
                )
            updates["frameRange"] = f"{frames[0]}-{frames[-1]}"
        self.graph.settings.update(updates)
        return {"settings": dict(self.graph.settings)}

    def _list_nodes(self, a: dict[str, Any]) -> dict[str, Any]:
        nodes = [n.to_summary() for n in self.graph.nodes.values()]
        return {"nodes": nodes, "count": len(nodes)}

    def _filter_nodes(self, a: dict[str, Any]) -> dict[str, Any]:
        nodes = [
            n.to_summary() for n in self.graph.nodes.values()
            if (a.get("nodeType") is None or n.type == a["nodeType"])
            and (a.get("namePattern") is None or fnmatch.fnmatchcase(n.name, a["namePattern"]))
        ]
        return {"nodes": nodes, "count": len(nodes)}
