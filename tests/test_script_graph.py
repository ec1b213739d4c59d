"""Tests for the in-memory ScriptGraph used by the simulated host."""

import pytest

from nukeflow.bridges import ScriptGraph, parse_frame_range
from nukeflow.errors import ExternalExecutionError


@pytest.fixture
def graph():
    return ScriptGraph()


class TestParseFrameRange:
    """Tests for parse_frame_range."""

    @pytest.mark.parametrize("text,expected", [
        ("5", [5]),
        ("1-4", [1, 2, 3, 4]),
        ("1-10x3", [1, 4, 7, 10]),
        ("1,3,5", [1, 3, 5]),
        ("1-3, 2-4", [1, 2, 3, 4]),
        ("1001-1003", [1001, 1002, 1003]),
    ])
    def test_valid(self, text, expected):
        assert parse_frame_range(text) == expected

    @pytest.mark.parametrize("text", ["", "a-b", "10-1", "1-10x0", "1,,3", "1-"])
    def test_invalid(self, text):
        with pytest.raises(ValueError, match="Invalid frame range"):
            parse_frame_range(text)


class TestNodes:
    """Tests for node creation and naming."""

    def test_automatic_names(self, graph):
        assert graph.create_node("Blur").name == "Blur1"
        assert graph.create_node("Blur").name == "Blur2"
        assert graph.create_node("Grade").name == "Grade1"

    def test_explicit_name(self, graph):
        assert graph.create_node("Read", name="Plate").name == "Plate"

    def test_name_clash(self, graph):
        graph.create_node("Read", name="Plate")

        with pytest.raises(ExternalExecutionError, match="already exists"):
            graph.create_node("Blur", name="Plate")

    def test_default_positions(self, graph):
        first = graph.create_node("Read")
        second = graph.create_node("Read")
        below = graph.create_node("Blur", inputs=[first.name])

        assert first.position == {"x": 0.0, "y": 0.0}
        assert second.position == {"x": 0.0, "y": 100.0}
        assert below.position == {"x": 0.0, "y": 100.0}

    def test_explicit_position(self, graph):
        node = graph.create_node("Dot", position={"x": 5, "y": -5})

        assert node.position == {"x": 5.0, "y": -5.0}

    def test_unknown_input(self, graph):
        with pytest.raises(ExternalExecutionError, match="Node not found: Read9"):
            graph.create_node("Blur", inputs=["Read9"])

    def test_get_missing(self, graph):
        with pytest.raises(ExternalExecutionError):
            graph.get("Nope")

    def test_contains_and_len(self, graph):
        graph.create_node("Read")

        assert "Read1" in graph
        assert len(graph) == 1


class TestConnections:
    """Tests for connecting nodes."""

    def test_connect(self, graph):
        graph.create_node("Read")
        graph.create_node("Blur")
        graph.connect("Read1", "Blur1")

        assert graph.get("Blur1").inputs == ["Read1"]
        assert graph.upstream("Blur1") == {"Read1"}

    def test_connect_pads_inputs(self, graph):
        graph.create_node("Read")
        graph.create_node("Merge2")
        graph.connect("Read1", "Merge21", 1)

        assert graph.get("Merge21").inputs == [None, "Read1"]
        assert graph.get("Merge21").connected_inputs() == ["Read1"]

    def test_self_connection(self, graph):
        graph.create_node("Blur")

        with pytest.raises(ExternalExecutionError, match="itself"):
            graph.connect("Blur1", "Blur1")

    def test_cycle_rejected(self, graph):
        graph.create_node("Read")
        graph.create_node("Blur", inputs=["Read1"])
        graph.create_node("Grade", inputs=["Blur1"])

        with pytest.raises(ExternalExecutionError, match="cycle"):
            graph.connect("Grade1", "Read1")

    def test_chain(self, graph):
        graph.create_node("Read")
        created = graph.chain("Read1", [("Blur", {"size": 3}), ("Grade", {})], output_name="Out")

        assert created == ["Blur1", "Out"]
        assert graph.get("Out").inputs == ["Blur1"]
        assert graph.get("Blur1").knobs == {"size": 3}

    def test_chain_output_name_clash(self, graph):
        graph.create_node("Read")

        with pytest.raises(ExternalExecutionError):
            graph.chain("Read1", [("Blur", {})], output_name="Read1")

    def test_rename_rewires(self, graph):
        graph.create_node("Read")
        graph.create_node("Blur", inputs=["Read1"])
        graph.rename("Read1", "Plate")

        assert graph.get("Blur1").inputs == ["Plate"]
        assert "Read1" not in graph


class TestLayout:
    """Tests for arrangement and bounds."""

    def test_topological_order(self, graph):
        graph.create_node("Grade")
        graph.create_node("Read")
        graph.connect("Read1", "Grade1")

        assert graph.topological(["Grade1", "Read1"]) == ["Read1", "Grade1"]

    def test_arrange_horizontal(self, graph):
        graph.create_node("Read", position={"x": 10, "y": 50})
        graph.create_node("Blur", inputs=["Read1"])
        graph.create_node("Grade", inputs=["Blur1"])

        positions = graph.arrange(["Read1", "Blur1", "Grade1"], "horizontal", 100)

        assert positions == {
            "Read1": {"x": 10.0, "y": 50.0},
            "Blur1": {"x": 110.0, "y": 50.0},
            "Grade1": {"x": 210.0, "y": 50.0},
        }

    def test_arrange_vertical(self, graph):
        graph.create_node("Read")
        graph.create_node("Blur", inputs=["Read1"], position={"x": 300, "y": 300})

        positions = graph.arrange(["Read1", "Blur1"], "vertical", 50)

        assert positions["Blur1"] == {"x": 0.0, "y": 50.0}

    def test_bounds(self, graph):
        graph.create_node("Read", position={"x": 0, "y": 0})
        graph.create_node("Blur", position={"x": 100, "y": 200})

        bounds = graph.bounds(["Read1", "Blur1"], padding=10)

        assert bounds == {"x": -10, "y": -10, "width": 200, "height": 238}


class TestTemplatesAndSnapshots:
    """Tests for export/import and snapshots."""

    def test_export_drops_outside_connections(self, graph):
        graph.create_node("Read")
        graph.create_node("Blur", inputs=["Read1"])
        graph.create_node("Grade", inputs=["Blur1"])

        exported = graph.export_nodes(["Blur1", "Grade1"])

        assert exported[0]["inputs"] == [None]
        assert exported[1]["inputs"] == ["Blur1"]

    def test_import_renames_on_clash(self, graph):
        graph.create_node("Blur")
        graph.create_node("Grade", inputs=["Blur1"])
        exported = graph.export_nodes(["Blur1", "Grade1"])

        created = graph.import_nodes(exported, position={"x": 500, "y": 0})

        assert created == ["Blur2", "Grade2"]
        assert graph.get("Grade2").inputs == ["Blur2"]
        assert graph.get("Blur2").position == {"x": 500.0, "y": 0.0}

    def test_import_empty(self, graph):
        assert graph.import_nodes([]) == []

    def test_snapshot_restore(self, graph):
        graph.create_node("Read")
        snapshot = graph.snapshot()
        graph.create_node("Blur")
        graph.get("Read1").knobs["file"] = "changed"

        graph.restore(snapshot)

        assert list(graph.nodes) == ["Read1"]
        assert graph.get("Read1").knobs == {}
