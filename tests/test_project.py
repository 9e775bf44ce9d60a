import pytest
import yaml

from grapho.config import Config
from grapho.engine import Engine
from grapho.exceptions import ProjectError
from grapho.graph import Graph
from grapho.project import PROJECT_VERSION, Project, graph_from_dict, graph_to_dict


def test_round_trip_preserves_structure(graph, demo):
    box, transform, out = demo
    graph.set_param(transform, "translate", (0, 1, 0))
    stray = graph.add_node("Grid", {"divisions": (3, 3)})
    graph.remove_node(stray)

    data = graph_to_dict(graph)
    assert data["output"] == 2
    assert [n["type"] for n in data["nodes"]] == ["Box", "Transform", "Output"]
    assert data["nodes"][1]["params"]["translate"] == [0.0, 1.0, 0.0]
    assert {(l["source_pin"], l["target_pin"]) for l in data["links"]} == {("out", "in")}

    restored = graph_from_dict(data, graph.registry)
    assert len(restored) == 3
    assert len(restored.links()) == 2
    assert graph_to_dict(restored) == data


def test_round_trip_evaluates_identically(graph, demo):
    _, transform, _ = demo
    graph.set_param(transform, "rotate_deg", (0, 45, 0))
    restored = graph_from_dict(graph_to_dict(graph), graph.registry)
    expected, _ = Engine(graph).evaluate()
    actual, _ = Engine(restored).evaluate()
    assert expected == actual


def test_save_and_load(tmp_path, graph, demo):
    path = tmp_path / "scene.yaml"
    settings = {"engine": {"base_color": [1, 1, 1]}}
    Project.from_graph(graph, settings).save(path)

    raw = yaml.safe_load(path.read_text())
    assert raw["version"] == PROJECT_VERSION
    assert len(raw["graph"]["nodes"]) == 3

    project = Project.load(path)
    restored = project.to_graph(graph.registry)
    assert graph_to_dict(restored) == graph_to_dict(graph)
    snapshot, _ = Engine(restored).evaluate()
    assert snapshot.base_color == (1.0, 1.0, 1.0)


def test_project_keeps_graph_config(registry):
    graph = Graph(registry, config=Config({"Box": {"size": [2, 2, 2]}}))
    graph.add_node("Box")
    project = Project.from_graph(graph)
    assert project.settings == {"Box": {"size": [2, 2, 2]}}
    restored = project.to_graph(registry)
    assert restored.config.defaults("Box") == {"size": [2, 2, 2]}


def test_unknown_type_is_rejected(registry):
    with pytest.raises(ProjectError, match="Teapot"):
        graph_from_dict({"nodes": [{"id": 0, "type": "Teapot"}]}, registry)


def test_bad_references_are_rejected(registry):
    nodes = [{"id": 0, "type": "Box"}, {"id": 1, "type": "Output"}]
    with pytest.raises(ProjectError):
        graph_from_dict(
            {
                "nodes": nodes,
                "links": [{"source": 0, "source_pin": "out", "target": 1, "target_pin": "mesh"}],
            },
            registry,
        )
    with pytest.raises(ProjectError):
        graph_from_dict({"nodes": nodes, "output": 9}, registry)
    with pytest.raises(ProjectError):
        graph_from_dict({"nodes": nodes + [{"id": 1, "type": "Box"}]}, registry)
    with pytest.raises(ProjectError):
        graph_from_dict({"nodes": "not a list"}, registry)


def test_type_mismatch_in_file_is_rejected(registry):
    data = {
        "nodes": [{"id": 0, "type": "Const"}, {"id": 1, "type": "Output"}],
        "links": [{"source": 0, "source_pin": "value", "target": 1, "target_pin": "in"}],
    }
    with pytest.raises(ProjectError, match="cannot link"):
        graph_from_dict(data, registry)


def test_load_rejects_other_versions(tmp_path):
    path = tmp_path / "future.yaml"
    path.write_text(yaml.safe_dump({"version": PROJECT_VERSION + 1, "graph": {}}))
    with pytest.raises(ProjectError, match="version"):
        Project.load(path)


def test_load_missing_file(tmp_path):
    with pytest.raises(ProjectError):
        Project.load(tmp_path / "nope.yaml")
