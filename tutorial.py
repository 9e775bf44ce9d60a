"""grapho usage tutorial
=====================

Walks through building a small mesh graph, evaluating it incrementally,
configuring defaults from YAML, inspecting failures and saving the project.
"""

from __future__ import annotations

import tempfile
from pathlib import Path

import yaml  # type: ignore[import]

from grapho import Config, Engine, Graph, Project, RichReporter
from grapho.reporters import render_report


# --------------------------------------------------------------
# Quick start
# --------------------------------------------------------------
def quick_start() -> Engine:
    graph = Graph()
    box = graph.add_node("Box")
    transform = graph.add_node("Transform", {"translate": (0, 1, 0)})
    out = graph.add_node("Output")
    graph.connect(box, transform)
    graph.connect(transform, out)

    engine = Engine(graph)
    snapshot, report = engine.evaluate()
    print("bounds:", snapshot.bounds)
    print("computed:", [str(n) for n in report.computed])

    # only the edited node and its dependents run again
    graph.set_param(transform, "translate", (0, 2, 0))
    snapshot, report = engine.evaluate()
    print("bounds:", snapshot.bounds, "hits:", report.cache_hits)
    return engine


# --------------------------------------------------------------
# Configuration
# --------------------------------------------------------------
yaml_text = """
engine:
  base_color: [0.9, 0.4, 0.1]
Grid:
  _use_: coarse
  _presets_:
    coarse: {divisions: [4, 4]}
    fine: {divisions: [64, 64]}
"""


def configured() -> None:
    config = Config(yaml.safe_load(yaml_text))
    graph = Graph(config=config)
    grid = graph.add_node("Grid")
    out = graph.add_node("Output")
    graph.connect(grid, out)

    engine = Engine(graph, reporter=RichReporter())
    snapshot, report = engine.evaluate()
    print("grid vertices:", len(snapshot.mesh.positions), "color:", snapshot.base_color)

    # out-of-range parameters fail the node, not the run
    graph.set_param(grid, "divisions", (5000, 5000))
    snapshot, report = engine.evaluate()
    print("snapshot:", snapshot)
    render_report(report)


# --------------------------------------------------------------
# Persistence
# --------------------------------------------------------------
def save_and_reload(engine: Engine) -> None:
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "scene.yaml"
        Project.from_graph(engine.graph).save(path)
        print(path.read_text())
        restored = Project.load(path).to_graph()
        snapshot, _ = Engine(restored).evaluate()
        print("restored bounds:", snapshot.bounds)


if __name__ == "__main__":
    engine = quick_start()
    configured()
    save_and_reload(engine)
