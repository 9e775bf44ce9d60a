# ruff: noqa: E402
import sys
from collections import Counter
from pathlib import Path

# ensure src is on PYTHONPATH
src_path = Path(__file__).resolve().parents[1] / "src"
sys.path.insert(0, str(src_path))

import pytest

from grapho.engine import Engine
from grapho.graph import Graph
from grapho.nodes import builtin_registry
from grapho.types import InputPin, OutputPin, PinType

FLOAT_IN = InputPin("x", PinType.FLOAT)
FLOAT_OUT = OutputPin("value", PinType.FLOAT)


@pytest.fixture
def calls():
    """Number of compute calls per test node type."""
    return Counter()


@pytest.fixture
def registry(calls):
    """Built-in mesh nodes plus small scalar nodes that count their calls."""
    reg = builtin_registry()

    @reg.define("Const", outputs=[FLOAT_OUT], category="Sources")
    def const(*, value: float = 1.0) -> float:
        calls["Const"] += 1
        return value

    @reg.define("Count", outputs=[OutputPin("n", PinType.INT)], category="Sources")
    def count(*, n: int = 3) -> int:
        calls["Count"] += 1
        return n

    @reg.define(
        "Add",
        inputs=[InputPin("a", PinType.FLOAT), InputPin("b", PinType.FLOAT)],
        outputs=[FLOAT_OUT],
    )
    def add(a, b, /, *, bias: float = 0.0) -> float:
        calls["Add"] += 1
        return a + b + bias

    @reg.define(
        "Offset",
        inputs=[InputPin("x", PinType.FLOAT, optional=True)],
        outputs=[FLOAT_OUT],
    )
    def offset(x, /, *, by: float = 1.0) -> float:
        calls["Offset"] += 1
        return (0.0 if x is None else x) + by

    @reg.define(
        "Pair",
        inputs=[FLOAT_IN],
        outputs=[OutputPin("lo", PinType.FLOAT), OutputPin("hi", PinType.FLOAT)],
    )
    def pair(x, /):
        calls["Pair"] += 1
        return x, x * 2

    @reg.define("Repeat", inputs=[InputPin("n", PinType.INT)], outputs=[FLOAT_OUT])
    def repeat(n, /) -> float:
        calls["Repeat"] += 1
        return float(n)

    @reg.define("Fail", inputs=[FLOAT_IN], outputs=[FLOAT_OUT])
    def fail(x, /, *, message: str = "boom") -> float:
        calls["Fail"] += 1
        raise RuntimeError(message)

    return reg


@pytest.fixture
def graph(registry):
    return Graph(registry)


@pytest.fixture
def engine_factory():
    def _make(graph: Graph, **kwargs) -> Engine:
        return Engine(graph, **kwargs)

    return _make


@pytest.fixture
def engine(graph, engine_factory):
    return engine_factory(graph)


@pytest.fixture
def demo(graph):
    """``Box -> Transform -> Output`` with the output designated."""
    box = graph.add_node("Box")
    transform = graph.add_node("Transform")
    out = graph.add_node("Output")
    graph.connect(box, transform)
    graph.connect(transform, out)
    graph.set_output(out)
    return box, transform, out
