import numpy as np
import pytest

from grapho.exceptions import ComputeFailed, UnknownNodeType
from grapho.registry import NodeType, NodeTypeRegistry
from grapho.types import InputPin, OutputPin, PinType, normalize_param

FLOAT_OUT = OutputPin("value", PinType.FLOAT)


def test_define_reads_keyword_defaults():
    reg = NodeTypeRegistry()

    @reg.define("Scale", inputs=[InputPin("x", PinType.FLOAT)], outputs=[FLOAT_OUT])
    def scale(x, /, *, factor: float = 2.0, axis: tuple = (0, 1, 0)) -> float:
        return x * factor

    assert isinstance(scale, NodeType)
    assert scale.defaults == {"factor": 2.0, "axis": (0.0, 1.0, 0.0)}
    assert reg.get("Scale") is scale
    assert scale.compute([3.0], {"factor": 2.0, "axis": (0, 1, 0)}) == [6.0]


def test_duplicate_names_are_rejected():
    reg = NodeTypeRegistry()
    reg.define("One", outputs=[FLOAT_OUT])(lambda: 1.0)
    with pytest.raises(ValueError):
        reg.define("One", outputs=[FLOAT_OUT])(lambda: 2.0)


def test_signature_must_match_pins():
    with pytest.raises(TypeError):
        NodeType.from_function(lambda a, b: a, inputs=[InputPin("a", PinType.FLOAT)])

    def needs_default(*, k):
        return k

    with pytest.raises(TypeError, match="default"):
        NodeType.from_function(needs_default)


def test_multiple_outputs_must_be_a_sequence():
    node_type = NodeType.from_function(
        lambda: 1.0, name="Bad", outputs=[FLOAT_OUT, OutputPin("other", PinType.FLOAT)]
    )
    with pytest.raises(ComputeFailed):
        node_type.compute([], {}, validate=False)


def test_unknown_type():
    with pytest.raises(UnknownNodeType):
        NodeTypeRegistry().get("Nope")


def test_builtin_catalog(registry):
    assert {"Box", "Grid", "Transform", "Merge", "Output"} <= set(registry.names())
    categories = registry.by_category()
    assert [t.name for t in categories["Sources"]][:2] == ["Box", "Grid"]
    assert [t.name for t in categories["Outputs"]] == ["Output"]
    assert "Box" in registry


def test_pin_type_widening():
    assert PinType.FLOAT.accepts(PinType.INT)
    assert PinType.FLOAT.accepts(PinType.BOOL)
    assert PinType.INT.accepts(PinType.BOOL)
    assert not PinType.INT.accepts(PinType.FLOAT)
    assert not PinType.MESH.accepts(PinType.FLOAT)
    assert PinType.FLOAT.coerce(True) == 1.0
    assert PinType.INT.coerce(True) == 1
    assert PinType.VEC3.check((1.0, 2.0, 3.0))
    assert not PinType.VEC2.check((1.0, 2.0, 3.0))


def test_normalize_param():
    assert normalize_param([1, 2, 3]) == (1.0, 2.0, 3.0)
    assert normalize_param(np.array([1, 2])) == (1.0, 2.0)
    assert normalize_param(np.float32(1.5)) == 1.5
    assert normalize_param(True) is True
    with pytest.raises(ValueError):
        normalize_param([1, 2, 3, 4])
    with pytest.raises(TypeError):
        normalize_param({"a": 1})
