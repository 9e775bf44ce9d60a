import pytest

from grapho.exceptions import ComputeFailed, NoOutputNode, UpstreamError
from grapho.graph import NodeId
from grapho.report import NodeState, ReportBuilder

A, B, C = NodeId(0), NodeId(1), NodeId(2)


def test_builder_tracks_states():
    builder = ReportBuilder(C)
    builder.clean(A, "Box", 0.001)
    builder.start(B)
    assert builder.state(B) is NodeState.COMPUTING
    builder.done(B, "Transform", 0.5, "params")
    builder.start(C)
    builder.failed(C, "Output", 0.002, UpstreamError(B, node=C))
    report = builder.build(1.0)

    assert report.order == [A, B, C]
    assert report.cache_hits == 1
    assert report.cache_misses == 2
    assert report.computed == [B]
    assert [e.node for e in report.poisoned] == [C]
    assert report.origins == []
    assert report.slowest(1)[0].node == B
    assert report.entry(B).dirty_reason == "params"
    assert report.entry(NodeId(9)) is None
    assert not report.ok
    assert not report.output_valid


def test_terminal_states_are_final():
    builder = ReportBuilder(A)
    builder.clean(A, "Box", 0.0)
    with pytest.raises(RuntimeError):
        builder.start(A)
    with pytest.raises(RuntimeError):
        builder.done(B, "Box", 0.0)


def test_build_requires_terminal_states():
    builder = ReportBuilder(A)
    builder.start(A)
    with pytest.raises(RuntimeError, match="terminal"):
        builder.build(0.0)


def test_abort_carries_error_and_no_entries():
    report = ReportBuilder(None).abort(NoOutputNode("nothing to evaluate"))
    assert isinstance(report.error, NoOutputNode)
    assert len(report) == 0
    assert not report.output_valid
    assert report.hit_ratio == 0.0
    assert report.summary()["error"] == "nothing to evaluate"


def test_summary_counts():
    builder = ReportBuilder(B)
    builder.start(A)
    builder.failed(A, "Fail", 0.25, ComputeFailed("boom", node=A))
    builder.start(B)
    builder.done(B, "Const", 0.25)
    summary = builder.build(0.5).summary()
    assert summary["output"] == "n1.0"
    assert summary["failed"] == 1
    assert summary["computed"] == 1
    assert summary["total_ms"] == pytest.approx(500.0)
