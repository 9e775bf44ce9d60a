from rich.console import Console

from grapho.engine import Engine
from grapho.reporters import RichReporter, format_duration, render_report


def _make_ctx(graph, hits=0, execs=0, failed=0):
    engine = Engine(graph)
    ctx = RichReporter(console=Console(record=True, width=120)).attach(engine)
    ctx.total = 3
    ctx.hits = hits
    ctx.execs = execs
    ctx.failed = failed
    return ctx


def test_header_omits_cache_when_zero(graph):
    header = _make_ctx(graph, hits=0, execs=1)._header(final=False).plain
    assert "⚡️ Cache" not in header
    assert "✨️ Compute" in header
    assert "📋️ Pending 2" in header


def test_header_omits_compute_when_zero(graph):
    header = _make_ctx(graph, hits=1, execs=0)._header(final=False).plain
    assert "✨️ Compute" not in header
    assert "⚡️ Cache" in header


def test_header_shows_failures(graph):
    header = _make_ctx(graph, execs=1, failed=1)._header(final=True).plain
    assert "❌️ Failed 1" in header
    assert "Pending" not in header


def test_format_duration():
    assert format_duration(5) == "5.0s"
    assert format_duration(0.0123) == "12.3ms"
    assert format_duration(65) == "1m 5s"
    assert format_duration(120) == "2m"
    assert format_duration(3661) == "1h 1m 1s"


def test_reporter_restores_callbacks(graph, demo):
    console = Console(record=True, width=120)
    engine = Engine(graph, reporter=RichReporter(console=console))
    seen = []
    engine.on_node_end = seen.append

    engine.evaluate()
    assert len(seen) == 3
    assert engine.on_node_end == seen.append
    assert "Compute 3" in console.export_text()

    engine.evaluate()
    assert "Cache 3" in console.export_text()


def test_reporter_lists_failures(graph):
    console = Console(record=True, width=120)
    engine = Engine(graph)
    transform = graph.add_node("Transform")
    engine.evaluate(transform, reporter=RichReporter(console=console))
    text = console.export_text()
    assert "Failed nodes" in text
    assert "MissingRequiredInput" in text


def test_render_report(graph, demo):
    console = Console(record=True, width=120)
    _, report = Engine(graph).evaluate()
    table = render_report(report, console)
    assert table.row_count == 3
    text = console.export_text()
    assert "Transform" in text
    assert "new" in text
