from __future__ import annotations
# coverage: ignore-file

import sys
import time
from contextlib import nullcontext
from typing import Any, Sequence, TYPE_CHECKING

from rich.console import Console, Group  # type: ignore[import]
from rich.live import Live  # type: ignore[import]
from rich.spinner import Spinner  # type: ignore[import]
from rich.table import Table  # type: ignore[import]
from rich.text import Text  # type: ignore[import]

from .logger import console as _console
from .report import EvalReport, NodeReport, NodeState

if TYPE_CHECKING:  # pragma: no cover - for type checking only
    from .engine import Engine
    from .graph import Node, NodeId

IN_JUPYTER = "ipykernel" in sys.modules

__all__ = ["RichReporter", "failure_table", "format_duration", "render_report"]


def format_duration(seconds: float) -> str:
    """Return duration string with hours and minutes."""
    if seconds >= 3600:
        h = int(seconds // 3600)
        m = int((seconds % 3600) // 60)
        s = int(seconds % 60)
        parts = [f"{h}h", f"{m}m"]
        if s:
            parts.append(f"{s}s")
        return " ".join(parts)
    if seconds >= 60:
        m = int(seconds // 60)
        s = int(seconds % 60)
        return f"{m}m {s}s" if s else f"{m}m"
    if seconds < 0.1:
        return f"{seconds * 1000:.1f}ms"
    return f"{seconds:.1f}s"


class RichReporter:
    """Rich based progress reporter.

    ``RichReporter`` hooks into :class:`~grapho.engine.Engine` callbacks to
    display live evaluation progress: nodes served from the cache, nodes
    recomputed, failures and what is still pending. When the run ends the
    final status is printed together with a table of failed nodes.
    """

    def __init__(
        self,
        refresh_per_second: int = 20,
        *,
        console: Console | None = None,
        force_terminal: bool = False,
        show_failures: bool = True,
    ):
        """Create reporter.

        Parameters
        ----------
        refresh_per_second:
            UI refresh rate.
        force_terminal:
            Force Rich to treat the console as a real terminal.
        show_failures:
            Print a table of failed nodes after the run.
        """
        self.refresh_per_second = refresh_per_second
        self.console = console or _console
        self.show_failures = show_failures
        if force_terminal:
            # Rich stores the flag on a private attribute; mutate in place to
            # keep output on the shared console.
            if hasattr(self.console, "_force_terminal"):
                self.console._force_terminal = True

    def attach(self, engine: "Engine"):
        """Return a context manager bound to ``engine``.

        If the console already has an active live display, a no-op context
        manager is returned to avoid nested :class:`rich.live.Live` errors.
        """
        if getattr(self.console, "_live", None) is not None:
            return nullcontext()
        return _RichReporterCtx(self, engine)


class _RichReporterCtx:
    """Context manager handling ``rich`` updates for a run."""

    def __init__(self, reporter: RichReporter, engine: "Engine"):
        self.cfg = reporter
        self.engine = engine
        self.running: dict["NodeId", tuple[str, float]] = {}
        self.total = 0
        self.hits = 0
        self.hit_time = 0.0
        self.execs = 0
        self.exec_time = 0.0
        self.failed = 0
        self.report: EvalReport | None = None
        self.spinner = Spinner("dots")
        self.live: Live | None = None

    _format_dur = staticmethod(format_duration)

    # --------------------------------------------------------------
    def __enter__(self):
        self.orig_flow_start = self.engine.on_flow_start
        self.orig_start = self.engine.on_node_start
        self.orig_end = self.engine.on_node_end
        self.orig_flow = self.engine.on_flow_end
        self.engine.on_flow_start = self._flow_start
        self.engine.on_node_start = self._start
        self.engine.on_node_end = self._end
        self.engine.on_flow_end = self._flow
        self.live = Live(
            self._render(),
            refresh_per_second=self.cfg.refresh_per_second,
            transient=not IN_JUPYTER,
            console=self.cfg.console,
        )
        self.live.__enter__()
        return self

    def __exit__(self, exc_type, exc, tb):
        assert self.live is not None
        final_render = self._render(final=True)
        self.live.update(final_render, refresh=True)
        self.live.__exit__(exc_type, exc, tb)
        if not IN_JUPYTER:
            self.live.console.print(final_render)
        if self.cfg.show_failures and self.report is not None and self.report.errored:
            self.live.console.print(failure_table(self.report))
        self.engine.on_flow_start = self.orig_flow_start
        self.engine.on_node_start = self.orig_start
        self.engine.on_node_end = self.orig_end
        self.engine.on_flow_end = self.orig_flow

    # --------------------------------------------------------------
    def _flow_start(self, output: "NodeId", order: Sequence["NodeId"]) -> None:
        self.total = len(order)
        if self.orig_flow_start:
            self.orig_flow_start(output, order)

    def _start(self, node: "Node") -> None:
        self.running[node.id] = (f"{node.type_name} {node.id}", time.perf_counter())
        self._refresh()
        if self.orig_start:
            self.orig_start(node)

    def _end(self, rep: NodeReport) -> None:
        self.running.pop(rep.node, None)
        if rep.cache_hit:
            self.hits += 1
            self.hit_time += rep.duration
        elif rep.state is NodeState.FAILED:
            self.failed += 1
        else:
            self.execs += 1
            self.exec_time += rep.duration
        self._refresh()
        if self.orig_end:
            self.orig_end(rep)

    def _flow(self, report: EvalReport) -> None:
        self.report = report
        self._refresh()
        if self.orig_flow:
            self.orig_flow(report)

    def _refresh(self) -> None:
        if self.live is not None:
            self.live.update(self._render())

    # --------------------------------------------------------------
    def _header(self, final: bool) -> Text:
        done = self.hits + self.execs + self.failed
        remain = max(self.total - done - len(self.running), 0)
        avg = self.exec_time / self.execs if self.execs else 0.0
        eta = remain * avg
        fmt = self._format_dur
        parts: list[Any] = []
        if self.hits:
            parts += [
                ("⚡️"),
                (" Cache ", "bold"),
                (f"{self.hits} ", "bold"),
                (f"[{fmt(self.hit_time)}]", "gray50"),
            ]
        if self.execs:
            prefix = "\t" if parts else ""
            parts += [
                (f"{prefix}✨️"),
                (" Compute ", "bold"),
                (f"{self.execs} ", "bold"),
                (f"[{fmt(self.exec_time)}]", "gray50"),
            ]
        if self.failed:
            prefix = "\t" if parts else ""
            parts += [
                (f"{prefix}❌️"),
                (" Failed ", "bold red"),
                (f"{self.failed}", "bold red"),
            ]
        if final and self.report is not None and self.report.error is not None:
            prefix = "\t" if parts else ""
            parts += [(f"{prefix}⛔️"), (f" {self.report.error}", "bold red")]
        if not final:
            prefix = "\t" if parts else ""
            parts += [
                (f"{prefix}📋️"),
                (" Pending ", "bold"),
                (f"{remain} ", "bold"),
                (f"[ETA: {fmt(eta)}]", "gray50"),
            ]
        return Text.assemble(*parts)

    def _render(self, final: bool = False) -> Group:
        out: list[Any] = [self._header(final)]
        now = time.perf_counter()
        icon = str(self.spinner.render(now))
        table = Table.grid(expand=True)
        for label, ts in list(self.running.values()):
            dur = self._format_dur(now - ts)
            table.add_row(Text.assemble(icon, " ", label, (f" [{dur}]", "gray50")))
        out.append(table)
        return Group(*out)


def failure_table(report: EvalReport) -> Table:
    table = Table(title="Failed nodes", show_lines=False)
    table.add_column("node")
    table.add_column("type")
    table.add_column("error")
    table.add_column("kind", style="gray50")
    for entry in report.errored:
        assert entry.error is not None
        table.add_row(
            str(entry.node),
            entry.type_name,
            entry.error.message,
            type(entry.error).__name__,
        )
    return table


def render_report(report: EvalReport, console: Console | None = None) -> Table:
    """Print a per-node table of ``report`` and return it."""
    console = console or _console
    table = Table(title=f"Evaluation of {report.output}")
    table.add_column("node")
    table.add_column("type")
    table.add_column("state")
    table.add_column("cache")
    table.add_column("time", justify="right")
    styles = {
        NodeState.CLEAN: "green",
        NodeState.DONE: "cyan",
        NodeState.FAILED: "red",
    }
    for entry in report:
        table.add_row(
            str(entry.node),
            entry.type_name,
            Text(entry.state.value, style=styles.get(entry.state, "")),
            "hit" if entry.cache_hit else (entry.dirty_reason or "miss"),
            format_duration(entry.duration),
        )
    if report.error is not None:
        table.caption = str(report.error)
    console.print(table)
    return table
