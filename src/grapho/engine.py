"""Evaluation engine tying scheduler, dirty tracking, cache and executor together."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Sequence
from typing import Any, TYPE_CHECKING

from .cache import EvalCache
from .config import Config
from .dirty import DirtyTracker, dirty_reason
from .exceptions import (
    AmbiguousOutput,
    CycleDetected,
    EvaluationCancelled,
    EvaluationInProgress,
    NoOutputNode,
    StructuralError,
    UnknownNode,
)
from .executor import Invalid, MISSING_INPUT, NodeExecutor
from .logger import logger, set_level
from .mesh import Mesh
from .report import EvalReport, NodeReport, ReportBuilder
from .scene import SceneSnapshot
from .scheduler import Scheduler

if TYPE_CHECKING:
    from .graph import Graph, Node, NodeId

__all__ = ["Engine", "evaluate", "resolve_output"]

OUTPUT_TYPE = "Output"


def resolve_output(graph: "Graph", output: "NodeId | None" = None) -> "NodeId":
    """Return the node to evaluate.

    An explicit ``output`` wins, then the graph's designated output, then the
    single node of type ``Output``.
    """
    if output is None:
        output = graph.output
    if output is not None:
        if graph.node(output) is None:
            raise UnknownNode(output)
        return output
    candidates = graph.nodes_of_type(OUTPUT_TYPE)
    if not candidates:
        raise NoOutputNode("no output node designated and no Output node in the graph")
    if len(candidates) > 1:
        raise AmbiguousOutput(candidates)
    return candidates[0]


def _is_cancelled(cancel: Any) -> bool:
    if cancel is None:
        return False
    if hasattr(cancel, "is_set"):
        return bool(cancel.is_set())
    return bool(cancel())


class Engine:
    """Evaluate one graph incrementally.

    The engine owns the evaluation cache and scheduler for its graph; a cache
    cannot be shared with another graph. Hooks mirror a runtime's callbacks
    so that reporters can observe a run:

    - ``on_flow_start(output, order)``
    - ``on_node_start(node)``
    - ``on_node_end(node_report)``
    - ``on_flow_end(report)``
    """

    def __init__(
        self,
        graph: "Graph",
        *,
        cache: EvalCache | None = None,
        config: Config | None = None,
        scheduler: Scheduler | None = None,
        executor: NodeExecutor | None = None,
        reporter: Any = None,
    ):
        self.graph = graph
        self.config = config or graph.config or Config()

        log_level = self.config.setting("log_level")
        if log_level:
            set_level(str(log_level))

        if cache is None:
            cache = EvalCache(max_bytes=self.config.setting("cache_max_bytes"))
        cache.attach(graph)
        self.cache = cache
        self.scheduler = scheduler or Scheduler()
        self.executor = executor or NodeExecutor(validate=bool(self.config.setting("validate")))
        self.reporter = reporter
        self.base_color = tuple(float(c) for c in self.config.setting("base_color"))

        self.on_flow_start: Callable[["NodeId", Sequence["NodeId"]], None] | None = None
        self.on_node_start: Callable[["Node"], None] | None = None
        self.on_node_end: Callable[[NodeReport], None] | None = None
        self.on_flow_end: Callable[[EvalReport], None] | None = None

        self.last_report: EvalReport | None = None
        self._in_flight: set["NodeId"] = set()
        self._lock = threading.Lock()

    # --------------------------------------------------------------
    def evaluate(
        self,
        output: "NodeId | None" = None,
        *,
        reporter: Any = None,
        cancel: Any = None,
    ) -> tuple[SceneSnapshot | None, EvalReport]:
        """Evaluate ``output`` (or the discovered output node).

        Returns the scene snapshot, or None when the output is invalid, and
        the run's report. Structural problems and cycles abort the run and
        are reported in ``report.error``; node failures are recorded per
        node.

        Raises:
            EvaluationInProgress: If ``output`` is already being evaluated.
            EvaluationCancelled: If ``cancel`` fires between node steps.
        """
        if reporter is None:
            reporter = self.reporter
        if reporter is None:
            return self._run(output, cancel)
        with reporter.attach(self):
            return self._run(output, cancel)

    def _run(self, output: "NodeId | None", cancel: Any) -> tuple[SceneSnapshot | None, EvalReport]:
        t0 = time.perf_counter()
        try:
            target = resolve_output(self.graph, output)
        except StructuralError as exc:
            logger.warning("evaluation aborted: {}", exc)
            report = ReportBuilder(output).abort(exc, time.perf_counter() - t0)
            self._finish(report)
            return None, report

        with self._lock:
            if target in self._in_flight:
                raise EvaluationInProgress(f"output {target} is already being evaluated")
            self._in_flight.add(target)
        try:
            with self.graph.reading():
                return self._evaluate(target, cancel, t0)
        finally:
            with self._lock:
                self._in_flight.discard(target)

    def _evaluate(
        self, target: "NodeId", cancel: Any, t0: float
    ) -> tuple[SceneSnapshot | None, EvalReport]:
        builder = ReportBuilder(target)
        try:
            order = self.scheduler.order(self.graph, target)
        except CycleDetected as exc:
            logger.warning("evaluation of {} aborted: {}", target, exc)
            report = builder.abort(exc, time.perf_counter() - t0)
            self._finish(report)
            return None, report

        if self.on_flow_start is not None:
            self.on_flow_start(target, order)

        tracker = DirtyTracker(self.graph)
        values: dict["NodeId", tuple[Any, ...]] = {}
        for node_id in order:
            if _is_cancelled(cancel):
                report = builder.build(time.perf_counter() - t0, cancelled=True)
                logger.debug("evaluation of {} cancelled after {} nodes", target, len(report))
                self._finish(report)
                raise EvaluationCancelled(report)
            values[node_id] = self._step(node_id, tracker, builder, values)

        report = builder.build(time.perf_counter() - t0)
        snapshot = self._snapshot(report, values.get(target, ()))
        self._finish(report)
        return snapshot, report

    def _step(
        self,
        node_id: "NodeId",
        tracker: DirtyTracker,
        builder: ReportBuilder,
        values: dict["NodeId", tuple[Any, ...]],
    ) -> tuple[Any, ...]:
        node = self.graph.node(node_id)
        assert node is not None
        start = time.perf_counter()
        fingerprint = tracker.fingerprint(node_id)
        if self.on_node_start is not None:
            self.on_node_start(node)

        entry = self.cache.get(node_id, fingerprint)
        if entry is not None:
            tracker.record(node_id, entry.output_version)
            self._node_end(builder.clean(node_id, node.type_name, time.perf_counter() - start))
            return entry.outputs

        reason = dirty_reason(self.cache.peek(node_id), fingerprint)
        reason_name = reason.value if reason is not None else None
        builder.start(node_id)
        result = self.executor.execute(node, self._resolve_inputs(node, values))
        if result.ok:
            entry = self.cache.put(node_id, result.outputs, fingerprint)
            tracker.record(node_id, entry.output_version)
            rep = builder.done(node_id, node.type_name, time.perf_counter() - start, reason_name)
            outputs = entry.outputs
        else:
            assert result.error is not None
            # failed nodes are never served from the cache
            self.cache.invalidate(node_id)
            tracker.record_invalid(node_id)
            rep = builder.failed(
                node_id, node.type_name, time.perf_counter() - start, result.error, reason_name
            )
            outputs = result.outputs
        self._node_end(rep)
        return outputs

    def _resolve_inputs(
        self, node: "Node", values: dict["NodeId", tuple[Any, ...]]
    ) -> list[Any]:
        inputs: list[Any] = []
        for decl, source in zip(node.type.inputs, self.graph.input_sources(node.id)):
            if source is None:
                inputs.append(None if decl.optional else MISSING_INPUT)
                continue
            value = values[source.node][source.index]
            if not isinstance(value, Invalid):
                value = decl.type.coerce(value)
            inputs.append(value)
        return inputs

    def _snapshot(self, report: EvalReport, outputs: tuple[Any, ...]) -> SceneSnapshot | None:
        if not report.output_valid:
            return None
        mesh = next((v for v in outputs if isinstance(v, Mesh)), None)
        if mesh is None:
            logger.warning("output node {} produced no mesh", report.output)
            return None
        return SceneSnapshot.from_mesh(mesh, self.base_color)  # type: ignore[arg-type]

    def _node_end(self, rep: NodeReport) -> None:
        if self.on_node_end is not None:
            self.on_node_end(rep)

    def _finish(self, report: EvalReport) -> None:
        self.last_report = report
        summary = report.summary()
        logger.debug(
            "evaluated {output}: {nodes} nodes, {cache_hits} hits, {computed} computed, "
            "{failed} failed in {total_ms:.2f}ms",
            **summary,
        )
        if self.on_flow_end is not None:
            self.on_flow_end(report)

    # --------------------------------------------------------------
    def invalidate(self, node_id: "NodeId") -> None:
        """Force ``node_id`` to recompute on the next run."""
        self.cache.invalidate(node_id)

    def clear_cache(self) -> None:
        self.cache.clear()
        self.scheduler.clear()

    def close(self) -> None:
        """Release the cache's binding to the graph."""
        self.cache.detach()


def evaluate(
    graph: "Graph",
    cache: EvalCache,
    output: "NodeId | None" = None,
    *,
    scheduler: Scheduler | None = None,
    executor: NodeExecutor | None = None,
    config: Config | None = None,
    reporter: Any = None,
    cancel: Any = None,
) -> tuple[SceneSnapshot | None, EvalReport]:
    """Evaluate ``graph`` once with ``cache`` and return ``(snapshot, report)``.

    The cache keeps its binding to ``graph`` after the call, so repeated calls
    with the same cache are incremental.
    """
    engine = Engine(
        graph, cache=cache, config=config, scheduler=scheduler, executor=executor
    )
    return engine.evaluate(output, reporter=reporter, cancel=cancel)
