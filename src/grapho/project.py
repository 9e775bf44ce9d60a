"""Graph persistence: plain-data round trip and YAML project files."""

from __future__ import annotations

from pathlib import Path
from typing import Any, TYPE_CHECKING

from omegaconf import OmegaConf
from pydantic import BaseModel, Field, ValidationError

from .config import Config
from .exceptions import GraphoError, ProjectError
from .graph import Graph
from .logger import logger

if TYPE_CHECKING:
    from .registry import NodeTypeRegistry

__all__ = [
    "GraphRecord",
    "LinkRecord",
    "NodeRecord",
    "PROJECT_VERSION",
    "Project",
    "graph_from_dict",
    "graph_to_dict",
]

PROJECT_VERSION = 1


class NodeRecord(BaseModel):
    id: int
    type: str
    params: dict[str, Any] = Field(default_factory=dict)


class LinkRecord(BaseModel):
    source: int
    source_pin: str
    target: int
    target_pin: str


class GraphRecord(BaseModel):
    nodes: list[NodeRecord] = Field(default_factory=list)
    links: list[LinkRecord] = Field(default_factory=list)
    output: int | None = None


def _plain(value: Any) -> Any:
    if isinstance(value, tuple):
        return [_plain(v) for v in value]
    return value


def graph_to_dict(graph: Graph) -> dict[str, Any]:
    """Serialize nodes, parameters, links and the designated output.

    Node ids are renumbered densely in iteration order; pins are stored by
    name so that files stay readable.
    """
    local: dict[Any, int] = {}
    nodes = []
    for i, node in enumerate(graph.nodes()):
        local[node.id] = i
        nodes.append(
            NodeRecord(
                id=i,
                type=node.type_name,
                params={k: _plain(v) for k, v in node.params.items()},
            )
        )
    links = [
        LinkRecord(
            source=local[link.source.node],
            source_pin=graph.pin_decl(link.source).name,
            target=local[link.target.node],
            target_pin=graph.pin_decl(link.target).name,
        )
        for link in graph.links()
    ]
    output = local.get(graph.output) if graph.output is not None else None
    return GraphRecord(nodes=nodes, links=links, output=output).model_dump()


def graph_from_dict(
    data: Any,
    registry: "NodeTypeRegistry | None" = None,
    *,
    config: Config | None = None,
) -> Graph:
    """Build a new graph from :func:`graph_to_dict` output.

    Raises
    ------
    ProjectError
        If the data is malformed or references unknown types, pins or nodes.
    """
    try:
        record = GraphRecord.model_validate(data)
    except ValidationError as e:
        raise ProjectError(f"malformed graph data: {e}") from e

    graph = Graph(registry, config=config)
    ids: dict[int, Any] = {}
    try:
        for node in record.nodes:
            if node.id in ids:
                raise ProjectError(f"duplicate node id {node.id}")
            ids[node.id] = graph.add_node(node.type, node.params)
        for link in record.links:
            source = graph.output_pin(_lookup(ids, link.source), link.source_pin)
            target = graph.input_pin(_lookup(ids, link.target), link.target_pin)
            graph.add_link(source, target)
        if record.output is not None:
            graph.set_output(_lookup(ids, record.output))
    except ProjectError:
        raise
    except GraphoError as e:
        raise ProjectError(f"cannot rebuild graph: {e}") from e
    return graph


def _lookup(ids: dict[int, Any], local_id: int) -> Any:
    try:
        return ids[local_id]
    except KeyError:
        raise ProjectError(f"link or output refers to unknown node {local_id}") from None


class Project(BaseModel):
    """A saved graph plus free-form settings (usually a config mapping)."""

    version: int = PROJECT_VERSION
    graph: GraphRecord = Field(default_factory=GraphRecord)
    settings: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_graph(cls, graph: Graph, settings: dict[str, Any] | None = None) -> "Project":
        if settings is None and graph.config is not None:
            settings = graph.config.to_dict()
        return cls(graph=GraphRecord.model_validate(graph_to_dict(graph)), settings=settings or {})

    def to_config(self) -> Config:
        return Config(self.settings)

    def to_graph(self, registry: "NodeTypeRegistry | None" = None) -> Graph:
        return graph_from_dict(self.graph.model_dump(), registry, config=self.to_config())

    def save(self, path: str | Path) -> None:
        OmegaConf.save(OmegaConf.create(self.model_dump()), str(path))
        logger.debug("saved project with {} nodes to {}", len(self.graph.nodes), path)

    @classmethod
    def load(cls, path: str | Path) -> "Project":
        try:
            data = OmegaConf.to_container(OmegaConf.load(str(path)), resolve=False)
        except Exception as e:
            raise ProjectError(f"Failed to load project from {path}: {e}") from e
        if not isinstance(data, dict):
            raise ProjectError(f"{path} does not contain a project mapping")
        version = data.get("version", PROJECT_VERSION)
        if version != PROJECT_VERSION:
            raise ProjectError(f"unsupported project version {version} (expected {PROJECT_VERSION})")
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ProjectError(f"malformed project file {path}: {e}") from e
