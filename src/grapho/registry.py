"""Node type descriptors and the registry that dispatches compute functions."""

from __future__ import annotations

import inspect
from collections.abc import Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from pydantic import validate_call

from .exceptions import ComputeFailed, UnknownNodeType
from .types import InputPin, OutputPin, normalize_param

__all__ = [
    "NodeType",
    "NodeTypeRegistry",
]


@dataclass(eq=False)
class NodeType:
    """Descriptor of a node type.

    ``fn`` receives the resolved input values positionally (in pin order)
    followed by the parameter block as keyword arguments. Its keyword-only
    defaults are the type's default parameters.
    """

    name: str
    fn: Callable[..., Any]
    inputs: tuple[InputPin, ...] = ()
    outputs: tuple[OutputPin, ...] = ()
    category: str = "Operators"
    defaults: Mapping[str, Any] = field(default_factory=dict)
    _validated_fn: Callable[..., Any] | None = field(default=None, repr=False)

    @classmethod
    def from_function(
        cls,
        fn: Callable[..., Any],
        *,
        name: str | None = None,
        inputs: Sequence[InputPin] = (),
        outputs: Sequence[OutputPin] = (),
        category: str = "Operators",
    ) -> "NodeType":
        sig = inspect.signature(fn)
        positional = [
            p
            for p in sig.parameters.values()
            if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD)
        ]
        has_varargs = any(p.kind is p.VAR_POSITIONAL for p in sig.parameters.values())
        if len(positional) != len(inputs) and not has_varargs:
            raise TypeError(
                f"{fn.__name__} takes {len(positional)} positional inputs "
                f"but {len(inputs)} input pins are declared"
            )
        defaults: dict[str, Any] = {}
        for p in sig.parameters.values():
            if p.kind is not p.KEYWORD_ONLY:
                continue
            if p.default is p.empty:
                raise TypeError(f"parameter {p.name!r} of {fn.__name__} needs a default")
            defaults[p.name] = normalize_param(p.default)
        return cls(
            name=name or fn.__name__,
            fn=fn,
            inputs=tuple(inputs),
            outputs=tuple(outputs),
            category=category,
            defaults=defaults,
        )

    def _get_validated_fn(self) -> Callable[..., Any]:
        if self._validated_fn is None:
            self._validated_fn = validate_call(
                self.fn, config={"arbitrary_types_allowed": True}
            )
        return self._validated_fn

    def compute(
        self,
        inputs: Sequence[Any],
        params: Mapping[str, Any],
        *,
        validate: bool = True,
    ) -> list[Any]:
        """Run the compute function and return one value per output pin.

        With ``validate`` the parameter block is checked against the function
        annotations; a failing check raises ``pydantic.ValidationError``.
        """
        fn = self._get_validated_fn() if validate else self.fn
        result = fn(*inputs, **params)
        n_out = len(self.outputs)
        if n_out == 0:
            return []
        if n_out == 1:
            return [result]
        if not isinstance(result, (tuple, list)) or len(result) != n_out:
            raise ComputeFailed(
                f"{self.name} declares {n_out} outputs but returned {type(result).__name__}"
            )
        return list(result)


class NodeTypeRegistry:
    """Registered-function table mapping type names to :class:`NodeType`."""

    def __init__(self, types: Sequence[NodeType] = ()):
        self._types: dict[str, NodeType] = {}
        for t in types:
            self.register(t)

    def register(self, node_type: NodeType) -> NodeType:
        if node_type.name in self._types:
            raise ValueError(f"node type {node_type.name!r} is already registered")
        self._types[node_type.name] = node_type
        return node_type

    def define(
        self,
        name: str | None = None,
        *,
        inputs: Sequence[InputPin] = (),
        outputs: Sequence[OutputPin] = (),
        category: str = "Operators",
    ) -> Callable[[Callable[..., Any]], NodeType]:
        """Decorate a compute function to register it as a node type.

        Examples
        --------
        >>> reg = NodeTypeRegistry()
        >>> @reg.define("Scale", inputs=[InputPin("x", PinType.FLOAT)],
        ...             outputs=[OutputPin("y", PinType.FLOAT)])
        ... def scale(x: float, *, factor: float = 2.0) -> float:
        ...     return x * factor
        """

        def deco(fn: Callable[..., Any]) -> NodeType:
            node_type = NodeType.from_function(
                fn, name=name, inputs=inputs, outputs=outputs, category=category
            )
            return self.register(node_type)

        return deco

    def get(self, name: str) -> NodeType:
        try:
            return self._types[name]
        except KeyError:
            raise UnknownNodeType(name) from None

    def __contains__(self, name: object) -> bool:
        return name in self._types

    def __iter__(self) -> Iterator[NodeType]:
        return iter(self._types.values())

    def __len__(self) -> int:
        return len(self._types)

    def names(self) -> list[str]:
        return list(self._types)

    def by_category(self) -> dict[str, list[NodeType]]:
        groups: dict[str, list[NodeType]] = {}
        for t in self._types.values():
            groups.setdefault(t.category, []).append(t)
        return groups
