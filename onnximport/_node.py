# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.
"""The view of an ONNX node that operator functions work with."""

from __future__ import annotations

__all__ = ["OnnxNode"]

from typing import TYPE_CHECKING, Any, Sequence

import onnx
import onnx_ir as ir

from onnximport.errors import OnnxImportError
from onnximport.ops import _registry

if TYPE_CHECKING:
    from onnximport._graph import GraphBuilder, ScopedGraphBuilder


class OnnxNode:
    """An ONNX node whose inputs are resolved in the scope of a graph builder.

    The inputs are looked up when the node is created, so a name missing from
    every visible scope fails before any conversion is attempted. Nested graphs
    get one :class:`~onnximport.ScopedGraphBuilder` each, created here as well.
    """

    def __init__(self, proto: onnx.NodeProto, graph: GraphBuilder) -> None:
        self.proto = proto
        self.graph = graph
        self._inputs: list[ir.Value | None] = [
            graph.get(name) if name else None for name in proto.input
        ]
        self._attributes: dict[str, ir.Attr] = {}
        self._subgraphs: dict[str, ScopedGraphBuilder] = {}
        self._functions: dict[str, ir.Graph] = {}
        for attr in proto.attribute:
            if attr.type == onnx.AttributeProto.GRAPH:
                self._subgraphs[attr.name] = graph.create_subgraph(attr.g)
            elif attr.type == onnx.AttributeProto.GRAPHS:
                raise OnnxImportError(
                    f"{self.error_prefix()}: graph list attribute '{attr.name}' "
                    "is not supported."
                )
            else:
                self._attributes[attr.name] = ir.serde.deserialize_attribute(attr)

    def refresh_inputs(self) -> None:
        """Look up the inputs again, after the values they name have been replaced."""
        self._inputs = [self.graph.get(name) if name else None for name in self.proto.input]

    @property
    def domain(self) -> str:
        return _registry.normalize_domain(self.proto.domain)

    @property
    def op_type(self) -> str:
        return self.proto.op_type

    @property
    def name(self) -> str:
        return self.proto.name

    @property
    def identifier(self) -> str:
        return f"{self.domain}.{self.op_type}" if self.domain else self.op_type

    @property
    def input_names(self) -> Sequence[str]:
        return list(self.proto.input)

    @property
    def output_names(self) -> Sequence[str]:
        return list(self.proto.output)

    @property
    def inputs(self) -> Sequence[ir.Value | None]:
        return list(self._inputs)

    @property
    def attributes(self) -> dict[str, ir.Attr]:
        return self._attributes

    def get_attribute_value(self, name: str, default: Any = None) -> Any:
        attr = self._attributes.get(name)
        if attr is None:
            return default
        return attr.value

    def has_subgraphs(self) -> bool:
        return bool(self._subgraphs)

    def get_subgraphs(self) -> dict[str, ScopedGraphBuilder]:
        return self._subgraphs

    def get_subgraph(self, name: str) -> ScopedGraphBuilder:
        try:
            return self._subgraphs[name]
        except KeyError:
            raise OnnxImportError(
                f"{self.error_prefix()}: missing graph attribute '{name}'."
            ) from None

    def set_function(self, name: str, function: ir.Graph) -> None:
        self._functions[name] = function

    def get_function(self, name: str) -> ir.Graph:
        """Return the graph built from the nested graph attribute ``name``."""
        try:
            return self._functions[name]
        except KeyError:
            raise OnnxImportError(
                f"{self.error_prefix()}: graph attribute '{name}' has not been converted."
            ) from None

    def error_prefix(self) -> str:
        return f"While converting ONNX node '<Node({self.identifier}): {self.name}>'"

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.identifier!r}, name={self.name!r})"
