# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.
"""Builders that turn ONNX graphs into IR graphs."""

from __future__ import annotations

__all__ = [
    "ONNX_GRAPH_KEY",
    "CaptureBinding",
    "GraphBuilder",
    "ScopedGraphBuilder",
]

import collections
import dataclasses
import logging
from typing import Sequence

import onnx
import onnx_ir as ir

from onnximport import _naming, _tensor, _value_info
from onnximport._framework_node import is_framework_node, make_framework_node
from onnximport._internal import feature_switch
from onnximport._model import Model, operator_identifier
from onnximport._node import OnnxNode
from onnximport._symbol_cache import SymbolCache
from onnximport.errors import (
    NodeConversionError,
    NodeValidationError,
    OnnxImportError,
    TensorConversionError,
    UnsupportedOperatorError,
)
from onnximport.ops._tape import Builder

logger = logging.getLogger(__name__)

# Set on decoded graphs: the builder that decoded them, used to resolve them later.
ONNX_GRAPH_KEY = "pkg.onnximport.onnx_graph"


@dataclasses.dataclass(frozen=True)
class CaptureBinding:
    """A graph input of a nested graph standing in for a value of an enclosing scope."""

    parameter: ir.Value
    parent_name: str


@dataclasses.dataclass
class _ConvertedNode:
    onnx_node: OnnxNode
    nodes: list[ir.Node]


def _is_constant(value: ir.Value) -> bool:
    if value.const_value is not None:
        return True
    producer = value.producer()
    return producer is not None and producer.domain == "" and producer.op_type == "Constant"


def _has_subgraphs(node: ir.Node) -> bool:
    return any(
        isinstance(attr, ir.Attr)
        and attr.type in (ir.AttributeType.GRAPH, ir.AttributeType.GRAPHS)
        for attr in node.attributes.values()
    )


def _used_values(nodes: Sequence[ir.Node]) -> set[ir.Value]:
    """Return the inputs of ``nodes`` and of the nodes in their nested graphs."""
    used = set()
    for node in nodes:
        used.update(value for value in node.inputs if value is not None)
        for attr in node.attributes.values():
            if not isinstance(attr, ir.Attr):
                continue
            if attr.type == ir.AttributeType.GRAPH:
                used.update(_used_values(list(attr.as_graph())))
            elif attr.type == ir.AttributeType.GRAPHS:
                for graph in attr.as_graphs():
                    used.update(_used_values(list(graph)))
    return used


class GraphBuilder:
    """Builds the IR graph of a top-level ONNX graph.

    Construction creates constants for the initializers and graph inputs for the
    declared inputs, and checks that every operator in the graph can be
    converted. :meth:`convert` then builds the connected graph, while
    :meth:`decode` wraps every ONNX node into a framework node so that the
    conversion can be carried out later with :meth:`resolve`.

    A builder performs one conversion pass and is not meant to be reused.

    Raises:
        InvalidExternalDataError: An initializer has malformed external data.
        UnsupportedOperatorError: Some operators cannot be converted. All of them
            are listed in the error.
    """

    def __init__(self, model: Model) -> None:
        self._model = model
        self._cache = SymbolCache()
        self._parameters: list[ir.Value] = []
        self._initializers: dict[str, ir.Value] = {}
        self._converted: list[_ConvertedNode] = []
        self._produced_nodes: list[ir.Node] = []
        self._graph: ir.Graph | None = None

        self._load_initializers()
        self._load_inputs()
        self._check_operators()

    @property
    def model(self) -> Model:
        return self._model

    @property
    def parent(self) -> GraphBuilder | None:
        return None

    @property
    def name(self) -> str:
        return self._model.graph.name

    @property
    def parameters(self) -> Sequence[ir.Value]:
        return tuple(self._parameters)

    @property
    def graph(self) -> ir.Graph | None:
        """The graph built by :meth:`convert` or :meth:`decode`."""
        return self._graph

    def _load_initializers(self) -> None:
        for proto in self._model.graph.initializer:
            if not proto.name:
                continue
            # InvalidExternalDataError is not recoverable and propagates
            try:
                tensor = _tensor.to_ir_tensor(proto, self._model.base_dir)
            except TensorConversionError as e:
                if feature_switch.strict_initializers():
                    raise
                logger.warning(
                    "Could not create a constant for initializer '%s'. A constant with a 0 "
                    "value was created, make sure the connected input is optional. Otherwise "
                    "verify if the initializer contains a correct number of elements matching "
                    "the initializer's shape. Detailed error: %s",
                    proto.name,
                    e,
                )
                tensor = _tensor.zero_scalar(proto.data_type, proto.name)
            value = ir.Value(
                name=proto.name,
                type=ir.TensorType(tensor.dtype),
                shape=ir.Shape(tensor.shape),
                const_value=tensor,
            )
            _naming.set_tensor_names(value, [proto.name])
            self._initializers[proto.name] = value
            self._cache.insert(proto.name, value)

    def _load_inputs(self) -> None:
        for value_info in self._model.graph.input:
            # Inputs with an initializer are constants
            if self._cache.contains(value_info.name):
                continue
            parameter = _value_info.to_parameter(value_info)
            self._parameters.append(parameter)
            self._cache.insert(value_info.name, parameter)

    def _check_operators(self) -> None:
        unknown_operators: dict[str, onnx.NodeProto] = {}
        op_statistics: collections.Counter[str] = collections.Counter()
        for node in self._model.graph.node:
            op_statistics[node.op_type] += 1
            if not self._model.is_operator_available(node):
                unknown_operators[operator_identifier(node.domain, node.op_type)] = node
                # The domain may have operators that were not loaded with the opset imports
                self._model.enable_opset_domain(node.domain)
        for op_type, count in sorted(op_statistics.items()):
            logger.debug("Graph '%s' uses %s %d time(s).", self.name, op_type, count)

        # Only the operators found above are checked again. Enabling a domain does
        # not trigger another scan of the graph.
        unsupported = sorted(
            identifier
            for identifier, node in unknown_operators.items()
            if not self._model.is_operator_available(node)
        )
        if unsupported:
            raise UnsupportedOperatorError(unsupported)

    def contains(self, name: str) -> bool:
        return self._cache.contains(name)

    def get(self, name: str) -> ir.Value | None:
        """Return the value bound to ``name``.

        None stands for an optional output that was not produced.
        """
        return self._cache.get(name)

    def create_subgraph(self, graph: onnx.GraphProto) -> ScopedGraphBuilder:
        return ScopedGraphBuilder(self._model.subgraph_model(graph), self)

    def convert(self) -> ir.Graph:
        """Convert every node and return the connected graph."""
        self._convert_nodes()
        self.remove_dangling_parameters()
        self._graph = self.create_graph()
        return self._graph

    def decode(self) -> ir.Graph:
        """Return a graph where every ONNX node is kept as a framework node."""
        self._decode_nodes()
        self._graph = self.create_graph()
        self._graph.meta[ONNX_GRAPH_KEY] = self
        return self._graph

    def _convert_nodes(self) -> None:
        for proto in self._model.graph.node:
            onnx_node = OnnxNode(proto, self)
            for name, subgraph in onnx_node.get_subgraphs().items():
                onnx_node.set_function(name, subgraph.convert())
            self._convert_node(onnx_node)

    def _convert_node(self, onnx_node: OnnxNode) -> None:
        outputs, nodes = self._make_ir_nodes(onnx_node)
        self._record(onnx_node, nodes, outputs)

    def _decode_nodes(self) -> None:
        for proto in self._model.graph.node:
            onnx_node = OnnxNode(proto, self)
            inputs = list(onnx_node.inputs)
            input_names = {value.name for value in inputs if value is not None}
            functions = {}
            for name, subgraph in onnx_node.get_subgraphs().items():
                function = subgraph.decode()
                onnx_node.set_function(name, function)
                functions[name] = function
                for value in subgraph.get_inputs_from_parent():
                    if value.name not in input_names:
                        inputs.append(value)
                        input_names.add(value.name)
            framework_node = make_framework_node(onnx_node, inputs, functions)
            outputs = list(framework_node.outputs)
            _naming.set_node_names(onnx_node, outputs)
            self._record(onnx_node, [framework_node], outputs)

    def _make_ir_nodes(
        self, onnx_node: OnnxNode
    ) -> tuple[list[ir.Value | None], list[ir.Node]]:
        function = self._model.get_operator(onnx_node.op_type, onnx_node.domain)
        op = Builder()
        try:
            result = function(onnx_node, op)
        except NodeValidationError:
            # The error already identifies the node
            raise
        except Exception as e:
            raise NodeConversionError(
                f"{onnx_node.error_prefix()}:\n{e}",
                domain=onnx_node.domain,
                op_type=onnx_node.op_type,
                node_name=onnx_node.name,
            ) from e
        except BaseException:
            logger.error("%s: Unhandled exception type.", onnx_node.error_prefix())
            raise

        outputs = [result] if isinstance(result, ir.Value) else list(result)
        nodes = list(op.nodes)
        if len(outputs) < len(onnx_node.output_names):
            raise NodeConversionError(
                f"{onnx_node.error_prefix()}:\nThe node declares "
                f"{len(onnx_node.output_names)} outputs but its conversion produced "
                f"{len(outputs)}.",
                domain=onnx_node.domain,
                op_type=onnx_node.op_type,
                node_name=onnx_node.name,
            )
        # Values of enclosing scopes keep their names
        created = set(nodes)
        _naming.set_node_names(
            onnx_node,
            [
                output
                if output is None or output.producer() in created or self._owns(output)
                else None
                for output in outputs
            ],
        )
        return outputs, nodes

    def _record(
        self, onnx_node: OnnxNode, nodes: list[ir.Node], outputs: Sequence[ir.Value | None]
    ) -> None:
        self._converted.append(_ConvertedNode(onnx_node, nodes))
        self._produced_nodes.extend(nodes)
        # Outputs past the declared ones are optional and left out of the model
        for name, output in zip(onnx_node.output_names, outputs):
            if name:
                self._cache.insert(name, output)

    def remove_dangling_parameters(self) -> None:
        """Remove graph inputs that are unused, unless they are also graph outputs."""
        output_names = {output.name for output in self._model.graph.output}
        parameters = []
        for parameter in self._parameters:
            if not parameter.uses() and not _naming.tensor_names(parameter) & output_names:
                logger.debug(
                    "Removing unused input '%s' of graph '%s'.", parameter.name, self.name
                )
                if parameter.name is not None and self._cache.contains(parameter.name):
                    if self._cache.get(parameter.name) is parameter:
                        self._cache.remove(parameter.name)
                continue
            parameters.append(parameter)
        self._parameters = parameters

    def _owns(self, value: ir.Value) -> bool:
        del value  # Unused
        return True

    def _graph_output(self, name: str, value: ir.Value) -> ir.Value:
        del name  # Unused
        return value

    def _reachable_nodes(self, outputs: Sequence[ir.Value]) -> list[ir.Node]:
        produced = set(self._produced_nodes)
        reachable: set[ir.Node] = set()
        stack = [output.producer() for output in outputs]
        while stack:
            node = stack.pop()
            if node is None or node in reachable or node not in produced:
                continue
            reachable.add(node)
            # Nested graphs may read constants of this scope directly
            stack.extend(value.producer() for value in _used_values([node]))
        return [node for node in self._produced_nodes if node in reachable]

    def create_graph(self) -> ir.Graph:
        """Assemble the graph from the graph inputs and the values of the declared outputs."""
        outputs = []
        names = []
        for output_info in self._model.graph.output:
            value = self.get(output_info.name)
            # Optional outputs that are not produced are not graph outputs
            if value is None:
                continue
            outputs.append(self._graph_output(output_info.name, value))
            names.append(output_info.name)

        nodes = self._reachable_nodes(outputs)
        used = _used_values(nodes)
        used.update(outputs)
        graph = ir.Graph(
            list(self._parameters),
            outputs,
            nodes=nodes,
            initializers=[value for value in self._initializers.values() if value in used],
            opset_imports=dict(self._model.opset_imports) if self.parent is None else None,
            name=self.name or None,
            doc_string=self._model.graph.doc_string or None,
        )
        graph.meta[_naming.RESULT_NAMES_KEY] = [
            _naming.result_name(name, value) for name, value in zip(names, outputs)
        ]
        return graph

    def resolve(self) -> ir.Graph:
        """Convert the framework nodes of the decoded graph in place."""
        graph = self._resolve_framework_nodes()
        self.remove_dangling_parameters()
        for parameter in list(graph.inputs):
            if parameter not in self._parameters:
                graph.inputs.remove(parameter)
        return graph

    def _resolve_framework_nodes(self) -> ir.Graph:
        graph = self._graph
        if graph is None or graph.meta.get(ONNX_GRAPH_KEY) is not self:
            raise OnnxImportError(f"Graph '{self.name}' has not been decoded.")
        for index, converted in enumerate(self._converted):
            if len(converted.nodes) != 1 or not is_framework_node(converted.nodes[0]):
                continue
            framework_node = converted.nodes[0]
            # Nodes that do not contribute to the outputs were left out of the graph
            if framework_node.graph is not graph:
                continue
            onnx_node = converted.onnx_node
            for name, subgraph in onnx_node.get_subgraphs().items():
                subgraph.resolve()
                # The converted node takes over the nested graph
                framework_node.attributes.pop(name, None)
            onnx_node.refresh_inputs()
            outputs, nodes = self._make_ir_nodes(onnx_node)
            if nodes:
                graph.insert_before(framework_node, nodes)
            self._produced_nodes = [
                node for node in self._produced_nodes if node is not framework_node
            ] + nodes

            replacements = dict(zip(framework_node.outputs, outputs))
            output_names = dict(zip(framework_node.outputs, onnx_node.output_names))
            for old_value, new_value in replacements.items():
                for user, input_index in tuple(old_value.uses()):
                    user.replace_input_with(input_index, new_value)
            for i, output in reversed(list(enumerate(graph.outputs))):
                if output not in replacements:
                    continue
                new_value = replacements[output]
                if new_value is None:
                    graph.outputs.pop(i)
                    continue
                local_value = self._graph_output(output_names[output], new_value)
                producer = local_value.producer()
                if producer is not None and producer.graph is None:
                    graph.append(producer)
                graph.outputs[i] = local_value
            graph.remove(framework_node, safe=True)
            self._converted[index] = _ConvertedNode(onnx_node, nodes)
            for name, output in zip(onnx_node.output_names, outputs):
                if name:
                    self._cache.insert(name, output)

        # Drop what the conversions created but nothing consumes
        graph_outputs = frozenset(graph.outputs)
        for node in reversed(list(graph)):
            if any(output in graph_outputs or output.uses() for output in node.outputs):
                continue
            graph.remove(node, safe=True)
        for initializer in list(graph.initializers.values()):
            if not (initializer in graph_outputs or initializer.uses()):
                assert initializer.name is not None
                del graph.initializers[initializer.name]
        del graph.meta[ONNX_GRAPH_KEY]
        return graph


class ScopedGraphBuilder(GraphBuilder):
    """Builds the IR graph of a nested ONNX graph, such as the body of a Loop.

    Names missing from this scope are looked up in the enclosing scopes. Every
    non-constant value that the nested graph reads from an enclosing scope is
    replaced with a graph input of its own, recorded as a :class:`CaptureBinding`.
    The node owning the nested graph feeds the captured values to those inputs,
    see :meth:`get_inputs_from_parent`.
    """

    def __init__(self, model: Model, parent: GraphBuilder) -> None:
        self._parent = parent
        self._captures: list[CaptureBinding] = []
        self._boundary_parameters: dict[str, ir.Value] = {}
        super().__init__(model)

    @property
    def parent(self) -> GraphBuilder:
        return self._parent

    @property
    def captures(self) -> Sequence[CaptureBinding]:
        return tuple(self._captures)

    def contains(self, name: str) -> bool:
        if self._cache.contains(name):
            return True
        return self._parent.contains(name)

    def get(self, name: str) -> ir.Value | None:
        if self._cache.contains(name):
            return self._cache.get(name)
        return self._parent.get(name)

    def convert(self) -> ir.Graph:
        self._convert_nodes()
        self.find_inputs_from_parent()
        self._graph = self.create_graph()
        return self._graph

    def _decode_nodes(self) -> None:
        super()._decode_nodes()
        self.find_inputs_from_parent()

    def resolve(self) -> ir.Graph:
        return self._resolve_framework_nodes()

    def _convert_node(self, onnx_node: OnnxNode) -> None:
        # Inputs from enclosing scopes are captured before the conversion, so the
        # operator function and the naming only see values of this graph
        for in_name in onnx_node.input_names:
            if self._cache.contains(in_name):
                continue
            parent_value = self._parent_value(in_name)
            if parent_value is not None:
                self._boundary_parameter(in_name, parent_value)
        onnx_node.refresh_inputs()
        super()._convert_node(onnx_node)
        self._capture_subgraph_inputs(self._converted[-1].nodes)

    def _boundary_parameter(self, parent_name: str, parent_value: ir.Value) -> ir.Value:
        parameter = self._boundary_parameters.get(parent_name)
        if parameter is not None:
            return parameter
        parameter = ir.Value(
            name=parent_name, type=parent_value.type, shape=parent_value.shape
        )
        _naming.set_tensor_names(parameter, [parent_name])
        self._boundary_parameters[parent_name] = parameter
        self._parameters.append(parameter)
        self._captures.append(CaptureBinding(parameter, parent_name))
        self._cache.insert(parent_name, parameter)
        logger.debug(
            "Graph '%s' captures '%s' from its enclosing scope.", self.name, parent_name
        )
        return parameter

    def _replace_input_from_parent_scope(
        self, parent_name: str, parent_value: ir.Value, node: ir.Node, index: int
    ) -> None:
        node.replace_input_with(index, self._boundary_parameter(parent_name, parent_value))

    def _parent_value(self, name: str) -> ir.Value | None:
        """Return the non-constant value ``name`` refers to in the enclosing scopes."""
        if not name or not self._parent.contains(name):
            return None
        value = self._parent.get(name)
        if value is None or _is_constant(value):
            return None
        return value

    def find_inputs_from_parent(self) -> None:
        """Replace every edge crossing into this scope with a graph input."""
        for converted in self._converted:
            onnx_node = converted.onnx_node
            for in_name in onnx_node.input_names:
                parent_value = self._parent_value(in_name)
                if parent_value is None:
                    continue
                for node in converted.nodes:
                    for index, value in enumerate(node.inputs):
                        if value is parent_value:
                            self._replace_input_from_parent_scope(
                                in_name, parent_value, node, index
                            )
                # A node forwarding the value as-is, like Identity
                for out_name in onnx_node.output_names:
                    if out_name and self._cache.contains(out_name):
                        if self._cache.get(out_name) is parent_value:
                            parameter = self._boundary_parameter(in_name, parent_value)
                            self._cache.insert(out_name, parameter)
                            _naming.add_tensor_names(parameter, [out_name])

            self._capture_subgraph_inputs(converted.nodes)

    def _capture_subgraph_inputs(self, nodes: Sequence[ir.Node]) -> None:
        # Values captured by the nested graphs of a node are inputs of the node
        # but are not declared in the ONNX model
        for node in nodes:
            if not _has_subgraphs(node):
                continue
            for index, value in enumerate(node.inputs):
                if value is None or not value.name:
                    continue
                if self._parent_value(value.name) is value:
                    self._replace_input_from_parent_scope(value.name, value, node, index)

    def get_inputs_from_parent(self) -> list[ir.Value]:
        """Return the current values of the enclosing scopes that this graph captures.

        Raises:
            OnnxImportError: A captured name is bound to an optional output that
                was not produced.
        """
        values = []
        for binding in self._captures:
            value = self._parent.get(binding.parent_name)
            if value is None:
                raise OnnxImportError(
                    f"Graph '{self.name}' captures '{binding.parent_name}', "
                    "an optional output that is not produced."
                )
            values.append(value)
        return values

    def infer_inputs_from_parent(self) -> None:
        """Update the type and shape of every captured input from the enclosing scopes."""
        for binding in self._captures:
            value = self._parent.get(binding.parent_name)
            if value is None:
                continue
            binding.parameter.type = value.type
            binding.parameter.shape = value.shape

    def _owns(self, value: ir.Value) -> bool:
        if value in self._parameters or value in self._initializers.values():
            return True
        return value.producer() in set(self._produced_nodes)

    def _graph_output(self, name: str, value: ir.Value) -> ir.Value:
        if self._owns(value):
            return value
        if not _is_constant(value):
            parent_name = name if not self._cache.contains(name) else value.name or name
            return self._boundary_parameter(parent_name, value)
        # Constants of enclosing scopes are forwarded by a node of this graph
        node = ir.Node("", "Identity", [value], name=name)
        output = node.outputs[0]
        _naming.set_tensor_names(output, [name])
        self._produced_nodes.append(node)
        return output
