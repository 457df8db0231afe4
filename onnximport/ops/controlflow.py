# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.
"""Conversions of the ONNX operators holding nested graphs.

The nested graphs are converted before the node that holds them. Values a
nested graph reads from an enclosing scope become graph inputs of the nested
graph, and the converted node receives the captured values as trailing inputs,
after the inputs declared in the ONNX model. The names of the captured values
are recorded in ``node.meta[CAPTURED_INPUTS_KEY]``.
"""

from __future__ import annotations

__all__ = ["CAPTURED_INPUTS_KEY"]

from typing import TYPE_CHECKING, Sequence

import onnx_ir as ir

from onnximport.ops._registry import ReturnValue, register
from onnximport.ops.core import validation_error

if TYPE_CHECKING:
    from onnximport._node import OnnxNode
    from onnximport.ops._tape import Builder

CAPTURED_INPUTS_KEY = "pkg.onnximport.captured_inputs"


def _captured_inputs(node: OnnxNode, attribute_names: Sequence[str]) -> list[ir.Value]:
    captured: dict[str, ir.Value] = {}
    for attribute_name in attribute_names:
        subgraph = node.get_subgraph(attribute_name)
        subgraph.infer_inputs_from_parent()
        for value in subgraph.get_inputs_from_parent():
            captured.setdefault(value.name, value)
    return list(captured.values())


def _graph_attributes(node: OnnxNode, attribute_names: Sequence[str]) -> list[ir.Attr]:
    attributes = [
        ir.Attr(name, ir.AttributeType.GRAPH, node.get_function(name))
        for name in attribute_names
    ]
    attributes.extend(node.attributes.values())
    return attributes


def _as_list(result: ir.Value | Sequence[ir.Value]) -> list[ir.Value]:
    return [result] if isinstance(result, ir.Value) else list(result)


def _make_node(
    node: OnnxNode,
    op: Builder,
    inputs: Sequence[ir.Value | None],
    attribute_names: Sequence[str],
) -> ReturnValue:
    captured = _captured_inputs(node, attribute_names)
    outputs = _as_list(
        getattr(op, node.op_type)(
            *inputs,
            *captured,
            _attributes=_graph_attributes(node, attribute_names),
            _outputs=max(len(node.output_names), 1),
        )
    )
    # The node just created holds the nested graphs
    op.nodes[-1].meta[CAPTURED_INPUTS_KEY] = [value.name for value in captured]
    return outputs


@register("If")
def if_op(node: OnnxNode, op: Builder) -> ReturnValue:
    then_branch = node.get_function("then_branch")
    else_branch = node.get_function("else_branch")
    if len(then_branch.outputs) != len(else_branch.outputs):
        raise validation_error(
            node,
            f"then_branch has {len(then_branch.outputs)} outputs "
            f"and else_branch has {len(else_branch.outputs)}",
        )
    if not node.inputs or node.inputs[0] is None:
        raise validation_error(node, "the condition is missing")
    return _make_node(node, op, node.inputs[:1], ("then_branch", "else_branch"))


@register("Loop")
def loop(node: OnnxNode, op: Builder) -> ReturnValue:
    # Inputs are M, cond and the loop-carried values. The body takes the
    # iteration number, cond and the loop-carried values, then the captures.
    body = node.get_function("body")
    num_captured = len(node.get_subgraph("body").captures)
    if len(body.inputs) - num_captured != len(node.inputs):
        raise validation_error(
            node,
            f"the body has {len(body.inputs) - num_captured} inputs besides captured values, "
            f"expected {len(node.inputs)}",
        )
    return _make_node(node, op, node.inputs, ("body",))


@register("Scan", since_version=9)
def scan(node: OnnxNode, op: Builder) -> ReturnValue:
    num_scan_inputs = node.get_attribute_value("num_scan_inputs")
    if num_scan_inputs is None:
        raise validation_error(node, "attribute num_scan_inputs is required")
    return _make_node(node, op, node.inputs, ("body",))
