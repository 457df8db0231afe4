# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.
"""Placeholder nodes that keep ONNX operators unconverted."""

from __future__ import annotations

__all__ = ["FRAMEWORK_NODE_KEY", "is_framework_node", "make_framework_node"]

from typing import Mapping, Sequence

import onnx_ir as ir

from onnximport._node import OnnxNode

FRAMEWORK_NODE_KEY = "pkg.onnximport.framework_node"


def make_framework_node(
    onnx_node: OnnxNode,
    inputs: Sequence[ir.Value | None],
    subgraphs: Mapping[str, ir.Graph] | None = None,
) -> ir.Node:
    """Create a node that preserves the identity and attributes of ``onnx_node``.

    Args:
        onnx_node: The ONNX node to preserve.
        inputs: The resolved inputs, including values captured by nested graphs.
        subgraphs: Decoded nested graphs keyed by attribute name.

    Returns:
        A node with one output per declared output of the ONNX node.
    """
    attributes: list[ir.Attr] = list(onnx_node.attributes.values())
    for name, graph in (subgraphs or {}).items():
        attributes.append(ir.Attr(name, ir.AttributeType.GRAPH, graph))
    node = ir.Node(
        onnx_node.domain,
        onnx_node.op_type,
        inputs,
        attributes,
        num_outputs=len(onnx_node.output_names),
        name=onnx_node.name or None,
    )
    node.meta[FRAMEWORK_NODE_KEY] = onnx_node
    return node


def is_framework_node(node: ir.Node) -> bool:
    return node.meta.get(FRAMEWORK_NODE_KEY) is not None
