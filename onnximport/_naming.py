# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.
"""Naming of the nodes and values produced for ONNX nodes."""

from __future__ import annotations

__all__ = [
    "RESULT_NAMES_KEY",
    "TENSOR_NAMES_KEY",
    "add_tensor_names",
    "common_node_for_all_outputs",
    "result_name",
    "result_names",
    "set_node_names",
    "set_tensor_names",
    "tensor_names",
]

from typing import TYPE_CHECKING, Iterable, Sequence

import onnx_ir as ir

if TYPE_CHECKING:
    from onnximport._node import OnnxNode

# All names a value is known by. Value.name holds the primary one.
TENSOR_NAMES_KEY = "pkg.onnximport.tensor_names"
# Names of the graph results, one per graph output.
RESULT_NAMES_KEY = "pkg.onnximport.result_names"


def tensor_names(value: ir.Value) -> frozenset[str]:
    """Return every name associated with the value."""
    names = value.meta.get(TENSOR_NAMES_KEY)
    if names is None:
        return frozenset((value.name,)) if value.name else frozenset()
    return frozenset(names)


def add_tensor_names(value: ir.Value, names: Iterable[str]) -> None:
    """Associate more names with the value without renaming it."""
    current = set(tensor_names(value))
    current.update(name for name in names if name)
    value.meta[TENSOR_NAMES_KEY] = current
    if not value.name and current:
        value.name = min(current)


def set_tensor_names(value: ir.Value, names: Sequence[str]) -> None:
    """Replace the names of the value. The first name becomes the primary name."""
    names = [name for name in names if name]
    if not names:
        return
    value.name = names[0]
    value.meta[TENSOR_NAMES_KEY] = set(names)


def common_node_for_all_outputs(outputs: Sequence[ir.Value | None]) -> bool:
    """Whether all outputs are produced by one node."""
    producers = [output.producer() if output is not None else None for output in outputs]
    first = producers[0]
    return all(producer is first for producer in producers[1:])


def set_node_names(onnx_node: OnnxNode, outputs: Sequence[ir.Value | None]) -> None:
    """Name the nodes and values produced for ``onnx_node``.

    Identity keeps the names of whatever it forwards and only adds the declared
    output names. For other operators the producing node is named after the ONNX
    node, or after its outputs when the ONNX node is anonymous. When one IR node
    backs several outputs it is renamed on every visit and the last name wins.
    """
    output_names = onnx_node.output_names
    if onnx_node.op_type == "Identity" and onnx_node.domain == "":
        for output, name in zip(outputs, output_names):
            if output is not None:
                add_tensor_names(output, [name])
        return

    if not outputs:
        return
    common_node = common_node_for_all_outputs(outputs)
    node_name = onnx_node.name
    for i, output in enumerate(outputs):
        # Trailing optional outputs may be left out of the model
        if i >= len(output_names):
            break
        # Optional outputs that are not produced carry no tensor
        if output is None:
            continue
        producer = output.producer()
        if producer is not None:
            if not node_name:
                producer.name = output_names[i]
            elif common_node:
                producer.name = node_name
            else:
                producer.name = f"{node_name}_{output_names[i]}"
        set_tensor_names(output, [output_names[i]])


def result_name(output_name: str, value: ir.Value) -> str:
    """Name of the result that consumes ``value`` as the graph output ``output_name``."""
    index = value.index()
    return f"{output_name}/sink_port_{index if index is not None else 0}"


def result_names(graph: ir.Graph) -> list[str]:
    """Return the result names recorded when the graph was assembled."""
    return list(graph.meta.get(RESULT_NAMES_KEY, ()))
