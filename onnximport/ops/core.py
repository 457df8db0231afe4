# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.
"""Conversions of the ONNX operators that do not hold nested graphs."""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
import onnx_ir as ir

from onnximport.errors import NodeValidationError
from onnximport.ops._registry import ReturnValue, register

if TYPE_CHECKING:
    from onnximport._node import OnnxNode
    from onnximport.ops._tape import Builder

# Operators that map to a single IR node with the same inputs and attributes
_ONE_TO_ONE_OPS = (
    "Abs",
    "Add",
    "And",
    "ArgMax",
    "ArgMin",
    "AveragePool",
    "BatchNormalization",
    "Cast",
    "Ceil",
    "Clip",
    "Concat",
    "ConstantOfShape",
    "Conv",
    "Cos",
    "Div",
    "Equal",
    "Erf",
    "Exp",
    "Expand",
    "Flatten",
    "Floor",
    "Gather",
    "GlobalAveragePool",
    "Greater",
    "GreaterOrEqual",
    "LeakyRelu",
    "Less",
    "LessOrEqual",
    "Log",
    "MatMul",
    "Max",
    "MaxPool",
    "Mean",
    "Min",
    "Mod",
    "Mul",
    "Neg",
    "Not",
    "Or",
    "Pad",
    "Pow",
    "Range",
    "Reciprocal",
    "ReduceMax",
    "ReduceMean",
    "ReduceMin",
    "ReduceSum",
    "Relu",
    "Reshape",
    "Resize",
    "Shape",
    "Sigmoid",
    "Sign",
    "Sin",
    "Size",
    "Slice",
    "Softmax",
    "Split",
    "Sqrt",
    "Squeeze",
    "Sub",
    "Sum",
    "Tanh",
    "Tile",
    "TopK",
    "Transpose",
    "Unsqueeze",
    "Where",
    "Xor",
)


def validation_error(node: OnnxNode, message: str) -> NodeValidationError:
    return NodeValidationError(
        f"{node.error_prefix()}: {message}",
        domain=node.domain,
        op_type=node.op_type,
        node_name=node.name,
    )


def _one_to_one(op_type: str, num_outputs: int | None = None):
    """Create a function converting ``op_type`` into the same IR operator.

    The IR node has as many outputs as the ONNX node declares, unless
    ``num_outputs`` fixes the count.
    """

    def convert(node: OnnxNode, op: Builder) -> ReturnValue:
        outputs = num_outputs if num_outputs is not None else max(len(node.output_names), 1)
        return getattr(op, op_type)(
            *node.inputs, _attributes=node.attributes.values(), _outputs=outputs
        )

    convert.__name__ = op_type.lower()
    return convert


for _op_type in _ONE_TO_ONE_OPS:
    register(_op_type)(_one_to_one(_op_type))

# Recurrent operators always produce every output, the model may declare fewer
register("LSTM")(_one_to_one("LSTM", num_outputs=3))
register("GRU")(_one_to_one("GRU", num_outputs=2))
register("RNN")(_one_to_one("RNN", num_outputs=2))


@register("Identity")
def identity(node: OnnxNode, op: Builder) -> ReturnValue:
    del op  # Unused
    return list(node.inputs)


@register("Constant")
def constant(node: OnnxNode, op: Builder) -> ReturnValue:
    if len(node.attributes) != 1:
        raise validation_error(
            node, f"expected exactly one value attribute, got {sorted(node.attributes)}"
        )
    return op.Constant(_attributes=node.attributes.values())


@register("Dropout")
def dropout(node: OnnxNode, op: Builder) -> ReturnValue:
    """Dropout is the identity at inference. The mask, if used, is all true."""
    x = node.inputs[0]
    if x is None:
        raise validation_error(node, "the data input is missing")
    output = op.Identity(x)
    if len(node.output_names) < 2:
        return [output]
    mask = op.ConstantOfShape(op.Shape(x), value=ir.tensor(np.array([True])))
    return [output, mask]


@register("Gemm")
def gemm(node: OnnxNode, op: Builder) -> ReturnValue:
    """Y = alpha * A' * B' + beta * C"""
    inputs = node.inputs
    if len(inputs) < 2 or inputs[0] is None or inputs[1] is None:
        raise validation_error(node, "inputs A and B are required")
    a, b = inputs[0], inputs[1]
    c = inputs[2] if len(inputs) > 2 else None

    if node.get_attribute_value("transA", 0):
        a = op.Transpose(a, perm=[1, 0])
    if node.get_attribute_value("transB", 0):
        b = op.Transpose(b, perm=[1, 0])
    result = op.MatMul(a, b)

    alpha = node.get_attribute_value("alpha", 1.0)
    if alpha != 1.0:
        result = op.Mul(result, op.Constant(value_float=alpha))
    if c is not None:
        beta = node.get_attribute_value("beta", 1.0)
        if beta != 1.0:
            c = op.Mul(c, op.Constant(value_float=beta))
        result = op.Add(result, c)
    return result
