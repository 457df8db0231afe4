# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.
from __future__ import annotations

import onnx
import onnx_ir as ir

from onnximport import _naming


def to_parameter(value_info: onnx.ValueInfoProto) -> ir.Value:
    """Create a graph input from a declared input of the ONNX graph."""
    parameter = ir.Value(
        name=value_info.name,
        type=ir.serde.deserialize_type_proto_for_type(value_info.type),
        shape=ir.serde.deserialize_type_proto_for_shape(value_info.type),
        doc_string=value_info.doc_string or None,
    )
    _naming.set_tensor_names(parameter, [value_info.name])
    return parameter
