# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.
"""Conversion of ONNX tensor protos into IR tensors."""

from __future__ import annotations

__all__ = ["to_ir_tensor", "zero_scalar"]

import math
import os

import numpy as np
import onnx
import onnx.external_data_helper
import onnx_ir as ir

from onnximport.errors import InvalidExternalDataError, TensorConversionError


def _element_count(proto: onnx.TensorProto) -> int:
    return math.prod(proto.dims)


def _external_data_path(
    proto: onnx.TensorProto, info: onnx.external_data_helper.ExternalDataInfo, base_dir: str
) -> str:
    location = info.location
    if not location:
        raise InvalidExternalDataError(
            f"Tensor '{proto.name}' stores its data externally but has no location."
        )
    if os.path.isabs(location):
        raise InvalidExternalDataError(
            f"Tensor '{proto.name}' refers to an absolute external data path: '{location}'."
        )
    root = os.path.realpath(base_dir or os.curdir)
    path = os.path.realpath(os.path.join(root, location))
    if os.path.commonpath([root, path]) != root:
        raise InvalidExternalDataError(
            f"External data of tensor '{proto.name}' is outside of the model directory: "
            f"'{location}'."
        )
    if not os.path.isfile(path):
        raise InvalidExternalDataError(
            f"External data file of tensor '{proto.name}' does not exist: '{location}'."
        )
    return path


def _external_tensor(proto: onnx.TensorProto, base_dir: str) -> ir.TensorProtocol:
    """Validate the external data reference of ``proto`` and load it."""
    try:
        info = onnx.external_data_helper.ExternalDataInfo(proto)
    except (ValueError, TypeError) as e:
        raise InvalidExternalDataError(
            f"Tensor '{proto.name}' has an invalid external data entry: {e}"
        ) from e
    path = _external_data_path(proto, info, base_dir)
    file_size = os.path.getsize(path)
    offset = info.offset or 0
    dtype = ir.DataType(proto.data_type)
    expected_length = math.ceil(_element_count(proto) * dtype.itemsize)
    length = info.length if info.length else file_size - offset
    if offset < 0 or offset + length > file_size:
        raise InvalidExternalDataError(
            f"External data of tensor '{proto.name}' (offset {offset}, length {length}) "
            f"exceeds the size of '{info.location}' ({file_size} bytes)."
        )
    if length != expected_length:
        raise InvalidExternalDataError(
            f"External data of tensor '{proto.name}' holds {length} bytes, "
            f"but {expected_length} bytes are expected for shape {list(proto.dims)}."
        )
    tensor = ir.ExternalTensor(
        info.location,
        offset=offset,
        length=length,
        dtype=dtype,
        shape=ir.Shape(proto.dims),
        name=proto.name,
        base_dir=base_dir,
    )
    try:
        return ir.Tensor(tensor.numpy(), dtype=dtype, name=proto.name)
    except (OSError, ValueError) as e:
        raise InvalidExternalDataError(
            f"Failed to read the external data of tensor '{proto.name}': {e}"
        ) from e


def to_ir_tensor(proto: onnx.TensorProto, base_dir: str = "") -> ir.TensorProtocol:
    """Create an IR tensor from a tensor proto.

    Args:
        proto: The tensor proto, with inline or external data.
        base_dir: The directory external data locations are relative to.

    Returns:
        A tensor whose data has been read and checked against its shape.

    Raises:
        InvalidExternalDataError: The external data reference is malformed.
        TensorConversionError: The tensor data does not match its type or shape.
    """
    if proto.data_location == onnx.TensorProto.EXTERNAL:
        return _external_tensor(proto, base_dir)
    if proto.data_type == onnx.TensorProto.UNDEFINED:
        raise TensorConversionError(f"Tensor '{proto.name}' has an undefined data type.")
    try:
        tensor = ir.serde.deserialize_tensor(proto)
        # Reading the data checks the element count against the shape
        tensor.numpy()
    except Exception as e:  # pylint: disable=broad-exception-caught
        raise TensorConversionError(
            f"Could not read the data of tensor '{proto.name}': {e}"
        ) from e
    return tensor


def zero_scalar(data_type: int, name: str | None = None) -> ir.Tensor:
    """Create a scalar tensor holding zero of the given ONNX data type."""
    try:
        dtype = ir.DataType(data_type)
        array = np.zeros((), dtype=dtype.numpy())
    except (ValueError, TypeError):
        dtype = ir.DataType.FLOAT
        array = np.zeros((), dtype=np.float32)
    return ir.Tensor(array, dtype=dtype, name=name)
