# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.
"""Import ONNX models into ONNX IR graphs."""

__all__ = [
    # Entry points
    "convert_model",
    "decode_model",
    "convert_decoded",
    "load_model",
    "ResolveFrameworkNodesPass",
    # Building blocks
    "CaptureBinding",
    "GraphBuilder",
    "Model",
    "OnnxNode",
    "ScopedGraphBuilder",
    "SymbolCache",
    "set_node_names",
    "tensor_names",
    "result_names",
    # Errors
    "OnnxImportError",
    "InvalidExternalDataError",
    "TensorConversionError",
    "UnsupportedOperatorError",
    "NodeConversionError",
    "NodeValidationError",
    "UnknownSymbolError",
    "__version__",
]

import importlib.metadata

from onnximport._frontend import (
    ResolveFrameworkNodesPass,
    convert_decoded,
    convert_model,
    decode_model,
    load_model,
)
from onnximport._graph import CaptureBinding, GraphBuilder, ScopedGraphBuilder
from onnximport._model import Model
from onnximport._naming import result_names, set_node_names, tensor_names
from onnximport._node import OnnxNode
from onnximport._symbol_cache import SymbolCache
from onnximport.errors import (
    InvalidExternalDataError,
    NodeConversionError,
    NodeValidationError,
    OnnxImportError,
    TensorConversionError,
    UnknownSymbolError,
    UnsupportedOperatorError,
)

try:  # noqa: SIM105
    __version__ = importlib.metadata.version("onnximport")
except importlib.metadata.PackageNotFoundError:
    # package is not installed
    pass
