# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.
"""Exceptions raised while importing an ONNX model into the IR."""

from __future__ import annotations

__all__ = [
    "OnnxImportError",
    "InvalidExternalDataError",
    "TensorConversionError",
    "UnsupportedOperatorError",
    "NodeConversionError",
    "NodeValidationError",
    "UnknownSymbolError",
]

from typing import Iterable


class OnnxImportError(RuntimeError):
    """Base class for all errors raised by onnximport."""


class InvalidExternalDataError(OnnxImportError):
    """Raised when the external data of a tensor is malformed.

    Initializers cannot be created from such tensors, so the import is aborted.
    """


class TensorConversionError(OnnxImportError):
    """Raised when a tensor proto cannot be materialized as an IR tensor."""


class UnsupportedOperatorError(OnnxImportError):
    """Raised when operators in the model have no registered conversion."""

    def __init__(self, operators: Iterable[str]) -> None:
        self.operators = tuple(operators)
        super().__init__(
            "The following ONNX operations are not supported: " + ", ".join(self.operators)
        )


class NodeConversionError(OnnxImportError):
    """Raised when an ONNX node fails to convert.

    Attributes:
        domain: Domain of the failing node.
        op_type: Operator type of the failing node.
        node_name: Name of the failing node, empty when the node is anonymous.
    """

    def __init__(self, message: str, *, domain: str, op_type: str, node_name: str) -> None:
        super().__init__(message)
        self.domain = domain
        self.op_type = op_type
        self.node_name = node_name


class NodeValidationError(NodeConversionError):
    """Raised by operator functions when a node is invalid.

    The message already identifies the node, so it is propagated unchanged.
    """


class UnknownSymbolError(OnnxImportError, LookupError):
    """Raised when a name cannot be resolved in any visible scope."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Name '{name}' is not defined in the current scope.")
        self.name = name
