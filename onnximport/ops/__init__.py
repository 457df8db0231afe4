# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.
"""Operator functions converting ONNX nodes, and the registry that holds them."""

__all__ = [
    "Builder",
    "CAPTURED_INPUTS_KEY",
    "OperatorFunction",
    "OperatorRegistry",
    "ReturnValue",
    "register",
    "registry",
]

from onnximport.ops._registry import (
    OperatorFunction,
    OperatorRegistry,
    ReturnValue,
    register,
    registry,
)
from onnximport.ops._tape import Builder

# Importing the modules registers the default operators
from onnximport.ops import core  # noqa: E402 isort: skip
from onnximport.ops.controlflow import CAPTURED_INPUTS_KEY  # noqa: E402 isort: skip
