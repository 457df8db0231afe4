# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.
"""Entry points importing ONNX models into IR models."""

from __future__ import annotations

__all__ = [
    "ResolveFrameworkNodesPass",
    "convert_decoded",
    "convert_model",
    "decode_model",
    "load_model",
]

import logging
import os
from typing import Union

import onnx
import onnx_ir as ir

from onnximport._graph import ONNX_GRAPH_KEY, GraphBuilder
from onnximport._model import Model
from onnximport.ops._registry import OperatorRegistry

logger = logging.getLogger(__name__)

ModelLike = Union[Model, onnx.ModelProto, str, os.PathLike]

# Used when the model proto does not set its IR version
_DEFAULT_IR_VERSION = 10


def load_model(path: str | os.PathLike, *, registry: OperatorRegistry | None = None) -> Model:
    """Load an ONNX model file.

    External data is not loaded here. It is read relative to the directory of
    the model file when the initializers are created.
    """
    path = os.fspath(path)
    model_proto = onnx.load(path, load_external_data=False)
    return Model.from_proto(
        model_proto, base_dir=os.path.dirname(os.path.abspath(path)), registry=registry
    )


def _as_model(model: ModelLike, registry: OperatorRegistry | None) -> Model:
    if isinstance(model, Model):
        return model
    if isinstance(model, onnx.ModelProto):
        return Model.from_proto(model, registry=registry)
    return load_model(model, registry=registry)


def _ir_model(model: Model, graph: ir.Graph) -> ir.Model:
    return ir.Model(
        graph,
        ir_version=model.ir_version or _DEFAULT_IR_VERSION,
        producer_name=model.producer_name,
        producer_version=model.producer_version,
    )


def convert_model(model: ModelLike, *, registry: OperatorRegistry | None = None) -> ir.Model:
    """Convert an ONNX model into an IR model.

    Args:
        model: A :class:`Model`, a model proto or the path of a model file.
        registry: The operator registry to convert with. Defaults to
            :data:`onnximport.ops.registry`.

    Raises:
        UnsupportedOperatorError: Some operators have no registered conversion.
        NodeConversionError: A node failed to convert.
        UnknownSymbolError: A node refers to a name that is not defined.
    """
    model = _as_model(model, registry)
    logger.debug("Converting graph '%s'.", model.graph.name)
    return _ir_model(model, GraphBuilder(model).convert())


def decode_model(model: ModelLike, *, registry: OperatorRegistry | None = None) -> ir.Model:
    """Import an ONNX model keeping every node as a framework node.

    The operators are checked as with :func:`convert_model`, but no conversion
    runs. Pass the result to :func:`convert_decoded` to convert it.
    """
    model = _as_model(model, registry)
    logger.debug("Decoding graph '%s'.", model.graph.name)
    return _ir_model(model, GraphBuilder(model).decode())


class ResolveFrameworkNodesPass(ir.passes.InPlacePass):
    """Convert the framework nodes of a decoded model, nested graphs included."""

    def call(self, model: ir.Model) -> ir.passes.PassResult:
        builder = model.graph.meta.get(ONNX_GRAPH_KEY)
        if builder is None:
            return ir.passes.PassResult(model, modified=False)
        builder.resolve()
        logger.info("Resolved the framework nodes of graph '%s'.", model.graph.name)
        return ir.passes.PassResult(model, modified=True)


def convert_decoded(model: ir.Model) -> ir.Model:
    """Convert a model returned by :func:`decode_model`, in place."""
    return ResolveFrameworkNodesPass()(model).model
