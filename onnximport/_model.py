# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.
"""The ONNX model being imported and the operator sets it can use."""

from __future__ import annotations

__all__ = ["Model"]

import logging
from typing import Mapping

import onnx

from onnximport import ops
from onnximport.errors import UnsupportedOperatorError
from onnximport.ops import _registry

logger = logging.getLogger(__name__)


def operator_identifier(domain: str, op_type: str) -> str:
    """Return ``domain.op_type``, or ``op_type`` for the default domain."""
    domain = _registry.normalize_domain(domain)
    return f"{domain}.{op_type}" if domain else op_type


class Model:
    """A graph proto together with the operator sets available to convert it.

    Operator sets are loaded from the registry for every imported opset. Domains
    that the model does not import can be enabled later with
    :meth:`enable_opset_domain`.

    Attributes:
        graph: The graph proto.
        opset_imports: Imported opset versions keyed by normalized domain.
        registry: The operator registry the operator sets come from.
        base_dir: The directory external data paths are relative to.
    """

    def __init__(
        self,
        graph: onnx.GraphProto,
        opset_imports: Mapping[str, int],
        *,
        registry: _registry.OperatorRegistry | None = None,
        base_dir: str = "",
        ir_version: int | None = None,
        producer_name: str | None = None,
        producer_version: str | None = None,
    ) -> None:
        self.graph = graph
        self.opset_imports = {
            _registry.normalize_domain(domain): version
            for domain, version in opset_imports.items()
        }
        self.registry = registry if registry is not None else ops.registry
        self.base_dir = base_dir
        self.ir_version = ir_version
        self.producer_name = producer_name
        self.producer_version = producer_version
        self._opsets: dict[str, dict[str, _registry.OperatorFunction]] = {}
        for domain, version in self.opset_imports.items():
            self._opsets[domain] = self.registry.get_operator_set(domain, version)
        # Nodes of the default domain can be converted even if the opset is not imported
        if _registry.DEFAULT_DOMAIN not in self._opsets:
            self._opsets[_registry.DEFAULT_DOMAIN] = self.registry.get_operator_set(
                _registry.DEFAULT_DOMAIN
            )

    @classmethod
    def from_proto(
        cls,
        model_proto: onnx.ModelProto,
        *,
        base_dir: str = "",
        registry: _registry.OperatorRegistry | None = None,
    ) -> Model:
        opset_imports = {opset.domain: opset.version for opset in model_proto.opset_import}
        return cls(
            model_proto.graph,
            opset_imports,
            registry=registry,
            base_dir=base_dir,
            ir_version=model_proto.ir_version,
            producer_name=model_proto.producer_name or None,
            producer_version=model_proto.producer_version or None,
        )

    def subgraph_model(self, graph: onnx.GraphProto) -> Model:
        """Return a model for a nested graph, sharing the opsets of this model."""
        model = Model(
            graph,
            self.opset_imports,
            registry=self.registry,
            base_dir=self.base_dir,
            ir_version=self.ir_version,
        )
        for domain, opset in self._opsets.items():
            model._opsets.setdefault(domain, opset)  # pylint: disable=protected-access
        return model

    def is_operator_available(self, node: onnx.NodeProto) -> bool:
        opset = self._opsets.get(_registry.normalize_domain(node.domain))
        return opset is not None and node.op_type in opset

    def enable_opset_domain(self, domain: str) -> None:
        """Load the latest operator set of ``domain`` if it is not loaded yet."""
        domain = _registry.normalize_domain(domain)
        if domain in self._opsets:
            return
        opset = self.registry.get_operator_set(domain)
        if not opset:
            logger.warning(
                "Couldn't enable domain '%s' since it hasn't any registered operators.", domain
            )
            return
        self._opsets[domain] = opset

    def get_operator(self, op_type: str, domain: str) -> _registry.OperatorFunction:
        opset = self._opsets.get(_registry.normalize_domain(domain), {})
        try:
            return opset[op_type]
        except KeyError:
            raise UnsupportedOperatorError([operator_identifier(domain, op_type)]) from None

    def opset_version(self, domain: str) -> int | None:
        return self.opset_imports.get(_registry.normalize_domain(domain))
