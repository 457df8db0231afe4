# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.
"""Registry of the functions that convert ONNX nodes into IR nodes."""

from __future__ import annotations

__all__ = [
    "DEFAULT_DOMAIN",
    "OperatorFunction",
    "OperatorRegistry",
    "ReturnValue",
    "normalize_domain",
    "register",
    "registry",
]

import functools
from typing import TYPE_CHECKING, Callable, Sequence, Union

import onnx_ir as ir

if TYPE_CHECKING:
    from onnximport._node import OnnxNode
    from onnximport.ops._tape import Builder

DEFAULT_DOMAIN = ""
_ONNX_DOMAIN_ALIASES = frozenset(("", "ai.onnx"))

# An operator function takes the node being converted and a Builder that records
# the IR nodes it creates, and returns the IR values for the node's outputs.
# A None output stands for an optional output that is not produced.
ReturnValue = Union[Sequence[Union[ir.Value, None]], ir.Value]
OperatorFunction = Callable[["OnnxNode", "Builder"], ReturnValue]


def normalize_domain(domain: str) -> str:
    """Map the aliases of the default ONNX domain to the empty string."""
    return DEFAULT_DOMAIN if domain in _ONNX_DOMAIN_ALIASES else domain


class OperatorRegistry:
    """A class that maintains a registry of operator functions.

    Functions are registered for a (domain, op_type, since_version) triple. An
    operator set of a domain at a given version contains, for each op_type, the
    function with the greatest ``since_version`` not above that version.
    """

    def __init__(self) -> None:
        self.op_functions: dict[str, dict[str, dict[int, OperatorFunction]]] = {}

    def register(
        self, op_type: str, domain: str = DEFAULT_DOMAIN, since_version: int = 1
    ) -> Callable[[OperatorFunction], OperatorFunction]:
        """Register an operator function for the domain, operator type and version."""

        def decorator(function: OperatorFunction) -> OperatorFunction:
            @functools.wraps(function)
            def wrapped_function(*args, **kwargs):
                return function(*args, **kwargs)

            self.op_functions.setdefault(normalize_domain(domain), {}).setdefault(op_type, {})[
                since_version
            ] = function
            return wrapped_function

        return decorator

    def domains(self) -> list[str]:
        return sorted(self.op_functions)

    def is_registered_domain(self, domain: str) -> bool:
        return bool(self.op_functions.get(normalize_domain(domain)))

    def lookup(
        self, domain: str, op_type: str, version: int | None = None
    ) -> OperatorFunction | None:
        """Return the function for ``op_type`` at ``version``.

        The latest function is returned when ``version`` is None.
        """
        versions = self.op_functions.get(normalize_domain(domain), {}).get(op_type)
        if not versions:
            return None
        candidates = [v for v in versions if version is None or v <= version]
        if not candidates:
            return None
        return versions[max(candidates)]

    def get_operator_set(
        self, domain: str, version: int | None = None
    ) -> dict[str, OperatorFunction]:
        """Return the operator functions of ``domain`` available at ``version``."""
        operator_set = {}
        for op_type in self.op_functions.get(normalize_domain(domain), {}):
            function = self.lookup(domain, op_type, version)
            if function is not None:
                operator_set[op_type] = function
        return operator_set

    def copy(self) -> OperatorRegistry:
        """Return a registry with the same registrations that can be extended independently."""
        new_registry = OperatorRegistry()
        for domain, op_types in self.op_functions.items():
            new_registry.op_functions[domain] = {
                op_type: dict(versions) for op_type, versions in op_types.items()
            }
        return new_registry


registry: OperatorRegistry = OperatorRegistry()

register = registry.register
