# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.
"""Node construction for operator functions."""

from __future__ import annotations

from typing import Any, Iterable, Sequence

import onnx_ir as ir
from onnx_ir import tape


class Builder(tape.Tape):
    """A tape with attribute-style construction of nodes, such as ``op.Add(a, b)``.

    Keyword arguments become attributes, except for the reserved ones:

    * ``_domain``: domain of the operator, the default ONNX domain if omitted.
    * ``_version``: opset version of the operator.
    * ``_outputs``: number of outputs, or the list of their names.
    * ``_attributes``: ``ir.Attr`` objects copied as-is, e.g. from the ONNX node.

    The nodes created are recorded in ``nodes``, in creation order.
    """

    def __getattr__(self, op_type: str) -> Any:
        if op_type.startswith("__"):
            raise AttributeError(op_type)
        return lambda *args, **kwargs: self._make_node(op_type, args, kwargs)

    def _make_node(
        self, op_type: str, inputs: Sequence[ir.Value | None], kwargs: dict[str, Any]
    ) -> ir.Value | Sequence[ir.Value]:
        domain = kwargs.pop("_domain", "")
        version = kwargs.pop("_version", None)
        outputs = kwargs.pop("_outputs", 1)
        copied: Iterable[ir.Attr] = kwargs.pop("_attributes", ())
        attributes: dict[str, Any] = {attr.name: attr for attr in copied}
        attributes.update(kwargs)

        if isinstance(outputs, int):
            num_outputs = outputs
            names: Sequence[str] = ()
        else:
            num_outputs = len(outputs)
            names = outputs

        if num_outputs == 1:
            value = super().op(
                op_type, inputs=inputs, attributes=attributes, domain=domain, version=version
            )
            if names:
                value.name = names[0]
            return value
        values = super().op_multi_out(
            op_type,
            inputs=inputs,
            attributes=attributes,
            domain=domain,
            version=version,
            num_outputs=num_outputs,
        )
        for value, name in zip(values, names):
            value.name = name
        return values
