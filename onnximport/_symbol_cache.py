# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.
"""Mapping from ONNX tensor names to the IR values that were built for them."""

from __future__ import annotations

from typing import Iterator

import onnx_ir as ir

from onnximport.errors import UnknownSymbolError


class SymbolCache:
    """The values of one scope, keyed by ONNX name.

    Inserting a name that is already bound replaces the previous value. A name
    bound to None is an optional output that was not produced.
    """

    def __init__(self) -> None:
        self._values: dict[str, ir.Value | None] = {}

    def contains(self, name: str) -> bool:
        return name in self._values

    def get(self, name: str) -> ir.Value | None:
        try:
            return self._values[name]
        except KeyError:
            raise UnknownSymbolError(name) from None

    def insert(self, name: str, value: ir.Value | None) -> None:
        self._values[name] = value

    def remove(self, name: str) -> None:
        self._values.pop(name, None)

    def names(self) -> Iterator[str]:
        return iter(self._values)

    def __contains__(self, name: object) -> bool:
        return name in self._values

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({list(self._values)!r})"
