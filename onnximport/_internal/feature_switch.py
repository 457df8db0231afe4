# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.
"""Switches to determine if the corresponding feature of onnximport is enabled or not."""

import os


def strict_initializers() -> bool:
    """Whether an initializer that cannot be materialized aborts the import.

    By default such initializers are replaced with a zero scalar and a warning is logged.
    """
    return os.getenv("ONNXIMPORT_STRICT_INITIALIZERS", "0") not in ("", "0")
