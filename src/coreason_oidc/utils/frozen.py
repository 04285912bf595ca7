# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_oidc

"""
Read-only containers for JSON values held by the frozen models.

Pydantic's `frozen=True` only blocks attribute assignment; a `dict` field
can still be changed in place. Mapping fields are therefore stored as
`MappingProxyType` views over a private copy, with nested arrays as tuples.
"""

from collections.abc import Mapping
from types import MappingProxyType
from typing import Annotated, Any

from pydantic import AfterValidator


def freeze(value: Any) -> Any:
    """Returns a read-only deep copy: objects become mapping proxies and arrays tuples."""
    if isinstance(value, Mapping):
        return MappingProxyType({k: freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(v) for v in value)
    return value


def thaw(value: Any) -> Any:
    """Returns a plain `dict` / `list` deep copy of a frozen value, for JSON serialization."""
    if isinstance(value, Mapping):
        return {k: thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [thaw(v) for v in value]
    return value


FrozenJSONObject = Annotated[Mapping[str, Any], AfterValidator(freeze)]
FrozenStringMap = Annotated[Mapping[str, str], AfterValidator(freeze)]
