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
Claims resolution: the claims an ID token must carry for a given response type,
and strict access to the claims requested through the `claims` request parameter.
"""

from collections.abc import Mapping
from typing import Any

from authlib.common.encoding import json_dumps, json_loads
from pydantic import BaseModel, ConfigDict, Field

from coreason_oidc.exceptions import MalformedClaimsRequestError
from coreason_oidc.identifiers import ClaimRequirement, ResponseType, Subject
from coreason_oidc.utils.frozen import FrozenJSONObject, thaw

BASELINE_ID_TOKEN_CLAIMS = frozenset({"iss", "sub", "aud", "exp", "iat"})

USERINFO_SECTION = "userinfo"
ID_TOKEN_SECTION = "id_token"


def resolve_required_claims(response_type: ResponseType) -> frozenset[str]:
    """
    Resolves the claims an ID token must include for the given response type.

    The subject is always the `sub` claim; the legacy `user_id` name is not recognised.

    Args:
        response_type: The response type of the authentication request.

    Returns:
        frozenset[str]: The names of the required claims.
    """
    claims = set(BASELINE_ID_TOKEN_CLAIMS)

    if response_type.implies_implicit_flow():
        claims.add("nonce")
        if ResponseType.TOKEN in response_type:
            claims.add("at_hash")
        if ResponseType.CODE in response_type:
            claims.add("c_hash")

    return frozenset(claims)


class RequestedClaim(BaseModel):
    """
    A single claim as requested in a claims request document.

    Attributes:
        name (str): The claim name.
        requirement (ClaimRequirement): Whether the claim is essential or voluntary.
        value (str | None): The specific value requested, if any.
        values (tuple[str, ...]): The acceptable values requested, if any.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    requirement: ClaimRequirement = ClaimRequirement.VOLUNTARY
    value: str | None = None
    values: tuple[str, ...] = ()


class ClaimsRequest(BaseModel):
    """
    The claims request document passed in the `claims` parameter.

    Only the structure is checked on parse: a JSON object whose `userinfo` and
    `id_token` members are objects, with each entry an object or null. The
    entry members are checked when they are resolved. Unknown top-level members
    are kept in `extensions`.
    """

    model_config = ConfigDict(frozen=True)

    userinfo: FrozenJSONObject = Field(default_factory=dict, validate_default=True)
    id_token: FrozenJSONObject = Field(default_factory=dict, validate_default=True)
    extensions: FrozenJSONObject = Field(default_factory=dict, validate_default=True)

    @classmethod
    def parse(cls, document: str | Mapping[str, Any]) -> "ClaimsRequest":
        """
        Parses a claims request from its JSON text or decoded JSON object.

        Raises:
            MalformedClaimsRequestError: If the document, a section or an entry is not a JSON object.
        """
        if isinstance(document, str):
            try:
                document = json_loads(document)
            except ValueError as e:
                raise MalformedClaimsRequestError(f"Invalid claims request JSON: {e}") from e

        if not isinstance(document, Mapping):
            raise MalformedClaimsRequestError("The claims request must be a JSON object")

        sections: dict[str, dict[str, Any]] = {}
        for section in (USERINFO_SECTION, ID_TOKEN_SECTION):
            value = document.get(section)
            if value is None:
                sections[section] = {}
            elif isinstance(value, Mapping):
                for name, entry in value.items():
                    if entry is not None and not isinstance(entry, Mapping):
                        raise MalformedClaimsRequestError(f'Unexpected "{name}" type, must be a JSON object')
                sections[section] = dict(value)
            else:
                raise MalformedClaimsRequestError(f'Unexpected "{section}" type, must be a JSON object')

        extensions = {k: v for k, v in document.items() if k not in (USERINFO_SECTION, ID_TOKEN_SECTION)}
        return cls(userinfo=sections[USERINFO_SECTION], id_token=sections[ID_TOKEN_SECTION], extensions=extensions)

    def to_json_object(self) -> dict[str, Any]:
        obj: dict[str, Any] = thaw(self.extensions)
        if self.userinfo:
            obj[USERINFO_SECTION] = thaw(self.userinfo)
        if self.id_token:
            obj[ID_TOKEN_SECTION] = thaw(self.id_token)
        return obj

    def to_json(self) -> str:
        return json_dumps(self.to_json_object())

    def add_id_token_claim(
        self,
        name: str,
        requirement: ClaimRequirement = ClaimRequirement.VOLUNTARY,
        value: str | None = None,
        values: list[str] | None = None,
    ) -> "ClaimsRequest":
        """Returns a copy with the claim added to the `id_token` section."""
        section = dict(self.id_token)
        section[name] = _entry(requirement, value, values)
        return ClaimsRequest(userinfo=self.userinfo, id_token=section, extensions=self.extensions)

    def add_userinfo_claim(
        self,
        name: str,
        requirement: ClaimRequirement = ClaimRequirement.VOLUNTARY,
        value: str | None = None,
        values: list[str] | None = None,
    ) -> "ClaimsRequest":
        """Returns a copy with the claim added to the `userinfo` section."""
        section = dict(self.userinfo)
        section[name] = _entry(requirement, value, values)
        return ClaimsRequest(userinfo=section, id_token=self.id_token, extensions=self.extensions)

    def id_token_claim_names(self, include_voluntary: bool = True) -> set[str]:
        return _claim_names(self.id_token, include_voluntary)

    def userinfo_claim_names(self, include_voluntary: bool = True) -> set[str]:
        return _claim_names(self.userinfo, include_voluntary)


def _entry(requirement: ClaimRequirement, value: str | None, values: list[str] | None) -> dict[str, Any] | None:
    entry: dict[str, Any] = {}
    if requirement == ClaimRequirement.ESSENTIAL:
        entry["essential"] = True
    if value is not None:
        entry["value"] = value
    if values:
        entry["values"] = list(values)
    return entry or None


def _claim_names(section: Mapping[str, Any], include_voluntary: bool) -> set[str]:
    if include_voluntary:
        return set(section)
    return {name for name, entry in section.items() if isinstance(entry, Mapping) and entry.get("essential") is True}


def resolve_requested_claim(
    document: ClaimsRequest | Mapping[str, Any] | None,
    name: str,
    section: str = ID_TOKEN_SECTION,
) -> RequestedClaim | None:
    """
    Resolves a single requested claim from a claims request document.

    A claim that is absent yields None. A claim that is present but has the
    wrong shape is an error and never degrades to "not requested".

    Args:
        document: The claims request, as a `ClaimsRequest` or the decoded JSON object.
        name: The claim name, e.g. `sub` or `acr`.
        section: The section to look in, `id_token` (default) or `userinfo`.

    Returns:
        RequestedClaim | None: The requested claim, or None if absent.

    Raises:
        MalformedClaimsRequestError: If the document, section or claim entry is malformed.
    """
    if document is None:
        return None
    if isinstance(document, ClaimsRequest):
        document = document.to_json_object()
    if not isinstance(document, Mapping):
        raise MalformedClaimsRequestError("The claims request must be a JSON object")

    claims = document.get(section)
    if claims is None:
        return None
    if not isinstance(claims, Mapping):
        raise MalformedClaimsRequestError(f'Unexpected "{section}" type, must be a JSON object')

    if name not in claims:
        return None

    entry = claims[name]
    if entry is None:
        # Requested in the default manner, with no constraints
        return RequestedClaim(name=name)
    if not isinstance(entry, Mapping):
        raise MalformedClaimsRequestError(f'Unexpected "{name}" type, must be a JSON object')

    essential = entry.get("essential")
    if essential is not None and not isinstance(essential, bool):
        raise MalformedClaimsRequestError(f'Unexpected "{name}" essential type, must be a JSON boolean')

    value = entry.get("value")
    if value is not None and not isinstance(value, str):
        raise MalformedClaimsRequestError(f'Unexpected "{name}" value type, must be a JSON string')

    values = entry.get("values")
    if values is not None:
        if not isinstance(values, list):
            raise MalformedClaimsRequestError(f'Unexpected "{name}" values type, must be a JSON array')
        for item in values:
            if not isinstance(item, str):
                raise MalformedClaimsRequestError(f'Unexpected "{name}" value, must be a JSON string')

    return RequestedClaim(
        name=name,
        requirement=ClaimRequirement.ESSENTIAL if essential else ClaimRequirement.VOLUNTARY,
        value=value,
        values=tuple(values or ()),
    )


def resolve_requested_acr_values(document: ClaimsRequest | Mapping[str, Any] | None) -> RequestedClaim | None:
    """Returns the requested `acr` values from the `id_token` section, or None if none were requested."""
    claim = resolve_requested_claim(document, "acr")
    if claim is None or not claim.values:
        return None
    return claim


def resolve_requested_subject(document: ClaimsRequest | Mapping[str, Any] | None) -> Subject | None:
    """Returns the specific subject requested in the `id_token` section, or None."""
    claim = resolve_requested_claim(document, "sub")
    if claim is None or claim.value is None:
        return None
    return Subject(claim.value)
