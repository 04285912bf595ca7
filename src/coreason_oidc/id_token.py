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
The claims set of a verified OpenID Connect ID token.
"""

from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field

from coreason_oidc.claims import resolve_required_claims
from coreason_oidc.exceptions import InvalidClaimsError, MissingClaimError
from coreason_oidc.identifiers import Audience, Issuer, Nonce, ResponseType, Subject
from coreason_oidc.utils.frozen import FrozenJSONObject, thaw


def _timestamp(claims: dict[str, Any], name: str) -> int | None:
    value = claims.get(name)
    if value is None:
        return None
    # bool is an int subclass and is never a valid NumericDate
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidClaimsError(f'Invalid JWT "{name}" claim: must be a number of seconds since the epoch')
    return int(value)


def _string(claims: dict[str, Any], name: str) -> str | None:
    value = claims.get(name)
    if value is None:
        return None
    if not isinstance(value, str) or not value:
        raise InvalidClaimsError(f'Invalid JWT "{name}" claim: must be a non-empty string')
    return value


def parse_audience(value: Any) -> tuple[Audience, ...]:
    """
    Parses the `aud` claim, which is either a single string or an array of strings.

    Raises:
        InvalidClaimsError: If the claim has another shape.
    """
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list) or not value or not all(isinstance(v, str) and v for v in value):
        raise InvalidClaimsError('Invalid JWT "aud" claim: must be a string or an array of strings')
    return tuple(Audience(v) for v in value)


class IDTokenClaimsSet(BaseModel):
    """
    The claims of an ID token that passed verification.

    Instances are produced by `IDTokenVerifier.verify`; claims received from
    an untrusted source must go through the verifier first.

    Attributes:
        issuer (Issuer): The `iss` claim.
        subject (Subject): The `sub` claim.
        audience (tuple[Audience, ...]): The `aud` claim, one or more values.
        expiration_time (int): The `exp` claim, seconds since the epoch.
        issue_time (int): The `iat` claim, seconds since the epoch.
        nonce (Nonce | None): The `nonce` claim.
        auth_time (int | None): The `auth_time` claim.
        access_token_hash (str | None): The `at_hash` claim.
        code_hash (str | None): The `c_hash` claim.
        custom_claims (Mapping[str, Any]): All other claims, read-only.
    """

    model_config = ConfigDict(frozen=True)

    REGISTERED_CLAIM_NAMES: ClassVar[frozenset[str]] = frozenset(
        {"iss", "sub", "aud", "exp", "iat", "nonce", "auth_time", "at_hash", "c_hash"}
    )

    issuer: Issuer
    subject: Subject
    audience: tuple[Audience, ...] = Field(min_length=1)
    expiration_time: int
    issue_time: int
    nonce: Nonce | None = None
    auth_time: int | None = None
    access_token_hash: str | None = None
    code_hash: str | None = None
    custom_claims: FrozenJSONObject = Field(default_factory=dict, validate_default=True)

    @classmethod
    def from_json_object(cls, claims: dict[str, Any]) -> "IDTokenClaimsSet":
        """
        Builds the claims set from a decoded JWT claims object.

        Raises:
            MissingClaimError: If one of `iss`, `sub`, `aud`, `exp` or `iat` is absent.
            InvalidClaimsError: If a registered claim has the wrong type.
        """
        for name in ("iss", "sub", "aud", "exp", "iat"):
            if claims.get(name) is None:
                raise MissingClaimError(f'Missing JWT "{name}" claim')

        nonce = _string(claims, "nonce")
        return cls(
            issuer=Issuer(_string(claims, "iss")),
            subject=Subject(_string(claims, "sub")),
            audience=parse_audience(claims["aud"]),
            expiration_time=_timestamp(claims, "exp"),
            issue_time=_timestamp(claims, "iat"),
            nonce=Nonce(nonce) if nonce else None,
            auth_time=_timestamp(claims, "auth_time"),
            access_token_hash=_string(claims, "at_hash"),
            code_hash=_string(claims, "c_hash"),
            custom_claims={k: v for k, v in claims.items() if k not in cls.REGISTERED_CLAIM_NAMES},
        )

    def has_audience(self, audience: Audience | str) -> bool:
        return str(audience) in {a.value for a in self.audience}

    def has_required_claims(self, response_type: ResponseType) -> bool:
        """Checks that the claims required for the given response type are present."""
        present = set(self.to_json_object())
        return resolve_required_claims(response_type) <= present

    def to_json_object(self) -> dict[str, Any]:
        obj: dict[str, Any] = thaw(self.custom_claims)
        obj["iss"] = self.issuer.value
        obj["sub"] = self.subject.value
        obj["aud"] = self.audience[0].value if len(self.audience) == 1 else [a.value for a in self.audience]
        obj["exp"] = self.expiration_time
        obj["iat"] = self.issue_time
        if self.nonce is not None:
            obj["nonce"] = self.nonce.value
        if self.auth_time is not None:
            obj["auth_time"] = self.auth_time
        if self.access_token_hash is not None:
            obj["at_hash"] = self.access_token_hash
        if self.code_hash is not None:
            obj["c_hash"] = self.code_hash
        return obj
