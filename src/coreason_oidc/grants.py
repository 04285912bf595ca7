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
Grant types and the authorization grants presented at the token endpoint.
"""

from enum import StrEnum
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict

from coreason_oidc.errors import OAuth2Error
from coreason_oidc.exceptions import MissingParameterError, ParseError, UnsupportedGrantTypeError


class GrantType(StrEnum):
    AUTHORIZATION_CODE = "authorization_code"
    REFRESH_TOKEN = "refresh_token"
    PASSWORD = "password"
    CLIENT_CREDENTIALS = "client_credentials"
    SAML2_BEARER = "urn:ietf:params:oauth:grant-type:saml2-bearer"
    JWT_BEARER = "urn:ietf:params:oauth:grant-type:jwt-bearer"
    DEVICE_CODE = "urn:ietf:params:oauth:grant-type:device_code"
    TOKEN_EXCHANGE = "urn:ietf:params:oauth:grant-type:token-exchange"

    @classmethod
    def parse(cls, s: str | None) -> "GrantType":
        """
        Parses a grant type from its canonical string.

        Raises:
            MissingParameterError: If the string is null or blank.
            UnsupportedGrantTypeError: If the grant type is not recognised.
        """
        if s is None or not s.strip():
            raise MissingParameterError("Couldn't parse grant type: Null or empty string")
        try:
            return cls(s)
        except ValueError as e:
            raise UnsupportedGrantTypeError(f"Couldn't parse grant type: Unexpected grant type: {s}") from e

    @property
    def requires_client_authentication(self) -> bool:
        """Grants that are only meaningful for confidential clients."""
        return self == GrantType.CLIENT_CREDENTIALS

    @property
    def requires_client_id(self) -> bool:
        """Grants bound to a client that must identify itself when public."""
        return self in (GrantType.AUTHORIZATION_CODE, GrantType.DEVICE_CODE)


class AuthorizationGrant(BaseModel):
    """
    Base class for authorization grants.

    Subclasses declare their `GRANT_TYPE` and the parameters they add to a
    token request.
    """

    model_config = ConfigDict(frozen=True)

    GRANT_TYPE: ClassVar[GrantType]

    @property
    def grant_type(self) -> GrantType:
        return self.GRANT_TYPE

    def to_parameters(self) -> dict[str, str]:
        params = {"grant_type": self.GRANT_TYPE.value}
        for name, value in self.model_dump(exclude_none=True).items():
            params[name] = str(value)
        return params

    @classmethod
    def parse(cls, params: dict[str, Any]) -> "AuthorizationGrant":
        """
        Parses a grant from token request parameters.

        When called on the base class the grant is dispatched on `grant_type`.

        Raises:
            ParseError: If `grant_type` is missing or unsupported, or a required
                grant parameter is missing.
        """
        raw = params.get("grant_type")
        try:
            grant_type = GrantType.parse(raw)
        except MissingParameterError as e:
            msg = 'Missing "grant_type" parameter'
            raise ParseError(msg, OAuth2Error.INVALID_REQUEST.append_description(f": {msg}")) from e
        except UnsupportedGrantTypeError as e:
            msg = f"Unsupported grant type: {raw}"
            raise ParseError(msg, OAuth2Error.UNSUPPORTED_GRANT_TYPE.append_description(f": {raw}")) from e

        grant_cls = _GRANT_CLASSES.get(grant_type)
        if grant_cls is None:
            msg = f"Unsupported grant type: {raw}"
            raise ParseError(msg, OAuth2Error.UNSUPPORTED_GRANT_TYPE.append_description(f": {raw}"))
        if cls is not AuthorizationGrant and grant_cls is not cls:
            msg = f'The "grant_type" must be {cls.GRANT_TYPE.value}'
            raise ParseError(msg, OAuth2Error.UNSUPPORTED_GRANT_TYPE.append_description(f": {msg}"))

        values: dict[str, Any] = {}
        for name, field in grant_cls.model_fields.items():
            value = params.get(name)
            if field.is_required() and not value:
                msg = f'Missing or empty "{name}" parameter'
                raise ParseError(msg, OAuth2Error.INVALID_REQUEST.append_description(f": {msg}"))
            if value:
                values[name] = value
        return grant_cls(**values)


class AuthorizationCodeGrant(AuthorizationGrant):
    GRANT_TYPE = GrantType.AUTHORIZATION_CODE

    code: str
    redirect_uri: str | None = None
    code_verifier: str | None = None


class RefreshTokenGrant(AuthorizationGrant):
    GRANT_TYPE = GrantType.REFRESH_TOKEN

    refresh_token: str


class ResourceOwnerPasswordCredentialsGrant(AuthorizationGrant):
    GRANT_TYPE = GrantType.PASSWORD

    username: str
    password: str

    def __repr__(self) -> str:
        # The password MUST be redacted
        return f"ResourceOwnerPasswordCredentialsGrant(username={self.username!r}, password='<REDACTED>')"

    def __str__(self) -> str:
        return self.__repr__()


class ClientCredentialsGrant(AuthorizationGrant):
    GRANT_TYPE = GrantType.CLIENT_CREDENTIALS


class SAML2BearerGrant(AuthorizationGrant):
    """SAML 2.0 bearer assertion grant (RFC 7522). The assertion is Base64URL-encoded."""

    GRANT_TYPE = GrantType.SAML2_BEARER

    assertion: str


class JWTBearerGrant(AuthorizationGrant):
    """JWT bearer assertion grant (RFC 7523)."""

    GRANT_TYPE = GrantType.JWT_BEARER

    assertion: str


_GRANT_CLASSES: dict[GrantType, type[AuthorizationGrant]] = {
    grant_cls.GRANT_TYPE: grant_cls
    for grant_cls in (
        AuthorizationCodeGrant,
        RefreshTokenGrant,
        ResourceOwnerPasswordCredentialsGrant,
        ClientCredentialsGrant,
        SAML2BearerGrant,
        JWTBearerGrant,
    )
}
