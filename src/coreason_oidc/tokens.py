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
Bearer access tokens (RFC 6750).
"""

import re
from typing import Any

from authlib.common.security import generate_token
from pydantic import BaseModel, ConfigDict, Field

from coreason_oidc.errors import OAuth2Error
from coreason_oidc.exceptions import ParseError
from coreason_oidc.identifiers import Scope

TOKEN_TYPE = "Bearer"

_AUTHORIZATION_HEADER = re.compile(r"^Bearer\s+(\S+)$", re.IGNORECASE)


class BearerAccessToken(BaseModel):
    """
    A bearer access token with optional lifetime and scope.

    Attributes:
        value (str): The token value.
        lifetime (int | None): Lifetime in seconds, the `expires_in` response parameter.
        scope (Scope | None): The granted scope, if it differs from the requested one.
    """

    model_config = ConfigDict(frozen=True)

    value: str = Field(min_length=1)
    lifetime: int | None = Field(default=None, ge=0)
    scope: Scope | None = None

    @classmethod
    def generate(cls, length: int = 32, lifetime: int | None = None, scope: Scope | None = None) -> "BearerAccessToken":
        return cls(value=generate_token(length), lifetime=lifetime, scope=scope)

    def to_authorization_header(self) -> str:
        return f"{TOKEN_TYPE} {self.value}"

    @classmethod
    def parse(cls, header: str | None) -> "BearerAccessToken":
        """
        Parses a token from an `Authorization` header value.

        Raises:
            ParseError: If the header is missing or not of the form `Bearer <token>`.
        """
        if not header:
            raise ParseError("Missing HTTP Authorization header", OAuth2Error.INVALID_REQUEST.with_http_status(401))
        match = _AUTHORIZATION_HEADER.match(header.strip())
        if match is None:
            raise ParseError(
                "Invalid HTTP Authorization header value",
                OAuth2Error.INVALID_REQUEST.with_description("Invalid HTTP Authorization header value"),
            )
        return cls(value=match.group(1))

    def to_json_object(self) -> dict[str, Any]:
        """Returns the token response parameters for this token."""
        obj: dict[str, Any] = {"access_token": self.value, "token_type": TOKEN_TYPE}
        if self.lifetime is not None:
            obj["expires_in"] = self.lifetime
        if self.scope is not None:
            obj["scope"] = str(self.scope)
        return obj

    @classmethod
    def parse_json(cls, obj: dict[str, Any]) -> "BearerAccessToken":
        """
        Parses a token from the parameters of a token response.

        Raises:
            ParseError: If `access_token` is missing or `token_type` is not `Bearer`.
        """
        value = obj.get("access_token")
        if not isinstance(value, str) or not value:
            raise ParseError('Missing or invalid "access_token" parameter')
        token_type = obj.get("token_type")
        if not isinstance(token_type, str) or token_type.lower() != TOKEN_TYPE.lower():
            raise ParseError('The "token_type" must be Bearer')

        lifetime = obj.get("expires_in")
        if lifetime is not None:
            try:
                lifetime = int(lifetime)
            except (TypeError, ValueError) as e:
                raise ParseError('Invalid "expires_in" parameter: must be an integer') from e

        scope = obj.get("scope")
        return cls(value=value, lifetime=lifetime, scope=Scope.parse(scope) if scope else None)

    def __repr__(self) -> str:
        # Never leak the token value
        return f"BearerAccessToken(value='<REDACTED>', lifetime={self.lifetime!r}, scope={self.scope!r})"

    def __str__(self) -> str:
        return self.value
