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
Protocol error objects and the standard OAuth 2.0 / OpenID Connect error constants.
"""

from typing import Any, ClassVar
from urllib.parse import urlencode, urlsplit, urlunsplit

from pydantic import BaseModel, ConfigDict, Field

from coreason_oidc.exceptions import IllegalStateError, ParseError
from coreason_oidc.identifiers import KnownResponseMode, ResponseMode, State


class ErrorObject(BaseModel):
    """
    An OAuth 2.0 error: code, description, HTTP status and optional URI.

    Instances are immutable. Two error objects are equal when their codes are
    equal; the HTTP status and description are metadata, not identity.

    Attributes:
        code (str): The error code, e.g. `invalid_request`.
        description (str | None): Human readable description.
        http_status (int): HTTP status for direct (non-redirect) delivery.
        uri (str | None): URI of a page describing the error.
    """

    model_config = ConfigDict(frozen=True)

    code: str = Field(..., min_length=1)
    description: str | None = None
    http_status: int = 0
    uri: str | None = None

    def append_description(self, text: str) -> "ErrorObject":
        """Returns a copy with `text` appended to the description."""
        return self.model_copy(update={"description": (self.description or "") + text})

    def with_description(self, description: str | None) -> "ErrorObject":
        return self.model_copy(update={"description": description})

    def with_http_status(self, http_status: int) -> "ErrorObject":
        return self.model_copy(update={"http_status": http_status})

    def with_uri(self, uri: str | None) -> "ErrorObject":
        return self.model_copy(update={"uri": uri})

    def to_parameters(self) -> dict[str, str]:
        """Returns the error as `error`, `error_description` and `error_uri` parameters."""
        params = {"error": self.code}
        if self.description:
            params["error_description"] = self.description
        if self.uri:
            params["error_uri"] = self.uri
        return params

    def to_json_object(self) -> dict[str, Any]:
        return dict(self.to_parameters())

    @classmethod
    def parse(cls, params: dict[str, Any], http_status: int = 0) -> "ErrorObject":
        """
        Parses an error object from response parameters.

        Raises:
            ParseError: If the `error` parameter is missing.
        """
        code = params.get("error")
        if not code:
            raise ParseError('Missing "error" parameter')
        return cls(
            code=code,
            description=params.get("error_description"),
            http_status=http_status,
            uri=params.get("error_uri"),
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ErrorObject):
            return NotImplemented
        return self.code == other.code

    def __hash__(self) -> int:
        return hash(self.code)

    def __str__(self) -> str:
        return self.code


class OAuth2Error:
    """Standard OAuth 2.0 errors (RFC 6749, sections 4.1.2.1 and 5.2)."""

    INVALID_REQUEST: ClassVar[ErrorObject] = ErrorObject(
        code="invalid_request", description="Invalid request", http_status=400
    )
    UNAUTHORIZED_CLIENT: ClassVar[ErrorObject] = ErrorObject(
        code="unauthorized_client", description="Unauthorized client", http_status=400
    )
    ACCESS_DENIED: ClassVar[ErrorObject] = ErrorObject(
        code="access_denied",
        description="Access denied by resource owner or authorization server",
        http_status=403,
    )
    UNSUPPORTED_RESPONSE_TYPE: ClassVar[ErrorObject] = ErrorObject(
        code="unsupported_response_type", description="Unsupported response type", http_status=400
    )
    INVALID_SCOPE: ClassVar[ErrorObject] = ErrorObject(
        code="invalid_scope", description="Invalid, unknown or malformed scope", http_status=400
    )
    SERVER_ERROR: ClassVar[ErrorObject] = ErrorObject(
        code="server_error", description="Unexpected server error", http_status=500
    )
    TEMPORARILY_UNAVAILABLE: ClassVar[ErrorObject] = ErrorObject(
        code="temporarily_unavailable",
        description="The authorization server is temporarily unavailable",
        http_status=503,
    )
    INVALID_CLIENT: ClassVar[ErrorObject] = ErrorObject(
        code="invalid_client", description="Client authentication failed", http_status=401
    )
    INVALID_GRANT: ClassVar[ErrorObject] = ErrorObject(
        code="invalid_grant", description="Invalid grant", http_status=400
    )
    UNSUPPORTED_GRANT_TYPE: ClassVar[ErrorObject] = ErrorObject(
        code="unsupported_grant_type", description="Unsupported grant type", http_status=400
    )


class OIDCError:
    """OpenID Connect authentication errors (OpenID Connect Core 1.0, section 3.1.2.6)."""

    INTERACTION_REQUIRED: ClassVar[ErrorObject] = ErrorObject(
        code="interaction_required", description="User interaction required", http_status=400
    )
    LOGIN_REQUIRED: ClassVar[ErrorObject] = ErrorObject(
        code="login_required", description="Login required", http_status=400
    )
    ACCOUNT_SELECTION_REQUIRED: ClassVar[ErrorObject] = ErrorObject(
        code="account_selection_required", description="Session selection required", http_status=400
    )
    CONSENT_REQUIRED: ClassVar[ErrorObject] = ErrorObject(
        code="consent_required", description="Consent required", http_status=400
    )
    INVALID_REQUEST_URI: ClassVar[ErrorObject] = ErrorObject(
        code="invalid_request_uri", description="Invalid request URI", http_status=400
    )
    INVALID_REQUEST_OBJECT: ClassVar[ErrorObject] = ErrorObject(
        code="invalid_request_object", description="Invalid request JWT", http_status=400
    )
    REQUEST_NOT_SUPPORTED: ClassVar[ErrorObject] = ErrorObject(
        code="request_not_supported", description="Request parameter not supported", http_status=400
    )
    REQUEST_URI_NOT_SUPPORTED: ClassVar[ErrorObject] = ErrorObject(
        code="request_uri_not_supported", description="Request URI parameter not supported", http_status=400
    )
    REGISTRATION_NOT_SUPPORTED: ClassVar[ErrorObject] = ErrorObject(
        code="registration_not_supported", description="Registration parameter not supported", http_status=400
    )


class AuthorizationErrorResponse(BaseModel):
    """
    An error delivered back to the client through its redirection URI.

    The HTTP status carried by the error object is ignored: the error reaches
    the client by redirection, not as a direct HTTP response.
    """

    model_config = ConfigDict(frozen=True)

    redirect_uri: str
    error: ErrorObject
    state: State | None = None
    response_mode: ResponseMode = ResponseMode.QUERY

    @classmethod
    def from_parse_error(cls, e: ParseError) -> "AuthorizationErrorResponse":
        """
        Builds the error response for a failed authorization request parse.

        Raises:
            IllegalStateError: If the failure carries no redirection URI or error object,
                in which case the error must be shown to the user instead.
        """
        if not e.redirect_uri or e.error_object is None:
            raise IllegalStateError("The parse error carries no redirection URI or error object")
        return cls(
            redirect_uri=e.redirect_uri,
            error=e.error_object,
            state=e.state,
            response_mode=e.response_mode or ResponseMode.QUERY,
        )

    def to_parameters(self) -> dict[str, str]:
        params = self.error.to_parameters()
        if self.state is not None:
            params["state"] = self.state.value
        return params

    def to_uri(self) -> str:
        """
        Returns the redirection URI with the error parameters in the query or fragment.

        Raises:
            IllegalStateError: For the `form_post` response mode, which cannot be expressed as a URI.
        """
        mode = self.response_mode.known
        if mode == KnownResponseMode.FORM_POST:
            raise IllegalStateError("The form_post response mode cannot be encoded as a redirection URI")

        encoded = urlencode(self.to_parameters())
        scheme, netloc, path, query, fragment = urlsplit(self.redirect_uri)
        if mode == KnownResponseMode.FRAGMENT:
            fragment = f"{fragment}&{encoded}" if fragment else encoded
        else:
            query = f"{query}&{encoded}" if query else encoded
        return urlunsplit((scheme, netloc, path, query, fragment))
