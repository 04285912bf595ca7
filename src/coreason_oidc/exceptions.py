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
Custom exceptions for the coreason-oidc package.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from coreason_oidc.errors import AuthorizationErrorResponse, ErrorObject
    from coreason_oidc.identifiers import ClientID, ResponseMode, State


class CoreasonOIDCError(Exception):
    """Base exception for all coreason-oidc errors."""


class InvalidValueError(CoreasonOIDCError, ValueError):
    """Raised when a value type is constructed from a null, empty or otherwise illegal input."""


class IllegalStateError(CoreasonOIDCError):
    """Raised when a message is constructed with an illegal combination of fields."""


class MissingParameterError(CoreasonOIDCError):
    """Raised when a required parameter is null or empty."""


class UnsupportedGrantTypeError(CoreasonOIDCError):
    """Raised when a grant type string is not one of the supported grant types."""


class MalformedClaimsRequestError(CoreasonOIDCError):
    """
    Raised when a claims request document has an unexpected structure.
    Distinct from the claim simply being absent, which is not an error.
    """


class ParseError(CoreasonOIDCError):
    """
    Raised when a protocol message cannot be parsed from its wire form.

    Carries the error object to report and the response mode that would be
    used to deliver it, together with whatever request context was parsed
    before the failure.

    Attributes:
        error_object (ErrorObject | None): The protocol error to report.
        response_mode (ResponseMode | None): The resolved delivery channel for the error.
        client_id (ClientID | None): The client ID, if parsed before the failure.
        redirect_uri (str | None): The redirection URI, if parsed before the failure.
        state (State | None): The state, if parsed before the failure.
    """

    def __init__(
        self,
        message: str,
        error_object: "ErrorObject | None" = None,
        response_mode: "ResponseMode | None" = None,
        client_id: "ClientID | None" = None,
        redirect_uri: str | None = None,
        state: "State | None" = None,
    ) -> None:
        super().__init__(message)
        self.error_object = error_object
        self.response_mode = response_mode
        self.client_id = client_id
        self.redirect_uri = redirect_uri
        self.state = state

    def to_error_response(self) -> "AuthorizationErrorResponse":
        """
        Returns the error response to redirect back to the client.

        Raises:
            IllegalStateError: If no redirection URI or error object is known.
        """
        from coreason_oidc.errors import AuthorizationErrorResponse

        return AuthorizationErrorResponse.from_parse_error(self)


class MalformedTokenError(CoreasonOIDCError):
    """Raised when a serialized unsecured / JWS / JWE object cannot be parsed."""


class BadJWTError(CoreasonOIDCError):
    """Base exception for ID tokens rejected by the verification pipeline."""


class InvalidSignatureError(BadJWTError):
    """Raised when the signature of a JWS-secured token cannot be verified."""


class DecryptionFailedError(BadJWTError):
    """Raised when a JWE-secured token cannot be decrypted."""


class InvalidClaimsError(BadJWTError):
    """Raised when the claims of a token fail semantic validation."""


class IssuerMismatchError(InvalidClaimsError):
    """Raised when the token issuer does not match the expected issuer."""


class AudienceRejectedError(InvalidClaimsError):
    """Raised when the token audience does not include the client ID."""


class TokenExpiredError(InvalidClaimsError):
    """Raised when the token has expired."""


class IssuedInFutureError(InvalidClaimsError):
    """Raised when the token issue time is ahead of the current time."""


class NonceMismatchError(InvalidClaimsError):
    """Raised when the token nonce does not match the expected nonce."""


class MissingClaimError(InvalidClaimsError):
    """Raised when a claim required in an ID token is absent."""


class ConfigurationError(CoreasonOIDCError):
    """Raised when the verifier is not wired to handle the presented token."""
