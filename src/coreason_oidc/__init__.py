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
OAuth 2.0 / OpenID Connect protocol core: authentication requests, claims resolution and ID token verification.
"""

__version__ = "0.1.0"
__author__ = "Gowtham A Rao"
__email__ = "gowtham.rao@coreason.ai"

from .claims import ClaimsRequest, RequestedClaim, resolve_required_claims, resolve_requested_claim
from .client import ClientAuthenticationMethod, ClientMetadata, OIDCClientMetadata, SubjectType
from .config import CoreasonOIDCConfig
from .errors import AuthorizationErrorResponse, ErrorObject, OAuth2Error, OIDCError
from .exceptions import (
    BadJWTError,
    CoreasonOIDCError,
    IllegalStateError,
    InvalidValueError,
    ParseError,
)
from .grants import AuthorizationGrant, GrantType
from .id_token import IDTokenClaimsSet
from .identifiers import (
    ClientID,
    Nonce,
    ResponseMode,
    ResponseType,
    Scope,
    State,
)
from .request import AuthenticationRequest
from .tokens import BearerAccessToken
from .verifier import IDTokenVerifier

__all__ = [
    "AuthenticationRequest",
    "AuthorizationErrorResponse",
    "AuthorizationGrant",
    "BadJWTError",
    "BearerAccessToken",
    "ClaimsRequest",
    "ClientAuthenticationMethod",
    "ClientID",
    "ClientMetadata",
    "CoreasonOIDCConfig",
    "CoreasonOIDCError",
    "ErrorObject",
    "GrantType",
    "IDTokenClaimsSet",
    "IDTokenVerifier",
    "IllegalStateError",
    "InvalidValueError",
    "Nonce",
    "OAuth2Error",
    "OIDCClientMetadata",
    "OIDCError",
    "ParseError",
    "RequestedClaim",
    "ResponseMode",
    "ResponseType",
    "Scope",
    "State",
    "SubjectType",
    "resolve_required_claims",
    "resolve_requested_claim",
]
