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
Configuration for the coreason-oidc package.
"""

from pydantic import Field, SecretStr, ValidationInfo, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SUPPORTED_JWS_ALGORITHMS = frozenset(
    {
        "HS256",
        "HS384",
        "HS512",
        "RS256",
        "RS384",
        "RS512",
        "PS256",
        "PS384",
        "PS512",
        "ES256",
        "ES384",
        "ES512",
        "EdDSA",
    }
)


class CoreasonOIDCConfig(BaseSettings):
    """
    Configuration settings for coreason-oidc, read from `COREASON_OIDC_*` environment variables.

    Attributes:
        unsafe_local_dev (bool): Allows plain HTTP issuers and unsecured ID tokens. Local testing only.
        issuer (str): The expected ID token issuer.
        client_id (str): The client ID, expected in the ID token audience.
        max_clock_skew (int): Tolerated clock skew in seconds when checking token times.
        id_token_signing_alg (str): The expected JWS algorithm of ID tokens.
        id_token_encryption_alg (str | None): The expected JWE algorithm, if ID tokens are encrypted.
        id_token_encryption_enc (str | None): The expected JWE encryption method, if ID tokens are encrypted.
        require_redirect_uri (bool): Requires `redirect_uri` in authentication requests even with a `request_uri`.
        pii_salt (SecretStr): Salt for anonymizing PII in logs and traces.
    """

    model_config = SettingsConfigDict(
        env_prefix="COREASON_OIDC_",
        case_sensitive=False,
    )

    unsafe_local_dev: bool = False
    issuer: str
    client_id: str
    max_clock_skew: int = Field(default=60, ge=0)
    id_token_signing_alg: str = "RS256"
    id_token_encryption_alg: str | None = None
    id_token_encryption_enc: str | None = None
    require_redirect_uri: bool = False
    pii_salt: SecretStr = SecretStr("coreason-unsafe-default-salt")

    @field_validator("issuer", mode="after")
    @classmethod
    def validate_https(cls, v: str, info: ValidationInfo) -> str:
        """
        Ensures that the issuer uses HTTPS, unless strictly opted out for local dev.
        """
        if v.startswith("http://") and not info.data.get("unsafe_local_dev", False):
            raise ValueError("HTTPS is required for production. Set 'unsafe_local_dev=True' only for local testing.")
        return v

    @field_validator("client_id")
    @classmethod
    def validate_client_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("The client ID must not be empty")
        return v

    @field_validator("id_token_signing_alg")
    @classmethod
    def validate_signing_alg(cls, v: str) -> str:
        if v not in SUPPORTED_JWS_ALGORITHMS:
            raise ValueError(f"Unsupported ID token signing algorithm: {v}")
        return v

    @model_validator(mode="after")
    def validate_encryption_pair(self) -> "CoreasonOIDCConfig":
        """
        The JWE algorithm and encryption method must be set together.
        """
        if (self.id_token_encryption_alg is None) != (self.id_token_encryption_enc is None):
            raise ValueError("id_token_encryption_alg and id_token_encryption_enc must be set together")
        return self
