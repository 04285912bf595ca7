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
IDTokenVerifier: decryption, signature verification and claims validation of ID tokens.
"""

import hashlib
import hmac
import time
from collections.abc import Mapping
from typing import Any

from authlib.common.encoding import to_unicode
from authlib.jose import JWTClaims, Key, KeySet
from authlib.jose.errors import ExpiredTokenError, InvalidClaimError, InvalidTokenError, JoseError
from authlib.jose.errors import MissingClaimError as JoseMissingClaimError
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from pydantic import SecretStr

from coreason_oidc.config import CoreasonOIDCConfig
from coreason_oidc.exceptions import (
    AudienceRejectedError,
    BadJWTError,
    ConfigurationError,
    CoreasonOIDCError,
    DecryptionFailedError,
    InvalidClaimsError,
    InvalidSignatureError,
    InvalidValueError,
    IssuedInFutureError,
    IssuerMismatchError,
    MalformedTokenError,
    MissingClaimError,
    NonceMismatchError,
    TokenExpiredError,
)
from coreason_oidc.id_token import IDTokenClaimsSet
from coreason_oidc.identifiers import ClientID, Issuer, Nonce
from coreason_oidc.jose import (
    AuthlibDecrypter,
    AuthlibSignatureVerifier,
    DecrypterFactory,
    EncryptedJWT,
    JOSEHeader,
    JWEDecryptionKeySelector,
    JWEKeySelector,
    JWSKeySelector,
    JWSVerificationKeySelector,
    ParsedJWT,
    SignatureVerifierFactory,
    SignedJWT,
    UnsecuredJWT,
    parse_claims,
    parse_jwt,
)
from coreason_oidc.utils.logger import logger

tracer = trace.get_tracer(__name__)

DEFAULT_MAX_CLOCK_SKEW = 60

NESTED_CONTENT_TYPE = "JWT"


class IDTokenVerifier:
    """
    Verifies ID tokens issued to a client.

    Encrypted tokens are decrypted first; a decrypted payload with content
    type `JWT` is a nested signed token, whose signature is then checked. The
    claims are validated last.

    A verifier configured with neither a JWS nor a JWE key selector accepts
    unsecured (`alg: none`) tokens. That is only suitable for local
    development and testing.

    Attributes:
        expected_issuer (Issuer): The expected `iss` claim.
        client_id (ClientID): The client ID, expected in the `aud` claim.
        jws_key_selector (JWSKeySelector | None): Selects signature verification keys.
        jwe_key_selector (JWEKeySelector | None): Selects decryption keys.
        max_clock_skew (int): Tolerated clock skew in seconds.
    """

    def __init__(
        self,
        expected_issuer: Issuer | str,
        client_id: ClientID | str,
        jws_key_selector: JWSKeySelector | None = None,
        jwe_key_selector: JWEKeySelector | None = None,
        max_clock_skew: int = DEFAULT_MAX_CLOCK_SKEW,
        pii_salt: SecretStr | None = None,
        verifier_factory: SignatureVerifierFactory = AuthlibSignatureVerifier,
        decrypter_factory: DecrypterFactory = AuthlibDecrypter,
    ) -> None:
        """
        Initialize the IDTokenVerifier.

        Args:
            expected_issuer: The expected issuer.
            client_id: The client ID the tokens are issued to.
            jws_key_selector: Key selector for signed tokens. None means signed tokens are not expected.
            jwe_key_selector: Key selector for encrypted tokens. None means encrypted tokens are not expected.
            max_clock_skew: Tolerated clock skew in seconds. Defaults to 60.
            pii_salt: Salt for anonymizing the subject in logs and traces.
            verifier_factory: Creates a signature verifier for a selected key.
            decrypter_factory: Creates a decrypter for a selected key.

        Raises:
            InvalidValueError: If the clock skew is negative.
        """
        if max_clock_skew < 0:
            raise InvalidValueError("The maximum clock skew must not be negative")
        self.expected_issuer = expected_issuer if isinstance(expected_issuer, Issuer) else Issuer(expected_issuer)
        self.client_id = client_id if isinstance(client_id, ClientID) else ClientID(client_id)
        self.jws_key_selector = jws_key_selector
        self.jwe_key_selector = jwe_key_selector
        self.max_clock_skew = max_clock_skew
        self.pii_salt = pii_salt or SecretStr("coreason-unsafe-default-salt")
        self.verifier_factory = verifier_factory
        self.decrypter_factory = decrypter_factory

    @classmethod
    def from_config(
        cls,
        config: CoreasonOIDCConfig,
        key_set: KeySet | Mapping[str, Any] | list[Key] | None = None,
        client_key_set: KeySet | Mapping[str, Any] | list[Key] | None = None,
        client_secret: str | bytes | None = None,
    ) -> "IDTokenVerifier":
        """
        Builds a verifier from the package configuration.

        Args:
            config: The configuration.
            key_set: The issuer's public JWK set, for RSA / EC / EdDSA signed tokens.
            client_key_set: The client's private JWK set, for encrypted tokens.
            client_secret: The client secret, for HMAC signed tokens.

        Raises:
            ConfigurationError: If the keys needed by the configured algorithms are missing.
        """
        issuer = Issuer(config.issuer)
        client_id = ClientID(config.client_id)
        alg = config.id_token_signing_alg

        jws_key_selector: JWSKeySelector | None = None
        if alg.startswith("HS"):
            if client_secret is None:
                raise ConfigurationError(f"A client secret is required to verify {alg} ID tokens")
            jws_key_selector = JWSVerificationKeySelector.from_client_secret(issuer, alg, client_secret)
        elif key_set is not None:
            jws_key_selector = JWSVerificationKeySelector(issuer, alg, key_set)
        elif not config.unsafe_local_dev:
            raise ConfigurationError(f"The issuer JWK set is required to verify {alg} ID tokens")

        jwe_key_selector: JWEKeySelector | None = None
        if config.id_token_encryption_alg and config.id_token_encryption_enc:
            if client_key_set is None:
                raise ConfigurationError("The client JWK set is required to decrypt ID tokens")
            jwe_key_selector = JWEDecryptionKeySelector(
                client_id, config.id_token_encryption_alg, config.id_token_encryption_enc, client_key_set
            )

        if jws_key_selector is None and jwe_key_selector is None:
            logger.warning("ID token verifier accepts unsecured tokens (unsafe_local_dev)")

        return cls(
            issuer,
            client_id,
            jws_key_selector=jws_key_selector,
            jwe_key_selector=jwe_key_selector,
            max_clock_skew=config.max_clock_skew,
            pii_salt=config.pii_salt,
        )

    def _anonymize(self, value: str) -> str:
        """
        Anonymizes a value using HMAC-SHA256 with the configured salt.
        """
        return hmac.new(
            self.pii_salt.get_secret_value().encode("utf-8"),
            value.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()

    def verify(
        self,
        token: str | ParsedJWT,
        expected_nonce: Nonce | str | None = None,
        now: float | None = None,
    ) -> IDTokenClaimsSet:
        """
        Verifies an ID token.

        Emits an OpenTelemetry span `verify_id_token`.
        Sets attribute `enduser.id` (anonymized) on success.

        Args:
            token: The serialized or parsed ID token.
            expected_nonce: The nonce sent in the authentication request, if any.
            now: The current time in seconds since the epoch. Defaults to the system clock.

        Returns:
            IDTokenClaimsSet: The verified claims.

        Raises:
            MalformedTokenError: If the token cannot be parsed.
            DecryptionFailedError: If the token cannot be decrypted.
            InvalidSignatureError: If the signature is invalid, or the token is not secured as required.
            InvalidClaimsError: If a claim check fails.
            ConfigurationError: If the verifier is not configured for the token protection.
            CoreasonOIDCError: For unexpected errors.
        """
        with tracer.start_as_current_span("verify_id_token") as span:
            try:
                jwt = parse_jwt(token) if isinstance(token, str) else token
                span.set_attribute("jwt.alg", jwt.header.alg)

                claims = self._process(jwt)
                id_token = self._verify_claims(claims, jwt.header, expected_nonce, now)

                user_hash = self._anonymize(id_token.subject.value)
                logger.info(f"ID token verified for subject {user_hash}")

                span.set_attribute("enduser.id", user_hash)
                span.set_status(Status(StatusCode.OK))
                return id_token

            except MalformedTokenError as e:
                logger.warning("Verification failed: Malformed token", exc_info=True)
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise
            except InvalidClaimsError as e:
                logger.warning("Verification failed: Invalid claims", exc_info=True)
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise
            except DecryptionFailedError as e:
                logger.error("Verification failed: Decryption failed", exc_info=True)
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise
            except BadJWTError as e:
                logger.error("Verification failed: Bad JWT", exc_info=True)
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise
            except ConfigurationError as e:
                logger.error("Verification failed: Verifier not configured for token", exc_info=True)
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise
            except CoreasonOIDCError:
                raise
            except Exception as e:
                logger.exception("Unexpected error during ID token verification")
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise CoreasonOIDCError(f"Unexpected error during ID token verification: {e}") from e

    def _process(self, jwt: ParsedJWT) -> dict[str, Any]:
        if isinstance(jwt, EncryptedJWT):
            return self._process_encrypted(jwt)
        if isinstance(jwt, SignedJWT):
            return self._process_signed(jwt)
        if isinstance(jwt, UnsecuredJWT):
            if self.jws_key_selector is not None or self.jwe_key_selector is not None:
                raise InvalidSignatureError("Unsecured (plain) JWTs are rejected")
            return jwt.claims()
        raise MalformedTokenError(f"Unexpected JWT type: {type(jwt).__name__}")

    def _process_encrypted(self, jwt: EncryptedJWT) -> dict[str, Any]:
        if self.jwe_key_selector is None:
            raise ConfigurationError("Encrypted JWT rejected: No JWE key selector is configured")

        keys = self.jwe_key_selector.select_keys(jwt.header)
        if not keys:
            raise DecryptionFailedError(
                "Encrypted JWT rejected: Another algorithm expected, or no matching key(s) found"
            )

        payload: bytes | None = None
        cause: Exception | None = None
        for key in keys:
            try:
                payload = self.decrypter_factory(key).decrypt(
                    jwt.header, jwt.encrypted_key, jwt.iv, jwt.cipher_text, jwt.tag
                )
                break
            except Exception as e:
                # The capability's rejection is reported as is
                cause = e
        if payload is None:
            reason = (str(cause) or type(cause).__name__) if cause else "No key could decrypt the token"
            raise DecryptionFailedError(f"Encrypted JWT rejected: {reason}") from cause

        cty = jwt.header.cty
        if cty is None or cty.upper() != NESTED_CONTENT_TYPE:
            return parse_claims(payload)

        inner = parse_jwt(to_unicode(payload))
        if not isinstance(inner, SignedJWT):
            raise BadJWTError("The payload is not a nested signed JWT")
        return self._process_signed(inner)

    def _process_signed(self, jwt: SignedJWT) -> dict[str, Any]:
        if self.jws_key_selector is None:
            raise ConfigurationError("Signed JWT rejected: No JWS key selector is configured")

        keys = self.jws_key_selector.select_keys(jwt.header)
        if not keys:
            raise InvalidSignatureError("Signed JWT rejected: Another algorithm expected, or no matching key(s) found")

        cause: Exception | None = None
        for key in keys:
            try:
                if self.verifier_factory(key).verify(jwt.header, jwt.signing_input, jwt.signature):
                    return jwt.claims()
            except (JoseError, ValueError) as e:
                cause = e
        if cause is not None:
            raise InvalidSignatureError(f"Signed JWT rejected: {cause}") from cause
        raise InvalidSignatureError("Signed JWT rejected: Invalid signature")

    def _verify_claims(
        self,
        claims: dict[str, Any],
        header: JOSEHeader,
        expected_nonce: Nonce | str | None,
        now: float | None,
    ) -> IDTokenClaimsSet:
        now = int(time.time()) if now is None else now
        skew = self.max_clock_skew

        claims_options: dict[str, dict[str, Any]] = {
            "iss": {"essential": True, "value": self.expected_issuer.value},
            "sub": {"essential": True},
            "aud": {"essential": True, "values": [self.client_id.value]},
            "exp": {"essential": True},
            "iat": {"essential": True},
        }
        if expected_nonce is not None:
            claims_options["nonce"] = {"essential": True, "value": str(expected_nonce)}

        jwt_claims = JWTClaims(claims, header.params, options=claims_options)
        try:
            jwt_claims.validate(now=now, leeway=skew)
        except ExpiredTokenError as e:
            raise TokenExpiredError("Expired JWT") from e
        except InvalidClaimError as e:
            if e.claim_name == "iss":
                raise IssuerMismatchError(f"Unexpected JWT issuer: {claims.get('iss')}") from e
            if e.claim_name == "aud":
                raise AudienceRejectedError(f"Unexpected JWT audience: {claims.get('aud')}") from e
            if e.claim_name == "nonce":
                raise NonceMismatchError(f"Unexpected JWT nonce (nonce) claim: {claims.get('nonce')}") from e
            raise InvalidClaimsError(f'Invalid JWT "{e.claim_name}" claim') from e
        except JoseMissingClaimError as e:
            raise MissingClaimError(f"Missing JWT claim: {e.description}") from e
        except InvalidTokenError as e:
            # Raised for both a future "iat" and a future "nbf"
            if _is_number(claims.get("iat")) and claims["iat"] - skew >= now:
                raise IssuedInFutureError("JWT issue time ahead of current time") from e
            raise InvalidClaimsError(f"Invalid JWT: {e.description}") from e

        # Authlib tolerates an issue time of exactly now + skew
        if claims["iat"] - skew >= now:
            raise IssuedInFutureError("JWT issue time ahead of current time")

        return IDTokenClaimsSet.from_json_object(claims)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)
