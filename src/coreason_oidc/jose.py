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
Compact JOSE object parsing and the signature / decryption capabilities used
by the ID token verifier.

The verifier never performs cryptography itself: it selects candidate keys
through a key selector and hands each one to a verifier or decrypter
capability. The default capabilities are backed by Authlib.
"""

import binascii
from collections.abc import Callable, Mapping
from typing import Any, Protocol

from authlib.common.encoding import json_loads, to_bytes, to_unicode, urlsafe_b64decode, urlsafe_b64encode
from authlib.jose import JsonWebEncryption, JsonWebKey, JsonWebSignature, Key, KeySet, OctKey
from authlib.jose.errors import BadSignatureError
from pydantic import BaseModel, ConfigDict

from coreason_oidc.exceptions import MalformedTokenError
from coreason_oidc.identifiers import ClientID, Issuer

UNSECURED_ALGORITHM = "none"

# JWS algorithm family prefix -> JWK key type
_JWS_KEY_TYPES = {
    "HS": "oct",
    "RS": "RSA",
    "PS": "RSA",
    "ES": "EC",
    "Ed": "OKP",
}


class JOSEHeader(BaseModel):
    """
    A parsed JOSE header together with its Base64URL encoding.

    The encoding is kept because it is part of the signing input and of the
    additional authenticated data of a JWE.
    """

    model_config = ConfigDict(frozen=True)

    params: dict[str, Any]
    encoded: str

    @property
    def alg(self) -> str:
        return str(self.params["alg"])

    @property
    def enc(self) -> str | None:
        return self.params.get("enc")

    @property
    def kid(self) -> str | None:
        return self.params.get("kid")

    @property
    def cty(self) -> str | None:
        return self.params.get("cty")

    @property
    def typ(self) -> str | None:
        return self.params.get("typ")


class UnsecuredJWT(BaseModel):
    """A JWT with algorithm `none`: no signature, no encryption."""

    model_config = ConfigDict(frozen=True)

    header: JOSEHeader
    payload: bytes
    serialized: str

    def claims(self) -> dict[str, Any]:
        return parse_claims(self.payload)


class SignedJWT(BaseModel):
    """A JWS-secured JWT in compact serialization."""

    model_config = ConfigDict(frozen=True)

    header: JOSEHeader
    encoded_payload: str
    payload: bytes
    signature: bytes
    serialized: str

    @property
    def signing_input(self) -> bytes:
        return f"{self.header.encoded}.{self.encoded_payload}".encode("ascii")

    def claims(self) -> dict[str, Any]:
        return parse_claims(self.payload)


class EncryptedJWT(BaseModel):
    """A JWE-secured JWT in compact serialization."""

    model_config = ConfigDict(frozen=True)

    header: JOSEHeader
    encrypted_key: bytes
    iv: bytes
    cipher_text: bytes
    tag: bytes
    serialized: str


ParsedJWT = UnsecuredJWT | SignedJWT | EncryptedJWT


def _b64decode(segment: str, what: str) -> bytes:
    try:
        return urlsafe_b64decode(segment.encode("ascii"))
    except (binascii.Error, ValueError) as e:
        raise MalformedTokenError(f"Invalid {what}: Invalid Base64URL encoding") from e


def _b64encode(data: bytes) -> str:
    return to_unicode(urlsafe_b64encode(data))


def _parse_header(segment: str) -> JOSEHeader:
    raw = _b64decode(segment, "unsecured/JWS/JWE header")
    try:
        params = json_loads(raw)
    except ValueError as e:
        raise MalformedTokenError(f"Invalid unsecured/JWS/JWE header: Invalid JSON: {e}") from e
    if not isinstance(params, dict):
        raise MalformedTokenError("Invalid unsecured/JWS/JWE header: The header must be a JSON object")
    if not params.get("alg"):
        raise MalformedTokenError('Invalid unsecured/JWS/JWE header: Missing "alg" in header JSON object')
    return JOSEHeader(params=params, encoded=segment)


def parse_jwt(s: str) -> ParsedJWT:
    """
    Parses a compact-serialized unsecured, signed or encrypted JWT.

    No signature is verified and nothing is decrypted.

    Args:
        s: The serialized token.

    Returns:
        ParsedJWT: The parsed object, typed by its protection.

    Raises:
        MalformedTokenError: If the token structure or header is invalid.
    """
    s = s.strip()
    parts = s.split(".")

    if len(parts) not in (3, 5):
        raise MalformedTokenError(
            "Invalid serialized unsecured/JWS/JWE object: Unexpected number of Base64URL parts, must be three or five"
        )

    header = _parse_header(parts[0])

    if len(parts) == 5:
        if not header.enc:
            raise MalformedTokenError('Invalid JWE header: Missing "enc" in header JSON object')
        return EncryptedJWT(
            header=header,
            encrypted_key=_b64decode(parts[1], "JWE encrypted key"),
            iv=_b64decode(parts[2], "JWE initialization vector"),
            cipher_text=_b64decode(parts[3], "JWE cipher text"),
            tag=_b64decode(parts[4], "JWE authentication tag"),
            serialized=s,
        )

    payload = _b64decode(parts[1], "JWT payload")

    if header.alg == UNSECURED_ALGORITHM:
        if parts[2]:
            raise MalformedTokenError("Invalid unsecured JWT: The signature part must be empty")
        return UnsecuredJWT(header=header, payload=payload, serialized=s)

    return SignedJWT(
        header=header,
        encoded_payload=parts[1],
        payload=payload,
        signature=_b64decode(parts[2], "JWS signature"),
        serialized=s,
    )


def parse_claims(payload: bytes) -> dict[str, Any]:
    """
    Parses a JWT claims set from its payload.

    Raises:
        MalformedTokenError: If the payload is not a JSON object.
    """
    try:
        claims = json_loads(payload)
    except ValueError as e:
        raise MalformedTokenError(f"Payload of JWS object is not a valid JSON object: {e}") from e
    if not isinstance(claims, dict):
        raise MalformedTokenError("Payload of JWS object is not a valid JSON object")
    return claims


class SignatureVerifier(Protocol):
    """Capability verifying a JWS signature with one key."""

    def verify(self, header: JOSEHeader, signing_input: bytes, signature: bytes) -> bool:
        """Returns True if the signature is valid for the signing input."""
        ...


class Decrypter(Protocol):
    """Capability decrypting a JWE with one key."""

    def decrypt(
        self, header: JOSEHeader, encrypted_key: bytes, iv: bytes, cipher_text: bytes, tag: bytes
    ) -> bytes:
        """
        Returns the plaintext.

        Raises:
            Exception: The underlying cryptographic rejection, verbatim.
        """
        ...


class JWSKeySelector(Protocol):
    """Strategy selecting candidate keys for verifying a JWS."""

    def select_keys(self, header: JOSEHeader) -> list[Key]: ...


class JWEKeySelector(Protocol):
    """Strategy selecting candidate keys for decrypting a JWE."""

    def select_keys(self, header: JOSEHeader) -> list[Key]: ...


SignatureVerifierFactory = Callable[[Key], SignatureVerifier]
DecrypterFactory = Callable[[Key], Decrypter]


def to_key_set(keys: KeySet | Mapping[str, Any] | list[Key] | Key) -> KeySet:
    """Normalizes a JWK set given as a `KeySet`, a JWKS dict, a list of keys or a single key."""
    if isinstance(keys, KeySet):
        return keys
    if isinstance(keys, Key):
        return KeySet([keys])
    if isinstance(keys, list):
        return KeySet(keys)
    return JsonWebKey.import_key_set(dict(keys))


def _matching_keys(key_set: KeySet, header: JOSEHeader, use: str, kty: str | None) -> list[Key]:
    matches = []
    for key in key_set.keys:
        if header.kid is not None and key.kid is not None and key.kid != header.kid:
            continue
        key_use = key.tokens.get("use")
        if key_use is not None and key_use != use:
            continue
        if kty is not None and key.kty != kty:
            continue
        matches.append(key)
    return matches


class JWSVerificationKeySelector:
    """
    Selects verification keys from the issuer's JWK set for one expected JWS algorithm.

    Attributes:
        issuer (Issuer): The issuer whose keys are held.
        algorithm (str): The expected JWS algorithm, e.g. `RS256`.
        key_set (KeySet): The issuer's public keys, or the client secret for HMAC.
    """

    def __init__(self, issuer: Issuer, algorithm: str, key_set: KeySet | Mapping[str, Any] | list[Key]) -> None:
        self.issuer = issuer
        self.algorithm = algorithm
        self.key_set = to_key_set(key_set)

    @classmethod
    def from_client_secret(cls, issuer: Issuer, algorithm: str, client_secret: str | bytes) -> "JWSVerificationKeySelector":
        """Creates a selector for HMAC-protected ID tokens keyed by the client secret."""
        return cls(issuer, algorithm, [OctKey.import_key(to_bytes(client_secret))])

    def select_keys(self, header: JOSEHeader) -> list[Key]:
        if header.alg != self.algorithm:
            return []
        return _matching_keys(self.key_set, header, "sig", _JWS_KEY_TYPES.get(self.algorithm[:2]))


class JWEDecryptionKeySelector:
    """
    Selects the client's decryption keys for one expected JWE algorithm and encryption method.

    Attributes:
        client_id (ClientID): The client whose keys are held.
        algorithm (str): The expected JWE algorithm, e.g. `RSA-OAEP-256`.
        encryption_method (str): The expected encryption method, e.g. `A128CBC-HS256`.
        key_set (KeySet): The client's private keys.
    """

    def __init__(
        self,
        client_id: ClientID,
        algorithm: str,
        encryption_method: str,
        key_set: KeySet | Mapping[str, Any] | list[Key],
    ) -> None:
        self.client_id = client_id
        self.algorithm = algorithm
        self.encryption_method = encryption_method
        self.key_set = to_key_set(key_set)

    def select_keys(self, header: JOSEHeader) -> list[Key]:
        if header.alg != self.algorithm or header.enc != self.encryption_method:
            return []
        return _matching_keys(self.key_set, header, "enc", None)


class AuthlibSignatureVerifier:
    """Verifies JWS signatures with a single key through Authlib."""

    def __init__(self, key: Key) -> None:
        self.key = key

    def verify(self, header: JOSEHeader, signing_input: bytes, signature: bytes) -> bool:
        jws = JsonWebSignature(algorithms=[header.alg])
        compact = signing_input + b"." + urlsafe_b64encode(signature)
        try:
            jws.deserialize_compact(compact, self.key)
        except BadSignatureError:
            return False
        return True


class AuthlibDecrypter:
    """Decrypts compact JWEs with a single key through Authlib."""

    def __init__(self, key: Key) -> None:
        self.key = key

    def decrypt(
        self, header: JOSEHeader, encrypted_key: bytes, iv: bytes, cipher_text: bytes, tag: bytes
    ) -> bytes:
        jwe = JsonWebEncryption()
        compact = ".".join(
            [header.encoded, _b64encode(encrypted_key), _b64encode(iv), _b64encode(cipher_text), _b64encode(tag)]
        )
        data = jwe.deserialize_compact(compact, self.key)
        return to_bytes(data["payload"])
