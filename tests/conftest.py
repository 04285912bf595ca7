# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_oidc

from typing import Any

import pytest
from authlib.common.encoding import json_dumps, to_unicode, urlsafe_b64encode
from authlib.jose import JsonWebEncryption, JsonWebKey, JsonWebSignature, Key, OctKey
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import Tracer

ISSUER = "https://c2id.com"
CLIENT_ID = "123"
NOW = 1_700_000_000


def make_plain_token(claims: dict[str, Any]) -> str:
    """Builds an unsecured (alg none) JWT."""
    header = urlsafe_b64encode(json_dumps({"alg": "none"}).encode("utf-8"))
    payload = urlsafe_b64encode(json_dumps(claims).encode("utf-8"))
    return f"{to_unicode(header)}.{to_unicode(payload)}."


def make_signed_token(key: Key | bytes, claims: dict[str, Any], alg: str = "RS256", kid: str | None = "s1") -> str:
    """Serializes a compact JWS by hand so the header carries exactly the given kid."""
    header: dict[str, Any] = {"alg": alg}
    if kid is not None:
        header["kid"] = kid
    if isinstance(key, bytes):
        signer = OctKey.import_key(key)
    else:
        # without "use" an encryption key can still sign a fixture token
        params = {k: v for k, v in key.as_dict(is_private=True).items() if k not in ("use", "key_ops")}
        signer = JsonWebKey.import_key(params)
    algorithm = JsonWebSignature.ALGORITHMS_REGISTRY[alg]
    signing_input = b".".join(
        [
            urlsafe_b64encode(json_dumps(header).encode("utf-8")),
            urlsafe_b64encode(json_dumps(claims).encode("utf-8")),
        ]
    )
    signature = algorithm.sign(signing_input, algorithm.prepare_key(signer))
    return to_unicode(signing_input + b"." + urlsafe_b64encode(signature))


def make_nested_token(signing_key: Key, encryption_key: Key, claims: dict[str, Any]) -> str:
    """Signs the claims with RS256, then encrypts the JWS with RSA-OAEP-256 / A128CBC-HS256."""
    signed = make_signed_token(signing_key, claims)
    protected = {"alg": "RSA-OAEP-256", "enc": "A128CBC-HS256", "kid": "e1", "cty": "JWT"}
    return to_unicode(JsonWebEncryption().serialize_compact(protected, signed.encode("ascii"), encryption_key))


def id_token_claims(**overrides: Any) -> dict[str, Any]:
    claims: dict[str, Any] = {
        "iss": ISSUER,
        "sub": "alice",
        "aud": CLIENT_ID,
        "exp": NOW + 300,
        "iat": NOW,
    }
    claims.update(overrides)
    return {k: v for k, v in claims.items() if v is not None}


@pytest.fixture(scope="session")
def signing_key() -> Key:
    return JsonWebKey.generate_key("RSA", 2048, options={"kid": "s1", "use": "sig"}, is_private=True)


@pytest.fixture(scope="session")
def other_signing_key() -> Key:
    return JsonWebKey.generate_key("RSA", 2048, options={"kid": "s1", "use": "sig"}, is_private=True)


@pytest.fixture(scope="session")
def encryption_key() -> Key:
    return JsonWebKey.generate_key("RSA", 2048, options={"kid": "e1", "use": "enc"}, is_private=True)


@pytest.fixture(scope="session")
def other_encryption_key() -> Key:
    return JsonWebKey.generate_key("RSA", 2048, options={"kid": "e1", "use": "enc"}, is_private=True)


@pytest.fixture
def issuer_jwks(signing_key: Key) -> dict[str, Any]:
    """The issuer's public JWK set."""
    return {"keys": [signing_key.as_dict(is_private=False)]}


@pytest.fixture
def telemetry_setup() -> tuple[InMemorySpanExporter, Tracer]:
    """Sets up an OpenTelemetry tracer with an in-memory exporter."""
    exporter = InMemorySpanExporter()
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    return exporter, provider.get_tracer("test_tracer")
