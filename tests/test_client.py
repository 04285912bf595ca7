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

from coreason_oidc.client import (
    ApplicationType,
    ClientAuthenticationMethod,
    ClientMetadata,
    OIDCClientMetadata,
    SubjectType,
)
from coreason_oidc.exceptions import IllegalStateError, ParseError
from coreason_oidc.grants import GrantType
from coreason_oidc.identifiers import ResponseType, Scope

REDIRECT_URI = "https://client.example.org/callback"

REGISTRATION: dict[str, Any] = {
    "application_type": "web",
    "redirect_uris": [REDIRECT_URI, "https://client.example.org/callback2"],
    "client_name": "My Example",
    "logo_uri": "https://client.example.org/logo.png",
    "subject_type": "pairwise",
    "sector_identifier_uri": "https://other.example.net/file_of_redirect_uris.json",
    "token_endpoint_auth_method": "client_secret_basic",
    "jwks_uri": "https://client.example.org/my_public_keys.jwks",
    "userinfo_encrypted_response_alg": "RSA1_5",
    "userinfo_encrypted_response_enc": "A128CBC-HS256",
    "contacts": ["ve7jtb@example.org", "mary@example.org"],
    "request_uris": ["https://client.example.org/rf.txt#qpXaRLh_n93TTR9F252ValdatUQvQiJi5BDub2BeznA"],
    "default_max_age": 3600,
    "require_auth_time": True,
    "default_acr_values": ["loa-2", "loa-3"],
    "x-tenant": {"id": "t-1"},
}


class TestEnums:
    def test_authentication_method_values(self) -> None:
        assert ClientAuthenticationMethod.CLIENT_SECRET_BASIC.value == "client_secret_basic"
        assert ClientAuthenticationMethod.CLIENT_SECRET_POST.value == "client_secret_post"
        assert ClientAuthenticationMethod.CLIENT_SECRET_JWT.value == "client_secret_jwt"
        assert ClientAuthenticationMethod.PRIVATE_KEY_JWT.value == "private_key_jwt"
        assert ClientAuthenticationMethod.NONE.value == "none"

    def test_authentication_method_default(self) -> None:
        assert ClientAuthenticationMethod.default() == ClientAuthenticationMethod.CLIENT_SECRET_BASIC

    def test_subject_type_values(self) -> None:
        assert [t.value for t in SubjectType] == ["pairwise", "public"]


class TestClientMetadata:
    def test_parse_keeps_unregistered_fields(self) -> None:
        metadata = ClientMetadata.parse(REGISTRATION)
        assert metadata.redirect_uris == (REDIRECT_URI, "https://client.example.org/callback2")
        assert metadata.token_endpoint_auth_method == ClientAuthenticationMethod.CLIENT_SECRET_BASIC
        assert metadata.contacts == ("ve7jtb@example.org", "mary@example.org")
        # OpenID Connect fields are custom at this level
        assert metadata.custom_fields["subject_type"] == "pairwise"
        assert metadata.custom_fields["x-tenant"] == {"id": "t-1"}
        assert "redirect_uris" not in metadata.custom_fields

    def test_parse_json_text(self) -> None:
        metadata = ClientMetadata.parse(
            '{"redirect_uris":["https://client.example.org/cb"],"scope":"openid email",'
            '"response_types":["code","code id_token"],"grant_types":["authorization_code","refresh_token"]}'
        )
        assert metadata.scope == Scope("openid", "email")
        assert metadata.response_types == (ResponseType("code"), ResponseType("code", "id_token"))
        assert metadata.grant_types == (GrantType.AUTHORIZATION_CODE, GrantType.REFRESH_TOKEN)

    def test_apply_defaults(self) -> None:
        metadata = ClientMetadata(redirect_uris=(REDIRECT_URI,)).apply_defaults()
        assert metadata.response_types == (ResponseType("code"),)
        assert metadata.grant_types == (GrantType.AUTHORIZATION_CODE,)
        assert metadata.token_endpoint_auth_method == ClientAuthenticationMethod.CLIENT_SECRET_BASIC

    def test_apply_defaults_keeps_set_values(self) -> None:
        metadata = ClientMetadata(token_endpoint_auth_method=ClientAuthenticationMethod.NONE).apply_defaults()
        assert metadata.token_endpoint_auth_method == ClientAuthenticationMethod.NONE

    def test_json_round_trip(self) -> None:
        metadata = ClientMetadata.parse(
            {
                "redirect_uris": [REDIRECT_URI],
                "jwks": {"keys": [{"kty": "oct", "k": "c2VjcmV0"}]},
                "software_id": "4NRB1-0XZABZI9E6-5SM3R",
                "x-custom": [1, 2],
            }
        )
        obj = metadata.to_json_object()
        assert obj["jwks"] == {"keys": [{"kty": "oct", "k": "c2VjcmV0"}]}
        assert obj["x-custom"] == [1, 2]
        assert ClientMetadata.parse(metadata.to_json()) == metadata

    @pytest.mark.parametrize(
        "document",
        [
            "not json",
            "[1]",
            {"redirect_uris": REDIRECT_URI},
            {"redirect_uris": [""]},
            {"client_name": 42},
            {"token_endpoint_auth_method": "client_secret_magic"},
            {"grant_types": ["urn:example:unknown"]},
            {"scope": " "},
            {"logo_uri": "logo.png"},
            {"jwks": {"kid": "no-keys"}},
            {"jwks_uri": "https://client.example.org/jwks", "jwks": {"keys": []}},
        ],
    )
    def test_parse_invalid(self, document: Any) -> None:
        with pytest.raises(ParseError) as exc_info:
            ClientMetadata.parse(document)
        assert exc_info.value.error_object is not None
        assert exc_info.value.error_object.code == "invalid_client_metadata"

    @pytest.mark.parametrize("uri", ["/relative/cb", "https://client.example.org/cb#frag"])
    def test_invalid_redirect_uri(self, uri: str) -> None:
        with pytest.raises(ParseError) as exc_info:
            ClientMetadata.parse({"redirect_uris": [uri]})
        assert exc_info.value.error_object is not None
        assert exc_info.value.error_object.code == "invalid_redirect_uri"

    def test_custom_field_collision(self) -> None:
        with pytest.raises(IllegalStateError, match='"scope"'):
            ClientMetadata(custom_fields={"scope": "openid"})

    def test_custom_fields_read_only(self) -> None:
        metadata = ClientMetadata.parse({"x-tenant": {"id": "t-1"}})
        with pytest.raises(TypeError):
            metadata.custom_fields["redirect_uris"] = ["https://evil.example.com"]  # type: ignore[index]
        with pytest.raises(TypeError):
            metadata.custom_fields["x-tenant"]["id"] = "t-2"  # type: ignore[index]
        assert metadata.to_json_object() == {"x-tenant": {"id": "t-1"}}


class TestOIDCClientMetadata:
    def test_parse_peels_oidc_fields(self) -> None:
        metadata = OIDCClientMetadata.parse(REGISTRATION)
        assert metadata.application_type == ApplicationType.WEB
        assert metadata.subject_type == SubjectType.PAIRWISE
        assert metadata.sector_identifier_uri == "https://other.example.net/file_of_redirect_uris.json"
        assert metadata.userinfo_encrypted_response_alg == "RSA1_5"
        assert metadata.userinfo_encrypted_response_enc == "A128CBC-HS256"
        assert metadata.default_max_age == 3600
        assert metadata.require_auth_time is True
        assert metadata.default_acr_values == ("loa-2", "loa-3")
        assert metadata.client_name == "My Example"
        assert dict(metadata.custom_fields) == {"x-tenant": {"id": "t-1"}}

    def test_round_trip(self) -> None:
        metadata = OIDCClientMetadata.parse(REGISTRATION)
        obj = metadata.to_json_object()
        assert obj["subject_type"] == "pairwise"
        assert obj["x-tenant"] == {"id": "t-1"}
        assert OIDCClientMetadata.parse(obj) == metadata

    def test_require_auth_time_always_serialized(self) -> None:
        assert OIDCClientMetadata().to_json_object() == {"require_auth_time": False}

    def test_apply_defaults(self) -> None:
        metadata = OIDCClientMetadata(id_token_encrypted_response_alg="RSA-OAEP-256").apply_defaults()
        assert isinstance(metadata, OIDCClientMetadata)
        assert metadata.id_token_signed_response_alg == "RS256"
        assert metadata.id_token_encrypted_response_enc == "A128CBC-HS256"
        assert metadata.userinfo_encrypted_response_enc is None
        assert metadata.grant_types == (GrantType.AUTHORIZATION_CODE,)

    def test_encryption_method_requires_algorithm(self) -> None:
        with pytest.raises(IllegalStateError, match="id_token_encrypted_response_alg"):
            OIDCClientMetadata(id_token_encrypted_response_enc="A128CBC-HS256")

    def test_sector_identifier_must_be_https(self) -> None:
        with pytest.raises(ParseError):
            OIDCClientMetadata.parse({"sector_identifier_uri": "http://other.example.net/uris.json"})

    @pytest.mark.parametrize(
        "document",
        [
            {"application_type": "desktop"},
            {"subject_type": "anonymous"},
            {"default_max_age": "3600"},
            {"default_max_age": True},
            {"default_max_age": -1},
            {"require_auth_time": "yes"},
            {"default_acr_values": "loa-2"},
            {"request_uris": ["rf.txt"]},
            {"userinfo_encrypted_response_enc": "A128CBC-HS256"},
        ],
    )
    def test_parse_invalid(self, document: dict[str, Any]) -> None:
        with pytest.raises(ParseError):
            OIDCClientMetadata.parse(document)

    def test_oidc_name_is_not_a_custom_field(self) -> None:
        with pytest.raises(IllegalStateError, match='"subject_type"'):
            OIDCClientMetadata(custom_fields={"subject_type": "public"})
