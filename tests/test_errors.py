# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_oidc

from urllib.parse import parse_qs, urlsplit

import pytest

from coreason_oidc.errors import AuthorizationErrorResponse, ErrorObject, OAuth2Error, OIDCError
from coreason_oidc.exceptions import IllegalStateError, ParseError
from coreason_oidc.identifiers import ResponseMode, State


class TestErrorObject:
    def test_constants(self) -> None:
        assert OAuth2Error.INVALID_REQUEST.code == "invalid_request"
        assert OAuth2Error.INVALID_REQUEST.http_status == 400
        assert OAuth2Error.ACCESS_DENIED.http_status == 403
        assert OAuth2Error.SERVER_ERROR.http_status == 500
        assert OAuth2Error.TEMPORARILY_UNAVAILABLE.http_status == 503
        assert OAuth2Error.INVALID_CLIENT.http_status == 401
        assert OAuth2Error.UNSUPPORTED_GRANT_TYPE.code == "unsupported_grant_type"

    def test_oidc_constants(self) -> None:
        assert OIDCError.LOGIN_REQUIRED.code == "login_required"
        assert OIDCError.INTERACTION_REQUIRED.http_status == 400
        assert OIDCError.REGISTRATION_NOT_SUPPORTED.code == "registration_not_supported"

    def test_equality_by_code_only(self) -> None:
        custom = ErrorObject(code="invalid_request", description="Other", http_status=302)
        assert custom == OAuth2Error.INVALID_REQUEST
        assert hash(custom) == hash(OAuth2Error.INVALID_REQUEST)
        assert OAuth2Error.INVALID_REQUEST != OAuth2Error.INVALID_GRANT

    def test_append_description_returns_copy(self) -> None:
        err = OAuth2Error.INVALID_REQUEST.append_description(': Missing "scope" parameter')
        assert err.description == 'Invalid request: Missing "scope" parameter'
        assert OAuth2Error.INVALID_REQUEST.description == "Invalid request"
        assert err.http_status == 400

    def test_with_methods(self) -> None:
        err = OAuth2Error.INVALID_GRANT.with_description("Expired code").with_http_status(401).with_uri(
            "https://c2id.com/errors/invalid_grant"
        )
        assert err.description == "Expired code"
        assert err.http_status == 401
        assert err.uri == "https://c2id.com/errors/invalid_grant"
        assert OAuth2Error.INVALID_GRANT.uri is None

    def test_to_parameters(self) -> None:
        assert OAuth2Error.ACCESS_DENIED.with_uri("https://c2id.com/e").to_parameters() == {
            "error": "access_denied",
            "error_description": "Access denied by resource owner or authorization server",
            "error_uri": "https://c2id.com/e",
        }
        assert ErrorObject(code="x").to_json_object() == {"error": "x"}

    def test_parse(self) -> None:
        err = ErrorObject.parse({"error": "invalid_scope", "error_description": "Bad scope"}, http_status=400)
        assert err == OAuth2Error.INVALID_SCOPE
        assert err.description == "Bad scope"
        assert err.http_status == 400
        assert err.uri is None

    def test_parse_missing_error(self) -> None:
        with pytest.raises(ParseError):
            ErrorObject.parse({"error_description": "No code"})

    def test_str(self) -> None:
        assert str(OAuth2Error.INVALID_CLIENT) == "invalid_client"


class TestAuthorizationErrorResponse:
    def test_to_uri_query(self) -> None:
        response = AuthorizationErrorResponse(
            redirect_uri="https://client.example.org/cb",
            error=OAuth2Error.ACCESS_DENIED,
            state=State("xyz"),
        )
        parts = urlsplit(response.to_uri())
        assert parts.fragment == ""
        params = parse_qs(parts.query)
        assert params["error"] == ["access_denied"]
        assert params["state"] == ["xyz"]

    def test_to_uri_fragment_keeps_existing_query(self) -> None:
        response = AuthorizationErrorResponse(
            redirect_uri="https://client.example.org/cb?app=1",
            error=OIDCError.LOGIN_REQUIRED,
            response_mode=ResponseMode.FRAGMENT,
        )
        parts = urlsplit(response.to_uri())
        assert parts.query == "app=1"
        assert parse_qs(parts.fragment)["error"] == ["login_required"]

    def test_to_uri_appends_to_existing_query(self) -> None:
        response = AuthorizationErrorResponse(
            redirect_uri="https://client.example.org/cb?app=1",
            error=OAuth2Error.SERVER_ERROR,
        )
        params = parse_qs(urlsplit(response.to_uri()).query)
        assert params["app"] == ["1"]
        assert params["error"] == ["server_error"]

    def test_form_post_has_no_uri(self) -> None:
        response = AuthorizationErrorResponse(
            redirect_uri="https://client.example.org/cb",
            error=OAuth2Error.ACCESS_DENIED,
            response_mode=ResponseMode.FORM_POST,
        )
        with pytest.raises(IllegalStateError):
            response.to_uri()
        assert response.to_parameters()["error"] == "access_denied"

    def test_from_parse_error(self) -> None:
        err = ParseError(
            "Bad",
            OAuth2Error.INVALID_REQUEST,
            response_mode=ResponseMode.FRAGMENT,
            redirect_uri="https://client.example.org/cb",
            state=State("s"),
        )
        response = AuthorizationErrorResponse.from_parse_error(err)
        assert response.response_mode == ResponseMode.FRAGMENT
        assert response.to_parameters()["state"] == "s"
