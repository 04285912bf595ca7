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
OpenID Connect authentication request: construction, validation and the
query string / JSON / HTTP codecs.
"""

from collections.abc import Mapping
from typing import Any
from urllib.parse import quote, urlencode, urlsplit, urlunsplit

from authlib.common.encoding import json_dumps
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from coreason_oidc.claims import ClaimsRequest
from coreason_oidc.errors import OAuth2Error
from coreason_oidc.exceptions import (
    IllegalStateError,
    InvalidValueError,
    MalformedClaimsRequestError,
    MalformedTokenError,
    ParseError,
)
from coreason_oidc.http import FORM_URLENCODED, HTTPMethod, HTTPRequest, parse_parameters
from coreason_oidc.identifiers import (
    ClientID,
    CodeChallengeMethod,
    Display,
    Nonce,
    OIDCScopeValue,
    Prompt,
    ResponseMode,
    ResponseType,
    Scope,
    State,
)
from coreason_oidc.jose import parse_jwt
from coreason_oidc.utils.frozen import FrozenStringMap

REGISTERED_PARAMETER_NAMES = (
    "response_type",
    "response_mode",
    "client_id",
    "redirect_uri",
    "scope",
    "state",
    "code_challenge",
    "code_challenge_method",
    "nonce",
    "display",
    "prompt",
    "max_age",
    "ui_locales",
    "claims_locales",
    "id_token_hint",
    "login_hint",
    "acr_values",
    "claims",
    "request_uri",
    "request",
)

_REGISTERED = frozenset(REGISTERED_PARAMETER_NAMES)


def _split(s: str | None) -> tuple[str, ...]:
    return tuple(s.split()) if s else ()


class AuthenticationRequest(BaseModel):
    """
    An OpenID Connect authentication request.

    Construction validates the request as a whole and raises
    `IllegalStateError` for an illegal combination of fields, so that no
    partially valid request can exist.

    Attributes:
        endpoint_uri (str | None): The authorization endpoint. Needed only to dispatch the request.
        response_type (ResponseType): The requested response type.
        scope (Scope): The requested scope. Must contain `openid`.
        client_id (ClientID): The client identifier.
        redirect_uri (str | None): The redirection URI. May be omitted when a request URI is given.
        response_mode (ResponseMode | None): The explicit response mode.
        state (State | None): The state.
        nonce (Nonce | None): The nonce. Required for implicit and hybrid flows.
        display (Display | None): How the authorization server displays its pages.
        prompt (Prompt | None): Whether to prompt for reauthentication / consent.
        max_age (int): Allowable elapsed time in seconds since the last authentication. 0 means unset.
        ui_locales (tuple[str, ...]): Preferred UI languages, as BCP47 tags.
        claims_locales (tuple[str, ...]): Preferred claims languages, as BCP47 tags.
        id_token_hint (str | None): A previously issued ID token, in serialized form.
        login_hint (str | None): Hint about the login identifier.
        acr_values (tuple[str, ...]): Requested Authentication Context Class Reference values.
        claims (ClaimsRequest | None): The individual claims requested.
        request_object (str | None): A request object (JWT) carrying the request parameters.
        request_uri (str | None): A URI referencing a request object.
        code_challenge (str | None): The PKCE code challenge.
        code_challenge_method (CodeChallengeMethod | None): The PKCE code challenge method.
        custom_parameters (Mapping[str, str]): Extension parameters, read-only.
    """

    model_config = ConfigDict(frozen=True)

    endpoint_uri: str | None = None
    response_type: ResponseType
    scope: Scope
    client_id: ClientID
    redirect_uri: str | None = None
    response_mode: ResponseMode | None = None
    state: State | None = None
    nonce: Nonce | None = None
    display: Display | None = None
    prompt: Prompt | None = None
    max_age: int = Field(default=0, ge=0)
    ui_locales: tuple[str, ...] = ()
    claims_locales: tuple[str, ...] = ()
    id_token_hint: str | None = None
    login_hint: str | None = None
    acr_values: tuple[str, ...] = ()
    claims: ClaimsRequest | None = None
    request_object: str | None = None
    request_uri: str | None = None
    code_challenge: str | None = None
    code_challenge_method: CodeChallengeMethod | None = None
    custom_parameters: FrozenStringMap = Field(default_factory=dict, validate_default=True)

    @model_validator(mode="after")
    def check_invariants(self) -> "AuthenticationRequest":
        if self.request_object is not None and self.request_uri is not None:
            raise IllegalStateError("Either a request object or a request URI may be specified, but not both")

        if self.response_type.implies_implicit_flow() and self.nonce is None:
            raise IllegalStateError("Nonce is required in implicit / hybrid protocol flow")

        if OIDCScopeValue.OPENID.value not in self.scope:
            raise IllegalStateError('The scope must include an "openid" value')

        if self.redirect_uri is None and self.request_uri is None:
            raise IllegalStateError("The redirection URI must be specified unless a request URI is given")

        if self.code_challenge_method is not None and self.code_challenge is None:
            raise IllegalStateError("The code challenge method requires a code challenge")

        for name in ("redirect_uri", "id_token_hint", "login_hint", "request_object", "request_uri", "code_challenge"):
            value = getattr(self, name)
            if value is not None and not value.strip():
                raise IllegalStateError(f'The "{name}" value must not be blank')

        for name in ("ui_locales", "claims_locales", "acr_values"):
            for item in getattr(self, name):
                if item.split() != [item]:
                    raise IllegalStateError(f'Invalid "{name}" item: {item!r}')

        for name, value in (("id_token_hint", self.id_token_hint), ("request", self.request_object)):
            if value is not None:
                try:
                    parse_jwt(value)
                except MalformedTokenError as e:
                    raise IllegalStateError(f'Invalid "{name}" value: {e}') from e

        for name in self.custom_parameters:
            if name in _REGISTERED:
                raise IllegalStateError(f'The custom parameter "{name}" collides with a registered parameter')

        return self

    @staticmethod
    def registered_parameter_names() -> frozenset[str]:
        return _REGISTERED

    def implied_response_mode(self) -> ResponseMode:
        """Returns the explicit response mode, or the default one for the response type."""
        return ResponseMode.resolve(self.response_mode, self.response_type)

    def to_parameters(self) -> dict[str, str]:
        """
        Returns the request parameters, registered ones first, then the custom ones.
        """
        params: dict[str, str] = {"response_type": str(self.response_type)}
        if self.response_mode is not None:
            params["response_mode"] = self.response_mode.value
        params["client_id"] = self.client_id.value
        if self.redirect_uri is not None:
            params["redirect_uri"] = self.redirect_uri
        params["scope"] = str(self.scope)
        if self.state is not None:
            params["state"] = self.state.value
        if self.code_challenge is not None:
            params["code_challenge"] = self.code_challenge
            if self.code_challenge_method is not None:
                params["code_challenge_method"] = self.code_challenge_method.value
        if self.nonce is not None:
            params["nonce"] = self.nonce.value
        if self.display is not None:
            params["display"] = self.display.value
        if self.prompt is not None:
            params["prompt"] = str(self.prompt)
        if self.max_age > 0:
            params["max_age"] = str(self.max_age)
        if self.ui_locales:
            params["ui_locales"] = " ".join(self.ui_locales)
        if self.claims_locales:
            params["claims_locales"] = " ".join(self.claims_locales)
        if self.id_token_hint is not None:
            params["id_token_hint"] = self.id_token_hint
        if self.login_hint is not None:
            params["login_hint"] = self.login_hint
        if self.acr_values:
            params["acr_values"] = " ".join(self.acr_values)
        if self.claims is not None:
            params["claims"] = self.claims.to_json()
        if self.request_object is not None:
            params["request"] = self.request_object
        if self.request_uri is not None:
            params["request_uri"] = self.request_uri
        params.update(self.custom_parameters)
        return params

    def to_query_string(self) -> str:
        return urlencode(self.to_parameters(), quote_via=quote)

    def to_uri(self) -> str:
        """
        Returns the endpoint URI with the request in its query string.

        Raises:
            IllegalStateError: If no endpoint URI is set.
        """
        if self.endpoint_uri is None:
            raise IllegalStateError("The endpoint URI is not specified")
        scheme, netloc, path, query, fragment = urlsplit(self.endpoint_uri)
        encoded = self.to_query_string()
        query = f"{query}&{encoded}" if query else encoded
        return urlunsplit((scheme, netloc, path, query, fragment))

    def to_json_object(self) -> dict[str, Any]:
        """
        Returns the request parameters as a JSON object, with `max_age` as a
        number and `claims` as a nested object.
        """
        obj: dict[str, Any] = dict(self.to_parameters())
        if "max_age" in obj:
            obj["max_age"] = self.max_age
        if self.claims is not None:
            obj["claims"] = self.claims.to_json_object()
        return obj

    def to_http_request(self, method: HTTPMethod | str = HTTPMethod.GET) -> HTTPRequest:
        """
        Returns the request as an HTTP GET (parameters in the query string)
        or POST (parameters in a form-encoded body).

        Raises:
            IllegalStateError: If no endpoint URI is set.
        """
        method = HTTPMethod(method)
        if method == HTTPMethod.GET:
            return HTTPRequest(method=method, url=self.to_uri())
        if method != HTTPMethod.POST:
            raise IllegalStateError("The HTTP request method must be GET or POST")
        if self.endpoint_uri is None:
            raise IllegalStateError("The endpoint URI is not specified")
        return HTTPRequest(
            method=method,
            url=self.endpoint_uri,
            headers={"Content-Type": FORM_URLENCODED},
            body=self.to_query_string(),
        )

    @classmethod
    def parse(
        cls,
        params: Mapping[str, Any] | str,
        endpoint_uri: str | None = None,
        *,
        require_redirect_uri: bool = False,
    ) -> "AuthenticationRequest":
        """
        Parses an authentication request from its parameters.

        The response type, response mode and state are read first so that any
        later failure can be reported to the client through the right channel.

        Args:
            params: The request parameters, or a URL-encoded query string.
            endpoint_uri: The authorization endpoint, if known.
            require_redirect_uri: Require `redirect_uri` even when a `request_uri` is given.

        Returns:
            AuthenticationRequest: The parsed request.

        Raises:
            ParseError: If a parameter is missing or invalid. The error carries
                an `invalid_request` error object and the response mode for
                reporting it.
        """
        if isinstance(params, str):
            params = parse_parameters(params)

        values: dict[str, str] = {}
        for name, value in params.items():
            if isinstance(value, (list, tuple)):
                # Last value wins
                value = value[-1] if value else None
            if value is not None:
                values[name] = str(value)

        def get(name: str) -> str | None:
            v = values.get(name)
            return v if v and v.strip() else None

        response_mode = ResponseMode(get("response_mode")) if get("response_mode") else None
        state = State(get("state")) if get("state") else None
        response_type: ResponseType | None = None
        client_id: ClientID | None = None
        redirect_uri: str | None = None

        def error(msg: str) -> ParseError:
            return ParseError(
                msg,
                OAuth2Error.INVALID_REQUEST.append_description(f": {msg}"),
                response_mode=ResponseMode.resolve(response_mode, response_type),
                client_id=client_id,
                redirect_uri=redirect_uri,
                state=state,
            )

        v = get("response_type")
        if v is None:
            raise error('Missing "response_type" parameter')
        response_type = ResponseType.parse(v)

        v = get("client_id")
        if v is None:
            raise error('Missing "client_id" parameter')
        client_id = ClientID(v)

        request_uri = get("request_uri")
        redirect_uri = get("redirect_uri")
        if redirect_uri is None and (request_uri is None or require_redirect_uri):
            raise error('Missing "redirect_uri" parameter')

        v = get("scope")
        if v is None:
            raise error('Missing "scope" parameter')
        scope = Scope.parse(v)
        if OIDCScopeValue.OPENID.value not in scope:
            raise error('The scope must include an "openid" value')

        nonce = Nonce(get("nonce")) if get("nonce") else None
        if nonce is None and response_type.implies_implicit_flow():
            raise error('Missing "nonce" parameter: Required in implicit flow')

        display: Display | None = None
        v = get("display")
        if v is not None:
            try:
                display = Display.parse(v)
            except InvalidValueError as e:
                raise error(f'Invalid "display" parameter: {e}') from e

        prompt: Prompt | None = None
        v = get("prompt")
        if v is not None:
            try:
                prompt = Prompt.parse(v)
            except InvalidValueError as e:
                raise error(f'Invalid "prompt" parameter: {e}') from e

        max_age = 0
        v = get("max_age")
        if v is not None:
            if not (v.isascii() and v.isdigit()):
                raise error(f'Invalid "max_age" parameter: {v}')
            max_age = int(v)

        id_token_hint = get("id_token_hint")
        if id_token_hint is not None:
            try:
                parse_jwt(id_token_hint)
            except MalformedTokenError as e:
                raise error(f'Invalid "id_token_hint" parameter: {e}') from e

        claims: ClaimsRequest | None = None
        v = get("claims")
        if v is not None:
            try:
                claims = ClaimsRequest.parse(v)
            except MalformedClaimsRequestError as e:
                raise error(f'Invalid "claims" parameter: {e}') from e

        request_object = get("request")
        if request_object is not None:
            if request_uri is not None:
                raise error('Must not specify both "request" and "request_uri" parameters')
            try:
                parse_jwt(request_object)
            except MalformedTokenError as e:
                raise error(f'Invalid "request" parameter: {e}') from e

        code_challenge = get("code_challenge")
        code_challenge_method: CodeChallengeMethod | None = None
        v = get("code_challenge_method")
        if v is not None:
            try:
                code_challenge_method = CodeChallengeMethod.parse(v)
            except InvalidValueError as e:
                raise error(f'Invalid "code_challenge_method" parameter: {e}') from e
            if code_challenge is None:
                raise error('Missing "code_challenge" parameter: Required with "code_challenge_method"')

        custom_parameters = {k: v for k, v in values.items() if k not in _REGISTERED}

        try:
            return cls(
                endpoint_uri=endpoint_uri,
                response_type=response_type,
                scope=scope,
                client_id=client_id,
                redirect_uri=redirect_uri,
                response_mode=response_mode,
                state=state,
                nonce=nonce,
                display=display,
                prompt=prompt,
                max_age=max_age,
                ui_locales=_split(get("ui_locales")),
                claims_locales=_split(get("claims_locales")),
                id_token_hint=id_token_hint,
                login_hint=get("login_hint"),
                acr_values=_split(get("acr_values")),
                claims=claims,
                request_object=request_object,
                request_uri=request_uri,
                code_challenge=code_challenge,
                code_challenge_method=code_challenge_method,
                custom_parameters=custom_parameters,
            )
        except (IllegalStateError, InvalidValueError, ValidationError) as e:
            raise error(str(e)) from e

    @classmethod
    def parse_uri(cls, uri: str, *, require_redirect_uri: bool = False) -> "AuthenticationRequest":
        """
        Parses a request from a URI: the query string holds the parameters and
        the rest is taken as the endpoint URI.
        """
        scheme, netloc, path, query, _ = urlsplit(uri)
        endpoint_uri = urlunsplit((scheme, netloc, path, "", "")) or None
        return cls.parse(query, endpoint_uri, require_redirect_uri=require_redirect_uri)

    @classmethod
    def parse_json(
        cls, obj: Mapping[str, Any], endpoint_uri: str | None = None, *, require_redirect_uri: bool = False
    ) -> "AuthenticationRequest":
        """
        Parses a request from its JSON object form, see `to_json_object`.
        """
        params: dict[str, str] = {}
        for name, value in obj.items():
            if value is None:
                continue
            if isinstance(value, str):
                params[name] = value
            elif isinstance(value, Mapping):
                params[name] = json_dumps(dict(value))
            elif isinstance(value, (list, tuple)):
                params[name] = " ".join(str(item) for item in value)
            elif isinstance(value, bool):
                params[name] = "true" if value else "false"
            else:
                params[name] = str(value)
        return cls.parse(params, endpoint_uri, require_redirect_uri=require_redirect_uri)

    @classmethod
    def parse_http_request(
        cls, request: HTTPRequest, *, require_redirect_uri: bool = False
    ) -> "AuthenticationRequest":
        """
        Parses a request from an HTTP GET or form-encoded POST.

        Raises:
            ParseError: For another HTTP method or content type, or an invalid request.
        """
        scheme, netloc, path, query, _ = urlsplit(request.url)
        endpoint_uri = urlunsplit((scheme, netloc, path, "", "")) or None

        if request.method == HTTPMethod.GET:
            params = parse_parameters(query)
        elif request.method == HTTPMethod.POST:
            try:
                params = request.form_parameters()
            except ValueError as e:
                raise ParseError(str(e), OAuth2Error.INVALID_REQUEST.append_description(f": {e}")) from e
        else:
            msg = "The HTTP request method must be GET or POST"
            raise ParseError(msg, OAuth2Error.INVALID_REQUEST.append_description(f": {msg}"))

        return cls.parse(params, endpoint_uri, require_redirect_uri=require_redirect_uri)
