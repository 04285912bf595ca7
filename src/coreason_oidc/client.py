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
Client metadata for OAuth 2.0 dynamic client registration (RFC 7591) and its
OpenID Connect extension.

Parsing runs in two passes. `ClientMetadata.parse` picks out the registered
OAuth 2.0 fields and keeps everything else in `custom_fields`;
`OIDCClientMetadata.parse` then takes the OpenID Connect fields out of that
remainder. Whatever is left stays in `custom_fields` and is serialized back
unchanged.
"""

from collections.abc import Mapping
from enum import StrEnum
from typing import Any, ClassVar
from urllib.parse import urlsplit

from authlib.common.encoding import json_dumps, json_loads
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from coreason_oidc.errors import ErrorObject
from coreason_oidc.exceptions import CoreasonOIDCError, IllegalStateError, ParseError
from coreason_oidc.grants import GrantType
from coreason_oidc.identifiers import ResponseType, Scope
from coreason_oidc.utils.frozen import FrozenJSONObject, thaw

INVALID_CLIENT_METADATA = ErrorObject(
    code="invalid_client_metadata", description="Invalid client metadata field", http_status=400
)
INVALID_REDIRECT_URI = ErrorObject(code="invalid_redirect_uri", description="Invalid redirection URI(s)", http_status=400)

DEFAULT_ID_TOKEN_SIGNING_ALG = "RS256"
DEFAULT_ENCRYPTION_ENC = "A128CBC-HS256"


class ClientAuthenticationMethod(StrEnum):
    CLIENT_SECRET_BASIC = "client_secret_basic"
    CLIENT_SECRET_POST = "client_secret_post"
    CLIENT_SECRET_JWT = "client_secret_jwt"
    PRIVATE_KEY_JWT = "private_key_jwt"
    NONE = "none"

    @classmethod
    def default(cls) -> "ClientAuthenticationMethod":
        return cls.CLIENT_SECRET_BASIC


class SubjectType(StrEnum):
    PAIRWISE = "pairwise"
    PUBLIC = "public"


class ApplicationType(StrEnum):
    WEB = "web"
    NATIVE = "native"


def _invalid(message: str, error_object: ErrorObject = INVALID_CLIENT_METADATA) -> ParseError:
    return ParseError(message, error_object.append_description(f": {message}"))


def _load(document: str | Mapping[str, Any]) -> Mapping[str, Any]:
    if isinstance(document, str):
        try:
            document = json_loads(document)
        except ValueError as e:
            raise _invalid(f"Invalid client metadata JSON: {e}") from e
    if not isinstance(document, Mapping):
        raise _invalid("The client metadata must be a JSON object")
    return document


def _pop_string(fields: dict[str, Any], name: str) -> str | None:
    value = fields.pop(name, None)
    if value is None:
        return None
    if not isinstance(value, str) or not value.strip():
        raise _invalid(f'Invalid "{name}" field: must be a non-empty JSON string')
    return value


def _pop_uri(fields: dict[str, Any], name: str) -> str | None:
    value = _pop_string(fields, name)
    if value is not None and not urlsplit(value).scheme:
        raise _invalid(f'Invalid "{name}" field: must be an absolute URI')
    return value


def _pop_string_array(fields: dict[str, Any], name: str) -> tuple[str, ...]:
    value = fields.pop(name, None)
    if value is None:
        return ()
    if not isinstance(value, list) or any(not isinstance(item, str) or not item.strip() for item in value):
        raise _invalid(f'Invalid "{name}" field: must be a JSON array of non-empty strings')
    return tuple(value)


def _pop_enum(fields: dict[str, Any], name: str, enum: type[StrEnum]) -> Any:
    value = _pop_string(fields, name)
    if value is None:
        return None
    try:
        return enum(value)
    except ValueError as e:
        raise _invalid(f'Invalid "{name}" field: Unexpected value: {value}') from e


class ClientMetadata(BaseModel):
    """
    OAuth 2.0 client metadata (RFC 7591, section 2).

    Fields that are not registered are kept in `custom_fields`. A registered
    field name is never a custom field.

    Attributes:
        redirect_uris (tuple[str, ...]): Redirection URIs, absolute and without a fragment.
        scope (Scope | None): The scope the client may request.
        response_types (tuple[ResponseType, ...]): Response types the client may use.
        grant_types (tuple[GrantType, ...]): Grant types the client may use.
        token_endpoint_auth_method (ClientAuthenticationMethod | None): How the client authenticates at the token endpoint.
        contacts (tuple[str, ...]): People responsible for the client, usually e-mail addresses.
        jwks (Mapping[str, Any] | None): The client's public JWK set, passed by value.
        custom_fields (Mapping[str, Any]): Unregistered fields, read-only.
    """

    model_config = ConfigDict(frozen=True)

    REGISTERED_FIELD_NAMES: ClassVar[frozenset[str]] = frozenset(
        {
            "redirect_uris",
            "scope",
            "response_types",
            "grant_types",
            "token_endpoint_auth_method",
            "contacts",
            "client_name",
            "logo_uri",
            "client_uri",
            "policy_uri",
            "tos_uri",
            "jwks_uri",
            "jwks",
            "software_id",
            "software_version",
        }
    )

    redirect_uris: tuple[str, ...] = ()
    scope: Scope | None = None
    response_types: tuple[ResponseType, ...] = ()
    grant_types: tuple[GrantType, ...] = ()
    token_endpoint_auth_method: ClientAuthenticationMethod | None = None
    contacts: tuple[str, ...] = ()
    client_name: str | None = None
    logo_uri: str | None = None
    client_uri: str | None = None
    policy_uri: str | None = None
    tos_uri: str | None = None
    jwks_uri: str | None = None
    jwks: FrozenJSONObject | None = None
    software_id: str | None = None
    software_version: str | None = None
    custom_fields: FrozenJSONObject = Field(default_factory=dict, validate_default=True)

    @model_validator(mode="after")
    def check_invariants(self) -> "ClientMetadata":
        if self.jwks_uri is not None and self.jwks is not None:
            raise IllegalStateError('The "jwks_uri" and "jwks" fields must not both be set')
        for uri in self.redirect_uris:
            parts = urlsplit(uri)
            if not parts.scheme or parts.fragment:
                raise IllegalStateError(f"Invalid redirection URI: {uri}")
        names = self.registered_field_names()
        for name in self.custom_fields:
            if name in names:
                raise IllegalStateError(f'The custom field "{name}" collides with a registered field')
        return self

    @classmethod
    def registered_field_names(cls) -> frozenset[str]:
        return cls.REGISTERED_FIELD_NAMES

    def apply_defaults(self) -> "ClientMetadata":
        """
        Returns a copy with the unset fields that have a registration default filled in.

        The response types default to `code`, the grant types to
        `authorization_code` and the token endpoint authentication method to
        `client_secret_basic`.
        """
        return self.model_copy(update=self._defaults())

    def _defaults(self) -> dict[str, Any]:
        defaults: dict[str, Any] = {}
        if not self.response_types:
            defaults["response_types"] = (ResponseType(ResponseType.CODE),)
        if not self.grant_types:
            defaults["grant_types"] = (GrantType.AUTHORIZATION_CODE,)
        if self.token_endpoint_auth_method is None:
            defaults["token_endpoint_auth_method"] = ClientAuthenticationMethod.default()
        return defaults

    def to_json_object(self) -> dict[str, Any]:
        """Returns the metadata as a JSON object, custom fields first."""
        obj: dict[str, Any] = thaw(self.custom_fields)
        if self.redirect_uris:
            obj["redirect_uris"] = list(self.redirect_uris)
        if self.scope is not None:
            obj["scope"] = str(self.scope)
        if self.response_types:
            obj["response_types"] = [str(rt) for rt in self.response_types]
        if self.grant_types:
            obj["grant_types"] = [gt.value for gt in self.grant_types]
        if self.token_endpoint_auth_method is not None:
            obj["token_endpoint_auth_method"] = self.token_endpoint_auth_method.value
        if self.contacts:
            obj["contacts"] = list(self.contacts)
        for name in ("client_name", "logo_uri", "client_uri", "policy_uri", "tos_uri", "jwks_uri"):
            value = getattr(self, name)
            if value is not None:
                obj[name] = value
        if self.jwks is not None:
            obj["jwks"] = thaw(self.jwks)
        for name in ("software_id", "software_version"):
            value = getattr(self, name)
            if value is not None:
                obj[name] = value
        return obj

    def to_json(self) -> str:
        return json_dumps(self.to_json_object())

    def _registered_values(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in ClientMetadata.REGISTERED_FIELD_NAMES}

    @classmethod
    def parse(cls, document: str | Mapping[str, Any]) -> "ClientMetadata":
        """
        Parses client metadata from its JSON text or decoded JSON object.

        Raises:
            ParseError: If a registered field is invalid. The error carries an
                `invalid_client_metadata` or `invalid_redirect_uri` error object.
        """
        fields = dict(_load(document))
        values = _pop_registered(fields)
        return _build(ClientMetadata, values, fields)


def _pop_registered(fields: dict[str, Any]) -> dict[str, Any]:
    """Removes the registered OAuth 2.0 fields from `fields` and returns them parsed."""
    values: dict[str, Any] = {}

    redirect_uris = _pop_string_array(fields, "redirect_uris")
    for uri in redirect_uris:
        parts = urlsplit(uri)
        if not parts.scheme or parts.fragment:
            raise _invalid(f"Invalid redirection URI: {uri}", INVALID_REDIRECT_URI)
    values["redirect_uris"] = redirect_uris

    scope = _pop_string(fields, "scope")
    response_types = _pop_string_array(fields, "response_types")
    try:
        values["scope"] = Scope.parse(scope) if scope is not None else None
        values["response_types"] = tuple(ResponseType.parse(item) for item in response_types)
    except (CoreasonOIDCError, ValidationError) as e:
        raise _invalid(str(e)) from e

    grant_types: list[GrantType] = []
    for item in _pop_string_array(fields, "grant_types"):
        try:
            grant_types.append(GrantType.parse(item))
        except CoreasonOIDCError as e:
            raise _invalid(f'Invalid "grant_types" field: {e}') from e
    values["grant_types"] = tuple(grant_types)

    values["token_endpoint_auth_method"] = _pop_enum(fields, "token_endpoint_auth_method", ClientAuthenticationMethod)
    values["contacts"] = _pop_string_array(fields, "contacts")
    values["client_name"] = _pop_string(fields, "client_name")
    for name in ("logo_uri", "client_uri", "policy_uri", "tos_uri", "jwks_uri"):
        values[name] = _pop_uri(fields, name)

    jwks = fields.pop("jwks", None)
    if jwks is not None and (not isinstance(jwks, Mapping) or not isinstance(jwks.get("keys"), list)):
        raise _invalid('Invalid "jwks" field: must be a JSON object with a "keys" array')
    values["jwks"] = jwks

    values["software_id"] = _pop_string(fields, "software_id")
    values["software_version"] = _pop_string(fields, "software_version")
    return values


def _build(cls: type[ClientMetadata], values: dict[str, Any], custom_fields: dict[str, Any]) -> Any:
    try:
        return cls(**values, custom_fields=custom_fields)
    except (IllegalStateError, ValidationError) as e:
        raise _invalid(str(e)) from e


class OIDCClientMetadata(ClientMetadata):
    """
    OpenID Connect client metadata (OpenID Connect Dynamic Client
    Registration 1.0, section 2): the OAuth 2.0 fields plus the OpenID
    Connect ones.

    Attributes:
        application_type (ApplicationType | None): `web` or `native`.
        subject_type (SubjectType | None): `public` or `pairwise` subject identifiers.
        sector_identifier_uri (str | None): HTTPS URI used when computing pairwise subjects.
        request_uris (tuple[str, ...]): Pre-registered request object URIs.
        default_max_age (int): Default maximum authentication age in seconds. 0 means unset.
        require_auth_time (bool): Whether the `auth_time` claim is required in ID tokens.
        default_acr_values (tuple[str, ...]): Default requested ACR values, in order of preference.
    """

    OIDC_FIELD_NAMES: ClassVar[frozenset[str]] = frozenset(
        {
            "application_type",
            "subject_type",
            "sector_identifier_uri",
            "request_uris",
            "request_object_signing_alg",
            "token_endpoint_auth_signing_alg",
            "id_token_signed_response_alg",
            "id_token_encrypted_response_alg",
            "id_token_encrypted_response_enc",
            "userinfo_signed_response_alg",
            "userinfo_encrypted_response_alg",
            "userinfo_encrypted_response_enc",
            "default_max_age",
            "require_auth_time",
            "default_acr_values",
            "initiate_login_uri",
            "post_logout_redirect_uri",
        }
    )

    _ALG_FIELDS: ClassVar[tuple[str, ...]] = (
        "request_object_signing_alg",
        "token_endpoint_auth_signing_alg",
        "id_token_signed_response_alg",
        "id_token_encrypted_response_alg",
        "id_token_encrypted_response_enc",
        "userinfo_signed_response_alg",
        "userinfo_encrypted_response_alg",
        "userinfo_encrypted_response_enc",
    )

    application_type: ApplicationType | None = None
    subject_type: SubjectType | None = None
    sector_identifier_uri: str | None = None
    request_uris: tuple[str, ...] = ()
    request_object_signing_alg: str | None = None
    token_endpoint_auth_signing_alg: str | None = None
    id_token_signed_response_alg: str | None = None
    id_token_encrypted_response_alg: str | None = None
    id_token_encrypted_response_enc: str | None = None
    userinfo_signed_response_alg: str | None = None
    userinfo_encrypted_response_alg: str | None = None
    userinfo_encrypted_response_enc: str | None = None
    default_max_age: int = Field(default=0, ge=0)
    require_auth_time: bool = False
    default_acr_values: tuple[str, ...] = ()
    initiate_login_uri: str | None = None
    post_logout_redirect_uri: str | None = None

    @model_validator(mode="after")
    def check_oidc_invariants(self) -> "OIDCClientMetadata":
        for prefix in ("id_token", "userinfo"):
            alg = getattr(self, f"{prefix}_encrypted_response_alg")
            enc = getattr(self, f"{prefix}_encrypted_response_enc")
            if enc is not None and alg is None:
                raise IllegalStateError(
                    f'The "{prefix}_encrypted_response_enc" field requires "{prefix}_encrypted_response_alg"'
                )
        if self.sector_identifier_uri is not None and urlsplit(self.sector_identifier_uri).scheme != "https":
            raise IllegalStateError("The sector identifier URI must use the https scheme")
        return self

    @classmethod
    def registered_field_names(cls) -> frozenset[str]:
        return ClientMetadata.REGISTERED_FIELD_NAMES | cls.OIDC_FIELD_NAMES

    def _defaults(self) -> dict[str, Any]:
        """
        Adds the OpenID Connect defaults: the ID token is signed with RS256,
        and an encryption algorithm without a content encryption method gets
        A128CBC-HS256.
        """
        defaults = super()._defaults()
        if self.id_token_signed_response_alg is None:
            defaults["id_token_signed_response_alg"] = DEFAULT_ID_TOKEN_SIGNING_ALG
        for prefix in ("id_token", "userinfo"):
            if getattr(self, f"{prefix}_encrypted_response_alg") and not getattr(
                self, f"{prefix}_encrypted_response_enc"
            ):
                defaults[f"{prefix}_encrypted_response_enc"] = DEFAULT_ENCRYPTION_ENC
        return defaults

    def to_json_object(self) -> dict[str, Any]:
        obj = super().to_json_object()
        if self.application_type is not None:
            obj["application_type"] = self.application_type.value
        if self.subject_type is not None:
            obj["subject_type"] = self.subject_type.value
        if self.sector_identifier_uri is not None:
            obj["sector_identifier_uri"] = self.sector_identifier_uri
        if self.request_uris:
            obj["request_uris"] = list(self.request_uris)
        for name in self._ALG_FIELDS:
            value = getattr(self, name)
            if value is not None:
                obj[name] = value
        if self.default_max_age > 0:
            obj["default_max_age"] = self.default_max_age
        obj["require_auth_time"] = self.require_auth_time
        if self.default_acr_values:
            obj["default_acr_values"] = list(self.default_acr_values)
        if self.initiate_login_uri is not None:
            obj["initiate_login_uri"] = self.initiate_login_uri
        if self.post_logout_redirect_uri is not None:
            obj["post_logout_redirect_uri"] = self.post_logout_redirect_uri
        return obj

    @classmethod
    def parse(cls, document: str | Mapping[str, Any]) -> "OIDCClientMetadata":
        """
        Parses OpenID Connect client metadata from its JSON text or decoded JSON object.

        Raises:
            ParseError: If a registered field is invalid.
        """
        base = ClientMetadata.parse(document)

        remainder = thaw(base.custom_fields)
        values = base._registered_values()

        values["application_type"] = _pop_enum(remainder, "application_type", ApplicationType)
        values["subject_type"] = _pop_enum(remainder, "subject_type", SubjectType)
        values["sector_identifier_uri"] = _pop_uri(remainder, "sector_identifier_uri")
        request_uris = _pop_string_array(remainder, "request_uris")
        for uri in request_uris:
            if not urlsplit(uri).scheme:
                raise _invalid(f'Invalid "request_uris" field: not an absolute URI: {uri}')
        values["request_uris"] = request_uris
        for name in cls._ALG_FIELDS:
            values[name] = _pop_string(remainder, name)

        max_age = remainder.pop("default_max_age", None)
        if max_age is not None:
            if isinstance(max_age, bool) or not isinstance(max_age, int) or max_age < 0:
                raise _invalid('Invalid "default_max_age" field: must be a non-negative JSON integer')
            values["default_max_age"] = max_age

        require_auth_time = remainder.pop("require_auth_time", None)
        if require_auth_time is not None:
            if not isinstance(require_auth_time, bool):
                raise _invalid('Invalid "require_auth_time" field: must be a JSON boolean')
            values["require_auth_time"] = require_auth_time

        values["default_acr_values"] = _pop_string_array(remainder, "default_acr_values")
        values["initiate_login_uri"] = _pop_uri(remainder, "initiate_login_uri")
        values["post_logout_redirect_uri"] = _pop_uri(remainder, "post_logout_redirect_uri")

        return _build(cls, values, remainder)
