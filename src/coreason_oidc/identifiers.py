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
Identifier and value types shared by the OAuth 2.0 / OpenID Connect messages.

All types are immutable. Simple identifiers compare by their string value;
set-like types (response type, scope, prompt) compare as sets while keeping
the order in which their values were supplied for serialization.
"""

from enum import StrEnum
from typing import Any, ClassVar

from authlib.common.security import generate_token
from authlib.oauth2.rfc7636 import create_s256_code_challenge
from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from coreason_oidc.exceptions import InvalidValueError


class Identifier(BaseModel):
    """
    Base class for immutable string identifiers.

    Subclasses with `GENERATE_IF_EMPTY` set derive a cryptographically random
    value when constructed without one.

    Attributes:
        value (str): The identifier value. Never empty.
    """

    model_config = ConfigDict(frozen=True)

    GENERATE_IF_EMPTY: ClassVar[bool] = False
    GENERATED_LENGTH: ClassVar[int] = 32

    value: str

    def __init__(self, value: str | None = None, **data: Any) -> None:
        if value is None:
            value = data.pop("value", None)
        if not value:
            if not self.GENERATE_IF_EMPTY:
                raise InvalidValueError(f"The {type(self).__name__} value must not be null or empty")
            value = generate_token(self.GENERATED_LENGTH)
        elif isinstance(value, str) and not value.strip():
            raise InvalidValueError(f"The {type(self).__name__} value must not be blank")
        super().__init__(value=value, **data)

    @model_validator(mode="before")
    @classmethod
    def coerce_string(cls, data: Any) -> Any:
        """Allows identifiers to be validated from plain strings."""
        if isinstance(data, str):
            data = {"value": data}
        if isinstance(data, dict):
            value = data.get("value")
            if not value or (isinstance(value, str) and not value.strip()):
                raise InvalidValueError(f"The {cls.__name__} value must not be null, empty or blank")
        return data

    def __str__(self) -> str:
        return self.value


class ClientID(Identifier):
    """Client identifier issued by the authorization server."""


class State(Identifier):
    """Opaque value binding an authorization request to its response."""

    GENERATE_IF_EMPTY = True


class Nonce(Identifier):
    """Value binding an ID token to the client session, mitigating replay."""

    GENERATE_IF_EMPTY = True


class Subject(Identifier):
    """Locally unique identifier of the end-user at the issuer."""


class Issuer(Identifier):
    """Identifier of the issuing authorization server."""


class Audience(Identifier):
    """Intended recipient of a token."""


class ResponseType(BaseModel):
    """
    Ordered set of response type values, e.g. `code` or `id_token token`.

    The order is not significant for equality but is preserved for serialization.
    """

    model_config = ConfigDict(frozen=True)

    CODE: ClassVar[str] = "code"
    TOKEN: ClassVar[str] = "token"
    ID_TOKEN: ClassVar[str] = "id_token"

    values: tuple[str, ...]

    def __init__(self, *values: str, **data: Any) -> None:
        if values:
            data["values"] = values
        if not data.get("values"):
            raise InvalidValueError("The response type must contain at least one value")
        super().__init__(**data)

    @model_validator(mode="before")
    @classmethod
    def coerce_values(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"values": tuple(data.split())}
        if isinstance(data, (list, tuple, set, frozenset)):
            return {"values": tuple(data)}
        return data

    @field_validator("values")
    @classmethod
    def unique_values(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        if not v:
            raise ValueError("The response type must contain at least one value")
        if any(not item or item.strip() != item or " " in item for item in v):
            raise ValueError("Response type values must be non-empty tokens")
        return tuple(dict.fromkeys(v))

    @classmethod
    def parse(cls, s: str | None) -> "ResponseType":
        """
        Parses a space-separated response type string.

        Raises:
            InvalidValueError: If the string is null or blank.
        """
        if not s or not s.strip():
            raise InvalidValueError("Null or empty response type string")
        return cls(*s.split())

    def implies_implicit_flow(self) -> bool:
        """True if the response type calls for an implicit or hybrid flow."""
        return self.TOKEN in self.values or self.ID_TOKEN in self.values

    def implies_code_flow(self) -> bool:
        return self.values == (self.CODE,)

    def implies_hybrid_flow(self) -> bool:
        return self.CODE in self.values and self.implies_implicit_flow()

    def __contains__(self, item: object) -> bool:
        return item in self.values

    def __len__(self) -> int:
        return len(self.values)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ResponseType):
            return NotImplemented
        return frozenset(self.values) == frozenset(other.values)

    def __hash__(self) -> int:
        return hash(frozenset(self.values))

    def __str__(self) -> str:
        return " ".join(self.values)


class KnownResponseMode(StrEnum):
    QUERY = "query"
    FRAGMENT = "fragment"
    FORM_POST = "form_post"


class ResponseMode(Identifier):
    """
    Mechanism for returning authorization response parameters.

    Either one of the registered modes (see `known`) or an extension value.
    """

    QUERY: ClassVar["ResponseMode"]
    FRAGMENT: ClassVar["ResponseMode"]
    FORM_POST: ClassVar["ResponseMode"]

    @property
    def known(self) -> KnownResponseMode | None:
        """The registered mode this value denotes, or None for an extension mode."""
        try:
            return KnownResponseMode(self.value)
        except ValueError:
            return None

    @classmethod
    def resolve(cls, response_mode: "ResponseMode | None", response_type: ResponseType | None) -> "ResponseMode":
        """
        Resolves the response mode to use.

        An explicit mode always wins. Otherwise the fragment is used for
        implicit and hybrid flows and the query string for everything else.
        """
        if response_mode is not None:
            return response_mode
        if response_type is not None and response_type.implies_implicit_flow():
            return cls.FRAGMENT
        return cls.QUERY


ResponseMode.QUERY = ResponseMode(KnownResponseMode.QUERY.value)
ResponseMode.FRAGMENT = ResponseMode(KnownResponseMode.FRAGMENT.value)
ResponseMode.FORM_POST = ResponseMode(KnownResponseMode.FORM_POST.value)


class ClaimRequirement(StrEnum):
    ESSENTIAL = "essential"
    VOLUNTARY = "voluntary"


class OIDCScopeValue(StrEnum):
    OPENID = "openid"
    PROFILE = "profile"
    EMAIL = "email"
    ADDRESS = "address"
    PHONE = "phone"
    OFFLINE_ACCESS = "offline_access"


class ScopeValue(Identifier):
    """
    A single scope token with an optional requirement tag.

    Equality is by the token value only.
    """

    requirement: ClaimRequirement | None = None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ScopeValue):
            return NotImplemented
        return self.value == other.value

    def __hash__(self) -> int:
        return hash(self.value)


class Scope(BaseModel):
    """
    Ordered set of unique scope values.

    Attributes:
        values (tuple[ScopeValue, ...]): The scope values in insertion order.
    """

    model_config = ConfigDict(frozen=True)

    values: tuple[ScopeValue, ...] = ()

    def __init__(self, *values: str | ScopeValue, **data: Any) -> None:
        if values:
            data["values"] = values
        super().__init__(**data)

    @model_validator(mode="before")
    @classmethod
    def coerce_values(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"values": tuple(data.split())}
        if isinstance(data, (list, tuple)):
            return {"values": tuple(data)}
        return data

    @field_validator("values")
    @classmethod
    def unique_values(cls, v: tuple[ScopeValue, ...]) -> tuple[ScopeValue, ...]:
        return tuple(dict.fromkeys(v))

    @classmethod
    def parse(cls, s: str | None) -> "Scope":
        """
        Parses a space-separated scope string.

        Raises:
            InvalidValueError: If the string is null or blank.
        """
        if not s or not s.strip():
            raise InvalidValueError("Null or empty scope string")
        return cls(*s.split())

    def to_string_list(self) -> list[str]:
        return [item.value for item in self.values]

    def __contains__(self, item: object) -> bool:
        if isinstance(item, ScopeValue):
            item = item.value
        return item in self.to_string_list()

    def __len__(self) -> int:
        return len(self.values)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Scope):
            return NotImplemented
        return frozenset(self.values) == frozenset(other.values)

    def __hash__(self) -> int:
        return hash(frozenset(self.values))

    def __str__(self) -> str:
        return " ".join(self.to_string_list())


class Display(StrEnum):
    PAGE = "page"
    POPUP = "popup"
    TOUCH = "touch"
    WAP = "wap"

    @classmethod
    def parse(cls, s: str) -> "Display":
        try:
            return cls(s)
        except ValueError as e:
            raise InvalidValueError(f"Unknown display type: {s}") from e


class PromptType(StrEnum):
    NONE = "none"
    LOGIN = "login"
    CONSENT = "consent"
    SELECT_ACCOUNT = "select_account"
    CREATE = "create"


class Prompt(BaseModel):
    """
    Ordered set of prompt types. `none` must not be combined with any other type.
    """

    model_config = ConfigDict(frozen=True)

    values: tuple[PromptType, ...]

    def __init__(self, *values: str | PromptType, **data: Any) -> None:
        if values:
            data["values"] = values
        super().__init__(**data)

    @model_validator(mode="before")
    @classmethod
    def coerce_values(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"values": tuple(data.split())}
        if isinstance(data, (list, tuple)):
            return {"values": tuple(data)}
        return data

    @field_validator("values")
    @classmethod
    def valid_combination(cls, v: tuple[PromptType, ...]) -> tuple[PromptType, ...]:
        v = tuple(dict.fromkeys(v))
        if not v:
            raise ValueError("The prompt must contain at least one value")
        if PromptType.NONE in v and len(v) > 1:
            raise ValueError("Invalid prompt: none must not be combined with other values")
        return v

    @classmethod
    def parse(cls, s: str) -> "Prompt":
        """
        Parses a space-separated prompt string.

        Raises:
            InvalidValueError: For an unknown prompt type or an illegal combination.
        """
        types: list[PromptType] = []
        for token in s.split():
            try:
                types.append(PromptType(token))
            except ValueError as e:
                raise InvalidValueError(f"Unknown prompt type: {token}") from e
        if not types:
            raise InvalidValueError("Null or empty prompt string")
        if PromptType.NONE in types and len(set(types)) > 1:
            raise InvalidValueError("Invalid prompt: none must not be combined with other values")
        return cls(*types)

    def __contains__(self, item: object) -> bool:
        return item in self.values

    def __len__(self) -> int:
        return len(self.values)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Prompt):
            return NotImplemented
        return frozenset(self.values) == frozenset(other.values)

    def __hash__(self) -> int:
        return hash(frozenset(self.values))

    def __str__(self) -> str:
        return " ".join(item.value for item in self.values)


class CodeChallengeMethod(StrEnum):
    PLAIN = "plain"
    S256 = "S256"

    @classmethod
    def parse(cls, s: str) -> "CodeChallengeMethod":
        try:
            return cls(s)
        except ValueError as e:
            raise InvalidValueError(f"Unknown code challenge method: {s}") from e


def generate_code_verifier(length: int = 64) -> str:
    """
    Generates a random PKCE code verifier.

    Args:
        length: Number of characters, between 43 and 128.

    Returns:
        str: The code verifier.
    """
    if not 43 <= length <= 128:
        raise InvalidValueError("The code verifier length must be between 43 and 128 characters")
    return generate_token(length)


def compute_code_challenge(code_verifier: str, method: CodeChallengeMethod = CodeChallengeMethod.S256) -> str:
    """Computes the PKCE code challenge for a verifier."""
    if method == CodeChallengeMethod.PLAIN:
        return code_verifier
    return str(create_s256_code_challenge(code_verifier))
