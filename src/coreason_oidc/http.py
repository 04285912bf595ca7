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
Transport-neutral HTTP request message.

Nothing here opens a connection; callers hand the message to the HTTP
client of their choice.
"""

from enum import StrEnum
from urllib.parse import parse_qsl, urlsplit

from pydantic import BaseModel, ConfigDict, Field

from coreason_oidc.utils.frozen import FrozenStringMap

FORM_URLENCODED = "application/x-www-form-urlencoded"


class HTTPMethod(StrEnum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"


def parse_parameters(s: str | None) -> dict[str, str]:
    """
    Decodes an `application/x-www-form-urlencoded` string.

    Blank values are kept; for repeated keys the last value wins.
    """
    if not s:
        return {}
    return dict(parse_qsl(s, keep_blank_values=True))


class HTTPRequest(BaseModel):
    """
    An HTTP request: method, URL, headers and body.

    Header names are matched case-insensitively.
    """

    model_config = ConfigDict(frozen=True)

    method: HTTPMethod
    url: str
    headers: FrozenStringMap = Field(default_factory=dict, validate_default=True)
    body: str | None = None

    def header(self, name: str) -> str | None:
        for key, value in self.headers.items():
            if key.lower() == name.lower():
                return value
        return None

    @property
    def content_type(self) -> str | None:
        value = self.header("Content-Type")
        if value is None:
            return None
        return value.split(";", 1)[0].strip().lower()

    def query_parameters(self) -> dict[str, str]:
        return parse_parameters(urlsplit(self.url).query)

    def form_parameters(self) -> dict[str, str]:
        """
        Returns the parameters of a form-encoded body.

        Raises:
            ValueError: If the body is not `application/x-www-form-urlencoded`.
        """
        if self.content_type != FORM_URLENCODED:
            raise ValueError(f"The HTTP Content-Type header must be {FORM_URLENCODED}")
        return parse_parameters(self.body)
