# Copyright 2026 Firefly Software Solutions Inc.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""Decoders for form bodies and query strings.

The two parsers deliberately differ on duplicate keys and on pairs without
``=``:

=================  ===============  ================
                   form body        query string
=================  ===============  ================
duplicate key      last wins        first wins
``key`` (no ``=``) skipped          ``key -> ""``
empty key          skipped          kept
``+``              space            literal ``+``
=================  ===============  ================

Neither parser raises on malformed input: undecodable bytes are replaced
and broken percent escapes are kept verbatim.
"""

from __future__ import annotations

from urllib.parse import unquote, unquote_to_bytes

from csrfp.kernel.exceptions import ParseError
from csrfp.web.context import RequestContext

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


def media_type(content_type: str | None) -> str:
    """Return the lower-cased media type of a ``Content-Type`` value, without parameters."""
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def _decode_form_component(raw: bytes) -> str:
    return unquote_to_bytes(raw.replace(b"+", b" ")).decode("utf-8", errors="replace")


class FormBodyParser:
    """Decodes ``application/x-www-form-urlencoded`` POST bodies."""

    def applies_to(self, ctx: RequestContext) -> bool:
        return ctx.is_post and media_type(ctx.content_type) == FORM_CONTENT_TYPE

    def parse(self, ctx: RequestContext) -> dict[str, str] | None:
        """Return the decoded form fields, or ``None`` if the request is not a form POST."""
        if not self.applies_to(ctx):
            return None
        body = ctx.body
        if ctx.content_length is not None:
            body = body[: ctx.content_length]
        return self.parse_bytes(body)

    @staticmethod
    def parse_bytes(body: bytes) -> dict[str, str]:
        fields: dict[str, str] = {}
        for segment in body.split(b"&"):
            key, sep, value = segment.partition(b"=")
            if not sep or not key:
                continue
            fields[_decode_form_component(key)] = _decode_form_component(value)
        return fields


class QueryStringParser:
    """Decodes URL query strings."""

    def parse(self, raw_query_string: str | None) -> dict[str, str]:
        params: dict[str, str] = {}
        if not raw_query_string:
            return params
        for pair in raw_query_string.split("&"):
            if not pair:
                continue
            key, _, value = pair.partition("=")
            key = unquote(key, errors="replace")
            if key not in params:
                params[key] = unquote(value, errors="replace")
        return params


def parse_content_length(value: str | None) -> int | None:
    """Parse a ``Content-Length`` header value.

    Returns ``None`` when the header is absent.

    Raises:
        ParseError: if the value is not a non-negative decimal integer.
    """
    if value is None:
        return None
    text = value.strip()
    if not text.isdigit():
        raise ParseError(f"malformed Content-Length {value!r}", code="CSRFP_PARSE")
    return int(text)
