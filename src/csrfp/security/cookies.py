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
"""Reading and writing the token cookie.

The read path tokenizes the raw ``Cookie`` header with Starlette's
``cookie_parser`` and looks the name up exactly, so ``xcsrfp_token=...`` or
``other=csrfp_token=...`` never match ``csrfp_token``.  The write path renders
the header through ``Response.set_cookie``.
"""

from __future__ import annotations

from typing import Literal

from starlette.requests import cookie_parser
from starlette.responses import Response

from csrfp.security.settings import TOKEN_NAME


class CookieTokenStore:
    """Extracts and serializes the token cookie."""

    def __init__(self, cookie_name: str = TOKEN_NAME) -> None:
        self.cookie_name = cookie_name

    def extract(self, raw_cookie_header: str | None, cookie_name: str | None = None) -> str | None:
        """Return the value of *cookie_name* in *raw_cookie_header*, or ``None``.

        Names are compared after trimming whitespace.  When the name repeats,
        the last pair wins, as in ``request.cookies``.  Quoted values are
        unquoted.
        """
        if not raw_cookie_header:
            return None
        return cookie_parser(raw_cookie_header).get(cookie_name or self.cookie_name)

    def serialize(
        self,
        token: str,
        cookie_name: str | None = None,
        *,
        path: str = "/",
        domain: str | None = None,
        max_age: int | None = None,
        secure: bool = False,
        httponly: bool = False,
        samesite: Literal["lax", "strict", "none"] | None = "lax",
    ) -> str:
        """Return a ``Set-Cookie`` header value carrying *token*."""
        response = Response()
        response.set_cookie(
            cookie_name or self.cookie_name,
            token,
            max_age=max_age,
            path=path,
            domain=domain,
            secure=secure,
            httponly=httponly,
            samesite=samesite,
        )
        return next(value for key, value in response.raw_headers if key == b"set-cookie").decode("latin-1")
