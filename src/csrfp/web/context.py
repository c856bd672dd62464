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
"""Per-request state owned by a single request's worker."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from csrfp.security.tokens import TokenGenerator


@dataclass
class RequestContext:
    """What the protector knows about one incoming request.

    ``body`` holds at most ``content_length`` bytes and is filled once by the
    host binding; nothing re-reads the client stream afterwards.
    """

    method: str
    path: str = "/"
    raw_cookie_header: str | None = None
    raw_query_string: str | None = None
    content_type: str | None = None
    content_length: int | None = None
    body: bytes = b""

    def __post_init__(self) -> None:
        self.method = self.method.upper()

    @property
    def is_post(self) -> bool:
        return self.method == "POST"

    @property
    def is_get(self) -> bool:
        return self.method == "GET"


@dataclass
class ResponseRewriteState:
    """Hand-off from the request phase to the response phase of one request."""

    needs_token_refresh: bool = False
    new_token: str | None = None
    rewriter_opened: bool = False

    def issue_token(self, generator: TokenGenerator, length: int) -> str:
        """Generate the refreshed token once; later calls return the same value."""
        if self.new_token is None:
            self.new_token = generator.generate(length)
        return self.new_token
