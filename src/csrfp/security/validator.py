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
"""Token validation — compares the client token against the cookie token."""

from __future__ import annotations

from enum import Enum

from csrfp.kernel.exceptions import ValidationFailure
from csrfp.security.cookies import CookieTokenStore
from csrfp.security.settings import TOKEN_NAME, CsrfpSettings
from csrfp.security.tokens import tokens_match
from csrfp.web.context import RequestContext
from csrfp.web.parsers import FormBodyParser, QueryStringParser


class ValidationOutcome(Enum):
    NOT_APPLICABLE = "not_applicable"
    PASSED = "passed"
    FAILED_NO_CLIENT_TOKEN = "failed_no_client_token"
    FAILED_NO_COOKIE_TOKEN = "failed_no_cookie_token"
    FAILED_MISMATCH = "failed_mismatch"

    @property
    def failed(self) -> bool:
        return self.value.startswith("failed_")


class TokenValidator:
    """Decides whether a request carries a token matching its cookie.

    POST requests are always checked.  GET requests are checked only when
    their path matches one of ``verify_get_for``.  Every other method, and
    every request while the protector is disabled, is not applicable.
    """

    def __init__(
        self,
        form_parser: FormBodyParser | None = None,
        query_parser: QueryStringParser | None = None,
        cookie_store: CookieTokenStore | None = None,
        token_name: str = TOKEN_NAME,
    ) -> None:
        self._form_parser = form_parser or FormBodyParser()
        self._query_parser = query_parser or QueryStringParser()
        self._cookie_store = cookie_store or CookieTokenStore(token_name)
        self._token_name = token_name

    def client_token(self, ctx: RequestContext, settings: CsrfpSettings) -> tuple[bool, str | None]:
        """Return ``(applicable, token)`` for the token the client submitted."""
        if ctx.is_post:
            fields = self._form_parser.parse(ctx)
            return True, (fields or {}).get(self._token_name)
        if ctx.is_get and settings.verifies_get(ctx.path):
            return True, self._query_parser.parse(ctx.raw_query_string).get(self._token_name)
        return False, None

    def validate(self, ctx: RequestContext, settings: CsrfpSettings) -> ValidationOutcome:
        if not settings.enabled:
            return ValidationOutcome.NOT_APPLICABLE

        applicable, client_token = self.client_token(ctx, settings)
        if not applicable:
            return ValidationOutcome.NOT_APPLICABLE
        if not client_token:
            return ValidationOutcome.FAILED_NO_CLIENT_TOKEN

        cookie_token = self._cookie_store.extract(ctx.raw_cookie_header)
        if not cookie_token:
            return ValidationOutcome.FAILED_NO_COOKIE_TOKEN

        if tokens_match(client_token, cookie_token):
            return ValidationOutcome.PASSED
        return ValidationOutcome.FAILED_MISMATCH

    def require(self, ctx: RequestContext, settings: CsrfpSettings) -> ValidationOutcome:
        """Like :meth:`validate`, but raise :class:`ValidationFailure` on a failed outcome."""
        outcome = self.validate(ctx, settings)
        if outcome.failed:
            raise ValidationFailure(outcome)
        return outcome
