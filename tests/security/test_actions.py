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
"""Tests for ActionDispatcher and request stripping."""

from __future__ import annotations

import pytest

from csrfp.security.actions import ActionDispatcher, strip_request
from csrfp.security.settings import ActionKind, CsrfpSettings
from csrfp.security.validator import ValidationOutcome
from csrfp.web.context import RequestContext

MISMATCH = ValidationOutcome.FAILED_MISMATCH


class TestActionDispatcher:
    def setup_method(self) -> None:
        self.dispatcher = ActionDispatcher()

    def test_forbidden_is_default(self) -> None:
        decision = self.dispatcher.decide(MISMATCH, CsrfpSettings())
        assert decision.continue_processing is False
        assert decision.http_status == 403
        assert decision.action is ActionKind.FORBIDDEN

    def test_redirect(self) -> None:
        settings = CsrfpSettings(action=ActionKind.REDIRECT, error_redirection_uri="/error")
        decision = self.dispatcher.decide(MISMATCH, settings)
        assert decision.continue_processing is False
        assert decision.redirect_to == "/error"
        assert decision.http_status == 302

    def test_redirect_without_uri_falls_back_to_forbidden(self) -> None:
        settings = CsrfpSettings(action=ActionKind.REDIRECT, error_redirection_uri="")
        decision = self.dispatcher.decide(MISMATCH, settings)
        assert decision.action is ActionKind.FORBIDDEN
        assert decision.http_status == 403
        assert decision.redirect_to is None

    def test_message(self) -> None:
        settings = CsrfpSettings(action=ActionKind.MESSAGE, error_custom_message="Go away")
        decision = self.dispatcher.decide(ValidationOutcome.FAILED_NO_CLIENT_TOKEN, settings)
        assert decision.continue_processing is False
        assert decision.http_status == 200
        assert decision.body == "<h2>Go away</h2>"

    def test_message_status_is_configurable(self) -> None:
        settings = CsrfpSettings(action=ActionKind.MESSAGE, message_status=400)
        assert self.dispatcher.decide(MISMATCH, settings).http_status == 400

    def test_internal_error(self) -> None:
        settings = CsrfpSettings(action=ActionKind.INTERNAL_ERROR)
        decision = self.dispatcher.decide(ValidationOutcome.FAILED_NO_COOKIE_TOKEN, settings)
        assert decision.continue_processing is False
        assert decision.http_status == 500

    def test_strip_continues(self) -> None:
        decision = self.dispatcher.decide(MISMATCH, CsrfpSettings(action=ActionKind.STRIP))
        assert decision.continue_processing is True
        assert decision.strip is True
        assert decision.http_status is None

    @pytest.mark.parametrize("outcome", [ValidationOutcome.PASSED, ValidationOutcome.NOT_APPLICABLE])
    def test_not_invoked_for_successful_outcomes(self, outcome: ValidationOutcome) -> None:
        with pytest.raises(ValueError):
            self.dispatcher.decide(outcome, CsrfpSettings())


class TestStripRequest:
    def test_post_loses_body(self) -> None:
        ctx = RequestContext(method="POST", body=b"csrfp_token=x&a=1", content_length=17)
        stripped = strip_request(ctx)
        assert stripped.body == b""
        assert stripped.content_length == 0
        assert ctx.body == b"csrfp_token=x&a=1"

    def test_get_loses_query(self) -> None:
        ctx = RequestContext(method="GET", raw_query_string="csrfp_token=x&a=1")
        assert strip_request(ctx).raw_query_string == ""

    def test_other_methods_untouched(self) -> None:
        ctx = RequestContext(method="PUT", body=b"data")
        assert strip_request(ctx) is ctx
