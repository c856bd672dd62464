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
"""Maps a failed validation to the configured protective action."""

from __future__ import annotations

from dataclasses import dataclass, replace

import structlog

from csrfp.security.settings import ActionKind, CsrfpSettings
from csrfp.security.validator import ValidationOutcome
from csrfp.web.context import RequestContext

logger = structlog.get_logger("csrfp.security")


@dataclass(frozen=True)
class ActionDecision:
    """The terminal (or pass-through) result of a failed validation."""

    continue_processing: bool
    action: ActionKind
    http_status: int | None = None
    body: str | None = None
    redirect_to: str | None = None
    strip: bool = False


class ActionDispatcher:
    """Turns a ``Failed*`` outcome plus settings into an :class:`ActionDecision`."""

    def decide(self, outcome: ValidationOutcome, settings: CsrfpSettings) -> ActionDecision:
        if not outcome.failed:
            raise ValueError(f"no action for outcome {outcome.value}")

        action = settings.action
        if action is ActionKind.STRIP:
            decision = ActionDecision(continue_processing=True, action=action, strip=True)
        elif action is ActionKind.REDIRECT and settings.error_redirection_uri:
            decision = ActionDecision(
                continue_processing=False,
                action=action,
                http_status=settings.redirect_status,
                redirect_to=settings.error_redirection_uri,
            )
        elif action is ActionKind.MESSAGE:
            decision = ActionDecision(
                continue_processing=False,
                action=action,
                http_status=settings.message_status,
                body=f"<h2>{settings.error_custom_message}</h2>",
            )
        elif action is ActionKind.INTERNAL_ERROR:
            decision = ActionDecision(continue_processing=False, action=action, http_status=500)
        else:
            if action is ActionKind.REDIRECT:
                logger.warning("csrfp_redirect_without_uri", fallback=ActionKind.FORBIDDEN.value)
            decision = ActionDecision(
                continue_processing=False, action=ActionKind.FORBIDDEN, http_status=403
            )

        logger.info(
            "csrfp_action",
            outcome=outcome.value,
            action=decision.action.value,
            status=decision.http_status,
        )
        return decision


def strip_request(ctx: RequestContext) -> RequestContext:
    """Return a copy of *ctx* without the parameters that carried the token.

    A POST loses its whole body; a GET loses its whole query string.
    """
    if ctx.is_post:
        return replace(ctx, body=b"", content_length=0)
    if ctx.is_get:
        return replace(ctx, raw_query_string="")
    return ctx
