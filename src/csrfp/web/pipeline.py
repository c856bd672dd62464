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
"""RequestPipeline — per-request orchestration of validation and rewriting.

States::

    RECEIVED -> PARSED -> VALIDATED -> REJECTED ----------------------> SENT
                                    \-> ACCEPTED -> RESPONSE_REWRITTEN -> SENT

A disabled protector moves a request from PARSED straight to ACCEPTED with
no token refresh and no rewriter.  Rejected requests never reach the
application and their synthetic responses are never rewritten.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

import structlog

from csrfp.kernel.exceptions import ValidationFailure
from csrfp.security.actions import ActionDecision, ActionDispatcher, strip_request
from csrfp.security.cookies import CookieTokenStore
from csrfp.security.settings import CsrfpSettings, SettingsHolder
from csrfp.security.tokens import TokenGenerator
from csrfp.security.validator import TokenValidator, ValidationOutcome
from csrfp.web.context import RequestContext, ResponseRewriteState
from csrfp.web.parsers import FormBodyParser
from csrfp.web.rewriter import ResponseRewriter

logger = structlog.get_logger("csrfp.web")


class PipelineState(Enum):
    RECEIVED = "received"
    PARSED = "parsed"
    VALIDATED = "validated"
    REJECTED = "rejected"
    ACCEPTED = "accepted"
    RESPONSE_REWRITTEN = "response_rewritten"
    SENT = "sent"


_TRANSITIONS: dict[PipelineState, frozenset[PipelineState]] = {
    PipelineState.RECEIVED: frozenset({PipelineState.PARSED}),
    PipelineState.PARSED: frozenset({PipelineState.VALIDATED, PipelineState.ACCEPTED}),
    PipelineState.VALIDATED: frozenset({PipelineState.REJECTED, PipelineState.ACCEPTED}),
    PipelineState.REJECTED: frozenset({PipelineState.SENT}),
    PipelineState.ACCEPTED: frozenset({PipelineState.RESPONSE_REWRITTEN, PipelineState.SENT}),
    PipelineState.RESPONSE_REWRITTEN: frozenset({PipelineState.SENT}),
    PipelineState.SENT: frozenset(),
}


@dataclass
class PipelineRun:
    """Everything one request carries through the pipeline."""

    settings: CsrfpSettings
    ctx: RequestContext | None = None
    state: PipelineState = PipelineState.RECEIVED
    outcome: ValidationOutcome | None = None
    decision: ActionDecision | None = None
    rewrite: ResponseRewriteState = field(default_factory=ResponseRewriteState)
    history: list[PipelineState] = field(default_factory=lambda: [PipelineState.RECEIVED])

    @property
    def rejected(self) -> bool:
        return self.state is PipelineState.REJECTED

    @property
    def rewrite_required(self) -> bool:
        return self.rewrite.needs_token_refresh

    def transition(self, target: PipelineState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"illegal pipeline transition {self.state.value} -> {target.value}")
        self.state = target
        self.history.append(target)


class RequestPipeline:
    """Validate-or-act for one request, then hand off to a :class:`ResponseRewriter`.

    Accepts either a fixed :class:`CsrfpSettings` snapshot or a
    :class:`SettingsHolder`; with a holder, each request reads the snapshot
    current at the time :meth:`begin` is called.
    """

    def __init__(
        self,
        settings: CsrfpSettings | SettingsHolder | None = None,
        validator: TokenValidator | None = None,
        dispatcher: ActionDispatcher | None = None,
        generator: TokenGenerator | None = None,
        cookie_store: CookieTokenStore | None = None,
    ) -> None:
        if isinstance(settings, SettingsHolder):
            self._holder = settings
        else:
            self._holder = SettingsHolder(settings)
        self._cookie_store = cookie_store or CookieTokenStore()
        self._validator = validator or TokenValidator(cookie_store=self._cookie_store)
        self._dispatcher = dispatcher or ActionDispatcher()
        self._generator = generator or TokenGenerator()
        self._form_parser = FormBodyParser()

    @property
    def settings(self) -> CsrfpSettings:
        return self._holder.current

    def begin(self) -> PipelineRun:
        return PipelineRun(settings=self._holder.current)

    def needs_body(self, run: PipelineRun, ctx: RequestContext) -> bool:
        """Return ``True`` if validating *ctx* requires its form body."""
        return run.settings.enabled and self._form_parser.applies_to(ctx)

    def process(self, run: PipelineRun, ctx: RequestContext) -> PipelineRun:
        settings = run.settings
        run.ctx = ctx
        run.transition(PipelineState.PARSED)

        if not settings.enabled:
            run.transition(PipelineState.ACCEPTED)
            return run

        failure: ValidationFailure | None = None
        try:
            run.outcome = self._validator.require(ctx, settings)
        except ValidationFailure as exc:
            run.outcome = exc.outcome
            failure = exc
        run.transition(PipelineState.VALIDATED)

        if failure is not None:
            logger.warning(
                "csrfp_validation_failed",
                method=ctx.method,
                path=ctx.path,
                outcome=failure.outcome.value,
                code=failure.code,
            )
            decision = self._dispatcher.decide(failure.outcome, settings)
            run.decision = decision
            if not decision.continue_processing:
                run.transition(PipelineState.REJECTED)
                return run
            if decision.strip:
                run.ctx = strip_request(ctx)

        run.rewrite.needs_token_refresh = True
        run.transition(PipelineState.ACCEPTED)
        return run

    def open_rewriter(self, run: PipelineRun, inject_body: bool = True) -> ResponseRewriter:
        """Create the single :class:`ResponseRewriter` for an accepted request."""
        if run.rewrite.rewriter_opened:
            raise RuntimeError("response rewriter already opened for this request")
        run.transition(PipelineState.RESPONSE_REWRITTEN)
        run.rewrite.rewriter_opened = True
        return ResponseRewriter(
            run.settings,
            run.rewrite,
            generator=self._generator,
            cookie_store=self._cookie_store,
            inject_body=inject_body,
        )

    def mark_sent(self, run: PipelineRun) -> None:
        run.transition(PipelineState.SENT)
