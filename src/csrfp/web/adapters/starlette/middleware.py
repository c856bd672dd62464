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
"""CsrfProtectorMiddleware — pure ASGI binding of the request pipeline."""

from __future__ import annotations

from fnmatch import fnmatch
from pathlib import Path
from typing import Any

import structlog
from starlette.datastructures import Headers
from starlette.responses import HTMLResponse, PlainTextResponse, RedirectResponse, Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from csrfp.core.config import Config
from csrfp.kernel.exceptions import EntropyUnavailable, ParseError
from csrfp.logging.port import LoggingPort
from csrfp.security.actions import ActionDecision
from csrfp.security.settings import CsrfpSettings, SettingsHolder
from csrfp.web.context import RequestContext
from csrfp.web.parsers import parse_content_length
from csrfp.web.pipeline import PipelineRun, RequestPipeline

logger = structlog.get_logger("csrfp.web")


class CsrfProtectorMiddleware:
    """Validates form POSTs (and selected GETs) and rewrites accepted responses.

    Uses the raw ASGI protocol instead of ``BaseHTTPMiddleware`` so response
    bodies stream through the rewriter chunk by chunk.

    Args:
        app: The downstream ASGI application.
        settings: A fixed settings snapshot, or a :class:`SettingsHolder`
            whose ``current`` snapshot is read at the start of each request.
        pipeline: A preconfigured pipeline; overrides *settings*.
        logging_port: Optional backend that tags each request's events with
            its method and path.
    """

    def __init__(
        self,
        app: ASGIApp,
        settings: CsrfpSettings | SettingsHolder | None = None,
        pipeline: RequestPipeline | None = None,
        logging_port: LoggingPort | None = None,
    ) -> None:
        self.app = app
        self.logging_port = logging_port
        self.holder = settings if isinstance(settings, SettingsHolder) else SettingsHolder(settings)
        self.pipeline = pipeline or RequestPipeline(self.holder)

    @classmethod
    def from_config(
        cls, app: ASGIApp, config: Config, logging_port: LoggingPort | None = None
    ) -> CsrfProtectorMiddleware:
        """Build the middleware from the ``csrfp`` section of *config*.

        Call ``middleware.holder.reload(new_config)`` to publish new settings.
        """
        if logging_port is not None:
            logging_port.configure(config)
        holder = SettingsHolder()
        holder.reload(config)
        return cls(app, settings=holder, logging_port=logging_port)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        if self.logging_port is None:
            await self._handle(scope, receive, send)
            return
        self.logging_port.bind_request(scope["method"], scope.get("path", "/"))
        try:
            await self._handle(scope, receive, send)
        finally:
            self.logging_port.clear_request()

    async def _handle(self, scope: Scope, receive: Receive, send: Send) -> None:
        run = self.pipeline.begin()
        path: str = scope.get("path", "/")
        if any(fnmatch(path, p) for p in run.settings.exclude_patterns):
            await self.app(scope, receive, send)
            return

        ctx = request_context(scope)
        if self.pipeline.needs_body(run, ctx):
            ctx.body, receive = await read_bounded_body(receive, ctx.content_length, run.settings.max_body_size)

        self.pipeline.process(run, ctx)

        if run.rejected:
            await decision_response(run.decision)(scope, receive, send)
            self.pipeline.mark_sent(run)
            return

        if run.decision is not None and run.decision.strip:
            scope, receive = _stripped(scope, receive, ctx)

        if not run.rewrite_required:
            await self.app(scope, receive, send)
            self.pipeline.mark_sent(run)
            return

        await self._call_with_rewriter(run, scope, receive, send)
        self.pipeline.mark_sent(run)

    async def _call_with_rewriter(self, run: PipelineRun, scope: Scope, receive: Receive, send: Send) -> None:
        rewriter = self.pipeline.open_rewriter(run, inject_body=scope["method"] != "HEAD")
        aborted = False

        async def _send(message: Message) -> None:
            nonlocal aborted
            if aborted:
                return
            kind = message["type"]
            if kind == "http.response.start":
                try:
                    headers = rewriter.start(message["status"], list(message.get("headers", [])))
                except EntropyUnavailable as exc:
                    logger.error("csrfp_entropy_unavailable", error=str(exc), path=scope.get("path"))
                    aborted = True
                    await PlainTextResponse("Internal Server Error", status_code=500)(scope, receive, send)
                    return
                await send({**message, "headers": headers})
            elif kind == "http.response.body":
                body = rewriter.body(message.get("body", b""), message.get("more_body", False))
                await send({**message, "body": body})
            elif kind == "http.response.pathsend":
                # Zero-copy file responses are read so the rewriter can see them.
                body = Path(message.get("path", "")).read_bytes()
                await send({"type": "http.response.body", "body": rewriter.body(body, False)})
            else:
                await send(message)

        await self.app(scope, receive, _send)


def request_context(scope: Scope) -> RequestContext:
    """Build a :class:`RequestContext` (without body) from an ASGI HTTP scope."""
    headers = Headers(scope=scope)
    try:
        content_length = parse_content_length(headers.get("content-length"))
    except ParseError as exc:
        logger.info("csrfp_bad_content_length", error=str(exc))
        content_length = None
    return RequestContext(
        method=scope["method"],
        path=scope.get("path", "/"),
        raw_cookie_header=headers.get("cookie"),
        raw_query_string=scope.get("query_string", b"").decode("latin-1"),
        content_type=headers.get("content-type"),
        content_length=content_length,
    )


async def read_bounded_body(
    receive: Receive, content_length: int | None, max_body_size: int
) -> tuple[bytes, Receive]:
    """Read up to *content_length* body bytes and return them with a replaying ``receive``.

    Nothing is read when the length is undeclared, zero or above
    *max_body_size*; the returned body is then empty and the original
    ``receive`` is returned.
    """
    if not content_length or content_length > max_body_size:
        if content_length:
            logger.warning("csrfp_body_too_large", content_length=content_length, limit=max_body_size)
        return b"", receive

    chunks: list[bytes] = []
    received = 0
    more_body = True
    replay_tail: Message | None = None
    while more_body and received < content_length:
        message = await receive()
        if message["type"] != "http.request":
            replay_tail = message
            break
        chunk = message.get("body", b"")
        chunks.append(chunk)
        received += len(chunk)
        more_body = message.get("more_body", False)

    raw = b"".join(chunks)
    replayed = False

    async def _replay() -> Message:
        nonlocal replayed
        if not replayed:
            replayed = True
            return {"type": "http.request", "body": raw, "more_body": more_body and replay_tail is None}
        if replay_tail is not None:
            return replay_tail
        return await receive()

    return raw[:content_length], _replay


def _stripped(scope: Scope, receive: Receive, ctx: RequestContext) -> tuple[Scope, Receive]:
    """Rewrite *scope* and *receive* so the application sees the stripped request."""
    scope = dict(scope)
    if ctx.is_post:
        scope["headers"] = [
            (k, v) for k, v in scope.get("headers", []) if k.lower() != b"content-length"
        ] + [(b"content-length", b"0")]
        sent = False

        async def _empty() -> Message:
            nonlocal sent
            if not sent:
                sent = True
                return {"type": "http.request", "body": b"", "more_body": False}
            # drain whatever the client still sends
            while True:
                message = await receive()
                if message["type"] != "http.request":
                    return message

        return scope, _empty
    if ctx.is_get:
        scope["query_string"] = b""
    return scope, receive


def decision_response(decision: ActionDecision | None) -> Response:
    """Build the synthetic response for a terminal :class:`ActionDecision`.

    A rejection without a decision is answered with 403.
    """
    if decision is None:
        return PlainTextResponse("Forbidden", status_code=403)
    status = decision.http_status or 403
    if decision.redirect_to is not None:
        return RedirectResponse(decision.redirect_to, status_code=status)
    if decision.body is not None:
        return HTMLResponse(decision.body, status_code=status)
    if status == 500:
        return PlainTextResponse("Internal Server Error", status_code=500)
    return PlainTextResponse("Forbidden", status_code=status)


def protect(app: ASGIApp, **options: Any) -> CsrfProtectorMiddleware:
    """Wrap *app* with settings built from keyword options (``action="redirect"`` ...)."""
    return CsrfProtectorMiddleware(app, settings=CsrfpSettings.from_mapping(options))
