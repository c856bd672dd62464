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
"""ResponseRewriter — streaming rewrite of protected responses.

Two markup insertions are made into HTML bodies:

* a ``<noscript>`` block right after the first ``<body ...>`` tag, and
* a ``<script src=...>`` reference right before the first ``</body>``.

The body is never buffered as a whole.  Between chunks the injector keeps
at most the last few bytes starting at a ``<`` that could begin a split
``<body`` / ``</body`` tag.
"""

from __future__ import annotations

import re
from html import escape

import structlog

from csrfp import __version__
from csrfp.kernel.exceptions import RewriteError
from csrfp.security.cookies import CookieTokenStore
from csrfp.security.settings import CsrfpSettings
from csrfp.security.tokens import TokenGenerator
from csrfp.web.context import ResponseRewriteState
from csrfp.web.parsers import media_type

logger = structlog.get_logger("csrfp.web")

PROTECTED_BY_HEADER = b"x-protected-by"
PROTECTED_BY_VALUE = f"CSRFP {__version__}"

HTML_MEDIA_TYPES = frozenset({"text/html", "application/xhtml+xml"})

_OPEN_BODY_RE = re.compile(rb"<body(?=[\s>/])", re.IGNORECASE)
_CLOSE_BODY_RE = re.compile(rb"</body(?=[\s>])", re.IGNORECASE)
_CHARSET_RE = re.compile(r"charset\s*=\s*[\"']?([\w.:-]+)", re.IGNORECASE)

# len(b"</body") plus one byte of lookahead
_LOOKBACK = 7


def noscript_markup(message: str) -> str:
    return f"<noscript>{message}</noscript>"


def script_markup(js_uri: str) -> str:
    return f'<script type="text/javascript" src="{escape(js_uri, quote=True)}"></script>'


class HtmlInjector:
    """Incremental byte-stream transform inserting markup around ``<body>``.

    Call :meth:`feed` for every chunk and :meth:`finish` once at the end.
    Either insertion may be ``None`` to disable it.
    """

    def __init__(self, after_body_open: bytes | None, before_body_close: bytes | None) -> None:
        self._after_open = after_body_open
        self._before_close = before_body_close
        self._pending = b""
        self._in_open_tag = False
        self._quote: int | None = None
        self.opened = after_body_open is None
        self.closed = before_body_close is None

    @property
    def done(self) -> bool:
        return self.opened and self.closed and not self._in_open_tag

    def feed(self, chunk: bytes) -> bytes:
        data = self._pending + chunk if self._pending else chunk
        self._pending = b""
        if self.done:
            return data

        out: list[bytes] = []
        pos = 0
        end = len(data)
        while pos < end:
            if self._in_open_tag:
                stop = self._scan_open_tag(data, pos)
                if stop is None:
                    out.append(data[pos:])
                    pos = end
                    break
                if data[stop] == ord(">"):
                    out.append(data[pos : stop + 1])
                    out.append(self._after_open or b"")
                    self.opened = True
                    pos = stop + 1
                else:
                    # a stray "<" inside the tag: the tag was malformed, look again
                    out.append(data[pos:stop])
                    pos = stop
                continue

            if self.done:
                out.append(data[pos:])
                pos = end
                break

            open_m = None if self.opened else _OPEN_BODY_RE.search(data, pos)
            close_m = None if self.closed else _CLOSE_BODY_RE.search(data, pos)

            if open_m is not None and (close_m is None or open_m.start() < close_m.start()):
                out.append(data[pos : open_m.end()])
                self._in_open_tag = True
                self._quote = None
                pos = open_m.end()
            elif close_m is not None:
                out.append(data[pos : close_m.start()])
                out.append(self._before_close or b"")
                self.closed = True
                pos = close_m.start()
            else:
                hold = data.rfind(b"<", max(pos, end - _LOOKBACK))
                if hold == -1:
                    out.append(data[pos:])
                else:
                    out.append(data[pos:hold])
                    self._pending = data[hold:]
                pos = end

        return b"".join(out)

    def _scan_open_tag(self, data: bytes, pos: int) -> int | None:
        """Index of the ``>`` closing the open tag, of a stray ``<``, or ``None``."""
        for i in range(pos, len(data)):
            byte = data[i]
            if self._quote is not None:
                if byte == self._quote:
                    self._quote = None
            elif byte in (0x22, 0x27):
                self._quote = byte
            elif byte == 0x3E:
                self._in_open_tag = False
                return i
            elif byte == 0x3C:
                self._in_open_tag = False
                return i
        return None

    def finish(self) -> bytes:
        tail, self._pending = self._pending, b""
        return tail

    def verify(self) -> None:
        """Raise :class:`RewriteError` if an enabled insertion never happened."""
        missing = []
        if not self.opened:
            missing.append("<body>")
        if not self.closed:
            missing.append("</body>")
        if missing:
            raise RewriteError(
                "injection point not found in response body",
                code="CSRFP_REWRITE",
                context={"missing": missing},
            )


class ResponseRewriter:
    """Rewrites the response of one accepted request.

    :meth:`start` handles the ``http.response.start`` headers and
    :meth:`body` every body chunk.  Non-HTML responses only gain headers.
    """

    def __init__(
        self,
        settings: CsrfpSettings,
        state: ResponseRewriteState,
        generator: TokenGenerator | None = None,
        cookie_store: CookieTokenStore | None = None,
        inject_body: bool = True,
    ) -> None:
        self._settings = settings
        self._state = state
        self._generator = generator or TokenGenerator()
        self._cookie_store = cookie_store or CookieTokenStore()
        self._inject_body = inject_body
        self._injector: HtmlInjector | None = None
        self._finished = False

    @property
    def injector(self) -> HtmlInjector | None:
        return self._injector

    def start(self, status: int, headers: list[tuple[bytes, bytes]]) -> list[tuple[bytes, bytes]]:
        """Return the rewritten raw header list.

        Raises:
            EntropyUnavailable: if a refreshed token cannot be generated.
        """
        headers = list(headers)
        if self._state.needs_token_refresh:
            token = self._state.issue_token(self._generator, self._settings.token_length)
            headers.append((b"set-cookie", self._set_cookie_value(token).encode("latin-1")))
            headers.append((PROTECTED_BY_HEADER, PROTECTED_BY_VALUE.encode("latin-1")))
            logger.debug("csrfp_token_issued", token_length=len(token))

        if self._should_inject(status, headers):
            charset = _charset(headers)
            self._injector = HtmlInjector(
                self._encode(noscript_markup(self._settings.disables_js_message), charset)
                if self._settings.inject_noscript
                else None,
                self._encode(script_markup(self._settings.js_file_path), charset)
                if self._settings.inject_script
                else None,
            )
            headers = [(k, v) for k, v in headers if k.lower() != b"content-length"]
        return headers

    def body(self, chunk: bytes, more_body: bool = False) -> bytes:
        if self._injector is None or self._finished:
            return chunk
        out = self._injector.feed(chunk)
        if not more_body:
            self._finished = True
            out += self._injector.finish()
            try:
                self._injector.verify()
            except RewriteError as exc:
                logger.warning("csrfp_rewrite_degraded", error=str(exc), missing=exc.context["missing"])
        return out

    def _should_inject(self, status: int, headers: list[tuple[bytes, bytes]]) -> bool:
        if not self._inject_body or status in (204, 304) or status < 200:
            return False
        if not (self._settings.inject_noscript or self._settings.inject_script):
            return False
        values = {k.lower(): v for k, v in headers}
        content_type = values.get(b"content-type", b"").decode("latin-1")
        if media_type(content_type) not in HTML_MEDIA_TYPES:
            return False
        encoding = values.get(b"content-encoding", b"identity").decode("latin-1").strip().lower()
        if encoding not in ("", "identity"):
            logger.info("csrfp_rewrite_skipped", reason="encoded body", content_encoding=encoding)
            return False
        return True

    def _set_cookie_value(self, token: str) -> str:
        s = self._settings
        return self._cookie_store.serialize(
            token,
            path=s.cookie_path,
            domain=s.cookie_domain,
            secure=s.cookie_secure,
            httponly=s.cookie_http_only,
            samesite=s.cookie_same_site,  # type: ignore[arg-type]
        )

    @staticmethod
    def _encode(markup: str, charset: str) -> bytes:
        try:
            return markup.encode(charset, errors="xmlcharrefreplace")
        except LookupError:
            return markup.encode("utf-8")


def _charset(headers: list[tuple[bytes, bytes]]) -> str:
    for key, value in headers:
        if key.lower() == b"content-type":
            match = _CHARSET_RE.search(value.decode("latin-1"))
            if match:
                return match.group(1)
    return "utf-8"
