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
"""StructlogAdapter — structlog backend with token redaction."""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterable, MutableMapping
from typing import Any

import structlog

from csrfp.core.config import Config

REDACTED = "[redacted]"

#: Event keys whose values are always masked.
TOKEN_KEYS: frozenset[str] = frozenset(
    {"token", "csrfp_token", "new_token", "client_token", "cookie_token", "cookie", "set_cookie"}
)

_REQUEST_KEYS = ("http_method", "http_path")


class TokenRedactor:
    """structlog processor that masks token-bearing keys in an event dict.

    Keys are matched case-insensitively.  Values are replaced, never removed,
    so the presence of a token in an event is still visible.
    """

    def __init__(self, keys: Iterable[str] = TOKEN_KEYS) -> None:
        self.keys = frozenset(k.lower() for k in keys)

    def __call__(self, logger: Any, method_name: str, event_dict: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
        for key in event_dict:
            if key.lower() in self.keys and event_dict[key] is not None:
                event_dict[key] = REDACTED
        return event_dict


class StructlogAdapter:
    """Logging adapter backed by structlog.

    Reads ``csrfp.logging.level`` (``root`` plus per-logger entries such as
    ``csrfp.web: DEBUG``), ``csrfp.logging.format`` (``console`` or ``json``)
    and ``csrfp.logging.redact`` (extra event keys to mask on top of
    :data:`TOKEN_KEYS`).
    """

    def __init__(self) -> None:
        self._root_level: str = "INFO"
        self._format: str = "console"
        self._module_levels: dict[str, str] = {}
        self.redactor = TokenRedactor()

    def configure(self, config: Config) -> None:
        level_section = dict(config.get_section("csrfp.logging.level"))
        self._root_level = str(level_section.pop("root", "INFO")).upper()
        self._module_levels = {k: str(v).upper() for k, v in level_section.items()}
        self._format = str(config.get("csrfp.logging.format", "console")).lower()

        extra = config.get("csrfp.logging.redact") or []
        if isinstance(extra, str):
            extra = [k.strip() for k in extra.split(",") if k.strip()]
        self.redactor = TokenRedactor(TOKEN_KEYS | {str(k) for k in extra})

        self._setup_structlog()
        for module, level in self._module_levels.items():
            self.set_level(module, level)

    def get_logger(self, name: str) -> Any:
        return structlog.get_logger(name)

    def set_level(self, name: str, level: str) -> None:
        log_level = getattr(logging, level.upper(), logging.INFO)
        logging.getLogger(name).setLevel(log_level)

    def bind_request(self, method: str, path: str) -> None:
        structlog.contextvars.bind_contextvars(http_method=method, http_path=path)

    def clear_request(self) -> None:
        structlog.contextvars.unbind_contextvars(*_REQUEST_KEYS)

    def _setup_structlog(self) -> None:
        log_level = getattr(logging, self._root_level, logging.INFO)

        processors: list[structlog.types.Processor] = [
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            self.redactor,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
        ]

        if self._format == "json":
            processors.append(structlog.processors.JSONRenderer())
        else:
            processors.append(structlog.dev.ConsoleRenderer())

        structlog.configure(
            processors=processors,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )

        logging.basicConfig(
            format="%(message)s",
            stream=sys.stdout,
            level=log_level,
            force=True,
        )
