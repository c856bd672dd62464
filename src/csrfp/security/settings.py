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
"""Immutable protector settings and the holder that publishes them.

A :class:`CsrfpSettings` instance is a snapshot: it is built once from a
:class:`~csrfp.core.config.Config`, never mutated, and shared read-only by
every request.  Reloading builds a new snapshot and swaps it into a
:class:`SettingsHolder` in a single reference assignment.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

import structlog

from csrfp.core.config import Config
from csrfp.kernel.exceptions import ConfigurationError

logger = structlog.get_logger("csrfp.config")

TOKEN_NAME = "csrfp_token"

URI_MAX_LENGTH = 200
ERROR_MESSAGE_MAX_LENGTH = 200
DISABLED_JS_MESSAGE_MAX_LENGTH = 400

DEFAULT_TOKEN_LENGTH = 15
DEFAULT_ERROR_MESSAGE = "ACCESS FORBIDDEN BY OWASP CSRF_PROTECTOR!"
DEFAULT_JS_FILE_PATH = "http://localhost/csrfp_js/csrfprotector.js"
DEFAULT_DISABLED_JS_MESSAGE = (
    "This site attempts to protect users against"
    ' <a href="https://www.owasp.org/index.php/Cross-Site_Request_Forgery_%28CSRF%29">'
    " Cross-Site Request Forgeries </a> attacks. In order to do so, you must have JavaScript"
    " enabled in your web browser otherwise this site will fail to work correctly for you."
    " See details of your web browser for how to enable JavaScript."
)
DEFAULT_MAX_BODY_SIZE = 1024 * 1024


class ActionKind(Enum):
    """Response taken when a request fails validation."""

    FORBIDDEN = "forbidden"
    STRIP = "strip"
    REDIRECT = "redirect"
    MESSAGE = "message"
    INTERNAL_ERROR = "internal_server_error"


# Directive names accepted as aliases for the snake_case keys.
_ALIASES = {
    "csrfpEnable": "enabled",
    "enable": "enabled",
    "csrfpAction": "action",
    "errorRedirectionUri": "error_redirection_uri",
    "errorCustomMessage": "error_custom_message",
    "jsFilePath": "js_file_path",
    "tokenLength": "token_length",
    "disablesJsMessage": "disables_js_message",
    "verifyGetFor": "verify_get_for",
}

_TRUE = frozenset({"on", "true", "1", "yes"})
_FALSE = frozenset({"off", "false", "0", "no"})


@dataclass(frozen=True)
class CsrfpSettings:
    """Configuration snapshot consumed by the request pipeline."""

    enabled: bool = True
    action: ActionKind = ActionKind.FORBIDDEN
    error_redirection_uri: str = ""
    error_custom_message: str = DEFAULT_ERROR_MESSAGE
    js_file_path: str = DEFAULT_JS_FILE_PATH
    token_length: int = DEFAULT_TOKEN_LENGTH
    disables_js_message: str = DEFAULT_DISABLED_JS_MESSAGE
    verify_get_for: tuple[re.Pattern[str], ...] = ()

    cookie_path: str = "/"
    cookie_domain: str | None = None
    cookie_secure: bool = False
    cookie_http_only: bool = False  # the browser script reads the token
    cookie_same_site: str | None = "lax"
    message_status: int = 200
    redirect_status: int = 302
    max_body_size: int = DEFAULT_MAX_BODY_SIZE
    inject_noscript: bool = True
    inject_script: bool = True
    exclude_patterns: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.token_length < 1:
            raise ConfigurationError(
                f"token_length must be >= 1, got {self.token_length}", code="CSRFP_CONFIG"
            )

    def verifies_get(self, path: str) -> bool:
        """Return ``True`` if GET requests to *path* must carry a token."""
        return any(p.search(path) for p in self.verify_get_for)

    @classmethod
    def from_config(cls, config: Config, prefix: str = "csrfp") -> CsrfpSettings:
        """Build a snapshot from the *prefix* section of *config*.

        Malformed values are corrected and logged, never fatal.  Environment
        overrides (``CSRFP_TOKEN_LENGTH`` ...) apply to the snake_case keys.
        """
        raw: dict[str, Any] = {}
        for key in config.get_section(prefix):
            if key in _ALIASES:
                value = _lookup(config, f"{prefix}.{key}", _ALIASES[key])
                if value is not None:
                    raw[_ALIASES[key]] = value
        for name in cls.__dataclass_fields__:
            value = _lookup(config, f"{prefix}.{name}", name)
            if value is not None:
                raw[name] = value
        return cls.from_mapping(raw)

    @classmethod
    def from_mapping(cls, raw: dict[str, Any]) -> CsrfpSettings:
        defaults = cls()
        values: dict[str, Any] = {}

        if "enabled" in raw:
            values["enabled"] = _as_bool("enabled", raw["enabled"], defaults.enabled)
        if "action" in raw:
            values["action"] = _as_action(raw["action"])
        if "error_redirection_uri" in raw:
            values["error_redirection_uri"] = _truncate(
                "error_redirection_uri", raw["error_redirection_uri"], URI_MAX_LENGTH
            )
        if raw.get("error_custom_message"):
            values["error_custom_message"] = _truncate(
                "error_custom_message", raw["error_custom_message"], ERROR_MESSAGE_MAX_LENGTH
            )
        if raw.get("js_file_path"):
            values["js_file_path"] = _truncate("js_file_path", raw["js_file_path"], URI_MAX_LENGTH)
        if "token_length" in raw:
            values["token_length"] = _as_positive_int(
                "token_length", raw["token_length"], DEFAULT_TOKEN_LENGTH
            )
        if raw.get("disables_js_message"):
            values["disables_js_message"] = _truncate(
                "disables_js_message", raw["disables_js_message"], DISABLED_JS_MESSAGE_MAX_LENGTH
            )
        if "verify_get_for" in raw:
            values["verify_get_for"] = _compile_patterns(raw["verify_get_for"])

        if "cookie_path" in raw:
            values["cookie_path"] = str(raw["cookie_path"]) or "/"
        if raw.get("cookie_domain"):
            values["cookie_domain"] = str(raw["cookie_domain"])
        if "cookie_secure" in raw:
            values["cookie_secure"] = _as_bool("cookie_secure", raw["cookie_secure"], False)
        if "cookie_http_only" in raw:
            values["cookie_http_only"] = _as_bool("cookie_http_only", raw["cookie_http_only"], False)
        if "cookie_same_site" in raw:
            values["cookie_same_site"] = _as_same_site(raw["cookie_same_site"])
        if "message_status" in raw:
            values["message_status"] = _as_status("message_status", raw["message_status"], 200)
        if "redirect_status" in raw:
            values["redirect_status"] = _as_redirect_status(raw["redirect_status"])
        if "max_body_size" in raw:
            values["max_body_size"] = _as_positive_int(
                "max_body_size", raw["max_body_size"], DEFAULT_MAX_BODY_SIZE
            )
        if "inject_noscript" in raw:
            values["inject_noscript"] = _as_bool("inject_noscript", raw["inject_noscript"], True)
        if "inject_script" in raw:
            values["inject_script"] = _as_bool("inject_script", raw["inject_script"], True)
        if "exclude_patterns" in raw:
            values["exclude_patterns"] = tuple(str(p) for p in _as_list(raw["exclude_patterns"]))

        return cls(**values)


class SettingsHolder:
    """Publishes settings snapshots to concurrent readers.

    Readers call :attr:`current` once per request and keep that reference;
    :meth:`publish` replaces the reference without touching the old snapshot.
    """

    def __init__(self, settings: CsrfpSettings | None = None) -> None:
        self._settings = settings or CsrfpSettings()

    @property
    def current(self) -> CsrfpSettings:
        return self._settings

    def publish(self, settings: CsrfpSettings) -> None:
        self._settings = settings
        logger.info("csrfp_settings_published", enabled=settings.enabled, action=settings.action.value)

    def reload(self, config: Config) -> CsrfpSettings:
        settings = CsrfpSettings.from_config(config)
        self.publish(settings)
        return settings


# ---------------------------------------------------------------------------
# Normalization helpers
# ---------------------------------------------------------------------------


def _corrected(key: str, message: str, **context: Any) -> None:
    logger.warning("csrfp_config_corrected", key=key, error=message, **context)


def _lookup(config: Config, path: str, name: str) -> Any:
    try:
        return config.get(path)
    except ConfigurationError as exc:
        _corrected(name, str(exc), code=exc.code, **exc.context)
        return None


def _truncate(key: str, value: Any, limit: int) -> str:
    text = str(value)
    if len(text) > limit:
        _corrected(key, f"value longer than {limit} characters was truncated", length=len(text))
        return text[:limit]
    return text


def _as_bool(key: str, value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    _corrected(key, f"unrecognized boolean {value!r}", default=default)
    return default


def _as_action(value: Any) -> ActionKind:
    if isinstance(value, ActionKind):
        return value
    text = str(value).strip().lower()
    for kind in ActionKind:
        if kind.value == text:
            return kind
    _corrected("action", f"unknown action {value!r}, using forbidden")
    return ActionKind.FORBIDDEN


def _as_positive_int(key: str, value: Any, default: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        _corrected(key, f"not an integer: {value!r}", default=default)
        return default
    if number < 1:
        _corrected(key, f"must be positive, got {number}", default=default)
        return default
    return number


def _as_status(key: str, value: Any, default: int) -> int:
    status = _as_positive_int(key, value, default)
    if not 100 <= status <= 599:
        _corrected(key, f"not an HTTP status: {status}", default=default)
        return default
    return status


def _as_redirect_status(value: Any) -> int:
    status = _as_status("redirect_status", value, 302)
    if status not in (301, 302, 303, 307, 308):
        _corrected("redirect_status", f"not a redirect status: {status}", default=302)
        return 302
    return status


def _as_same_site(value: Any) -> str | None:
    if value is None or value is False:
        return None
    text = str(value).strip().lower()
    if text in ("", "off"):
        return None
    if text not in ("lax", "strict", "none"):
        _corrected("cookie_same_site", f"unknown SameSite value {value!r}", default="lax")
        return "lax"
    return text


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value else []
    return list(value)


def _compile_patterns(value: Any) -> tuple[re.Pattern[str], ...]:
    compiled: list[re.Pattern[str]] = []
    for pattern in _as_list(value):
        try:
            compiled.append(re.compile(str(pattern)))
        except re.error as exc:
            _corrected("verify_get_for", f"invalid pattern {pattern!r}: {exc}")
    return tuple(compiled)
