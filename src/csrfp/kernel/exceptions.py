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
"""Exception hierarchy for the CSRF protector.

All errors inherit from CsrfpException so hosts can catch a single type.

Categories:
- ConfigurationError: a configuration value was malformed or oversized
- ParseError: a request body, query string or cookie header could not be parsed
- ValidationFailure: a request failed the token check
- EntropyUnavailable: no secure randomness source to issue a token
- RewriteError: the response body could not be rewritten
"""

from __future__ import annotations

from typing import Any


class CsrfpException(Exception):
    """Base exception for all CSRF protector errors.

    Args:
        message: Human-readable error description.
        code: Machine-readable error code (e.g. "CSRFP_CONFIG").
        context: Arbitrary key-value pairs for error context and debugging.
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        context: dict | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.context: dict = context if context is not None else {}


class ConfigurationError(CsrfpException):
    """A configuration value was rejected or corrected."""


class ParseError(CsrfpException):
    """Untrusted request input could not be parsed."""


class ValidationFailure(CsrfpException):
    """A request did not carry a matching token.

    Args:
        outcome: The failed ``ValidationOutcome``.
    """

    def __init__(self, outcome: Any, message: str | None = None) -> None:
        super().__init__(message or f"CSRF validation failed: {outcome.value}", code="CSRFP_VALIDATION")
        self.outcome = outcome


class EntropyUnavailable(CsrfpException):
    """The operating system randomness source is unavailable."""


class RewriteError(CsrfpException):
    """An injection point was not found in the response body."""
