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
"""Token generation for the double-submit cookie pattern."""

from __future__ import annotations

import secrets
import string

from csrfp.kernel.exceptions import EntropyUnavailable

TOKEN_ALPHABET: str = string.ascii_letters + string.digits
"""The 62 characters a token is drawn from."""


class TokenGenerator:
    """Produces alphanumeric tokens from the operating system CSPRNG.

    ``secrets`` draws from ``os.urandom``, which is seeded by the kernel and
    safe to call from many threads or tasks at once.
    """

    def __init__(self, alphabet: str = TOKEN_ALPHABET) -> None:
        self._alphabet = alphabet

    def generate(self, length: int) -> str:
        """Return a token of exactly *length* characters.

        Raises:
            ValueError: if *length* is less than 1.
            EntropyUnavailable: if the randomness source cannot be read.
        """
        if length < 1:
            raise ValueError(f"token length must be >= 1, got {length}")
        try:
            return "".join(secrets.choice(self._alphabet) for _ in range(length))
        except (NotImplementedError, OSError) as exc:
            raise EntropyUnavailable(
                "secure randomness source unavailable", code="CSRFP_ENTROPY"
            ) from exc


_default_generator = TokenGenerator()


def generate_token(length: int) -> str:
    """Generate a token with the shared default generator."""
    return _default_generator.generate(length)


def tokens_match(client_token: str, cookie_token: str) -> bool:
    """Full-length, timing-safe equality of two tokens."""
    return secrets.compare_digest(client_token.encode(), cookie_token.encode())
