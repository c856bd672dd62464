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
"""Tests for token generation and comparison."""

from __future__ import annotations

import secrets
from unittest.mock import patch

import pytest

from csrfp.kernel.exceptions import EntropyUnavailable
from csrfp.security.tokens import TOKEN_ALPHABET, TokenGenerator, generate_token, tokens_match


class TestTokenGenerator:
    @pytest.mark.parametrize("length", [1, 2, 15, 64, 257])
    def test_exact_length_from_alphabet(self, length: int) -> None:
        token = TokenGenerator().generate(length)
        assert len(token) == length
        assert set(token) <= set(TOKEN_ALPHABET)

    def test_alphabet_is_62_alphanumerics(self) -> None:
        assert len(TOKEN_ALPHABET) == 62
        assert TOKEN_ALPHABET.isalnum()
        assert len(set(TOKEN_ALPHABET)) == 62

    def test_tokens_differ_between_calls(self) -> None:
        tokens = {generate_token(32) for _ in range(50)}
        assert len(tokens) == 50

    def test_rejects_non_positive_length(self) -> None:
        with pytest.raises(ValueError):
            TokenGenerator().generate(0)

    def test_entropy_failure_is_not_masked(self) -> None:
        with patch.object(secrets, "choice", side_effect=NotImplementedError("no urandom")):
            with pytest.raises(EntropyUnavailable) as exc_info:
                TokenGenerator().generate(10)
        assert exc_info.value.code == "CSRFP_ENTROPY"


class TestTokensMatch:
    def test_equal(self) -> None:
        assert tokens_match("abc123", "abc123") is True

    def test_different(self) -> None:
        assert tokens_match("abc123", "abc124") is False

    def test_prefix_is_not_a_match(self) -> None:
        assert tokens_match("abc", "abc123") is False
