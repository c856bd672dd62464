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
"""Tests for the csrfp command line."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

from click.testing import CliRunner

from csrfp.cli.main import cli
from csrfp.kernel.exceptions import EntropyUnavailable
from csrfp.security.tokens import TOKEN_ALPHABET, TokenGenerator


class TestTokenCommand:
    def test_default_token(self):
        result = CliRunner().invoke(cli, ["token"])
        assert result.exit_code == 0, result.output
        token = result.output.strip()
        assert len(token) == 15
        assert set(token) <= set(TOKEN_ALPHABET)

    def test_length_and_count(self):
        result = CliRunner().invoke(cli, ["token", "--length", "30", "--count", "3"])
        assert result.exit_code == 0, result.output
        lines = result.output.split()
        assert len(lines) == 3
        assert all(len(line) == 30 for line in lines)

    def test_rejects_zero_length(self):
        result = CliRunner().invoke(cli, ["token", "--length", "0"])
        assert result.exit_code != 0

    def test_entropy_failure(self):
        with patch.object(TokenGenerator, "generate", side_effect=EntropyUnavailable("no entropy")):
            result = CliRunner().invoke(cli, ["token"])
        assert result.exit_code == 1
        assert "no entropy" in result.output


class TestConfigCommand:
    def test_defaults(self):
        result = CliRunner().invoke(cli, ["config"])
        assert result.exit_code == 0, result.output
        assert "forbidden" in result.output
        assert "token_length" in result.output

    def test_file(self, tmp_path: Path):
        path = tmp_path / "csrfp.yaml"
        path.write_text("csrfp:\n  csrfpAction: strip\n  verifyGetFor: ^/admin\n")
        result = CliRunner().invoke(cli, ["config", str(path)])
        assert result.exit_code == 0, result.output
        assert "strip" in result.output
        assert "^/admin" in result.output

    def test_missing_file(self, tmp_path: Path):
        result = CliRunner().invoke(cli, ["config", str(tmp_path / "nope.yaml")])
        assert result.exit_code != 0
        assert "not found" in result.output

    def test_unresolved_placeholder_uses_default(self, tmp_path: Path):
        path = tmp_path / "csrfp.yaml"
        path.write_text("csrfp:\n  action: message\n  token_length: ${CSRFP_TEST_UNSET_CLI}\n")
        result = CliRunner().invoke(cli, ["config", str(path)])
        assert result.exit_code == 0, result.output
        assert "message" in result.output
        assert "15" in result.output
