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
"""Tests for StructlogAdapter and the LoggingPort protocol."""

import logging
from typing import Any

import structlog

from csrfp.core.config import Config
from csrfp.logging.port import LoggingPort
from csrfp.logging.structlog_adapter import REDACTED, StructlogAdapter, TokenRedactor


class TestLoggingPort:
    def test_adapter_conforms(self):
        assert isinstance(StructlogAdapter(), LoggingPort)

    def test_non_conforming_class_is_not_instance(self):
        class Incomplete:
            def get_logger(self, name: str) -> Any:
                pass

        assert not isinstance(Incomplete(), LoggingPort)


class TestStructlogAdapterConfigure:
    def test_defaults(self):
        adapter = StructlogAdapter()
        adapter.configure(Config({}))
        assert adapter._root_level == "INFO"
        assert adapter._format == "console"

    def test_reads_root_level_and_format(self):
        adapter = StructlogAdapter()
        adapter.configure(Config({"csrfp": {"logging": {"level": {"root": "debug"}, "format": "JSON"}}}))
        assert adapter._root_level == "DEBUG"
        assert adapter._format == "json"

    def test_per_module_levels(self):
        adapter = StructlogAdapter()
        adapter.configure(Config({"csrfp": {"logging": {"level": {"root": "INFO", "csrfp.web": "WARNING"}}}}))
        assert adapter._module_levels == {"csrfp.web": "WARNING"}
        assert logging.getLogger("csrfp.web").level == logging.WARNING


class TestStructlogAdapterLoggers:
    def test_get_logger(self):
        adapter = StructlogAdapter()
        adapter.configure(Config({}))
        logger = adapter.get_logger("csrfp.test")
        assert callable(getattr(logger, "info", None))
        assert callable(getattr(logger, "warning", None))

    def test_set_level(self):
        adapter = StructlogAdapter()
        adapter.set_level("csrfp.security", "DEBUG")
        assert logging.getLogger("csrfp.security").level == logging.DEBUG


class TestTokenRedactor:
    def test_masks_token_keys(self):
        event = {"event": "csrfp_token_issued", "token": "abc", "csrfp_token": "def", "path": "/"}
        out = TokenRedactor()(None, "info", event)
        assert out["token"] == REDACTED
        assert out["csrfp_token"] == REDACTED
        assert out["path"] == "/"
        assert out["event"] == "csrfp_token_issued"

    def test_case_insensitive(self):
        out = TokenRedactor()(None, "info", {"Cookie": "csrfp_token=abc"})
        assert out["Cookie"] == REDACTED

    def test_none_left_alone(self):
        assert TokenRedactor()(None, "info", {"token": None})["token"] is None

    def test_extra_keys_from_config(self):
        adapter = StructlogAdapter()
        adapter.configure(Config({"csrfp": {"logging": {"redact": ["session"]}}}))
        out = adapter.redactor(None, "info", {"session": "s1", "token": "t"})
        assert out == {"session": REDACTED, "token": REDACTED}

    def test_extra_keys_as_comma_string(self):
        adapter = StructlogAdapter()
        adapter.configure(Config({"csrfp": {"logging": {"redact": "session, auth"}}}))
        assert {"session", "auth", "token"} <= adapter.redactor.keys

    def test_installed_before_renderer(self):
        adapter = StructlogAdapter()
        adapter.configure(Config({}))
        processors = structlog.get_config()["processors"]
        assert adapter.redactor in processors
        assert processors.index(adapter.redactor) < len(processors) - 1


class TestRequestBinding:
    def test_bind_and_clear(self):
        adapter = StructlogAdapter()
        structlog.contextvars.bind_contextvars(request_id="r1")
        try:
            adapter.bind_request("POST", "/submit")
            bound = structlog.contextvars.get_contextvars()
            assert bound["http_method"] == "POST"
            assert bound["http_path"] == "/submit"

            adapter.clear_request()
            bound = structlog.contextvars.get_contextvars()
            assert "http_method" not in bound
            assert "http_path" not in bound
            assert bound["request_id"] == "r1"
        finally:
            structlog.contextvars.clear_contextvars()
