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
"""Tests for reading and writing the token cookie."""

from __future__ import annotations

from starlette.requests import Request
from starlette.responses import Response

from csrfp.security.cookies import CookieTokenStore


class TestCookieExtract:
    def setup_method(self) -> None:
        self.store = CookieTokenStore()

    def test_first_cookie(self) -> None:
        assert self.store.extract("csrfp_token=abc; other=xyz", "csrfp_token") == "abc"

    def test_last_cookie_without_trailing_delimiter(self) -> None:
        assert self.store.extract("other=xyz; csrfp_token=abc", "csrfp_token") == "abc"

    def test_no_substring_match_in_value(self) -> None:
        assert self.store.extract("other=csrfp_token=abc", "csrfp_token") is None

    def test_no_substring_match_in_name(self) -> None:
        assert self.store.extract("xcsrfp_token=evil; csrfp_token_old=bad", "csrfp_token") is None

    def test_whitespace_around_separators(self) -> None:
        assert self.store.extract("  a=1 ;   csrfp_token = abc  ;b=2", "csrfp_token") == "abc"

    def test_absent_header(self) -> None:
        assert self.store.extract(None) is None
        assert self.store.extract("") is None

    def test_pair_without_equals_ignored(self) -> None:
        assert self.store.extract("csrfp_token; csrfp_token=real") == "real"

    def test_quoted_value(self) -> None:
        assert self.store.extract('csrfp_token="abc"') == "abc"

    def test_empty_value(self) -> None:
        assert self.store.extract("csrfp_token=") == ""

    def test_default_cookie_name(self) -> None:
        assert self.store.extract("csrfp_token=tok") == "tok"

    def test_repeated_name_last_wins(self) -> None:
        assert self.store.extract("csrfp_token=old; a=1; csrfp_token=new") == "new"

    def test_matches_starlette_request_cookies(self) -> None:
        header = "a=1; csrfp_token=\"q\"; b=2"
        request = Request({"type": "http", "headers": [(b"cookie", header.encode())]})
        assert self.store.extract(header) == request.cookies["csrfp_token"] == "q"


class TestCookieSerialize:
    def test_path_scope(self) -> None:
        value = CookieTokenStore().serialize("abc", path="/")
        assert value.startswith("csrfp_token=abc")
        assert "Path=/" in value

    def test_optional_flags(self) -> None:
        value = CookieTokenStore().serialize(
            "abc", secure=True, httponly=True, samesite="strict", domain="example.com", max_age=60
        )
        assert "Secure" in value
        assert "HttpOnly" in value
        assert "SameSite=strict" in value
        assert "Domain=example.com" in value
        assert "Max-Age=60" in value

    def test_flags_off_by_default(self) -> None:
        value = CookieTokenStore().serialize("abc", samesite=None)
        assert "Secure" not in value
        assert "HttpOnly" not in value
        assert "SameSite" not in value

    def test_custom_name(self) -> None:
        assert CookieTokenStore().serialize("abc", "other").startswith("other=abc")

    def test_matches_starlette_set_cookie(self) -> None:
        response = Response()
        response.set_cookie("csrfp_token", "abc", path="/app", secure=True)
        expected = response.headers["set-cookie"]
        assert CookieTokenStore().serialize("abc", path="/app", secure=True) == expected
