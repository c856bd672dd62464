"""Tests for the CSRF protector exception hierarchy."""

import pytest

from csrfp.kernel.exceptions import (
    ConfigurationError,
    CsrfpException,
    EntropyUnavailable,
    ParseError,
    RewriteError,
    ValidationFailure,
)
from csrfp.security.validator import ValidationOutcome


class TestCsrfpException:
    def test_basic_creation(self):
        exc = CsrfpException("something went wrong")
        assert str(exc) == "something went wrong"
        assert exc.code is None
        assert exc.context == {}

    def test_with_code_and_context(self):
        exc = CsrfpException("bad", code="CSRFP_X", context={"key": "token_length"})
        assert exc.code == "CSRFP_X"
        assert exc.context["key"] == "token_length"

    def test_context_not_shared(self):
        a = CsrfpException("a")
        b = CsrfpException("b")
        a.context["x"] = 1
        assert b.context == {}


class TestHierarchy:
    @pytest.mark.parametrize("cls", [ConfigurationError, ParseError, EntropyUnavailable, RewriteError])
    def test_subclasses(self, cls):
        assert issubclass(cls, CsrfpException)

    def test_validation_failure_carries_outcome(self):
        exc = ValidationFailure(ValidationOutcome.FAILED_MISMATCH)
        assert isinstance(exc, CsrfpException)
        assert exc.outcome is ValidationOutcome.FAILED_MISMATCH
        assert exc.code == "CSRFP_VALIDATION"
        assert "failed_mismatch" in str(exc)
