"""Tests for application-level exception types."""

import pytest

from mangamachine.core.exceptions import (
    AppError,
    ConfigurationError,
    DuplicateSequenceError,
    GenerationError,
    InvalidImageError,
    ProviderNotConfiguredError,
)


class TestAppError:
    def test_message_and_detail(self):
        err = AppError("something broke", detail="user-friendly msg")
        assert str(err) == "something broke"
        assert err.detail == "user-friendly msg"

    def test_detail_defaults_to_message(self):
        err = AppError("fallback message")
        assert err.detail == "fallback message"

    def test_inherits_exception(self):
        assert issubclass(AppError, Exception)


class TestDomainExceptions:
    @pytest.mark.parametrize(
        "exc_class",
        [GenerationError, ConfigurationError, ProviderNotConfiguredError, DuplicateSequenceError, InvalidImageError],
    )
    def test_inherits_app_error(self, exc_class):
        assert issubclass(exc_class, AppError)

    @pytest.mark.parametrize("exc_class", [DuplicateSequenceError, InvalidImageError])
    def test_caller_mistakes_are_value_errors(self, exc_class):
        assert issubclass(exc_class, ValueError)

    def test_generation_error(self):
        err = GenerationError("batch could not start")
        assert "batch" in str(err)
        assert isinstance(err, AppError)


class TestProviderNotConfiguredError:
    def test_names_provider_and_env_var(self):
        err = ProviderNotConfiguredError("gemini", "GEMINI_API_KEY")
        assert str(err) == "gemini is not configured. Set GEMINI_API_KEY."
        assert err.provider == "gemini"
        assert err.env_var == "GEMINI_API_KEY"

    def test_detail_hides_env_var(self):
        err = ProviderNotConfiguredError("volcengine", "VOLCENGINE_API_KEY")
        assert err.detail == "volcengine is not configured"
        assert isinstance(err, ConfigurationError)


class TestDuplicateSequenceError:
    def test_lists_numbers(self):
        err = DuplicateSequenceError([2, 5])
        assert err.sequence_numbers == [2, 5]
        assert "2, 5" in str(err)
        assert err.detail == "panel sequence numbers must be unique"
