"""Tests for SetupValidator."""

import pytest

from ledgervault.validation import SetupValidator


@pytest.fixture
def validator():
    return SetupValidator(min_password_length=8)


def _types(result):
    return {issue.issue_type for issue in result.issues}


class TestMasterPassword:

    def test_good_password(self, validator):
        result = validator.validate_master_password("correct horse", "correct horse")

        assert result.is_valid
        assert _types(result) == {"no_recovery"}

    def test_missing(self, validator):
        result = validator.validate_master_password("", "")

        assert not result.is_valid
        assert "missing" in _types(result)

    def test_too_short(self, validator):
        result = validator.validate_master_password("short", "short")

        assert not result.is_valid
        assert "too_short" in _types(result)

    def test_mismatch(self, validator):
        result = validator.validate_master_password("correct horse", "correct hose")

        assert not result.is_valid
        assert "mismatch" in _types(result)

    def test_surrounding_space_is_only_a_warning(self, validator):
        result = validator.validate_master_password(" correct horse", " correct horse")

        assert result.is_valid
        assert "whitespace" in _types(result)

    def test_only_spaces_is_an_error(self, validator):
        result = validator.validate_master_password(" " * 12, " " * 12)

        assert not result.is_valid
        assert "blank" in _types(result)
        assert "whitespace" not in _types(result)

    def test_always_warns_there_is_no_recovery(self, validator):
        for password in ("", "correct horse"):
            result = validator.validate_master_password(password, password)
            assert "no_recovery" in _types(result)


class TestCurrencyCode:

    def test_known_code(self, validator):
        result = validator.validate_currency_code(" eur ")
        assert result.is_valid
        assert result.issues == []

    def test_unknown_code_is_a_warning(self, validator):
        result = validator.validate_currency_code("XYZ")
        assert result.is_valid
        assert _types(result) == {"unknown_code"}

    def test_empty_code(self, validator):
        assert not validator.validate_currency_code("  ").is_valid


class TestRateText:

    @pytest.mark.parametrize("text", ["", "abc", "0", "-1.5", "NaN", "Infinity"])
    def test_invalid(self, validator, text):
        result = validator.validate_rate_text(text)
        assert not result.is_valid
        assert _types(result) == {"invalid_value"}

    def test_normal_rate(self, validator):
        result = validator.validate_rate_text("0.92")
        assert result.is_valid
        assert result.issues == []

    def test_rate_of_one(self, validator):
        result = validator.validate_rate_text("1")
        assert result.is_valid
        assert _types(result) == {"no_change"}

    @pytest.mark.parametrize("text", ["0.00001", "20000"])
    def test_unusual(self, validator, text):
        result = validator.validate_rate_text(text)
        assert result.is_valid
        assert _types(result) == {"unusual_value"}


class TestSummary:

    def test_all_passed(self, validator):
        result = validator.validate_rate_text("0.92")
        assert validator.get_user_friendly_summary(result) == "✅ All checks passed!"

    def test_errors_listed_with_fixes(self, validator):
        result = validator.validate_master_password("short", "other")

        summary = validator.get_user_friendly_summary(result)

        assert summary.startswith("❌ Please fix the following:")
        assert "Passwords do not match" in summary
        assert "💡" in summary

    def test_warnings_only(self, validator):
        result = validator.validate_currency_code("XYZ")

        summary = validator.get_user_friendly_summary(result)

        assert "⚠️" in summary
        assert "You can still proceed" in summary


def test_default_minimum_comes_from_settings(monkeypatch):
    from ledgervault.config import get_settings

    monkeypatch.setenv("MIN_PASSWORD_LENGTH", "12")
    get_settings.cache_clear()
    try:
        result = SetupValidator().validate_master_password("elevenchars", "elevenchars")
    finally:
        get_settings.cache_clear()

    assert "too_short" in _types(result)
