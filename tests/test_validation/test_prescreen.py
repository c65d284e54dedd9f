"""
Pre-Screen Tests.
"""

import pytest

from verigate.errors import ConfigurationError
from verigate.validation.prescreen import PreScreener, is_valid_email, is_valid_phone
from verigate.validation.schemas import PreScreenIssue, UserData


class TestFieldValidators:
    @pytest.mark.parametrize("email,valid", [
        ("alice@example.com", True),
        ("a.b+c@sub.example.co", True),
        ("no-at-sign.example.com", False),
        ("spaces in@example.com", False),
        ("alice@localhost", False),
    ])
    def test_email(self, email, valid):
        assert is_valid_email(email) is valid

    @pytest.mark.parametrize("phone,valid", [
        ("+1 (415) 555-0142", True),
        ("4155550142", True),
        ("555-0142", False),
        ("415-555-CALL", False),
    ])
    def test_phone(self, phone, valid):
        assert is_valid_phone(phone) is valid


class TestPreScreen:
    def test_clean_user_passes(self, validator):
        result = validator.pre_screen(UserData(
            user_id="user_8812", email="alice@example.com", phone="+1 415 555 0142"
        ))
        assert result.passed
        assert result.score == 100
        assert result.issues == []

    def test_denylisted_tokens(self, validator):
        """Denylisted tokens cost 40; valid fields cost nothing."""
        result = validator.pre_screen({"email": "test@example.com", "userId": "demo_user_123"})
        assert not result.passed
        assert result.score == 60
        assert PreScreenIssue.SUSPICIOUS_PATTERN.value in result.issues

    def test_absent_optional_fields_not_penalized(self, validator):
        result = validator.pre_screen({"userId": "user_8812"})
        assert result.passed
        assert result.score == 100

    def test_missing_user_id(self, validator):
        result = validator.pre_screen({"email": "alice@example.com"})
        assert result.issues == [PreScreenIssue.INVALID_USER_ID.value]
        assert result.score == 80

    def test_penalties_compound(self, validator):
        result = validator.pre_screen({"userId": "x", "email": "bad", "phone": "12"})
        assert set(result.issues) == {
            PreScreenIssue.INVALID_EMAIL.value,
            PreScreenIssue.INVALID_PHONE.value,
            PreScreenIssue.INVALID_USER_ID.value,
        }
        assert result.score == 100 - 30 - 25 - 20

    def test_score_floors_at_zero(self, clock):
        screener = PreScreener(clock=clock, hash_salt="s")
        result = screener.screen(UserData(user_id="t", email="fake", phone="000"))
        assert result.score == 0
        assert not result.passed

    def test_velocity_limit(self, validator, clock):
        """The 6th attempt within an hour is flagged."""
        for _ in range(5):
            assert validator.pre_screen({"userId": "user_fast"}).passed
            clock.advance(60)
        result = validator.pre_screen({"userId": "user_fast"})
        assert result.issues == [PreScreenIssue.VELOCITY_LIMIT_EXCEEDED.value]
        assert result.score == 50

    def test_velocity_window_slides(self, validator, clock):
        for _ in range(5):
            validator.pre_screen({"userId": "user_slow"})
        clock.advance(3601)
        assert validator.pre_screen({"userId": "user_slow"}).passed

    def test_malformed_input_never_raises(self, validator):
        result = validator.pre_screen({"userId": ["not", "a", "string"]})
        assert not result.passed
        assert result.score == 0
        assert result.issues[0].startswith("INTERNAL_ERROR")

    def test_ledger_uses_hashed_keys(self, validator):
        validator.pre_screen({"userId": "user_private"})
        assert "user_private" not in validator.prescreener.ledger._attempts


class TestPreScreenConfiguration:
    @pytest.mark.parametrize("kwargs", [
        {"penalties": {PreScreenIssue.SUSPICIOUS_PATTERN: 0.0}},
        {"penalties": {PreScreenIssue.INVALID_EMAIL: -5.0}},
        {"max_attempts": 0},
        {"window_seconds": 0},
    ])
    def test_invalid_configuration(self, kwargs):
        with pytest.raises(ConfigurationError):
            PreScreener(**kwargs)

    def test_passed_follows_score(self, clock):
        screener = PreScreener(penalties={PreScreenIssue.SUSPICIOUS_PATTERN: 0.5}, clock=clock)
        result = screener.screen(UserData(user_id="demo_account"))
        assert result.issues == [PreScreenIssue.SUSPICIOUS_PATTERN.value]
        assert result.score == 99.5
        assert not result.passed
