"""
Cross-Source Validator Tests.
"""

import pytest

from verigate.errors import ConfigurationError
from verigate.validation import matching
from verigate.validation.engine import CrossSourceValidator, verification_id_for


class TestCrossValidation:
    def test_all_sources_agree(self, validator, make_identity, make_payment_link, make_bank_link):
        result = validator.cross_validate_all(make_identity(), make_payment_link(), make_bank_link())
        assert result.success
        assert result.validation.passed
        assert result.cross_validation.overall_consistency == 1.0
        assert result.cross_validation.comparisons == 3
        assert result.validation.confidence == 100.0
        assert result.validation.risk_score == 0.0
        assert result.verification_id.startswith("ver_")

    def test_mismatched_email_fails(self, validator, make_identity, make_payment_link):
        """Only the email is comparable and it disagrees."""
        identity = make_identity(phone=None, name=None)
        payment = make_payment_link(email="mallory.x@evilcorp.org", phone=None, name=None)
        result = validator.cross_validate_all(identity, payment)
        assert result.success
        assert result.cross_validation.overall_consistency < 0.6
        assert not result.validation.passed
        assert "INCONSISTENT_SOURCES" in result.validation.issues

    def test_identity_only(self, validator, make_identity):
        """Absence never fails validation, it only costs confidence."""
        result = validator.cross_validate_all(make_identity())
        assert result.validation.passed
        assert result.cross_validation.overall_consistency == 1.0
        assert result.cross_validation.comparisons == 0
        assert result.validation.confidence == pytest.approx(100 * (0.5 / 3 + 0.5), abs=0.01)
        # two missing sources, confidence under 70
        assert result.validation.risk_score == 15 * 2 + 20

    def test_confidence_drops_as_sources_are_removed(
        self, validator, make_identity, make_payment_link, make_bank_link
    ):
        three = validator.cross_validate_all(make_identity(), make_payment_link(), make_bank_link())
        two = validator.cross_validate_all(make_identity(), make_payment_link())
        one = validator.cross_validate_all(make_identity())
        assert three.validation.confidence > two.validation.confidence > one.validation.confidence

    def test_unrequested_source_is_not_a_gap(self, validator, make_identity, make_bank_link):
        result = validator.cross_validate_all(
            make_identity(), bank_link=make_bank_link(), unrequested=["payment_link"]
        )
        assert result.unrequested == ["payment_link"]
        assert result.validation.confidence == 100.0
        assert result.validation.risk_score == 0.0

    def test_unrequested_but_supplied_source_still_counts(
        self, validator, make_identity, make_payment_link
    ):
        result = validator.cross_validate_all(
            make_identity(), make_payment_link(success=False), unrequested=["payment_link", "bank_link"]
        )
        # payment link was supplied anyway, so its failure is a real gap
        assert result.unrequested == ["bank_link"]
        assert result.validation.confidence == 75.0
        assert result.validation.risk_score == 15.0

    def test_unrequested_changes_verification_id(self, validator, make_identity):
        plain = validator.cross_validate_all(make_identity())
        relaxed = validator.cross_validate_all(make_identity(), unrequested=["payment_link", "bank_link"])
        assert plain.verification_id != relaxed.verification_id
        assert relaxed.validation.risk_score == 0.0

    def test_unsuccessful_source_is_absent(self, validator, make_identity, make_payment_link):
        result = validator.cross_validate_all(make_identity(), make_payment_link(success=False))
        assert result.supplied.payment_link
        assert not result.sources.payment_link
        assert result.cross_validation.identity_payment is None

    def test_identity_failure_fails_validation(self, validator, make_identity, make_payment_link):
        result = validator.cross_validate_all(make_identity(success=False), make_payment_link())
        assert not result.validation.passed
        assert "IDENTITY_NOT_VERIFIED" in result.validation.issues

    def test_critical_pair_fails_even_with_good_average(
        self, validator, make_identity, make_payment_link, make_bank_link
    ):
        bad_bank = make_bank_link(name="Zed Q", phone="+1 212 555 9876", accounts=["acct-1"])
        validator = CrossSourceValidator(consistency_threshold=0.0, clock=validator._clock)
        result = validator.cross_validate_all(make_identity(), make_payment_link(), bad_bank)
        assert result.cross_validation.identity_bank < 0.4
        assert "CRITICAL_PAIR_MISMATCH" in result.validation.issues
        assert not result.validation.passed

    def test_flagged_sources_raise_risk(self, validator, make_identity, make_payment_link, make_bank_link):
        result = validator.cross_validate_all(
            make_identity(),
            make_payment_link(flags=["new_account"]),
            make_bank_link(flags=["recent_chargeback"]),
        )
        assert result.source_flags == {
            "payment_link": ["new_account"],
            "bank_link": ["recent_chargeback"],
        }
        assert result.validation.risk_score == 20.0

    def test_risk_capped(self, validator, make_identity, make_payment_link):
        result = validator.cross_validate_all(
            make_identity(success=False, flags=["a"]),
            make_payment_link(success=False, flags=["b"]),
        )
        assert result.validation.risk_score <= 100.0


class TestVerificationRecords:
    def test_idempotent(self, validator, make_identity, make_payment_link):
        first = validator.cross_validate_all(make_identity(), make_payment_link())
        second = validator.cross_validate_all(make_identity(), make_payment_link())
        assert first.verification_id == second.verification_id
        assert first == second
        assert validator.get_metrics()["cache_hits"] == 1
        assert validator.get_metrics()["total_validations"] == 1

    def test_id_depends_on_inputs(self, make_identity, make_payment_link):
        a = verification_id_for(make_identity(), make_payment_link(), None)
        b = verification_id_for(make_identity(), make_payment_link(phone="2125559876"), None)
        assert a != b

    def test_status_masks_user(self, validator, make_identity):
        result = validator.cross_validate_all(make_identity())
        status = validator.get_verification_status(result.verification_id)
        assert status.found
        assert status.user_id == "us****12"
        assert status.passed

    def test_status_unknown(self, validator):
        status = validator.get_verification_status("ver_missing")
        assert not status.found
        assert status.error == "Verification not found"

    def test_records_expire(self, validator, make_identity, clock):
        result = validator.cross_validate_all(make_identity())
        clock.advance(86400 + 1)
        assert validator.cleanup_expired() == 1
        assert not validator.get_verification_status(result.verification_id).found


class TestInternalErrors:
    def test_scoring_exception_becomes_failure(
        self, validator, make_identity, make_payment_link, monkeypatch
    ):
        def broken(a, b):
            raise RuntimeError("comparison exploded")

        monkeypatch.setattr(matching, "fuzzy_match", broken)
        result = validator.cross_validate_all(make_identity(), make_payment_link())
        assert not result.success
        assert result.error == "comparison exploded"
        assert not result.validation.passed
        assert validator.get_metrics()["errors"] == 1


class TestConfiguration:
    @pytest.mark.parametrize("kwargs", [
        {"consistency_threshold": 1.5},
        {"consistency_threshold": -0.1},
        {"critical_pair_threshold": 2},
        {"verification_expiry_seconds": 0},
        {"field_weights": {"email": 3.0}},
    ])
    def test_invalid_thresholds(self, kwargs):
        with pytest.raises(ConfigurationError):
            CrossSourceValidator(**kwargs)

    def test_health_check(self, validator):
        health = validator.health_check()
        assert health["status"] == "healthy"
        assert health["config"]["consistency_threshold"] == 0.8
