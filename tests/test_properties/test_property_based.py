"""
Property-Based Tests — invariants that hold for any input.
"""

from hypothesis import given, settings as hyp_settings
from hypothesis import strategies as st

from verigate.privacy import mask_pii
from verigate.routing.router import TierRouter
from verigate.routing.schemas import Tier, stricter
from verigate.validation.matching import edit_distance, fuzzy_match
from verigate.validation.schemas import IdentityResult

percent = st.floats(min_value=0, max_value=100, allow_nan=False)
short_text = st.text(max_size=20)


class TestMatchingProperties:
    @given(a=short_text, b=short_text)
    @hyp_settings(max_examples=200)
    def test_edit_distance_symmetric(self, a, b):
        assert edit_distance(a, b) == edit_distance(b, a)

    @given(a=short_text, b=short_text)
    @hyp_settings(max_examples=200)
    def test_edit_distance_bounds(self, a, b):
        d = edit_distance(a, b)
        assert abs(len(a) - len(b)) <= d <= max(len(a), len(b))
        assert (d == 0) == (a == b)

    @given(a=short_text, b=short_text)
    @hyp_settings(max_examples=200)
    def test_fuzzy_in_unit_interval(self, a, b):
        assert 0.0 <= fuzzy_match(a, b) <= 1.0

    @given(a=short_text)
    def test_fuzzy_reflexive(self, a):
        assert fuzzy_match(a, a) == 1.0


class TestRoutingProperties:
    def setup_method(self):
        self.router = TierRouter()

    @given(confidence=percent, risk=st.floats(min_value=85, max_value=100), core=st.booleans())
    @hyp_settings(max_examples=100)
    def test_high_risk_rejects(self, confidence, risk, core):
        identity = IdentityResult(
            success=True,
            user_id="user_prop",
            confidence=confidence,
            risk_score=risk,
            documents_verified=core,
            email_verified=core,
            phone_verified=core,
        )
        assert self.router.apply_adaptive_strategy(identity).tier == Tier.REJECT

    @given(confidence=percent, risk=percent, core=st.booleans())
    @hyp_settings(max_examples=100)
    def test_strategy_is_deterministic(self, confidence, risk, core):
        identity = IdentityResult(
            success=True,
            user_id="user_prop",
            confidence=confidence,
            risk_score=risk,
            documents_verified=core,
            email_verified=True,
            phone_verified=True,
        )
        first = self.router.apply_adaptive_strategy(identity)
        second = self.router.apply_adaptive_strategy(identity)
        assert first.tier == second.tier
        assert first.requires_payment_link_verification == second.requires_payment_link_verification
        assert first.requires_bank_link_verification == second.requires_bank_link_verification

    @given(a=st.sampled_from(list(Tier)), b=st.sampled_from(list(Tier)))
    def test_stricter_never_relaxes(self, a, b):
        result = stricter(a, b)
        assert result.severity >= a.severity
        assert result.severity >= b.severity


class TestPrivacyProperties:
    @given(value=st.text(min_size=5, max_size=40))
    def test_mask_hides_middle(self, value):
        masked = mask_pii(value)
        assert masked.startswith(value[:2])
        assert masked.endswith(value[-2:])
        assert "****" in masked
