"""
API Endpoint Tests — admin blocks, verification status, review queue.
"""

import pytest

from verigate.routing.schemas import RoutingDecision, Tier


def _review_decision(user_id: str = "user_42") -> RoutingDecision:
    return RoutingDecision(
        user_id=user_id,
        verification_id="ver_abc",
        initial_tier=Tier.FAST,
        final_tier=Tier.REVIEW,
        confidence=72.0,
        risk_score=38.0,
        conflicts=("risk_assessment_conflict",),
        requires_manual_review=True,
    )


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["service"] == "verigate"
        assert body["active_blocks"] == 0
        assert "routing" in body


class TestBlocks:
    @pytest.mark.asyncio
    async def test_block_lifecycle(self, client):
        created = await client.post("/api/v1/admin/blocks", json={
            "dimension": "userId",
            "value": "user_bad",
            "reason": "chargeback ring",
            "duration_seconds": 900,
        })
        assert created.status_code == 201
        assert created.json()["value_hash"] != "user_bad"
        assert created.json()["manual"] is True

        entity = {"dimension": "userId", "value": "user_bad"}

        status = await client.post("/api/v1/admin/blocks/status", json=entity)
        assert status.status_code == 200
        assert status.json()["blocked"] is True
        assert status.json()["retry_after"] == 900

        removed = await client.post("/api/v1/admin/blocks/unblock", json=entity)
        assert removed.status_code == 200

        again = await client.post("/api/v1/admin/blocks/unblock", json=entity)
        assert again.status_code == 404

        status = await client.post("/api/v1/admin/blocks/status", json=entity)
        assert status.json()["blocked"] is False

    @pytest.mark.asyncio
    async def test_identifier_never_in_audit_trail(self, client, limiter):
        """Rotating callers on the admin surface get audited without the looked-up value."""
        entity = {"dimension": "ip", "value": "198.51.100.77"}
        for i in range(5):
            await client.post(
                "/api/v1/admin/blocks/status",
                json=entity,
                headers={"X-User-ID": f"admin_{i}", "X-Device-Fingerprint": "ops-console"},
            )

        audit = limiter.recent_suspicious()
        assert audit
        assert "198.51.100.77" not in repr(audit)
        assert all("path" not in record for record in audit)
        assert audit[-1]["endpoint_class"] == "global"

    @pytest.mark.asyncio
    async def test_invalid_dimension(self, client):
        response = await client.post("/api/v1/admin/blocks", json={
            "dimension": "email", "value": "x@y.z",
        })
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_blank_value(self, client):
        response = await client.post("/api/v1/admin/blocks", json={
            "dimension": "ip", "value": "   ",
        })
        assert response.status_code == 422


class TestVerifications:
    @pytest.mark.asyncio
    async def test_status(self, client, validator, make_identity):
        result = validator.cross_validate_all(make_identity())
        response = await client.get(f"/api/v1/verifications/{result.verification_id}")
        assert response.status_code == 200
        body = response.json()
        assert body["found"] is True
        assert body["user_id"] == "us****12"
        assert body["passed"] is True

    @pytest.mark.asyncio
    async def test_unknown(self, client):
        response = await client.get("/api/v1/verifications/ver_nope")
        assert response.status_code == 404


class TestReviews:
    @pytest.mark.asyncio
    async def test_review_flow(self, client, tier_router):
        entry = tier_router.queue_manual_review(_review_decision())

        listed = await client.get("/api/v1/reviews", params={"status": "queued"})
        assert listed.status_code == 200
        assert listed.json()["total"] == 1
        assert listed.json()["reviews"][0]["review_id"] == entry.review_id

        started = await client.post(
            f"/api/v1/reviews/{entry.review_id}/start", json={"reviewer": "analyst-7"}
        )
        assert started.status_code == 200
        assert started.json()["status"] == "in_review"

        resolved = await client.post(
            f"/api/v1/reviews/{entry.review_id}/resolve",
            json={"resolution": "approved", "notes": "manual KYC passed"},
        )
        assert resolved.status_code == 200
        assert resolved.json()["status"] == "resolved"

        queued = await client.get("/api/v1/reviews", params={"status": "queued"})
        assert queued.json()["total"] == 0

    @pytest.mark.asyncio
    async def test_out_of_order_transition(self, client, tier_router):
        entry = tier_router.queue_manual_review(_review_decision())
        response = await client.post(
            f"/api/v1/reviews/{entry.review_id}/resolve", json={"resolution": "approved"}
        )
        assert response.status_code == 409
        assert response.json()["error"] == "INVALID_REVIEW_TRANSITION"

    @pytest.mark.asyncio
    async def test_unknown_review(self, client):
        response = await client.post("/api/v1/reviews/review_missing/start", json={"reviewer": "a"})
        assert response.status_code == 404
        assert response.json()["error"] == "REVIEW_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_get_review(self, client, tier_router):
        entry = tier_router.queue_manual_review(_review_decision())
        response = await client.get(f"/api/v1/reviews/{entry.review_id}")
        assert response.status_code == 200
        assert response.json()["conflicts"] == ["risk_assessment_conflict"]
