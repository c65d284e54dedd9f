"""
Maintenance Scheduler Tests.
"""

import pytest

from verigate.admission.schemas import AdmissionRequest
from verigate.scheduler import MaintenanceScheduler


class TestMaintenanceJobs:
    @pytest.mark.asyncio
    async def test_run_once_prunes_everything(self, clock, limiter, validator, make_identity):
        limiter.check(AdmissionRequest(ip="198.51.100.4", device_fingerprint="dev-1", path="/api/wallet"))
        limiter.block_entity("ip", "198.51.100.9", "abuse", duration_seconds=60)
        result = validator.cross_validate_all(make_identity())
        assert limiter.get_statistics()["counters"] > 0

        clock.advance(2 * 86400)
        scheduler = MaintenanceScheduler(limiter, validator)
        await scheduler.run_once()

        stats = limiter.get_statistics()
        assert stats["counters"] == 0
        assert stats["active_blocks"] == 0
        assert not validator.get_verification_status(result.verification_id).found

    @pytest.mark.asyncio
    async def test_prune_failure_is_logged_not_raised(self, limiter, monkeypatch):
        def broken():
            raise RuntimeError("store unavailable")

        monkeypatch.setattr(limiter, "prune", broken)
        scheduler = MaintenanceScheduler(limiter)
        await scheduler.prune_admission()

    @pytest.mark.asyncio
    async def test_start_and_stop(self, limiter, validator):
        scheduler = MaintenanceScheduler(limiter, validator, interval_seconds=60)
        scheduler.start()
        try:
            assert scheduler.running
            job_ids = {job.id for job in scheduler.scheduler.get_jobs()}
            assert job_ids == {"prune_admission", "expire_verifications"}
        finally:
            scheduler.stop()

    @pytest.mark.asyncio
    async def test_limiter_only(self, limiter):
        scheduler = MaintenanceScheduler(limiter, interval_seconds=60)
        scheduler.start()
        try:
            assert [job.id for job in scheduler.scheduler.get_jobs()] == ["prune_admission"]
        finally:
            scheduler.stop()
