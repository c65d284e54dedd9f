"""
Test fixtures for VeriGate.

Provides:
- FakeClock: controllable time source injected into every component
- Component fixtures (limiter, validator, router) built on the fake clock
- Source result factories for cross-validation scenarios
- ASGI test client around create_app()
"""

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from verigate.admission.limiter import AdmissionLimiter
from verigate.api.app import create_app
from verigate.routing.router import TierRouter
from verigate.validation.engine import CrossSourceValidator
from verigate.validation.prescreen import PreScreener
from verigate.validation.schemas import IdentityResult, SourceResult

T0 = 1_700_000_000.0
SALT = "test-salt"


class FakeClock:
    """Callable clock; time only moves when a test says so."""

    def __init__(self, start: float = T0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def limiter(clock) -> AdmissionLimiter:
    return AdmissionLimiter(clock=clock, hash_salt=SALT)


@pytest.fixture
def validator(clock) -> CrossSourceValidator:
    return CrossSourceValidator(
        prescreener=PreScreener(clock=clock, hash_salt=SALT),
        clock=clock,
    )


@pytest.fixture
def tier_router() -> TierRouter:
    return TierRouter()


# ── Source Factories ─────────────────────────────────────────────────────


def _identity(**overrides) -> IdentityResult:
    data = dict(
        success=True,
        user_id="user_8812",
        email="alice.walker@example.com",
        phone="+1 (415) 555-0142",
        name="Alice Walker",
        account_number="000123456789",
        verification_id="idv_001",
        confidence=92.0,
        risk_score=8.0,
        documents_verified=True,
        email_verified=True,
        phone_verified=True,
    )
    data.update(overrides)
    return IdentityResult(**data)


def _payment_link(**overrides) -> SourceResult:
    data = dict(
        success=True,
        user_id="user_8812",
        email="alice.walker@example.com",
        phone="4155550142",
        name="Alice Walker",
    )
    data.update(overrides)
    return SourceResult(**data)


def _bank_link(**overrides) -> SourceResult:
    data = dict(
        success=True,
        user_id="user_8812",
        name="Alice Walker",
        phone="+14155550142",
        accounts=["acct-000123456789", "acct-998877"],
    )
    data.update(overrides)
    return SourceResult(**data)


# ── API Client ───────────────────────────────────────────────────────────


@pytest.fixture
def app(limiter, validator, tier_router):
    return create_app(
        limiter=limiter,
        validator=validator,
        router=tier_router,
        start_scheduler=False,
    )


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def make_identity():
    return _identity


@pytest.fixture
def make_payment_link():
    return _payment_link


@pytest.fixture
def make_bank_link():
    return _bank_link
