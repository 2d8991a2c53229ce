"""Shared fixtures: a controllable clock, seeded users and wired services."""

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from couple_finance.models import UserAccount
from couple_finance.orchestrator import create_app_components
from couple_finance.services.storage import InMemoryAuditStorage, InMemoryStorage


NOW = datetime(2026, 3, 15, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> datetime:
        self.now += timedelta(**delta)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def users():
    return {
        name: UserAccount(email=f"{name}@example.com", display_name=name.title())
        for name in ("alice", "bob", "carol", "dave")
    }


@pytest.fixture
def storage(users):
    return InMemoryStorage(list(users.values()))


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def app(storage, audit_storage, clock):
    return create_app_components(
        storage=storage,
        audit_storage=audit_storage,
        clock=clock,
        use_rate_limit=False,
    )


@pytest_asyncio.fixture
async def couple(app, users):
    """An active couple: alice (member_a) and bob (member_b)."""
    pending = await app.couples.invite(users["alice"].id, "bob@example.com")
    return await app.couples.accept(users["bob"].id, pending.invitation_token)
