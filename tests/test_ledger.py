"""
Tests for the contribution ledger.
"""

import asyncio
from decimal import Decimal
from uuid import uuid4

import pytest
import pytest_asyncio

from couple_finance.config import GoalSettings
from couple_finance.errors import (
    AuthorizationError,
    ConcurrentModificationError,
    GoalNotFoundError,
    InactiveGoalError,
    InsufficientGoalBalanceError,
    ValidationError,
)
from couple_finance.models import AuditEventType, ContributionType, GoalStatus
from couple_finance.orchestrator import create_app_components
from couple_finance.services.ledger import ContributionLedger
from couple_finance.services.storage import InMemoryAuditStorage, InMemoryStorage, VersionConflictError


class FlakyStorage(InMemoryStorage):
    """Loses the compare-and-set race a set number of times."""

    def __init__(self, users, failures: int):
        super().__init__(users)
        self.failures = failures
        self.attempts = 0

    async def commit_contribution(self, goal, expected_version, event):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise VersionConflictError("simulated concurrent writer")
        return await super().commit_contribution(goal, expected_version, event)


@pytest_asyncio.fixture
async def shared_goal(app, users, couple):
    return await app.goals.create_goal(users["alice"].id, {
        "title": "Bali trip",
        "target_amount": "1000.00",
        "is_shared": True,
        "milestone_percentages": ["25", "50", "75"],
    })


@pytest_asyncio.fixture
async def personal_goal(app, users):
    return await app.goals.create_goal(users["alice"].id, {
        "title": "New laptop",
        "target_amount": "1500.00",
    })


async def _flaky_app(users, clock, failures):
    storage = FlakyStorage(list(users.values()), failures)
    audit_storage = InMemoryAuditStorage()
    app = create_app_components(
        storage=storage,
        audit_storage=audit_storage,
        clock=clock,
        use_rate_limit=False,
    )
    goal = await app.goals.create_goal(users["alice"].id, {
        "title": "Emergency fund",
        "target_amount": "1000.00",
    })
    return app, storage, audit_storage, goal


class TestRecord:
    """Tests for contributions."""

    @pytest.mark.asyncio
    async def test_owner_contribution(self, app, storage, users, shared_goal):
        event = await app.ledger.record(shared_goal.id, users["alice"].id, "250.00", "payday")

        assert event.type == ContributionType.CONTRIBUTION
        assert event.amount == Decimal("250.00")
        assert event.balance_after == Decimal("250.00")
        assert event.note == "payday"
        stored = await storage.get_goal(shared_goal.id)
        assert stored.current_amount == Decimal("250.00")
        assert stored.version == shared_goal.version + 1

    @pytest.mark.asyncio
    async def test_partner_contribution(self, app, users, shared_goal):
        event = await app.ledger.record(shared_goal.id, users["bob"].id, "100.00")
        assert event.user_id == users["bob"].id

    @pytest.mark.asyncio
    async def test_stranger_cannot_contribute(self, app, storage, users, shared_goal):
        with pytest.raises(AuthorizationError):
            await app.ledger.record(shared_goal.id, users["carol"].id, "100.00")
        assert (await storage.get_goal(shared_goal.id)).current_amount == Decimal("0")

    @pytest.mark.asyncio
    async def test_partner_cannot_touch_personal_goal(self, app, users, couple, personal_goal):
        with pytest.raises(AuthorizationError):
            await app.ledger.record(personal_goal.id, users["bob"].id, "100.00")

    @pytest.mark.asyncio
    async def test_former_partner_loses_access(self, app, users, shared_goal):
        """After the couple dissolves only the owner may move money."""
        await app.couples.leave(users["bob"].id)
        with pytest.raises(AuthorizationError):
            await app.ledger.record(shared_goal.id, users["bob"].id, "100.00")
        await app.ledger.record(shared_goal.id, users["alice"].id, "100.00")

    @pytest.mark.asyncio
    async def test_unknown_goal(self, app, users):
        with pytest.raises(GoalNotFoundError):
            await app.ledger.record(uuid4(), users["alice"].id, "10.00")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", ["0", "-5.00", "10.001", "abc", 10.005])
    async def test_invalid_amounts(self, app, users, personal_goal, amount):
        with pytest.raises(ValidationError):
            await app.ledger.record(personal_goal.id, users["alice"].id, amount)

    @pytest.mark.asyncio
    async def test_float_amount_accepted(self, app, users, personal_goal):
        event = await app.ledger.record(personal_goal.id, users["alice"].id, 19.99)
        assert event.amount == Decimal("19.99")

    @pytest.mark.asyncio
    async def test_contribution_completes_goal(self, app, storage, users, shared_goal, audit_storage):
        """Crossing the target completes the goal and every milestone."""
        await app.ledger.record(shared_goal.id, users["alice"].id, "250.00")
        await app.ledger.record(shared_goal.id, users["bob"].id, "750.00")

        stored = await storage.get_goal(shared_goal.id)
        assert stored.status == GoalStatus.COMPLETED
        assert all(m.achieved for m in stored.milestones)

        events = await audit_storage.get_events_by_entity("goal", shared_goal.id)
        types = [e.event_type for e in events]
        assert types.count(AuditEventType.MILESTONE_ACHIEVED) == 3
        assert types.count(AuditEventType.GOAL_COMPLETED) == 1

    @pytest.mark.asyncio
    async def test_milestone_events_share_correlation(self, app, users, shared_goal, audit_storage):
        await app.ledger.record(shared_goal.id, users["alice"].id, "600.00")
        events = await audit_storage.get_events_by_entity("goal", shared_goal.id)
        recorded = [e for e in events if e.event_type == AuditEventType.CONTRIBUTION_RECORDED][0]

        related = await audit_storage.get_events_by_correlation_id(recorded.correlation_id)
        milestones = [e for e in related if e.event_type == AuditEventType.MILESTONE_ACHIEVED]
        assert [e.details["percentage"] for e in milestones] == ["25", "50"]

    @pytest.mark.asyncio
    async def test_completed_goal_rejects_contributions(self, app, users, shared_goal):
        await app.ledger.record(shared_goal.id, users["alice"].id, "1000.00")
        with pytest.raises(InactiveGoalError):
            await app.ledger.record(shared_goal.id, users["alice"].id, "1.00")

    @pytest.mark.asyncio
    async def test_paused_goal_rejects_contributions(self, app, users, personal_goal):
        await app.goals.pause_goal(users["alice"].id, personal_goal.id)
        with pytest.raises(InactiveGoalError):
            await app.ledger.record(personal_goal.id, users["alice"].id, "1.00")


class TestWithdraw:
    """Tests for withdrawals."""

    @pytest.mark.asyncio
    async def test_withdrawal(self, app, storage, users, shared_goal):
        await app.ledger.record(shared_goal.id, users["alice"].id, "500.00")
        event = await app.ledger.withdraw(shared_goal.id, users["bob"].id, "200.00")

        assert event.type == ContributionType.WITHDRAWAL
        assert event.balance_after == Decimal("300.00")
        assert (await storage.get_goal(shared_goal.id)).current_amount == Decimal("300.00")

    @pytest.mark.asyncio
    async def test_overdraw_rejected(self, app, storage, users, shared_goal):
        await app.ledger.record(shared_goal.id, users["alice"].id, "100.00")
        with pytest.raises(InsufficientGoalBalanceError):
            await app.ledger.withdraw(shared_goal.id, users["alice"].id, "100.01")
        assert len(await app.ledger.contributions_of(shared_goal.id)) == 1

    @pytest.mark.asyncio
    async def test_withdraw_from_paused_goal(self, app, users, personal_goal):
        await app.ledger.record(personal_goal.id, users["alice"].id, "300.00")
        await app.goals.pause_goal(users["alice"].id, personal_goal.id)
        event = await app.ledger.withdraw(personal_goal.id, users["alice"].id, "300.00")
        assert event.balance_after == Decimal("0")

    @pytest.mark.asyncio
    async def test_completed_goal_stays_completed(self, app, storage, users, shared_goal):
        await app.ledger.record(shared_goal.id, users["alice"].id, "1000.00")
        await app.ledger.withdraw(shared_goal.id, users["alice"].id, "400.00")
        stored = await storage.get_goal(shared_goal.id)
        assert stored.status == GoalStatus.COMPLETED
        assert stored.current_amount == Decimal("600.00")

    @pytest.mark.asyncio
    async def test_reopen_policy(self, storage, users, clock, app, shared_goal):
        """With the reopen policy on, dropping below target reactivates the goal."""
        ledger = ContributionLedger(
            goals=storage,
            ledger=storage,
            couples=storage,
            clock=clock,
            settings=GoalSettings(reopen_completed_on_withdrawal=True),
        )
        await ledger.record(shared_goal.id, users["alice"].id, "1000.00")
        await ledger.withdraw(shared_goal.id, users["alice"].id, "1.00")

        stored = await storage.get_goal(shared_goal.id)
        assert stored.status == GoalStatus.ACTIVE
        assert stored.completed_at is None


class TestLedgerQueries:
    """Tests for reading the ledger back."""

    @pytest.mark.asyncio
    async def test_balance_matches_ledger(self, app, storage, users, shared_goal):
        """Without a seed, current_amount equals the signed sum of the ledger."""
        alice, bob = users["alice"].id, users["bob"].id
        await app.ledger.record(shared_goal.id, alice, "300.00")
        await app.ledger.record(shared_goal.id, bob, "200.00")
        await app.ledger.withdraw(shared_goal.id, alice, "50.00")

        events = await app.ledger.contributions_of(shared_goal.id)
        stored = await storage.get_goal(shared_goal.id)
        assert sum(e.signed_amount for e in events) == stored.current_amount
        assert events[0].type == ContributionType.WITHDRAWAL

        totals = await app.ledger.member_totals(shared_goal.id)
        assert totals == {alice: Decimal("250.00"), bob: Decimal("200.00")}

    @pytest.mark.asyncio
    async def test_seeded_balance_matches_ledger(self, app, storage, users):
        """The creation seed is not a ledger event; the balance is seed plus ledger."""
        alice = users["alice"].id
        goal = await app.goals.create_goal(alice, {
            "title": "Rainy day",
            "target_amount": "1000.00",
            "current_amount": "100.00",
        })
        await app.ledger.record(goal.id, alice, "50.00")
        await app.ledger.withdraw(goal.id, alice, "20.00")

        events = await app.ledger.contributions_of(goal.id)
        stored = await storage.get_goal(goal.id)
        assert len(events) == 2
        assert stored.current_amount == Decimal("130.00")
        assert Decimal("100.00") + sum(e.signed_amount for e in events) == stored.current_amount

    @pytest.mark.asyncio
    async def test_empty_ledger(self, app, personal_goal):
        assert await app.ledger.contributions_of(personal_goal.id) == []
        assert await app.ledger.member_totals(personal_goal.id) == {}


class TestConcurrency:
    """Tests for optimistic retries."""

    @pytest.mark.asyncio
    async def test_no_lost_updates(self, app, storage, users, shared_goal):
        """Twenty concurrent contributions all land."""
        await asyncio.gather(*(
            app.ledger.record(
                shared_goal.id,
                users["alice"].id if i % 2 else users["bob"].id,
                "10.00",
            )
            for i in range(20)
        ))
        stored = await storage.get_goal(shared_goal.id)
        assert stored.current_amount == Decimal("200.00")
        assert len(await app.ledger.contributions_of(shared_goal.id)) == 20

    @pytest.mark.asyncio
    async def test_lost_race_is_retried(self, users, clock):
        app, storage, _, goal = await _flaky_app(users, clock, failures=2)
        event = await app.ledger.record(goal.id, users["alice"].id, "100.00")

        assert storage.attempts == 3
        assert event.balance_after == Decimal("100.00")
        assert len(await app.ledger.contributions_of(goal.id)) == 1

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, users, clock):
        app, storage, audit_storage, goal = await _flaky_app(users, clock, failures=1000)
        with pytest.raises(ConcurrentModificationError):
            await app.ledger.record(goal.id, users["alice"].id, "100.00")

        assert storage.attempts == GoalSettings().max_update_attempts
        assert (await storage.get_goal(goal.id)).current_amount == Decimal("0")
        errors = [
            e for e in await audit_storage.get_recent_events()
            if e.event_type == AuditEventType.SYSTEM_ERROR
        ]
        assert len(errors) == 1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
