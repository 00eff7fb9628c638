"""
Unit tests for EntitlementRepository.

Runs against in-memory SQLite so the merge, timestamp and reverse-index
behaviour is exercised through real SQL.
"""

from datetime import datetime, timezone

import pytest
from sqlmodel import SQLModel

from todo_app.domain.entitlement import (
    EntitlementStatus,
    EntitlementUpdate,
    PaymentType,
    SubscriptionTier,
)
from todo_app.infrastructure.exceptions import DatabaseError


PERIOD_END = datetime(2026, 2, 1, tzinfo=timezone.utc)


async def _drop_tables(engine):
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)


class TestReads:

    async def test_get_unknown_user_returns_none(self, entitlement_repo):
        assert await entitlement_repo.get("nobody") is None

    async def test_get_or_default_returns_free_without_writing(self, entitlement_repo, clock):
        entitlement = await entitlement_repo.get_or_default("u1")

        assert entitlement.tier == SubscriptionTier.FREE
        assert entitlement.billing_account_id is None
        assert entitlement.billing_subscription_id is None
        assert entitlement.payment_type is None
        assert entitlement.status is None
        assert entitlement.cancel_at_period_end is False
        assert entitlement.created_at == clock.current
        assert entitlement.updated_at == clock.current

        assert await entitlement_repo.get("u1") is None

    async def test_get_raises_database_error_when_read_fails(self, entitlement_repo, engine):
        await _drop_tables(engine)

        with pytest.raises(DatabaseError):
            await entitlement_repo.get("u1")

    async def test_unknown_billing_account_resolves_to_none(self, entitlement_repo):
        assert await entitlement_repo.get_user_id_by_billing_account("cus_unknown") is None


class TestUpsert:

    async def test_first_write_creates_free_based_record(self, entitlement_repo, clock):
        result = await entitlement_repo.upsert(
            "u1", EntitlementUpdate(status=EntitlementStatus.ACTIVE)
        )

        assert result.success is True
        stored = await entitlement_repo.get("u1")
        assert stored.tier == SubscriptionTier.FREE
        assert stored.status == EntitlementStatus.ACTIVE
        assert stored.created_at == clock.current
        assert stored.updated_at == clock.current

    async def test_created_at_is_preserved_and_updated_at_advances(self, entitlement_repo, clock):
        first_write = clock.current
        await entitlement_repo.upsert("u1", EntitlementUpdate(tier=SubscriptionTier.PREMIUM))

        second_write = clock.advance(120)
        await entitlement_repo.upsert("u1", EntitlementUpdate(cancel_at_period_end=True))

        stored = await entitlement_repo.get("u1")
        assert stored.created_at == first_write
        assert stored.updated_at == second_write

    async def test_unset_fields_are_not_overwritten(self, entitlement_repo):
        await entitlement_repo.upsert(
            "u1",
            EntitlementUpdate(
                tier=SubscriptionTier.PREMIUM,
                billing_account_id="cus_1",
                payment_type=PaymentType.RECURRING,
            ),
        )
        await entitlement_repo.upsert("u1", EntitlementUpdate(cancel_at_period_end=True))

        stored = await entitlement_repo.get("u1")
        assert stored.tier == SubscriptionTier.PREMIUM
        assert stored.billing_account_id == "cus_1"
        assert stored.payment_type == PaymentType.RECURRING
        assert stored.cancel_at_period_end is True

    async def test_explicit_none_clears_period_end(self, entitlement_repo):
        await entitlement_repo.upsert("u1", EntitlementUpdate(current_period_end=PERIOD_END))
        assert (await entitlement_repo.get("u1")).current_period_end == PERIOD_END

        await entitlement_repo.upsert("u1", EntitlementUpdate(current_period_end=None))

        assert (await entitlement_repo.get("u1")).current_period_end is None

    async def test_billing_account_is_indexed(self, entitlement_repo):
        await entitlement_repo.upsert("u1", EntitlementUpdate(billing_account_id="cus_1"))

        assert await entitlement_repo.get_user_id_by_billing_account("cus_1") == "u1"

    async def test_update_without_billing_account_leaves_index_alone(self, entitlement_repo):
        await entitlement_repo.upsert("u1", EntitlementUpdate(tier=SubscriptionTier.PREMIUM))

        assert await entitlement_repo.get_user_id_by_billing_account("cus_1") is None

    async def test_index_follows_latest_owner(self, entitlement_repo):
        await entitlement_repo.upsert("u1", EntitlementUpdate(billing_account_id="cus_1"))
        await entitlement_repo.upsert("u2", EntitlementUpdate(billing_account_id="cus_1"))

        assert await entitlement_repo.get_user_id_by_billing_account("cus_1") == "u2"

    async def test_repeating_an_update_is_idempotent(self, entitlement_repo):
        update = EntitlementUpdate(
            tier=SubscriptionTier.PREMIUM,
            billing_account_id="cus_1",
            status=EntitlementStatus.ACTIVE,
            current_period_end=PERIOD_END,
        )
        await entitlement_repo.upsert("u1", update)
        first = await entitlement_repo.get("u1")

        await entitlement_repo.upsert("u1", update)
        second = await entitlement_repo.get("u1")

        assert second == first

    async def test_write_failure_is_reported_not_raised(self, entitlement_repo, engine):
        await _drop_tables(engine)

        result = await entitlement_repo.upsert(
            "u1", EntitlementUpdate(tier=SubscriptionTier.PREMIUM)
        )

        assert result.success is False
        assert result.error
