"""
Entitlement Repository

Data access layer for the per-user entitlement record and the
billing-account reverse index.

Each public method runs in its own short session taken from the injected
session factory, so the repository can be shared by webhook handlers,
request handlers and background jobs alike.
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from todo_app.domain.entitlement import (
    Entitlement,
    EntitlementStatus,
    EntitlementUpdate,
    OperationResult,
    PaymentType,
    SubscriptionTier,
)
from todo_app.infrastructure.db.models.entitlement import (
    BillingAccountModel,
    EntitlementModel,
)
from todo_app.infrastructure.exceptions import DatabaseError


logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Drivers without timezone support hand back naive UTC values."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_column(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return _as_utc(value)
    return value


class EntitlementRepository:
    """
    Repository for entitlement data access.

    Args:
        session_factory: async session factory (one session per operation)
        clock: source of "now" for created_at/updated_at stamps
    """

    # Concurrent first writes for the same key race on the primary key;
    # the loser re-reads and merges over the winner's row.
    MAX_WRITE_ATTEMPTS = 2

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session_factory = session_factory
        self._clock = clock

    def now(self) -> datetime:
        return _as_utc(self._clock())

    # =========================================================================
    # Query Methods
    # =========================================================================

    async def get(self, user_id: str) -> Optional[Entitlement]:
        """
        Get the stored entitlement for a user.

        Returns:
            Entitlement or None if the user has no record yet

        Raises:
            DatabaseError: the read failed
        """
        try:
            async with self._session_factory() as session:
                model = await session.get(EntitlementModel, user_id)
                return self._to_domain(model) if model else None
        except SQLAlchemyError as e:
            logger.error(f"Error reading entitlement for user {user_id}: {e}")
            raise DatabaseError(
                "Failed to read entitlement",
                operation="get",
                table="entitlements",
                original_error=e,
            )

    async def get_or_default(self, user_id: str) -> Entitlement:
        """
        Get the entitlement, or a fresh FREE one if none exists.

        A missing record is never an error and nothing is written.
        """
        existing = await self.get(user_id)
        if existing:
            return existing
        return Entitlement.default(user_id, self.now())

    async def get_user_id_by_billing_account(
        self, billing_account_id: str
    ) -> Optional[str]:
        """
        Resolve a billing-account id to the owning user via the reverse index.

        Raises:
            DatabaseError: the read failed
        """
        try:
            async with self._session_factory() as session:
                model = await session.get(BillingAccountModel, billing_account_id)
                return model.user_id if model else None
        except SQLAlchemyError as e:
            logger.error(f"Error resolving billing account {billing_account_id}: {e}")
            raise DatabaseError(
                "Failed to read billing account index",
                operation="get",
                table="billing_accounts",
                original_error=e,
            )

    # =========================================================================
    # Command Methods
    # =========================================================================

    async def upsert(self, user_id: str, update: EntitlementUpdate) -> OperationResult:
        """
        Merge a partial update into the user's entitlement.

        Reads the current row (absence means a fresh FREE entitlement),
        keeps created_at, drops fields that were not set on ``update``,
        stamps updated_at and writes. When the update carries a
        billing_account_id the reverse index is upserted afterwards.

        Safe to repeat with the same payload; concurrent callers resolve
        to last-write-wins.

        Returns:
            OperationResult; failures are reported, not raised
        """
        changes = {field: _to_column(value) for field, value in update.changes().items()}
        now = self.now()

        try:
            await self._write_entitlement(user_id, changes, now)

            billing_account_id = changes.get("billing_account_id")
            if billing_account_id:
                await self._write_billing_account(billing_account_id, user_id, now)

        except SQLAlchemyError as e:
            logger.error(f"Error updating entitlement for user {user_id}: {e}")
            return OperationResult(success=False, error=str(e))

        logger.info(
            f"Updated entitlement for user {user_id}: "
            f"tier={changes.get('tier')}, billing_account_id={changes.get('billing_account_id')}"
        )
        return OperationResult(success=True)

    async def _write_entitlement(self, user_id: str, changes: dict, now: datetime) -> None:
        for attempt in range(1, self.MAX_WRITE_ATTEMPTS + 1):
            try:
                async with self._session_factory() as session:
                    model = await session.get(EntitlementModel, user_id)
                    if model is None:
                        model = EntitlementModel(
                            user_id=user_id,
                            tier=SubscriptionTier.FREE.value,
                            cancel_at_period_end=False,
                            created_at=now,
                            updated_at=now,
                        )
                        session.add(model)

                    for field, value in changes.items():
                        setattr(model, field, value)
                    model.updated_at = now

                    await session.commit()
                    return
            except IntegrityError:
                if attempt == self.MAX_WRITE_ATTEMPTS:
                    raise
                logger.warning(f"Concurrent entitlement insert for user {user_id}, retrying")

    async def _write_billing_account(
        self, billing_account_id: str, user_id: str, now: datetime
    ) -> None:
        for attempt in range(1, self.MAX_WRITE_ATTEMPTS + 1):
            try:
                async with self._session_factory() as session:
                    model = await session.get(BillingAccountModel, billing_account_id)
                    if model is None:
                        session.add(
                            BillingAccountModel(
                                billing_account_id=billing_account_id,
                                user_id=user_id,
                                updated_at=now,
                            )
                        )
                    elif model.user_id != user_id:
                        logger.warning(
                            f"Billing account {billing_account_id} moved from user "
                            f"{model.user_id} to {user_id}"
                        )
                        model.user_id = user_id
                        model.updated_at = now
                    else:
                        return

                    await session.commit()
                    return
            except IntegrityError:
                if attempt == self.MAX_WRITE_ATTEMPTS:
                    raise
                logger.warning(
                    f"Concurrent billing account insert for {billing_account_id}, retrying"
                )

    # =========================================================================
    # Mapping Methods
    # =========================================================================

    def _to_domain(self, model: EntitlementModel) -> Entitlement:
        """Convert database model to domain entity."""
        return Entitlement(
            user_id=model.user_id,
            tier=SubscriptionTier(model.tier),
            billing_account_id=model.billing_account_id,
            billing_subscription_id=model.billing_subscription_id,
            payment_type=PaymentType(model.payment_type) if model.payment_type else None,
            status=EntitlementStatus(model.status) if model.status else None,
            current_period_end=_as_utc(model.current_period_end),
            cancel_at_period_end=bool(model.cancel_at_period_end),
            created_at=_as_utc(model.created_at),
            updated_at=_as_utc(model.updated_at),
        )
