"""
Subscription Repository

Data access layer for the ``user_subscriptions`` table.
Follows Repository pattern for Clean Architecture.
"""

import logging
from typing import Optional, Union
from uuid import UUID, uuid4

from sqlmodel import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError

from app.infrastructure.db.database import get_session_context
from app.infrastructure.db.models.base import utcnow
from app.infrastructure.db.models.subscription import SubscriptionModel
from app.infrastructure.exceptions import DatabaseError, NotFoundError
from app.domain.subscription import (
    Subscription,
    SubscriptionStatus,
    SubscriptionType,
    normalize_status,
)


logger = logging.getLogger(__name__)

TABLE = "user_subscriptions"


def to_uuid(value: Union[str, UUID]) -> UUID:
    """Convert string user ids to UUID for PostgreSQL compatibility."""
    return value if isinstance(value, UUID) else UUID(str(value))


class SubscriptionRepository:
    """
    Repository for subscription data access.

    One row per user; every write is keyed by ``auth_user_id``.
    """

    # =========================================================================
    # Query Methods
    # =========================================================================

    async def get_by_user_id(self, user_id: str) -> Optional[Subscription]:
        """
        Get subscription by user ID.

        Args:
            user_id: Supabase auth user ID

        Returns:
            Subscription domain model or None
        """
        async with get_session_context() as session:
            statement = select(SubscriptionModel).where(
                SubscriptionModel.auth_user_id == to_uuid(user_id)
            )
            result = await session.execute(statement)
            model = result.scalar_one_or_none()

            if model:
                return self._to_domain(model)

            return None

    # =========================================================================
    # Command Methods
    # =========================================================================

    async def upsert(self, subscription: Subscription) -> Subscription:
        """
        Create or update the user's subscription in a single statement.

        Running it twice for the same user updates the existing row rather
        than inserting a second one.

        Args:
            subscription: Subscription domain model

        Returns:
            Created/updated subscription
        """
        now = utcnow()
        values = {
            "id": uuid4(),
            "auth_user_id": to_uuid(subscription.owner_id),
            "status": subscription.status.value,
            "subscription_type": subscription.subscription_type.value,
            "price_id": subscription.price_id,
            "stripe_subscription_id": subscription.provider_subscription_id,
            "stripe_customer_id": subscription.provider_customer_id,
            "current_period_start": subscription.current_period_start,
            "current_period_end": subscription.current_period_end,
            "created_at": now,
            "updated_at": now,
        }

        stmt = pg_insert(SubscriptionModel).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["auth_user_id"],
            set_={
                "status": stmt.excluded.status,
                "subscription_type": stmt.excluded.subscription_type,
                "price_id": stmt.excluded.price_id,
                "stripe_subscription_id": stmt.excluded.stripe_subscription_id,
                "stripe_customer_id": stmt.excluded.stripe_customer_id,
                "current_period_start": stmt.excluded.current_period_start,
                "current_period_end": stmt.excluded.current_period_end,
                "updated_at": now,
            },
        )

        try:
            async with get_session_context() as session:
                await session.execute(stmt)
        except SQLAlchemyError as e:
            logger.error(f"Failed to upsert subscription for user {subscription.owner_id}: {e}")
            raise DatabaseError(
                "Failed to save subscription",
                operation="upsert",
                table=TABLE,
                original_error=e,
            )

        logger.info(
            f"Upserted {subscription.subscription_type.value} subscription "
            f"for user {subscription.owner_id} (status={subscription.status.value})"
        )
        return await self.get_by_user_id(subscription.owner_id)

    async def update_status(
        self,
        user_id: str,
        status: SubscriptionStatus,
    ) -> Subscription:
        """
        Set the subscription status, leaving the billing period untouched.

        Raises:
            NotFoundError if the user has no subscription row
        """
        return await self._update(user_id, "update_status", status=status.value)

    async def update_plan(
        self,
        user_id: str,
        subscription_type: SubscriptionType,
        price_id: str,
    ) -> Subscription:
        """
        Rewrite plan type and price together.

        Raises:
            NotFoundError if the user has no subscription row
        """
        return await self._update(
            user_id,
            "update_plan",
            subscription_type=subscription_type.value,
            price_id=price_id,
        )

    async def _update(self, user_id: str, operation: str, **fields) -> Subscription:
        try:
            async with get_session_context() as session:
                statement = select(SubscriptionModel).where(
                    SubscriptionModel.auth_user_id == to_uuid(user_id)
                )
                result = await session.execute(statement)
                model = result.scalar_one_or_none()

                if not model:
                    raise NotFoundError(
                        f"Subscription not found for user {user_id}",
                        operation=operation,
                        table=TABLE,
                        code="subscription_not_found",
                    )

                for field, value in fields.items():
                    setattr(model, field, value)
                model.updated_at = utcnow()

                await session.commit()
                await session.refresh(model)
        except SQLAlchemyError as e:
            logger.error(f"Failed to {operation} for user {user_id}: {e}")
            raise DatabaseError(
                "Failed to update subscription",
                operation=operation,
                table=TABLE,
                original_error=e,
            )

        logger.info(f"Updated subscription for user {user_id}: {fields}")
        return self._to_domain(model)

    # =========================================================================
    # Mapping Methods
    # =========================================================================

    def _to_domain(self, model: SubscriptionModel) -> Subscription:
        """Convert database model to domain entity."""
        try:
            subscription_type = SubscriptionType(model.subscription_type)
        except ValueError:
            subscription_type = SubscriptionType.MONTHLY

        return Subscription(
            id=str(model.id),
            owner_id=str(model.auth_user_id),
            status=normalize_status(model.status),
            subscription_type=subscription_type,
            current_period_start=model.current_period_start,
            current_period_end=model.current_period_end,
            price_id=model.price_id,
            provider_subscription_id=model.stripe_subscription_id,
            provider_customer_id=model.stripe_customer_id,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )


# =============================================================================
# Singleton Instance
# =============================================================================

_subscription_repo_instance: Optional[SubscriptionRepository] = None


def get_subscription_repository() -> SubscriptionRepository:
    """Get or create subscription repository singleton."""
    global _subscription_repo_instance

    if _subscription_repo_instance is None:
        _subscription_repo_instance = SubscriptionRepository()

    return _subscription_repo_instance
