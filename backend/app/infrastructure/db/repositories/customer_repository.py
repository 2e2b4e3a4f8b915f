"""
Stripe Customer Repository

Persists the auth user -> Stripe customer mapping used at checkout.
"""

import logging
from typing import Optional

from sqlmodel import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError

from app.infrastructure.db.database import get_session_context
from app.infrastructure.db.models.subscription import StripeCustomerModel
from app.infrastructure.db.repositories.subscription_repository import to_uuid
from app.infrastructure.exceptions import DatabaseError


logger = logging.getLogger(__name__)


class CustomerRepository:
    """Repository for the ``stripe_customers`` mapping table."""

    async def get_customer_id(self, user_id: str) -> Optional[str]:
        """Return the stored Stripe customer ID for a user, if any."""
        async with get_session_context() as session:
            statement = select(StripeCustomerModel.stripe_customer_id).where(
                StripeCustomerModel.auth_user_id == to_uuid(user_id)
            )
            result = await session.execute(statement)
            return result.scalar_one_or_none()

    async def save_customer_id(self, user_id: str, customer_id: str) -> str:
        """
        Store a mapping unless one already exists.

        Returns the mapping that is stored afterwards, which is the earlier
        one when two requests race.
        """
        stmt = (
            pg_insert(StripeCustomerModel)
            .values(auth_user_id=to_uuid(user_id), stripe_customer_id=customer_id)
            .on_conflict_do_nothing(index_elements=["auth_user_id"])
        )

        try:
            async with get_session_context() as session:
                await session.execute(stmt)
        except SQLAlchemyError as e:
            logger.error(f"Failed to save Stripe customer for user {user_id}: {e}")
            raise DatabaseError(
                "Failed to save customer mapping",
                operation="save_customer_id",
                table="stripe_customers",
                original_error=e,
            )

        stored = await self.get_customer_id(user_id)
        if stored != customer_id:
            logger.warning(
                f"User {user_id} already mapped to customer {stored}, "
                f"discarding {customer_id}"
            )
        return stored or customer_id


_customer_repo_instance: Optional[CustomerRepository] = None


def get_customer_repository() -> CustomerRepository:
    """Get or create customer repository singleton."""
    global _customer_repo_instance

    if _customer_repo_instance is None:
        _customer_repo_instance = CustomerRepository()

    return _customer_repo_instance
