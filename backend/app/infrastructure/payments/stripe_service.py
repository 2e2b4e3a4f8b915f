"""
Stripe Payment Service

Clean Architecture infrastructure service for Stripe payment processing.
Handles customers, checkout sessions, subscriptions, prices and invoices.

Every Stripe failure is re-raised as StripeServiceError so callers never
depend on the SDK's exception types. Nothing here retries: a failed
provider call surfaces immediately.

Read methods return plain dicts (``StripeObject.to_dict()``); Stripe objects
are not dicts and do not support ``get``.
"""

import logging
from typing import Any, Dict, List, Optional

import stripe
from stripe import InvalidRequestError, StripeError

from app.config.settings import get_settings


logger = logging.getLogger(__name__)

CHECKOUT_SESSION_EXPAND = ["subscription", "line_items.data.price.product"]


class StripeServiceError(Exception):
    """Base exception for Stripe service errors."""

    def __init__(self, message: str, provider_message: Optional[str] = None):
        super().__init__(message)
        self.provider_message = provider_message


class StripeResourceNotFound(StripeServiceError):
    """Raised when Stripe reports ``resource_missing``."""


def _wrap_error(action: str, error: StripeError) -> StripeServiceError:
    provider_message = getattr(error, "user_message", None) or str(error)
    if isinstance(error, InvalidRequestError) and getattr(error, "code", None) == "resource_missing":
        return StripeResourceNotFound(f"Failed to {action}: not found", provider_message)
    return StripeServiceError(f"Failed to {action}: {provider_message}", provider_message)


class StripeService:
    """
    Stripe payment processing service.

    All methods are stateless; create-style calls are safe to retry from
    the caller's side because mappings are looked up first.
    """

    def __init__(self, api_key: Optional[str] = None, api_version: Optional[str] = None):
        """Initialize Stripe with API key from settings."""
        settings = get_settings()
        self._api_key = api_key or settings.stripe_secret_key

        if self._api_key:
            stripe.api_key = self._api_key
        else:
            logger.warning("STRIPE_SECRET_KEY not configured")

        stripe.api_version = api_version or settings.stripe_api_version

    # =========================================================================
    # Customer Management
    # =========================================================================

    async def create_customer(
        self,
        user_id: str,
        email: Optional[str],
    ) -> stripe.Customer:
        """
        Create a new Stripe customer.

        Args:
            user_id: Supabase auth user ID (stored in metadata)
            email: Customer email for receipts

        Returns:
            stripe.Customer object
        """
        try:
            customer = stripe.Customer.create(
                email=email,
                metadata={
                    "supabase_user_id": user_id,
                    "source": "timetrack",
                },
            )
            logger.info(f"Created Stripe customer {customer.id} for user {user_id}")
            return customer

        except StripeError as e:
            logger.error(f"Failed to create Stripe customer: {e}")
            raise _wrap_error("create customer", e)

    # =========================================================================
    # Prices
    # =========================================================================

    async def get_active_price_id(self, product_id: str) -> str:
        """
        Resolve the currently active price of a product.

        Raises:
            StripeServiceError if the product has no active price
        """
        try:
            prices = stripe.Price.list(product=product_id, active=True, limit=1)
        except StripeError as e:
            logger.error(f"Failed to list prices for product {product_id}: {e}")
            raise _wrap_error("list prices", e)

        if not prices.data:
            raise StripeServiceError(f"No active price found for product {product_id}")

        return prices.data[0].id

    # =========================================================================
    # Checkout Session
    # =========================================================================

    async def create_checkout_session(
        self,
        customer_id: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
        trial_period_days: Optional[int] = None,
    ) -> stripe.checkout.Session:
        """
        Create a Stripe Checkout Session in subscription mode.

        Args:
            customer_id: Stripe customer ID
            price_id: Stripe price to subscribe to
            success_url: Redirect after successful payment
                (``{CHECKOUT_SESSION_ID}`` is appended as ``session_id``)
            cancel_url: Redirect after cancelled payment
            metadata: Copied to both the session and the subscription
            trial_period_days: When set, the subscription starts trialing
                and the first charge happens at trial end

        Returns:
            stripe.checkout.Session with checkout URL
        """
        subscription_data: Dict[str, Any] = {"metadata": dict(metadata)}
        if trial_period_days:
            subscription_data["trial_period_days"] = trial_period_days

        separator = "&" if "?" in success_url else "?"

        try:
            session = stripe.checkout.Session.create(
                customer=customer_id,
                line_items=[
                    {
                        "price": price_id,
                        "quantity": 1,
                    }
                ],
                mode="subscription",
                success_url=f"{success_url}{separator}session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=cancel_url,
                metadata=dict(metadata),
                subscription_data=subscription_data,
            )

            logger.info(
                f"Created checkout session {session.id} for customer {customer_id}, "
                f"price={price_id}, trial_days={trial_period_days}"
            )
            return session

        except StripeError as e:
            logger.error(f"Failed to create checkout session: {e}")
            raise _wrap_error("create checkout", e)

    async def retrieve_checkout_session(self, session_id: str) -> Dict[str, Any]:
        """Retrieve a checkout session with its subscription and purchased price/product."""
        try:
            session = stripe.checkout.Session.retrieve(session_id, expand=CHECKOUT_SESSION_EXPAND)
            return session.to_dict()
        except StripeError as e:
            logger.error(f"Failed to retrieve checkout session {session_id}: {e}")
            raise _wrap_error("retrieve checkout session", e)

    # =========================================================================
    # Subscriptions
    # =========================================================================

    async def retrieve_subscription(self, subscription_id: str) -> Dict[str, Any]:
        """Retrieve a subscription by ID."""
        try:
            return stripe.Subscription.retrieve(subscription_id).to_dict()
        except StripeError as e:
            logger.error(f"Failed to retrieve subscription {subscription_id}: {e}")
            raise _wrap_error("retrieve subscription", e)

    async def cancel_at_period_end(self, subscription_id: str) -> stripe.Subscription:
        """Schedule cancellation at the end of the current billing period."""
        try:
            subscription = stripe.Subscription.modify(
                subscription_id,
                cancel_at_period_end=True,
            )
            logger.info(f"Scheduled cancellation of {subscription_id} at period end")
            return subscription

        except StripeError as e:
            logger.error(f"Failed to cancel subscription: {e}")
            raise _wrap_error("cancel", e)

    async def change_subscription_price(
        self,
        subscription_id: str,
        price_id: str,
    ) -> stripe.Subscription:
        """
        Move the subscription's single item to a new price with proration.
        """
        subscription = await self.retrieve_subscription(subscription_id)
        items = subscription["items"]["data"]
        if not items:
            raise StripeServiceError(f"Subscription {subscription_id} has no items")

        try:
            updated = stripe.Subscription.modify(
                subscription_id,
                items=[
                    {
                        "id": items[0]["id"],
                        "price": price_id,
                    }
                ],
                proration_behavior="create_prorations",
            )
            logger.info(f"Changed subscription {subscription_id} to price {price_id}")
            return updated

        except StripeError as e:
            logger.error(f"Failed to change subscription plan: {e}")
            raise _wrap_error("change plan", e)

    # =========================================================================
    # Invoices
    # =========================================================================

    async def list_invoices(self, customer_id: str, limit: int = 10) -> List[Dict[str, Any]]:
        """List the customer's most recent invoices."""
        try:
            invoices = stripe.Invoice.list(customer=customer_id, limit=limit)
            return [invoice.to_dict() for invoice in invoices.data]
        except StripeError as e:
            logger.error(f"Failed to list invoices for {customer_id}: {e}")
            raise _wrap_error("list invoices", e)

    async def retrieve_invoice(self, invoice_id: str) -> Dict[str, Any]:
        """Retrieve a single invoice."""
        try:
            return stripe.Invoice.retrieve(invoice_id).to_dict()
        except StripeError as e:
            logger.error(f"Failed to retrieve invoice {invoice_id}: {e}")
            raise _wrap_error("retrieve invoice", e)


# =============================================================================
# Singleton Instance (Dependency Injection Ready)
# =============================================================================

_stripe_service_instance: Optional[StripeService] = None


def get_stripe_service() -> StripeService:
    """Get or create Stripe service singleton."""
    global _stripe_service_instance

    if _stripe_service_instance is None:
        _stripe_service_instance = StripeService()

    return _stripe_service_instance
