"""
Billing Service

Checkout and subscription reconciliation between Stripe and the local
``user_subscriptions`` table. One method per billing endpoint:

- create_checkout: start a Stripe-hosted checkout for a plan
- verify_checkout: reconcile a completed checkout into the local record
- cancel_subscription: cancel at period end
- change_plan: swap the subscription price with proration
- get_billing_history / get_invoice_pdf: read-only invoice access

Stripe is the source of truth. Local writes only happen after the
corresponding Stripe call succeeded, so a provider failure never leaves a
half-applied change behind.

Concurrent mutations for the same user (e.g. cancel racing a plan change)
are not serialized here; each request reads and writes the row
independently.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional, Tuple

from app.config.settings import Settings, get_settings
from app.domain.subscription import (
    BillingHistoryResponse,
    CancelSubscriptionResponse,
    ChangePlanResponse,
    CheckoutResponse,
    InvoicePdfResponse,
    InvoiceSummary,
    Subscription,
    SubscriptionStatus,
    SubscriptionType,
    VerifyCheckoutResponse,
    infer_subscription_type,
    normalize_status,
    resolve_plan,
)
from app.domain.user import AuthenticatedUser
from app.infrastructure.db.repositories.customer_repository import (
    CustomerRepository,
    get_customer_repository,
)
from app.infrastructure.db.repositories.subscription_repository import (
    SubscriptionRepository,
    get_subscription_repository,
)
from app.infrastructure.exceptions import (
    CheckoutIncompleteError,
    ConfigurationError,
    ForbiddenError,
    NotFoundError,
    PaymentProviderError,
    ValidationError,
)
from app.infrastructure.payments.stripe_service import (
    StripeResourceNotFound,
    StripeService,
    StripeServiceError,
    get_stripe_service,
)


logger = logging.getLogger(__name__)


def _object_id(value: Any) -> Optional[str]:
    """Stripe fields may hold an ID or an expanded object."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return value.get("id")


def _from_timestamp(value: Optional[int]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def _first_item(provider_subscription: Any) -> Optional[Any]:
    if not provider_subscription:
        return None
    items = (provider_subscription.get("items") or {}).get("data") or []
    return items[0] if items else None


def period_bounds(provider_subscription: Any) -> Tuple[Optional[datetime], Optional[datetime]]:
    """
    Current period of a Stripe subscription.

    Newer API versions only report the period on subscription items, so
    fall back to the first item.
    """
    if not provider_subscription:
        return None, None

    start = provider_subscription.get("current_period_start")
    end = provider_subscription.get("current_period_end")

    item = _first_item(provider_subscription)
    if item is not None:
        start = start if start is not None else item.get("current_period_start")
        end = end if end is not None else item.get("current_period_end")

    return _from_timestamp(start), _from_timestamp(end)


class BillingService:
    """
    Orchestrates Stripe calls and local subscription persistence.

    Stateless between calls; safe to share across requests.
    """

    def __init__(
        self,
        stripe_service: StripeService,
        subscription_repo: SubscriptionRepository,
        customer_repo: CustomerRepository,
        settings: Optional[Settings] = None,
    ):
        self._stripe = stripe_service
        self._subscriptions = subscription_repo
        self._customers = customer_repo
        self._settings = settings or get_settings()

    # =========================================================================
    # Helpers
    # =========================================================================

    def _product_for(self, plan: SubscriptionType) -> str:
        """Stripe product backing a plan. Trials check out the monthly product."""
        if plan == SubscriptionType.YEARLY:
            product_id = self._settings.stripe_yearly_product_id
            key = "STRIPE_YEARLY_PRODUCT_ID"
        else:
            product_id = self._settings.stripe_monthly_product_id
            key = "STRIPE_MONTHLY_PRODUCT_ID"

        if not product_id:
            raise ConfigurationError(
                f"No Stripe product configured for {plan.value}",
                missing_keys=[key],
            )
        return product_id

    def _frontend_url(self, path_or_url: Optional[str], default_path: str) -> str:
        target = path_or_url or default_path
        if target.startswith(("http://", "https://")):
            return target
        return f"{self._settings.frontend_url.rstrip('/')}/{target.lstrip('/')}"

    async def _ensure_customer(self, user: AuthenticatedUser) -> str:
        """Look up the user's Stripe customer, creating and persisting one if absent."""
        customer_id = await self._customers.get_customer_id(user.id)
        if customer_id:
            return customer_id

        customer = await self._stripe.create_customer(user.id, user.email)
        return await self._customers.save_customer_id(user.id, customer.id)

    async def _require_provider_subscription(self, user: AuthenticatedUser) -> Subscription:
        subscription = await self._subscriptions.get_by_user_id(user.id)
        if subscription is None or not subscription.provider_subscription_id:
            raise NotFoundError(
                "No active subscription found",
                code="subscription_not_found",
            )
        return subscription

    async def _customer_of(self, subscription: Subscription) -> Optional[str]:
        provider_subscription = await self._stripe.retrieve_subscription(
            subscription.provider_subscription_id
        )
        return _object_id(provider_subscription.get("customer"))

    # =========================================================================
    # Checkout
    # =========================================================================

    async def create_checkout(
        self,
        user: AuthenticatedUser,
        plan_id: str,
        return_url: Optional[str] = None,
        cancel_url: Optional[str] = None,
    ) -> CheckoutResponse:
        """
        Start a Stripe-hosted checkout for ``plan_id``.

        Raises:
            InvalidPlanError: unknown plan identifier
            PaymentProviderError: any Stripe failure
        """
        plan = resolve_plan(plan_id)
        product_id = self._product_for(plan)
        trial_days = self._settings.trial_period_days if plan == SubscriptionType.FREE_TRIAL else None

        try:
            price_id = await self._stripe.get_active_price_id(product_id)
            customer_id = await self._ensure_customer(user)
            session = await self._stripe.create_checkout_session(
                customer_id=customer_id,
                price_id=price_id,
                success_url=self._frontend_url(return_url, self._settings.checkout_success_path),
                cancel_url=self._frontend_url(cancel_url, self._settings.checkout_cancel_path),
                metadata={
                    "user_id": user.id,
                    "subscription_type": plan.value,
                },
                trial_period_days=trial_days,
            )
        except StripeServiceError as e:
            raise PaymentProviderError(
                "Could not start checkout",
                provider_message=e.provider_message,
                original_error=e,
            )

        logger.info(f"Started {plan.value} checkout {session.id} for user {user.id}")
        return CheckoutResponse(url=session.url, session_id=session.id)

    async def verify_checkout(
        self,
        user: AuthenticatedUser,
        session_id: str,
    ) -> VerifyCheckoutResponse:
        """
        Reconcile a completed checkout session into the local record.

        Idempotent: the upsert is keyed by user, so verifying the same
        session twice leaves a single row.
        """
        try:
            session = await self._stripe.retrieve_checkout_session(session_id)
        except StripeResourceNotFound:
            raise NotFoundError(
                "Checkout session not found",
                code="checkout_session_not_found",
            )
        except StripeServiceError as e:
            raise PaymentProviderError(
                "Could not verify checkout",
                provider_message=e.provider_message,
                original_error=e,
            )

        if session.get("status") != "complete":
            raise CheckoutIncompleteError(
                "Checkout session is not complete",
                details={"session_status": session.get("status")},
            )

        metadata = session.get("metadata") or {}
        session_owner = metadata.get("user_id")
        if session_owner and session_owner != user.id:
            logger.warning(f"User {user.id} tried to verify session {session_id} of {session_owner}")
            raise ForbiddenError("Checkout session belongs to another user")

        provider_subscription = session.get("subscription")
        if isinstance(provider_subscription, str):
            try:
                provider_subscription = await self._stripe.retrieve_subscription(provider_subscription)
            except StripeServiceError as e:
                raise PaymentProviderError(
                    "Could not verify checkout",
                    provider_message=e.provider_message,
                    original_error=e,
                )

        price = self._purchased_price(session, provider_subscription)
        product = price.get("product") if price else None
        subscription_metadata = (provider_subscription or {}).get("metadata") or {}
        subscription_type = infer_subscription_type(
            metadata.get("subscription_type") or subscription_metadata.get("subscription_type"),
            [
                product.get("name") if product and not isinstance(product, str) else None,
                _object_id(product),
                _object_id(price),
            ],
        )

        if provider_subscription:
            status = normalize_status(provider_subscription.get("status"))
        else:
            status = SubscriptionStatus.ACTIVE

        period_start, period_end = period_bounds(provider_subscription)
        if period_end is not None and period_end < datetime.now(timezone.utc):
            logger.info(f"Session {session_id} period already ended, recording as canceled")
            status = SubscriptionStatus.CANCELED

        saved = await self._subscriptions.upsert(
            Subscription(
                owner_id=user.id,
                status=status,
                subscription_type=subscription_type,
                current_period_start=period_start,
                current_period_end=period_end,
                price_id=_object_id(price),
                provider_subscription_id=_object_id(provider_subscription),
                provider_customer_id=_object_id(session.get("customer")),
            )
        )

        logger.info(
            f"Verified checkout {session_id} for user {user.id}: "
            f"{subscription_type.value}/{status.value}"
        )
        return VerifyCheckoutResponse(
            status=saved.status,
            subscription_type=saved.subscription_type,
            current_period_start=saved.current_period_start,
            current_period_end=saved.current_period_end,
            price_id=saved.price_id,
        )

    @staticmethod
    def _purchased_price(session: Any, provider_subscription: Any) -> Optional[Any]:
        item = _first_item(provider_subscription)
        if item is not None and item.get("price"):
            return item.get("price")

        line_items = (session.get("line_items") or {}).get("data") or []
        if line_items:
            return line_items[0].get("price")
        return None

    # =========================================================================
    # Subscription Mutations
    # =========================================================================

    async def cancel_subscription(self, user: AuthenticatedUser) -> CancelSubscriptionResponse:
        """
        Cancel at period end; access continues until ``current_period_end``.

        Raises:
            NotFoundError (subscription_not_found): user has no subscription
            PaymentProviderError: Stripe refused; local record untouched
        """
        subscription = await self._subscriptions.get_by_user_id(user.id)
        if subscription is None:
            raise NotFoundError(
                "No subscription found to cancel",
                code="subscription_not_found",
            )

        if subscription.status == SubscriptionStatus.CANCELED:
            return CancelSubscriptionResponse(
                status=subscription.status,
                current_period_end=subscription.current_period_end,
                message="Subscription is already canceled",
            )

        if subscription.provider_subscription_id:
            try:
                await self._stripe.cancel_at_period_end(subscription.provider_subscription_id)
            except StripeServiceError as e:
                raise PaymentProviderError(
                    "Could not cancel subscription",
                    provider_message=e.provider_message,
                    original_error=e,
                )
        elif subscription.subscription_type == SubscriptionType.FREE_TRIAL:
            logger.info(f"Trial for user {user.id} has no Stripe subscription, canceling locally")
        else:
            logger.warning(
                f"Subscription for user {user.id} has no Stripe subscription id, canceling locally"
            )

        updated = await self._subscriptions.update_status(user.id, SubscriptionStatus.CANCELED)
        return CancelSubscriptionResponse(
            status=updated.status,
            current_period_end=updated.current_period_end,
            message="Subscription canceled. Access continues until the end of the billing period.",
        )

    async def change_plan(
        self,
        user: AuthenticatedUser,
        new_plan_id: str,
    ) -> ChangePlanResponse:
        """
        Switch the user's subscription to another plan.

        Users without a Stripe subscription get a fresh checkout URL instead.
        """
        plan = resolve_plan(new_plan_id)
        subscription = await self._subscriptions.get_by_user_id(user.id)

        if subscription is None or not subscription.provider_subscription_id:
            checkout = await self.create_checkout(user, new_plan_id)
            return ChangePlanResponse(url=checkout.url)

        if subscription.subscription_type == plan:
            return ChangePlanResponse(success=True, message="Already subscribed to this plan")

        if plan == SubscriptionType.FREE_TRIAL:
            raise ValidationError(
                "An existing subscription cannot be changed to a free trial",
                code="invalid_plan",
            )

        try:
            price_id = await self._stripe.get_active_price_id(self._product_for(plan))
            if subscription.price_id != price_id:
                await self._stripe.change_subscription_price(
                    subscription.provider_subscription_id,
                    price_id,
                )
        except StripeServiceError as e:
            raise PaymentProviderError(
                "Could not change subscription plan",
                provider_message=e.provider_message,
                original_error=e,
            )

        await self._subscriptions.update_plan(user.id, plan, price_id)
        logger.info(f"Changed plan for user {user.id} to {plan.value}")
        return ChangePlanResponse(
            success=True,
            message="Subscription plan has been updated successfully",
        )

    # =========================================================================
    # Invoices
    # =========================================================================

    async def get_billing_history(self, user: AuthenticatedUser) -> BillingHistoryResponse:
        """Last invoices of the user's Stripe customer; empty without a subscription."""
        subscription = await self._subscriptions.get_by_user_id(user.id)
        if subscription is None or not subscription.provider_subscription_id:
            return BillingHistoryResponse(invoices=[])

        try:
            customer_id = await self._customer_of(subscription)
            invoices = await self._stripe.list_invoices(customer_id) if customer_id else []
        except StripeServiceError as e:
            raise PaymentProviderError(
                "Could not fetch billing history",
                provider_message=e.provider_message,
                original_error=e,
            )

        return BillingHistoryResponse(
            invoices=[self._invoice_summary(invoice) for invoice in invoices]
        )

    async def get_invoice_pdf(self, user: AuthenticatedUser, invoice_id: str) -> InvoicePdfResponse:
        """
        PDF URL of an invoice owned by the user's Stripe customer.

        Raises:
            ForbiddenError: invoice belongs to another customer
        """
        subscription = await self._require_provider_subscription(user)

        try:
            invoice = await self._stripe.retrieve_invoice(invoice_id)
            customer_id = await self._customer_of(subscription)
        except StripeResourceNotFound:
            raise NotFoundError("Invoice not found", code="invoice_not_found")
        except StripeServiceError as e:
            raise PaymentProviderError(
                "Could not retrieve invoice",
                provider_message=e.provider_message,
                original_error=e,
            )

        if _object_id(invoice.get("customer")) != customer_id:
            raise ForbiddenError("Unauthorized access to invoice")

        return InvoicePdfResponse(pdf_url=invoice.get("invoice_pdf"))

    @staticmethod
    def _invoice_summary(invoice: Any) -> InvoiceSummary:
        return InvoiceSummary(
            id=invoice.get("id"),
            number=invoice.get("number"),
            status=invoice.get("status"),
            amount_due=invoice.get("amount_due") or 0,
            amount_paid=invoice.get("amount_paid") or 0,
            currency=invoice.get("currency"),
            created=_from_timestamp(invoice.get("created")),
            period_start=_from_timestamp(invoice.get("period_start")),
            period_end=_from_timestamp(invoice.get("period_end")),
            hosted_invoice_url=invoice.get("hosted_invoice_url"),
            invoice_pdf=invoice.get("invoice_pdf"),
        )


# =============================================================================
# Singleton Instance
# =============================================================================

_billing_service_instance: Optional[BillingService] = None


def get_billing_service() -> BillingService:
    """Get or create billing service singleton."""
    global _billing_service_instance

    if _billing_service_instance is None:
        _billing_service_instance = BillingService(
            stripe_service=get_stripe_service(),
            subscription_repo=get_subscription_repository(),
            customer_repo=get_customer_repository(),
        )

    return _billing_service_instance
