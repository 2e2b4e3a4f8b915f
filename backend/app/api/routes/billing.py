"""
Billing API Routes

Authenticated endpoints behind the pricing, success and account pages.
All handlers delegate to BillingService; error responses are produced by
the application's exception handlers as ``{"error", "code", "details"}``.
"""

import logging

from fastapi import APIRouter, Depends

from app.api.dependencies import get_current_user
from app.domain.subscription import (
    BillingHistoryResponse,
    CancelSubscriptionResponse,
    ChangePlanRequest,
    ChangePlanResponse,
    CheckoutResponse,
    CreateCheckoutRequest,
    InvoicePdfRequest,
    InvoicePdfResponse,
    VerifyCheckoutRequest,
    VerifyCheckoutResponse,
)
from app.domain.user import AuthenticatedUser
from app.infrastructure.services.billing_service import (
    BillingService,
    get_billing_service,
)


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/billing")


# =============================================================================
# Checkout
# =============================================================================

@router.post("/create-checkout-session", response_model=CheckoutResponse)
async def create_checkout_session(
    request: CreateCheckoutRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    billing: BillingService = Depends(get_billing_service),
):
    """
    Create a Stripe Checkout session for a plan.

    ``priceId`` is a plan identifier (monthly, yearly, free_trial), not a
    raw Stripe price ID.
    """
    return await billing.create_checkout(
        user,
        request.price_id,
        return_url=request.return_url,
        cancel_url=request.cancel_url,
    )


@router.post("/verify-checkout-session", response_model=VerifyCheckoutResponse)
async def verify_checkout_session(
    request: VerifyCheckoutRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    billing: BillingService = Depends(get_billing_service),
):
    """Reconcile a completed checkout into the user's subscription record."""
    return await billing.verify_checkout(user, request.session_id)


# =============================================================================
# Subscription Management
# =============================================================================

@router.post("/cancel-subscription", response_model=CancelSubscriptionResponse)
async def cancel_subscription(
    user: AuthenticatedUser = Depends(get_current_user),
    billing: BillingService = Depends(get_billing_service),
):
    """Cancel the subscription at the end of the current billing period."""
    return await billing.cancel_subscription(user)


@router.post(
    "/change-subscription-plan",
    response_model=ChangePlanResponse,
    response_model_exclude_none=True,
)
async def change_subscription_plan(
    request: ChangePlanRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    billing: BillingService = Depends(get_billing_service),
):
    """
    Switch plans with proration.

    Returns ``{"url"}`` instead when the user has nothing to change and
    must go through checkout.
    """
    return await billing.change_plan(user, request.new_price_id)


# =============================================================================
# Invoices
# =============================================================================

@router.post("/get-billing-history", response_model=BillingHistoryResponse)
async def get_billing_history(
    user: AuthenticatedUser = Depends(get_current_user),
    billing: BillingService = Depends(get_billing_service),
):
    return await billing.get_billing_history(user)


@router.post("/get-invoice-pdf", response_model=InvoicePdfResponse)
async def get_invoice_pdf(
    request: InvoicePdfRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    billing: BillingService = Depends(get_billing_service),
):
    return await billing.get_invoice_pdf(user, request.invoice_id)
