"""
Subscription Domain Models

Domain models for subscription management following Clean Architecture.
Enums, DTOs, domain entities and the entitlement predicates for the
subscription bounded context.

Every consumer that needs to know whether a user is entitled to premium
features must go through ``is_active`` / ``is_expired`` / ``ui_status``
rather than re-deriving the rule from ``status`` alone.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.infrastructure.exceptions import InvalidPlanError


class SubscriptionStatus(str, Enum):
    """Subscription lifecycle status (Stripe's enumeration)."""
    ACTIVE = "active"
    TRIALING = "trialing"
    CANCELED = "canceled"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    PAST_DUE = "past_due"
    UNPAID = "unpaid"


class SubscriptionType(str, Enum):
    """Local business classification of the purchased plan."""
    MONTHLY = "monthly"
    YEARLY = "yearly"
    FREE_TRIAL = "free_trial"


# Statuses that still grant access while the period has not lapsed.
# CANCELED is included: cancellation happens at period end.
ENTITLED_STATUSES = frozenset({
    SubscriptionStatus.ACTIVE,
    SubscriptionStatus.TRIALING,
    SubscriptionStatus.CANCELED,
})

# Wire identifiers accepted from the front end
PLAN_ALIASES = {
    "monthly": SubscriptionType.MONTHLY,
    "price_monthly": SubscriptionType.MONTHLY,
    "yearly": SubscriptionType.YEARLY,
    "price_yearly": SubscriptionType.YEARLY,
    "free_trial": SubscriptionType.FREE_TRIAL,
}

# Values written by older clients that are not Stripe statuses
_LEGACY_STATUSES = {
    "expired": SubscriptionStatus.CANCELED,
    "none": SubscriptionStatus.CANCELED,
}


# =============================================================================
# Domain Entities
# =============================================================================

class Subscription(BaseModel):
    """Core subscription domain entity (local projection of Stripe state)."""
    id: Optional[str] = None
    owner_id: str
    status: SubscriptionStatus = SubscriptionStatus.INCOMPLETE
    subscription_type: SubscriptionType = SubscriptionType.MONTHLY
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    price_id: Optional[str] = None
    provider_subscription_id: Optional[str] = None
    provider_customer_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


def resolve_plan(plan_id: Optional[str]) -> SubscriptionType:
    """Map a wire plan identifier to a SubscriptionType or raise InvalidPlanError."""
    if not plan_id:
        raise InvalidPlanError(plan_id)
    plan = PLAN_ALIASES.get(plan_id.strip().lower())
    if plan is None:
        raise InvalidPlanError(plan_id)
    return plan


def normalize_status(value: Any) -> SubscriptionStatus:
    """
    Coerce a provider or stored status string into SubscriptionStatus.

    Legacy values map to CANCELED; anything else unrecognized becomes
    INCOMPLETE, which never grants access.
    """
    if isinstance(value, SubscriptionStatus):
        return value
    if not isinstance(value, str):
        return SubscriptionStatus.INCOMPLETE
    raw = value.strip().lower()
    if raw in _LEGACY_STATUSES:
        return _LEGACY_STATUSES[raw]
    try:
        return SubscriptionStatus(raw)
    except ValueError:
        return SubscriptionStatus.INCOMPLETE


def infer_subscription_type(
    metadata_type: Optional[str],
    identifiers: Iterable[Optional[str]] = (),
) -> SubscriptionType:
    """
    Resolve the plan classification of a completed checkout.

    Order of preference:
    1. Explicit ``subscription_type`` from session metadata
    2. "monthly" / "yearly" substring in price/product ids or names
    3. MONTHLY
    """
    if metadata_type:
        try:
            return SubscriptionType(metadata_type.strip().lower())
        except ValueError:
            pass

    for identifier in identifiers:
        if not identifier:
            continue
        lowered = identifier.lower()
        if "monthly" in lowered:
            return SubscriptionType.MONTHLY
        if "yearly" in lowered:
            return SubscriptionType.YEARLY

    return SubscriptionType.MONTHLY


def parse_subscription_row(row: Mapping[str, Any]) -> Subscription:
    """Parse a ``user_subscriptions`` row (REST or realtime payload) into a Subscription."""
    subscription_type = row.get("subscription_type")
    try:
        plan = SubscriptionType(subscription_type) if subscription_type else SubscriptionType.MONTHLY
    except ValueError:
        plan = infer_subscription_type(None, [subscription_type])

    row_id = row.get("id")
    return Subscription(
        id=str(row_id) if row_id is not None else None,
        owner_id=str(row.get("auth_user_id")),
        status=normalize_status(row.get("status")),
        subscription_type=plan,
        current_period_start=row.get("current_period_start"),
        current_period_end=row.get("current_period_end"),
        price_id=row.get("price_id"),
        provider_subscription_id=row.get("stripe_subscription_id"),
        provider_customer_id=row.get("stripe_customer_id"),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


# =============================================================================
# Entitlement Predicates (pure, total)
# =============================================================================

def _as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _now(now: Optional[datetime]) -> datetime:
    return _as_utc(now) if now is not None else datetime.now(timezone.utc)


def _period_end(sub: Optional[Subscription]) -> Optional[datetime]:
    if sub is None or sub.current_period_end is None:
        return None
    return _as_utc(sub.current_period_end)


def is_active(sub: Optional[Subscription], now: Optional[datetime] = None) -> bool:
    """Whether the subscription currently entitles the user to premium features."""
    end = _period_end(sub)
    if end is None:
        return False
    return sub.status in ENTITLED_STATUSES and end > _now(now)


def is_expired(sub: Optional[Subscription], now: Optional[datetime] = None) -> bool:
    """Whether the paid/trial period has lapsed, independent of stored status."""
    end = _period_end(sub)
    if end is None:
        return False
    return end < _now(now)


def ui_status(sub: Optional[Subscription], now: Optional[datetime] = None) -> str:
    """Status to display: lapsed or missing subscriptions always read as canceled."""
    if sub is None or is_expired(sub, now):
        return SubscriptionStatus.CANCELED.value
    return sub.status.value


def is_trial_active(sub: Optional[Subscription], now: Optional[datetime] = None) -> bool:
    end = _period_end(sub)
    if end is None:
        return False
    return sub.status == SubscriptionStatus.TRIALING and end > _now(now)


def is_trial_expired(sub: Optional[Subscription], now: Optional[datetime] = None) -> bool:
    end = _period_end(sub)
    if end is None:
        return False
    return sub.status == SubscriptionStatus.TRIALING and end < _now(now)


# =============================================================================
# Request/Response DTOs
# =============================================================================

class CamelModel(BaseModel):
    """Base DTO serialized with camelCase keys, as the front end expects."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateCheckoutRequest(CamelModel):
    """Request DTO for creating a checkout session."""
    price_id: str = Field(..., description="Plan identifier: monthly, yearly or free_trial")
    return_url: Optional[str] = Field(
        default=None,
        description="Path or URL to return to after successful payment",
    )
    cancel_url: Optional[str] = Field(
        default=None,
        description="Path or URL to return to after cancelled payment",
    )


class CheckoutResponse(CamelModel):
    """Response DTO for checkout session creation."""
    url: str
    session_id: Optional[str] = None


class VerifyCheckoutRequest(CamelModel):
    session_id: str = Field(..., min_length=1)


class VerifyCheckoutResponse(CamelModel):
    """Reconciled subscription state after a completed checkout."""
    status: SubscriptionStatus
    subscription_type: SubscriptionType
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    price_id: Optional[str] = None


class CancelSubscriptionResponse(CamelModel):
    success: bool = True
    status: SubscriptionStatus
    current_period_end: Optional[datetime] = None
    message: Optional[str] = None


class ChangePlanRequest(CamelModel):
    new_price_id: str = Field(..., description="Target plan identifier")


class ChangePlanResponse(CamelModel):
    """Either an in-place change (success) or a fresh checkout (url)."""
    success: Optional[bool] = None
    url: Optional[str] = None
    message: Optional[str] = None


class InvoiceSummary(CamelModel):
    id: str
    number: Optional[str] = None
    status: Optional[str] = None
    amount_due: int = 0
    amount_paid: int = 0
    currency: Optional[str] = None
    created: Optional[datetime] = None
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None
    hosted_invoice_url: Optional[str] = None
    invoice_pdf: Optional[str] = None


class BillingHistoryResponse(CamelModel):
    invoices: list[InvoiceSummary] = Field(default_factory=list)


class InvoicePdfRequest(CamelModel):
    invoice_id: str = Field(..., min_length=1)


class InvoicePdfResponse(CamelModel):
    pdf_url: Optional[str] = None
