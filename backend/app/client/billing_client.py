"""
Billing API Client

Async client for the ``/api/billing/*`` endpoints, used by front ends and
scripts acting on behalf of a signed-in user.

Every mutating call (checkout verification, cancel, plan change) drops the
coordinator's cached subscription so the next read reflects the change.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from app.client.coordinator import SubscriptionCoordinator
from app.domain.subscription import (
    BillingHistoryResponse,
    CancelSubscriptionResponse,
    ChangePlanResponse,
    CheckoutResponse,
    VerifyCheckoutResponse,
)
from app.infrastructure.exceptions import TimeTrackError


logger = logging.getLogger(__name__)


class BillingClientError(TimeTrackError):
    """Non-2xx response (or no response at all) from the billing API."""

    def __init__(
        self,
        status: int,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details=details, code=code)
        self.status = status


class BillingClient:
    """
    Args:
        base_url: Backend origin, e.g. ``https://api.example.com``
        access_token: Supabase access token of the signed-in user
        coordinator: Optional coordinator whose cache is invalidated after
            mutations
        transport: Optional httpx transport (tests use MockTransport)
    """

    def __init__(
        self,
        base_url: str,
        access_token: str,
        coordinator: Optional[SubscriptionCoordinator] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0,
    ):
        self._base_url = base_url.rstrip("/")
        self._access_token = access_token
        self._coordinator = coordinator
        self._transport = transport
        self._timeout = timeout

    def set_access_token(self, access_token: str) -> None:
        self._access_token = access_token

    async def _post(self, endpoint: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self._base_url}/api/billing/{endpoint}"
        headers = {"Authorization": f"Bearer {self._access_token}"}

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(url, json=payload or {}, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"[BILLING] {endpoint} request failed: {e}")
            raise BillingClientError(0, "network_error", f"Request to {endpoint} failed: {e}")

        if response.is_success:
            return response.json()

        try:
            body = response.json()
        except ValueError:
            body = {}

        if not isinstance(body, dict):
            body = {}

        error = BillingClientError(
            response.status_code,
            body.get("code") or "http_error",
            body.get("error") or response.text or f"HTTP {response.status_code}",
            details=body.get("details"),
        )
        logger.warning(f"[BILLING] {endpoint} returned {error.status}: {error.code}")
        raise error

    def _invalidate(self) -> None:
        if self._coordinator is not None:
            self._coordinator.invalidate()

    # =========================================================================
    # Endpoints
    # =========================================================================

    async def create_checkout_session(
        self,
        plan_id: str,
        return_url: Optional[str] = None,
        cancel_url: Optional[str] = None,
    ) -> CheckoutResponse:
        payload: Dict[str, Any] = {"priceId": plan_id}
        if return_url:
            payload["returnUrl"] = return_url
        if cancel_url:
            payload["cancelUrl"] = cancel_url

        data = await self._post("create-checkout-session", payload)
        return CheckoutResponse.model_validate(data)

    async def verify_checkout_session(self, session_id: str) -> VerifyCheckoutResponse:
        data = await self._post("verify-checkout-session", {"sessionId": session_id})
        self._invalidate()
        return VerifyCheckoutResponse.model_validate(data)

    async def cancel_subscription(self) -> CancelSubscriptionResponse:
        data = await self._post("cancel-subscription")
        self._invalidate()
        return CancelSubscriptionResponse.model_validate(data)

    async def change_subscription_plan(self, new_plan_id: str) -> ChangePlanResponse:
        """Returns ``url`` set when the user must complete a checkout instead."""
        data = await self._post("change-subscription-plan", {"newPriceId": new_plan_id})
        self._invalidate()
        return ChangePlanResponse.model_validate(data)

    async def get_billing_history(self) -> BillingHistoryResponse:
        data = await self._post("get-billing-history")
        return BillingHistoryResponse.model_validate(data)

    async def get_invoice_pdf(self, invoice_id: str) -> Optional[str]:
        data = await self._post("get-invoice-pdf", {"invoiceId": invoice_id})
        return data.get("pdfUrl")
