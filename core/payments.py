# =============================================================================
# core/payments.py  -  PayPal REST provider
# =============================================================================
#
# WHAT THIS MODULE DOES:
#   Wraps the PayPal REST endpoints the payment server exposes as tools.
#   Each public method returns a small dict (not the raw PayPal document)
#   so tool output stays lean.  get_order_details is the exception: it
#   returns the order as PayPal describes it.
#
# AUTHENTICATION:
#   OAuth2 client-credentials.  The access token is cached until shortly
#   before it expires.
#
# FAILURES:
#   Any HTTP failure becomes ProviderError("PayPal <operation> failed: ...").
# =============================================================================

import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import httpx

from core.config import PayPalSettings
from core.errors import ProviderError

logger = logging.getLogger(__name__)

# Refresh the token this many seconds before PayPal says it expires.
_TOKEN_SKEW_SECONDS = 60


class PayPalClient:
    """Async PayPal client for orders, subscriptions, refunds and payouts."""

    def __init__(
        self,
        settings: PayPalSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0,
    ):
        self._settings = settings
        self._http = httpx.AsyncClient(
            base_url=settings.base_url,
            transport=transport,
            timeout=timeout,
        )
        self._token: Optional[str] = None
        self._token_expires_at = 0.0

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "PayPalClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # -------------------------------------------------------------------------
    # Plumbing
    # -------------------------------------------------------------------------
    async def _access_token(self) -> str:
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token

        response = await self._http.post(
            "/v1/oauth2/token",
            data={"grant_type": "client_credentials"},
            auth=(self._settings.client_id, self._settings.client_secret),
        )
        response.raise_for_status()
        body = response.json()
        self._token = body["access_token"]
        expires_in = float(body.get("expires_in", 0))
        self._token_expires_at = time.monotonic() + max(expires_in - _TOKEN_SKEW_SECONDS, 0)
        return self._token

    async def _call(
        self,
        operation: str,
        method: str,
        path: str,
        json: Optional[dict[str, Any]] = None,
        prefer_representation: bool = False,
    ) -> dict[str, Any]:
        try:
            token = await self._access_token()
            headers = {"Authorization": f"Bearer {token}"}
            if prefer_representation:
                headers["Prefer"] = "return=representation"
            response = await self._http.request(method, path, json=json, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error(f"PayPal {operation} failed: {exc.response.text[:500]}")
            raise ProviderError(
                f"PayPal {operation} failed: {_error_message(exc.response)}"
            ) from exc
        except httpx.HTTPError as exc:
            logger.error(f"PayPal {operation} failed: {exc}")
            raise ProviderError(f"PayPal {operation} failed: {exc}") from exc

        if response.status_code == 204 or not response.content:
            return {}
        return response.json()

    def _application_context(self) -> dict[str, Any]:
        context: dict[str, Any] = {}
        if self._settings.return_url:
            context["return_url"] = self._settings.return_url
        if self._settings.cancel_url:
            context["cancel_url"] = self._settings.cancel_url
        return context

    # -------------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------------
    async def create_order(self, intent: str, purchase_units: list[dict[str, Any]]) -> dict[str, Any]:
        body: dict[str, Any] = {"intent": intent, "purchase_units": purchase_units}
        application_context = self._application_context()
        if application_context:
            body["application_context"] = application_context

        result = await self._call(
            "order creation", "POST", "/v2/checkout/orders", json=body, prefer_representation=True
        )
        return {
            "orderId": result.get("id"),
            "status": result.get("status"),
            "links": result.get("links", []),
        }

    async def capture_order(self, order_id: str) -> dict[str, Any]:
        result = await self._call(
            "order capture",
            "POST",
            f"/v2/checkout/orders/{order_id}/capture",
            json={},
            prefer_representation=True,
        )
        return {
            "orderId": result.get("id"),
            "status": result.get("status"),
            "captureId": _first_capture_id(result),
        }

    async def get_order_details(self, order_id: str) -> dict[str, Any]:
        return await self._call("get order details", "GET", f"/v2/checkout/orders/{order_id}")

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------
    async def create_subscription(
        self,
        product_id: str,
        billing_cycles: list[dict[str, Any]],
        name: Optional[str] = None,
        description: Optional[str] = None,
        setup_fee: Optional[dict[str, Any]] = None,
        subscriber_first_name: Optional[str] = None,
        subscriber_last_name: Optional[str] = None,
        subscriber_email: Optional[str] = None,
        brand_name: Optional[str] = None,
    ) -> dict[str, Any]:
        """Create a billing plan, then a subscription on it starting tomorrow."""
        payment_preferences: dict[str, Any] = {
            "auto_bill_outstanding": True,
            "setup_fee_failure_action": "CONTINUE",
            "payment_failure_threshold": 3,
        }
        if setup_fee:
            payment_preferences["setup_fee"] = setup_fee

        plan = await self._call(
            "subscription creation",
            "POST",
            "/v1/billing/plans",
            json={
                "product_id": product_id,
                "name": name or "Subscription Plan",
                "description": description or "Subscription plan created via MCP server",
                "billing_cycles": billing_cycles,
                "payment_preferences": payment_preferences,
            },
            prefer_representation=True,
        )
        plan_id = plan.get("id")

        subscriber: dict[str, Any] = {
            "name": {
                "given_name": subscriber_first_name or "Subscriber",
                "surname": subscriber_last_name or "User",
            },
        }
        if subscriber_email:
            subscriber["email_address"] = subscriber_email

        start_time = datetime.now(timezone.utc) + timedelta(days=1)
        subscription = await self._call(
            "subscription creation",
            "POST",
            "/v1/billing/subscriptions",
            json={
                "plan_id": plan_id,
                "start_time": start_time.strftime("%Y-%m-%dT%H:%M:%SZ"),
                "subscriber": subscriber,
                "application_context": {
                    "brand_name": brand_name or "Merchant",
                    "shipping_preference": "NO_SHIPPING",
                    "user_action": "SUBSCRIBE_NOW",
                    "payment_method": {
                        "payer_selected": "PAYPAL",
                        "payee_preferred": "IMMEDIATE_PAYMENT_REQUIRED",
                    },
                    **self._application_context(),
                },
            },
            prefer_representation=True,
        )
        return {
            "subscriptionId": subscription.get("id"),
            "planId": plan_id,
            "status": subscription.get("status"),
            "links": subscription.get("links", []),
        }

    async def cancel_subscription(self, subscription_id: str, reason: Optional[str] = None) -> dict[str, Any]:
        await self._call(
            "subscription cancellation",
            "POST",
            f"/v1/billing/subscriptions/{subscription_id}/cancel",
            json={"reason": reason or "Merchant initiated cancellation"},
        )
        current = await self._call(
            "subscription cancellation", "GET", f"/v1/billing/subscriptions/{subscription_id}"
        )
        return {
            "subscriptionId": subscription_id,
            "status": current.get("status"),
            "message": "Subscription cancelled successfully",
        }

    # -------------------------------------------------------------------------
    # Refunds & payouts
    # -------------------------------------------------------------------------
    async def create_refund(
        self,
        capture_id: str,
        amount: Optional[dict[str, str]] = None,
        note: Optional[str] = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {}
        if amount:
            body = {
                "amount": {"value": amount["value"], "currency_code": amount["currency_code"]},
                "note_to_payer": note or "Refund from merchant",
            }
        result = await self._call(
            "refund creation",
            "POST",
            f"/v2/payments/captures/{capture_id}/refund",
            json=body,
            prefer_representation=True,
        )
        return {
            "refundId": result.get("id"),
            "captureId": capture_id,
            "status": result.get("status"),
            "amount": result.get("amount"),
        }

    async def create_payout(
        self,
        sender_batch_id: str,
        items: list[dict[str, Any]],
        email_subject: Optional[str] = None,
        email_message: Optional[str] = None,
    ) -> dict[str, Any]:
        result = await self._call(
            "payout creation",
            "POST",
            "/v1/payments/payouts",
            json={
                "sender_batch_header": {
                    "sender_batch_id": sender_batch_id,
                    "email_subject": email_subject or "You have received a payout",
                    "email_message": email_message or "You have received a payout from a merchant",
                },
                "items": items,
            },
        )
        batch_header = result.get("batch_header") or {}
        return {
            "batchId": batch_header.get("payout_batch_id"),
            "status": batch_header.get("batch_status"),
            "links": result.get("links", []),
        }


def _first_capture_id(order: dict[str, Any]) -> Optional[str]:
    units = order.get("purchase_units") or []
    if not units:
        return None
    captures = (units[0].get("payments") or {}).get("captures") or []
    return captures[0].get("id") if captures else None


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    return body.get("message") or body.get("error_description") or f"HTTP {response.status_code}"
