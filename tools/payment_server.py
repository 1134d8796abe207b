# =============================================================================
# tools/payment_server.py  -  PayPal MCP server
# =============================================================================
#
# TOOLS (all write operations except get_order_details and the identity tool):
#   create_paypal_order         create_paypal_subscription   create_refund
#   capture_paypal_order        cancel_subscription          create_paypal_payout
#   get_order_details           get_paypal_aztp_identity
#
# Every payment tool takes merchant_id.  It is part of the contract and is
# logged with the call; PayPal itself identifies the merchant from the
# OAuth2 credentials.
#
# Each handler returns the operation result as JSON text.  PayPal failures
# come back from core/payments.py as ProviderError and are rendered by the
# dispatcher as "Error: PayPal <operation> failed: ...".
#
# RUNNING THIS SERVER:
#   python main.py payments   (or: python -m tools.payment_server)
# =============================================================================

import contextlib
import json
import sys
from typing import Any, Literal, Optional, Protocol

from pydantic import BaseModel, Field

from core.config import PayPalSettings
from core.dispatcher import Dispatcher, ToolRoute, identity_route
from core.identity import IdentityContext
from core.models import HandlerResult, ToolDescriptor, ToolSuccess, text_envelope
from core.payments import PayPalClient
from core.registry import ToolRegistry
from tools.common import log_status, run_server

SERVER_NAME = "paypal-mcp-server"

CREATE_ORDER_TOOL = "create_paypal_order"
CAPTURE_ORDER_TOOL = "capture_paypal_order"
GET_ORDER_DETAILS_TOOL = "get_order_details"
CREATE_SUBSCRIPTION_TOOL = "create_paypal_subscription"
CANCEL_SUBSCRIPTION_TOOL = "cancel_subscription"
CREATE_REFUND_TOOL = "create_refund"
CREATE_PAYOUT_TOOL = "create_paypal_payout"
IDENTITY_TOOL = "get_paypal_aztp_identity"

_MERCHANT_ID = {"type": "string", "description": "Merchant's PayPal account ID"}

_MONEY = {
    "type": "object",
    "properties": {
        "value": {"type": "string"},
        "currency_code": {"type": "string"},
    },
    "required": ["value", "currency_code"],
}

TOOLS = ToolRegistry([
    ToolDescriptor(
        name=CREATE_ORDER_TOOL,
        description="Create a PayPal order for processing payments",
        input_schema={
            "type": "object",
            "properties": {
                "intent": {
                    "type": "string",
                    "enum": ["CAPTURE", "AUTHORIZE"],
                    "description": "Payment intent (CAPTURE or AUTHORIZE)",
                },
                "purchase_units": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "amount": _MONEY,
                            "description": {"type": "string"},
                        },
                        "required": ["amount"],
                    },
                },
                "merchant_id": _MERCHANT_ID,
            },
            "required": ["intent", "purchase_units", "merchant_id"],
        },
    ),
    ToolDescriptor(
        name=CAPTURE_ORDER_TOOL,
        description="Capture an authorized payment",
        input_schema={
            "type": "object",
            "properties": {
                "order_id": {"type": "string", "description": "PayPal order ID to capture"},
                "merchant_id": _MERCHANT_ID,
            },
            "required": ["order_id", "merchant_id"],
        },
    ),
    ToolDescriptor(
        name=GET_ORDER_DETAILS_TOOL,
        description="Get details of a specific order",
        input_schema={
            "type": "object",
            "properties": {
                "order_id": {"type": "string", "description": "PayPal order ID"},
                "merchant_id": _MERCHANT_ID,
            },
            "required": ["order_id", "merchant_id"],
        },
    ),
    ToolDescriptor(
        name=CREATE_SUBSCRIPTION_TOOL,
        description="Create a PayPal subscription plan",
        input_schema={
            "type": "object",
            "properties": {
                "product_id": {"type": "string", "description": "PayPal product ID"},
                "billing_cycles": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "frequency": {
                                "type": "object",
                                "properties": {
                                    "interval_unit": {
                                        "type": "string",
                                        "enum": ["DAY", "WEEK", "MONTH", "YEAR"],
                                    },
                                    "interval_count": {"type": "number"},
                                },
                                "required": ["interval_unit", "interval_count"],
                            },
                            "tenure_type": {"type": "string", "enum": ["REGULAR", "TRIAL"]},
                            "sequence": {"type": "number"},
                            "total_cycles": {"type": "number"},
                            "pricing_scheme": {
                                "type": "object",
                                "properties": {"fixed_price": _MONEY},
                                "required": ["fixed_price"],
                            },
                        },
                        "required": ["frequency", "tenure_type", "sequence", "pricing_scheme"],
                    },
                },
                "name": {"type": "string", "description": "Plan name"},
                "description": {"type": "string", "description": "Plan description"},
                "setup_fee": _MONEY,
                "subscriber_first_name": {"type": "string"},
                "subscriber_last_name": {"type": "string"},
                "subscriber_email": {"type": "string"},
                "brand_name": {"type": "string"},
                "merchant_id": _MERCHANT_ID,
            },
            "required": ["product_id", "billing_cycles", "merchant_id"],
        },
    ),
    ToolDescriptor(
        name=CANCEL_SUBSCRIPTION_TOOL,
        description="Cancel a subscription",
        input_schema={
            "type": "object",
            "properties": {
                "subscription_id": {"type": "string", "description": "PayPal subscription ID"},
                "reason": {"type": "string", "description": "Cancellation reason"},
                "merchant_id": _MERCHANT_ID,
            },
            "required": ["subscription_id", "merchant_id"],
        },
    ),
    ToolDescriptor(
        name=CREATE_REFUND_TOOL,
        description="Create a refund for a captured payment",
        input_schema={
            "type": "object",
            "properties": {
                "capture_id": {"type": "string", "description": "PayPal capture ID"},
                "amount": _MONEY,
                "note": {"type": "string", "description": "Note to the payer"},
                "merchant_id": _MERCHANT_ID,
            },
            "required": ["capture_id", "merchant_id"],
        },
    ),
    ToolDescriptor(
        name=CREATE_PAYOUT_TOOL,
        description="Create a payout to transfer funds",
        input_schema={
            "type": "object",
            "properties": {
                "sender_batch_id": {"type": "string", "description": "Unique identifier for the payout"},
                "items": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "recipient_type": {"type": "string", "enum": ["EMAIL", "PHONE", "PAYPAL_ID"]},
                            "amount": {
                                "type": "object",
                                "properties": {
                                    "value": {"type": "string"},
                                    "currency": {"type": "string"},
                                },
                                "required": ["value", "currency"],
                            },
                            "receiver": {"type": "string"},
                            "note": {"type": "string"},
                        },
                        "required": ["recipient_type", "amount", "receiver"],
                    },
                },
                "merchant_id": _MERCHANT_ID,
            },
            "required": ["sender_batch_id", "items", "merchant_id"],
        },
    ),
    ToolDescriptor(
        name=IDENTITY_TOOL,
        description=(
            "Get AZTP identity of the PayPal MCP server. This is used to secure the "
            "connection between this server and other AZTP servers."
        ),
        input_schema={"type": "object", "properties": {}},
    ),
])


# =============================================================================
# Argument records
# =============================================================================
class Money(BaseModel):
    value: str
    currency_code: str


class PurchaseUnit(BaseModel):
    amount: Money
    description: Optional[str] = None


class CreateOrderArguments(BaseModel):
    intent: Literal["CAPTURE", "AUTHORIZE"]
    purchase_units: list[PurchaseUnit] = Field(min_length=1)
    merchant_id: str


class OrderArguments(BaseModel):
    order_id: str = Field(min_length=1)
    merchant_id: str


class Frequency(BaseModel):
    interval_unit: Literal["DAY", "WEEK", "MONTH", "YEAR"]
    interval_count: int


class PricingScheme(BaseModel):
    fixed_price: Money


class BillingCycle(BaseModel):
    frequency: Frequency
    tenure_type: Literal["REGULAR", "TRIAL"]
    sequence: int
    total_cycles: Optional[int] = None
    pricing_scheme: PricingScheme


class CreateSubscriptionArguments(BaseModel):
    product_id: str
    billing_cycles: list[BillingCycle] = Field(min_length=1)
    merchant_id: str
    name: Optional[str] = None
    description: Optional[str] = None
    setup_fee: Optional[Money] = None
    subscriber_first_name: Optional[str] = None
    subscriber_last_name: Optional[str] = None
    subscriber_email: Optional[str] = None
    brand_name: Optional[str] = None


class CancelSubscriptionArguments(BaseModel):
    subscription_id: str = Field(min_length=1)
    merchant_id: str
    reason: Optional[str] = None


class CreateRefundArguments(BaseModel):
    capture_id: str = Field(min_length=1)
    merchant_id: str
    amount: Optional[Money] = None
    note: Optional[str] = None


class PayoutAmount(BaseModel):
    value: str
    currency: str


class PayoutItem(BaseModel):
    recipient_type: Literal["EMAIL", "PHONE", "PAYPAL_ID"]
    amount: PayoutAmount
    receiver: str
    note: Optional[str] = None


class CreatePayoutArguments(BaseModel):
    sender_batch_id: str
    items: list[PayoutItem] = Field(min_length=1)
    merchant_id: str
    email_subject: Optional[str] = None
    email_message: Optional[str] = None


class IdentityArguments(BaseModel):
    pass


# =============================================================================
# Handlers
# =============================================================================
class PaymentsClient(Protocol):
    async def create_order(self, intent: str, purchase_units: list[dict[str, Any]]) -> dict[str, Any]: ...
    async def capture_order(self, order_id: str) -> dict[str, Any]: ...
    async def get_order_details(self, order_id: str) -> dict[str, Any]: ...
    async def create_subscription(self, product_id: str, billing_cycles: list[dict[str, Any]], **options: Any) -> dict[str, Any]: ...
    async def cancel_subscription(self, subscription_id: str, reason: Optional[str] = None) -> dict[str, Any]: ...
    async def create_refund(self, capture_id: str, amount: Optional[dict[str, str]] = None, note: Optional[str] = None) -> dict[str, Any]: ...
    async def create_payout(self, sender_batch_id: str, items: list[dict[str, Any]], **options: Any) -> dict[str, Any]: ...


def _json_result(result: Any) -> HandlerResult:
    return ToolSuccess(text_envelope(json.dumps(result)))


def _dump(models: list[BaseModel]) -> list[dict[str, Any]]:
    return [model.model_dump(exclude_none=True) for model in models]


def payment_routes(client: PaymentsClient) -> dict[str, ToolRoute]:
    """One route per PayPal tool, all bound to the same client."""

    async def create_order(args: CreateOrderArguments) -> HandlerResult:
        log_status(f"Creating {args.intent} order for merchant {args.merchant_id}")
        return _json_result(await client.create_order(args.intent, _dump(args.purchase_units)))

    async def capture_order(args: OrderArguments) -> HandlerResult:
        log_status(f"Capturing order {args.order_id} for merchant {args.merchant_id}")
        return _json_result(await client.capture_order(args.order_id))

    async def get_order_details(args: OrderArguments) -> HandlerResult:
        return _json_result(await client.get_order_details(args.order_id))

    async def create_subscription(args: CreateSubscriptionArguments) -> HandlerResult:
        log_status(f"Creating subscription for product {args.product_id}")
        return _json_result(await client.create_subscription(
            args.product_id,
            _dump(args.billing_cycles),
            name=args.name,
            description=args.description,
            setup_fee=args.setup_fee.model_dump() if args.setup_fee else None,
            subscriber_first_name=args.subscriber_first_name,
            subscriber_last_name=args.subscriber_last_name,
            subscriber_email=args.subscriber_email,
            brand_name=args.brand_name,
        ))

    async def cancel_subscription(args: CancelSubscriptionArguments) -> HandlerResult:
        log_status(f"Cancelling subscription {args.subscription_id}")
        return _json_result(await client.cancel_subscription(args.subscription_id, args.reason))

    async def create_refund(args: CreateRefundArguments) -> HandlerResult:
        log_status(f"Refunding capture {args.capture_id}")
        amount = args.amount.model_dump() if args.amount else None
        return _json_result(await client.create_refund(args.capture_id, amount, args.note))

    async def create_payout(args: CreatePayoutArguments) -> HandlerResult:
        log_status(f"Creating payout batch {args.sender_batch_id} with {len(args.items)} items")
        return _json_result(await client.create_payout(
            args.sender_batch_id,
            _dump(args.items),
            email_subject=args.email_subject,
            email_message=args.email_message,
        ))

    return {
        CREATE_ORDER_TOOL: ToolRoute(CreateOrderArguments, create_order),
        CAPTURE_ORDER_TOOL: ToolRoute(OrderArguments, capture_order),
        GET_ORDER_DETAILS_TOOL: ToolRoute(OrderArguments, get_order_details),
        CREATE_SUBSCRIPTION_TOOL: ToolRoute(CreateSubscriptionArguments, create_subscription),
        CANCEL_SUBSCRIPTION_TOOL: ToolRoute(CancelSubscriptionArguments, cancel_subscription),
        CREATE_REFUND_TOOL: ToolRoute(CreateRefundArguments, create_refund),
        CREATE_PAYOUT_TOOL: ToolRoute(CreatePayoutArguments, create_payout),
    }


def build_dispatcher(client: PaymentsClient, context: IdentityContext) -> Dispatcher:
    routes = payment_routes(client)
    routes[IDENTITY_TOOL] = identity_route(context, IdentityArguments)
    return Dispatcher(TOOLS, routes)


async def open_dispatcher(context: IdentityContext, resources: contextlib.AsyncExitStack) -> Dispatcher:
    client = await resources.enter_async_context(PayPalClient(PayPalSettings.from_env()))
    return build_dispatcher(client, context)


def main() -> int:
    return run_server(SERVER_NAME, open_dispatcher)


if __name__ == "__main__":
    sys.exit(main())
