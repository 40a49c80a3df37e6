"""FastAPI routes — payment and carrier webhooks, checkout, orders and the drift sweep.

Handlers that reach the ledger or an external API are plain ``def`` so FastAPI
runs them in its threadpool; the payment webhook reads the raw body first and
then hands the blocking work to the threadpool itself.
"""

import json

import structlog
from fastapi import APIRouter, Depends, Request
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain
from starlette.concurrency import run_in_threadpool

from fulfillment.shipment.tracking import parse_tracking_notification, verify_token
from ordering.api.dependencies import Principal, Services, current_principal, get_services, require_admin
from ordering.api.schemas import (
    CheckoutSessionResponse,
    CreateCheckoutSessionRequest,
    CreateOrderRequest,
    OrderAddressSchema,
    OrderIdResponse,
    OrderItemSchema,
    OrderListResponse,
    OrderResponse,
    SweepReportResponse,
    WebhookAckResponse,
)
from ordering.checkout.builder import CartLine
from ordering.checkout.metadata import (
    AddressStub,
    CompactItem,
    CompactOrderPayload,
    DeferredOrderIntent,
    ExistingOrderIntent,
)
from ordering.customer.customer import Customer, RegisterCustomer
from ordering.order.address import AddressSource
from ordering.order.creation import CreateOrder
from ordering.order.locks import OrderLocks
from ordering.order.order import Order
from ordering.order.shipment import RecordTrackingUpdate
from ordering.utils.logging import log_context
from payments.webhook.events import parse_event
from shared.errors import OrderNotFoundError

logger = structlog.get_logger(__name__)


def _register(principal: Principal) -> Customer:
    """The caller's customer record, created the first time the user id is seen."""
    customer_id = current_domain.process(
        RegisterCustomer(customer_id=principal.user_id, email=principal.email, name=principal.name),
        asynchronous=False,
    )
    return current_domain.repository_for(Customer).get(customer_id)


def _owned_order(order_id: str, user_id: str) -> Order:
    """The order, but only when it belongs to the caller; otherwise not found."""
    try:
        order = current_domain.repository_for(Order).get(order_id)
    except ObjectNotFoundError as exc:
        raise OrderNotFoundError(order_id) from exc
    if str(order.customer_id or "") != user_id:
        raise OrderNotFoundError(order_id)
    return order


# ---------------------------------------------------------------------------
# Payment webhook
# ---------------------------------------------------------------------------
payment_router = APIRouter(prefix="/payments", tags=["payments"])


def _reconcile(services: Services, raw_payload: bytes, signature: str | None) -> None:
    verified = services.verifier.verify(raw_payload, signature)
    with log_context(event_id=verified.event_id, event_type=verified.event_type):
        services.engine.handle(parse_event(verified))


@payment_router.post("/webhook", response_model=WebhookAckResponse)
async def payment_webhook(request: Request, services: Services = Depends(get_services)) -> WebhookAckResponse:
    """Verify, then reconcile. Always 200 once the event has been applied or ignored."""
    raw_payload = await request.body()
    await run_in_threadpool(_reconcile, services, raw_payload, request.headers.get("stripe-signature"))
    return WebhookAckResponse()


# ---------------------------------------------------------------------------
# Carrier webhook
# ---------------------------------------------------------------------------
shipping_router = APIRouter(prefix="/shipping", tags=["shipping"])


@shipping_router.post("/webhook", response_model=WebhookAckResponse)
def carrier_webhook(
    payload: dict,
    token: str | None = None,
    services: Services = Depends(get_services),
) -> WebhookAckResponse:
    """Record tracking progress reported by the carrier."""
    verify_token(token, services.carrier_webhook_token)
    update = parse_tracking_notification(payload)
    if update is None:
        logger.info("Carrier notification ignored", carrier_event=payload.get("event"))
        return WebhookAckResponse()

    order = current_domain.repository_for(Order).find_by_shipment_reference(
        update.shipment_id, update.tracking_number
    )
    if order is None:
        # Labels bought outside this service have no order
        logger.info(
            "Carrier notification for unknown shipment",
            shipment_id=update.shipment_id,
            tracking_number=update.tracking_number,
        )
        return WebhookAckResponse()

    with services.locks.hold(OrderLocks.order_key(str(order.id))):
        current_domain.process(
            RecordTrackingUpdate(
                shipment_id=update.shipment_id,
                tracking_number=update.tracking_number,
                tracking_status=update.tracking_status,
            ),
            asynchronous=False,
        )
    logger.info("Tracking recorded", order_id=str(order.id), tracking_status=update.tracking_status)
    return WebhookAckResponse()


# ---------------------------------------------------------------------------
# Checkout sessions
# ---------------------------------------------------------------------------
checkout_router = APIRouter(prefix="/checkout", tags=["checkout"])


@checkout_router.post("/sessions", response_model=CheckoutSessionResponse)
def create_checkout_session(
    body: CreateCheckoutSessionRequest,
    principal: Principal = Depends(current_principal),
    services: Services = Depends(get_services),
) -> CheckoutSessionResponse:
    user_id = principal.user_id
    customer = _register(principal)

    if body.order_id:
        order = _owned_order(body.order_id, user_id)
        if order.is_paid:
            raise ValidationError({"order_id": ["Order is already paid"]})
        intent = ExistingOrderIntent(order_id=str(order.id), owner_user_id=user_id)
    else:
        address = body.order.shipping_address
        intent = DeferredOrderIntent(
            payload=CompactOrderPayload(
                total=body.order.total,
                notes=body.order.notes,
                items=[
                    CompactItem(
                        product_id=item.product_id,
                        quantity=item.quantity,
                        price=item.price,
                        total=item.total,
                        flavor_ids=item.flavor_ids,
                        custom_pack_name=item.custom_pack_name,
                    )
                    for item in body.order.items
                ],
                address=AddressStub(**address.model_dump()) if address else AddressStub(),
            ),
            owner_user_id=user_id,
        )

    session_request = services.builder.build(
        intent,
        [CartLine(name=line.name, unit_price=line.price, quantity=line.quantity) for line in body.items],
        success_url=body.success_url,
        cancel_url=body.cancel_url,
        customer_email=principal.email or customer.email,
    )
    created = services.gateway.create_checkout_session(session_request)
    logger.info(
        "Checkout session created",
        session_id=created.session_id,
        user_id=user_id,
        deferred=isinstance(intent, DeferredOrderIntent),
    )
    return CheckoutSessionResponse(url=created.url, session_id=created.session_id)


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


def _order_response(order: Order) -> OrderResponse:
    address = order.shipping_address
    return OrderResponse(
        order_id=str(order.id),
        status=order.status,
        payment_status=order.payment_status,
        total=order.total,
        currency=order.currency,
        notes=order.notes,
        items=[
            OrderItemSchema(
                product_id=str(item.product_id),
                quantity=item.quantity,
                unit_price=item.unit_price,
                flavor_ids=json.loads(item.flavor_ids) if item.flavor_ids else [],
                custom_pack_name=item.custom_pack_name,
            )
            for item in order.items
        ],
        shipping_address=OrderAddressSchema(
            name=address.name or "",
            email=address.email or "",
            phone=address.phone or "",
            street1=address.street1,
            street2=address.street2 or "",
            city=address.city,
            state=address.state,
            postal_code=address.postal_code,
            country=address.country,
        )
        if address
        else None,
        shipment_id=order.shipment_id,
        carrier=order.carrier,
        tracking_number=order.tracking_number,
        tracking_status=order.tracking_status,
    )


@order_router.post("", status_code=201, response_model=OrderIdResponse)
def create_order(body: CreateOrderRequest, principal: Principal = Depends(current_principal)) -> OrderIdResponse:
    """Create an order ahead of payment; pay for it with a checkout session carrying its id."""
    _register(principal)
    address = None
    if body.shipping_address:
        address = json.dumps({**body.shipping_address.model_dump(), "source": AddressSource.CLIENT_METADATA.value})
    order_id = current_domain.process(
        CreateOrder(
            customer_id=principal.user_id,
            items=json.dumps([item.model_dump() for item in body.items]),
            total=body.total,
            currency=body.currency.upper(),
            notes=body.notes,
            shipping_address=address,
        ),
        asynchronous=False,
    )
    logger.info("Order created ahead of payment", order_id=order_id, user_id=principal.user_id)
    return OrderIdResponse(order_id=order_id)


@order_router.get("", response_model=OrderListResponse)
def list_orders(
    limit: int = 50,
    offset: int = 0,
    principal: Principal = Depends(current_principal),
) -> OrderListResponse:
    orders = current_domain.repository_for(Order).find_for_customer(
        principal.user_id, limit=min(max(limit, 1), 100), offset=max(offset, 0)
    )
    return OrderListResponse(orders=[_order_response(order) for order in orders])


@order_router.get("/{order_id}", response_model=OrderResponse)
def get_order(order_id: str, principal: Principal = Depends(current_principal)) -> OrderResponse:
    return _order_response(_owned_order(order_id, principal.user_id))


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------
admin_router = APIRouter(prefix="/admin/reconciliation", tags=["admin"])


@admin_router.post("/sweep", response_model=SweepReportResponse)
def run_drift_sweep(
    admin: Principal = Depends(require_admin),
    services: Services = Depends(get_services),
) -> SweepReportResponse:
    report = services.sweep.sweep()
    logger.info("Drift sweep run on request", user_id=admin.user_id)
    return SweepReportResponse(**report.to_dict())
