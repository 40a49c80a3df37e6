"""Wiring of the reconciliation services and the request-scoped dependencies.

Adapters are built once and handed to the engine, the sweep and the checkout
route; nothing reads a module-level gateway or carrier.
"""

import os
from dataclasses import dataclass
from datetime import timedelta

from fastapi import Depends, HTTPException, Request

from fulfillment.carrier import build_carrier
from fulfillment.carrier.port import CarrierPort
from fulfillment.shipment.trigger import ShipmentTrigger
from ordering.checkout.builder import CheckoutSessionBuilder
from ordering.order.locks import OrderLocks
from ordering.reconciliation.engine import ReconciliationEngine
from ordering.reconciliation.sweep import DEFAULT_STALE_AFTER, DriftSweep
from payments.gateway import build_gateway
from payments.gateway.port import PaymentGateway
from payments.webhook.verification import EventVerifier


@dataclass
class Services:
    gateway: PaymentGateway
    carrier: CarrierPort
    verifier: EventVerifier
    builder: CheckoutSessionBuilder
    engine: ReconciliationEngine
    sweep: DriftSweep
    locks: OrderLocks
    carrier_webhook_token: str | None = None


def build_services(
    gateway: PaymentGateway | None = None,
    carrier: CarrierPort | None = None,
    verifier: EventVerifier | None = None,
    builder: CheckoutSessionBuilder | None = None,
    stale_after: timedelta | None = None,
    carrier_webhook_token: str | None = None,
) -> Services:
    """Assemble the services, falling back to environment configuration."""
    gateway = gateway or build_gateway()
    carrier = carrier or build_carrier()
    verifier = verifier or EventVerifier(os.environ.get("STRIPE_WEBHOOK_SECRET"))
    builder = builder or CheckoutSessionBuilder.from_env()
    if stale_after is None:
        hours = os.environ.get("DRIFT_STALE_AFTER_HOURS")
        stale_after = timedelta(hours=float(hours)) if hours else DEFAULT_STALE_AFTER

    # Engine and sweep share one lock registry so their writes serialize
    locks = OrderLocks()
    trigger = ShipmentTrigger(carrier, locks)
    return Services(
        gateway=gateway,
        carrier=carrier,
        verifier=verifier,
        builder=builder,
        engine=ReconciliationEngine(gateway, trigger, locks),
        sweep=DriftSweep(gateway, trigger, locks, stale_after=stale_after),
        locks=locks,
        carrier_webhook_token=carrier_webhook_token or os.environ.get("SHIPPO_WEBHOOK_TOKEN"),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


def current_user_id(request: Request) -> str:
    """The authenticated principal, populated upstream by the auth layer."""
    user_id = getattr(request.state, "user_id", None)
    if not user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    return str(user_id)


@dataclass(frozen=True)
class Principal:
    """The authenticated caller, as the auth layer describes it on ``request.state``."""

    user_id: str
    email: str | None = None
    name: str | None = None
    role: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def current_principal(request: Request, user_id: str = Depends(current_user_id)) -> Principal:
    state = request.state
    return Principal(
        user_id=user_id,
        email=getattr(state, "user_email", None),
        name=getattr(state, "user_name", None),
        role=getattr(state, "user_role", None),
    )


def require_admin(principal: Principal = Depends(current_principal)) -> Principal:
    if not principal.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return principal
