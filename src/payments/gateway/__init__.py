"""Payment gateway factory.

build_gateway() picks the adapter from the environment once, at startup; the
result is handed to whatever needs it rather than held in a module global.

- FakeGateway for development and testing (``PAYMENT_GATEWAY=fake``)
- StripeGateway for production (``PAYMENT_GATEWAY=stripe``)
"""

import os

from payments.gateway.port import PaymentGateway


def build_gateway() -> PaymentGateway:
    adapter = os.environ.get("PAYMENT_GATEWAY", "fake")
    if adapter == "fake":
        from payments.gateway.fake_adapter import FakeGateway

        return FakeGateway()
    if adapter == "stripe":
        from payments.gateway.stripe_adapter import StripeGateway

        api_key = os.environ.get("STRIPE_SECRET_KEY")
        if not api_key:
            raise ValueError("STRIPE_SECRET_KEY must be set when PAYMENT_GATEWAY=stripe")
        return StripeGateway(
            api_key=api_key,
            timeout=float(os.environ.get("PAYMENT_TIMEOUT_SECONDS", "10")),
        )
    raise ValueError(f"Unknown payment gateway: {adapter}")
