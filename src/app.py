"""Order reconciliation FastAPI application.

Receives payment and carrier webhooks, creates orders, opens checkout
sessions and exposes the drift sweep. Every request runs inside the ordering domain context.

Usage:
    uvicorn app:app --app-dir src --host 0.0.0.0 --port 8000
"""

# ---------------------------------------------------------------------------
# Logging and domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV selects the config overlay; adapters come from the environment
# (PAYMENT_GATEWAY, CARRIER_ADAPTER, ...) and are built exactly once here.
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ordering.api.dependencies import build_services
from ordering.api.handlers import register_error_handlers
from ordering.api.routes import admin_router, checkout_router, order_router, payment_router, shipping_router
from ordering.domain import ordering
from ordering.utils.db import setup_db
from ordering.utils.logging import configure_logging

configure_logging()
ordering.init()
setup_db(ordering)

# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Order Reconciliation API",
    description="Payment webhook reconciliation, checkout sessions and drift repair",
)

register_error_handlers(app)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the ordering domain context for each request."""
    with ordering.domain_context():
        return await call_next(request)


app.state.services = build_services()

# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
app.include_router(payment_router)
app.include_router(shipping_router)
app.include_router(checkout_router)
app.include_router(order_router)
app.include_router(admin_router)


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    services = app.state.services
    return JSONResponse(
        content={
            "status": "ok",
            "domain": ordering.name,
            "gateway": type(services.gateway).__name__,
            "carrier": type(services.carrier).__name__,
        }
    )
