"""Exception handlers mapping reconciliation errors to HTTP responses."""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.integrations.fastapi import register_exception_handlers

from shared.errors import ReconciliationError

logger = structlog.get_logger(__name__)


async def reconciliation_error_handler(request: Request, exc: ReconciliationError) -> JSONResponse:
    logger.warning(
        "Request rejected",
        path=request.url.path,
        code=exc.code,
        status_code=exc.status_code,
        detail=exc.message,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def register_error_handlers(app: FastAPI) -> None:
    """Protean's domain exception mapping plus the reconciliation error contract."""
    register_exception_handlers(app)
    app.add_exception_handler(ReconciliationError, reconciliation_error_handler)
