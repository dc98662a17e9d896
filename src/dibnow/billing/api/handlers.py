"""
Exception handlers mapping billing errors onto HTTP responses.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from dibnow.billing.exceptions import BillingError

logger = structlog.get_logger(__name__)


async def billing_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render a ``BillingError`` with its own status code."""
    if not isinstance(exc, BillingError):
        raise exc
    if exc.status_code >= 500:
        logger.error(
            "billing.api.error",
            path=request.url.path,
            error_code=exc.error_code,
            message=exc.message,
        )
    else:
        logger.info(
            "billing.api.rejected",
            path=request.url.path,
            error_code=exc.error_code,
            status_code=exc.status_code,
        )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BillingError, billing_error_handler)
