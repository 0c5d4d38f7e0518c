"""FastAPI middleware for request tracing, error handling, and CORS.

Middleware stack (applied bottom-up):
    1. RequestIDMiddleware — injects X-Request-ID into every request/response
    2. ErrorHandlerMiddleware — catches domain exceptions -> structured JSON errors
    3. CORSMiddleware — handles browser-based clients
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

import structlog
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from realty_escrow.domain.exceptions import (
    AssetNotFoundError,
    BalanceMismatchError,
    EscrowError,
    InspectionNotPassedError,
    MissingApprovalError,
    NotOwnerError,
    OperatorNotApprovedError,
    PaymentIncompleteError,
    SaleNotFoundError,
    SaleSettledError,
    SettlementCompensationError,
    UnauthorizedError,
)

if TYPE_CHECKING:
    from fastapi import FastAPI, Request, Response

logger = structlog.get_logger(__name__)

_CONFLICTS = (
    SaleSettledError,
    InspectionNotPassedError,
    MissingApprovalError,
    PaymentIncompleteError,
    BalanceMismatchError,
    OperatorNotApprovedError,
    NotOwnerError,
)


def _error_response(status_code: int, exc: EscrowError) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": exc.code, "message": exc.message},
    )


# ---------------------------------------------------------------------------
# 1. Request ID Middleware
# ---------------------------------------------------------------------------
class RequestIDMiddleware(BaseHTTPMiddleware):
    """Inject a unique X-Request-ID into every request for log correlation."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


# ---------------------------------------------------------------------------
# 2. Error Handler Middleware
# ---------------------------------------------------------------------------
class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Catch domain exceptions and return structured JSON error responses."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        try:
            return await call_next(request)
        except UnauthorizedError as exc:
            logger.warning("auth.unauthorized", caller=exc.caller, role=exc.required_role)
            return _error_response(403, exc)
        except (SaleNotFoundError, AssetNotFoundError) as exc:
            logger.warning("resource.not_found", error=exc.message)
            return _error_response(404, exc)
        except SettlementCompensationError as exc:
            logger.critical("settlement.manual_reconciliation", error=exc.message)
            return _error_response(500, exc)
        except _CONFLICTS as exc:
            logger.warning("sale.conflict", code=exc.code, error=exc.message)
            return _error_response(409, exc)
        except EscrowError as exc:
            logger.warning("domain.error", error=exc.message, code=exc.code)
            return _error_response(400, exc)
        except Exception as exc:
            logger.exception("unhandled.error", error=str(exc))
            return JSONResponse(
                status_code=500,
                content={
                    "error": "INTERNAL_ERROR",
                    "message": "An unexpected error occurred",
                },
            )


# ---------------------------------------------------------------------------
# Setup function
# ---------------------------------------------------------------------------
def setup_middleware(app: FastAPI) -> None:
    """Register all middleware on the FastAPI application.

    Order matters — middleware is applied bottom-up, so the last added
    middleware runs first.
    """
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Tighten in production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_middleware(ErrorHandlerMiddleware)

    app.add_middleware(RequestIDMiddleware)
