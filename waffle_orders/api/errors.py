from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from ..core.exceptions import (
    InvalidTransition,
    OrderExpired,
    OrderNotFound,
    ValidationError,
    InvalidEstimate,
    StoreUnavailable,
)

def _snapshot(order):
    return order.model_dump(mode="json") if order is not None else None

def register_exception_handlers(app: FastAPI):
    @app.exception_handler(InvalidTransition)
    async def invalid_transition_handler(request: Request, exc: InvalidTransition):
        # Clients re-sync their card from "order" instead of showing a failure
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={
                "detail": str(exc),
                "error": "invalid_transition",
                "current": exc.current,
                "requested": exc.requested,
                "order_type": exc.order_type,
                "order": _snapshot(exc.order),
            },
        )

    @app.exception_handler(OrderExpired)
    async def order_expired_handler(request: Request, exc: OrderExpired):
        return JSONResponse(
            status_code=status.HTTP_410_GONE,
            content={
                "detail": "This order expired: it could not be confirmed in time",
                "error": "order_expired",
                "order_id": exc.order_id,
                "order": _snapshot(exc.order),
            },
        )

    @app.exception_handler(OrderNotFound)
    async def order_not_found_handler(request: Request, exc: OrderNotFound):
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"detail": "Order not found", "error": "not_found", "order_id": exc.order_id},
        )

    @app.exception_handler(ValidationError)
    async def validation_handler(request: Request, exc: ValidationError):
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": str(exc), "error": "validation_error", "field": exc.field},
        )

    @app.exception_handler(InvalidEstimate)
    async def invalid_estimate_handler(request: Request, exc: InvalidEstimate):
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": str(exc), "error": "invalid_estimate", "allowed": exc.allowed},
        )

    @app.exception_handler(StoreUnavailable)
    async def store_unavailable_handler(request: Request, exc: StoreUnavailable):
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "detail": "Could not reach the order store. Your action was not saved, please retry.",
                "error": "store_unavailable",
                "operation": exc.operation,
                "retryable": True,
            },
        )
