from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.api.routes_notifications import router as notifications_router
from app.api.routes_orders import router as orders_router
from app.core.config import get_settings
from app.core.logging import configure_logging
from app.domain.errors import (
    InvalidFilterError,
    InvalidPayloadError,
    OrderConflictError,
    OrderNotFoundError,
    OrderValidationError,
)
from app.persistence.pg import init_db

configure_logging()
logger = logging.getLogger(__name__)
settings = get_settings()

app = FastAPI(title=settings.app_name)


@app.on_event("startup")
def on_startup() -> None:
    init_db()
    logger.info("order api ready: env=%s mail_backend=%s", settings.env, settings.mail_backend)


@app.exception_handler(OrderValidationError)
async def order_validation_handler(_: Request, exc: OrderValidationError):
    return JSONResponse(status_code=400, content={"errors": exc.errors})


@app.exception_handler(InvalidFilterError)
async def invalid_filter_handler(_: Request, exc: InvalidFilterError):
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(InvalidPayloadError)
async def invalid_payload_handler(_: Request, exc: InvalidPayloadError):
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(OrderNotFoundError)
async def order_not_found_handler(_: Request, exc: OrderNotFoundError):
    return JSONResponse(status_code=404, content={"error": "Order not found"})


@app.exception_handler(OrderConflictError)
async def order_conflict_handler(_: Request, exc: OrderConflictError):
    logger.warning("order write conflict: order_id=%s", exc.order_id)
    return JSONResponse(status_code=409, content={"error": "Order was modified concurrently, retry the request"})


@app.get("/healthz")
def healthz() -> dict:
    return {"status": "ok"}


app.include_router(orders_router)
app.include_router(notifications_router)
