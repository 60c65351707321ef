"""
Main FastAPI application for the paid-content entitlement API.
Serves health, orders, payment verification, checkout, entitlements, admin and metrics.
"""
import logging
import time
import uuid

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.logging import configure_logging
from app.api.routes import admin, checkout, health, me, orders, payments, pricing
from app.services.auth.identity import get_client_ip
from app.services.errors import (
    CheckoutTokenInvalid,
    EntitlementError,
    EntitlementWriteFailed,
    GatewayUnavailable,
    InvalidTransition,
    OrderCreationFailed,
    SignatureInvalid,
    ValidationError,
)
from app.utils.metrics import router as metrics_router


configure_logging()
logger = logging.getLogger("api")

app = FastAPI(
    title="Interview Prep Payments API",
    description="Payment verification and content entitlement for paid interview-prep modules",
    version="1.0.0",
)

# CORS
origins = settings.cors_origins_list
if not origins:
    origins = ["http://localhost:3000", "http://127.0.0.1:3000", "http://localhost:5173"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ERROR_STATUS: tuple[tuple[type[EntitlementError], int], ...] = (
    (ValidationError, 400),
    (SignatureInvalid, 400),
    (CheckoutTokenInvalid, 400),
    (InvalidTransition, 409),
    (OrderCreationFailed, 500),
    (GatewayUnavailable, 503),
    (EntitlementWriteFailed, 503),
)


@app.exception_handler(EntitlementError)
def handle_entitlement_error(request: Request, exc: EntitlementError) -> JSONResponse:
    status_code = next((code for cls, code in ERROR_STATUS if isinstance(exc, cls)), 500)
    logger.info(
        "request_rejected",
        extra={
            "path": request.url.path,
            "status_code": status_code,
            "error": type(exc).__name__,
            "reason": exc.message,
        },
    )
    return JSONResponse(status_code=status_code, content={"message": exc.message})


@app.exception_handler(RequestValidationError)
def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"message": "Invalid request body"})


@app.middleware("http")
async def log_requests(request: Request, call_next):
    request_id = request.headers.get(settings.request_id_header) or uuid.uuid4().hex
    start = time.time()
    response = await call_next(request)
    latency_ms = int((time.time() - start) * 1000)
    response.headers[settings.request_id_header] = request_id
    logger.info(
        "request",
        extra={
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "latency_ms": latency_ms,
            "client_ip": get_client_ip(request),
        },
    )
    return response


# Routers
app.include_router(health.router, tags=["health"])
app.include_router(orders.router)
app.include_router(payments.router)
app.include_router(pricing.router)
app.include_router(checkout.router)
app.include_router(me.router)
app.include_router(admin.router)
app.include_router(metrics_router)
