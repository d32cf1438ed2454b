"""
Checkout Backend - FastAPI Application

Promo validation, Midtrans charge creation and payment notification
reconciliation for the mobile storefront.
"""
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging

from .config import settings
from .exceptions import CheckoutError, InvalidInputError
from .db.init_db import initialize_database
from .services.payment_gateway import get_payment_gateway, close_payment_gateway
from .api.promos import router as promos_router
from .api.charges import router as charges_router
from .api.notifications import router as notifications_router


# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Credentials": "true",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events:
    - Startup: Initialize database (and demo promo codes), build the gateway
    - Shutdown: Close the gateway HTTP client
    """
    # Startup
    logger.info("Starting checkout backend server...")
    logger.info(f"Demo mode: {settings.demo_mode}")
    logger.info(f"Payment gateway: {settings.payment_gateway} (production={settings.midtrans_is_production})")

    # Initialize database
    try:
        initialize_database(seed_demo_data=settings.demo_mode)
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise

    # Initialize payment gateway
    try:
        get_payment_gateway()
        logger.info("Payment gateway initialized successfully")
    except CheckoutError as e:
        logger.error(f"Failed to initialize payment gateway: {e.message}")
        if not settings.demo_mode:
            raise
        logger.warning("Continuing without payment gateway in demo mode")

    if not settings.midtrans_server_key:
        logger.warning("MIDTRANS_SERVER_KEY is not set; notifications will be rejected")

    logger.info("Server startup complete")

    yield

    # Shutdown
    logger.info("Shutting down checkout backend server...")

    try:
        await close_payment_gateway()
        logger.info("Payment gateway closed")
    except Exception as e:
        logger.error(f"Error during payment gateway shutdown: {e}")


# Initialize FastAPI application
app = FastAPI(
    title="Checkout API",
    description="Promo validation, Midtrans charges and payment notifications",
    version="0.1.0",
    lifespan=lifespan,
)


# Configure CORS middleware for the mobile and web clients
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(CheckoutError)
async def checkout_error_handler(request: Request, exc: CheckoutError):
    """
    Handle checkout errors with standardized response format.

    Returns exc.status_code with the body from CheckoutError.to_dict().
    """
    if exc.status_code >= 500:
        logger.error(f"Checkout error: {exc.error_code} - {exc.message}")
    else:
        logger.warning(
            f"Checkout error: {exc.error_code} - {exc.message}",
            extra={"details": exc.details}
        )

    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
        headers=CORS_HEADERS
    )


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies (e.g. invalid JSON) are client errors, not 422s."""
    error = InvalidInputError.from_errors(list(exc.errors()))
    logger.warning(f"Request validation error: {error.message}")

    return JSONResponse(
        status_code=400,
        content=error.to_dict(),
        headers=CORS_HEADERS
    )


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    """Bad values that slipped past request models render like InvalidInputError."""
    error = InvalidInputError(str(exc))
    logger.warning(f"Invalid value on {request.url.path}: {error.message}")

    return JSONResponse(
        status_code=error.status_code,
        content=error.to_dict(),
        headers=CORS_HEADERS
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    """
    Last-resort 500 for anything the services did not translate.

    The traceback is logged; clients only see the exception type, and only
    in demo mode.
    """
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "error_code": "checkout:internal",
            "error": "An unexpected error occurred",
            "details": {"error_type": type(exc).__name__} if settings.demo_mode else {}
        },
        headers=CORS_HEADERS
    )


# Health check endpoint
@app.get("/api/health")
async def health_check():
    """
    Health check endpoint for monitoring and load balancers.

    Returns:
        Server status and version information
    """
    return {
        "status": "healthy",
        "version": "0.1.0",
        "demo_mode": settings.demo_mode,
        "environment": {
            "payment_gateway": settings.payment_gateway,
            "midtrans_production": settings.midtrans_is_production,
        }
    }


# Include API routers (paths match the mobile app's existing calls)
app.include_router(promos_router, tags=["Promos"])
app.include_router(charges_router, tags=["Charges"])
app.include_router(notifications_router, tags=["Notifications"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "checkout_backend.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.demo_mode,
        log_level=settings.log_level.lower()
    )
