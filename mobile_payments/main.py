"""
Mobile Money Payments — FastAPI Application.

This is the entry point for the application.
All routers are registered here.

    uvicorn mobile_payments.main:app
"""

from fastapi import FastAPI

from mobile_payments.config import get_settings
from mobile_payments.logging_config import setup_logging
from mobile_payments.api.admin import router as admin_router
from mobile_payments.api.callbacks import router as callbacks_router
from mobile_payments.api.health import router as health_router
from mobile_payments.api.payments import router as payments_router

settings = get_settings()
setup_logging()

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Two-phase mobile-money payments with commission",
)

# Register routers
app.include_router(health_router)
app.include_router(callbacks_router)
app.include_router(payments_router)
app.include_router(admin_router)
