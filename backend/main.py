from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

from config import settings
from database import init_db
from exceptions import InvoiceAppError
from invoices_api import router as invoices_router
from subscription_api import router as subscription_router
from analytics_api import router as analytics_router

app = FastAPI(title=settings.APP_NAME, version="1.0.0")

logger = logging.getLogger(__name__)

# Strip whitespace from each origin to prevent configuration errors
CORS_ORIGINS = [origin.strip() for origin in settings.CORS_ORIGINS.split(",") if origin.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=3600,
)

# ==================== EXCEPTION HANDLERS ====================


@app.exception_handler(InvoiceAppError)
async def invoice_app_exception_handler(request: Request, exc: InvoiceAppError):
    """Map domain errors (NotFound, QuotaExceeded, InvalidSignature...) to HTTP responses"""
    if exc.status_code >= 500:
        logger.error(f"{exc.__class__.__name__} on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": exc.__class__.__name__}
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Catch-all exception handler for unexpected errors"""
    logger.error(f"Unexpected error: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )

# ==================== END EXCEPTION HANDLERS ====================

app.include_router(invoices_router)
app.include_router(subscription_router)
app.include_router(analytics_router)


@app.on_event("startup")
async def startup_event():
    """Initialize database and background schedulers"""
    await init_db()

    if settings.RECURRING_SCHEDULER_ENABLED:
        try:
            from recurring_scheduler import start_recurring_invoice_scheduler
            app.state.recurring_scheduler = start_recurring_invoice_scheduler()
            logger.info("✅ Recurring invoice scheduler started successfully")
        except Exception as e:
            # Don't fail startup if scheduler fails
            logger.error(f"⚠️ Failed to start recurring invoice scheduler: {e}")


@app.on_event("shutdown")
async def shutdown_event():
    scheduler = getattr(app.state, "recurring_scheduler", None)
    if scheduler:
        scheduler.shutdown(wait=False)


@app.get("/")
async def root():
    return {"message": "SaaS Invoice Backend is running 🚀"}
