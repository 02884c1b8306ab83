import logging
from contextlib import asynccontextmanager

import logfire
import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from src.api.issues import router as issues_router
from src.api.newsletter import router as newsletter_router
from src.api.subscriptions import router as subscriptions_router
from src.core.config import settings
from src.core.database import engine
from src.core.exceptions import (
    InvalidTransitionError,
    NewsletterError,
    NotFoundError,
    PersistenceFailure,
    PreconditionFailedError,
    TransportFailure,
    ValidationError,
)
from src.models import Base

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler(),
    ],
)

# Completely disable SQLAlchemy logging
logging.getLogger("sqlalchemy").setLevel(logging.CRITICAL)
logging.getLogger("sqlalchemy.engine").setLevel(logging.CRITICAL)
logging.getLogger("sqlalchemy.pool").setLevel(logging.CRITICAL)

logger = logging.getLogger(__name__)

if settings.SENTRY_DSN:
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENVIRONMENT,
        send_default_pii=False,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting up {settings.PROJECT_NAME}...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(
        f"Database URL: {settings.DATABASE_URL.split('@')[-1] if '@' in settings.DATABASE_URL else 'local'}"
    )
    logger.info(f"App Domain: {settings.APP_DOMAIN}")

    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created/verified")
    except Exception as e:
        logger.error(f"Database initialization failed: {str(e)}")
        raise

    # Initialize scheduler
    try:
        from src.core.scheduler import setup_scheduler

        await setup_scheduler()
        logger.info("Scheduler initialized successfully")
    except Exception as e:
        logger.error(f"Scheduler initialization failed: {str(e)}")
        # Don't raise - the API works without the daily job

    yield

    logger.info(f"Shutting down {settings.PROJECT_NAME}...")

    try:
        from src.core.scheduler import shutdown_scheduler

        await shutdown_scheduler()
    except Exception as e:
        logger.error(f"Scheduler shutdown failed: {str(e)}")


app = FastAPI(title=f"{settings.PROJECT_NAME} API", lifespan=lifespan)

# configure logfire only if token exists and not using fake token
if settings.LOGFIRE_TOKEN and settings.LOGFIRE_TOKEN != "fake-token-for-testing":
    try:
        logfire.configure(token=settings.LOGFIRE_TOKEN)
        logfire.instrument_fastapi(app, capture_headers=True, excluded_urls="/healthz")
        # Instrument SQLAlchemy (async engine) so query spans are captured
        logfire.instrument_sqlalchemy(engine, capture_parameters=True)
    except Exception as e:
        logger.warning(f"Failed to configure Logfire: {e}")


ERROR_STATUS_CODES = (
    (NotFoundError, 404),
    (PreconditionFailedError, 412),
    (InvalidTransitionError, 409),
    (ValidationError, 422),
    (TransportFailure, 502),
    (PersistenceFailure, 503),
)


@app.exception_handler(NewsletterError)
async def newsletter_error_handler(request: Request, exc: NewsletterError):
    status_code = next(
        (code for error_type, code in ERROR_STATUS_CODES if isinstance(exc, error_type)),
        500,
    )
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    body = {"detail": exc.message}
    if isinstance(exc, InvalidTransitionError):
        body["allowed"] = exc.allowed
    return JSONResponse(status_code=status_code, content=body)


app.include_router(issues_router)
app.include_router(newsletter_router)
app.include_router(subscriptions_router)


@app.get("/healthz", include_in_schema=False)
async def healthz():
    return {"status": "ok"}


@app.get("/scheduler/status", include_in_schema=False)
async def scheduler_status():
    """Get the current status of the scheduler and its jobs."""
    try:
        from src.core.scheduler import get_scheduler_status

        return get_scheduler_status()
    except Exception as e:
        return {"error": str(e)}


@app.post("/scheduler/trigger-daily-send", include_in_schema=False)
async def trigger_daily_send():
    """Manually trigger the daily newsletter send."""
    try:
        from src.core.scheduler import trigger_daily_send

        return await trigger_daily_send()
    except Exception as e:
        return {"error": str(e)}
