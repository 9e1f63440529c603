from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.base import BaseHTTPMiddleware
from .platform.brand import BRAND_APP_DESCRIPTION, BRAND_NAME
from .platform.config import settings
from .platform.logging import setup_logging
from .platform.middleware import RequestLoggingMiddleware

logger = setup_logging()

_is_production = (settings.DEPLOYMENT_ENV or "").strip().lower() == "production"


@asynccontextmanager
async def _lifespan(_app: FastAPI):
    logger.info(
        "%s billing API started | env=%s renewal_mode=%s dead_letter_after=%d",
        BRAND_NAME,
        settings.DEPLOYMENT_ENV,
        settings.RENEWAL_CREDIT_MODE,
        settings.WEBHOOK_DEAD_LETTER_AFTER_ATTEMPTS,
    )
    if not settings.STRIPE_WEBHOOK_SECRET:
        logger.warning("STRIPE_WEBHOOK_SECRET is not configured; Stripe webhooks will be rejected")
    if settings.MVP_DISABLE_STRIPE:
        logger.warning("Stripe webhooks are disabled (MVP_DISABLE_STRIPE)")
    yield


app = FastAPI(
    title=f"{BRAND_NAME} Billing API",
    description=BRAND_APP_DESCRIPTION,
    version="1.0.0",
    docs_url=None if _is_production else "/api/docs",
    openapi_url=None if _is_production else "/api/openapi.json",
    lifespan=_lifespan,
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    logger.warning("Validation error on %s %s: %s", request.method, request.url.path, errors)
    # Error contexts can carry raw exceptions; keep only the parts JSON can carry.
    detail = [{"loc": list(err.get("loc", ())), "msg": str(err.get("msg", "")), "type": err.get("type")} for err in errors]
    return JSONResponse(status_code=422, content={"detail": detail})


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    if exc.status_code >= 500:
        logger.error("HTTP %d on %s %s: %s", exc.status_code, request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add hardening headers to every response."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Cache-Control"] = "no-store"
        if _is_production:
            response.headers["Strict-Transport-Security"] = "max-age=63072000; includeSubDomains"
        return response


app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestLoggingMiddleware)

if settings.SENTRY_DSN and settings.SENTRY_DSN.startswith("https://"):
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.DEPLOYMENT_ENV,
        traces_sample_rate=0.1,
        integrations=[FastApiIntegration(), SqlalchemyIntegration()],
    )

from .api.v1.webhooks import router as webhooks_router

app.include_router(webhooks_router, prefix="/api/v1")


def _has_value(secret: str | None) -> bool:
    return (secret or "").strip().lower() not in {"", "skip", "changeme"}


def _database_reachable() -> bool:
    from .platform.database import SessionLocal

    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError:
        logger.warning("Health check could not reach the database", exc_info=True)
        return False
    finally:
        db.close()


@app.get("/health")
def health_check():
    db_ok = _database_reachable()
    return {
        "status": "healthy" if db_ok else "degraded",
        "service": "radorder-billing",
        "database": db_ok,
        "integrations": {
            "stripe_webhook_configured": _has_value(settings.STRIPE_WEBHOOK_SECRET),
            "stripe_enabled": not settings.MVP_DISABLE_STRIPE,
            "resend_configured": _has_value(settings.RESEND_API_KEY),
            "celery_enabled": not settings.MVP_DISABLE_CELERY,
        },
    }
