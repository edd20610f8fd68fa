import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from orgpulse.core.config import configure_logging, settings
from orgpulse.core.errors import OrgPulseError
from orgpulse.routers import analytics, connections, stripe

configure_logging()
logger = logging.getLogger(__name__)

OPENAPI_TAGS = [
    {"name": "Analytics", "description": "Usage, issue and drill-down reports over customer activity."},
    {"name": "Billing", "description": "Stripe sync, revenue and churn reports, and CSV exports."},
    {"name": "Connections", "description": "Connect or disconnect a customer database."},
]

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.version,
    description=(
        "Multi-tenant analytics dashboard API. "
        "Reports on customer activity, errors and billing health."
    ),
    openapi_tags=OPENAPI_TAGS,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(OrgPulseError)
async def orgpulse_error_handler(request: Request, exc: OrgPulseError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": str(exc) or "Internal server error"})


app.include_router(analytics.router, prefix="/api/analytics", tags=["Analytics"])
app.include_router(stripe.router, prefix="/api/stripe", tags=["Billing"])
app.include_router(connections.router, prefix="/api", tags=["Connections"])


@app.get("/")
async def root() -> dict[str, str]:
    return {
        "app": settings.APP_NAME,
        "version": settings.version,
        "status": "running",
    }
