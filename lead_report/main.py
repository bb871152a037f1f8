"""FastAPI application entry point."""

import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import settings
from .core.middleware import RequestLoggingMiddleware
from .core.exceptions import register_exception_handlers

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Lead Report API",
    description="Month x week lead counts with week-over-week and month-over-month changes",
    version="1.0.0",
    debug=settings.debug
)

register_exception_handlers(app)

app.add_middleware(RequestLoggingMiddleware)

# The report widget is served from the CRM's domain
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["GET"],
    allow_headers=["*"],
)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Lead Report API",
        "version": "1.0.0",
        "docs": "/docs"
    }


# Register API routers
from .api.endpoints.health import router as health_router  # noqa: E402
from .api.endpoints.reports import router as reports_router  # noqa: E402
from .core.metrics import metrics_router  # noqa: E402

app.include_router(health_router, tags=["health"])
app.include_router(reports_router)
app.include_router(metrics_router, tags=["monitoring"])

logger.info(f"Lead Report API configured (environment={settings.environment})")
