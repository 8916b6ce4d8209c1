"""
DivorceIQ Market Atlas - FastAPI Application
Read-only API serving dashboard tables, charts and map data
"""

from contextlib import asynccontextmanager
from typing import List

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from config.database import test_connection
from config.settings import get_settings
from src.api.routes import router
from src.utils.logging import setup_logging

settings = get_settings()
logger = setup_logging("api")

DEFAULT_CORS_ORIGINS = ["http://localhost:3000", "http://127.0.0.1:3000"]


def parse_cors_origins(raw: str) -> List[str]:
    """Comma-separated origin list; falls back to the local dashboard dev server."""
    origins = [origin.strip() for origin in (raw or "").split(",") if origin.strip()]
    return origins or list(DEFAULT_CORS_ORIGINS)


def database_status() -> dict:
    """Health payload. A missing database degrades the API, widgets still answer."""
    connected = test_connection()
    return {
        "status": "healthy" if connected else "degraded",
        "database": "connected" if connected else "disconnected",
        "environment": settings.ENVIRONMENT,
    }


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {settings.API_TITLE} v{settings.API_VERSION} ({settings.ENVIRONMENT})")

    if database_status()["status"] != "healthy":
        # Widgets report their own error state
        logger.error("Reference database unreachable on startup, serving degraded")

    yield

    logger.info("Shutting down API")


app = FastAPI(
    title=settings.API_TITLE,
    version=settings.API_VERSION,
    description=settings.API_DESCRIPTION,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=parse_cors_origins(settings.CORS_ALLOW_ORIGINS),
    allow_credentials=True,
    allow_methods=["GET", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(router, prefix="/api/v1")


@app.get("/")
async def root():
    """Service name, version and the dashboard endpoints."""
    return {
        "name": settings.API_TITLE,
        "version": settings.API_VERSION,
        "description": settings.API_DESCRIPTION,
        "docs": "/docs" if settings.DEBUG else "disabled in production",
        "endpoints": {
            "health": "/health",
            "insights": "/api/v1/insights",
            "divorce_rates": "/api/v1/charts/divorce-rates",
            "income_distribution": "/api/v1/charts/income-distribution",
            "map_locations": "/api/v1/map/locations",
            "raw_divorce_rates": "/api/v1/raw/divorce-rates",
            "raw_income": "/api/v1/raw/income",
            "states": "/api/v1/metadata/states",
            "cities": "/api/v1/metadata/cities",
            "tiers": "/api/v1/metadata/tiers",
        },
    }


@app.get("/health")
async def health_check():
    try:
        return database_status()
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        raise HTTPException(status_code=503, detail=f"Service unhealthy: {str(e)}")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
