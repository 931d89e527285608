"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

# Register tables on Base.metadata and scrapers in the registry
import partscraper.models  # noqa: F401
import partscraper.scrapers  # noqa: F401
from partscraper.config import get_settings
from partscraper.models.base import Base, SyncSessionLocal, sync_engine
from partscraper.api.v1 import router as api_v1_router
from partscraper.runtime import init_runtime, shutdown_runtime

settings = get_settings()
logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    logger.info("Starting %s...", settings.app_name)
    Base.metadata.create_all(bind=sync_engine)
    logger.info("Database tables verified")
    init_runtime()
    yield
    logger.info("Shutting down...")
    shutdown_runtime()
    sync_engine.dispose()


app = FastAPI(
    title=settings.app_name,
    description="Harvests paginated product listings from the LKQ Online catalog API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_v1_router)


@app.get("/health")
def health_check():
    checks = {}
    try:
        with SyncSessionLocal() as session:
            session.execute(text("SELECT 1")).scalar()
        checks["database"] = {"ok": True}
    except Exception as e:
        checks["database"] = {"ok": False, "message": str(e)}

    status = "healthy" if all(check["ok"] for check in checks.values()) else "degraded"
    return {"status": status, "app": settings.app_name, "checks": checks}
