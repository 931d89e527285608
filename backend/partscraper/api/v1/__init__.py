"""API v1 router aggregation."""

from fastapi import APIRouter

from partscraper.api.v1.scrapers import router as scrapers_router
from partscraper.api.v1.runs import router as runs_router

router = APIRouter(prefix="/api/v1")

router.include_router(scrapers_router)
router.include_router(runs_router)
