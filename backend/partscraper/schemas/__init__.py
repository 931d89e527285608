"""Pydantic schemas package."""

from partscraper.schemas.scraper_run import (
    ScraperRunRead,
    ScraperRunSummary,
    RunStartRequest,
    RunStartResponse,
)
from partscraper.schemas.scraper import (
    ScraperRead,
    ScraperTotals,
    ScraperStatusResponse,
)

__all__ = [
    # ScraperRun
    "ScraperRunRead",
    "ScraperRunSummary",
    "RunStartRequest",
    "RunStartResponse",
    # Scraper
    "ScraperRead",
    "ScraperTotals",
    "ScraperStatusResponse",
]
