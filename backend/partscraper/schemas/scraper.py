"""Pydantic schemas for Scraper model."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from partscraper.schemas.scraper_run import ScraperRunRead


class ScraperRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: str | None = None
    enabled: bool = True
    config: dict[str, Any] | None = None
    created_at: datetime
    updated_at: datetime


class ScraperTotals(BaseModel):
    total_products: int = 0


class ScraperStatusResponse(BaseModel):
    scraper: ScraperRead
    latest_run: ScraperRunRead | None = None
    statistics: ScraperTotals
