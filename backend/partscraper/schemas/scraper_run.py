"""Pydantic schemas for ScraperRun model."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ScraperRunRead(BaseModel):
    """Run record as exposed to pollers."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: UUID
    scraper_id: UUID
    status: str
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = Field(None, validation_alias="error_message")
    statistics: dict[str, Any] | None = None


class ScraperRunSummary(BaseModel):
    """Minimal run info for list views."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    scraper_id: UUID
    status: str
    started_at: datetime | None = None
    completed_at: datetime | None = None


class RunStartRequest(BaseModel):
    max_products: int = Field(1000, ge=1)


class RunStartResponse(BaseModel):
    """Response from triggering a run."""

    message: str
    run_id: UUID
    task_id: str
    max_products: int
