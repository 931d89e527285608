"""Scraper run API endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from partscraper.models.base import get_db
from partscraper.models.scraper_run import ScraperRun
from partscraper.schemas.scraper_run import ScraperRunRead, ScraperRunSummary

router = APIRouter(prefix="/runs", tags=["runs"])


@router.get("", response_model=list[ScraperRunSummary])
def list_runs(
    db: Session = Depends(get_db),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    scraper_id: UUID | None = Query(None, description="Filter by scraper"),
    status: str | None = Query(None, description="Filter by status"),
):
    """List recent scraper runs."""
    query = db.query(ScraperRun)

    if scraper_id:
        query = query.filter(ScraperRun.scraper_id == scraper_id)
    if status:
        query = query.filter(ScraperRun.status == status)

    runs = query.order_by(ScraperRun.created_at.desc()).offset(skip).limit(limit).all()
    return [ScraperRunSummary.model_validate(run) for run in runs]


@router.get("/{run_id}", response_model=ScraperRunRead)
def get_run(
    run_id: UUID,
    db: Session = Depends(get_db),
):
    """Get a single run with its statistics document."""
    run = db.get(ScraperRun, run_id)
    if not run:
        raise HTTPException(status_code=404, detail="Run not found")
    return ScraperRunRead.model_validate(run)
