"""Scraper trigger and status endpoints."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from partscraper.models.base import get_db
from partscraper.schemas.scraper import ScraperRead, ScraperStatusResponse, ScraperTotals
from partscraper.schemas.scraper_run import RunStartRequest, RunStartResponse, ScraperRunRead
from partscraper.services import run_service

router = APIRouter(prefix="/scrapers", tags=["scrapers"])


@router.post("/{name}/run", response_model=RunStartResponse, status_code=status.HTTP_202_ACCEPTED)
def start_run(
    name: str,
    body: RunStartRequest | None = None,
    db: Session = Depends(get_db),
):
    """Start a scraper run and return its id."""
    body = body or RunStartRequest()
    try:
        started = run_service.start_run(db, name, max_products=body.max_products)
    except LookupError:
        raise HTTPException(status_code=404, detail=f"Scraper '{name}' not registered")

    return RunStartResponse(
        message=f"{name} scraper job executed",
        run_id=started.run_id,
        task_id=started.task_id,
        max_products=body.max_products,
    )


@router.get("/{name}/status", response_model=ScraperStatusResponse)
def get_status(
    name: str,
    db: Session = Depends(get_db),
):
    """Scraper record, its latest run and product totals."""
    scraper_status = run_service.get_status(db, name)
    if not scraper_status:
        raise HTTPException(status_code=404, detail=f"Scraper '{name}' not found")

    return ScraperStatusResponse(
        scraper=ScraperRead.model_validate(scraper_status.scraper),
        latest_run=ScraperRunRead.model_validate(scraper_status.latest_run) if scraper_status.latest_run else None,
        statistics=ScraperTotals(total_products=scraper_status.total_products),
    )
