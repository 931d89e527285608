"""Trigger interface: start runs and report scraper status."""

import logging
import uuid
from dataclasses import dataclass

from sqlalchemy import func
from sqlalchemy.orm import Session

from partscraper.models.product import Product
from partscraper.models.scraper import Scraper
from partscraper.models.scraper_run import RunStatus, ScraperRun
from partscraper.scrapers.registry import get_scraper_class

logger = logging.getLogger(__name__)


@dataclass
class RunStarted:
    run_id: uuid.UUID
    task_id: str


@dataclass
class ScraperStatus:
    scraper: Scraper
    latest_run: ScraperRun | None
    total_products: int


def get_or_create_scraper(db: Session, name: str, config: dict | None = None) -> Scraper:
    scraper = db.query(Scraper).filter(Scraper.name == name).first()
    if scraper:
        logger.info(f"Found existing {name} scraper with id: {scraper.id}")
        return scraper

    scraper_cls = get_scraper_class(name)
    scraper = Scraper(
        id=uuid.uuid4(),
        name=name,
        description=getattr(scraper_cls, "description", None) or f"{name} scraper",
        enabled=True,
        config=config or {},
    )
    db.add(scraper)
    db.commit()
    logger.info(f"Created {name} scraper record with id: {scraper.id}")
    return scraper


def start_run(db: Session, scraper_name: str, max_products: int = 1000) -> RunStarted:
    """Create a pending run and hand it to the task queue.

    With the queue disabled (eager Celery) the scrape finishes before this
    returns; either way the caller gets the run id to poll.
    """
    if get_scraper_class(scraper_name) is None:
        raise LookupError(f"Unknown scraper: {scraper_name}")

    config = {"max_products_to_scrape": max_products}
    scraper = get_or_create_scraper(db, scraper_name, config)

    run_id = uuid.uuid4()
    db.add(ScraperRun(id=run_id, scraper_id=scraper.id, status=RunStatus.PENDING.value))
    db.commit()
    # The task writes the run through its own sessions; no transaction may stay open here
    db.close()
    logger.info(f"Created scraper run with id: {run_id}")

    from partscraper.tasks.scrape_tasks import run_scraper

    task = run_scraper.delay(str(run_id), config)
    return RunStarted(run_id=run_id, task_id=str(task.id))


def get_status(db: Session, scraper_name: str) -> ScraperStatus | None:
    scraper = db.query(Scraper).filter(Scraper.name == scraper_name).first()
    if not scraper:
        return None

    latest_run = (
        db.query(ScraperRun)
        .filter(ScraperRun.scraper_id == scraper.id)
        .order_by(ScraperRun.created_at.desc(), ScraperRun.started_at.desc())
        .first()
    )
    total_products = db.query(func.count(Product.id)).scalar() or 0
    return ScraperStatus(scraper=scraper, latest_run=latest_run, total_products=total_products)
