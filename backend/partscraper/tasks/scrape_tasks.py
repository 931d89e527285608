"""Scrape orchestration tasks."""

import logging
import uuid

from sqlalchemy.exc import SQLAlchemyError

from partscraper.tasks.celery_app import celery_app
from partscraper.config import get_settings
from partscraper.models.base import SyncSessionLocal
from partscraper.models.scraper import Scraper
from partscraper.models.scraper_run import RunStatus, ScraperRun
from partscraper.runtime import get_runtime
from partscraper.services.run_tracker import InvalidTransitionError, RunNotFoundError, RunStateTracker

logger = logging.getLogger(__name__)


@celery_app.task(name="partscraper.tasks.scrape_tasks.run_scraper")
def run_scraper(run_id: str, config: dict | None = None):
    """Execute one scraper run. Looks up the scraper and delegates to its class.

    Any failure before or around the engine marks the run failed so it never
    stays pending.
    """
    # Import scrapers package to trigger @register_scraper decorators
    import partscraper.scrapers  # noqa: F401

    run_uuid = None
    runtime = None
    scraper_name = get_settings().default_scraper

    try:
        run_uuid = uuid.UUID(run_id)
        runtime = get_runtime()

        db = runtime.session_factory()
        try:
            run = db.get(ScraperRun, run_uuid)
            if not run:
                logger.error(f"Run {run_id} not found")
                return {"status": "error", "run_id": run_id, "error": "run not found"}
            scraper = db.get(Scraper, run.scraper_id)
            if scraper:
                scraper_name = scraper.name
            db.expunge_all()
        finally:
            db.close()

        RunStateTracker(runtime.session_factory, scraper_name).mark_processing(run_uuid)
        engine = runtime.build_scraper(scraper_name, scraper, overrides=config)
        result = engine.run(run_uuid)
    except Exception as e:
        logger.error(f"[Scraper:{run_id}] Direct scraper execution failed: {e}")
        if run_uuid is not None:
            session_factory = runtime.session_factory if runtime else SyncSessionLocal
            _mark_failed(session_factory, scraper_name, run_uuid, e)
        return {"status": "error", "run_id": run_id, "error": str(e)}

    logger.info(f"[Scraper:{run_id}] Run finished with status {result.status}")
    return {
        "status": result.status,
        "run_id": run_id,
        "error": result.error,
        "statistics": result.statistics,
    }


def _mark_failed(session_factory, scraper_name: str, run_id: uuid.UUID, error: Exception) -> None:
    try:
        RunStateTracker(session_factory, scraper_name).fail(run_id, error, status=RunStatus.FAILED)
    except InvalidTransitionError:
        logger.warning(f"[Scraper:{run_id}] Run already finished, status left unchanged")
    except (SQLAlchemyError, RunNotFoundError) as track_error:
        logger.error(f"[Scraper:{run_id}] Could not record failure: {track_error}")
