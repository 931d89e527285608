"""Run a scraper from the command line and print the run's statistics.

Usage:
    docker compose exec backend python -m scripts.run_scrape --scraper lkq --max-products 500
    docker compose exec backend python -m scripts.run_scrape --status
"""

import argparse
import json
import logging
import sys

import partscraper.models  # noqa: F401
import partscraper.scrapers  # noqa: F401
from partscraper.config import get_settings
from partscraper.models.base import Base, SyncSessionLocal, sync_engine
from partscraper.models.scraper_run import ScraperRun
from partscraper.runtime import init_runtime, shutdown_runtime
from partscraper.schemas.scraper_run import ScraperRunRead
from partscraper.services import run_service

settings = get_settings()
logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Run a catalog scraper synchronously")
    parser.add_argument("--scraper", default=settings.default_scraper, help="Registered scraper name")
    parser.add_argument("--max-products", type=int, default=settings.default_max_products)
    parser.add_argument("--status", action="store_true", help="Show the latest run instead of starting one")
    args = parser.parse_args()

    Base.metadata.create_all(bind=sync_engine)

    db = SyncSessionLocal()
    try:
        if args.status:
            status = run_service.get_status(db, args.scraper)
            if not status:
                logger.error(f"Scraper '{args.scraper}' has never run")
                return 1
            latest = ScraperRunRead.model_validate(status.latest_run).model_dump(mode="json") if status.latest_run else None
            print(json.dumps({"latest_run": latest, "total_products": status.total_products}, indent=2))
            return 0

        init_runtime()
        try:
            started = run_service.start_run(db, args.scraper, max_products=args.max_products)
        finally:
            shutdown_runtime()

        db.expire_all()
        run = db.get(ScraperRun, started.run_id)
        print(json.dumps(ScraperRunRead.model_validate(run).model_dump(mode="json"), indent=2))
        return 0 if run.status == "completed" else 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
