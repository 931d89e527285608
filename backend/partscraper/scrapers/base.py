"""Base scraper: the category loop tying pagination, normalization,
persistence and run tracking together."""

import logging
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from partscraper.models.scraper import Scraper
from partscraper.services.fetch_client import FetchClient
from partscraper.services.normalizer import Category, ProductRecord
from partscraper.services.paginator import PageContext, Paginator
from partscraper.services.persister import BatchPersister
from partscraper.services.run_tracker import RunStateTracker, RunStatistics

logger = logging.getLogger(__name__)


@dataclass
class ScrapeSettings:
    categories: list[Category]
    page_size: int = 50
    max_pages: int = 10
    page_delay: float = 2.0
    max_products: int | None = None


@dataclass
class ScrapeResult:
    status: str  # success, error
    run_id: uuid.UUID | None
    statistics: dict[str, Any]
    error: str | None = None


class BaseScraper(ABC):
    """Abstract base class for catalog scrapers.

    Subclasses must implement:
        default_categories() -> list[Category]
        normalize(raw, category) -> ProductRecord
    """

    name: str = ""

    def __init__(
        self,
        scraper: Scraper | None,
        fetch_client: FetchClient,
        persister: BatchPersister,
        tracker: RunStateTracker,
        settings: ScrapeSettings | None = None,
        sleep=time.sleep,
    ):
        self.scraper = scraper
        self.fetch_client = fetch_client
        self.persister = persister
        self.tracker = tracker
        self.settings = settings or ScrapeSettings(categories=self.default_categories())
        self.paginator = Paginator(
            fetch_client,
            page_size=self.settings.page_size,
            max_pages=self.settings.max_pages,
            page_delay=self.settings.page_delay,
            sleep=sleep,
        )

    @classmethod
    @abstractmethod
    def default_categories(cls) -> list[Category]:
        ...

    @abstractmethod
    def normalize(self, raw: Any, category: Category) -> ProductRecord:
        ...

    def run(self, run_id: uuid.UUID | None = None) -> ScrapeResult:
        """Execute a full scrape across all categories, in order."""
        statistics = RunStatistics(categories_total=len(self.settings.categories))
        try:
            run_id = self.tracker.start(run_id, scraper_id=self.scraper.id if self.scraper else None)
            tag = f"[Scraper:{run_id}]"
            logger.info(f"{tag} Starting API scrape of {len(self.settings.categories)} categories")

            for index, category in enumerate(self.settings.categories, start=1):
                remaining = self._remaining_budget(statistics)
                if remaining == 0:
                    logger.info(f"{tag} Product budget exhausted, skipping category: {category.name}")
                    continue

                logger.info(f"{tag} Processing category {index}/{len(self.settings.categories)}: {category.name}")
                started = time.monotonic()
                try:
                    outcome = self.paginator.paginate(
                        category,
                        lambda context, items: self._handle_page(run_id, statistics, context, items),
                        run_id=str(run_id),
                        max_records=remaining,
                        on_page_end=lambda context, processed: self._page_end(run_id, statistics, processed),
                    )
                except Exception as e:
                    logger.exception(f"{tag} Error processing category {category.name}: {e}")
                    statistics.record_category_failure(category.name, e)
                else:
                    elapsed_ms = int((time.monotonic() - started) * 1000)
                    statistics.record_category(outcome, elapsed_ms)
                    logger.info(f"{tag} Category {category.name} processed in {elapsed_ms}ms")
                self.tracker.progress(run_id, statistics)

            self.tracker.complete(run_id, statistics)
            logger.info(
                f"{tag} Scrape completed successfully. Scraped {statistics.products_scraped} products, "
                f"saved {statistics.products_saved}."
            )
            return ScrapeResult(status="success", run_id=run_id, statistics=statistics.to_document())

        except Exception as e:
            logger.exception(f"[Scraper:{run_id}] Fatal error during scrape: {e}")
            if run_id is not None:
                try:
                    self.tracker.fail(run_id, e, statistics)
                except Exception as track_error:
                    logger.error(f"[Scraper:{run_id}] Could not record failure: {track_error}")
            return ScrapeResult(
                status="error",
                run_id=run_id,
                statistics=statistics.to_document(),
                error=str(e),
            )

    def _remaining_budget(self, statistics: RunStatistics) -> int | None:
        if self.settings.max_products is None:
            return None
        return max(self.settings.max_products - statistics.products_scraped, 0)

    def _handle_page(self, run_id: uuid.UUID, statistics: RunStatistics, context: PageContext, items: list) -> None:
        tag = f"[Scraper:{run_id}]"
        records: list[ProductRecord] = []
        for raw in items:
            try:
                records.append(self.normalize(raw, context.category))
            except ValueError as e:
                logger.warning(f"{tag} Skipping item on page {context.page_number} of {context.category.name}: {e}")
                statistics.products_errors += 1

        statistics.products_scraped += len(items)
        logger.info(f"{tag} Saving {len(records)} products for category: {context.category.name}")
        result = self.persister.persist(records, run_id)
        statistics.products_saved += result.saved
        statistics.products_duplicates += result.duplicates
        statistics.products_errors += result.errors

        logger.info(f"{tag} Saved {result.saved}/{len(items)} products for {context.category.name}")

    def _page_end(self, run_id: uuid.UUID, statistics: RunStatistics, processed: bool) -> None:
        statistics.record_page(processed)
        self.tracker.progress(run_id, statistics)
