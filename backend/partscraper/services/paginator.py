"""Skip/take pagination over one category of the upstream catalog."""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable

import httpx

from partscraper.services.fetch_client import BadRequestError, FetchClient
from partscraper.services.normalizer import Category, extract_items

logger = logging.getLogger(__name__)


@dataclass
class PageContext:
    category: Category
    page_number: int  # 1-based
    skip: int
    take: int
    url: str


# Handles one page of raw items (normalize + persist); its exceptions are page faults.
PageHandler = Callable[[PageContext, list[Any]], None]

# Called once per page attempt with whether the page was processed.
PageEndCallback = Callable[[PageContext, bool], None]


@dataclass
class CategoryOutcome:
    category: Category
    pages_fetched: int = 0
    pages_processed: int = 0
    page_errors: int = 0
    records_seen: int = 0
    skipped_ranges: list[tuple[int, int]] = field(default_factory=list)
    error: str | None = None  # category-level abort reason

    @property
    def aborted(self) -> bool:
        return self.error is not None


def page_url(base_url: str, skip: int, take: int) -> str:
    """Set skip/take on the category URL, replacing any existing values."""
    url = httpx.URL(base_url)
    return str(url.copy_set_param("skip", str(skip)).copy_set_param("take", str(take)))


class Paginator:
    """Drives repeated fetches for a category, advancing the skip cursor.

    A category ends when a page yields no items or fewer than a full page,
    when max_pages fetches have been made, when the optional record budget is
    used up, or when the upstream rejects the query with a 400. Any other
    page failure is counted, its offset range recorded, and the cursor moves
    on to the next page.
    """

    def __init__(
        self,
        fetch_client: FetchClient,
        page_size: int = 50,
        max_pages: int = 10,
        page_delay: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if page_size < 1 or max_pages < 1:
            raise ValueError("page_size and max_pages must be positive")
        self.fetch_client = fetch_client
        self.page_size = page_size
        self.max_pages = max_pages
        self.page_delay = page_delay
        self._sleep = sleep

    def paginate(
        self,
        category: Category,
        handle_page: PageHandler,
        run_id: str | None = None,
        max_records: int | None = None,
        on_page_end: PageEndCallback | None = None,
    ) -> CategoryOutcome:
        tag = f"[Scraper:{run_id or '-'}]"
        take = self.page_size
        outcome = CategoryOutcome(category=category)

        for page_number in range(1, self.max_pages + 1):
            skip = (page_number - 1) * take
            context = PageContext(
                category=category,
                page_number=page_number,
                skip=skip,
                take=take,
                url=page_url(category.url, skip, take),
            )
            logger.info(f"{tag} Processing API page {page_number} for category: {category.name} ({context.url})")
            started = time.monotonic()

            try:
                outcome.pages_fetched += 1
                payload = self.fetch_client.fetch(context.url, run_id=run_id)
                items = extract_items(payload)
                if items:
                    handle_page(context, items)
            except BadRequestError as e:
                logger.error(f"{tag} Upstream rejected page {page_number} for {category.name}: {e}")
                outcome.page_errors += 1
                outcome.error = str(e)
                if on_page_end:
                    on_page_end(context, False)
                break
            except Exception as e:
                logger.error(f"{tag} Error processing API page {page_number} for {category.name}: {e}")
                outcome.page_errors += 1
                outcome.skipped_ranges.append((skip, skip + take - 1))
                if on_page_end:
                    on_page_end(context, False)
                continue

            outcome.pages_processed += 1
            outcome.records_seen += len(items)
            logger.info(
                f"{tag} API page {page_number} processed in {int((time.monotonic() - started) * 1000)}ms "
                f"({len(items)} items)"
            )
            if on_page_end:
                on_page_end(context, True)

            if len(items) < take:
                logger.info(f"{tag} No more products for category: {category.name}")
                break
            if max_records is not None and outcome.records_seen >= max_records:
                logger.info(f"{tag} Product budget reached in category: {category.name}")
                break
            if page_number < self.max_pages and self.page_delay > 0:
                self._sleep(self.page_delay)
        else:
            logger.info(f"{tag} Reached max pages limit ({self.max_pages}) for category: {category.name}")

        return outcome
