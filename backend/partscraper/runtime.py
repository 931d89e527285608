"""Process-level scrape resources and their lifecycle.

The proxy rotator, fetch client and persister are constructed once when the
process starts (FastAPI lifespan, Celery worker_process_init, CLI main) and
closed on shutdown. Scrapers receive them by reference.
"""

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import sessionmaker

from partscraper.config import Settings, get_settings
from partscraper.models.scraper import Scraper
from partscraper.scrapers.base import BaseScraper, ScrapeSettings
from partscraper.scrapers.registry import get_scraper_class
from partscraper.services.fetch_client import FetchClient
from partscraper.services.normalizer import Category
from partscraper.services.persister import BatchPersister
from partscraper.services.proxy_rotator import ProxyCredential, ProxyRotator
from partscraper.services.run_tracker import RunStateTracker

logger = logging.getLogger(__name__)


class UnknownScraperError(LookupError):
    pass


@dataclass
class ScrapeRuntime:
    settings: Settings
    session_factory: sessionmaker
    rotator: ProxyRotator | None
    fetch_client: FetchClient
    persister: BatchPersister

    def close(self) -> None:
        self.fetch_client.close()

    def scrape_settings(self, scraper_cls: type[BaseScraper], config: dict[str, Any] | None = None) -> ScrapeSettings:
        """Merge process settings with a scraper's stored config and per-run overrides."""
        config = config or {}
        categories = [Category(**c) for c in config.get("categories") or []]
        max_products = config.get("max_products_to_scrape", self.settings.default_max_products)
        return ScrapeSettings(
            categories=categories or scraper_cls.default_categories(),
            page_size=self.settings.page_size,
            max_pages=int(config.get("max_pages", self.settings.max_pages)),
            page_delay=float(config.get("page_delay", self.settings.page_delay)),
            max_products=int(max_products) if max_products is not None else None,
        )

    def build_scraper(self, name: str, scraper: Scraper | None = None, overrides: dict[str, Any] | None = None) -> BaseScraper:
        scraper_cls = get_scraper_class(name)
        if scraper_cls is None:
            raise UnknownScraperError(f"No scraper registered under name: {name}")
        config = {**((scraper.config or {}) if scraper else {}), **(overrides or {})}
        return scraper_cls(
            scraper=scraper,
            fetch_client=self.fetch_client,
            persister=self.persister,
            tracker=RunStateTracker(self.session_factory, name),
            settings=self.scrape_settings(scraper_cls, config),
        )


def build_rotator(settings: Settings) -> ProxyRotator | None:
    if not settings.proxy_enabled:
        logger.warning("Proxy rotation disabled, requests go out directly")
        return None
    credentials = [ProxyCredential(c.username, c.password) for c in settings.proxy_credentials]
    rotator = ProxyRotator(
        credentials,
        host=settings.proxy_host,
        country=settings.proxy_country,
        method=settings.proxy_method,
    )
    logger.info(f"Initialized proxy rotator with {len(rotator)} credentials")
    return rotator


def build_runtime(settings: Settings | None = None, session_factory: sessionmaker | None = None, **fetch_kwargs) -> ScrapeRuntime:
    settings = settings or get_settings()
    if session_factory is None:
        from partscraper.models.base import SyncSessionLocal
        session_factory = SyncSessionLocal

    rotator = build_rotator(settings)
    fetch_client = FetchClient(
        rotator,
        timeout=settings.request_timeout,
        max_attempts=settings.max_fetch_attempts,
        backoff_base=settings.retry_backoff_base,
        backoff_max=settings.retry_backoff_max,
        **fetch_kwargs,
    )
    return ScrapeRuntime(
        settings=settings,
        session_factory=session_factory,
        rotator=rotator,
        fetch_client=fetch_client,
        persister=BatchPersister(session_factory, batch_size=settings.persist_batch_size),
    )


_runtime: ScrapeRuntime | None = None


def init_runtime(runtime: ScrapeRuntime | None = None) -> ScrapeRuntime:
    """Install the process runtime, building it from settings when not given."""
    global _runtime
    if _runtime is not None:
        _runtime.close()
    _runtime = runtime or build_runtime()
    return _runtime


def get_runtime() -> ScrapeRuntime:
    if _runtime is None:
        return init_runtime()
    return _runtime


def shutdown_runtime() -> None:
    global _runtime
    if _runtime is not None:
        _runtime.close()
        _runtime = None
        logger.info("Scrape runtime closed")
