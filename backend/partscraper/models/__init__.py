"""Import all models so relationship strings resolve."""

from partscraper.models.scraper import Scraper  # noqa: F401
from partscraper.models.scraper_run import ScraperRun, RunStatus  # noqa: F401
from partscraper.models.product import Product  # noqa: F401
