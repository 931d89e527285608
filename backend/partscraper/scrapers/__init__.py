"""Scraper package: import all scrapers to trigger @register_scraper decorators."""

from partscraper.scrapers.lkq import LkqScraper  # noqa: F401
