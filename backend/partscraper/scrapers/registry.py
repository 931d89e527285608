"""Catalog scraper registry.

A registered name is the key shared by the `scrapers` table, the
`/scrapers/{name}` routes and the run task, which resolves it back to the
BaseScraper subclass that knows the catalog's categories and item shape.
"""

import logging
from typing import Type

from partscraper.scrapers.base import BaseScraper

logger = logging.getLogger(__name__)

_CATALOG_SCRAPERS: dict[str, Type[BaseScraper]] = {}


def register_scraper(name: str):
    """Class decorator publishing a catalog scraper under `name`.

    Sets `cls.name` so runs and placeholder scraper rows use the same key.
    Registering a different class under a taken name raises ValueError.
    """
    def decorator(cls: Type[BaseScraper]):
        existing = _CATALOG_SCRAPERS.get(name)
        if existing is not None and existing is not cls:
            raise ValueError(f"Catalog scraper '{name}' already registered by {existing.__name__}")
        cls.name = name
        _CATALOG_SCRAPERS[name] = cls
        logger.debug(f"Registered catalog scraper: {name} -> {cls.__name__}")
        return cls
    return decorator


def get_scraper_class(name: str) -> Type[BaseScraper] | None:
    """Catalog scraper class for a `scrapers.name` value, or None if unknown."""
    return _CATALOG_SCRAPERS.get(name)


def list_scrapers() -> list[str]:
    return sorted(_CATALOG_SCRAPERS)
