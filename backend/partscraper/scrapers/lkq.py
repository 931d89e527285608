"""LKQ Online scraper.

LKQ exposes its parts catalog as a JSON API paginated with skip/take:
    https://www.lkqonline.com/api/catalog/0/product?catalogId=0&category=...&skip=0&take=50
Items arrive under the response's "data" array.
"""

import logging
from typing import Any

from partscraper.scrapers.base import BaseScraper
from partscraper.scrapers.registry import register_scraper
from partscraper.services.normalizer import Category, ProductRecord, normalize_item

logger = logging.getLogger(__name__)

LKQ_API_BASE = "https://www.lkqonline.com/api/catalog/0/product"

LKQ_CATEGORIES = [
    Category(
        name="Transmission or Transaxle Assembly",
        url=f"{LKQ_API_BASE}?catalogId=0&category=Engine%20Compartment%7CTransmission%20or%20Transaxle%20Assembly&skip=0&take=50",
    ),
    Category(
        name="Engine Assembly",
        url=f"{LKQ_API_BASE}?catalogId=0&category=Engine%20Compartment%7CEngine%20Assembly&skip=0&take=50",
    ),
]


@register_scraper("lkq")
class LkqScraper(BaseScraper):
    description = "LKQ Online Auto Parts Scraper"

    @classmethod
    def default_categories(cls) -> list[Category]:
        return list(LKQ_CATEGORIES)

    def normalize(self, raw: Any, category: Category) -> ProductRecord:
        return normalize_item(raw, category)
