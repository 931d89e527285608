"""Scraper model: a named, enableable harvesting target."""

from sqlalchemy import Column, String, Boolean, Text
from sqlalchemy.orm import relationship

from partscraper.models.base import Base, JSONType, TimestampMixin, UUIDMixin


class Scraper(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "scrapers"

    name = Column(String(100), unique=True, nullable=False, index=True)
    description = Column(Text)
    enabled = Column(Boolean, default=True, nullable=False)
    config = Column(JSONType, default=dict)  # max_products_to_scrape, max_pages, page_delay, categories

    runs = relationship("ScraperRun", back_populates="scraper")
