"""Scraper run model: lifecycle record per scrape execution."""

import enum

from sqlalchemy import Column, String, DateTime, Text, ForeignKey, Uuid
from sqlalchemy.orm import relationship

from partscraper.models.base import Base, JSONType, TimestampMixin, UUIDMixin


class RunStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.ERROR})

# Transitions only move to a strictly higher rank; terminal states share the top rank.
STATUS_RANK = {
    RunStatus.PENDING: 0,
    RunStatus.PROCESSING: 1,
    RunStatus.RUNNING: 2,
    RunStatus.COMPLETED: 3,
    RunStatus.FAILED: 3,
    RunStatus.ERROR: 3,
}


class ScraperRun(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "scraper_runs"

    scraper_id = Column(Uuid(as_uuid=True), ForeignKey("scrapers.id"), nullable=False, index=True)

    status = Column(String(20), nullable=False, default=RunStatus.PENDING.value, index=True)
    started_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))
    statistics = Column(JSONType, default=dict)
    error_message = Column(Text)

    scraper = relationship("Scraper", back_populates="runs")
    products = relationship("Product", back_populates="scraper_run")
