"""Run lifecycle tracking: status transitions and the statistics document.

States move forward only:

    pending -> processing -> running -> completed | failed | error

Terminal states are absorbing. Progress updates are committed as they
happen so callers polling the run see statistics mid-run.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from partscraper.models.scraper import Scraper
from partscraper.models.scraper_run import STATUS_RANK, RunStatus, ScraperRun
from partscraper.services.paginator import CategoryOutcome

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 2000


class InvalidTransitionError(Exception):
    """A status change that would move a run backwards or reopen it."""


class RunNotFoundError(LookupError):
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RunStatistics:
    categories_total: int = 0
    categories_processed: int = 0
    categories_errors: int = 0
    products_scraped: int = 0
    products_saved: int = 0
    products_duplicates: int = 0
    products_errors: int = 0
    pages_processed: int = 0
    pages_errors: int = 0
    timings: dict[str, int] = field(default_factory=dict)
    category_errors: dict[str, str] = field(default_factory=dict)
    skipped_ranges: dict[str, list[list[int]]] = field(default_factory=dict)
    started_at: datetime = field(default_factory=_utcnow)
    completed_at: datetime | None = None
    error: dict[str, str] | None = None
    _clock_start: float = field(default_factory=time.monotonic, repr=False)

    @property
    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self._clock_start) * 1000)

    def record_page(self, processed: bool) -> None:
        if processed:
            self.pages_processed += 1
        else:
            self.pages_errors += 1

    def record_category(self, outcome: CategoryOutcome, elapsed_ms: int) -> None:
        """Fold a finished category into the totals.

        Product and page counters are updated as each page ends; only
        category-level fields come from the outcome.
        """
        name = outcome.category.name
        self.timings[name] = elapsed_ms
        if outcome.skipped_ranges:
            self.skipped_ranges.setdefault(name, []).extend([list(r) for r in outcome.skipped_ranges])
        if outcome.error:
            self.categories_errors += 1
            self.category_errors[name] = outcome.error
        self.categories_processed += 1

    def record_category_failure(self, name: str, error: BaseException) -> None:
        self.categories_errors += 1
        self.category_errors[name] = str(error)[:MAX_ERROR_LENGTH]

    def to_document(self) -> dict[str, Any]:
        document: dict[str, Any] = {
            "started_at": self.started_at.isoformat(),
            "categories": {
                "processed": self.categories_processed,
                "total": self.categories_total,
                "errors": self.categories_errors,
            },
            "products": {
                "scraped": self.products_scraped,
                "saved": self.products_saved,
                "duplicates": self.products_duplicates,
                "errors": self.products_errors,
            },
            "pages": {
                "processed": self.pages_processed,
                "errors": self.pages_errors,
            },
            "timings": dict(self.timings),
            "category_errors": dict(self.category_errors),
            "skipped_ranges": {name: [list(r) for r in ranges] for name, ranges in self.skipped_ranges.items()},
        }
        if self.completed_at:
            document["completed_at"] = self.completed_at.isoformat()
            document["total_time_ms"] = self.elapsed_ms
        if self.error:
            document["error"] = dict(self.error)
        return document


def check_transition(current: str, target: RunStatus) -> None:
    current_status = RunStatus(current)
    if current_status.is_terminal:
        raise InvalidTransitionError(f"Run already finished with status '{current_status.value}'")
    if STATUS_RANK[target] < STATUS_RANK[current_status]:
        raise InvalidTransitionError(f"Cannot move run from '{current_status.value}' to '{target.value}'")


class RunStateTracker:
    """Maintains the ScraperRun record for one scraper."""

    def __init__(self, session_factory: sessionmaker, scraper_name: str):
        self.session_factory = session_factory
        self.scraper_name = scraper_name

    def start(self, run_id: uuid.UUID | None = None, scraper_id: uuid.UUID | None = None) -> uuid.UUID:
        """Create or resume a run and move it to running."""
        with self.session_factory() as db:
            run = db.get(ScraperRun, run_id) if run_id else None
            if run is None:
                scraper = self._resolve_scraper(db, scraper_id, run_id)
                run = ScraperRun(
                    id=run_id or uuid.uuid4(),
                    scraper_id=scraper.id,
                    status=RunStatus.PENDING.value,
                )
                db.add(run)
            elif db.get(Scraper, run.scraper_id) is None:
                run.scraper_id = self._resolve_scraper(db, None, run.id).id

            check_transition(run.status, RunStatus.RUNNING)
            run.status = RunStatus.RUNNING.value
            if run.started_at is None:
                run.started_at = _utcnow()
            db.commit()
            logger.info(f"[Scraper:{run.id}] Run status: running")
            return run.id

    def mark_processing(self, run_id: uuid.UUID) -> None:
        self._transition(run_id, RunStatus.PROCESSING, started_at=_utcnow())

    def progress(self, run_id: uuid.UUID, statistics: RunStatistics) -> None:
        """Persist intermediate statistics; failures here never abort a scrape."""
        try:
            with self.session_factory() as db:
                run = self._get_run(db, run_id)
                run.statistics = statistics.to_document()
                db.commit()
        except (SQLAlchemyError, RunNotFoundError) as e:
            logger.error(f"[Scraper:{run_id}] Failed to record progress: {e}")

    def complete(self, run_id: uuid.UUID, statistics: RunStatistics) -> None:
        statistics.completed_at = _utcnow()
        self._transition(
            run_id,
            RunStatus.COMPLETED,
            completed_at=statistics.completed_at,
            statistics=statistics.to_document(),
        )

    def fail(
        self,
        run_id: uuid.UUID,
        error: BaseException | str,
        statistics: RunStatistics | None = None,
        status: RunStatus = RunStatus.ERROR,
    ) -> None:
        if not status.is_terminal or status == RunStatus.COMPLETED:
            raise ValueError(f"{status.value} is not a failure status")
        message = str(error)[:MAX_ERROR_LENGTH]
        fields: dict[str, Any] = {"completed_at": _utcnow(), "error_message": message}
        if statistics is not None:
            statistics.completed_at = fields["completed_at"]
            statistics.error = {
                "type": type(error).__name__ if isinstance(error, BaseException) else "Error",
                "message": message,
            }
            fields["statistics"] = statistics.to_document()
        self._transition(run_id, status, **fields)

    def _transition(self, run_id: uuid.UUID, target: RunStatus, **fields: Any) -> None:
        with self.session_factory() as db:
            run = self._get_run(db, run_id)
            check_transition(run.status, target)
            run.status = target.value
            for key, value in fields.items():
                if key == "started_at" and run.started_at is not None:
                    continue
                setattr(run, key, value)
            db.commit()
        logger.info(f"[Scraper:{run_id}] Run status: {target.value}")

    @staticmethod
    def _get_run(db: Session, run_id: uuid.UUID) -> ScraperRun:
        run = db.get(ScraperRun, run_id)
        if run is None:
            raise RunNotFoundError(f"Run {run_id} not found")
        return run

    def _resolve_scraper(self, db: Session, scraper_id: uuid.UUID | None, run_id: uuid.UUID | None) -> Scraper:
        """Find the owning scraper, creating a placeholder when it is missing."""
        if scraper_id:
            scraper = db.get(Scraper, scraper_id)
            if scraper:
                return scraper
            logger.warning(f"[Scraper:{run_id}] Scraper {scraper_id} not found, looking up '{self.scraper_name}'")

        scraper = db.query(Scraper).filter(Scraper.name == self.scraper_name).first()
        if scraper:
            return scraper

        placeholder = Scraper(
            id=uuid.uuid4(),
            name=f"{self.scraper_name}-{int(time.time() * 1000)}",
            description=f"{self.scraper_name} scraper (automatically created)",
            enabled=True,
            config={},
        )
        db.add(placeholder)
        db.flush()
        logger.warning(f"[Scraper:{run_id}] Recovered missing scraper by creating placeholder '{placeholder.name}'")
        return placeholder
