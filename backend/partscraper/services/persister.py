"""Idempotent batched upsert of product records by SKU."""

import logging
import uuid
from dataclasses import dataclass
from typing import Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from partscraper.models.product import Product
from partscraper.services.normalizer import ProductRecord

logger = logging.getLogger(__name__)


@dataclass
class PersistResult:
    saved: int = 0
    duplicates: int = 0
    errors: int = 0
    created: int = 0  # subset of saved that were first sightings

    def __iadd__(self, other: "PersistResult") -> "PersistResult":
        self.saved += other.saved
        self.duplicates += other.duplicates
        self.errors += other.errors
        self.created += other.created
        return self


class BatchPersister:
    """Upserts records in fixed-size batches, one transaction per batch.

    Each record is written inside its own SAVEPOINT so a failing record rolls
    back alone and the rest of the batch still commits.
    """

    def __init__(self, session_factory: sessionmaker, batch_size: int = 50):
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self.session_factory = session_factory
        self.batch_size = batch_size

    def persist(self, records: Iterable[ProductRecord], run_id: uuid.UUID | str | None) -> PersistResult:
        run_uuid = _as_uuid(run_id)
        tag = f"[Scraper:{run_id or '-'}]"
        result = PersistResult()

        # Last occurrence of a SKU wins; earlier ones are reported as duplicates
        unique: dict[str, ProductRecord] = {}
        for record in records:
            if record.sku in unique:
                result.duplicates += 1
                del unique[record.sku]
            unique[record.sku] = record

        pending = list(unique.values())
        if not pending:
            return result

        for start in range(0, len(pending), self.batch_size):
            batch = pending[start:start + self.batch_size]
            logger.info(f"{tag} Processing batch of {len(batch)} products")
            result += self._persist_batch(batch, run_uuid, tag)

        logger.info(
            f"{tag} Completed saving products. Saved: {result.saved}, "
            f"Duplicates: {result.duplicates}, Errors: {result.errors}"
        )
        return result

    def _persist_batch(self, batch: list[ProductRecord], run_id: uuid.UUID | None, tag: str) -> PersistResult:
        batch_result = PersistResult()
        try:
            with self.session_factory() as db, db.begin():
                for record in batch:
                    try:
                        with db.begin_nested():
                            created = self._upsert(db, record, run_id)
                    except (SQLAlchemyError, ValueError, TypeError) as e:
                        logger.error(f"{tag} Error saving product {record.sku}: {e}")
                        batch_result.errors += 1
                        continue
                    batch_result.saved += 1
                    if created:
                        batch_result.created += 1
        except SQLAlchemyError as e:
            logger.error(f"{tag} Batch of {len(batch)} products failed to commit: {e}")
            return PersistResult(errors=len(batch))
        return batch_result

    @staticmethod
    def _upsert(db: Session, record: ProductRecord, run_id: uuid.UUID | None) -> bool:
        """Insert or overwrite the row for record.sku. Returns True on insert."""
        if not record.sku:
            raise ValueError("Record has an empty SKU")

        values = record.to_columns()
        values["scraper_run_id"] = run_id

        existing = db.query(Product).filter(Product.sku == record.sku).one_or_none()
        if existing:
            for key, value in values.items():
                setattr(existing, key, value)
            db.flush()
            return False

        db.add(Product(id=uuid.uuid4(), **values))
        db.flush()
        return True


def _as_uuid(run_id: uuid.UUID | str | None) -> uuid.UUID | None:
    if run_id is None or isinstance(run_id, uuid.UUID):
        return run_id
    return uuid.UUID(str(run_id))
