import uuid

import pytest

from conftest import make_items
from partscraper.models.product import Product
from partscraper.models.scraper_run import ScraperRun
from partscraper.scrapers.base import ScrapeSettings
from partscraper.scrapers.lkq import LKQ_CATEGORIES, LkqScraper
from partscraper.scrapers.registry import get_scraper_class, list_scrapers, register_scraper
from partscraper.services.normalizer import Category
from partscraper.services.persister import BatchPersister
from partscraper.services.run_tracker import RunStateTracker

ENGINES = Category(name="Engine Assembly", url="https://api.test/products?category=engines")
TRANSMISSIONS = Category(name="Transmission Assembly", url="https://api.test/products?category=transmissions")


class ExplodingTracker(RunStateTracker):
    def complete(self, run_id, statistics):
        raise RuntimeError("lost connection to database")


class RecordingTracker(RunStateTracker):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.pushes = []

    def progress(self, run_id, statistics):
        document = statistics.to_document()
        self.pushes.append((document["products"]["saved"], document["pages"]["processed"]))
        super().progress(run_id, statistics)


@pytest.fixture
def build_engine(session_factory, fetch_client, lkq_scraper, sleeps):
    def build(categories, tracker_cls=RunStateTracker, **overrides):
        overrides.setdefault("page_delay", 0)
        return LkqScraper(
            scraper=lkq_scraper,
            fetch_client=fetch_client,
            persister=BatchPersister(session_factory),
            tracker=tracker_cls(session_factory, "lkq"),
            settings=ScrapeSettings(categories=categories, **overrides),
            sleep=sleeps.append,
        )
    return build


def load_run(session_factory, run_id):
    with session_factory() as db:
        run = db.get(ScraperRun, run_id)
        db.expunge(run)
        return run


def product_count(session_factory):
    with session_factory() as db:
        return db.query(Product).count()


def test_lkq_is_registered():
    assert "lkq" in list_scrapers()
    assert get_scraper_class("lkq") is LkqScraper
    assert LkqScraper.default_categories() == LKQ_CATEGORIES


def test_registering_another_class_under_a_taken_name_fails():
    with pytest.raises(ValueError, match="already registered"):
        register_scraper("lkq")(type("OtherScraper", (LkqScraper,), {}))
    assert get_scraper_class("lkq") is LkqScraper


def test_scrapes_category_end_to_end(catalog, build_engine, session_factory):
    catalog.items["engines"] = make_items(120)

    result = build_engine([ENGINES]).run()

    assert result.status == "success"
    assert catalog.skips("engines") == [0, 50, 100]
    stats = result.statistics
    assert stats["categories"] == {"processed": 1, "total": 1, "errors": 0}
    assert stats["products"] == {"scraped": 120, "saved": 120, "duplicates": 0, "errors": 0}
    assert stats["pages"] == {"processed": 3, "errors": 0}
    assert "Engine Assembly" in stats["timings"]

    run = load_run(session_factory, result.run_id)
    assert run.status == "completed"
    assert run.statistics["products"]["saved"] == 120
    with session_factory() as db:
        products = db.query(Product).all()
        assert len(products) == 120
        assert {p.scraper_run_id for p in products} == {result.run_id}
        assert {p.category_name for p in products} == {"Engine Assembly"}


def test_runs_under_existing_run_id(catalog, build_engine, session_factory, lkq_scraper):
    with session_factory() as db:
        run = ScraperRun(id=uuid.uuid4(), scraper_id=lkq_scraper.id, status="pending")
        db.add(run)
        db.commit()
        run_id = run.id

    result = build_engine([ENGINES]).run(run_id)

    assert result.run_id == run_id
    assert load_run(session_factory, run_id).status == "completed"


def test_rejected_category_completes_with_error(catalog, build_engine, session_factory):
    catalog.failures[("engines", 0)] = [400]

    result = build_engine([ENGINES]).run()

    assert result.status == "success"
    stats = result.statistics
    assert stats["categories"]["errors"] == 1
    assert "simulated 400" in stats["category_errors"]["Engine Assembly"]
    assert stats["products"]["scraped"] == 0
    assert stats["products"]["saved"] == 0
    assert stats["pages"]["errors"] == 1
    assert catalog.skips() == [0]
    assert load_run(session_factory, result.run_id).status == "completed"


def test_rejection_mid_category_keeps_earlier_pages(catalog, build_engine, session_factory):
    catalog.items["engines"] = make_items(120)
    catalog.failures[("engines", 50)] = [400]

    result = build_engine([ENGINES]).run()

    assert result.statistics["products"]["saved"] == 50
    assert result.statistics["categories"]["errors"] == 1
    assert product_count(session_factory) == 50


def test_failing_category_does_not_stop_the_next(catalog, build_engine, session_factory):
    catalog.items["engines"] = make_items(30, prefix="E")
    catalog.items["transmissions"] = make_items(500, prefix="T")
    catalog.failures.update({("transmissions", skip): [500] * 3 for skip in (0, 50, 100)})

    result = build_engine([TRANSMISSIONS, ENGINES], max_pages=3).run()

    assert result.status == "success"
    stats = result.statistics
    assert stats["skipped_ranges"] == {"Transmission Assembly": [[0, 49], [50, 99], [100, 149]]}
    assert stats["pages"] == {"processed": 1, "errors": 3}
    assert stats["categories"]["processed"] == 2
    assert stats["products"]["saved"] == 30
    assert product_count(session_factory) == 30


def test_unparsable_items_are_counted(catalog, build_engine):
    items = make_items(3)
    items.append({"description": "no sku"})
    items.append("not an object")
    catalog.items["engines"] = items

    result = build_engine([ENGINES]).run()

    assert result.statistics["products"] == {"scraped": 5, "saved": 3, "duplicates": 0, "errors": 2}


def test_fatal_error_marks_run_error(catalog, build_engine, session_factory):
    catalog.items["engines"] = make_items(10)

    result = build_engine([ENGINES], tracker_cls=ExplodingTracker).run()

    assert result.status == "error"
    assert "lost connection" in result.error
    run = load_run(session_factory, result.run_id)
    assert run.status == "error"
    assert run.error_message == "lost connection to database"
    assert run.statistics["error"]["type"] == "RuntimeError"
    assert run.statistics["products"]["saved"] == 10


def test_product_budget_limits_the_run(catalog, build_engine):
    catalog.items["engines"] = make_items(500, prefix="E")
    catalog.items["transmissions"] = make_items(500, prefix="T")

    result = build_engine([ENGINES, TRANSMISSIONS], max_products=80).run()

    assert catalog.skips("engines") == [0, 50]
    assert catalog.skips("transmissions") == []
    assert result.statistics["products"]["scraped"] == 100


def test_rerun_updates_products_in_place(catalog, build_engine, session_factory):
    catalog.items["engines"] = make_items(60)

    first = build_engine([ENGINES]).run()
    second = build_engine([ENGINES]).run()

    assert first.run_id != second.run_id
    assert second.statistics["products"]["saved"] == 60
    with session_factory() as db:
        products = db.query(Product).all()
        assert len(products) == 60
        assert {p.scraper_run_id for p in products} == {second.run_id}


def test_requests_rotate_proxies(catalog, build_engine, rotator):
    catalog.items["engines"] = make_items(120)

    build_engine([ENGINES]).run()

    assert catalog.request_proxies == [rotator.by_index(i).url for i in range(3)]


def test_progress_pushed_after_every_page(catalog, build_engine, session_factory):
    catalog.items["engines"] = make_items(120)
    engine = build_engine([ENGINES], tracker_cls=RecordingTracker)

    result = engine.run()

    assert engine.tracker.pushes == [(50, 1), (100, 2), (120, 3), (120, 3)]
    assert load_run(session_factory, result.run_id).statistics["pages"] == {"processed": 3, "errors": 0}
