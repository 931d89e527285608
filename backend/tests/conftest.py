import os

# Must be set before partscraper.config is imported anywhere
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("PROXY_ENABLED", "false")
os.environ.setdefault("PAGE_DELAY", "0")
os.environ.setdefault("CELERY_TASK_ALWAYS_EAGER", "true")

import httpx
import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

import partscraper.models  # noqa: F401
import partscraper.scrapers  # noqa: F401
from partscraper.models.base import Base
from partscraper.models.scraper import Scraper
from partscraper.services.fetch_client import FetchClient
from partscraper.services.proxy_rotator import ProxyCredential, ProxyRotator


@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite with working SAVEPOINTs (pysqlite transaction recipe)."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def lkq_scraper(session_factory):
    """A persisted 'lkq' scraper row."""
    with session_factory() as db:
        scraper = Scraper(name="lkq", description="LKQ Online Auto Parts Scraper", enabled=True, config={})
        db.add(scraper)
        db.commit()
        db.refresh(scraper)
        db.expunge(scraper)
    return scraper


@pytest.fixture
def rotator():
    credentials = [ProxyCredential(f"user{i}", f"secret{i}") for i in range(3)]
    return ProxyRotator(credentials, host="pr.oxylabs.io:7777", country="us")


def make_item(number, **overrides):
    item = {
        "id": f"id-{number}",
        "number": f"SKU-{number}",
        "description": f"Part {number}",
        "descriptionRetail": f"Retail part {number}",
        "price": "125.50",
        "listPrice": "150",
        "corePrice": None,
        "mileage": "84000",
        "category": "Engine Compartment",
        "yardCity": "Houston",
        "yardState": "TX",
        "sourceVehicleYear": "2012",
        "sourceVehicleMake": "Toyota",
        "sourceVehicleModel": "Camry",
        "_salvageSourceVehicle": '{"vin": "4T1BF1FK5CU000000"}',
        "fitments": '[{"year": 2012, "make": "Toyota"}]',
        "images": [f"https://img.example.com/{number}.jpg"],
        "freeShippingEligible": "true",
        "isReman": False,
    }
    item.update(overrides)
    return item


def make_items(count, start=0, prefix=""):
    return [make_item(f"{prefix}{i}") for i in range(start, start + count)]


class FakeCatalog:
    """Serves skip/take pages per category; records every request.

    items: {category_param: [item, ...]}
    failures: {(category_param, skip): [status_code, ...]} consumed in order
    """

    def __init__(self, items=None, failures=None):
        self.items = items or {}
        self.failures = {key: list(codes) for key, codes in (failures or {}).items()}
        self.requests: list[httpx.Request] = []
        self.request_proxies: list[str | None] = []

    def handler(self, request: httpx.Request, proxy_url: str | None = None) -> httpx.Response:
        self.requests.append(request)
        self.request_proxies.append(proxy_url)
        category = request.url.params.get("category", "")
        skip = int(request.url.params.get("skip", 0))
        take = int(request.url.params.get("take", 50))

        pending = self.failures.get((category, skip))
        if pending:
            status = pending.pop(0)
            return httpx.Response(status, json={"message": f"simulated {status}"})

        page = self.items.get(category, [])[skip:skip + take]
        return httpx.Response(200, json={"data": page})

    def transport_factory(self, proxy):
        proxy_url = proxy.url if proxy else None
        return httpx.MockTransport(lambda request: self.handler(request, proxy_url))

    def skips(self, category=None):
        return [
            int(r.url.params.get("skip", 0))
            for r in self.requests
            if category is None or r.url.params.get("category") == category
        ]


@pytest.fixture
def catalog():
    return FakeCatalog()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def fetch_client(catalog, rotator, sleeps):
    client = FetchClient(
        rotator,
        max_attempts=3,
        transport_factory=catalog.transport_factory,
        sleep=sleeps.append,
    )
    yield client
    client.close()
