"""Shared test fixtures and utilities for the web test suite."""

from typing import Dict

import pytest
import redis

from unlisted.cache import PersistentCache
from unlisted.fetcher import CategoryFetcher
from unlisted.pipeline import DatasetSwap
from unlisted.read_api import ReadAPI
from unlisted.tests.conftest import BASE_URL, SALE, FakeFetcher, MemoryBlobStore, make_catalog, make_product
from web.app import create_app
from web.rate_limit import RateLimiter


class FakeRedis:
    """The handful of Redis commands the rate limiter uses, kept in a dict."""

    def __init__(self):
        self.counts: Dict[str, int] = {}
        self.ttls: Dict[str, int] = {}
        self.down = False

    def _check(self):
        if self.down:
            raise redis.ConnectionError("Connection refused")

    def incr(self, key):
        self._check()
        self.counts[key] = self.counts.get(key, 0) + 1
        return self.counts[key]

    def ttl(self, key):
        self._check()
        if key not in self.counts:
            return -2
        return self.ttls.get(key, -1)

    def expire(self, key, seconds):
        self._check()
        self.ttls[key] = int(seconds)
        return True

    def pipeline(self):
        return FakePipeline(self)


class FakePipeline:
    def __init__(self, client):
        self.client = client
        self.commands = []

    def incr(self, key):
        self.commands.append(("incr", key))
        return self

    def ttl(self, key):
        self.commands.append(("ttl", key))
        return self

    def execute(self):
        results = [getattr(self.client, name)(key) for name, key in self.commands]
        self.commands = []
        return results


@pytest.fixture
def catalogs():
    return {
        "mens-pants": make_catalog((10, "Chinos", [
            make_product(1, price=100, special_price=80, name="Washed Chino"),
            make_product(2, price=50, special_price=0, name="Stretch Chino"),
            make_product(3, price=120, special_price=60, name="Cord"),
        ])),
        SALE: make_catalog((99, "Sale", [
            make_product(3, price=120, special_price=60, name="Cord"),
        ])),
    }


@pytest.fixture
def fetcher(catalogs):
    fake = FakeFetcher()
    for category, catalog in catalogs.items():
        fake.set_category(category, catalog)
    return fake


@pytest.fixture
def swap(fetcher):
    return DatasetSwap(
        CategoryFetcher(fetcher, base_url=BASE_URL),
        PersistentCache(MemoryBlobStore()),
        categories=["mens-pants"],
        sale_category=SALE,
        max_workers=2,
    )


@pytest.fixture
def read_api(swap):
    return ReadAPI(swap, wait_seconds=0.05)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def rate_limiter(fake_redis):
    return RateLimiter(fake_redis, max_requests=20, window=60)


@pytest.fixture
def app(read_api, rate_limiter):
    app = create_app(read_api=read_api, rate_limiter=rate_limiter)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    """Create Flask test client."""
    with app.test_client() as test_client:
        yield test_client
