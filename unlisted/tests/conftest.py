"""Shared test fixtures for the pipeline test suite."""

import json
import threading
from typing import Any, Dict, List, Optional, Set, Union

import pytest

from unlisted.cache import PersistentCache
from unlisted.config import category_url
from unlisted.errors import FetchFailure
from unlisted.fetcher import CategoryFetcher
from unlisted.pipeline import DatasetSwap

BASE_URL = "http://retailer.test/b/"
SALE = "sale-for-men"


def make_product(entity_id, price=100, special_price=0, **extra) -> Dict[str, Any]:
    return {"entity_id": entity_id, "price": price, "special_price": special_price, **extra}


def make_catalog(*sub_categories) -> Dict[str, Any]:
    """Build a catalog from (sub_id, sub_name, [products]) tuples."""
    return {
        "sub_categories": [
            {"id": sub_id, "name": name, "products": list(products)}
            for sub_id, name, products in sub_categories
        ]
    }


class FakeFetcher:
    """In-memory fetch collaborator keyed by URL.

    Values may be bytes, a JSON-able object, or an exception to raise.
    """

    def __init__(self, responses: Optional[Dict[str, Any]] = None):
        self.responses: Dict[str, Any] = dict(responses or {})
        self.calls: List[str] = []
        self._lock = threading.Lock()

    def set_category(self, category: str, value: Union[bytes, Dict, Exception]) -> None:
        self.responses[category_url(category, BASE_URL)] = value

    def fetch(self, url: str) -> bytes:
        with self._lock:
            self.calls.append(url)
        if url not in self.responses:
            raise FetchFailure(f"HTTP Error 404 fetching {url}", url=url)
        value = self.responses[url]
        if isinstance(value, Exception):
            raise value
        if isinstance(value, bytes):
            return value
        return json.dumps(value).encode("utf-8")


class MemoryBlobStore:
    """Dict-backed blob store."""

    def __init__(self):
        self.blobs: Dict[str, bytes] = {}
        self.fail_writes = False
        self.fail_keys: Set[str] = set()

    def write(self, key: str, data: bytes) -> None:
        if self.fail_writes or key in self.fail_keys:
            raise OSError("disk full")
        self.blobs[key] = data

    def read(self, key: str) -> bytes:
        if key not in self.blobs:
            raise FileNotFoundError(key)
        return self.blobs[key]

    def exists(self, key: str) -> bool:
        return key in self.blobs

    def delete(self, key: str) -> None:
        self.blobs.pop(key, None)


@pytest.fixture
def fake_fetcher():
    return FakeFetcher()


@pytest.fixture
def blob_store():
    return MemoryBlobStore()


@pytest.fixture
def cache(blob_store):
    return PersistentCache(blob_store)


@pytest.fixture
def catalogs():
    """Two regular categories plus the sale category."""
    return {
        "mens-pants": make_catalog(
            (10, "Chinos", [
                make_product(1, price=100, special_price=80, name="Washed Chino"),
                make_product(2, price=50, special_price=0, name="Stretch Chino"),
            ]),
            (11, "Corduroy", [
                make_product(3, price=120, special_price=60, name="Cord"),
            ]),
        ),
        "mens-shirts": make_catalog(
            (20, "Oxfords", [
                make_product(4, price=80, special_price=72, name="Oxford"),
                make_product(5, price=90, special_price=0, name="Flannel"),
            ]),
        ),
        SALE: make_catalog(
            (99, "Sale Pants", [
                make_product(3, price=120, special_price=60, name="Cord"),
                make_product(42, price=40, special_price=20, name="Sale Only Sock"),
            ]),
        ),
    }


@pytest.fixture
def loaded_fetcher(fake_fetcher, catalogs):
    for category, catalog in catalogs.items():
        fake_fetcher.set_category(category, catalog)
    return fake_fetcher


@pytest.fixture
def make_swap(cache):
    def _make(fetcher, categories=("mens-pants", "mens-shirts"), store_cache=None):
        return DatasetSwap(
            CategoryFetcher(fetcher, base_url=BASE_URL),
            store_cache or cache,
            categories=list(categories),
            sale_category=SALE,
            max_workers=4,
        )
    return _make


@pytest.fixture
def swap(make_swap, loaded_fetcher):
    return make_swap(loaded_fetcher)


@pytest.fixture
def product_factory():
    return make_product


@pytest.fixture
def catalog_factory():
    return make_catalog
