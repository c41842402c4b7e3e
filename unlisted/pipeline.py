"""Refresh orchestration: fetch -> aggregate -> persist -> diff -> publish.

``DatasetSwap`` owns the live Dataset reference. A refresh builds a whole
new Dataset in isolation and only then replaces the reference, so readers
always hold either the old snapshot or the new one, never a mix.
"""

import itertools
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from enum import Enum
from typing import Iterable, List, Optional, Sequence

from unlisted.aggregator import ProductAggregator
from unlisted.cache import PersistentCache, create_blob_store
from unlisted.config import (
    BASE_URL,
    CACHE_BACKEND,
    CATEGORY_LIST,
    DATA_DIR,
    MAX_WORKERS,
    PRODUCTS_CACHE_NAME,
    SALE_CATEGORY,
    SALES_CACHE_NAME,
)
from unlisted.diff import build_sales_view
from unlisted.errors import (
    CycleFailed,
    FetchFailure,
    ParseFailure,
    PersistenceFailure,
    StateConflict,
)
from unlisted.fetcher import CategoryFetcher, Fetcher, HttpFetcher
from unlisted.logging_config import get_logger, log_pipeline_event
from unlisted.models import Dataset, Product

__all__ = ["RefreshState", "RefreshCycle", "DatasetSwap", "build_dataset", "create_swap"]

logger = get_logger("pipeline")

# Failures that abort a cycle and are reported as CycleFailed
CYCLE_ERRORS = (FetchFailure, ParseFailure, PersistenceFailure, StateConflict)


class RefreshState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    AGGREGATING = "aggregating"
    PERSISTING = "persisting"
    DIFFING = "diffing"
    PUBLISHING = "publishing"


class RefreshCycle:
    """State of one refresh cycle, with the transitions it went through."""

    def __init__(self, number: int):
        self.number = number
        self.state = RefreshState.IDLE
        self.transitions: List[RefreshState] = [RefreshState.IDLE]

    def advance(self, state: RefreshState) -> None:
        logger.debug(f"Cycle {self.number}: {self.state.value} -> {state.value}")
        self.state = state
        self.transitions.append(state)

    @property
    def published(self) -> bool:
        return RefreshState.PUBLISHING in self.transitions


def build_dataset(
    products: Iterable[Product],
    sale_category: Iterable[Product],
    cycle: int,
    source: str = "refresh",
) -> Dataset:
    """Run the sale diff and freeze the result into a Dataset."""
    products = tuple(products)
    sale_category = tuple(sale_category)
    complete_sales, unlisted_sales = build_sales_view(products, sale_category)
    return Dataset(
        products=products,
        sale_category=sale_category,
        complete_sales=tuple(complete_sales),
        unlisted_sales=tuple(unlisted_sales),
        cycle=cycle,
        source=source,
    )


class DatasetSwap:
    """Builds datasets and publishes them as the live one.

    Overlapping refreshes are allowed; each has its own aggregator and
    working data. Publishing never goes backwards: a cycle that finishes
    after a newer dataset went live is dropped.
    """

    def __init__(
        self,
        category_fetcher: CategoryFetcher,
        cache: PersistentCache,
        categories: Sequence[str] = CATEGORY_LIST,
        sale_category: str = SALE_CATEGORY,
        max_workers: int = MAX_WORKERS,
    ):
        self.category_fetcher = category_fetcher
        self.cache = cache
        self.categories = list(categories)
        self.sale_category = sale_category
        self.max_workers = max(1, max_workers)

        self._live: Optional[Dataset] = None
        self._publish_lock = threading.Lock()
        self._commit_lock = threading.Lock()
        self._cycle_numbers = itertools.count(1)
        self._cycle_lock = threading.Lock()

        self.last_cycle: Optional[RefreshCycle] = None
        self.last_error: Optional[CycleFailed] = None

    @property
    def live(self) -> Optional[Dataset]:
        """The currently published dataset, or None before the first publish."""
        return self._live

    def _new_cycle(self) -> RefreshCycle:
        with self._cycle_lock:
            cycle = RefreshCycle(next(self._cycle_numbers))
        self.last_cycle = cycle
        return cycle

    def publish(self, dataset: Dataset) -> bool:
        """Make ``dataset`` the live one unless a newer cycle is already live."""
        with self._publish_lock:
            current = self._live
            if current is not None and current.cycle > dataset.cycle:
                logger.warning(
                    f"Dropping dataset from cycle {dataset.cycle}: cycle {current.cycle} is already live"
                )
                return False
            self._live = dataset

        log_pipeline_event("dataset_published", {
            "message": f"Published dataset from cycle {dataset.cycle} ({dataset.source})",
            **dataset.summary(),
        })
        return True

    def _fetch_all(self, aggregator: ProductAggregator, cycle: RefreshCycle) -> None:
        jobs = [(self.sale_category, True)] + [(category, False) for category in self.categories]
        executor = ThreadPoolExecutor(
            max_workers=min(self.max_workers, len(jobs)),
            thread_name_prefix=f"refresh-{cycle.number}",
        )
        try:
            futures = {
                executor.submit(self.category_fetcher.run, category, is_sale, aggregator): category
                for category, is_sale in jobs
            }
            for future in as_completed(futures):
                # First failure aborts the cycle; pending fetches are cancelled below
                future.result()
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    def _is_stale(self, cycle: RefreshCycle) -> bool:
        current = self._live
        return current is not None and current.cycle > cycle.number

    def refresh(self) -> Dataset:
        """Run one full refresh cycle and publish its dataset.

        Persisting and publishing run under one commit lock, so snapshots are
        written in cycle order and a cycle that is already stale never
        overwrites them.

        Raises:
            CycleFailed: If any stage failed. The live dataset and the
                persisted snapshots are left as they were.
        """
        cycle = self._new_cycle()
        log_pipeline_event("cycle_started", {
            "message": f"Refresh cycle {cycle.number} started",
            "cycle": cycle.number,
            "categories": len(self.categories),
        })

        try:
            cycle.advance(RefreshState.FETCHING)
            aggregator = ProductAggregator(len(self.categories), cycle=cycle.number)
            self._fetch_all(aggregator, cycle)

            cycle.advance(RefreshState.AGGREGATING)
            products, sale_products = aggregator.snapshot()

            with self._commit_lock:
                cycle.advance(RefreshState.PERSISTING)
                if self._is_stale(cycle):
                    logger.warning(f"Cycle {cycle.number} is stale, not persisting its snapshots")
                else:
                    self.cache.save_all({
                        PRODUCTS_CACHE_NAME: products,
                        SALES_CACHE_NAME: sale_products,
                    })

                cycle.advance(RefreshState.DIFFING)
                dataset = build_dataset(products, sale_products, cycle.number, source="refresh")

                cycle.advance(RefreshState.PUBLISHING)
                self.publish(dataset)
        except CYCLE_ERRORS as e:
            raise self._fail(cycle, e) from e
        except Exception as e:
            logger.exception(f"Unexpected error in refresh cycle {cycle.number}")
            raise self._fail(cycle, e) from e
        finally:
            cycle.advance(RefreshState.IDLE)

        self.last_error = None
        return dataset

    def _fail(self, cycle: RefreshCycle, error: Exception) -> CycleFailed:
        stage = cycle.state.value
        failure = CycleFailed(
            f"Refresh cycle {cycle.number} failed while {stage}: {error}",
            stage=stage,
            cycle=cycle.number,
        )
        self.last_error = failure
        log_pipeline_event("cycle_failed", {
            "message": str(failure),
            "cycle": cycle.number,
            "stage": stage,
            "error_type": type(error).__name__,
        }, level=logging.ERROR)
        return failure

    def has_cached_snapshots(self) -> bool:
        return self.cache.exists(PRODUCTS_CACHE_NAME) and self.cache.exists(SALES_CACHE_NAME)

    def load_from_cache(self) -> Dataset:
        """Build and publish a dataset from the last persisted snapshots.

        Raises:
            PersistenceFailure: If a snapshot is missing or unreadable
        """
        if not self.has_cached_snapshots():
            raise PersistenceFailure("No cached snapshots to load")

        # Both snapshots must come from the same refresh cycle
        with self._commit_lock:
            cycle = self._new_cycle()
            products = self.cache.load(PRODUCTS_CACHE_NAME)
            sale_products = self.cache.load(SALES_CACHE_NAME)
            dataset = build_dataset(products, sale_products, cycle.number, source="cache")
            self.publish(dataset)

        log_pipeline_event("cache_loaded", {
            "message": f"Loaded {len(products)} products and {len(sale_products)} sale products from cache",
            "cycle": cycle.number,
        })
        return dataset

    def warm_start(self) -> bool:
        """Publish the cached dataset if both snapshots exist.

        Returns:
            True if a cached dataset was published
        """
        if not self.has_cached_snapshots():
            logger.info("Initial loading: cached snapshots not found, a live refresh is needed")
            return False
        self.load_from_cache()
        return True


def create_swap(
    cache_backend: str = CACHE_BACKEND,
    data_dir: str = DATA_DIR,
    base_url: str = BASE_URL,
    fetcher: Optional[Fetcher] = None,
    categories: Sequence[str] = CATEGORY_LIST,
) -> DatasetSwap:
    """Wire a DatasetSwap with the configured fetcher and snapshot store."""
    cache = PersistentCache(create_blob_store(cache_backend, data_dir))
    category_fetcher = CategoryFetcher(fetcher or HttpFetcher(), base_url=base_url)
    return DatasetSwap(category_fetcher, cache, categories=categories)
