"""Read operations over the live dataset.

Readers never lock: they take whatever Dataset is live and serialize it.
Only when nothing has been published yet does a read fall back to a
synchronous on-demand load (cached snapshots first, else a full refresh).
"""

import threading
from typing import Any, Dict, List

from unlisted.config import ON_DEMAND_WAIT_SECONDS
from unlisted.errors import CycleFailed, LoadInProgress, PersistenceFailure, StateConflict
from unlisted.logging_config import get_logger
from unlisted.models import Dataset
from unlisted.pipeline import DatasetSwap

__all__ = ["ReadAPI"]

logger = get_logger("read_api")


class ReadAPI:
    """Public read surface handed to the web layer.

    Args:
        swap: The orchestrator owning the live dataset
        wait_seconds: How long a reader waits for another caller's
            on-demand load before getting LoadInProgress
    """

    def __init__(self, swap: DatasetSwap, wait_seconds: float = ON_DEMAND_WAIT_SECONDS):
        self.swap = swap
        self.wait_seconds = wait_seconds
        self._load_lock = threading.Lock()

    def get_unlisted_sales(self) -> List[Dict[str, Any]]:
        """Discounted products missing from the sale category, least discounted first."""
        return [p.to_dict() for p in self._dataset().unlisted_sales]

    def get_full_sales_view(self) -> List[Dict[str, Any]]:
        """Every discounted product, listed in the sale category or not."""
        return [p.to_dict() for p in self._dataset().complete_sales]

    def get_status(self) -> Dict[str, Any]:
        dataset = self.swap.live
        status: Dict[str, Any] = {
            "loaded": dataset is not None,
            "loading": self._load_lock.locked(),
            "last_error": str(self.swap.last_error) if self.swap.last_error else None,
        }
        if dataset is not None:
            status.update(dataset.summary())
        return status

    def _dataset(self) -> Dataset:
        dataset = self.swap.live
        if dataset is not None:
            return dataset

        logger.warning("Data not loaded yet, trying to force load it")
        try:
            return self.force_load()
        except StateConflict:
            # Published by a refresh between the check above and the load
            return self.swap.live

    def force_load(self) -> Dataset:
        """Load data synchronously when nothing has been published.

        Raises:
            StateConflict: If a dataset is already live
            LoadInProgress: If another caller's load did not finish in time
            CycleFailed: If the cache read or the refresh failed
        """
        if self.swap.live is not None:
            raise StateConflict("Data is already loaded; on-demand load not needed")

        if not self._load_lock.acquire(timeout=self.wait_seconds):
            raise LoadInProgress(
                f"Data is still loading (waited {self.wait_seconds:.0f}s), try again later"
            )
        try:
            # Another caller may have finished loading while we waited
            if self.swap.live is not None:
                return self.swap.live

            try:
                if self.swap.has_cached_snapshots():
                    dataset = self.swap.load_from_cache()
                else:
                    logger.info("No cached snapshots, running a full refresh on demand")
                    dataset = self.swap.refresh()
            except PersistenceFailure as e:
                raise CycleFailed(f"On-demand load from cache failed: {e}", stage="loading_cache") from e

            return self.swap.live or dataset
        finally:
            self._load_lock.release()
