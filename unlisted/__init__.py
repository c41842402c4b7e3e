"""Unlisted sales tracker: finds discounted products the retailer leaves
out of its own sale category."""

__version__ = "0.1.0"

from unlisted.config import BASE_URL, CATEGORY_LIST, SALE_CATEGORY
from unlisted.diff import compute_on_sale, compute_unlisted
from unlisted.errors import (
    CycleFailed,
    DataNotReady,
    FetchFailure,
    LoadInProgress,
    ParseFailure,
    PersistenceFailure,
    StateConflict,
    UnlistedError,
)
from unlisted.models import CategoryLink, Dataset, Product
from unlisted.pipeline import DatasetSwap, create_swap
from unlisted.read_api import ReadAPI

__all__ = [
    # Version
    "__version__",
    # Config
    "BASE_URL",
    "CATEGORY_LIST",
    "SALE_CATEGORY",
    # Models
    "CategoryLink",
    "Dataset",
    "Product",
    # Errors
    "UnlistedError",
    "FetchFailure",
    "ParseFailure",
    "PersistenceFailure",
    "StateConflict",
    "DataNotReady",
    "LoadInProgress",
    "CycleFailed",
    # Core
    "compute_on_sale",
    "compute_unlisted",
    "DatasetSwap",
    "create_swap",
    "ReadAPI",
]
