"""Configuration and constants for the sales tracker."""

import os
from pathlib import Path
from typing import FrozenSet, List

from dotenv import load_dotenv

__all__ = [
    "BASE_URL",
    "CATEGORY_LIST",
    "SALE_CATEGORY",
    "HEADERS",
    "REQUEST_TIMEOUT",
    "MAX_RETRIES",
    "RETRY_BACKOFF_BASE",
    "MAX_RETRY_BACKOFF",
    "RETRY_STATUS_CODES",
    "MAX_WORKERS",
    "DATA_DIR",
    "PRODUCTS_CACHE_NAME",
    "SALES_CACHE_NAME",
    "CACHE_FILENAMES",
    "CACHE_BACKEND",
    "DB_PATH",
    "REFRESH_INTERVAL_SECONDS",
    "ON_DEMAND_WAIT_SECONDS",
    "category_url",
]

_PROJECT_ROOT = Path(__file__).parent.parent
load_dotenv(dotenv_path=_PROJECT_ROOT / ".env")

BASE_URL = os.getenv("UNLISTED_BASE_URL", "http://www.bonobos.com/b/")

# The retailer has no endpoint listing its categories, so the list is fixed
CATEGORY_LIST: List[str] = [
    "mens-pants",
    "mens-suits",
    "dress-shirts-for-men",
    "casual-shirts-for-men",
    "mens-jeans",
    "mens-sweaters",
    "tees-knits-and-polos-for-men",
    "outerwear-for-men",
    "mens-shorts",
    "mens-swimwear",
    "accessories-for-men",
    "bags-for-men",
    "mens-shoes",
    "slim",
]

SALE_CATEGORY = "sale-for-men"

HEADERS = {
    "User-Agent": "unlisted-sales tracker (educational, hourly polling)",
    "Accept": "application/json",
}

# Request timeout (seconds)
REQUEST_TIMEOUT = int(os.getenv("UNLISTED_REQUEST_TIMEOUT", "15"))

# Retry settings with exponential backoff
MAX_RETRIES = int(os.getenv("UNLISTED_MAX_RETRIES", "3"))
RETRY_BACKOFF_BASE = 2.0
MAX_RETRY_BACKOFF = 30.0
RETRY_STATUS_CODES: FrozenSet[int] = frozenset({429, 500, 502, 503, 504})

# Concurrent category fetches per refresh cycle
MAX_WORKERS = int(os.getenv("UNLISTED_MAX_WORKERS", str(len(CATEGORY_LIST) + 1)))

# Snapshot storage
DATA_DIR = os.getenv("UNLISTED_DATA_DIR", str(_PROJECT_ROOT / "data"))
PRODUCTS_CACHE_NAME = "products"
SALES_CACHE_NAME = "sales"
CACHE_FILENAMES = {
    PRODUCTS_CACHE_NAME: "data.json",
    SALES_CACHE_NAME: "sales.json",
}
CACHE_BACKEND = os.getenv("UNLISTED_CACHE_BACKEND", "file")  # "file" or "sqlite"
DB_PATH = os.getenv("UNLISTED_DB_PATH", str(Path(DATA_DIR) / "snapshots.db"))

# Data is refreshed from the retailer once an hour
REFRESH_INTERVAL_SECONDS = float(os.getenv("UNLISTED_REFRESH_INTERVAL", "3600"))

# How long a reader waits on someone else's on-demand load before giving up
ON_DEMAND_WAIT_SECONDS = float(os.getenv("UNLISTED_ON_DEMAND_WAIT", "30"))


def category_url(category: str, base_url: str = BASE_URL) -> str:
    """Build the catalog JSON URL for a category."""
    return f"{base_url}{category}.json"
