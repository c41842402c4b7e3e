"""Category catalog fetching.

``HttpFetcher`` is the network primitive (``fetch(url) -> bytes``).
``CategoryFetcher`` turns one category id into one fetch, parses the body
and hands the catalog to a ``ProductAggregator``.
"""

import json
import random
import time
from typing import Any, Dict, Optional, Protocol

import requests  # type: ignore[import-untyped]

from unlisted.aggregator import ProductAggregator
from unlisted.config import (
    BASE_URL,
    HEADERS,
    MAX_RETRIES,
    MAX_RETRY_BACKOFF,
    REQUEST_TIMEOUT,
    RETRY_BACKOFF_BASE,
    RETRY_STATUS_CODES,
    category_url,
)
from unlisted.errors import FetchFailure, ParseFailure
from unlisted.logging_config import get_logger

__all__ = [
    "Fetcher",
    "HttpFetcher",
    "CategoryFetcher",
    "create_session",
    "parse_catalog",
]

logger = get_logger("fetcher")


class Fetcher(Protocol):
    def fetch(self, url: str) -> bytes:
        ...


def create_session() -> requests.Session:
    """Create a requests Session with connection pooling and proper headers."""
    session = requests.Session()
    session.headers.update(HEADERS)
    session.headers.setdefault("Accept-Encoding", "gzip, deflate")
    return session


class HttpFetcher:
    """HTTP GET with exponential backoff on transient failures.

    Every failure that survives the retries is raised as FetchFailure.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: float = REQUEST_TIMEOUT,
        max_retries: int = MAX_RETRIES,
        backoff_base: float = RETRY_BACKOFF_BASE,
        sleep=time.sleep,
    ):
        self.session = session or create_session()
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self._sleep = sleep

    def _backoff(self, attempt: int) -> float:
        return min(self.backoff_base ** attempt, MAX_RETRY_BACKOFF) + random.uniform(0, 1)

    def fetch(self, url: str) -> bytes:
        """Fetch a URL and return the raw body.

        Raises:
            FetchFailure: On connection errors, timeouts, or a bad status
                after all retries
        """
        last_exception: Optional[Exception] = None

        for attempt in range(self.max_retries + 1):
            try:
                resp = self.session.get(url, timeout=self.timeout)

                if resp.status_code in RETRY_STATUS_CODES and attempt < self.max_retries:
                    backoff = self._backoff(attempt)
                    logger.warning(
                        f"Received {resp.status_code} from {url}, backing off {backoff:.1f}s "
                        f"(attempt {attempt + 1}/{self.max_retries})"
                    )
                    self._sleep(backoff)
                    continue

                resp.raise_for_status()
                return bytes(resp.content)

            except requests.exceptions.HTTPError as e:
                status_code = e.response.status_code if e.response is not None else "unknown"
                logger.error(f"HTTP error fetching {url}: {e}")
                raise FetchFailure(f"HTTP Error {status_code} fetching {url}", url=url) from e

            except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
                last_exception = e
                if attempt < self.max_retries:
                    backoff = self._backoff(attempt)
                    logger.warning(
                        f"{type(e).__name__} fetching {url}, backing off {backoff:.1f}s "
                        f"(attempt {attempt + 1}/{self.max_retries})"
                    )
                    self._sleep(backoff)
                    continue
                logger.error(f"Giving up on {url}: {e}")
                raise FetchFailure(f"Failed to fetch {url}: {e}", url=url) from e

            except requests.exceptions.RequestException as e:
                logger.error(f"Request error fetching {url}: {e}")
                raise FetchFailure(f"Failed to fetch {url}: {e}", url=url) from e

        raise FetchFailure(
            f"Failed to fetch {url} after {self.max_retries} retries", url=url
        ) from last_exception


def parse_catalog(body: bytes, category: str) -> Dict[str, Any]:
    """Parse a category response body into catalog data.

    Raises:
        ParseFailure: If the body is not JSON or lacks ``sub_categories``
    """
    try:
        data = json.loads(body)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ParseFailure(
            f"Response for {category} is not valid JSON: {e}", category=category
        ) from e

    if not isinstance(data, dict):
        raise ParseFailure(f"Response for {category} is not a JSON object", category=category)

    sub_categories = data.get("sub_categories", [])
    if not isinstance(sub_categories, list):
        raise ParseFailure(f"Response for {category} has malformed sub_categories", category=category)

    for sub_category in sub_categories:
        if not isinstance(sub_category, dict) or not isinstance(sub_category.get("products", []), list):
            raise ParseFailure(f"Response for {category} has a malformed sub-category", category=category)

    return data


class CategoryFetcher:
    """Fetch one category catalog and feed it to an aggregator."""

    def __init__(self, fetcher: Fetcher, base_url: str = BASE_URL):
        self.fetcher = fetcher
        self.base_url = base_url

    def url_for(self, category: str) -> str:
        return category_url(category, self.base_url)

    def fetch_category(self, category: str) -> Dict[str, Any]:
        """Fetch and parse a single category without ingesting it."""
        url = self.url_for(category)
        logger.info(f"Loading URL: {url}")
        body = self.fetcher.fetch(url)
        return parse_catalog(body, category)

    def run(self, category: str, is_sale_category: bool, aggregator: ProductAggregator) -> bool:
        """Fetch, parse and ingest one category.

        Returns:
            True if this ingest completed the aggregator's non-sale categories
        """
        catalog = self.fetch_category(category)
        return aggregator.ingest(catalog, category, is_sale_category)
