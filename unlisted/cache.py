"""Durable snapshots of aggregated product collections.

A snapshot is a JSON array of product records stored under a name
(``products`` or ``sales``) in a key/blob store. Two stores are provided:
plain files in a data directory, and a single SQLite table.
"""

import json
import os
import sqlite3
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Generator, Iterable, List, Optional, Protocol

from unlisted.config import CACHE_BACKEND, CACHE_FILENAMES, DATA_DIR, DB_PATH
from unlisted.errors import ParseFailure, PersistenceFailure
from unlisted.logging_config import get_logger
from unlisted.models import Product

__all__ = [
    "BlobStore",
    "FileBlobStore",
    "SQLiteBlobStore",
    "PersistentCache",
    "create_blob_store",
]

logger = get_logger("cache")


class BlobStore(Protocol):
    def write(self, key: str, data: bytes) -> None:
        ...

    def read(self, key: str) -> bytes:
        ...

    def exists(self, key: str) -> bool:
        ...

    def delete(self, key: str) -> None:
        ...


class FileBlobStore:
    """One file per key inside ``data_dir``.

    Writes land in a temp file that is renamed over the target, so readers
    never see a partially written snapshot.
    """

    def __init__(self, data_dir: str = DATA_DIR, filenames: Optional[Dict[str, str]] = None):
        self.data_dir = Path(data_dir)
        self.filenames = dict(CACHE_FILENAMES if filenames is None else filenames)

    def path_for(self, key: str) -> Path:
        return self.data_dir / self.filenames.get(key, f"{key}.json")

    def write(self, key: str, data: bytes) -> None:
        path = self.path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def read(self, key: str) -> bytes:
        return self.path_for(key).read_bytes()

    def exists(self, key: str) -> bool:
        return self.path_for(key).is_file()

    def delete(self, key: str) -> None:
        self.path_for(key).unlink(missing_ok=True)


class SQLiteBlobStore:
    """Snapshots stored as rows of a ``snapshots`` table."""

    def __init__(self, db_path: str = DB_PATH):
        self.db_path = db_path
        self.init_db()

    @contextmanager
    def get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Context manager for database connections."""
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(self.db_path, timeout=10)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def init_db(self) -> None:
        with self.get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS snapshots (
                    key TEXT PRIMARY KEY,
                    payload BLOB NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.commit()

    def write(self, key: str, data: bytes) -> None:
        with self.get_connection() as conn:
            conn.execute("""
                INSERT INTO snapshots (key, payload, updated_at)
                VALUES (?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(key) DO UPDATE SET
                    payload = excluded.payload,
                    updated_at = CURRENT_TIMESTAMP
            """, (key, sqlite3.Binary(data)))
            conn.commit()

    def read(self, key: str) -> bytes:
        with self.get_connection() as conn:
            row = conn.execute("SELECT payload FROM snapshots WHERE key = ?", (key,)).fetchone()
        if row is None:
            raise KeyError(key)
        return bytes(row["payload"])

    def exists(self, key: str) -> bool:
        with self.get_connection() as conn:
            row = conn.execute("SELECT 1 FROM snapshots WHERE key = ?", (key,)).fetchone()
        return row is not None

    def delete(self, key: str) -> None:
        with self.get_connection() as conn:
            conn.execute("DELETE FROM snapshots WHERE key = ?", (key,))
            conn.commit()


def create_blob_store(
    backend: str = CACHE_BACKEND,
    data_dir: str = DATA_DIR,
    db_path: Optional[str] = None,
) -> BlobStore:
    """Build the blob store named by ``backend`` ('file' or 'sqlite')."""
    if backend == "file":
        return FileBlobStore(data_dir)
    if backend == "sqlite":
        return SQLiteBlobStore(db_path or str(Path(data_dir) / "snapshots.db"))
    raise ValueError(f"Unknown cache backend: {backend!r}. Use 'file' or 'sqlite'.")


class PersistentCache:
    """Save and load named product collections as JSON snapshots.

    Every store or decode error is raised as PersistenceFailure.
    """

    def __init__(self, store: BlobStore):
        self.store = store

    def _encode(self, name: str, products: Iterable[Product]) -> bytes:
        records = [p.to_dict() for p in products]
        try:
            return json.dumps(records, ensure_ascii=False).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise PersistenceFailure(f"Failed to encode snapshot {name}: {e}") from e

    def save(self, name: str, products: Iterable[Product]) -> None:
        self.save_all({name: products})

    def save_all(self, snapshots: Dict[str, Iterable[Product]]) -> None:
        """Write several snapshots as one unit.

        Everything is encoded before the first write. If a write fails, the
        snapshots already written by this call are put back to their previous
        content (or removed if they did not exist), so the store never pairs
        snapshots from different refresh cycles.
        """
        payloads = {name: self._encode(name, products) for name, products in snapshots.items()}
        previous: Dict[str, Optional[bytes]] = {}

        for name, payload in payloads.items():
            try:
                previous[name] = self.store.read(name) if self.store.exists(name) else None
                self.store.write(name, payload)
            except (OSError, sqlite3.Error, KeyError) as e:
                logger.error(f"Failed to save snapshot {name}: {e}")
                self._restore(previous)
                raise PersistenceFailure(f"Failed to save snapshot {name}: {e}") from e
            logger.info(f"Saved snapshot {name}: {len(payload)} bytes")

    def _restore(self, previous: Dict[str, Optional[bytes]]) -> None:
        for name, payload in previous.items():
            try:
                if payload is None:
                    self.store.delete(name)
                else:
                    self.store.write(name, payload)
            except (OSError, sqlite3.Error) as e:
                logger.error(f"Could not roll back snapshot {name}: {e}")
            else:
                logger.warning(f"Rolled back snapshot {name}")

    def load(self, name: str) -> List[Product]:
        try:
            raw = self.store.read(name)
        except (OSError, sqlite3.Error, KeyError) as e:
            logger.error(f"Failed to read snapshot {name}: {e}")
            raise PersistenceFailure(f"Failed to read snapshot {name}: {e}") from e

        try:
            records = json.loads(raw)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise PersistenceFailure(f"Snapshot {name} is not valid JSON: {e}") from e
        if not isinstance(records, list):
            raise PersistenceFailure(f"Snapshot {name} is not a JSON array")

        try:
            products = [Product.from_dict(record) for record in records]
        except ParseFailure as e:
            raise PersistenceFailure(f"Snapshot {name} holds an invalid product: {e}") from e

        logger.info(f"Loaded: {len(products)} products from snapshot {name}")
        return products

    def exists(self, name: str) -> bool:
        try:
            return self.store.exists(name)
        except (OSError, sqlite3.Error) as e:
            raise PersistenceFailure(f"Failed to check snapshot {name}: {e}") from e
