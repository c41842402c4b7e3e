"""Tests for snapshot persistence."""

import json

import pytest

from unlisted.cache import FileBlobStore, PersistentCache, SQLiteBlobStore, create_blob_store
from unlisted.errors import PersistenceFailure
from unlisted.models import CategoryLink, Product


@pytest.fixture
def products():
    link = CategoryLink("mens-pants", 10, "Chinos")
    return [
        Product(1, 100, 80, category_link=link, extra={"name": "Washed Chino"}),
        Product(2, 50, 0, category_link=link, extra={"name": "Stretch Chino"}),
    ]


@pytest.fixture(params=["file", "sqlite"])
def store(request, tmp_path):
    return create_blob_store(request.param, str(tmp_path))


class TestBlobStores:
    """Behaviour shared by both store backends."""

    def test_write_then_read(self, store):
        store.write("products", b"[1, 2]")

        assert store.exists("products")
        assert store.read("products") == b"[1, 2]"

    def test_overwrite_replaces_payload(self, store):
        store.write("sales", b"old")
        store.write("sales", b"new")

        assert store.read("sales") == b"new"

    def test_missing_key(self, store):
        assert not store.exists("products")

    def test_delete(self, store):
        store.write("products", b"[]")

        store.delete("products")

        assert not store.exists("products")

    def test_delete_missing_key_is_a_no_op(self, store):
        store.delete("sales")

        assert not store.exists("sales")


class TestFileBlobStore:
    def test_uses_configured_file_names(self, tmp_path):
        store = FileBlobStore(str(tmp_path))
        store.write("products", b"[]")
        store.write("sales", b"[]")

        assert (tmp_path / "data.json").is_file()
        assert (tmp_path / "sales.json").is_file()

    def test_no_temp_files_left_behind(self, tmp_path):
        store = FileBlobStore(str(tmp_path))
        store.write("products", b"[]")

        assert sorted(p.name for p in tmp_path.iterdir()) == ["data.json"]

    def test_creates_data_dir(self, tmp_path):
        store = FileBlobStore(str(tmp_path / "nested" / "dir"))
        store.write("products", b"[]")

        assert store.exists("products")


class TestSQLiteBlobStore:
    def test_read_missing_raises_key_error(self, tmp_path):
        store = SQLiteBlobStore(str(tmp_path / "snap.db"))

        with pytest.raises(KeyError):
            store.read("products")


class TestCreateBlobStore:
    def test_unknown_backend(self, tmp_path):
        with pytest.raises(ValueError, match="Unknown cache backend"):
            create_blob_store("s3", str(tmp_path))


class TestPersistentCache:
    """Test JSON snapshots and failure wrapping."""

    def test_save_then_load(self, store, products):
        cache = PersistentCache(store)

        cache.save("products", products)
        loaded = cache.load("products")

        assert loaded == products
        assert loaded[0].extra == {"name": "Washed Chino"}

    def test_saved_payload_uses_retailer_field_names(self, blob_store, cache, products):
        cache.save("products", products)

        records = json.loads(blob_store.blobs["products"])
        assert records[0]["entity_id"] == 1
        assert records[0]["categoryLink"] == {"cat": "mens-pants", "sub_cat": {"id": 10, "name": "Chinos"}}

    def test_save_failure_wrapped(self, blob_store, cache, products):
        blob_store.fail_writes = True

        with pytest.raises(PersistenceFailure, match="Failed to save snapshot products"):
            cache.save("products", products)

    def test_load_missing_snapshot(self, cache):
        with pytest.raises(PersistenceFailure, match="Failed to read"):
            cache.load("products")

    def test_load_missing_sqlite_row(self, tmp_path):
        cache = PersistentCache(SQLiteBlobStore(str(tmp_path / "snap.db")))

        with pytest.raises(PersistenceFailure):
            cache.load("products")

    def test_load_invalid_json(self, blob_store, cache):
        blob_store.blobs["products"] = b"{not json"

        with pytest.raises(PersistenceFailure, match="not valid JSON"):
            cache.load("products")

    def test_load_non_array(self, blob_store, cache):
        blob_store.blobs["products"] = b'{"entity_id": 1}'

        with pytest.raises(PersistenceFailure, match="not a JSON array"):
            cache.load("products")

    def test_load_invalid_record(self, blob_store, cache):
        blob_store.blobs["products"] = b'[{"price": 10}]'

        with pytest.raises(PersistenceFailure, match="invalid product"):
            cache.load("products")

    def test_load_category_link_without_category(self, blob_store, cache):
        blob_store.blobs["products"] = b'[{"entity_id": 1, "price": 10, "categoryLink": {"sub_cat": {"id": 1}}}]'

        with pytest.raises(PersistenceFailure, match="invalid product"):
            cache.load("products")


class TestSaveAll:
    """A group of snapshots is written whole or not at all."""

    def test_writes_every_snapshot(self, blob_store, cache, products):
        cache.save_all({"products": products, "sales": products[:1]})

        assert len(cache.load("products")) == 2
        assert len(cache.load("sales")) == 1

    def test_failed_write_restores_earlier_snapshots(self, blob_store, cache, products):
        cache.save_all({"products": products, "sales": products[:1]})
        before = dict(blob_store.blobs)
        blob_store.fail_keys = {"sales"}

        with pytest.raises(PersistenceFailure, match="Failed to save snapshot sales"):
            cache.save_all({"products": [Product(9, 10, 5)], "sales": [Product(9, 10, 5)]})

        assert blob_store.blobs == before

    def test_failed_write_removes_new_snapshots(self, blob_store, cache, products):
        blob_store.fail_keys = {"sales"}

        with pytest.raises(PersistenceFailure):
            cache.save_all({"products": products, "sales": products})

        assert not cache.exists("products")
        assert not cache.exists("sales")

    def test_unencodable_snapshot_writes_nothing(self, blob_store, cache, products):
        bad = Product(3, 10, extra={"blob": object()})

        with pytest.raises(PersistenceFailure, match="Failed to encode snapshot sales"):
            cache.save_all({"products": products, "sales": [bad]})

        assert blob_store.blobs == {}
