import os
from types import SimpleNamespace

import pytest
from sqlalchemy.orm import Session

from photobackup.core import store as store_module
from photobackup.core.store import FileStore, StoreError
from photobackup.models.database import Base
from photobackup.models.file import CloudFile


def _rows(st: FileStore):
    with Session(st.engine) as db:
        return db.query(CloudFile).all()


def test_storage_path_layout(store, settings):
    path = store.storage_path("u1", "Camera", "abc123")
    assert path == os.path.join(settings.storage_dir, "u1", "Camera", "abc123")
    # pure: same inputs, same path, nothing created on disk
    assert store.storage_path("u1", "Camera", "abc123") == path
    assert not os.path.exists(os.path.dirname(path))


def test_storage_path_distinct_triples(store):
    paths = {
        store.storage_path("u1", "c1", "h1"),
        store.storage_path("u2", "c1", "h1"),
        store.storage_path("u1", "c2", "h1"),
        store.storage_path("u1", "c1", "h2"),
    }
    assert len(paths) == 4


def test_save_and_lookup(store):
    store.save_file("u1", "c1", "a.jpg", "h1", "/tmp/x/h1", 5)

    by_name = store.get_by_filename("u1", "c1", "a.jpg")
    assert by_name is not None
    assert by_name.sha1_sum == "h1"
    assert by_name.size == 5
    assert by_name.storage_path == "/tmp/x/h1"

    by_id = store.get_by_file_id("u1", "c1", "h1")
    assert by_id == by_name


def test_lookup_not_found_returns_none(store):
    store.save_file("u1", "c1", "a.jpg", "h1", "/p", 1)
    assert store.get_by_file_id("u1", "c1", "nope") is None
    assert store.get_by_filename("u1", "c1", "b.jpg") is None
    # records are scoped to user and category
    assert store.get_by_file_id("u2", "c1", "h1") is None
    assert store.get_by_file_id("u1", "c2", "h1") is None


def test_save_same_triple_overwrites(store, monkeypatch):
    monkeypatch.setattr(store_module, "time", SimpleNamespace(time=lambda: 1000))
    store.save_file("u1", "c1", "a.jpg", "h1", "/p/h1", 5)
    first = store.get_by_filename("u1", "c1", "a.jpg")

    monkeypatch.setattr(store_module, "time", SimpleNamespace(time=lambda: 2000))
    store.save_file("u1", "c1", "a.jpg", "h2", "/p/h2", 9)

    rows = _rows(store)
    assert len(rows) == 1
    rec = store.get_by_filename("u1", "c1", "a.jpg")
    assert rec.id == first.id
    assert (rec.sha1_sum, rec.storage_path, rec.size) == ("h2", "/p/h2", 9)
    assert first.created_at == 1000
    assert rec.created_at == 2000
    assert store.get_by_file_id("u1", "c1", "h1") is None


def test_same_hash_under_two_names_returns_newest(store):
    store.save_file("u1", "c1", "a.jpg", "h1", "/p/h1", 5)
    store.save_file("u1", "c1", "copy.jpg", "h1", "/p/h1", 5)
    assert len(_rows(store)) == 2
    assert store.get_by_file_id("u1", "c1", "h1").filename == "copy.jpg"


def test_database_failure_raises_store_error(store):
    Base.metadata.drop_all(bind=store.engine)
    with pytest.raises(StoreError):
        store.save_file("u1", "c1", "a.jpg", "h1", "/p", 1)
    with pytest.raises(StoreError):
        store.get_by_file_id("u1", "c1", "h1")


def test_open_creates_db_and_close_is_idempotent(tmp_path):
    db_path = tmp_path / "nested" / "photobackup.db"
    st = FileStore.open(str(db_path), str(tmp_path / "files"))
    assert db_path.exists()
    st.close()
    st.close()
