import hashlib

import pytest
from fastapi.testclient import TestClient

from photobackup.core.config import Settings
from photobackup.core.store import FileStore
from photobackup.main import create_app


def sha1(data: bytes) -> str:
    return hashlib.sha1(data).hexdigest()


@pytest.fixture(scope="function")
def settings(tmp_path):
    return Settings(data_dir=str(tmp_path / "data"), addr="127.0.0.1:0", _env_file=None)


@pytest.fixture(scope="function")
def store(settings):
    st = FileStore.open(settings.db_path, settings.storage_dir)
    try:
        yield st
    finally:
        st.close()


@pytest.fixture(scope="function")
def client(settings, store):
    # each test gets its own store injected into the app
    app = create_app(settings=settings, store=store)
    return TestClient(app)


@pytest.fixture
def upload(client):
    def _upload(body: bytes, userid="u1", category="c1", sha1sum=None, filename=None):
        if sha1sum is None:
            sha1sum = sha1(body)
        headers = {"userid": userid, "category": category, "sha1sum": sha1sum}
        if filename is not None:
            headers["filename"] = filename
        return client.put("/api/file/upload", content=body, headers=headers)

    return _upload
