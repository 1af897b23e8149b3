"""
HTTP client for the backup server.

Mirrors what the mobile app does: hash a file with SHA-1, PUT it under
(userid, category), and later GET it back by that hash.
"""
import hashlib
import logging
import os
from contextlib import contextmanager
from typing import Iterator, Optional
from urllib.parse import quote, unquote

import httpx

logger = logging.getLogger("photobackup.client")

CHUNK_SIZE = 64 * 1024


class BackupClientError(Exception):
    def __init__(self, status_code: int, detail: str):
        super().__init__(f"HTTP {status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


def sha1_file(path: str, chunk_size: int = CHUNK_SIZE) -> str:
    digest = hashlib.sha1()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            digest.update(chunk)
    return digest.hexdigest()


def filename_from_disposition(value: str) -> Optional[str]:
    """Pull the file name out of a Content-Disposition header, preferring ``filename*``."""
    plain = None
    for part in value.split(";"):
        key, _, val = part.strip().partition("=")
        key = key.lower()
        if key == "filename*" and "''" in val:
            return unquote(val.split("''", 1)[1])
        if key == "filename":
            plain = val.strip('"')
    return plain or None


class BackupClient:
    def __init__(self, base_url: str, user_id: str, http: Optional[httpx.Client] = None, timeout: float = 60):
        if not base_url.strip() or not user_id.strip():
            raise ValueError("base_url and user_id are required")
        self.base_url = base_url.strip().rstrip("/")
        self.user_id = user_id
        self.http = http or httpx.Client(timeout=timeout)

    def close(self) -> None:
        self.http.close()

    def __enter__(self) -> "BackupClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _check(self, response: httpx.Response) -> httpx.Response:
        if response.is_success:
            return response
        try:
            detail = response.json().get("detail", response.text)
        except ValueError:
            detail = response.text
        raise BackupClientError(response.status_code, str(detail))

    def upload(self, path: str, category: str, filename: Optional[str] = None) -> str:
        """Upload ``path`` and return its fileId (the SHA-1 the server stored it under)."""
        sha1_sum = sha1_file(path)
        name = filename or os.path.basename(path)
        headers = {
            "userid": self.user_id,
            "category": quote(category, safe=""),
            "sha1sum": sha1_sum,
            "filename": quote(name, safe=""),
            "Content-Type": "application/octet-stream",
        }
        with open(path, "rb") as f:
            response = self.http.put(f"{self.base_url}/api/file/upload", content=f, headers=headers)
        try:
            self._check(response)
        except BackupClientError as exc:
            logger.error("upload failed: %s category=%s: %s", path, category, exc)
            raise
        logger.debug("uploaded %s as %s", path, sha1_sum)
        return response.json()["fileId"]

    @contextmanager
    def _get(self, category: str, file_id: str, filename: Optional[str]) -> Iterator[httpx.Response]:
        headers = {"userid": self.user_id, "category": quote(category, safe="")}
        if filename:
            headers["filename"] = quote(filename, safe="")
        with self.http.stream(
            "GET", f"{self.base_url}/api/file/download", params={"fileId": file_id}, headers=headers
        ) as response:
            if not response.is_success:
                response.read()
                try:
                    self._check(response)
                except BackupClientError as exc:
                    logger.error("download failed: fileId=%s category=%s: %s", file_id, category, exc)
                    raise
            yield response

    def download(self, category: str, file_id: str, filename: Optional[str] = None) -> bytes:
        with self._get(category, file_id, filename) as response:
            return response.read()

    def download_to(self, category: str, file_id: str, dest_dir: str, filename: Optional[str] = None) -> str:
        """Stream a stored file into ``dest_dir`` and return the path written."""
        with self._get(category, file_id, filename) as response:
            name = filename or filename_from_disposition(response.headers.get("content-disposition", "")) or file_id
            os.makedirs(dest_dir, exist_ok=True)
            dest = os.path.join(dest_dir, os.path.basename(name) or file_id)
            try:
                with open(dest, "wb") as f:
                    for chunk in response.iter_bytes(CHUNK_SIZE):
                        f.write(chunk)
            except (OSError, httpx.HTTPError):
                if os.path.exists(dest):
                    os.remove(dest)
                raise
        return dest
