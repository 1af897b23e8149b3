import logging
import os
from typing import BinaryIO, Iterator
from urllib.parse import quote, unquote_plus

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask
from starlette.concurrency import run_in_threadpool
from starlette.requests import ClientDisconnect

from photobackup.core.store import FileStore, StoreError

router = APIRouter(prefix="/api/file", tags=["files"])

upload_log = logging.getLogger("photobackup.upload")
download_log = logging.getLogger("photobackup.download")

DEFAULT_CHUNK_SIZE = 64 * 1024

# characters that would break an unquoted filename= parameter
SPECIAL_NAME_CHARS = (";", "\"", "\\")


# --- store dependency (the app puts one FileStore on app.state) ---
def get_store(request: Request) -> FileStore:
    return request.app.state.store


def _chunk_size(request: Request) -> int:
    settings = getattr(request.app.state, "settings", None)
    return settings.chunk_size if settings else DEFAULT_CHUNK_SIZE


# --- helpers ---
def unsafe_component(value: str) -> bool:
    """True when a header value cannot be used as a single directory/file name."""
    return value in (".", "..") or any(ch in value for ch in ("/", "\\", "\x00"))


def content_disposition(name: str) -> str:
    name = "".join(ch for ch in name if ch.isprintable())
    plain = name.encode("ascii", "replace").decode("ascii")
    if plain == name and not any(ch in name for ch in SPECIAL_NAME_CHARS):
        return f"attachment; filename={name}"
    # the plain parameter cannot carry these; clients read filename* instead
    fallback = "".join("_" if ch in SPECIAL_NAME_CHARS else ch for ch in plain)
    return f"attachment; filename={fallback}; filename*=UTF-8''{quote(name, safe='')}"


def _discard(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as exc:
        # the orphan stays on disk; nothing reconciles it later
        upload_log.error("failed to remove partial file %s: %s", path, exc)


def _iter_file(f: BinaryIO, size: int, chunk_size: int, context: str) -> Iterator[bytes]:
    sent = 0
    try:
        while True:
            chunk = f.read(chunk_size)
            if not chunk:
                break
            yield chunk
            sent += len(chunk)
    except OSError as exc:
        download_log.error("failed to read file %s: %s", context, exc, exc_info=True)
        raise
    finally:
        f.close()
        if sent < size:
            download_log.warning("response interrupted %s sent=%d size=%d", context, sent, size)


# --- upload a file ---
@router.put("/upload")
async def upload_file(
    request: Request,
    userid: str = Header(default=""),
    category: str = Header(default=""),
    sha1sum: str = Header(default=""),
    filename: str = Header(default=""),
    store: FileStore = Depends(get_store),
):
    category = unquote_plus(category)
    filename = unquote_plus(filename) or sha1sum

    if not userid or not category or not sha1sum:
        upload_log.warning(
            "missing header: userid=%r category=%r sha1sum=%r filename=%r",
            userid, category, sha1sum, filename,
        )
        raise HTTPException(status_code=400, detail="missing header: userid, category or sha1sum")

    for field, value in (("userid", userid), ("category", category), ("sha1sum", sha1sum)):
        if unsafe_component(value):
            upload_log.warning("invalid header %s=%r userid=%r category=%r", field, value, userid, category)
            raise HTTPException(status_code=400, detail=f"invalid header: {field}")

    storage_path = store.storage_path(userid, category, sha1sum)
    directory = os.path.dirname(storage_path)
    try:
        await run_in_threadpool(os.makedirs, directory, exist_ok=True)
    except OSError as exc:
        upload_log.error("failed to create storage dir %s: %s", directory, exc, exc_info=True)
        raise HTTPException(status_code=500, detail="failed to create storage dir")

    try:
        f = await run_in_threadpool(open, storage_path, "wb")
    except OSError as exc:
        upload_log.error("failed to create file %s: %s", storage_path, exc, exc_info=True)
        raise HTTPException(status_code=500, detail="failed to create file")

    size = 0
    try:
        with f:
            async for chunk in request.stream():
                await run_in_threadpool(f.write, chunk)
                size += len(chunk)
    except (OSError, ClientDisconnect) as exc:
        await run_in_threadpool(_discard, storage_path)
        upload_log.error(
            "failed to write file %s after %d bytes: %r", storage_path, size, exc, exc_info=True
        )
        raise HTTPException(status_code=500, detail="failed to write file")

    try:
        await run_in_threadpool(store.save_file, userid, category, filename, sha1sum, storage_path, size)
    except StoreError as exc:
        await run_in_threadpool(_discard, storage_path)
        upload_log.error(
            "failed to save record userid=%s category=%s filename=%s: %s",
            userid, category, filename, exc,
            exc_info=True,
        )
        raise HTTPException(status_code=500, detail="failed to save record")

    upload_log.info(
        "stored userid=%s category=%s filename=%s fileId=%s size=%d",
        userid, category, filename, sha1sum, size,
    )
    return {"fileId": sha1sum}


# --- download a file ---
@router.get("/download")
def download_file(
    request: Request,
    file_id: str = Query(default="", alias="fileId"),
    userid: str = Header(default=""),
    category: str = Header(default=""),
    filename: str = Header(default=""),
    store: FileStore = Depends(get_store),
):
    category = unquote_plus(category)
    filename = unquote_plus(filename)

    if not file_id or not userid or not category:
        download_log.warning(
            "missing query or header: fileId=%r userid=%r category=%r", file_id, userid, category
        )
        raise HTTPException(status_code=400, detail="missing query fileId or header: userid, category")

    try:
        rec = store.get_by_file_id(userid, category, file_id)
    except StoreError as exc:
        download_log.error(
            "database error userid=%s category=%s fileId=%s: %s", userid, category, file_id, exc,
            exc_info=True,
        )
        raise HTTPException(status_code=500, detail="database error")
    if rec is None:
        download_log.warning("not found: userid=%s category=%s fileId=%s", userid, category, file_id)
        raise HTTPException(status_code=404, detail="not found")

    try:
        f = open(rec.storage_path, "rb")
    except FileNotFoundError:
        download_log.warning(
            "file not on disk: path=%s userid=%s fileId=%s", rec.storage_path, userid, file_id
        )
        raise HTTPException(status_code=404, detail="not found")
    except OSError as exc:
        download_log.error("failed to open file %s: %s", rec.storage_path, exc, exc_info=True)
        raise HTTPException(status_code=500, detail="failed to open file")

    size = os.fstat(f.fileno()).st_size
    context = f"userid={userid} fileId={file_id}"
    return StreamingResponse(
        _iter_file(f, size, _chunk_size(request), context),
        media_type="application/octet-stream",
        headers={
            "Content-Disposition": content_disposition(filename or rec.filename or rec.sha1_sum),
            "Content-Length": str(size),
        },
        background=BackgroundTask(f.close),
    )
