# photobackup/core/store.py
"""Record store: maps (user, category, filename) to where the bytes live on disk."""
import logging
import os
import time
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from photobackup.models.database import Base, create_db_engine
from photobackup.models.file import CloudFile

logger = logging.getLogger("photobackup.store")


class StoreError(Exception):
    """Raised when the underlying database fails; never retried here."""


@dataclass(frozen=True)
class FileRecord:
    id: int
    user_id: str
    category: str
    filename: str
    sha1_sum: str
    storage_path: str
    size: int
    created_at: int

    @classmethod
    def from_row(cls, row: CloudFile) -> "FileRecord":
        return cls(
            id=row.id,
            user_id=row.user_id,
            category=row.category,
            filename=row.filename,
            sha1_sum=row.sha1_sum,
            storage_path=row.storage_path,
            size=row.size,
            created_at=row.created_at,
        )


class FileStore:
    def __init__(self, engine: Engine, base_dir: str):
        self.engine = engine
        self.base_dir = base_dir
        self._sessions = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
        self._closed = False

    @classmethod
    def open(cls, db_path: str, base_dir: str) -> "FileStore":
        parent = os.path.dirname(db_path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        engine = create_db_engine(f"sqlite:///{db_path}")
        try:
            Base.metadata.create_all(bind=engine)
        except SQLAlchemyError as exc:
            engine.dispose()
            raise StoreError(f"migrate {db_path}: {exc}") from exc
        logger.info("store opened db=%s files=%s", db_path, base_dir)
        return cls(engine, base_dir)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.engine.dispose()

    # --- paths ---
    def storage_path(self, user_id: str, category: str, sha1_sum: str) -> str:
        """Where the bytes for this (user, category, hash) go. Does not touch the disk."""
        return os.path.join(self.base_dir, user_id, category, sha1_sum)

    # --- writes ---
    def save_file(
        self,
        user_id: str,
        category: str,
        filename: str,
        sha1_sum: str,
        storage_path: str,
        size: int,
    ) -> None:
        """Insert the record, or overwrite hash/path/size/time of the existing one."""
        now = int(time.time())
        stmt = insert(CloudFile).values(
            user_id=user_id,
            category=category,
            filename=filename,
            sha1_sum=sha1_sum,
            storage_path=storage_path,
            size=size,
            created_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[CloudFile.user_id, CloudFile.category, CloudFile.filename],
            set_={
                "sha1_sum": stmt.excluded.sha1_sum,
                "storage_path": stmt.excluded.storage_path,
                "size": stmt.excluded.size,
                "created_at": stmt.excluded.created_at,
            },
        )
        try:
            with self._sessions() as db:
                db.execute(stmt)
                db.commit()
        except SQLAlchemyError as exc:
            raise StoreError(f"save {user_id}/{category}/{filename}: {exc}") from exc

    # --- reads ---
    def get_by_filename(self, user_id: str, category: str, filename: str) -> Optional[FileRecord]:
        return self._first(
            CloudFile.user_id == user_id,
            CloudFile.category == category,
            CloudFile.filename == filename,
        )

    def get_by_file_id(self, user_id: str, category: str, file_id: str) -> Optional[FileRecord]:
        # several filenames can share one hash; hand back the newest
        return self._first(
            CloudFile.user_id == user_id,
            CloudFile.category == category,
            CloudFile.sha1_sum == file_id,
        )

    def _first(self, *criteria) -> Optional[FileRecord]:
        try:
            with self._sessions() as db:
                row = (
                    db.query(CloudFile)
                    .filter(*criteria)
                    .order_by(CloudFile.created_at.desc(), CloudFile.id.desc())
                    .first()
                )
                return FileRecord.from_row(row) if row else None
        except SQLAlchemyError as exc:
            raise StoreError(f"query cloud_files: {exc}") from exc
