# photobackup/models/file.py
from sqlalchemy import Column, Index, Integer, String, UniqueConstraint

from photobackup.models.database import Base


class CloudFile(Base):
    __tablename__ = "cloud_files"
    __table_args__ = (
        UniqueConstraint("user_id", "category", "filename"),
        Index("idx_cloud_files_user_category", "user_id", "category"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=False)        # caller supplied, not authenticated
    category = Column(String, nullable=False)       # album / folder name
    filename = Column(String, nullable=False)       # logical name, unique per (user, category)
    sha1_sum = Column(String, nullable=False)       # public fileId
    storage_path = Column(String, nullable=False)   # where the bytes live on disk
    size = Column(Integer, nullable=False)          # bytes actually written
    created_at = Column(Integer, nullable=False)    # unix seconds of last write
