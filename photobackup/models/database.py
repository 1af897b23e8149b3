# photobackup/models/database.py
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def create_db_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        # handlers run in a threadpool, so the sqlite connection is shared across threads
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(url, pool_pre_ping=True)
