# photobackup/core/config.py
import os
from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def split_addr(addr: str) -> tuple[str, int]:
    """Split a ``host:port`` bind address. An empty host binds every interface."""
    host, sep, port = addr.strip().rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"invalid bind address {addr!r}, expected host:port")
    host = host.strip("[]") or "0.0.0.0"
    return host, int(port)


class Settings(BaseSettings):
    data_dir: str = "./data"      # holds photobackup.db and files/
    addr: str = ":8080"
    log_level: str = "INFO"
    chunk_size: int = 64 * 1024   # bytes per read when streaming downloads

    # Tell pydantic-settings to load from .env at project root
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # ignore any extra stuff in .env
    )

    @field_validator("addr")
    @classmethod
    def _check_addr(cls, value: str) -> str:
        split_addr(value)
        return value

    @field_validator("chunk_size")
    @classmethod
    def _check_chunk_size(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("chunk_size must be positive")
        return value

    @property
    def db_path(self) -> str:
        return os.path.join(self.data_dir, "photobackup.db")

    @property
    def storage_dir(self) -> str:
        return os.path.join(self.data_dir, "files")

    @property
    def database_url(self) -> str:
        return f"sqlite:///{self.db_path}"

    @property
    def bind_host(self) -> str:
        return split_addr(self.addr)[0]

    @property
    def bind_port(self) -> int:
        return split_addr(self.addr)[1]


@lru_cache
def get_settings() -> Settings:
    return Settings()
