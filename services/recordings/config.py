from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import quote_plus

from dotenv import load_dotenv


def _load_repo_env() -> None:
    """Load the nearest .env starting from this file upward."""
    current = Path(__file__).resolve()
    for candidate in [current.parent, *current.parents]:
        env_file = candidate / ".env"
        if env_file.exists():
            load_dotenv(env_file)
            return


_load_repo_env()


def _require_env(name: str) -> str:
    value = os.getenv(name)
    if value is None or value == "":
        raise ValueError(f"Environment variable {name} is required")
    return value


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer") from exc


@dataclass(frozen=True)
class RecordingsConfig:
    storage_access_key: str
    storage_bucket: str
    storage_endpoint_url: str
    storage_public_endpoint_url: str
    storage_object_prefix: str
    storage_region: str
    storage_secret_key: str
    db_host: str
    db_port: int
    db_name: str
    db_user: str
    db_password: str
    jwt_secret: str
    watch_base_url: str
    jwt_algorithm: str = "HS256"
    free_tier_max_recordings: int = 5
    free_tier_retention_days: int = 30
    upload_session_ttl_minutes: int = 15
    max_parts: int = 100
    part_size_bytes: int = 5 * 1024 * 1024
    download_url_ttl_seconds: int = 3600
    log_level: str = "INFO"

    @property
    def max_upload_bytes(self) -> int:
        return self.max_parts * self.part_size_bytes

    @property
    def database_dsn(self) -> str:
        user = quote_plus(self.db_user)
        password = quote_plus(self.db_password)
        return (
            f"postgresql://{user}:{password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )

    @property
    def sqlalchemy_dsn(self) -> str:
        dsn = self.database_dsn
        if dsn.startswith("postgresql://"):
            return dsn.replace("postgresql://", "postgresql+psycopg://", 1)
        return dsn


def load_config() -> RecordingsConfig:
    return RecordingsConfig(
        storage_access_key=_require_env("RECORDINGS_STORAGE_ACCESS_KEY"),
        storage_bucket=_require_env("RECORDINGS_STORAGE_BUCKET"),
        storage_endpoint_url=_require_env("RECORDINGS_STORAGE_ENDPOINT_URL"),
        storage_public_endpoint_url=os.getenv(
            "RECORDINGS_STORAGE_PUBLIC_ENDPOINT_URL",
            _require_env("RECORDINGS_STORAGE_ENDPOINT_URL"),
        ),
        storage_object_prefix=os.getenv("RECORDINGS_STORAGE_OBJECT_PREFIX", "recordings"),
        storage_region=os.getenv("RECORDINGS_STORAGE_REGION", "auto"),
        storage_secret_key=_require_env("RECORDINGS_STORAGE_SECRET_KEY"),
        db_host=_require_env("RECORDINGS_DB_HOST"),
        db_port=_env_int("RECORDINGS_DB_PORT", 5432),
        db_name=_require_env("RECORDINGS_DB_NAME"),
        db_user=_require_env("RECORDINGS_DB_USER"),
        db_password=_require_env("RECORDINGS_DB_PASSWORD"),
        jwt_secret=_require_env("RECORDINGS_JWT_SECRET"),
        jwt_algorithm=os.getenv("RECORDINGS_JWT_ALGORITHM", "HS256"),
        watch_base_url=_require_env("RECORDINGS_WATCH_BASE_URL").rstrip("/"),
        free_tier_max_recordings=_env_int("RECORDINGS_FREE_TIER_MAX_RECORDINGS", 5),
        free_tier_retention_days=_env_int("RECORDINGS_FREE_TIER_RETENTION_DAYS", 30),
        upload_session_ttl_minutes=_env_int(
            "RECORDINGS_UPLOAD_SESSION_TTL_MINUTES", 15
        ),
        max_parts=_env_int("RECORDINGS_MAX_PARTS", 100),
        part_size_bytes=_env_int("RECORDINGS_PART_SIZE_BYTES", 5 * 1024 * 1024),
        download_url_ttl_seconds=_env_int("RECORDINGS_DOWNLOAD_URL_TTL_SECONDS", 3600),
        log_level=os.getenv("RECORDINGS_LOG_LEVEL", "INFO"),
    )
