"""Environment-driven settings for the conversion server."""

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional, Tuple

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 3000
DEFAULT_MAX_UPLOAD_MB = 50
DEFAULT_CORS_ORIGINS = ("http://localhost:5173",)


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_str(name: str, default: str) -> str:
    value = os.environ.get(name)
    return value.strip() if value else default


def _env_list(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    value = os.environ.get(name)
    if not value:
        return default
    return tuple(item.strip() for item in value.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    """Runtime configuration resolved once at startup."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_MB * 1024 * 1024
    temp_dir: Optional[Path] = None
    cors_origins: Tuple[str, ...] = DEFAULT_CORS_ORIGINS
    log_level: str = "INFO"


def load_settings() -> Settings:
    """Read settings from ``FILECONV_*`` environment variables."""
    max_upload_mb = _env_int("FILECONV_MAX_UPLOAD_MB", DEFAULT_MAX_UPLOAD_MB)
    if max_upload_mb < 1:
        max_upload_mb = DEFAULT_MAX_UPLOAD_MB
    temp_dir = os.environ.get("FILECONV_TEMP_DIR")
    return Settings(
        host=_env_str("FILECONV_HOST", DEFAULT_HOST),
        port=_env_int("FILECONV_PORT", DEFAULT_PORT),
        max_upload_bytes=max_upload_mb * 1024 * 1024,
        temp_dir=Path(temp_dir) if temp_dir else None,
        cors_origins=_env_list("FILECONV_CORS_ORIGINS", DEFAULT_CORS_ORIGINS),
        log_level=_env_str("LOG_LEVEL", "INFO").upper(),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
