from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path

ENV_FILE = Path(".env")

FEATURE_BUCKET_KEYS: tuple[str, ...] = (
    "MEDIA",
    "VIDEOS",
    "PROFILES",
    "ALBUMS",
    "PREVIEWS",
    "THUMBNAILS",
    "PROMOTIONS",
)

MIB = 1024 * 1024


def _load_env_file() -> None:
    if not ENV_FILE.exists():
        return
    for raw_line in ENV_FILE.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def _as_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "y", "on"}


def _as_optional(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _feature_buckets_from_environment() -> dict[str, str]:
    buckets: dict[str, str] = {}
    for key in FEATURE_BUCKET_KEYS:
        physical = _as_optional(os.environ.get(f"BACKBLAZE_BUCKET_{key}"))
        if physical:
            buckets[key] = physical
    return buckets


@dataclass
class Settings:
    B2_ACCOUNT_ID: str = ""
    B2_APPLICATION_KEY: str = ""
    B2_BUCKET_NAME: str | None = None
    B2_FEATURE_BUCKETS: dict[str, str] = field(default_factory=dict)
    B2_LARGE_UPLOAD_THRESHOLD_BYTES: int = 50 * MIB
    B2_PART_SIZE_BYTES: int = 10 * MIB
    B2_PUBLIC_BASE: str | None = None
    B2_DEBUG: bool = False
    B2_API_URL: str = "https://api.backblazeb2.com"
    B2_DEFAULT_DOWNLOAD_ROOT: str = "https://f003.backblazeb2.com/file"
    B2_REQUEST_TIMEOUT_SECONDS: float = 60.0
    B2_UPLOAD_CONCURRENCY: int = 1
    B2_CANCEL_FAILED_LARGE_FILES: bool = False
    B2_AUTH_RETRY_BACKOFF_SECONDS: float = 0.25

    def __post_init__(self) -> None:
        if self.B2_LARGE_UPLOAD_THRESHOLD_BYTES <= 0:
            raise ValueError("B2_LARGE_UPLOAD_THRESHOLD_BYTES must be positive.")
        if self.B2_PART_SIZE_BYTES <= 0:
            raise ValueError("B2_PART_SIZE_BYTES must be positive.")
        if self.B2_REQUEST_TIMEOUT_SECONDS <= 0:
            raise ValueError("B2_REQUEST_TIMEOUT_SECONDS must be positive.")
        if self.B2_UPLOAD_CONCURRENCY < 1:
            raise ValueError("B2_UPLOAD_CONCURRENCY must be at least 1.")
        unknown = set(self.B2_FEATURE_BUCKETS) - set(FEATURE_BUCKET_KEYS)
        if unknown:
            raise ValueError(
                f"Unknown feature bucket keys: {', '.join(sorted(unknown))}."
            )

    @classmethod
    def from_environment(cls) -> "Settings":
        _load_env_file()
        bucket_name = _as_optional(
            os.environ.get("BACKBLAZE_BUCKET_NAME") or os.environ.get("B2_BUCKET_NAME")
        )
        return cls(
            B2_ACCOUNT_ID=os.environ.get("BACKBLAZE_ACCOUNT_ID", "").strip(),
            B2_APPLICATION_KEY=os.environ.get("BACKBLAZE_APPLICATION_KEY", ""),
            B2_BUCKET_NAME=bucket_name,
            B2_FEATURE_BUCKETS=_feature_buckets_from_environment(),
            B2_LARGE_UPLOAD_THRESHOLD_BYTES=int(
                os.environ.get(
                    "BACKBLAZE_LARGE_UPLOAD_THRESHOLD_BYTES",
                    cls.B2_LARGE_UPLOAD_THRESHOLD_BYTES,
                )
            ),
            B2_PART_SIZE_BYTES=int(
                os.environ.get("BACKBLAZE_PART_SIZE", cls.B2_PART_SIZE_BYTES)
            ),
            B2_PUBLIC_BASE=_as_optional(os.environ.get("BACKBLAZE_PUBLIC_BASE")),
            B2_DEBUG=_as_bool(os.environ.get("BACKBLAZE_DEBUG"), cls.B2_DEBUG),
            B2_API_URL=os.environ.get("BACKBLAZE_API_URL", cls.B2_API_URL),
            B2_REQUEST_TIMEOUT_SECONDS=float(
                os.environ.get(
                    "BACKBLAZE_REQUEST_TIMEOUT_SECONDS", cls.B2_REQUEST_TIMEOUT_SECONDS
                )
            ),
            B2_UPLOAD_CONCURRENCY=int(
                os.environ.get(
                    "BACKBLAZE_UPLOAD_CONCURRENCY", cls.B2_UPLOAD_CONCURRENCY
                )
            ),
            B2_CANCEL_FAILED_LARGE_FILES=_as_bool(
                os.environ.get("BACKBLAZE_CANCEL_FAILED_LARGE_FILES"),
                cls.B2_CANCEL_FAILED_LARGE_FILES,
            ),
            B2_AUTH_RETRY_BACKOFF_SECONDS=float(
                os.environ.get(
                    "BACKBLAZE_AUTH_RETRY_BACKOFF_SECONDS",
                    cls.B2_AUTH_RETRY_BACKOFF_SECONDS,
                )
            ),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_environment()
