"""Application configuration loading."""

from __future__ import annotations

import logging
import os
import secrets
from dataclasses import dataclass, field, replace
from pathlib import Path

from heic_converter.core.utils import (
    DEFAULT_JPEG_QUALITY,
    env_bool,
    env_int,
    env_list,
    normalize_quality,
)

logger = logging.getLogger(__name__)

SINGLE_MODE_MAX_FILES = 1
BATCH_MODE_MAX_FILES = 10


@dataclass(frozen=True)
class RuntimeConfig:
    """Runtime configuration values consumed by the Flask app."""

    input_dir: Path = Path("/tmp/uploads")
    output_dir: Path = Path("/tmp/converted")
    archive_dir: Path = Path("/tmp/converted")
    jpeg_quality: int = DEFAULT_JPEG_QUALITY
    batch_mode: bool = False
    max_files: int = SINGLE_MODE_MAX_FILES
    max_file_size_mb: int = 50
    max_json_body_mb: int = 10
    allowed_origins: tuple[str, ...] = ()
    api_keys: frozenset[str] = frozenset()
    admin_username: str = "admin"
    admin_password_hash: str | None = None
    jwt_secret: str = field(default_factory=lambda: secrets.token_urlsafe(32), repr=False)
    admin_token_ttl_seconds: int = 24 * 60 * 60
    cleanup_short_delay_seconds: int = 30
    cleanup_long_delay_seconds: int = 5 * 60
    cleanup_sweep_interval_seconds: int = 5
    rate_limit_window_seconds: int = 15 * 60
    convert_rate_limit: int = 20
    general_rate_limit: int = 100
    login_rate_limit: int = 5
    public_analytics: bool = True
    base_url: str = ""

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024

    @property
    def max_json_body_bytes(self) -> int:
        return self.max_json_body_mb * 1024 * 1024

    @property
    def max_content_length(self) -> int:
        # Whole multipart body: every file at its ceiling plus form overhead.
        return self.max_file_size_bytes * self.max_files + 1024 * 1024

    @property
    def auth_enabled(self) -> bool:
        return bool(self.api_keys)

    @property
    def download_extensions(self) -> tuple[str, ...]:
        return (".jpg", ".zip") if self.batch_mode else (".jpg",)

    def with_overrides(self, **changes) -> "RuntimeConfig":
        return replace(self, **changes)


def _positive(name: str, value: int, default: int) -> int:
    if value <= 0:
        logger.warning("[settings] Non-positive %s=%s; using %s", name, value, default)
        return default
    return value


def load_runtime_config() -> RuntimeConfig:
    """Load runtime configuration from environment variables."""
    defaults = RuntimeConfig()
    batch_mode = env_bool("BATCH_MODE", False)
    mode_max_files = BATCH_MODE_MAX_FILES if batch_mode else SINGLE_MODE_MAX_FILES
    output_dir = Path(os.environ.get("OUTPUT_DIR", str(defaults.output_dir)))

    jwt_secret = os.environ.get("JWT_SECRET")
    if not jwt_secret:
        logger.warning("[settings] JWT_SECRET not set; admin tokens will not survive a restart")
        jwt_secret = defaults.jwt_secret

    return RuntimeConfig(
        input_dir=Path(os.environ.get("INPUT_DIR", str(defaults.input_dir))),
        output_dir=output_dir,
        archive_dir=Path(os.environ.get("ARCHIVE_DIR", str(output_dir))),
        jpeg_quality=normalize_quality(os.environ.get("JPEG_QUALITY"), DEFAULT_JPEG_QUALITY),
        batch_mode=batch_mode,
        max_files=_positive("MAX_FILES", env_int("MAX_FILES", mode_max_files), mode_max_files),
        max_file_size_mb=_positive(
            "MAX_FILE_SIZE_MB", env_int("MAX_FILE_SIZE_MB", defaults.max_file_size_mb), defaults.max_file_size_mb
        ),
        max_json_body_mb=_positive(
            "MAX_JSON_BODY_MB", env_int("MAX_JSON_BODY_MB", defaults.max_json_body_mb), defaults.max_json_body_mb
        ),
        allowed_origins=env_list("ALLOWED_ORIGINS"),
        api_keys=frozenset(env_list("API_KEYS")),
        admin_username=os.environ.get("ADMIN_USERNAME", defaults.admin_username),
        admin_password_hash=os.environ.get("ADMIN_PASSWORD_HASH") or None,
        jwt_secret=jwt_secret,
        admin_token_ttl_seconds=_positive(
            "ADMIN_TOKEN_TTL_SECONDS",
            env_int("ADMIN_TOKEN_TTL_SECONDS", defaults.admin_token_ttl_seconds),
            defaults.admin_token_ttl_seconds,
        ),
        cleanup_short_delay_seconds=max(0, env_int("CLEANUP_SHORT_DELAY_SECONDS", defaults.cleanup_short_delay_seconds)),
        cleanup_long_delay_seconds=max(0, env_int("CLEANUP_LONG_DELAY_SECONDS", defaults.cleanup_long_delay_seconds)),
        cleanup_sweep_interval_seconds=_positive(
            "CLEANUP_SWEEP_INTERVAL_SECONDS",
            env_int("CLEANUP_SWEEP_INTERVAL_SECONDS", defaults.cleanup_sweep_interval_seconds),
            defaults.cleanup_sweep_interval_seconds,
        ),
        rate_limit_window_seconds=_positive(
            "RATE_LIMIT_WINDOW_SECONDS",
            env_int("RATE_LIMIT_WINDOW_SECONDS", defaults.rate_limit_window_seconds),
            defaults.rate_limit_window_seconds,
        ),
        convert_rate_limit=_positive(
            "CONVERT_RATE_LIMIT", env_int("CONVERT_RATE_LIMIT", defaults.convert_rate_limit), defaults.convert_rate_limit
        ),
        general_rate_limit=_positive(
            "GENERAL_RATE_LIMIT", env_int("GENERAL_RATE_LIMIT", defaults.general_rate_limit), defaults.general_rate_limit
        ),
        login_rate_limit=_positive(
            "LOGIN_RATE_LIMIT", env_int("LOGIN_RATE_LIMIT", defaults.login_rate_limit), defaults.login_rate_limit
        ),
        public_analytics=env_bool("PUBLIC_ANALYTICS", True),
        base_url=os.environ.get("BASE_URL", "").rstrip("/"),
    )
