"""Shared utility functions for the conversion service.

Contains:
- env_* helpers: read typed values from the environment
- get_file_size_mb: Get file size in MB
- session and filename helpers used to namespace intake/output artifacts
- normalize_quality: lenient JPEG quality parsing
"""

import logging
import os
import re
import uuid
from pathlib import Path
from typing import Any

from werkzeug.utils import secure_filename

DEFAULT_JPEG_QUALITY: int = 85
MAX_STEM_LENGTH: int = 100
ACCEPTED_EXTENSIONS: tuple[str, ...] = (".heic", ".heif")

_ACCEPTED_SUFFIX_RE = re.compile(r"\.(heic|heif)$", re.IGNORECASE)
_DOT_RUN_RE = re.compile(r"\.{2,}")

logger = logging.getLogger(__name__)


def env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes")


def env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("[settings] Invalid %s=%s; using %s", name, raw, default)
        return default


def env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("[settings] Invalid %s=%s; using %s", name, raw, default)
        return default


def env_list(name: str) -> tuple[str, ...]:
    raw = os.environ.get(name) or ""
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def get_file_size_mb(path: Path) -> float:
    """Get file size in megabytes.

    Args:
        path: Path to the file.

    Returns:
        File size in MB.
    """
    return path.stat().st_size / (1024 * 1024)


def new_session_id() -> str:
    """Return a collision-resistant identifier for one conversion request."""
    return uuid.uuid4().hex


def has_accepted_extension(name: str) -> bool:
    return bool(name) and bool(_ACCEPTED_SUFFIX_RE.search(name))


def sanitize_filename(name: str) -> str:
    """Return a path-safe version of an uploaded filename.

    The stem goes through Werkzeug's ``secure_filename`` and is truncated; the
    extension is kept separately so names made only of non-ASCII characters
    still end in ``.heic``. Runs of dots collapse to one so that derived names
    always pass the download filename check.
    """
    path = Path(name or "")
    suffix = secure_filename(path.suffix.lstrip("."))
    stem = _DOT_RUN_RE.sub(".", secure_filename(path.stem))[:MAX_STEM_LENGTH].strip(".") or "image"
    return f"{stem}.{suffix}" if suffix else stem


def intake_filename(session_id: str, original_name: str) -> str:
    return f"{session_id}-{sanitize_filename(original_name)}"


def output_filename(name: str) -> str:
    """Swap a .heic/.heif extension (any case) for .jpg."""
    name = Path(name).name
    if _ACCEPTED_SUFFIX_RE.search(name):
        return _ACCEPTED_SUFFIX_RE.sub(".jpg", name)
    return f"{Path(name).stem}.jpg"


def archive_filename(session_id: str) -> str:
    return f"heic-{session_id}.zip"


def normalize_quality(raw: Any, default: int = DEFAULT_JPEG_QUALITY) -> int:
    """Parse a JPEG quality value, falling back to ``default`` instead of failing.

    Non-numeric input and values outside [1, 100] are replaced by ``default``
    and logged; this never raises.
    """
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return default
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        logger.warning("Invalid quality=%r; using %s", raw, default)
        return default
    if not 1 <= value <= 100:
        logger.warning("Quality %s outside 1-100; using %s", value, default)
        return default
    return value


def mask_secret(value: str | None) -> str:
    if not value:
        return "none"
    return f"***{value[-4:]}"
