"""Flask handlers for HEIC to JPEG conversion, downloads and health checks."""

import logging
import os
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List

from flask import current_app, has_request_context, jsonify, request, send_file
from flask_cors import CORS
from werkzeug.datastructures import FileStorage
from werkzeug.exceptions import HTTPException, NotFound, RequestEntityTooLarge
from werkzeug.utils import secure_filename

from heic_converter.config import RuntimeConfig
from heic_converter.core.exceptions import (
    ArchiveError,
    ConverterError,
    PayloadTooLargeError,
    RateLimitError,
    ValidationError,
)
from heic_converter.core.utils import (
    archive_filename,
    intake_filename,
    new_session_id,
    normalize_quality,
)
from heic_converter.engine.archive import package_archive
from heic_converter.engine.convert import (
    BatchResult,
    ConversionFailure,
    ConversionSuccess,
    UploadedFile,
    convert_batch,
)
from heic_converter.services.file_service import CleanupScheduler
from heic_converter.services.security_service import (
    log_security_event,
    rate_limited,
    require_api_key,
)

# Config
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    stream=sys.stdout,
)
logger = logging.getLogger(__name__)

SERVICE_VERSION = "1.0.0"
UPLOAD_FIELD = "file"


def _config() -> RuntimeConfig:
    return current_app.config["RUNTIME_CONFIG"]


def _scheduler() -> CleanupScheduler:
    return current_app.extensions["cleanup_scheduler"]


_BOX_LABEL_WIDTH = 30
_BOX_VALUE_WIDTH = 34
_BOX_INNER_WIDTH = _BOX_LABEL_WIDTH + _BOX_VALUE_WIDTH + 5


def _truncate(value: Any, width: int) -> str:
    text = str(value)
    if len(text) <= width:
        return text
    return text[: max(0, width - 3)] + "..."


def _box(title: str, rows: list[tuple[str, str]]) -> list[str]:
    title_text = f" {title} "
    title_border = "+" + "=" * _BOX_INNER_WIDTH + "+"
    row_border = (
        "+"
        + "-" * (_BOX_LABEL_WIDTH + 2)
        + "+"
        + "-" * (_BOX_VALUE_WIDTH + 2)
        + "+"
    )
    lines = [title_border, f"|{title_text:^{_BOX_INNER_WIDTH}}|", title_border]
    lines.append(row_border)
    for label, value in rows:
        safe_label = _truncate(label, _BOX_LABEL_WIDTH)
        safe_value = _truncate(value, _BOX_VALUE_WIDTH)
        lines.append(f"| {safe_label:<{_BOX_LABEL_WIDTH}} | {safe_value:<{_BOX_VALUE_WIDTH}} |")
    lines.append(row_border)
    return lines


def _format_env_value(name: str, effective: Any) -> str:
    raw = os.environ.get(name)
    if raw is None:
        return f"{effective} (default)"
    return f"{effective} (env)"


def log_effective_config(config: RuntimeConfig) -> None:
    rows = [
        ("Mode", "batch" if config.batch_mode else "single"),
        ("Input dir", _format_env_value("INPUT_DIR", config.input_dir)),
        ("Output dir", _format_env_value("OUTPUT_DIR", config.output_dir)),
        ("Archive dir", _format_env_value("ARCHIVE_DIR", config.archive_dir)),
        ("JPEG quality", _format_env_value("JPEG_QUALITY", config.jpeg_quality)),
        ("Max files/request", _format_env_value("MAX_FILES", config.max_files)),
        ("Max file size (MB)", _format_env_value("MAX_FILE_SIZE_MB", config.max_file_size_mb)),
        ("API key auth", "on" if config.auth_enabled else "off"),
        ("Admin login", "on" if config.admin_password_hash else "off"),
        ("Cleanup short/long (s)", f"{config.cleanup_short_delay_seconds}/{config.cleanup_long_delay_seconds}"),
        ("Convert rate limit", f"{config.convert_rate_limit}/{config.rate_limit_window_seconds}s"),
        ("Public analytics", str(config.public_analytics)),
    ]
    for line in _box("HEIC converter config", rows):
        logger.info(line)


def configure_app(app, config: RuntimeConfig) -> None:
    """Apply Flask app config values required by this service layer."""
    app.config["RUNTIME_CONFIG"] = config
    app.config["MAX_CONTENT_LENGTH"] = config.max_content_length
    for folder in (config.input_dir, config.output_dir, config.archive_dir):
        folder.mkdir(parents=True, exist_ok=True)
    if config.allowed_origins:
        CORS(
            app,
            origins=list(config.allowed_origins),
            allow_headers=["Content-Type", "Authorization", "X-API-Key"],
            expose_headers=["Content-Disposition", "Retry-After"],
        )


def register_error_handlers(app) -> None:
    """Register HTTP and framework error handlers."""
    app.register_error_handler(ConverterError, handle_converter_error)
    app.register_error_handler(RequestEntityTooLarge, handle_large_file)
    app.register_error_handler(HTTPException, handle_http_exception)
    app.register_error_handler(Exception, handle_error)


def build_download_url(path_str: str) -> str:
    """
    Build a public download URL from a local path or filename.

    Falls back to the request host, then to a relative /download path.
    """
    name = Path(path_str).name
    rel = f"/download/{name}"
    base = _config().base_url
    if not base and has_request_context():
        base = request.url_root.rstrip('/')
    return f"{base}{rel}" if base else rel


def create_error_response(error: Exception, status_code: int = 500):
    """Create standardized error response.

    Returns both 'error' (for simple clients) and 'error_type'/'error_message'.
    """
    if isinstance(error, ConverterError):
        payload = {
            "success": False,
            "error": error.message,
            "error_type": error.error_type,
            "error_message": error.message,
        }
        if isinstance(error, RateLimitError):
            payload["retryAfter"] = error.retry_after
        return jsonify(payload), status_code

    message = error.description if isinstance(error, HTTPException) else "Internal server error"
    return jsonify({
        "success": False,
        "error": message,
        "error_type": type(error).__name__ if isinstance(error, HTTPException) else "UnknownError",
        "error_message": message,
    }), status_code


# Error handlers
def handle_converter_error(e: ConverterError):
    if e.status_code >= 500:
        logger.error("%s on %s %s: %s", e.error_type, request.method, request.path, e.message)
    else:
        logger.info("%s on %s %s: %s", e.error_type, request.method, request.path, e.message)
    response, status = create_error_response(e, e.status_code)
    if isinstance(e, RateLimitError):
        response.headers["Retry-After"] = str(e.retry_after)
    return response, status


def handle_large_file(e):
    max_mb = _config().max_file_size_mb
    message = f"File too large (max {max_mb}MB per file)"
    return jsonify({
        "success": False,
        "error": message,
        "error_type": "FileTooLarge",
        "error_message": message,
    }), 413


def handle_http_exception(e):
    if isinstance(e, NotFound):
        logger.info("404 %s %s", request.method, request.path)
    else:
        logger.warning("HTTP %s on %s %s: %s", e.code, request.method, request.path, e.description)
    return create_error_response(e, e.code or 400)


def handle_error(e):
    logger.exception("Unhandled error")
    return create_error_response(e, 500)


def _discard(paths: List[Path]) -> None:
    for path in paths:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.error(f"[cleanup] Could not remove {path.name}: {e}")


def save_uploads(session_id: str, uploads: List[FileStorage], config: RuntimeConfig) -> List[UploadedFile]:
    """Store uploads under the intake directory, enforcing the per-file ceiling.

    On rejection every file saved for this request is removed before raising.
    """
    saved: List[UploadedFile] = []
    for index, upload in enumerate(uploads):
        original_name = Path(upload.filename or "").name
        # Index prefix keeps names unique when a batch repeats a filename.
        name = intake_filename(session_id, original_name)
        if len(uploads) > 1:
            name = f"{session_id}-{index:02d}{name[len(session_id):]}"
        path = config.input_dir / name
        try:
            upload.save(path)
            size = path.stat().st_size
        except OSError:
            _discard([path] + [item.path for item in saved])
            raise
        saved.append(UploadedFile(
            path=path,
            original_name=original_name,
            mimetype=upload.mimetype or "application/octet-stream",
            size=size,
        ))
        if size > config.max_file_size_bytes:
            _discard([item.path for item in saved])
            raise PayloadTooLargeError.for_file(original_name, size / (1024 * 1024), config.max_file_size_mb)
    return saved


def _success_payload(outcome: ConversionSuccess) -> Dict[str, Any]:
    return {
        "filename": outcome.output_path.name,
        "originalName": outcome.original_name,
        "fileSize": round(outcome.byte_size / (1024 * 1024), 2),
        "processingTime": outcome.elapsed_ms,
        "downloadUrl": build_download_url(outcome.output_path.name),
    }


def _batch_payload(session_id: str, result: BatchResult, processing_ms: int) -> Dict[str, Any]:
    successes = result.successes
    payload: Dict[str, Any] = {
        "success": result.succeeded > 0,
        "successCount": result.succeeded,
        "totalFiles": result.total,
        "files": [_success_payload(outcome) for outcome in successes],
        "errors": result.errors,
        "zipFile": None,
        "totalSize": round(sum(outcome.byte_size for outcome in successes) / (1024 * 1024), 2),
        "processingTime": processing_ms,
        "sessionId": session_id,
    }
    if result.archive is not None:
        payload["zipFile"] = result.archive.path.name
        payload["downloadUrl"] = build_download_url(result.archive.path.name)
        payload["totalSize"] = round(result.archive.total_size / (1024 * 1024), 2)
    elif len(successes) == 1:
        payload["filename"] = successes[0].output_path.name
        payload["downloadUrl"] = build_download_url(successes[0].output_path.name)
    return payload


@rate_limited("convert")
@require_api_key
def convert():
    """
    Convert uploaded HEIC/HEIF files to JPEG.

    Accepts multipart/form-data with one 'file' field (several in batch mode)
    and an optional 'quality' (1-100) form field or query parameter.
    """
    start_time = time.perf_counter()
    config = _config()

    uploads = [upload for upload in request.files.getlist(UPLOAD_FIELD) if upload and upload.filename]
    if not uploads:
        raise ValidationError(f"No file uploaded. Send the image in the '{UPLOAD_FIELD}' field.")
    if len(uploads) > config.max_files:
        raise ValidationError.too_many_files(len(uploads), config.max_files)

    raw_quality = request.form.get("quality")
    if raw_quality is None:
        raw_quality = request.args.get("quality")
    quality = normalize_quality(raw_quality, config.jpeg_quality)

    session_id = new_session_id()
    intake = save_uploads(session_id, uploads, config)
    logger.info(
        "[%s] Convert request: %d file(s), %.2fMB, quality=%s",
        session_id,
        len(intake),
        sum(item.size for item in intake) / (1024 * 1024),
        quality,
    )

    result = convert_batch(
        intake,
        config.max_files,
        config.output_dir,
        quality,
        codec=current_app.extensions["codec"],
    )

    if config.batch_mode and result.succeeded > 1:
        archive_path = config.archive_dir / archive_filename(session_id)
        try:
            result.archive = package_archive(
                [outcome.output_path for outcome in result.successes],
                archive_path,
            )
        except ArchiveError as exc:
            logger.error("[%s] Archive failed; returning individual files", session_id)
            result.archive_error = exc

    processing_ms = int(round((time.perf_counter() - start_time) * 1000))
    recorded = result if config.batch_mode else result.outcomes[0]
    current_app.extensions["usage_counters"].record_attempt(recorded, processing_ms)

    artifacts = [item.path for item in intake]
    artifacts.extend(outcome.output_path for outcome in result.successes)
    if result.archive is not None:
        artifacts.append(result.archive.path)
    _scheduler().schedule(artifacts, config.cleanup_long_delay_seconds)

    logger.info(
        "[%s] Done: %d/%d converted in %dms",
        session_id,
        result.succeeded,
        result.total,
        processing_ms,
    )

    if not config.batch_mode:
        outcome = result.outcomes[0]
        if isinstance(outcome, ConversionFailure):
            raise outcome.error or ConverterError(outcome.message)
        payload = {"success": True, **_success_payload(outcome)}
        payload.update({"processingTime": processing_ms, "successCount": 1, "totalFiles": 1})
        return jsonify(payload), 200

    return jsonify(_batch_payload(session_id, result, processing_ms)), 200


@rate_limited("general")
def download(filename):
    """
    Direct file download endpoint.

    Serves converted JPEGs (and ZIP archives in batch mode). Downloaded files
    are removed CLEANUP_SHORT_DELAY_SECONDS later.
    """
    config = _config()

    # Security: Prevent path traversal attacks
    safe_filename = secure_filename(filename)
    if not safe_filename or safe_filename != filename or ".." in filename:
        log_security_event("download_rejected", filename=filename[:100])
        return jsonify({"success": False, "error": "Invalid filename"}), 400

    suffix = Path(safe_filename).suffix.lower()
    if suffix not in config.download_extensions:
        logger.warning(f"[download] Unsupported extension rejected: {safe_filename}")
        return jsonify({"success": False, "error": "Invalid file type"}), 400

    folder = config.archive_dir if suffix == ".zip" else config.output_dir
    file_path = folder / safe_filename

    # Extra security: Verify file is within the served folder
    try:
        file_path.resolve().relative_to(folder.resolve())
    except ValueError:
        log_security_event("download_rejected", filename=filename[:100])
        return jsonify({"success": False, "error": "Invalid filename"}), 400

    if not file_path.is_file():
        logger.info(f"[download] File not found: {safe_filename}")
        return jsonify({"success": False, "error": "File not found"}), 404

    _scheduler().schedule([file_path], config.cleanup_short_delay_seconds)
    logger.info(f"[download] Serving file: {file_path.name} ({file_path.stat().st_size / (1024*1024):.2f}MB)")
    mimetype = "application/zip" if suffix == ".zip" else "image/jpeg"
    return send_file(file_path, mimetype=mimetype, as_attachment=True, download_name=safe_filename)


def health():
    """Liveness probe."""
    config = _config()
    return jsonify({
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z"),
        "version": SERVICE_VERSION,
        "mode": "batch" if config.batch_mode else "single",
        "pendingCleanup": len(_scheduler().pending()),
    })


def index():
    """Describe the service and its endpoints."""
    config = _config()
    return jsonify({
        "service": "HEIC to JPEG converter",
        "version": SERVICE_VERSION,
        "mode": "batch" if config.batch_mode else "single",
        "maxFiles": config.max_files,
        "maxFileSizeMB": config.max_file_size_mb,
        "endpoints": {
            "convert": "POST /convert",
            "download": "GET /download/<filename>",
            "analytics": "GET /analytics",
            "health": "GET /health",
        },
    })
