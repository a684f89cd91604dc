"""API-key and admin-token authentication, rate limiting, security event logging."""

import json
import logging
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Dict, Optional

import bcrypt
from flask import current_app, jsonify, request
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from heic_converter.config import RuntimeConfig
from heic_converter.core.exceptions import AuthError, PayloadTooLargeError, RateLimitError, ValidationError
from heic_converter.core.rate_limit import RateLimiter
from heic_converter.core.utils import mask_secret

logger = logging.getLogger(__name__)

TOKEN_SALT = "heic-converter-admin"


def _config() -> RuntimeConfig:
    return current_app.config["RUNTIME_CONFIG"]


def get_client_ip() -> str:
    forwarded = request.headers.get("X-Forwarded-For", "")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.remote_addr or "unknown"


def log_security_event(event: str, **details: Any) -> None:
    """Log a security event and count it in the usage counters."""
    entry: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        "event": event,
        "ip": get_client_ip(),
        "path": request.path,
        "userAgent": request.headers.get("User-Agent"),
        **details,
    }
    logger.warning("[security] %s", json.dumps(entry, default=str))
    current_app.extensions["usage_counters"].record_security_event(event)


def rate_limited(limiter_name: str):
    """Decorator applying one of the app's named rate limiters per client IP."""
    def decorator(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            limiter: RateLimiter = current_app.extensions["rate_limiters"][limiter_name]
            try:
                limiter.check(get_client_ip())
            except RateLimitError:
                log_security_event("rate_limited", limiter=limiter_name)
                raise
            return f(*args, **kwargs)
        return decorated
    return decorator


def require_api_key(f):
    """Decorator to require an API key when API_KEYS is configured."""
    @wraps(f)
    def decorated(*args, **kwargs):
        config = _config()
        if not config.auth_enabled:
            return f(*args, **kwargs)  # No keys configured = open access

        api_key = request.headers.get("X-API-Key") or request.args.get("api_key")
        if not api_key:
            log_security_event("api_key_missing")
            raise AuthError("API key required. Provide it in the X-API-Key header or api_key query parameter.")
        if api_key not in config.api_keys:
            log_security_event("api_key_invalid", apiKey=mask_secret(api_key))
            raise AuthError("Invalid API key")

        logger.debug("API key accepted on %s: %s", request.path, mask_secret(api_key))
        return f(*args, **kwargs)
    return decorated


def _serializer(config: RuntimeConfig) -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(config.jwt_secret, salt=TOKEN_SALT)


def issue_admin_token(config: RuntimeConfig, username: str) -> str:
    return _serializer(config).dumps({"username": username, "role": "admin"})


def verify_admin_token(config: RuntimeConfig, token: str) -> Dict[str, Any]:
    """Return the token payload, or raise AuthError (403) if invalid or expired."""
    try:
        payload = _serializer(config).loads(token, max_age=config.admin_token_ttl_seconds)
    except SignatureExpired as exc:
        raise AuthError("Token expired", status_code=403) from exc
    except BadSignature as exc:
        raise AuthError("Invalid token", status_code=403) from exc
    if not isinstance(payload, dict) or payload.get("role") != "admin":
        raise AuthError("Invalid token", status_code=403)
    return payload


def check_admin_credentials(config: RuntimeConfig, username: str, password: str) -> bool:
    if not config.admin_password_hash:
        return False
    if username != config.admin_username:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), config.admin_password_hash.encode("utf-8"))
    except ValueError:
        logger.error("ADMIN_PASSWORD_HASH is not a valid bcrypt hash")
        return False


def require_admin(f):
    """Decorator to require a Bearer admin token."""
    @wraps(f)
    def decorated(*args, **kwargs):
        auth_header = request.headers.get("Authorization")
        if not auth_header:
            raise AuthError("Access token required")
        if not auth_header.startswith("Bearer "):
            raise AuthError("Authorization must use Bearer token format")
        try:
            verify_admin_token(_config(), auth_header[7:].strip())
        except AuthError:
            log_security_event("admin_token_invalid")
            raise
        return f(*args, **kwargs)
    return decorated


def require_admin_unless_public(f):
    """Decorator gating an endpoint behind require_admin when PUBLIC_ANALYTICS is off."""
    guarded = require_admin(f)

    @wraps(f)
    def decorated(*args, **kwargs):
        if _config().public_analytics:
            return f(*args, **kwargs)
        return guarded(*args, **kwargs)
    return decorated


def _read_json_body() -> Dict[str, Any]:
    config = _config()
    if request.content_length and request.content_length > config.max_json_body_bytes:
        raise PayloadTooLargeError(f"Request body too large (limit {config.max_json_body_mb}MB)")
    data: Optional[Any] = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON body")
    return data


@rate_limited("login")
def admin_login():
    """Exchange admin credentials for a bearer token valid ADMIN_TOKEN_TTL_SECONDS."""
    config = _config()
    if not config.admin_password_hash:
        return jsonify({"success": False, "error": "Admin login is not configured"}), 503

    data = _read_json_body()
    username = data.get("username")
    password = data.get("password")
    if not isinstance(username, str) or not isinstance(password, str):
        raise ValidationError("username and password are required")

    if not check_admin_credentials(config, username, password):
        log_security_event("admin_login_failed", username=username[:50])
        raise AuthError("Invalid credentials")

    token = issue_admin_token(config, username)
    hours = config.admin_token_ttl_seconds / 3600
    logger.info("[security] Admin login succeeded from %s", get_client_ip())
    return jsonify({
        "success": True,
        "token": token,
        "expiresIn": f"{hours:g}h",
    })
