"""Flask app factory."""

from __future__ import annotations

from typing import Optional

from flask import Flask

from heic_converter import bootstrap
from heic_converter.config import RuntimeConfig, load_runtime_config
from heic_converter.core.rate_limit import RateLimiter
from heic_converter.engine import codec as heic_codec
from heic_converter.engine.convert import Codec
from heic_converter.routes.api_routes import api_bp
from heic_converter.routes.web_routes import web_bp
from heic_converter.services import conversion_service
from heic_converter.services.analytics_service import UsageCounters
from heic_converter.services.file_service import CleanupScheduler


def build_rate_limiters(config: RuntimeConfig) -> dict[str, RateLimiter]:
    window = config.rate_limit_window_seconds
    return {
        "convert": RateLimiter("conversion", config.convert_rate_limit, window),
        "general": RateLimiter("general", config.general_rate_limit, window),
        "login": RateLimiter("login", config.login_rate_limit, window),
    }


def create_app(
    runtime_config: Optional[RuntimeConfig] = None,
    codec: Optional[Codec] = None,
    cleanup_scheduler: Optional[CleanupScheduler] = None,
) -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)

    config = runtime_config or load_runtime_config()
    conversion_service.configure_app(app, config)

    scheduler = cleanup_scheduler or CleanupScheduler()
    rate_limiters = build_rate_limiters(config)
    for limiter in rate_limiters.values():
        scheduler.add_sweep_hook(limiter.cleanup)

    app.extensions["usage_counters"] = UsageCounters()
    app.extensions["cleanup_scheduler"] = scheduler
    app.extensions["rate_limiters"] = rate_limiters
    app.extensions["codec"] = codec or heic_codec.convert

    app.register_blueprint(web_bp)
    app.register_blueprint(api_bp)
    conversion_service.register_error_handlers(app)

    conversion_service.log_effective_config(config)
    bootstrap.bootstrap_runtime(app)
    return app
