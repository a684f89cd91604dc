"""Route blueprints."""

from heic_converter.routes.api_routes import api_bp
from heic_converter.routes.web_routes import web_bp

__all__ = ["api_bp", "web_bp"]
