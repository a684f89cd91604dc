"""API routes."""

from flask import Blueprint

from heic_converter.services import analytics_service, conversion_service, security_service

api_bp = Blueprint("api", __name__)

api_bp.add_url_rule(
    "/convert",
    endpoint="convert",
    view_func=conversion_service.convert,
    methods=["POST"],
)
api_bp.add_url_rule(
    "/download/<path:filename>",
    endpoint="download",
    view_func=conversion_service.download,
    methods=["GET"],
)
api_bp.add_url_rule(
    "/analytics",
    endpoint="analytics",
    view_func=analytics_service.analytics,
    methods=["GET"],
)
api_bp.add_url_rule(
    "/admin/analytics",
    endpoint="admin_analytics",
    view_func=analytics_service.admin_analytics,
    methods=["GET"],
)
api_bp.add_url_rule(
    "/admin/login",
    endpoint="admin_login",
    view_func=security_service.admin_login,
    methods=["POST"],
)
