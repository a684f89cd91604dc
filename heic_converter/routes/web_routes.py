"""Index and health routes."""

from flask import Blueprint

from heic_converter.services import conversion_service

web_bp = Blueprint("web", __name__)


@web_bp.get("/")
def index():
    return conversion_service.index()


@web_bp.get("/health")
def health():
    return conversion_service.health()
