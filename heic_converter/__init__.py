"""HEIC to JPEG conversion service package."""

__all__ = ["create_app"]


def create_app(*args, **kwargs):
    """Lazily import app factory to avoid import-time side effects."""
    from heic_converter.factory import create_app as _create_app

    return _create_app(*args, **kwargs)
