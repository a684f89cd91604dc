"""Runtime bootstrap for the background cleanup sweep."""

from __future__ import annotations

import threading

from flask import Flask

_bootstrap_lock = threading.Lock()
_bootstrapped_apps: set[int] = set()


def bootstrap_runtime(app: Flask) -> None:
    """Start background services once per application."""
    with _bootstrap_lock:
        if id(app) in _bootstrapped_apps:
            return

        config = app.config["RUNTIME_CONFIG"]
        app.extensions["cleanup_scheduler"].start(config.cleanup_sweep_interval_seconds)
        _bootstrapped_apps.add(id(app))


def is_bootstrapped(app: Flask) -> bool:
    """Expose runtime bootstrap state for diagnostics/tests."""
    return id(app) in _bootstrapped_apps
