import importlib

from flask import Flask

from heic_converter import bootstrap
from heic_converter.factory import create_app
from heic_converter.services import file_service


def test_create_app_registers_expected_routes(monkeypatch, runtime_config):
    monkeypatch.setattr("heic_converter.factory.bootstrap.bootstrap_runtime", lambda app: None)
    app = create_app(runtime_config=runtime_config)

    rules = {rule.rule for rule in app.url_map.iter_rules()}
    expected = {
        "/",
        "/health",
        "/convert",
        "/download/<path:filename>",
        "/analytics",
        "/admin/analytics",
        "/admin/login",
    }
    assert expected.issubset(rules)


def test_create_app_wires_shared_services(monkeypatch, runtime_config):
    monkeypatch.setattr("heic_converter.factory.bootstrap.bootstrap_runtime", lambda app: None)
    app = create_app(runtime_config=runtime_config)

    assert set(app.extensions["rate_limiters"]) == {"convert", "general", "login"}
    assert app.config["RUNTIME_CONFIG"] is runtime_config
    assert app.config["MAX_CONTENT_LENGTH"] == runtime_config.max_content_length
    assert runtime_config.input_dir.is_dir()
    assert runtime_config.output_dir.is_dir()


def test_bootstrap_runtime_is_idempotent(monkeypatch, runtime_config):
    calls = {"thread_start": 0}

    class DummyThread:
        def __init__(self, *args, **kwargs):
            del args, kwargs

        def start(self):
            calls["thread_start"] += 1

        def is_alive(self):
            return calls["thread_start"] > 0

    monkeypatch.setattr(file_service.threading, "Thread", DummyThread)

    app = create_app(runtime_config=runtime_config)
    bootstrap.bootstrap_runtime(app)
    bootstrap.bootstrap_runtime(app)

    assert calls["thread_start"] == 1
    assert bootstrap.is_bootstrapped(app)


def test_root_app_shim_exposes_gunicorn_app(monkeypatch, tmp_path):
    monkeypatch.setenv("INPUT_DIR", str(tmp_path / "in"))
    monkeypatch.setenv("OUTPUT_DIR", str(tmp_path / "out"))
    monkeypatch.setattr("heic_converter.factory.bootstrap.bootstrap_runtime", lambda app: None)

    app_module = importlib.import_module("app")
    assert hasattr(app_module, "app")
    assert isinstance(app_module.app, Flask)
