from pathlib import Path

import pytest
from PIL import Image

from heic_converter.config import RuntimeConfig
from heic_converter.core.exceptions import CodecError
from heic_converter.factory import create_app
from heic_converter.services.file_service import CleanupScheduler

PNG_MAGIC = b"\x89PNG\r\n\x1a\n"
# ISO-BMFF "ftyp" box with the heic brand; enough for the fake codec below.
HEIC_STUB = b"\x00\x00\x00\x18ftypheic\x00\x00\x00\x00mif1heic" + b"\x00" * 64


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def fake_codec(input_path: Path, output_path: Path, quality: int) -> Path:
    """Stand-in for the HEIF codec: real JPEG output, rejects PNG content."""
    data = Path(input_path).read_bytes()
    if data.startswith(PNG_MAGIC):
        raise CodecError.for_file(Path(input_path).name, "not a HEIC/HEIF image (detected PNG)")
    if data.startswith(b"EMPTY"):
        Path(output_path).write_bytes(b"")
        return Path(output_path)
    Image.new("RGB", (16, 16), (200, 40, 40)).save(output_path, format="JPEG", quality=quality)
    return Path(output_path)


def png_bytes() -> bytes:
    from io import BytesIO

    buffer = BytesIO()
    Image.new("RGB", (4, 4), (0, 0, 255)).save(buffer, format="PNG")
    return buffer.getvalue()


def write_heic(path: Path, payload: bytes = HEIC_STUB) -> Path:
    path.write_bytes(payload)
    return path


@pytest.fixture
def runtime_config(tmp_path: Path) -> RuntimeConfig:
    return RuntimeConfig(
        input_dir=tmp_path / "uploads",
        output_dir=tmp_path / "converted",
        archive_dir=tmp_path / "archives",
        jwt_secret="test-secret",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_app(monkeypatch, clock):
    monkeypatch.setattr("heic_converter.factory.bootstrap.bootstrap_runtime", lambda app: None)

    def _make(config: RuntimeConfig, codec=fake_codec):
        scheduler = CleanupScheduler(clock=clock)
        app = create_app(runtime_config=config, codec=codec, cleanup_scheduler=scheduler)
        app.config["TESTING"] = True
        return app

    return _make


@pytest.fixture
def app(make_app, runtime_config):
    return make_app(runtime_config)


@pytest.fixture
def client(app):
    return app.test_client()
