from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from typing import Callable, Optional

import pytest

from mediaconv.config import Settings
from mediaconv.conversion import ConversionService, UploadedFile
from mediaconv.conversion.encoders import EncoderError, EncoderUnavailableError


class FakeRasterEncoder:
    """Writes a fixed-size output; fails for sources whose content starts with BROKEN."""

    def __init__(self, output_size: int = 40):
        self.output_size = output_size
        self.calls: list[dict] = []

    def encode(self, src, dest, fmt, quality, resize, density=None):
        self.calls.append({
            "src": src, "dest": dest, "fmt": fmt, "quality": quality,
            "resize": resize, "density": density, "src_exists": src.exists(),
        })
        if src.read_bytes().startswith(b"BROKEN"):
            raise EncoderError(f"cannot decode {src.name}")
        dest.write_bytes(b"r" * self.output_size)
        return self.output_size


class FakeVectorOptimizer:
    def __init__(self):
        self.calls: list[dict] = []

    def optimize(self, svg_text, precision=2, remove_view_box=False, cleanup_ids=True):
        self.calls.append({
            "precision": precision, "remove_view_box": remove_view_box, "cleanup_ids": cleanup_ids,
        })
        return "<svg/>"


class FakeSecondaryEncoder:
    def __init__(self, is_available: bool = True, unavailable_on_encode: bool = False, unavailable_after: Optional[int] = None):
        self.is_available = is_available
        self.unavailable_on_encode = unavailable_on_encode
        # number of successful encodes before the binary "disappears"
        self.unavailable_after = unavailable_after
        self.probes = 0
        self.calls: list[dict] = []

    def available(self) -> bool:
        self.probes += 1
        return self.is_available

    def encode(self, src, dest, fmt, quality, resize):
        self.calls.append({"src": src, "fmt": fmt})
        gone = self.unavailable_after is not None and len(self.calls) > self.unavailable_after
        if self.unavailable_on_encode or gone:
            raise EncoderUnavailableError("ImageMagick is not installed on this system")
        dest.write_bytes(b"m" * 30)
        return 30


class FakeVideoEncoder:
    def __init__(self, is_available: bool = True, error: Optional[Exception] = None, output_size: int = 50):
        self.is_available = is_available
        self.error = error
        self.output_size = output_size
        self.calls: list[dict] = []

    def available(self) -> bool:
        return self.is_available

    def encode(self, src, dest, options):
        self.calls.append({"src": src, "dest": dest, "options": options})
        if self.error is not None:
            dest.write_bytes(b"partial")
            raise self.error
        dest.write_bytes(b"v" * self.output_size)
        return self.output_size


@pytest.fixture
def uploads_dir(tmp_path: Path) -> Path:
    path = tmp_path / "uploads"
    path.mkdir()
    return path


@pytest.fixture
def settings(uploads_dir: Path) -> Settings:
    return Settings(
        uploads_dir=uploads_dir,
        database_url="sqlite:///:memory:",
        use_imagemagick=True,
    )


@pytest.fixture
def settings_factory(settings: Settings) -> Callable[..., Settings]:
    def _factory(**overrides) -> Settings:
        return replace(settings, **overrides)

    return _factory


@pytest.fixture
def make_upload(uploads_dir: Path) -> Callable[..., UploadedFile]:
    """Write a fake upload into the shared directory, named the way the upload layer names it."""
    counter = {"n": 0}

    def _factory(original_name: str, content: bytes = b"x" * 100) -> UploadedFile:
        counter["n"] += 1
        suffix = Path(original_name).suffix
        path = uploads_dir / f"files-{counter['n']}{suffix}"
        path.write_bytes(content)
        return UploadedFile(original_name=original_name, storage_path=path, size_bytes=len(content))

    return _factory


@pytest.fixture
def fakes():
    return {
        "raster": FakeRasterEncoder(),
        "vector": FakeVectorOptimizer(),
        "secondary": FakeSecondaryEncoder(),
        "video": FakeVideoEncoder(),
    }


@pytest.fixture
def service_factory(settings: Settings, fakes) -> Callable[..., ConversionService]:
    def _factory(settings_override: Optional[Settings] = None, svg_available: bool = True, **encoders) -> ConversionService:
        chosen = {**fakes, **encoders}
        return ConversionService(
            settings_override or settings,
            raster=chosen["raster"],
            vector=chosen["vector"],
            secondary=chosen["secondary"],
            video=chosen["video"],
            svg_probe=lambda: svg_available,
        )

    return _factory
