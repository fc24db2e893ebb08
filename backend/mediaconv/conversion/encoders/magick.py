"""Secondary encoder for formats Pillow handles poorly (TIFF, PSD, EPS, AI, PDF, HEIC), via ImageMagick."""
import logging
import shutil
from pathlib import Path
from typing import Optional

from mediaconv.conversion.encoders.base import EncoderError, EncoderUnavailableError, run_tool
from mediaconv.conversion.options import AbsoluteResize, ResizeSpec

logger = logging.getLogger("mediaconv.encoders.magick")

# Page-description sources need a density before they are read
_DENSITY_SOURCES = {".eps", ".ai", ".pdf"}


def resize_args(spec: ResizeSpec) -> list[str]:
    if isinstance(spec, AbsoluteResize):
        w, h = spec.width, spec.height
        if spec.crop == "cover" and w and h:
            return ["-resize", f"{w}x{h}^", "-gravity", "center", "-extent", f"{w}x{h}"]
        geometry = f"{w or ''}x{h or ''}>"  # ">" = only shrink
        return ["-resize", geometry]
    if spec.percent < 100:
        return ["-resize", f"{spec.percent}%"]
    return []


class SecondaryEncoder:
    def __init__(self, binary: Optional[str] = None, timeout: float = 120):
        self._configured = binary
        self.timeout = timeout
        self._binary: Optional[str] = None
        self._available: Optional[bool] = None

    def _find_binary(self) -> Optional[str]:
        if self._configured:
            return self._configured
        # ImageMagick 7 ships "magick"; 6 only "convert"
        return shutil.which("magick") or shutil.which("convert")

    def available(self) -> bool:
        """Probe once; the answer is cached for the process."""
        if self._available is None:
            binary = self._find_binary()
            if binary is None:
                self._available = False
            else:
                try:
                    run_tool([binary, "-version"], timeout=10, tool="ImageMagick")
                    self._binary = binary
                    self._available = True
                except EncoderError as e:
                    logger.warning("ImageMagick probe failed: %s", e)
                    self._available = False
            if not self._available:
                logger.warning("ImageMagick not found. Using Pillow for all image processing.")
        return self._available

    def build_command(self, src: Path, dest: Path, fmt: str, quality: int, resize: ResizeSpec) -> list[str]:
        cmd = [self._binary or "magick"]
        if src.suffix.lower() in _DENSITY_SOURCES:
            cmd += ["-density", "300"]
        # [0]: first page/layer of multi-page sources
        cmd.append(f"{src}[0]")
        cmd += resize_args(resize)
        cmd += ["-quality", str(quality)]
        cmd.append(f"{fmt}:{dest}")
        return cmd

    def encode(self, src: Path, dest: Path, fmt: str, quality: int, resize: ResizeSpec) -> int:
        if not self.available():
            raise EncoderUnavailableError("ImageMagick is not installed on this system")
        run_tool(self.build_command(src, dest, fmt, quality, resize), timeout=self.timeout, tool="ImageMagick")
        size = dest.stat().st_size
        logger.info("Converted %s -> %s (ImageMagick)", src.name, dest.name)
        return size
