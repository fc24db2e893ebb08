"""Primary raster encoder (Pillow). SVG sources are rasterised with CairoSVG first."""
import io
import logging
from pathlib import Path
from typing import Optional

from PIL import Image

from mediaconv.conversion.encoders.base import EncoderError, EncoderUnavailableError
from mediaconv.conversion.options import ResizeSpec
from mediaconv.conversion.resize import apply_resize

logger = logging.getLogger("mediaconv.encoders.raster")

# DPI used when rasterising vector sources
SVG_DENSITY = 300


def svg_rasterizer_available() -> bool:
    try:
        import cairosvg  # noqa: F401
    except (ImportError, OSError) as e:
        # OSError: the Python package is present but libcairo is not
        logger.warning("CairoSVG unavailable, SVG to raster conversion disabled: %s", e)
        return False
    return True


def _open_svg(src: Path, density: int) -> Image.Image:
    try:
        import cairosvg
    except (ImportError, OSError) as e:
        raise EncoderUnavailableError(f"SVG rasteriser not available: {e}") from e
    png_bytes = cairosvg.svg2png(url=str(src), dpi=density)
    img = Image.open(io.BytesIO(png_bytes))
    img.load()
    return img


def _save_kwargs(fmt: str, quality: int) -> dict:
    if fmt == "webp":
        return {"format": "WEBP", "quality": quality, "method": 6}
    if fmt == "jpg":
        return {"format": "JPEG", "quality": quality, "optimize": True}
    if fmt == "png":
        return {"format": "PNG", "optimize": True, "compress_level": 9}
    if fmt == "avif":
        return {"format": "AVIF", "quality": quality}
    raise EncoderError(f"Unsupported raster format: {fmt}")


def _prepare_mode(img: Image.Image, fmt: str) -> Image.Image:
    if fmt == "jpg":
        if img.mode in ("RGBA", "LA", "P"):
            rgba = img.convert("RGBA")
            flat = Image.new("RGB", rgba.size, (255, 255, 255))
            flat.paste(rgba, mask=rgba.getchannel("A"))
            return flat
        return img if img.mode == "RGB" else img.convert("RGB")
    if img.mode in ("RGB", "RGBA"):
        return img
    has_alpha = "A" in img.getbands() or "transparency" in img.info
    return img.convert("RGBA" if has_alpha else "RGB")


class RasterEncoder:
    """Encode one source image to one raster output file."""

    def encode(
        self,
        src: Path,
        dest: Path,
        fmt: str,
        quality: int,
        resize: ResizeSpec,
        density: Optional[int] = None,
    ) -> int:
        """Write dest and return its size in bytes. density set means src is SVG and is rasterised at that DPI."""
        save_kw = _save_kwargs(fmt, quality)
        try:
            img = _open_svg(src, density) if density else Image.open(src)
        except EncoderUnavailableError:
            raise
        except (OSError, ValueError) as e:
            raise EncoderError(f"Could not read {src.name}: {e}") from e
        with img:
            try:
                work = apply_resize(_prepare_mode(img, fmt), resize)
                work.save(str(dest), **save_kw)
            except (OSError, ValueError, KeyError) as e:
                # Pillow raises OSError for undecodable input and KeyError/ValueError for missing codecs
                raise EncoderError(f"Could not encode {src.name} to {fmt}: {e}") from e
        size = dest.stat().st_size
        logger.info("Converted %s -> %s", src.name, dest.name)
        return size
