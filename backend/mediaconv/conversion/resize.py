"""Resize policy shared by the image and video encoders: percent scaling, fit-inside, or cover-and-crop."""
import logging
from typing import Optional

from PIL import Image

from mediaconv.conversion.options import AbsoluteResize, PercentResize, ResizeSpec

logger = logging.getLogger("mediaconv.resize")


def cover_crop(img: Image.Image, target_width: int, target_height: int) -> Image.Image:
    """Scale so the image covers (target_width, target_height), then center-crop the excess."""
    w, h = img.size
    tw, th = target_width, target_height
    if w == tw and h == th:
        return img.copy()
    scale = max(tw / w, th / h)
    new_w, new_h = max(tw, int(round(w * scale))), max(th, int(round(h * scale)))
    resized = img.resize((new_w, new_h), Image.Resampling.LANCZOS)
    left = (new_w - tw) // 2
    top = (new_h - th) // 2
    return resized.crop((left, top, left + tw, top + th))


def fit_inside(
    img: Image.Image,
    target_width: Optional[int] = None,
    target_height: Optional[int] = None,
) -> Image.Image:
    """
    Scale to fit within target width and/or height, keeping aspect ratio.
    Never enlarges: an image already inside the bounds is returned unchanged.
    """
    w, h = img.size
    if target_width is None and target_height is None:
        return img.copy()
    if target_width is not None and target_height is not None:
        scale = min(target_width / w, target_height / h)
    elif target_width is not None:
        scale = target_width / w
    else:
        scale = target_height / h
    if scale >= 1.0:
        return img.copy()
    new_w = max(1, int(round(w * scale)))
    new_h = max(1, int(round(h * scale)))
    return img.resize((new_w, new_h), Image.Resampling.LANCZOS)


def scale_percent(img: Image.Image, percent: int) -> Image.Image:
    if percent >= 100:
        return img
    w, h = img.size
    new_w = max(1, int(round(w * percent / 100)))
    new_h = max(1, int(round(h * percent / 100)))
    return img.resize((new_w, new_h), Image.Resampling.LANCZOS)


def apply_resize(img: Image.Image, spec: ResizeSpec) -> Image.Image:
    if isinstance(spec, AbsoluteResize):
        if spec.crop == "cover" and spec.width and spec.height:
            return cover_crop(img, spec.width, spec.height)
        if spec.crop == "cover":
            # cover with one dimension is the same as fitting that dimension
            logger.debug("cover crop needs both width and height; fitting instead")
        return fit_inside(img, spec.width, spec.height)
    return scale_percent(img, spec.percent)


def _even(n: Optional[int]) -> Optional[int]:
    return max(2, n - n % 2) if n else n


def ffmpeg_scale_filter(spec: ResizeSpec) -> Optional[str]:
    """
    The -vf scale expression for a resize spec, or None when no scaling is needed.
    Output dimensions are always even (yuv420p).
    """
    if isinstance(spec, AbsoluteResize):
        w, h = _even(spec.width), _even(spec.height)
        if w and h:
            if spec.crop == "cover":
                return f"scale={w}:{h}:force_original_aspect_ratio=increase,crop={w}:{h}"
            return (
                f"scale='min({w},iw)':'min({h},ih)'"
                ":force_original_aspect_ratio=decrease:force_divisible_by=2"
            )
        if w:
            return f"scale='min({w},iw)':-2"
        if h:
            return f"scale=-2:'min({h},ih)'"
        return None
    if isinstance(spec, PercentResize) and spec.percent < 100:
        scale = spec.percent / 100
        # libx264/vp9 need even dimensions
        return f"scale=trunc(iw*{scale}/2)*2:trunc(ih*{scale}/2)*2"
    return None
