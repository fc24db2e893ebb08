"""Typed processing options, validated and defaulted once at the request boundary.

The wire format is the flat camelCase bag the web client sends, e.g.
``{"quality": 80, "formats": ["webp", "svg"], "resizeMode": "absolute", "width": 800}``.
Unknown keys are ignored.
"""
import re
from dataclasses import dataclass
from typing import Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from mediaconv.config import RASTER_OUTPUT_FORMATS, VECTOR_OUTPUT_FORMAT

CropMode = Literal["none", "cover"]

_FORMAT_ALIASES = {"jpeg": "jpg"}
_IMAGE_FORMATS = set(RASTER_OUTPUT_FORMATS) | {VECTOR_OUTPUT_FORMAT}
_BITRATE_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([kKmM]?)\s*$")
MAX_DIMENSION = 16384


@dataclass(frozen=True)
class PercentResize:
    percent: int = 100


@dataclass(frozen=True)
class AbsoluteResize:
    width: Optional[int] = None
    height: Optional[int] = None
    crop: CropMode = "none"


ResizeSpec = Union[PercentResize, AbsoluteResize]


class _OptionsBase(BaseModel):
    model_config = ConfigDict(
        extra="ignore",
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )

    resize: int = Field(100, ge=10, le=100)
    resize_mode: Literal["percent", "absolute"] = "percent"
    width: Optional[int] = Field(None, ge=1, le=MAX_DIMENSION)
    height: Optional[int] = Field(None, ge=1, le=MAX_DIMENSION)
    crop: CropMode = "none"

    @property
    def resize_spec(self) -> ResizeSpec:
        """Absolute mode needs at least one dimension; otherwise fall back to percent scaling."""
        if self.resize_mode == "absolute" and (self.width or self.height):
            return AbsoluteResize(width=self.width, height=self.height, crop=self.crop)
        return PercentResize(percent=self.resize)


class ImageOptions(_OptionsBase):
    """Options for an image batch (raster and vector files share one bag)."""

    quality: int = Field(80, ge=1, le=100)
    formats: tuple[str, ...] = ("webp",)
    precision: int = Field(2, ge=0, le=5)
    remove_view_box: bool = False
    cleanup_ids: bool = Field(True, validation_alias=AliasChoices("cleanupIds", "cleanupIDs", "cleanup_ids"))
    use_secondary: bool = Field(True, validation_alias=AliasChoices("useSecondary", "useImageMagick", "use_secondary"))

    @field_validator("formats", mode="before")
    @classmethod
    def _normalize_formats(cls, value):
        if isinstance(value, str):
            value = [v for v in value.split(",")]
        if not isinstance(value, (list, tuple, set, frozenset)):
            raise ValueError("formats must be a list of format names")
        out: list[str] = []
        for item in value:
            if not isinstance(item, str):
                raise ValueError(f"Invalid format: {item!r}")
            fmt = item.strip().lower()
            fmt = _FORMAT_ALIASES.get(fmt, fmt)
            if not fmt:
                continue
            if fmt not in _IMAGE_FORMATS:
                raise ValueError(f"Unsupported output format: {item}")
            if fmt not in out:
                out.append(fmt)
        if not out:
            raise ValueError("At least one output format is required")
        return tuple(out)


class VideoOptions(_OptionsBase):
    format: Literal["mp4", "webm", "mov", "mkv", "gif"] = "mp4"
    bitrate: str = "2M"
    preset: Literal["web", "quality", "fast"] = "web"
    audio: bool = True

    @field_validator("format", mode="before")
    @classmethod
    def _lower_format(cls, value):
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("bitrate")
    @classmethod
    def _check_bitrate(cls, value: str) -> str:
        if not _BITRATE_RE.match(value):
            raise ValueError(f"Invalid bitrate: {value!r} (expected e.g. '2M', '800k', '3')")
        return value.strip()

    @property
    def bitrate_mbps(self) -> float:
        """Bitrate hint in megabits per second. A bare number is megabits."""
        m = _BITRATE_RE.match(self.bitrate)
        number, unit = float(m.group(1)), m.group(2).lower()
        if unit == "k":
            return number / 1000.0
        return number

    @property
    def effective_audio(self) -> bool:
        """GIF has no audio track whatever the request says."""
        return self.audio and self.format != "gif"
