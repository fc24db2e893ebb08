"""File classification and the encoder routing table. Pure functions, no I/O."""
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, Optional

from mediaconv.config import (
    RASTER_OUTPUT_FORMATS,
    SPECIALTY_EXTENSIONS,
    VECTOR_EXTENSIONS,
    VECTOR_OUTPUT_FORMAT,
    VIDEO_EXTENSIONS,
)
from mediaconv.conversion.models import MediaKind


class Handler(str, Enum):
    RASTER = "raster"
    SECONDARY = "secondary"
    VECTOR = "vector"
    VIDEO = "video"


@dataclass(frozen=True)
class Route:
    handler: Handler
    fallback: Optional[Handler] = None


def classify(filename: str) -> MediaKind:
    ext = Path(filename).suffix.lower()
    if ext in VECTOR_EXTENSIONS:
        return MediaKind.VECTOR
    if ext in SPECIALTY_EXTENSIONS:
        return MediaKind.SPECIALTY_RASTER
    if ext in VIDEO_EXTENSIONS:
        return MediaKind.VIDEO
    return MediaKind.RASTER


def raster_formats(formats: Iterable[str]) -> list[str]:
    """Requested raster formats, in request order."""
    return [f for f in formats if f in RASTER_OUTPUT_FORMATS]


def needs_raster_output(formats: Iterable[str]) -> bool:
    return bool(raster_formats(formats))


def needs_vector_output(formats: Iterable[str]) -> bool:
    return VECTOR_OUTPUT_FORMAT in formats


_ROUTES = {
    (MediaKind.VECTOR, True): Route(Handler.VECTOR),
    (MediaKind.VECTOR, False): Route(Handler.VECTOR),
    (MediaKind.SPECIALTY_RASTER, True): Route(Handler.SECONDARY, fallback=Handler.RASTER),
    (MediaKind.SPECIALTY_RASTER, False): Route(Handler.RASTER),
    (MediaKind.RASTER, True): Route(Handler.RASTER),
    (MediaKind.RASTER, False): Route(Handler.RASTER),
    (MediaKind.VIDEO, True): Route(Handler.VIDEO),
    (MediaKind.VIDEO, False): Route(Handler.VIDEO),
}


def route(kind: MediaKind, secondary_available: bool) -> Route:
    """Pick the handler for a file kind given whether the secondary encoder can be used."""
    return _ROUTES[(kind, bool(secondary_available))]
