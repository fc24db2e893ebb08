"""Conversion inputs and per-file results."""
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from pathlib import Path
from typing import Optional


class FileStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


class MediaKind(str, Enum):
    VECTOR = "vector"
    SPECIALTY_RASTER = "specialty_raster"
    VIDEO = "video"
    RASTER = "raster"


@dataclass(frozen=True)
class UploadedFile:
    """A file already written to the shared directory by the upload layer."""

    original_name: str
    storage_path: Path
    size_bytes: int


@dataclass(frozen=True)
class ArtifactRecord:
    format: str
    filename: str
    size_bytes: int
    savings_percent: Decimal

    def to_dict(self) -> dict:
        return {
            "format": self.format,
            "filename": self.filename,
            "size": self.size_bytes,
            "savings": f"{self.savings_percent:.2f}",
        }


@dataclass(frozen=True)
class FileResult:
    name: str
    status: FileStatus
    original_size: Optional[int] = None
    artifacts: tuple[ArtifactRecord, ...] = field(default_factory=tuple)
    error: Optional[str] = None

    @classmethod
    def success(cls, name: str, original_size: int, artifacts: list[ArtifactRecord]) -> "FileResult":
        return cls(name=name, status=FileStatus.SUCCESS, original_size=original_size, artifacts=tuple(artifacts))

    @classmethod
    def failure(cls, name: str, error: str) -> "FileResult":
        return cls(name=name, status=FileStatus.ERROR, error=error)

    @property
    def ok(self) -> bool:
        return self.status == FileStatus.SUCCESS

    @property
    def output_bytes(self) -> int:
        return sum(a.size_bytes for a in self.artifacts)

    def to_dict(self) -> dict:
        if not self.ok:
            return {"name": self.name, "status": self.status.value, "error": self.error}
        return {
            "name": self.name,
            "status": self.status.value,
            "originalSize": self.original_size,
            "processedFiles": [a.to_dict() for a in self.artifacts],
        }


_TWO_PLACES = Decimal("0.01")


def compute_savings(original_size: int, produced_size: int, clamp_negative: bool = True) -> Decimal:
    """
    Percent saved, rounded half-up to 2 places.
    With clamp_negative, an output larger than its source reports 0.00 instead of a negative number.
    """
    if original_size <= 0:
        return Decimal("0.00")
    raw = (Decimal(original_size) - Decimal(produced_size)) / Decimal(original_size) * 100
    if clamp_negative and raw < 0:
        return Decimal("0.00")
    return raw.quantize(_TWO_PLACES, rounding=ROUND_HALF_UP)
