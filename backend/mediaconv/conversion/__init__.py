from .service import ConversionService
from .models import ArtifactRecord, FileResult, FileStatus, MediaKind, UploadedFile
from .options import ImageOptions, VideoOptions

__all__ = [
    "ArtifactRecord",
    "ConversionService",
    "FileResult",
    "FileStatus",
    "ImageOptions",
    "MediaKind",
    "UploadedFile",
    "VideoOptions",
]
