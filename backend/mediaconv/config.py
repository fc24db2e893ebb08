"""Application configuration. Loads from environment and .env file."""
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent

# Supported inputs (routing uses these; see conversion.routing)
VECTOR_EXTENSIONS = {".svg"}
SPECIALTY_EXTENSIONS = {".tiff", ".tif", ".psd", ".eps", ".ai", ".pdf", ".heic", ".heif"}
VIDEO_EXTENSIONS = {".mp4", ".webm", ".mov", ".avi", ".mkv", ".m4v", ".flv", ".wmv"}

# Outputs
RASTER_OUTPUT_FORMATS = ("webp", "png", "jpg", "avif")
VECTOR_OUTPUT_FORMAT = "svg"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

logger = logging.getLogger("mediaconv")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    return int(raw) if raw else default


@dataclass(frozen=True)
class Settings:
    """Startup configuration, resolved once and passed explicitly to the service, scheduler and routes."""

    uploads_dir: Path
    database_url: str
    disable_limits: bool = False
    use_imagemagick: bool = True
    max_upload_bytes: Optional[int] = 500 * 1024 * 1024  # None = unlimited
    max_files_per_batch: Optional[int] = 50
    file_expiry_seconds: int = 10 * 60
    cleanup_interval_seconds: int = 60
    ffmpeg_path: str = "ffmpeg"
    magick_path: Optional[str] = None
    video_timeout_seconds: int = 300
    magick_timeout_seconds: int = 120
    clamp_negative_savings: bool = True
    host: str = "0.0.0.0"
    port: int = 3210
    cors_origins: tuple[str, ...] = field(default_factory=tuple)
    log_level: str = "INFO"


def load_settings(env_file: Optional[Path] = None) -> Settings:
    """Build Settings from the environment. .env is loaded from cwd, then backend/.env, then project root .env."""
    if env_file is not None:
        load_dotenv(env_file)
    load_dotenv()
    load_dotenv(BASE_DIR / ".env")
    load_dotenv(BASE_DIR.parent / ".env")

    uploads_dir = Path(os.getenv("UPLOADS_DIR", str(BASE_DIR / "uploads")))
    database_url = os.getenv("DATABASE_URL", "").strip()
    if not database_url:
        db_path = BASE_DIR / "data" / "mediaconv.db"
        database_url = f"sqlite:///{db_path}"

    # Desktop mode: no size/count limits and the shared directory is wiped at startup
    disable_limits = _env_bool("DISABLE_LIMITS", False)
    max_upload_bytes: Optional[int] = _env_int("MAX_UPLOAD_MB", 500) * 1024 * 1024
    max_files: Optional[int] = _env_int("MAX_FILES_PER_BATCH", 50)
    if disable_limits:
        max_upload_bytes = None
        max_files = None

    return Settings(
        uploads_dir=uploads_dir,
        database_url=database_url,
        disable_limits=disable_limits,
        use_imagemagick=not _env_bool("DISABLE_IMAGEMAGICK", False),
        max_upload_bytes=max_upload_bytes,
        max_files_per_batch=max_files,
        file_expiry_seconds=_env_int("FILE_EXPIRY_SECONDS", 10 * 60),
        cleanup_interval_seconds=_env_int("CLEANUP_INTERVAL_SECONDS", 60),
        ffmpeg_path=os.getenv("FFMPEG_PATH", "").strip() or "ffmpeg",
        magick_path=os.getenv("MAGICK_PATH", "").strip() or None,
        video_timeout_seconds=_env_int("VIDEO_TIMEOUT_SECONDS", 300),
        magick_timeout_seconds=_env_int("MAGICK_TIMEOUT_SECONDS", 120),
        clamp_negative_savings=_env_bool("CLAMP_NEGATIVE_SAVINGS", True),
        host=os.getenv("HOST", "0.0.0.0"),
        port=_env_int("PORT", 3210),
        # CORS: comma-separated origins, e.g. "http://localhost:5173,http://127.0.0.1:5173"
        cors_origins=tuple(o.strip() for o in os.getenv("CORS_ORIGINS", "").split(",") if o.strip()),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
    )
