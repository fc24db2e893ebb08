"""API routes for upload, conversion, download and archives."""
import asyncio
import logging
import secrets
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Body, Depends, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import FileResponse
from pydantic import ValidationError
from starlette.background import BackgroundTask

from mediaconv import db
from mediaconv.archive import NoValidFilesError, create_archive
from mediaconv.config import Settings
from mediaconv.conversion import ConversionService, FileResult, ImageOptions, UploadedFile, VideoOptions
from mediaconv.files import resolve_in_directory, safe_unlink

logger = logging.getLogger("mediaconv.api")
router = APIRouter(prefix="/api", tags=["mediaconv"])

CHUNK_SIZE = 1024 * 1024


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_service(request: Request) -> ConversionService:
    return request.app.state.conversion_service


def _validation_message(e: ValidationError) -> str:
    parts = []
    for err in e.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return "; ".join(parts)


def _parse_options(raw: Optional[str], model):
    try:
        return model.model_validate_json(raw or "{}")
    except ValidationError as e:
        raise HTTPException(400, f"Invalid options: {_validation_message(e)}")


def _storage_name(fieldname: str, original: str) -> str:
    """Upload name in the shared directory: <field>-<ms>-<random><ext>."""
    ext = Path(original).suffix.lower()
    return f"{fieldname}-{int(time.time() * 1000)}-{secrets.randbelow(10**9)}{ext}"


async def _save_upload(file: UploadFile, dest: Path, max_bytes: Optional[int]) -> int:
    """Stream an upload to dest. Raises HTTPException(413) past max_bytes (None = unlimited)."""
    total = 0
    with open(dest, "wb") as f:
        while chunk := await file.read(CHUNK_SIZE):
            total += len(chunk)
            if max_bytes is not None and total > max_bytes:
                f.close()
                dest.unlink(missing_ok=True)
                raise HTTPException(413, f"File too large: {file.filename} (max {max_bytes // (1024 * 1024)} MB)")
            f.write(chunk)
    return total


async def _store_uploads(files: list[UploadFile], fieldname: str, settings: Settings) -> list[UploadedFile]:
    settings.uploads_dir.mkdir(parents=True, exist_ok=True)
    stored: list[UploadedFile] = []
    try:
        for file in files:
            original = file.filename or "upload"
            dest = settings.uploads_dir / _storage_name(fieldname, original)
            size = await _save_upload(file, dest, settings.max_upload_bytes)
            stored.append(UploadedFile(original_name=original, storage_path=dest, size_bytes=size))
    except HTTPException:
        for u in stored:
            u.storage_path.unlink(missing_ok=True)
        raise
    except Exception as e:
        logger.exception("Upload failed: %s", e)
        for u in stored:
            u.storage_path.unlink(missing_ok=True)
        raise HTTPException(500, "Upload failed")
    return stored


def _video_payload(result: FileResult) -> dict:
    out = result.to_dict()
    if result.ok and result.artifacts:
        artifact = result.artifacts[0]
        out.update(
            filename=artifact.filename,
            processedSize=artifact.size_bytes,
            savings=f"{artifact.savings_percent:.2f}",
        )
    return out


@router.get("/health")
def health():
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@router.get("/config")
def get_config(
    settings: Settings = Depends(get_settings),
    svc: ConversionService = Depends(get_service),
):
    """Settings the client needs: limits, expiry, which encoders are installed."""
    return {
        "disableLimits": settings.disable_limits,
        "expirySeconds": settings.file_expiry_seconds,
        "maxFilesPerBatch": settings.max_files_per_batch,
        "maxUploadBytes": settings.max_upload_bytes,
        "encoders": {
            "imagemagick": settings.use_imagemagick and svc.secondary.available(),
            "ffmpeg": svc.video.available(),
        },
    }


@router.get("/stats")
def stats():
    """Aggregate conversion history."""
    return db.get_stats()


@router.post("/process/images")
async def process_images(
    files: Optional[list[UploadFile]] = File(None),
    options: str = Form("{}"),
    settings: Settings = Depends(get_settings),
    svc: ConversionService = Depends(get_service),
):
    """Upload a batch of images and convert each to every requested format. One result per file."""
    opts = _parse_options(options, ImageOptions)
    if not files:
        raise HTTPException(400, "No files uploaded")
    if settings.max_files_per_batch is not None and len(files) > settings.max_files_per_batch:
        raise HTTPException(400, f"Max {settings.max_files_per_batch} files per batch")

    uploaded = await _store_uploads(files, "files", settings)

    def run() -> list[FileResult]:
        results = svc.process_images(uploaded, opts)
        db.record_results("image", results)
        return results

    try:
        results = await asyncio.to_thread(run)
    except ValueError as e:
        raise HTTPException(400, str(e))
    return {"success": True, "results": [r.to_dict() for r in results]}


@router.post("/process/video")
async def process_video(
    file: Optional[UploadFile] = File(None),
    options: str = Form("{}"),
    settings: Settings = Depends(get_settings),
    svc: ConversionService = Depends(get_service),
):
    """Upload one video and transcode it to options.format."""
    opts = _parse_options(options, VideoOptions)
    if file is None:
        raise HTTPException(400, "No file uploaded")
    (uploaded,) = await _store_uploads([file], "file", settings)

    def run() -> FileResult:
        result = svc.process_video(uploaded, opts)
        db.record_results("video", [result])
        return result

    result = await asyncio.to_thread(run)
    return {"success": result.ok, "result": _video_payload(result)}


@router.get("/process/download/{filename}")
def download(filename: str, settings: Settings = Depends(get_settings)):
    """Download a converted file from the shared directory."""
    try:
        path = resolve_in_directory(settings.uploads_dir, filename)
    except ValueError:
        raise HTTPException(404, "File not found")
    if not path.is_file():
        raise HTTPException(404, "File not found")
    return FileResponse(path, filename=filename)


@router.post("/process/archive")
async def archive(
    files: list[str] = Body(..., embed=True),
    settings: Settings = Depends(get_settings),
):
    """Zip the named artifacts. The archive is deleted once the response has been sent."""
    if not files:
        raise HTTPException(400, "No files provided")
    try:
        path = await asyncio.to_thread(create_archive, files, settings.uploads_dir)
    except NoValidFilesError as e:
        raise HTTPException(400, str(e))
    except Exception as e:
        logger.exception("Archive creation error: %s", e)
        raise HTTPException(500, "Archive creation failed")
    return FileResponse(
        path,
        filename="processed-files.zip",
        media_type="application/zip",
        background=BackgroundTask(safe_unlink, path),
    )
