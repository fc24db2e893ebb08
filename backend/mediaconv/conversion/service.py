"""Batch orchestration: route each file to its encoder, fan out one artifact per format, isolate failures."""
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Sequence, Union

from mediaconv.config import VECTOR_OUTPUT_FORMAT, Settings
from mediaconv.conversion.encoders import (
    EncoderUnavailableError,
    RasterEncoder,
    SecondaryEncoder,
    VectorOptimizer,
    VideoEncoder,
    svg_rasterizer_available,
)
from mediaconv.conversion.encoders.raster import SVG_DENSITY
from mediaconv.conversion.models import ArtifactRecord, FileResult, MediaKind, UploadedFile, compute_savings
from mediaconv.conversion.options import ImageOptions, VideoOptions
from mediaconv.conversion.routing import Handler, classify, needs_vector_output, raster_formats, route
from mediaconv.files import reserve_filename, safe_base_name, safe_unlink

logger = logging.getLogger("mediaconv.service")


@dataclass
class _BatchContext:
    """Environment probes, made once per batch."""

    secondary_usable: bool
    svg_rasterizer: bool


class ConversionService:
    """Runs image batches and single videos through the encoders and reports one FileResult per input."""

    def __init__(
        self,
        settings: Settings,
        raster: Optional[RasterEncoder] = None,
        vector: Optional[VectorOptimizer] = None,
        secondary: Optional[SecondaryEncoder] = None,
        video: Optional[VideoEncoder] = None,
        svg_probe: Callable[[], bool] = svg_rasterizer_available,
    ):
        self.settings = settings
        self.raster = raster or RasterEncoder()
        self.vector = vector or VectorOptimizer()
        self.secondary = secondary or SecondaryEncoder(settings.magick_path, timeout=settings.magick_timeout_seconds)
        self.video = video or VideoEncoder(settings.ffmpeg_path, timeout=settings.video_timeout_seconds)
        self._svg_probe = svg_probe

    # -- helpers ---------------------------------------------------------

    def _record(self, original_size: int, fmt: str, filename: str, size: int) -> ArtifactRecord:
        return ArtifactRecord(
            format=fmt,
            filename=filename,
            size_bytes=size,
            savings_percent=compute_savings(original_size, size, self.settings.clamp_negative_savings),
        )

    def _produce(
        self,
        file: UploadedFile,
        fmt: str,
        original_size: int,
        write: Callable[[Path], int],
    ) -> ArtifactRecord:
        """Claim an output name next to the source, write it, and drop the partial file if writing fails."""
        out_dir = file.storage_path.parent
        filename = reserve_filename(out_dir, safe_base_name(file.original_name), fmt)
        dest = out_dir / filename
        try:
            size = write(dest)
        except Exception:
            safe_unlink(dest)
            raise
        return self._record(original_size, fmt, filename, size)

    def _image_encoder(self, handler: Handler):
        return self.secondary if handler == Handler.SECONDARY else self.raster

    @staticmethod
    def _discard(file: UploadedFile, artifacts: Sequence[ArtifactRecord]) -> None:
        """Remove outputs already written for a file whose conversion did not finish."""
        out_dir = file.storage_path.parent
        for artifact in artifacts:
            try:
                safe_unlink(out_dir / artifact.filename)
            except OSError as e:
                logger.warning("Could not remove %s: %s", artifact.filename, e)

    @staticmethod
    def _release_source(src: Path) -> None:
        """Delete a consumed upload. A failure only postpones it to the cleanup sweep."""
        try:
            if not safe_unlink(src):
                logger.warning("Could not delete %s yet; it will be cleaned up later", src.name)
        except OSError as e:
            logger.warning("Could not delete %s: %s", src.name, e)

    def _probe(self, files: Sequence[UploadedFile], opts: Sequence[ImageOptions]) -> _BatchContext:
        kinds = [classify(f.original_name) for f in files]
        secondary = False
        if self.settings.use_imagemagick and any(
            k == MediaKind.SPECIALTY_RASTER and o.use_secondary for k, o in zip(kinds, opts)
        ):
            secondary = self.secondary.available()
        svg = False
        if any(k == MediaKind.VECTOR and raster_formats(o.formats) for k, o in zip(kinds, opts)):
            svg = self._svg_probe()
        return _BatchContext(secondary_usable=secondary, svg_rasterizer=svg)

    # -- per-kind pipelines ----------------------------------------------

    def _convert_vector(self, file: UploadedFile, opts: ImageOptions, ctx: _BatchContext) -> FileResult:
        src = file.storage_path
        original_size = src.stat().st_size
        artifacts: list[ArtifactRecord] = []
        fmts = raster_formats(opts.formats)
        if fmts and not ctx.svg_rasterizer:
            raise EncoderUnavailableError("SVG rasteriser (CairoSVG/libcairo) not available")
        # Rasterise before optimizing; the source is released only after both passes
        try:
            for fmt in fmts:
                artifacts.append(self._produce(
                    file, fmt, original_size,
                    lambda dest, fmt=fmt: self.raster.encode(
                        src, dest, fmt, opts.quality, opts.resize_spec, density=SVG_DENSITY,
                    ),
                ))
            if needs_vector_output(opts.formats):
                svg_text = src.read_text(encoding="utf-8")
                optimized = self.vector.optimize(
                    svg_text,
                    precision=opts.precision,
                    remove_view_box=opts.remove_view_box,
                    cleanup_ids=opts.cleanup_ids,
                )

                def write_svg(dest: Path) -> int:
                    dest.write_text(optimized, encoding="utf-8")
                    return dest.stat().st_size

                artifacts.append(self._produce(file, VECTOR_OUTPUT_FORMAT, original_size, write_svg))
                logger.info("Optimized %s -> %s", file.original_name, artifacts[-1].filename)
        except Exception:
            self._discard(file, artifacts)
            raise
        self._release_source(src)
        return FileResult.success(file.original_name, original_size, artifacts)

    def _convert_raster(self, file: UploadedFile, opts: ImageOptions, encoder) -> FileResult:
        src = file.storage_path
        original_size = src.stat().st_size
        fmts = raster_formats(opts.formats)
        if not fmts:
            raise ValueError("No raster output format requested for this file")
        artifacts: list[ArtifactRecord] = []
        try:
            for fmt in fmts:
                artifacts.append(self._produce(
                    file, fmt, original_size,
                    lambda dest, fmt=fmt: encoder.encode(src, dest, fmt, opts.quality, opts.resize_spec),
                ))
        except Exception:
            self._discard(file, artifacts)
            raise
        self._release_source(src)
        return FileResult.success(file.original_name, original_size, artifacts)

    def _convert_specialty(self, file: UploadedFile, opts: ImageOptions, ctx: _BatchContext) -> FileResult:
        plan = route(MediaKind.SPECIALTY_RASTER, ctx.secondary_usable and opts.use_secondary)
        try:
            return self._convert_raster(file, opts, self._image_encoder(plan.handler))
        except EncoderUnavailableError as e:
            if plan.fallback is None:
                raise
            # Environment failure: stop using ImageMagick for the rest of this batch
            logger.warning("ImageMagick processing failed, falling back to Pillow: %s", e)
            ctx.secondary_usable = False
        return self._convert_raster(file, opts, self._image_encoder(plan.fallback))

    def _convert_one(self, file: UploadedFile, opts: ImageOptions, ctx: _BatchContext) -> FileResult:
        kind = classify(file.original_name)
        if kind == MediaKind.VECTOR:
            return self._convert_vector(file, opts, ctx)
        if kind == MediaKind.SPECIALTY_RASTER:
            return self._convert_specialty(file, opts, ctx)
        if kind == MediaKind.VIDEO:
            raise ValueError("Video files must be submitted to the video endpoint")
        return self._convert_raster(file, opts, self.raster)

    # -- entry points ----------------------------------------------------

    def process_images(
        self,
        files: Sequence[UploadedFile],
        options: Union[ImageOptions, Sequence[ImageOptions]],
    ) -> list[FileResult]:
        """
        Convert a batch of images. options is shared, or one ImageOptions per file.
        Returns one FileResult per input, in input order; a failing file never stops the batch.
        """
        if not files:
            raise ValueError("No files uploaded")
        if isinstance(options, ImageOptions):
            per_file = [options] * len(files)
        else:
            per_file = list(options)
            if len(per_file) != len(files):
                raise ValueError(f"Got {len(per_file)} option sets for {len(files)} files")

        ctx = self._probe(files, per_file)
        results: list[FileResult] = []
        for file, opts in zip(files, per_file):
            try:
                result = self._convert_one(file, opts, ctx)
            except Exception as e:
                logger.exception("Error processing %s: %s", file.original_name, e)
                result = FileResult.failure(file.original_name, str(e))
            results.append(result)
        ok = sum(1 for r in results if r.ok)
        logger.info("Image batch done: %s/%s files converted", ok, len(results))
        return results

    def process_video(self, file: UploadedFile, options: VideoOptions) -> FileResult:
        """
        Transcode one video to options.format. On failure the partial output is removed and the
        source is kept for the cleanup sweep.
        """
        src = file.storage_path
        try:
            if classify(file.original_name) != MediaKind.VIDEO:
                raise ValueError(f"Not a video file: {file.original_name}")
            if not self.video.available():
                raise EncoderUnavailableError("ffmpeg not installed")
            original_size = src.stat().st_size
            if original_size == 0:
                raise ValueError("Input file is empty")
            artifact = self._produce(
                file, options.format, original_size,
                lambda dest: self.video.encode(src, dest, options),
            )
        except Exception as e:
            logger.exception("Video conversion failed for %s: %s", file.original_name, e)
            return FileResult.failure(file.original_name, str(e))
        self._release_source(src)
        return FileResult.success(file.original_name, original_size, [artifact])
