from decimal import Decimal

import pytest

from mediaconv.conversion import FileStatus, ImageOptions, VideoOptions
from mediaconv.conversion.encoders import EncoderError, EncoderTimeoutError
from mediaconv.conversion.encoders.raster import SVG_DENSITY
from mediaconv.conversion.options import AbsoluteResize

SVG = b'<svg xmlns="http://www.w3.org/2000/svg" width="10" height="10"><rect width="10" height="10"/></svg>'


def _opts(**kwargs) -> ImageOptions:
    return ImageOptions.model_validate(kwargs)


@pytest.mark.unit
def test_one_result_per_file_and_failures_are_isolated(service_factory, make_upload):
    files = [
        make_upload("a.png"),
        make_upload("b.png", b"BROKEN" + b"x" * 94),
        make_upload("c.jpg"),
    ]
    results = service_factory().process_images(files, _opts(formats=["webp"]))

    assert [r.name for r in results] == ["a.png", "b.png", "c.jpg"]
    assert [r.status for r in results] == [FileStatus.SUCCESS, FileStatus.ERROR, FileStatus.SUCCESS]
    assert "cannot decode" in results[1].error
    assert results[0].artifacts[0].filename == "a.webp"
    assert results[2].artifacts[0].filename == "c.webp"


@pytest.mark.unit
def test_artifact_per_format_with_savings(service_factory, make_upload, uploads_dir):
    upload = make_upload("photo.jpg")
    (result,) = service_factory().process_images([upload], _opts(formats=["webp", "png"]))

    assert result.ok
    assert result.original_size == 100
    assert [(a.format, a.filename) for a in result.artifacts] == [("webp", "photo.webp"), ("png", "photo.png")]
    assert all(a.savings_percent == Decimal("60.00") for a in result.artifacts)
    assert (uploads_dir / "photo.webp").read_bytes() == b"r" * 40
    assert not upload.storage_path.exists()


@pytest.mark.unit
def test_failed_file_keeps_no_partial_output(service_factory, make_upload, uploads_dir):
    upload = make_upload("bad.png", b"BROKEN")
    (result,) = service_factory().process_images([upload], _opts(formats=["webp"]))

    assert not result.ok
    assert not (uploads_dir / "bad.webp").exists()
    assert upload.storage_path.exists()


@pytest.mark.unit
def test_same_base_name_gets_distinct_outputs(service_factory, make_upload):
    files = [make_upload("photo.png"), make_upload("photo.png")]
    results = service_factory().process_images(files, _opts(formats=["webp"]))
    assert [r.artifacts[0].filename for r in results] == ["photo.webp", "photo_1.webp"]


@pytest.mark.unit
def test_existing_output_is_not_overwritten(service_factory, make_upload, uploads_dir):
    (uploads_dir / "photo.webp").write_bytes(b"earlier")
    (result,) = service_factory().process_images([make_upload("photo.png")], _opts(formats=["webp"]))
    assert result.artifacts[0].filename == "photo_1.webp"
    assert (uploads_dir / "photo.webp").read_bytes() == b"earlier"


@pytest.mark.unit
def test_vector_produces_raster_and_optimized_svg(service_factory, make_upload, fakes, uploads_dir):
    upload = make_upload("logo.svg", SVG)
    (result,) = service_factory().process_images(
        [upload], _opts(formats=["webp", "svg"], precision=3, removeViewBox=True)
    )

    assert result.ok
    assert [a.filename for a in result.artifacts] == ["logo.webp", "logo.svg"]
    (raster_call,) = fakes["raster"].calls
    assert raster_call["density"] == SVG_DENSITY
    assert raster_call["src_exists"] is True
    assert fakes["vector"].calls == [{"precision": 3, "remove_view_box": True, "cleanup_ids": True}]
    assert (uploads_dir / "logo.svg").read_text() == "<svg/>"
    assert not upload.storage_path.exists()


@pytest.mark.unit
def test_vector_needs_rasterizer_for_raster_formats(service_factory, make_upload, fakes):
    upload = make_upload("logo.svg", SVG)
    (result,) = service_factory(svg_available=False).process_images([upload], _opts(formats=["png", "svg"]))

    assert not result.ok
    assert "rasteriser" in result.error
    assert fakes["raster"].calls == []
    assert upload.storage_path.exists()


@pytest.mark.unit
def test_svg_only_output_works_without_rasterizer(service_factory, make_upload):
    (result,) = service_factory(svg_available=False).process_images(
        [make_upload("logo.svg", SVG)], _opts(formats=["svg"])
    )
    assert result.ok
    assert [a.format for a in result.artifacts] == ["svg"]


@pytest.mark.unit
def test_raster_file_with_only_svg_requested_fails(service_factory, make_upload):
    (result,) = service_factory().process_images([make_upload("photo.png")], _opts(formats=["svg"]))
    assert not result.ok
    assert "raster output format" in result.error


@pytest.mark.unit
def test_specialty_uses_secondary_encoder(service_factory, make_upload, fakes):
    (result,) = service_factory().process_images([make_upload("scan.tiff")], _opts(formats=["png"]))
    assert result.ok
    assert len(fakes["secondary"].calls) == 1
    assert fakes["raster"].calls == []
    assert fakes["secondary"].probes == 1


@pytest.mark.unit
def test_specialty_falls_back_to_pillow_for_rest_of_batch(service_factory, make_upload, fakes):
    fakes["secondary"].unavailable_on_encode = True
    files = [make_upload("a.tiff"), make_upload("b.psd")]
    results = service_factory().process_images(files, _opts(formats=["png"]))

    assert all(r.ok for r in results)
    assert [r.artifacts[0].filename for r in results] == ["a.png", "b.png"]
    assert len(fakes["secondary"].calls) == 1
    assert len(fakes["raster"].calls) == 2


@pytest.mark.unit
def test_disabled_secondary_is_never_probed(service_factory, settings_factory, make_upload, fakes):
    svc = service_factory(settings_override=settings_factory(use_imagemagick=False))
    (result,) = svc.process_images([make_upload("scan.tif")], _opts(formats=["webp"]))
    assert result.ok
    assert fakes["secondary"].probes == 0
    assert fakes["secondary"].calls == []


@pytest.mark.unit
def test_request_can_opt_out_of_secondary(service_factory, make_upload, fakes):
    (result,) = service_factory().process_images(
        [make_upload("scan.tif")], _opts(formats=["webp"], useImageMagick=False)
    )
    assert result.ok
    assert fakes["secondary"].calls == []
    assert len(fakes["raster"].calls) == 1


@pytest.mark.unit
def test_video_in_image_batch_is_an_error_for_that_file(service_factory, make_upload):
    files = [make_upload("clip.mp4"), make_upload("photo.png")]
    results = service_factory().process_images(files, _opts())
    assert not results[0].ok
    assert "video" in results[0].error
    assert results[1].ok


@pytest.mark.unit
def test_per_file_options(service_factory, make_upload, fakes):
    files = [make_upload("a.png"), make_upload("b.png")]
    opts = [_opts(formats=["webp"], quality=50), _opts(formats=["jpg"], resizeMode="absolute", width=10)]
    results = service_factory().process_images(files, opts)

    assert [r.artifacts[0].format for r in results] == ["webp", "jpg"]
    assert fakes["raster"].calls[0]["quality"] == 50
    assert fakes["raster"].calls[1]["resize"] == AbsoluteResize(width=10)


@pytest.mark.unit
def test_batch_argument_errors(service_factory, make_upload):
    svc = service_factory()
    with pytest.raises(ValueError):
        svc.process_images([], _opts())
    with pytest.raises(ValueError):
        svc.process_images([make_upload("a.png")], [_opts(), _opts()])


@pytest.mark.unit
def test_video_success(service_factory, make_upload, fakes, uploads_dir):
    upload = make_upload("clip.mov")
    result = service_factory().process_video(upload, VideoOptions(format="webm"))

    assert result.ok
    (artifact,) = result.artifacts
    assert artifact.filename == "clip.webm"
    assert artifact.savings_percent == Decimal("50.00")
    assert (uploads_dir / "clip.webm").exists()
    assert not upload.storage_path.exists()
    assert fakes["video"].calls[0]["options"].format == "webm"


@pytest.mark.unit
def test_video_failure_removes_partial_output_and_keeps_source(service_factory, make_upload, fakes, uploads_dir):
    fakes["video"].error = EncoderTimeoutError("ffmpeg timed out after 300s")
    upload = make_upload("clip.mp4")
    result = service_factory().process_video(upload, VideoOptions(format="mkv"))

    assert not result.ok
    assert "timed out" in result.error
    assert not (uploads_dir / "clip.mkv").exists()
    assert upload.storage_path.exists()


@pytest.mark.unit
def test_video_without_ffmpeg(service_factory, make_upload, fakes):
    fakes["video"].is_available = False
    result = service_factory().process_video(make_upload("clip.mp4"), VideoOptions())
    assert not result.ok
    assert result.error == "ffmpeg not installed"
    assert fakes["video"].calls == []


@pytest.mark.unit
def test_video_rejects_empty_and_non_video_input(service_factory, make_upload):
    svc = service_factory()
    assert svc.process_video(make_upload("clip.mp4", b""), VideoOptions()).error == "Input file is empty"
    assert not svc.process_video(make_upload("photo.png"), VideoOptions()).ok


@pytest.mark.unit
def test_fallback_discards_outputs_of_the_abandoned_attempt(service_factory, make_upload, fakes, uploads_dir):
    fakes["secondary"].unavailable_after = 1
    (result,) = service_factory().process_images([make_upload("a.tiff")], _opts(formats=["png", "webp"]))

    assert result.ok
    assert [a.filename for a in result.artifacts] == ["a.png", "a.webp"]
    assert sorted(p.name for p in uploads_dir.iterdir()) == ["a.png", "a.webp"]
    assert (uploads_dir / "a.png").read_bytes() == b"r" * 40


class _FailingOptimizer:
    def optimize(self, svg_text, precision=2, remove_view_box=False, cleanup_ids=True):
        raise EncoderError("Invalid SVG: mismatched tag")


@pytest.mark.unit
def test_failed_file_leaves_no_earlier_outputs(service_factory, make_upload, uploads_dir):
    upload = make_upload("logo.svg", SVG)
    (result,) = service_factory(vector=_FailingOptimizer()).process_images(
        [upload], _opts(formats=["webp", "svg"])
    )

    assert not result.ok
    assert "Invalid SVG" in result.error
    assert [p.name for p in uploads_dir.iterdir()] == [upload.storage_path.name]
