"""Video encoder (ffmpeg). One input, one output container per call."""
import logging
import os
import shutil
from pathlib import Path

from mediaconv.conversion.encoders.base import run_tool
from mediaconv.conversion.options import AbsoluteResize, PercentResize, VideoOptions
from mediaconv.conversion.resize import ffmpeg_scale_filter

logger = logging.getLogger("mediaconv.encoders.video")

# x264 speed/quality tradeoff per user-facing preset
X264_PRESETS = {"web": "medium", "quality": "slow", "fast": "veryfast"}
# libvpx-vp9 -cpu-used per preset (lower = slower, better)
VP9_CPU_USED = {"web": "2", "quality": "1", "fast": "5"}

# (minimum Mbps, CRF); lower CRF = better quality
_CRF_THRESHOLDS = ((5.0, 18), (3.0, 20), (2.0, 23), (1.0, 28))
_CRF_FLOOR = 32

AUDIO_BITRATE = "128k"


def bitrate_to_crf(mbps: float) -> int:
    """Map a requested bitrate onto a constant-quality value. Monotonic: more bitrate, lower CRF."""
    for minimum, crf in _CRF_THRESHOLDS:
        if mbps >= minimum:
            return crf
    return _CRF_FLOOR


def _gif_scale(options: VideoOptions) -> str:
    spec = options.resize_spec
    if isinstance(spec, AbsoluteResize):
        if spec.width:
            return f"{spec.width}:-1"
        return f"-1:{spec.height}"
    if isinstance(spec, PercentResize) and spec.percent < 100:
        return f"iw*{spec.percent / 100}:-1"
    return "480:-1"


def build_command(ffmpeg: str, src: Path, dest: Path, options: VideoOptions) -> list[str]:
    cmd = [ffmpeg, "-y", "-i", str(src)]
    fmt = options.format
    if fmt == "gif":
        palette = (
            f"fps=10,scale={_gif_scale(options)}:flags=lanczos,"
            "split[s0][s1];[s0]palettegen[p];[s1][p]paletteuse"
        )
        return cmd + ["-vf", palette, "-an", str(dest)]

    crf = str(bitrate_to_crf(options.bitrate_mbps))
    if fmt == "webm":
        cmd += [
            "-c:v", "libvpx-vp9", "-crf", crf, "-b:v", "0",
            "-deadline", "good", "-cpu-used", VP9_CPU_USED[options.preset],
        ]
    else:
        cmd += ["-c:v", "libx264", "-preset", X264_PRESETS[options.preset], "-crf", crf, "-pix_fmt", "yuv420p"]
    if fmt in ("mp4", "mov"):
        cmd += ["-movflags", "+faststart"]

    scale = ffmpeg_scale_filter(options.resize_spec)
    if scale:
        cmd += ["-vf", scale]

    if options.effective_audio:
        audio_codec = "libopus" if fmt == "webm" else "aac"
        cmd += ["-c:a", audio_codec, "-b:a", AUDIO_BITRATE]
    else:
        cmd.append("-an")
    cmd.append(str(dest))
    return cmd


class VideoEncoder:
    def __init__(self, ffmpeg_path: str = "ffmpeg", timeout: float = 300):
        self.ffmpeg_path = ffmpeg_path
        self.timeout = timeout

    def available(self) -> bool:
        if os.path.sep in self.ffmpeg_path:
            return os.path.isfile(self.ffmpeg_path)
        return shutil.which(self.ffmpeg_path) is not None

    def encode(self, src: Path, dest: Path, options: VideoOptions) -> int:
        run_tool(build_command(self.ffmpeg_path, src, dest, options), timeout=self.timeout, tool="ffmpeg")
        size = dest.stat().st_size
        logger.info("Converted video %s -> %s", src.name, dest.name)
        return size
