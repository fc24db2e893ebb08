"""Encoder errors and the subprocess runner shared by the command-line encoders."""
import logging
import subprocess
from typing import Sequence

logger = logging.getLogger("mediaconv.encoders")


class EncoderError(RuntimeError):
    """An encoder failed for one file."""


class EncoderUnavailableError(EncoderError):
    """The encoder's binary or library is missing from this system."""


class EncoderTimeoutError(EncoderError):
    """The encoder did not finish within its time limit."""


def run_tool(cmd: Sequence[str], timeout: float, tool: str) -> subprocess.CompletedProcess:
    """Run an encoder command; map a missing binary, a timeout and a non-zero exit to EncoderError subclasses."""
    logger.debug("Running %s: %s", tool, " ".join(cmd))
    try:
        result = subprocess.run(
            list(cmd),
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except FileNotFoundError as e:
        raise EncoderUnavailableError(f"{tool} not installed") from e
    except subprocess.TimeoutExpired as e:
        raise EncoderTimeoutError(f"{tool} timed out after {timeout:g}s") from e
    if result.returncode != 0:
        detail = (result.stderr or result.stdout or "").strip()
        # ffmpeg and ImageMagick put the useful line last
        tail = detail.splitlines()[-1] if detail else f"{tool} failed"
        raise EncoderError(f"{tool} failed (exit {result.returncode}): {tail}")
    return result
