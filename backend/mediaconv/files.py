"""Shared-directory file helpers: collision-free output names, retrying deletes, containment checks."""
import errno
import logging
import os
import time
from pathlib import Path
from typing import Callable

logger = logging.getLogger("mediaconv.files")

# Errors a concurrent reader (download in flight, encoder still holding the handle) can cause on delete
_BUSY_ERRNOS = {errno.EBUSY, errno.EPERM, errno.EACCES}


def safe_base_name(original_name: str) -> str:
    """Base name of an uploaded file without extension or any directory part."""
    name = original_name.replace("\\", "/").rsplit("/", 1)[-1]
    stem = Path(name).stem.strip()
    if stem in ("", ".", ".."):
        return "file"
    return stem


def _candidate(base_name: str, extension: str, counter: int) -> str:
    extension = extension.lstrip(".")
    if counter == 0:
        return f"{base_name}.{extension}"
    return f"{base_name}_{counter}.{extension}"


def allocate_filename(directory: Path, base_name: str, extension: str) -> str:
    """
    Return the first of base.ext, base_1.ext, base_2.ext, ... that does not exist in directory.
    Check-then-use: only safe for a single writer. Use reserve_filename when writers may overlap.
    """
    counter = 0
    while True:
        filename = _candidate(base_name, extension, counter)
        if not (Path(directory) / filename).exists():
            return filename
        counter += 1


def reserve_filename(directory: Path, base_name: str, extension: str) -> str:
    """
    Like allocate_filename, but claims the name by creating an empty placeholder with exclusive create.
    The encoder overwrites the placeholder; callers must delete it if encoding fails.
    """
    directory = Path(directory)
    counter = 0
    while True:
        filename = _candidate(base_name, extension, counter)
        try:
            with open(directory / filename, "x"):
                pass
            return filename
        except FileExistsError:
            counter += 1


def safe_unlink(
    path: Path,
    max_attempts: int = 3,
    base_delay_ms: int = 100,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """
    Delete path, retrying while the file is busy or locked.
    Returns True if deleted or already absent, False if still locked after max_attempts
    (left for the next cleanup sweep). Other OS errors propagate.
    """
    for attempt in range(1, max_attempts + 1):
        try:
            os.unlink(path)
            return True
        except FileNotFoundError:
            return True
        except OSError as e:
            if not (isinstance(e, PermissionError) or e.errno in _BUSY_ERRNOS):
                raise
            if attempt < max_attempts:
                sleep(base_delay_ms * attempt / 1000.0)
            else:
                logger.debug("Could not delete %s after %s attempts: %s", path, max_attempts, e)
    return False


def is_path_traversal_safe(filename: str) -> bool:
    """Reject empty names, NUL bytes, separators and dot segments. Inner dots (v1..final.webp) are allowed."""
    if not filename or "\x00" in filename:
        return False
    if "/" in filename or "\\" in filename:
        return False
    # with separators gone the name is a single segment
    if filename in (".", ".."):
        return False
    return True


def is_within_directory(path: Path, directory: Path) -> bool:
    try:
        Path(path).resolve().relative_to(Path(directory).resolve())
    except ValueError:
        return False
    return True


def resolve_in_directory(directory: Path, filename: str) -> Path:
    """Path of filename inside directory. Raises ValueError if the name is unsafe or escapes."""
    if not is_path_traversal_safe(filename):
        raise ValueError(f"Unsafe filename: {filename!r}")
    path = Path(directory) / filename
    if not is_within_directory(path, directory):
        raise ValueError(f"Path outside directory: {filename!r}")
    return path
