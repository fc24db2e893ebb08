"""Zip up previously produced artifacts from the shared directory."""
import logging
import secrets
import time
import zipfile
from pathlib import Path
from typing import Iterable

from mediaconv.files import is_path_traversal_safe, is_within_directory, safe_unlink

logger = logging.getLogger("mediaconv.archive")


class NoValidFilesError(ValueError):
    """None of the requested names could be put in the archive."""


def _archive_name() -> str:
    return f"archive-{int(time.time() * 1000)}-{secrets.token_hex(4)}.zip"


def select_files(filenames: Iterable[str], directory: Path) -> list[Path]:
    """Paths of requested names that are safe and exist. Unsafe and missing names are skipped with a warning."""
    selected: list[Path] = []
    seen: set[str] = set()
    for name in filenames:
        if not isinstance(name, str) or not is_path_traversal_safe(name):
            logger.warning("Skipping unsafe filename in archive: %r", name)
            continue
        path = directory / name
        if not is_within_directory(path, directory):
            logger.warning("Skipping file outside uploads in archive: %s", name)
            continue
        if not path.is_file():
            logger.warning("File not found for archive: %s", name)
            continue
        if name in seen:
            continue
        seen.add(name)
        selected.append(path)
    return selected


def create_archive(filenames: Iterable[str], directory: Path) -> Path:
    """
    Write a maximum-compression zip of the requested artifacts into directory and return its path.
    Raises NoValidFilesError when nothing could be included. The caller deletes the archive after delivery.
    """
    directory = Path(directory)
    paths = select_files(filenames, directory)
    if not paths:
        raise NoValidFilesError("No valid files to archive")

    directory.mkdir(parents=True, exist_ok=True)
    zip_path = directory / _archive_name()
    try:
        with zipfile.ZipFile(zip_path, "w", zipfile.ZIP_DEFLATED, compresslevel=9) as zf:
            for path in paths:
                zf.write(path, path.name)
    except Exception:
        safe_unlink(zip_path)
        raise
    logger.info("Created archive %s with %s files", zip_path.name, len(paths))
    return zip_path
