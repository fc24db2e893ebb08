"""Expiry sweep for the shared uploads directory, and the background task that runs it."""
import asyncio
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from mediaconv.config import Settings
from mediaconv.files import safe_unlink

logger = logging.getLogger("mediaconv.cleanup")


@dataclass(frozen=True)
class CleanupStats:
    cleaned: int = 0
    errors: int = 0

    def to_dict(self) -> dict:
        return {"cleaned": self.cleaned, "errors": self.errors}


def _sweep(
    directory: Path,
    now: float,
    should_delete: Callable[[float], bool],
    deleter: Callable[[Path], bool],
) -> CleanupStats:
    """Delete regular files (non-recursive) whose age passes should_delete. Locked files count as errors."""
    if not directory.is_dir():
        return CleanupStats()
    cleaned = errors = 0
    for path in directory.iterdir():
        try:
            if not path.is_file():
                continue
            age = now - path.stat().st_mtime
            if not should_delete(age):
                continue
            if deleter(path):
                cleaned += 1
                logger.info("Deleted file: %s (age: %ss)", path.name, round(age))
            else:
                # still locked; the next tick tries again
                errors += 1
        except FileNotFoundError:
            continue
        except OSError as e:
            errors += 1
            logger.error("Error processing file %s: %s", path.name, e)
    return CleanupStats(cleaned=cleaned, errors=errors)


class CleanupScheduler:
    """Owns the periodic sweep task. sweep() and wipe_all() can also be called directly."""

    def __init__(
        self,
        settings: Settings,
        deleter: Callable[[Path], bool] = safe_unlink,
        clock: Callable[[], float] = time.time,
    ):
        self.directory = Path(settings.uploads_dir)
        self.expiry_seconds = settings.file_expiry_seconds
        self.interval_seconds = settings.cleanup_interval_seconds
        self._deleter = deleter
        self._clock = clock
        self._task: Optional[asyncio.Task] = None
        self._shutdown: Optional[asyncio.Event] = None

    def sweep(self, now: Optional[float] = None) -> CleanupStats:
        """Delete every file whose mtime is older than the expiry threshold."""
        current = self._clock() if now is None else now
        stats = _sweep(self.directory, current, lambda age: age > self.expiry_seconds, self._deleter)
        if stats.cleaned or stats.errors:
            logger.info("Cleanup completed: %s files deleted, %s errors", stats.cleaned, stats.errors)
        return stats

    def wipe_all(self) -> CleanupStats:
        """Delete every regular file in the directory regardless of age."""
        stats = _sweep(self.directory, self._clock(), lambda age: True, self._deleter)
        if stats.cleaned or stats.errors:
            logger.info("Cleared all uploads: %s files deleted, %s errors", stats.cleaned, stats.errors)
        return stats

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run(self, shutdown: asyncio.Event) -> None:
        while not shutdown.is_set():
            try:
                await asyncio.to_thread(self.sweep)
            except Exception:
                logger.exception("Cleanup sweep failed")
            try:
                await asyncio.wait_for(shutdown.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                continue

    def start(self) -> asyncio.Task:
        """Start sweeping now and then every interval. Must be called from a running event loop."""
        if self.running:
            return self._task
        logger.info(
            "Starting file cleanup scheduler (interval: %ss, expiry: %ss)",
            self.interval_seconds,
            self.expiry_seconds,
        )
        self._shutdown = asyncio.Event()
        self._task = asyncio.create_task(self._run(self._shutdown), name="mediaconv-cleanup")
        return self._task

    async def stop(self) -> None:
        if self._shutdown is not None:
            self._shutdown.set()
        task, self._task = self._task, None
        if task is not None:
            try:
                await asyncio.wait_for(task, timeout=5)
            except asyncio.TimeoutError:
                task.cancel()
            logger.info("File cleanup scheduler stopped")
