"""Conversion history. SQLite by default; set DATABASE_URL for another SQLAlchemy backend.
Startup ensures the table exists; on connection failure logs and falls back to in-memory SQLite so the app can start."""
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional

from sqlalchemy import (
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    func,
    insert,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from mediaconv.conversion.models import FileResult, FileStatus

logger = logging.getLogger("mediaconv.db")

_engine: Optional[Engine] = None

metadata = MetaData()

conversions = Table(
    "conversions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("kind", String(20), nullable=False),
    Column("filename", String(512), nullable=False),
    Column("status", String(20), nullable=False),
    Column("input_bytes", Integer),
    Column("output_bytes", Integer),
    Column("output_count", Integer, nullable=False, default=0),
    Column("error", Text),
    Column("created_at", DateTime(timezone=True), nullable=False),
)


def _make_engine(url: str) -> Engine:
    kwargs: dict = {}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in url:
            # one shared connection, otherwise every checkout sees an empty database
            kwargs["poolclass"] = StaticPool
        else:
            db_file = url.split("sqlite:///", 1)[-1]
            if db_file:
                Path(db_file).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(url, **kwargs)


def init_db(database_url: str) -> Engine:
    """Create the engine and the conversions table. Falls back to in-memory SQLite on failure."""
    global _engine
    try:
        engine = _make_engine(database_url)
        metadata.create_all(engine)
        logger.info("Database ready: %s", engine.url.get_backend_name())
    except SQLAlchemyError as e:
        logger.warning("Database unavailable (%s); using in-memory SQLite. History will not persist.", e)
        engine = _make_engine("sqlite:///:memory:")
        metadata.create_all(engine)
    _engine = engine
    return engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Database not initialised; call init_db() first")
    return _engine


def record_results(kind: str, results: Iterable[FileResult]) -> None:
    """Store one history row per result. Failures are logged and swallowed: history never breaks a conversion."""
    now = datetime.now(timezone.utc)
    rows = [
        {
            "kind": kind,
            "filename": r.name,
            "status": r.status.value,
            "input_bytes": r.original_size,
            "output_bytes": r.output_bytes if r.ok else None,
            "output_count": len(r.artifacts),
            "error": r.error,
            "created_at": now,
        }
        for r in results
    ]
    if not rows:
        return
    try:
        with get_engine().begin() as conn:
            conn.execute(insert(conversions), rows)
    except (SQLAlchemyError, RuntimeError) as e:
        logger.warning("Could not record conversion history: %s", e)


def get_stats() -> dict:
    """Aggregate history: files processed, failures, bytes in/out and overall compression percent."""
    ok = conversions.c.status == FileStatus.SUCCESS.value
    with get_engine().connect() as conn:
        total = conn.execute(select(func.count()).select_from(conversions)).scalar_one()
        failed = conn.execute(select(func.count()).select_from(conversions).where(~ok)).scalar_one()
        row = conn.execute(
            select(
                func.coalesce(func.sum(conversions.c.input_bytes), 0),
                func.coalesce(func.sum(conversions.c.output_bytes), 0),
                func.coalesce(func.sum(conversions.c.output_count), 0),
            ).where(ok)
        ).one()
    input_bytes, output_bytes, artifacts = int(row[0]), int(row[1]), int(row[2])
    compression = round((1 - output_bytes / input_bytes) * 100, 2) if input_bytes else 0.0
    return {
        "files_processed": total,
        "files_failed": failed,
        "artifacts_created": artifacts,
        "total_input_bytes": input_bytes,
        "total_output_bytes": output_bytes,
        "compression_percent": compression,
    }
