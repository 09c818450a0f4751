"""Durable share store on SQLAlchemy (async engine, plain SQL statements).

Three tables mirror the upstream payload: ``shares`` (one row per short
link), ``media_files`` (one row per fs_id) and ``thumbnails`` (1:N per
file). There is no in-process caching here; that is the fast cache's job.

Writes are not transactional across a whole share: the share row and each
file (with its thumbnail replacement) commit independently, so one broken
file never aborts the others.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

import structlog
from sqlalchemy import text
from sqlalchemy.engine import RowMapping
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from terarelay.domain.entities.share import MediaFile, Share

log = structlog.get_logger(__name__)

SCHEMA_STATEMENTS: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS shares (
        share_id TEXT PRIMARY KEY,
        uk TEXT,
        title TEXT,
        server_time BIGINT,
        cfrom_id BIGINT,
        errno INTEGER DEFAULT 0,
        request_id TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS media_files (
        fs_id TEXT PRIMARY KEY,
        share_id TEXT REFERENCES shares(share_id) ON DELETE CASCADE,
        category TEXT,
        isdir INTEGER DEFAULT 0,
        local_ctime TEXT,
        local_mtime TEXT,
        md5 TEXT,
        path TEXT,
        play_forbid INTEGER DEFAULT 0,
        server_ctime TEXT,
        server_filename TEXT,
        server_mtime TEXT,
        size BIGINT,
        is_adult INTEGER DEFAULT 0,
        cmd5 TEXT,
        dlink TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS thumbnails (
        fs_id TEXT NOT NULL REFERENCES media_files(fs_id) ON DELETE CASCADE,
        thumbnail_type TEXT NOT NULL,
        url TEXT NOT NULL,
        PRIMARY KEY (fs_id, thumbnail_type)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_shares_uk ON shares(uk)",
    "CREATE INDEX IF NOT EXISTS idx_media_files_share_id ON media_files(share_id)",
    "CREATE INDEX IF NOT EXISTS idx_media_files_path ON media_files(path)",
    "CREATE INDEX IF NOT EXISTS idx_media_files_server_filename "
    "ON media_files(server_filename)",
)

_UPSERT_SHARE = text(
    """
    INSERT INTO shares (
        share_id, uk, title, server_time, cfrom_id, errno, request_id, updated_at
    )
    VALUES (
        :share_id, :uk, :title, :server_time, :cfrom_id, :errno, :request_id,
        CURRENT_TIMESTAMP
    )
    ON CONFLICT (share_id) DO UPDATE SET
        uk = excluded.uk,
        title = excluded.title,
        server_time = excluded.server_time,
        cfrom_id = excluded.cfrom_id,
        errno = excluded.errno,
        request_id = excluded.request_id,
        updated_at = CURRENT_TIMESTAMP
    """
)

_UPSERT_FILE = text(
    """
    INSERT INTO media_files (
        fs_id, share_id, category, isdir, local_ctime, local_mtime, md5, path,
        play_forbid, server_ctime, server_filename, server_mtime, size,
        is_adult, cmd5, dlink
    )
    VALUES (
        :fs_id, :share_id, :category, :isdir, :local_ctime, :local_mtime, :md5,
        :path, :play_forbid, :server_ctime, :server_filename, :server_mtime,
        :size, :is_adult, :cmd5, :dlink
    )
    ON CONFLICT (fs_id) DO UPDATE SET
        share_id = excluded.share_id,
        category = excluded.category,
        isdir = excluded.isdir,
        local_ctime = excluded.local_ctime,
        local_mtime = excluded.local_mtime,
        md5 = excluded.md5,
        path = excluded.path,
        play_forbid = excluded.play_forbid,
        server_ctime = excluded.server_ctime,
        server_filename = excluded.server_filename,
        server_mtime = excluded.server_mtime,
        size = excluded.size,
        is_adult = excluded.is_adult,
        cmd5 = excluded.cmd5,
        dlink = excluded.dlink
    """
)

_DELETE_THUMBNAILS = text("DELETE FROM thumbnails WHERE fs_id = :fs_id")

_INSERT_THUMBNAIL = text(
    "INSERT INTO thumbnails (fs_id, thumbnail_type, url) "
    "VALUES (:fs_id, :thumbnail_type, :url)"
)

_SELECT_SHARE = text("SELECT * FROM shares WHERE share_id = :share_id")

_SELECT_SHARE_FILES = text(
    "SELECT * FROM media_files WHERE share_id = :share_id ORDER BY fs_id"
)

_SELECT_SHARE_THUMBNAILS = text(
    """
    SELECT t.fs_id, t.thumbnail_type, t.url
    FROM thumbnails t
    JOIN media_files m ON m.fs_id = t.fs_id
    WHERE m.share_id = :share_id
    """
)

_SELECT_FILE = text("SELECT * FROM media_files WHERE fs_id = :fs_id")

_SELECT_FILE_THUMBNAILS = text(
    "SELECT thumbnail_type, url FROM thumbnails WHERE fs_id = :fs_id"
)


def _jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def _row_to_dict(row: RowMapping) -> dict[str, Any]:
    return {key: _jsonable(value) for key, value in row.items()}


def _share_params(share: Share) -> dict[str, Any]:
    return {
        "share_id": share.share_id,
        "uk": share.uk,
        "title": share.title,
        "server_time": share.server_time,
        "cfrom_id": share.cfrom_id,
        "errno": share.errno,
        "request_id": share.request_id,
    }


def _file_params(media: MediaFile) -> dict[str, Any]:
    return {
        "fs_id": media.fs_id,
        "share_id": media.share_id,
        "category": media.category,
        "isdir": media.isdir,
        "local_ctime": media.local_ctime,
        "local_mtime": media.local_mtime,
        "md5": media.md5,
        "path": media.path,
        "play_forbid": media.play_forbid,
        "server_ctime": media.server_ctime,
        "server_filename": media.server_filename,
        "server_mtime": media.server_mtime,
        "size": media.size,
        "is_adult": media.is_adult,
        "cmd5": media.cmd5,
        "dlink": media.dlink,
    }


class SqlShareStore:
    """ShareStorePort implementation over an async SQLAlchemy engine."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def init_schema(self) -> None:
        """Create tables and indexes when missing."""
        async with self._engine.begin() as conn:
            for statement in SCHEMA_STATEMENTS:
                await conn.execute(text(statement))
        log.info("share_store_schema_ready")

    async def aclose(self) -> None:
        await self._engine.dispose()

    async def store(self, share_id: str, payload: dict[str, Any]) -> bool:
        share = Share.from_upstream(share_id, payload)

        try:
            async with self._engine.begin() as conn:
                await conn.execute(_UPSERT_SHARE, _share_params(share))
        except SQLAlchemyError as e:
            log.error("share_store_share_failed", share_id=share_id, error=str(e))
            return False

        failed = 0
        for media in share.files:
            if not await self._store_file(media):
                failed += 1

        log.info(
            "share_stored",
            share_id=share_id,
            files=len(share.files),
            failed=failed,
        )
        return failed == 0

    async def _store_file(self, media: MediaFile) -> bool:
        """Upsert one file and replace its thumbnails in one transaction."""
        try:
            async with self._engine.begin() as conn:
                await conn.execute(_UPSERT_FILE, _file_params(media))
                await conn.execute(_DELETE_THUMBNAILS, {"fs_id": media.fs_id})
                if media.thumbs:
                    await conn.execute(
                        _INSERT_THUMBNAIL,
                        [
                            {"fs_id": media.fs_id, "thumbnail_type": tag, "url": url}
                            for tag, url in media.thumbs.items()
                        ],
                    )
        except SQLAlchemyError as e:
            log.error(
                "share_store_file_failed",
                share_id=media.share_id,
                fs_id=media.fs_id,
                error=str(e),
            )
            return False
        return True

    async def fetch(self, share_id: str) -> dict[str, Any] | None:
        async with self._engine.connect() as conn:
            share_row = (
                await conn.execute(_SELECT_SHARE, {"share_id": share_id})
            ).mappings().first()
            if share_row is None:
                return None
            file_rows = (
                await conn.execute(_SELECT_SHARE_FILES, {"share_id": share_id})
            ).mappings().all()
            thumb_rows = (
                await conn.execute(_SELECT_SHARE_THUMBNAILS, {"share_id": share_id})
            ).mappings().all()

        thumbs_by_file: dict[str, dict[str, str]] = {}
        for row in thumb_rows:
            thumbs_by_file.setdefault(row["fs_id"], {})[row["thumbnail_type"]] = row[
                "url"
            ]

        files = []
        for row in file_rows:
            item = _row_to_dict(row)
            item["thumbs"] = thumbs_by_file.get(item["fs_id"], {})
            files.append(item)

        result = _row_to_dict(share_row)
        result["list"] = files
        return result

    async def fetch_file(self, fs_id: str) -> dict[str, Any] | None:
        async with self._engine.connect() as conn:
            file_row = (
                await conn.execute(_SELECT_FILE, {"fs_id": fs_id})
            ).mappings().first()
            if file_row is None:
                return None
            thumb_rows = (
                await conn.execute(_SELECT_FILE_THUMBNAILS, {"fs_id": fs_id})
            ).mappings().all()

        item = _row_to_dict(file_row)
        item["thumbs"] = {row["thumbnail_type"]: row["url"] for row in thumb_rows}
        return item


def create_share_store(url: str, *, echo: bool = False) -> SqlShareStore:
    """Build a store for a SQLAlchemy async URL (e.g. ``sqlite+aiosqlite:///...``)."""
    engine = create_async_engine(url, echo=echo, pool_pre_ping=True)
    log.info("share_store_engine_created", dialect=engine.dialect.name)
    return SqlShareStore(engine)
