"""Database schema definition and versioning."""

import logging
import sqlite3
from collections.abc import Callable
from pathlib import Path

from mediaindex.errors import SchemaVersionMismatch

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 2

SCHEMA_SQL = """
-- Show seasons grouping episode entries
CREATE TABLE IF NOT EXISTS collections (
    id INTEGER PRIMARY KEY,
    show_title TEXT NOT NULL,
    season_number INTEGER,
    directory TEXT NOT NULL UNIQUE,
    created_at REAL NOT NULL
);

-- One row per indexed file (common fields)
CREATE TABLE IF NOT EXISTS entries (
    id INTEGER PRIMARY KEY,
    path TEXT NOT NULL UNIQUE,
    directory TEXT NOT NULL,
    kind TEXT NOT NULL,
    size INTEGER NOT NULL DEFAULT 0,
    created_at REAL,
    modified_at REAL,
    title TEXT,
    description TEXT,
    thumbnail TEXT,
    collection_id INTEGER REFERENCES collections(id) ON DELETE SET NULL,
    season_index INTEGER,
    episode_index INTEGER,
    extraction_error TEXT,
    indexed_at REAL NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_entries_directory ON entries(directory);
CREATE INDEX IF NOT EXISTS idx_entries_kind ON entries(kind);
CREATE INDEX IF NOT EXISTS idx_entries_collection
    ON entries(collection_id) WHERE collection_id IS NOT NULL;
CREATE INDEX IF NOT EXISTS idx_entries_modified ON entries(modified_at);
CREATE INDEX IF NOT EXISTS idx_entries_title ON entries(title);

-- Video-specific fields
CREATE TABLE IF NOT EXISTS video_details (
    entry_id INTEGER PRIMARY KEY REFERENCES entries(id) ON DELETE CASCADE,
    release_date TEXT,                        -- ISO YYYY-MM-DD
    duration REAL,
    width INTEGER,
    height INTEGER,
    frame_rate REAL
);

CREATE INDEX IF NOT EXISTS idx_video_release
    ON video_details(release_date) WHERE release_date IS NOT NULL;

-- Directors and actors, ordered per entry
CREATE TABLE IF NOT EXISTS video_people (
    entry_id INTEGER NOT NULL REFERENCES entries(id) ON DELETE CASCADE,
    role TEXT NOT NULL,                       -- 'director' or 'actor'
    position INTEGER NOT NULL,
    name TEXT NOT NULL,
    PRIMARY KEY (entry_id, role, position)
);

CREATE INDEX IF NOT EXISTS idx_video_people_name ON video_people(role, name);

-- Audio track and subtitle languages, ordered per entry
CREATE TABLE IF NOT EXISTS video_languages (
    entry_id INTEGER NOT NULL REFERENCES entries(id) ON DELETE CASCADE,
    stream TEXT NOT NULL,                     -- 'audio' or 'subtitle'
    position INTEGER NOT NULL,
    language TEXT NOT NULL,
    PRIMARY KEY (entry_id, stream, position)
);

-- Audio-specific fields
CREATE TABLE IF NOT EXISTS audio_details (
    entry_id INTEGER PRIMARY KEY REFERENCES entries(id) ON DELETE CASCADE,
    artist TEXT,
    album_artist TEXT,
    composer TEXT,
    album TEXT,
    genre TEXT,
    track_index INTEGER,
    duration REAL
);

CREATE INDEX IF NOT EXISTS idx_audio_artist ON audio_details(artist) WHERE artist IS NOT NULL;
CREATE INDEX IF NOT EXISTS idx_audio_album ON audio_details(album) WHERE album IS NOT NULL;

-- Image-specific fields
CREATE TABLE IF NOT EXISTS image_details (
    entry_id INTEGER PRIMARY KEY REFERENCES entries(id) ON DELETE CASCADE,
    taken_at REAL,
    lens_model TEXT,
    focal_length REAL,
    exposure_time REAL,
    f_number REAL,
    gps_latitude REAL,
    gps_longitude REAL,
    gps_altitude REAL,
    width INTEGER,
    height INTEGER
);

CREATE INDEX IF NOT EXISTS idx_image_taken ON image_details(taken_at) WHERE taken_at IS NOT NULL;

-- Chapters of video and audio entries
CREATE TABLE IF NOT EXISTS chapters (
    id INTEGER PRIMARY KEY,
    entry_id INTEGER NOT NULL REFERENCES entries(id) ON DELETE CASCADE,
    position INTEGER NOT NULL,
    start REAL NOT NULL,
    end REAL,
    name TEXT
);

CREATE INDEX IF NOT EXISTS idx_chapters_entry ON chapters(entry_id);

-- User tags
CREATE TABLE IF NOT EXISTS tags (
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL UNIQUE,
    created_at REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS tag_assignments (
    tag_id INTEGER NOT NULL REFERENCES tags(id) ON DELETE CASCADE,
    entry_id INTEGER NOT NULL REFERENCES entries(id) ON DELETE CASCADE,
    assigned_at REAL NOT NULL,
    PRIMARY KEY (tag_id, entry_id)
);

CREATE INDEX IF NOT EXISTS idx_tag_assignments_entry ON tag_assignments(entry_id);

-- Saved searches
CREATE TABLE IF NOT EXISTS saved_searches (
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL UNIQUE,
    media_types TEXT NOT NULL,                -- comma separated kinds
    predicates_json TEXT NOT NULL,
    sort_by TEXT NOT NULL DEFAULT 'path',
    descending INTEGER NOT NULL DEFAULT 0,
    created_at REAL NOT NULL,
    last_used_at REAL
);
"""


def get_schema_version(conn: sqlite3.Connection) -> int:
    return conn.execute("PRAGMA user_version").fetchone()[0]


def _set_schema_version(conn: sqlite3.Connection, version: int) -> None:
    conn.execute(f"PRAGMA user_version = {int(version)}")


def _has_tables(conn: sqlite3.Connection) -> bool:
    row = conn.execute(
        "SELECT COUNT(*) FROM sqlite_master WHERE type='table' AND name NOT LIKE 'sqlite_%'"
    ).fetchone()
    return row[0] > 0


def create_schema(conn: sqlite3.Connection, db_path: Path | str = ":memory:") -> None:
    """Create the schema, migrating older databases and refusing unknown versions."""
    version = get_schema_version(conn)

    if version == 0 and not _has_tables(conn):
        conn.executescript(SCHEMA_SQL)
        _set_schema_version(conn, SCHEMA_VERSION)
        return

    if version == SCHEMA_VERSION:
        conn.executescript(SCHEMA_SQL)
        return

    if version not in MIGRATIONS:
        raise SchemaVersionMismatch(version, SCHEMA_VERSION, db_path)

    while version < SCHEMA_VERSION:
        migration = MIGRATIONS.get(version)
        if migration is None:
            raise SchemaVersionMismatch(version, SCHEMA_VERSION, db_path)
        logger.info("Migrating schema of %s from version %d", db_path, version)
        migration(conn)
        version += 1
        _set_schema_version(conn, version)

    conn.executescript(SCHEMA_SQL)


def migrate_add_saved_search_sorting(conn: sqlite3.Connection) -> None:
    """Version 1 stored saved searches without sort order or last-used time."""
    cursor = conn.execute("PRAGMA table_info(saved_searches)")
    existing_columns = {row[1] for row in cursor.fetchall()}
    if not existing_columns:
        return

    new_columns = [
        ("sort_by", "TEXT NOT NULL DEFAULT 'path'"),
        ("descending", "INTEGER NOT NULL DEFAULT 0"),
        ("last_used_at", "REAL"),
    ]
    for col_name, col_type in new_columns:
        if col_name not in existing_columns:
            conn.execute(f"ALTER TABLE saved_searches ADD COLUMN {col_name} {col_type}")


MIGRATIONS: dict[int, Callable[[sqlite3.Connection], None]] = {
    1: migrate_add_saved_search_sorting,
}
