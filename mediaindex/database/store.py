"""Transactional access to indexed entries, collections, tags and saved searches."""

import json
import logging
import os
import sqlite3
import time
from collections.abc import Iterable, Sequence
from datetime import date
from pathlib import Path

from mediaindex.errors import DuplicateName, NotFound

from .connection import Database
from .models import (
    AudioDetails,
    Chapter,
    Collection,
    EntryStamp,
    ImageDetails,
    MediaEntry,
    MediaKind,
    SavedSearch,
    Tag,
    VideoDetails,
)

logger = logging.getLogger(__name__)

# Row source for search queries. Predicates refer to the aliases e, v, a, i and c.
SEARCH_FROM = """
    FROM entries e
    LEFT JOIN video_details v ON v.entry_id = e.id
    LEFT JOIN audio_details a ON a.entry_id = e.id
    LEFT JOIN image_details i ON i.entry_id = e.id
    LEFT JOIN collections c ON c.id = e.collection_id
"""

_DETAIL_TABLES = (
    "video_details",
    "video_people",
    "video_languages",
    "audio_details",
    "image_details",
    "chapters",
)


def like_escape(text: str) -> str:
    """Escape LIKE wildcards so ``text`` matches literally (with ESCAPE '\\')."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _directory_prefix(directory: str | Path) -> str:
    return str(directory).rstrip(os.sep) + os.sep


class Store:
    """Persistent store for media entries.

    All mutations run inside a single transaction so a failure part way
    through leaves the previous state intact.
    """

    def __init__(self, db: Database):
        self.db = db

    # -- entries ---------------------------------------------------------

    def upsert_entry(self, entry: MediaEntry, force: bool = False) -> int:
        """Insert or replace the entry stored under ``entry.path``.

        An unchanged modification time is a no-op unless ``force`` is set.
        Otherwise type-specific fields and chapters are replaced wholesale;
        the entry id is kept so tag assignments survive re-indexing.
        """
        path = str(entry.path)
        now = time.time()

        with self.db.transaction() as conn:
            row = conn.execute(
                "SELECT id, modified_at FROM entries WHERE path = ?", (path,)
            ).fetchone()

            if row and not force and row["modified_at"] == entry.modified_at:
                entry.id = row["id"]
                return row["id"]

            values = {
                "path": path,
                "directory": str(Path(path).parent),
                "kind": entry.kind.value,
                "size": entry.size,
                "created_at": entry.created_at,
                "modified_at": entry.modified_at,
                "title": entry.title,
                "description": entry.description,
                "thumbnail": entry.thumbnail,
                "collection_id": entry.collection_id,
                "season_index": entry.season_index,
                "episode_index": entry.episode_index,
                "extraction_error": entry.extraction_error,
                "indexed_at": now,
            }

            if row:
                entry_id = row["id"]
                conn.execute(
                    """
                    UPDATE entries SET
                        directory = :directory, kind = :kind, size = :size,
                        created_at = :created_at, modified_at = :modified_at,
                        title = :title, description = :description, thumbnail = :thumbnail,
                        collection_id = :collection_id, season_index = :season_index,
                        episode_index = :episode_index, extraction_error = :extraction_error,
                        indexed_at = :indexed_at
                    WHERE id = :id
                    """,
                    {**values, "id": entry_id},
                )
                for table in _DETAIL_TABLES:
                    conn.execute(f"DELETE FROM {table} WHERE entry_id = ?", (entry_id,))
            else:
                cursor = conn.execute(
                    """
                    INSERT INTO entries (
                        path, directory, kind, size, created_at, modified_at,
                        title, description, thumbnail, collection_id,
                        season_index, episode_index, extraction_error, indexed_at
                    ) VALUES (
                        :path, :directory, :kind, :size, :created_at, :modified_at,
                        :title, :description, :thumbnail, :collection_id,
                        :season_index, :episode_index, :extraction_error, :indexed_at
                    )
                    """,
                    values,
                )
                assert cursor.lastrowid is not None
                entry_id = cursor.lastrowid

            self._insert_details(conn, entry_id, entry)
            self._insert_chapters(conn, entry_id, entry.chapters)

        entry.id = entry_id
        return entry_id

    def _insert_details(self, conn: sqlite3.Connection, entry_id: int, entry: MediaEntry) -> None:
        details = entry.details
        if isinstance(details, VideoDetails):
            conn.execute(
                """
                INSERT INTO video_details
                (entry_id, release_date, duration, width, height, frame_rate)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    entry_id,
                    details.release_date.isoformat() if details.release_date else None,
                    details.duration,
                    details.width,
                    details.height,
                    details.frame_rate,
                ),
            )
            people = [("director", i, name) for i, name in enumerate(details.directors)]
            people += [("actor", i, name) for i, name in enumerate(details.actors)]
            conn.executemany(
                "INSERT INTO video_people (entry_id, role, position, name) VALUES (?, ?, ?, ?)",
                [(entry_id, role, pos, name) for role, pos, name in people],
            )
            languages = [("audio", i, lang) for i, lang in enumerate(details.audio_languages)]
            languages += [
                ("subtitle", i, lang) for i, lang in enumerate(details.subtitle_languages)
            ]
            conn.executemany(
                """
                INSERT INTO video_languages (entry_id, stream, position, language)
                VALUES (?, ?, ?, ?)
                """,
                [(entry_id, stream, pos, lang) for stream, pos, lang in languages],
            )
        elif isinstance(details, AudioDetails):
            conn.execute(
                """
                INSERT INTO audio_details
                (entry_id, artist, album_artist, composer, album, genre, track_index, duration)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry_id,
                    details.artist,
                    details.album_artist,
                    details.composer,
                    details.album,
                    details.genre,
                    details.track_index,
                    details.duration,
                ),
            )
        elif isinstance(details, ImageDetails):
            conn.execute(
                """
                INSERT INTO image_details (
                    entry_id, taken_at, lens_model, focal_length, exposure_time, f_number,
                    gps_latitude, gps_longitude, gps_altitude, width, height
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry_id,
                    details.taken_at,
                    details.lens_model,
                    details.focal_length,
                    details.exposure_time,
                    details.f_number,
                    details.gps_latitude,
                    details.gps_longitude,
                    details.gps_altitude,
                    details.width,
                    details.height,
                ),
            )

    def _insert_chapters(
        self, conn: sqlite3.Connection, entry_id: int, chapters: list[Chapter]
    ) -> None:
        for position, chapter in enumerate(chapters):
            cursor = conn.execute(
                """
                INSERT INTO chapters (entry_id, position, start, end, name)
                VALUES (?, ?, ?, ?, ?)
                """,
                (entry_id, position, chapter.start, chapter.end, chapter.name),
            )
            chapter.id = cursor.lastrowid

    def delete_entry(self, path: str | Path) -> bool:
        with self.db.transaction() as conn:
            cursor = conn.execute("DELETE FROM entries WHERE path = ?", (str(path),))
        return cursor.rowcount > 0

    def delete_entries(self, paths: Iterable[str]) -> int:
        paths = list(paths)
        if not paths:
            return 0
        with self.db.transaction() as conn:
            deleted = 0
            for path in paths:
                deleted += conn.execute("DELETE FROM entries WHERE path = ?", (path,)).rowcount
        return deleted

    def delete_entries_under(self, directory: str | Path) -> int:
        """Delete every entry below ``directory``, recursively."""
        prefix = _directory_prefix(directory)
        with self.db.transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM entries WHERE substr(path, 1, ?) = ?", (len(prefix), prefix)
            )
        return cursor.rowcount

    def get_entry(self, path: str | Path) -> MediaEntry | None:
        row = self.db.conn.execute(
            "SELECT * FROM entries WHERE path = ?", (str(path),)
        ).fetchone()
        return self._hydrate(row) if row else None

    def get_entry_by_id(self, entry_id: int) -> MediaEntry | None:
        row = self.db.conn.execute("SELECT * FROM entries WHERE id = ?", (entry_id,)).fetchone()
        return self._hydrate(row) if row else None

    def get_stamp(self, path: str | Path) -> EntryStamp | None:
        row = self.db.conn.execute(
            """
            SELECT id, modified_at, collection_id, season_index, episode_index
            FROM entries WHERE path = ?
            """,
            (str(path),),
        ).fetchone()
        if row is None:
            return None
        return EntryStamp(
            id=row["id"],
            modified_at=row["modified_at"],
            collection_id=row["collection_id"],
            season_index=row["season_index"],
            episode_index=row["episode_index"],
        )

    def set_grouping(
        self,
        entry_id: int,
        collection_id: int | None,
        season_index: int | None,
        episode_index: int | None,
    ) -> None:
        """Move an entry into (or out of) a collection without re-extracting it."""
        with self.db.transaction() as conn:
            conn.execute(
                """
                UPDATE entries SET collection_id = ?, season_index = ?, episode_index = ?
                WHERE id = ?
                """,
                (collection_id, season_index, episode_index, entry_id),
            )

    def list_entries_in(self, directory: str | Path, recursive: bool = False) -> list[MediaEntry]:
        if recursive:
            prefix = _directory_prefix(directory)
            rows = self.db.conn.execute(
                """
                SELECT * FROM entries
                WHERE directory = ? OR substr(directory, 1, ?) = ?
                ORDER BY path
                """,
                (str(directory), len(prefix), prefix),
            ).fetchall()
        else:
            rows = self.db.conn.execute(
                "SELECT * FROM entries WHERE directory = ? ORDER BY path", (str(directory),)
            ).fetchall()
        return [self._hydrate(row) for row in rows]

    def list_paths_in(self, directory: str | Path) -> set[str]:
        rows = self.db.conn.execute(
            "SELECT path FROM entries WHERE directory = ?", (str(directory),)
        ).fetchall()
        return {row["path"] for row in rows}

    def child_directories(self, directory: str | Path) -> set[str]:
        """Immediate subdirectories of ``directory`` that hold indexed entries."""
        prefix = _directory_prefix(directory)
        rows = self.db.conn.execute(
            "SELECT DISTINCT directory FROM entries WHERE substr(directory, 1, ?) = ?",
            (len(prefix), prefix),
        ).fetchall()
        children = set()
        for row in rows:
            first = row["directory"][len(prefix) :].split(os.sep, 1)[0]
            if first:
                children.add(prefix + first)
        return children

    def query(
        self,
        where: str,
        params: Sequence,
        order_by: str = "e.path",
        limit: int | None = None,
    ) -> list[MediaEntry]:
        """Run a compiled filter against the joined entry tables."""
        sql = f"SELECT e.* {SEARCH_FROM} WHERE {where} ORDER BY {order_by}"
        args = list(params)
        if limit is not None:
            sql += " LIMIT ?"
            args.append(limit)
        rows = self.db.conn.execute(sql, args).fetchall()
        return [self._hydrate(row) for row in rows]

    def count(self, where: str, params: Sequence) -> int:
        row = self.db.conn.execute(
            f"SELECT COUNT(*) {SEARCH_FROM} WHERE {where}", list(params)
        ).fetchone()
        return row[0]

    def counts_by_kind(self) -> dict[MediaKind, int]:
        rows = self.db.conn.execute(
            "SELECT kind, COUNT(*) AS n FROM entries GROUP BY kind"
        ).fetchall()
        return {MediaKind(row["kind"]): row["n"] for row in rows}

    def _hydrate(self, row: sqlite3.Row) -> MediaEntry:
        entry_id = row["id"]
        kind = MediaKind(row["kind"])
        entry = MediaEntry(
            id=entry_id,
            path=row["path"],
            kind=kind,
            size=row["size"],
            created_at=row["created_at"],
            modified_at=row["modified_at"],
            title=row["title"],
            description=row["description"],
            thumbnail=row["thumbnail"],
            collection_id=row["collection_id"],
            season_index=row["season_index"],
            episode_index=row["episode_index"],
            extraction_error=row["extraction_error"],
        )
        if kind == MediaKind.VIDEO:
            entry.details = self._load_video(entry_id)
        elif kind == MediaKind.AUDIO:
            entry.details = self._load_audio(entry_id)
        elif kind == MediaKind.IMAGE:
            entry.details = self._load_image(entry_id)
        entry.chapters = self._load_chapters(entry_id)
        return entry

    def _load_video(self, entry_id: int) -> VideoDetails | None:
        conn = self.db.conn
        row = conn.execute("SELECT * FROM video_details WHERE entry_id = ?", (entry_id,)).fetchone()
        if not row:
            return None
        people = conn.execute(
            "SELECT role, name FROM video_people WHERE entry_id = ? ORDER BY role, position",
            (entry_id,),
        ).fetchall()
        languages = conn.execute(
            """
            SELECT stream, language FROM video_languages
            WHERE entry_id = ? ORDER BY stream, position
            """,
            (entry_id,),
        ).fetchall()
        return VideoDetails(
            directors=[p["name"] for p in people if p["role"] == "director"],
            actors=[p["name"] for p in people if p["role"] == "actor"],
            release_date=date.fromisoformat(row["release_date"]) if row["release_date"] else None,
            duration=row["duration"],
            width=row["width"],
            height=row["height"],
            frame_rate=row["frame_rate"],
            audio_languages=[lang["language"] for lang in languages if lang["stream"] == "audio"],
            subtitle_languages=[
                lang["language"] for lang in languages if lang["stream"] == "subtitle"
            ],
        )

    def _load_audio(self, entry_id: int) -> AudioDetails | None:
        row = self.db.conn.execute(
            "SELECT * FROM audio_details WHERE entry_id = ?", (entry_id,)
        ).fetchone()
        if not row:
            return None
        return AudioDetails(
            artist=row["artist"],
            album_artist=row["album_artist"],
            composer=row["composer"],
            album=row["album"],
            genre=row["genre"],
            track_index=row["track_index"],
            duration=row["duration"],
        )

    def _load_image(self, entry_id: int) -> ImageDetails | None:
        row = self.db.conn.execute(
            "SELECT * FROM image_details WHERE entry_id = ?", (entry_id,)
        ).fetchone()
        if not row:
            return None
        return ImageDetails(
            taken_at=row["taken_at"],
            lens_model=row["lens_model"],
            focal_length=row["focal_length"],
            exposure_time=row["exposure_time"],
            f_number=row["f_number"],
            gps_latitude=row["gps_latitude"],
            gps_longitude=row["gps_longitude"],
            gps_altitude=row["gps_altitude"],
            width=row["width"],
            height=row["height"],
        )

    def _load_chapters(self, entry_id: int) -> list[Chapter]:
        rows = self.db.conn.execute(
            "SELECT id, start, end, name FROM chapters WHERE entry_id = ? ORDER BY position",
            (entry_id,),
        ).fetchall()
        return [Chapter(id=r["id"], start=r["start"], end=r["end"], name=r["name"]) for r in rows]

    # -- collections -----------------------------------------------------

    def ensure_collection(
        self, directory: str | Path, show_title: str, season_number: int | None
    ) -> int:
        directory = str(directory)
        with self.db.transaction() as conn:
            row = conn.execute(
                "SELECT id, show_title, season_number FROM collections WHERE directory = ?",
                (directory,),
            ).fetchone()
            if row:
                if (row["show_title"], row["season_number"]) != (show_title, season_number):
                    conn.execute(
                        "UPDATE collections SET show_title = ?, season_number = ? WHERE id = ?",
                        (show_title, season_number, row["id"]),
                    )
                return row["id"]
            cursor = conn.execute(
                """
                INSERT INTO collections (show_title, season_number, directory, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (show_title, season_number, directory, time.time()),
            )
            assert cursor.lastrowid is not None
            return cursor.lastrowid

    def get_collection(self, collection_id: int) -> Collection | None:
        row = self.db.conn.execute(
            "SELECT * FROM collections WHERE id = ?", (collection_id,)
        ).fetchone()
        return _collection_from_row(row) if row else None

    def list_collections(self) -> list[Collection]:
        rows = self.db.conn.execute(
            "SELECT * FROM collections ORDER BY show_title, season_number"
        ).fetchall()
        return [_collection_from_row(row) for row in rows]

    def collection_members(self, collection_id: int) -> list[MediaEntry]:
        rows = self.db.conn.execute(
            """
            SELECT * FROM entries WHERE collection_id = ?
            ORDER BY episode_index IS NULL, episode_index, path
            """,
            (collection_id,),
        ).fetchall()
        return [self._hydrate(row) for row in rows]

    def prune_empty_collections(self) -> int:
        with self.db.transaction() as conn:
            cursor = conn.execute(
                """
                DELETE FROM collections WHERE id NOT IN (
                    SELECT collection_id FROM entries WHERE collection_id IS NOT NULL
                )
                """
            )
        if cursor.rowcount:
            logger.info("Pruned %d empty collections", cursor.rowcount)
        return cursor.rowcount

    # -- tags ------------------------------------------------------------

    def create_tag(self, name: str) -> int:
        with self.db.transaction() as conn:
            try:
                cursor = conn.execute(
                    "INSERT INTO tags (name, created_at) VALUES (?, ?)", (name, time.time())
                )
            except sqlite3.IntegrityError as e:
                raise DuplicateName("tag", name) from e
        assert cursor.lastrowid is not None
        return cursor.lastrowid

    def get_tag(self, tag_id: int) -> Tag | None:
        row = self.db.conn.execute(
            """
            SELECT t.*, COUNT(ta.entry_id) AS entry_count
            FROM tags t LEFT JOIN tag_assignments ta ON ta.tag_id = t.id
            WHERE t.id = ? GROUP BY t.id
            """,
            (tag_id,),
        ).fetchone()
        return _tag_from_row(row) if row else None

    def get_tag_by_name(self, name: str) -> Tag | None:
        row = self.db.conn.execute("SELECT id FROM tags WHERE name = ?", (name,)).fetchone()
        return self.get_tag(row["id"]) if row else None

    def list_tags(self) -> list[Tag]:
        rows = self.db.conn.execute(
            """
            SELECT t.*, COUNT(ta.entry_id) AS entry_count
            FROM tags t LEFT JOIN tag_assignments ta ON ta.tag_id = t.id
            GROUP BY t.id ORDER BY t.name
            """
        ).fetchall()
        return [_tag_from_row(row) for row in rows]

    def delete_tag(self, tag_id: int) -> bool:
        with self.db.transaction() as conn:
            cursor = conn.execute("DELETE FROM tags WHERE id = ?", (tag_id,))
        return cursor.rowcount > 0

    def assign_tag(self, tag_id: int, entry_id: int) -> bool:
        """Assign a tag; returns False if the pair was already assigned."""
        with self.db.transaction() as conn:
            self._require(conn, "tags", tag_id, "Tag")
            self._require(conn, "entries", entry_id, "Entry")
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO tag_assignments (tag_id, entry_id, assigned_at)
                VALUES (?, ?, ?)
                """,
                (tag_id, entry_id, time.time()),
            )
        return cursor.rowcount > 0

    def unassign_tag(self, tag_id: int, entry_id: int) -> bool:
        with self.db.transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM tag_assignments WHERE tag_id = ? AND entry_id = ?",
                (tag_id, entry_id),
            )
        return cursor.rowcount > 0

    def entries_for_tag(self, tag_id: int) -> list[MediaEntry]:
        rows = self.db.conn.execute(
            """
            SELECT e.* FROM entries e
            JOIN tag_assignments ta ON ta.entry_id = e.id
            WHERE ta.tag_id = ? ORDER BY e.path
            """,
            (tag_id,),
        ).fetchall()
        return [self._hydrate(row) for row in rows]

    def tags_for_entry(self, entry_id: int) -> list[Tag]:
        rows = self.db.conn.execute(
            """
            SELECT t.*, (SELECT COUNT(*) FROM tag_assignments x WHERE x.tag_id = t.id)
                AS entry_count
            FROM tags t JOIN tag_assignments ta ON ta.tag_id = t.id
            WHERE ta.entry_id = ? ORDER BY t.name
            """,
            (entry_id,),
        ).fetchall()
        return [_tag_from_row(row) for row in rows]

    @staticmethod
    def _require(conn: sqlite3.Connection, table: str, row_id: int, label: str) -> None:
        if conn.execute(f"SELECT 1 FROM {table} WHERE id = ?", (row_id,)).fetchone() is None:
            raise NotFound(f"{label} {row_id} does not exist")

    # -- saved searches --------------------------------------------------

    def insert_saved_search(self, search: SavedSearch) -> int:
        with self.db.transaction() as conn:
            try:
                cursor = conn.execute(
                    """
                    INSERT INTO saved_searches (
                        name, media_types, predicates_json, sort_by, descending,
                        created_at, last_used_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        search.name,
                        ",".join(search.media_types),
                        json.dumps(search.predicates, ensure_ascii=False),
                        search.sort_by,
                        int(search.descending),
                        search.created_at,
                        search.last_used_at,
                    ),
                )
            except sqlite3.IntegrityError as e:
                raise DuplicateName("saved search", search.name) from e
        assert cursor.lastrowid is not None
        search.id = cursor.lastrowid
        return cursor.lastrowid

    def get_saved_search(self, name: str) -> SavedSearch | None:
        row = self.db.conn.execute(
            "SELECT * FROM saved_searches WHERE name = ?", (name,)
        ).fetchone()
        return _saved_search_from_row(row) if row else None

    def list_saved_searches(self) -> list[SavedSearch]:
        rows = self.db.conn.execute("SELECT * FROM saved_searches ORDER BY name").fetchall()
        return [_saved_search_from_row(row) for row in rows]

    def delete_saved_search(self, name: str) -> bool:
        with self.db.transaction() as conn:
            cursor = conn.execute("DELETE FROM saved_searches WHERE name = ?", (name,))
        return cursor.rowcount > 0

    def touch_saved_search(self, name: str, used_at: float | None = None) -> None:
        with self.db.transaction() as conn:
            conn.execute(
                "UPDATE saved_searches SET last_used_at = ? WHERE name = ?",
                (used_at if used_at is not None else time.time(), name),
            )


def _collection_from_row(row: sqlite3.Row) -> Collection:
    return Collection(
        id=row["id"],
        show_title=row["show_title"],
        season_number=row["season_number"],
        directory=row["directory"],
        created_at=row["created_at"],
    )


def _tag_from_row(row: sqlite3.Row) -> Tag:
    return Tag(
        id=row["id"],
        name=row["name"],
        created_at=row["created_at"],
        entry_count=row["entry_count"],
    )


def _saved_search_from_row(row: sqlite3.Row) -> SavedSearch:
    return SavedSearch(
        id=row["id"],
        name=row["name"],
        media_types=[t for t in row["media_types"].split(",") if t],
        predicates=json.loads(row["predicates_json"]),
        sort_by=row["sort_by"],
        descending=bool(row["descending"]),
        created_at=row["created_at"],
        last_used_at=row["last_used_at"],
    )
