"""SQLite persistence of image histories."""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List

from layersizes.models import DirectoryNode, ImageHistory, ImageHistoryEntry

LOGGER = logging.getLogger(__name__)


class NonExistentError(LookupError):
    """No such entry found in the database."""


class SQLiteHistoryStore:
    """Stores the analysed digests of each image name."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self._conn = sqlite3.connect(self.db_path)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.execute("PRAGMA synchronous=NORMAL;")
        self._conn.execute("PRAGMA foreign_keys=ON;")
        self._ensure_schema()

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def close(self) -> None:
        self._conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        try:
            yield self._conn
            self._conn.commit()
        except Exception:
            self._conn.rollback()
            raise

    def _ensure_schema(self) -> None:
        with self.transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS image (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS image_history_entry (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    image_id INTEGER NOT NULL,
                    hash TEXT NOT NULL,
                    tags TEXT NOT NULL,
                    contents TEXT NOT NULL,
                    inspect_info TEXT NOT NULL,
                    FOREIGN KEY(image_id) REFERENCES image(id) ON DELETE CASCADE
                )
                """
            )
            conn.execute(
                """CREATE INDEX IF NOT EXISTS idx_history_image_id
                    ON image_history_entry(image_id)
                """
            )

    @staticmethod
    def _entry_columns(entry: ImageHistoryEntry) -> tuple[str, str, str]:
        # Trees are stored as flat row lists so that encoding does not recurse.
        contents = {digest: tree.to_rows() for digest, tree in entry.contents.items()}
        return (
            json.dumps(list(entry.tags)),
            json.dumps(contents),
            json.dumps(dict(entry.inspect_info)),
        )

    def _insert_entry(self, image_id: int, digest: str, entry: ImageHistoryEntry) -> ImageHistoryEntry:
        tags, contents, inspect_info = self._entry_columns(entry)
        entry_id = self._conn.execute(
            """
            INSERT INTO image_history_entry(image_id, hash, tags, contents, inspect_info)
            VALUES (?, ?, ?, ?, ?)
            """,
            (image_id, digest, tags, contents, inspect_info),
        ).lastrowid
        return ImageHistoryEntry(
            tags=list(entry.tags),
            contents=dict(entry.contents),
            inspect_info=dict(entry.inspect_info),
            id=entry_id,
        )

    def _update_entry(self, entry_id: int, digest: str, entry: ImageHistoryEntry) -> ImageHistoryEntry:
        tags, contents, inspect_info = self._entry_columns(entry)
        cursor = self._conn.execute(
            """
            UPDATE image_history_entry
            SET hash = ?, tags = ?, contents = ?, inspect_info = ?
            WHERE id = ?
            """,
            (digest, tags, contents, inspect_info, entry_id),
        )
        if cursor.rowcount == 0:
            raise NonExistentError(f"Failed to update history entry with id {entry_id}")
        return ImageHistoryEntry(
            tags=list(entry.tags),
            contents=dict(entry.contents),
            inspect_info=dict(entry.inspect_info),
            id=entry_id,
        )

    def _entries(self, image_id: int) -> Dict[str, ImageHistoryEntry]:
        rows = self._conn.execute(
            "SELECT * FROM image_history_entry WHERE image_id = ? ORDER BY id",
            (image_id,),
        ).fetchall()

        entries: Dict[str, ImageHistoryEntry] = {}
        for row in rows:
            entry = ImageHistoryEntry(
                tags=json.loads(row["tags"]),
                contents={
                    digest: DirectoryNode.from_rows(tree_rows)
                    for digest, tree_rows in json.loads(row["contents"]).items()
                },
                inspect_info=json.loads(row["inspect_info"]),
                id=row["id"],
            )
            entries[row["hash"]] = entry
        return entries

    def _delete_by_id(self, table: str, row_id: int | None) -> None:
        cursor = self._conn.execute(f"DELETE FROM {table} WHERE id = ?", (row_id,))
        if cursor.rowcount == 0:
            raise NonExistentError(f"Delete of table {table} with id {row_id} failed: 0 rows deleted")

    def list_images(self) -> List[dict]:
        """All stored image names with their ids."""
        rows = self._conn.execute("SELECT id, name FROM image ORDER BY id").fetchall()
        return [{"ID": row["id"], "Name": row["name"]} for row in rows]

    def read(self, image_name: str) -> List[ImageHistory]:
        """All histories stored under ``image_name`` (possibly none)."""
        rows = self._conn.execute(
            "SELECT id, name FROM image WHERE name = ? ORDER BY id", (image_name,)
        ).fetchall()
        return [
            ImageHistory(name=row["name"], history=self._entries(row["id"]), id=row["id"])
            for row in rows
        ]

    def read_by_id(self, image_id: int) -> ImageHistory:
        row = self._conn.execute("SELECT id, name FROM image WHERE id = ?", (image_id,)).fetchone()
        if row is None:
            raise NonExistentError(f"No image history with the id {image_id}")
        return ImageHistory(name=row["name"], history=self._entries(row["id"]), id=row["id"])

    def create(self, image_history: ImageHistory) -> ImageHistory:
        """Insert a new image together with all of its entries."""
        with self.transaction() as conn:
            image_id = conn.execute(
                "INSERT INTO image(name) VALUES (?)", (image_history.name,)
            ).lastrowid
            history = {
                digest: self._insert_entry(image_id, digest, entry)
                for digest, entry in image_history.history.items()
            }
        LOGGER.info("Created history %d for %s", image_id, image_history.name)
        return ImageHistory(name=image_history.name, history=history, id=image_id)

    def update(self, image_history: ImageHistory) -> ImageHistory:
        """Replace the stored state of an existing image.

        Entries missing from ``image_history`` are deleted, existing digests
        are overwritten and new digests are inserted.
        """
        if image_history.id is None:
            raise ValueError("Cannot update an image history without an id")

        with self.transaction() as conn:
            cursor = conn.execute(
                "UPDATE image SET name = ? WHERE id = ?", (image_history.name, image_history.id)
            )
            if cursor.rowcount == 0:
                raise NonExistentError(f"Failed to update image row with id {image_history.id}")

            old_entries = self._entries(image_history.id)
            history: Dict[str, ImageHistoryEntry] = {}
            for digest, old_entry in old_entries.items():
                if digest not in image_history.history:
                    self._delete_by_id("image_history_entry", old_entry.id)
            for digest, entry in image_history.history.items():
                if digest in old_entries:
                    history[digest] = self._update_entry(old_entries[digest].id, digest, entry)
                else:
                    history[digest] = self._insert_entry(image_history.id, digest, entry)

        LOGGER.info("Updated history %d for %s", image_history.id, image_history.name)
        return ImageHistory(name=image_history.name, history=history, id=image_history.id)

    def delete(self, image_history: ImageHistory) -> None:
        with self.transaction() as conn:
            conn.execute("DELETE FROM image_history_entry WHERE image_id = ?", (image_history.id,))
            self._delete_by_id("image", image_history.id)

    def delete_by_name(self, image_name: str) -> None:
        """Delete the single history stored under ``image_name``."""
        histories = self.read(image_name)
        if len(histories) != 1:
            raise ValueError(
                f"Expected to find exactly one image with the name {image_name}, "
                f"but got {len(histories)}"
            )
        self.delete(histories[0])
