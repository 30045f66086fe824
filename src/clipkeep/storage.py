import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

from clipkeep.config import DB_PATH
from clipkeep.models import ClipboardItem, ContentType


SCHEMA = """
CREATE TABLE IF NOT EXISTS clipboard_items (
    id               TEXT PRIMARY KEY,
    content          BLOB NOT NULL,
    text_content     TEXT,
    content_type     TEXT NOT NULL CHECK(content_type IN ('text', 'url', 'image', 'file')),
    timestamp        TEXT NOT NULL,
    source_app       TEXT,
    source_app_name  TEXT,
    is_pinned        INTEGER NOT NULL DEFAULT 0,
    character_count  INTEGER,
    searchable_text  TEXT NOT NULL DEFAULT '',
    is_sensitive     INTEGER NOT NULL DEFAULT 0,
    thumbnail_data   BLOB
);

CREATE INDEX IF NOT EXISTS idx_timestamp ON clipboard_items(timestamp DESC);
CREATE INDEX IF NOT EXISTS idx_content_type ON clipboard_items(content_type);
CREATE INDEX IF NOT EXISTS idx_pinned ON clipboard_items(is_pinned);
"""

_COLUMNS = (
    "id, content, text_content, content_type, timestamp, source_app, source_app_name, "
    "is_pinned, character_count, searchable_text, is_sensitive, thumbnail_data"
)

# Same shape as _COLUMNS without image bytes or thumbnails.
_SUMMARY_COLUMNS = (
    "id, CASE WHEN content_type = 'image' THEN x'' ELSE content END AS content, "
    "text_content, content_type, timestamp, source_app, source_app_name, "
    "is_pinned, character_count, searchable_text, is_sensitive, NULL AS thumbnail_data"
)


def _encode_timestamp(value: datetime) -> str:
    # Fixed width so lexical order matches chronological order.
    return value.isoformat(timespec="microseconds")


class StorageManager:
    """SQLite-backed history store.

    Every public method takes ``self.lock``; callers that need several
    operations to run without interleaving (a capture pass, for example)
    can hold the same re-entrant lock around them.
    """

    def __init__(self, db_path: str | Path | None = None):
        self._db_path = str(db_path) if db_path else str(DB_PATH)
        self.lock = threading.RLock()
        self._conn = sqlite3.connect(self._db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self.init_db()

    def init_db(self) -> None:
        with self.lock:
            self._conn.executescript(SCHEMA)
            self._conn.commit()

    @contextmanager
    def _transaction(self):
        with self.lock:
            try:
                yield self._conn
                self._conn.commit()
            except sqlite3.Error:
                self._conn.rollback()
                raise

    def insert(self, item: ClipboardItem) -> str:
        with self._transaction() as conn:
            conn.execute(
                f"INSERT INTO clipboard_items ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    item.id,
                    item.content,
                    item.text_content,
                    item.content_type.value,
                    _encode_timestamp(item.timestamp),
                    item.source_app,
                    item.source_app_name,
                    int(item.is_pinned),
                    item.character_count,
                    item.searchable_text,
                    int(item.is_sensitive),
                    item.thumbnail_data,
                ),
            )
        return item.id

    def delete(self, item_id: str) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM clipboard_items WHERE id = ?", (item_id,))
        return cursor.rowcount > 0

    def set_pinned(self, item_id: str, pinned: bool) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute(
                "UPDATE clipboard_items SET is_pinned = ? WHERE id = ?",
                (int(pinned), item_id),
            )
        return cursor.rowcount > 0

    def toggle_pin(self, item_id: str) -> bool | None:
        """Flip the pin flag. Returns the new state, or None if the item is gone."""
        with self.lock:
            item = self.fetch_by_id(item_id)
            if item is None:
                return None
            new_pinned = not item.is_pinned
            self.set_pinned(item_id, new_pinned)
            return new_pinned

    def fetch_all(self, limit: int | None = None) -> list[ClipboardItem]:
        return self.fetch_where(limit=limit)

    def fetch_by_id(self, item_id: str) -> ClipboardItem | None:
        with self.lock:
            row = self._conn.execute(
                f"SELECT {_COLUMNS} FROM clipboard_items WHERE id = ?", (item_id,)
            ).fetchone()
        return self._row_to_item(row) if row else None

    def fetch_where(
        self,
        content_types: tuple[ContentType, ...] | None = None,
        pinned: bool | None = None,
        search: str | None = None,
        older_than: datetime | None = None,
        limit: int | None = None,
        offset: int = 0,
        with_blobs: bool = True,
    ) -> list[ClipboardItem]:
        """Items matching every given filter, newest first.

        With ``with_blobs=False`` image items come back with empty content
        and no item carries a thumbnail.
        """
        clauses: list[str] = []
        params: list = []
        if content_types:
            clauses.append(f"content_type IN ({', '.join('?' * len(content_types))})")
            params.extend(ct.value for ct in content_types)
        if pinned is not None:
            clauses.append("is_pinned = ?")
            params.append(int(pinned))
        if search is not None:
            clauses.append("instr(searchable_text, ?) > 0")
            params.append(search.lower())
        if older_than is not None:
            clauses.append("timestamp < ?")
            params.append(_encode_timestamp(older_than))

        columns = _COLUMNS if with_blobs else _SUMMARY_COLUMNS
        sql = f"SELECT {columns} FROM clipboard_items"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY timestamp DESC LIMIT ? OFFSET ?"
        params.extend((limit if limit is not None else -1, offset))

        with self.lock:
            rows = self._conn.execute(sql, params).fetchall()
        return [self._row_to_item(r) for r in rows]

    def search(self, query: str, limit: int | None = None) -> list[ClipboardItem]:
        return self.fetch_where(search=query, limit=limit)

    def latest_text_item(self) -> ClipboardItem | None:
        """Most recent item created from plain text, pinned or not."""
        items = self.fetch_where(content_types=(ContentType.TEXT, ContentType.URL), limit=1)
        return items[0] if items else None

    def count(self, pinned: bool | None = None) -> int:
        sql = "SELECT COUNT(*) AS cnt FROM clipboard_items"
        params: tuple = ()
        if pinned is not None:
            sql += " WHERE is_pinned = ?"
            params = (int(pinned),)
        with self.lock:
            row = self._conn.execute(sql, params).fetchone()
        return row["cnt"]

    def delete_unpinned_beyond(self, keep_count: int) -> int:
        """Delete non-pinned items past the newest ``keep_count`` of them."""
        with self._transaction() as conn:
            cursor = conn.execute(
                """DELETE FROM clipboard_items WHERE id IN (
                       SELECT id FROM clipboard_items
                       WHERE is_pinned = 0
                       ORDER BY timestamp DESC
                       LIMIT -1 OFFSET ?
                   )""",
                (max(0, keep_count),),
            )
        return cursor.rowcount

    def delete_unpinned_older_than(self, cutoff: datetime) -> int:
        with self._transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM clipboard_items WHERE is_pinned = 0 AND timestamp < ?",
                (_encode_timestamp(cutoff),),
            )
        return cursor.rowcount

    def clear(self, keep_pinned: bool = True) -> int:
        with self._transaction() as conn:
            if keep_pinned:
                cursor = conn.execute("DELETE FROM clipboard_items WHERE is_pinned = 0")
            else:
                cursor = conn.execute("DELETE FROM clipboard_items")
        return cursor.rowcount

    def close(self) -> None:
        with self.lock:
            self._conn.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    @staticmethod
    def _row_to_item(row: sqlite3.Row) -> ClipboardItem:
        thumbnail = row["thumbnail_data"]
        return ClipboardItem(
            id=row["id"],
            content=bytes(row["content"]),
            text_content=row["text_content"],
            content_type=ContentType(row["content_type"]),
            timestamp=datetime.fromisoformat(row["timestamp"]),
            source_app=row["source_app"],
            source_app_name=row["source_app_name"],
            is_pinned=bool(row["is_pinned"]),
            character_count=row["character_count"],
            searchable_text=row["searchable_text"],
            is_sensitive=bool(row["is_sensitive"]),
            thumbnail_data=bytes(thumbnail) if thumbnail is not None else None,
        )
