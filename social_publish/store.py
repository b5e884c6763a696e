"""SQLite-backed document store.

Posts, upload metadata and OAuth credentials all live in one ``documents``
table, keyed by a unique ``search_key`` and indexed secondarily by a
replaceable set of tags.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
import uuid as uuid_lib
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, Iterator

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS documents (
    uuid TEXT PRIMARY KEY,
    search_key TEXT NOT NULL UNIQUE,
    kind TEXT NOT NULL,
    payload TEXT NOT NULL,
    created_at INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS documents_kind_created_at
    ON documents (kind, created_at);

CREATE TABLE IF NOT EXISTS document_tags (
    document_uuid TEXT NOT NULL REFERENCES documents (uuid) ON DELETE CASCADE,
    name TEXT NOT NULL,
    kind TEXT NOT NULL,
    PRIMARY KEY (document_uuid, name, kind)
);
"""


class StorageError(Exception):
    """Raised when a storage operation fails."""


class DuplicateKeyError(StorageError):
    """Raised when an insert collides with an existing search key."""


@dataclass(frozen=True)
class Tag:
    name: str
    kind: str


@dataclass
class Document:
    uuid: str
    search_key: str
    kind: str
    payload: str
    tags: list[Tag] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class OrderBy(Enum):
    CREATED_AT_DESC = "created_at DESC, rowid DESC"
    CREATED_AT_ASC = "created_at ASC, rowid ASC"


def _to_millis(value: datetime) -> int:
    return int(value.timestamp() * 1000)


def _from_millis(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


class DocumentStore:
    """Upsert-by-key documents with a replaceable tag set."""

    def __init__(
        self,
        path: Path | str = ":memory:",
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._path = str(path)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = threading.RLock()
        try:
            if self._path != ":memory:":
                Path(self._path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(
                self._path, check_same_thread=False, isolation_level=None,
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
            self._conn.executescript(SCHEMA)
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to open document store at {self._path}: {exc}") from exc

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    @contextmanager
    def _transaction(self, write: bool = False) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                self._conn.execute("BEGIN IMMEDIATE" if write else "BEGIN")
                try:
                    yield self._conn
                except BaseException:
                    self._conn.execute("ROLLBACK")
                    raise
                self._conn.execute("COMMIT")
            except sqlite3.IntegrityError as exc:
                raise DuplicateKeyError(f"storage operation failed: {exc}") from exc
            except sqlite3.Error as exc:
                raise StorageError(f"storage operation failed: {exc}") from exc

    @staticmethod
    def _set_tags(conn: sqlite3.Connection, document_uuid: str, tags: Iterable[Tag]) -> list[Tag]:
        unique = list(dict.fromkeys(tags))
        conn.execute("DELETE FROM document_tags WHERE document_uuid = ?", (document_uuid,))
        conn.executemany(
            "INSERT INTO document_tags (document_uuid, name, kind) VALUES (?, ?, ?)",
            [(document_uuid, t.name, t.kind) for t in unique],
        )
        if unique:
            logger.info(
                "Tags for document %s: %s", document_uuid, ", ".join(t.name for t in unique),
            )
        return unique

    @staticmethod
    def _get_tags(conn: sqlite3.Connection, document_uuid: str) -> list[Tag]:
        rows = conn.execute(
            "SELECT name, kind FROM document_tags WHERE document_uuid = ? ORDER BY rowid",
            (document_uuid,),
        ).fetchall()
        return [Tag(row["name"], row["kind"]) for row in rows]

    def _row_to_document(self, conn: sqlite3.Connection, row: sqlite3.Row) -> Document:
        return Document(
            uuid=row["uuid"],
            search_key=row["search_key"],
            kind=row["kind"],
            payload=row["payload"],
            tags=self._get_tags(conn, row["uuid"]),
            created_at=_from_millis(row["created_at"]),
        )

    def create_or_update(
        self,
        kind: str,
        payload: str,
        search_key: str | None = None,
        tags: Iterable[Tag] = (),
    ) -> Document:
        """Insert a document, or update the one already holding ``search_key``.

        On update the payload and the whole tag set are replaced while the
        uuid and creation time stay the same.
        """
        tags = list(tags)
        with self._transaction(write=True) as conn:
            if search_key is not None:
                row = conn.execute(
                    "SELECT * FROM documents WHERE search_key = ?", (search_key,),
                ).fetchone()
                if row is not None:
                    conn.execute(
                        "UPDATE documents SET payload = ? WHERE uuid = ?",
                        (payload, row["uuid"]),
                    )
                    stored_tags = self._set_tags(conn, row["uuid"], tags)
                    logger.info("Updated document %s (%s)", row["uuid"], search_key)
                    existing = self._row_to_document(conn, row)
                    return replace(existing, payload=payload, tags=stored_tags)

            doc_uuid = str(uuid_lib.uuid4())
            final_key = search_key if search_key is not None else f"{kind}:{doc_uuid}"
            now = self._clock()
            conn.execute(
                "INSERT INTO documents (uuid, search_key, kind, payload, created_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (doc_uuid, final_key, kind, payload, _to_millis(now)),
            )
            stored_tags = self._set_tags(conn, doc_uuid, tags)
            logger.debug("Created document %s (%s)", doc_uuid, final_key)
            return Document(
                uuid=doc_uuid,
                search_key=final_key,
                kind=kind,
                payload=payload,
                tags=stored_tags,
                created_at=_from_millis(_to_millis(now)),
            )

    def search_by_key(self, search_key: str) -> Document | None:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM documents WHERE search_key = ?", (search_key,),
            ).fetchone()
            return self._row_to_document(conn, row) if row is not None else None

    def search_by_uuid(self, uuid: str) -> Document | None:
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM documents WHERE uuid = ?", (uuid,)).fetchone()
            return self._row_to_document(conn, row) if row is not None else None

    def search_by_tag(self, name: str, kind: str) -> list[Document]:
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT d.* FROM documents d "
                "JOIN document_tags t ON t.document_uuid = d.uuid "
                "WHERE t.name = ? AND t.kind = ? "
                "ORDER BY d.created_at DESC, d.rowid DESC",
                (name, kind),
            ).fetchall()
            return [self._row_to_document(conn, row) for row in rows]

    def get_all(self, kind: str, order_by: OrderBy = OrderBy.CREATED_AT_DESC) -> list[Document]:
        with self._transaction() as conn:
            rows = conn.execute(
                f"SELECT * FROM documents WHERE kind = ? ORDER BY {order_by.value}", (kind,),
            ).fetchall()
            return [self._row_to_document(conn, row) for row in rows]

