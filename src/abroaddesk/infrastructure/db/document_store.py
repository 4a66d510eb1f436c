from __future__ import annotations

import json
import re
import sqlite3
from pathlib import Path
from typing import Any, Mapping

from abroaddesk.core.errors import NotFoundError, StorageError, ValidationError
from abroaddesk.core.time import now_utc_iso
from abroaddesk.domain.models.document import Document, DocumentPage, SortSpec
from abroaddesk.infrastructure.db.sqlite import (
    DEFAULT_SQLITE_BUSY_TIMEOUT_MS,
    DEFAULT_SQLITE_CONNECT_TIMEOUT_SECONDS,
    get_connection,
)

_FIELD_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _json_path(field: str) -> str:
    if not _FIELD_NAME_RE.match(field):
        raise ValidationError(f"Invalid field name: {field!r}", [field])
    return f"$.{field}"


def _filter_value(value: Any) -> Any:
    if isinstance(value, bool):
        return int(value)
    return value


class SqliteDocumentStore:
    """Document store backed by a single JSON-per-row SQLite table."""

    def __init__(
        self,
        db_path: Path,
        *,
        connect_timeout_seconds: float = DEFAULT_SQLITE_CONNECT_TIMEOUT_SECONDS,
        busy_timeout_ms: int = DEFAULT_SQLITE_BUSY_TIMEOUT_MS,
    ) -> None:
        self.db_path = db_path
        self.connect_timeout_seconds = connect_timeout_seconds
        self.busy_timeout_ms = busy_timeout_ms

    def _connect(self) -> sqlite3.Connection:
        return get_connection(
            self.db_path,
            connect_timeout_seconds=self.connect_timeout_seconds,
            busy_timeout_ms=self.busy_timeout_ms,
        )

    def create(self, collection: str, document_id: str, data: Mapping[str, Any]) -> Document:
        payload = dict(data)
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO documents (collection, id, data_json, inserted_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (collection, document_id, self._dump(payload), now_utc_iso()),
                )
                conn.commit()
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to create document in {collection}", exc) from exc
        return Document(id=document_id, collection=collection, data=payload)

    def get(self, collection: str, document_id: str) -> Document | None:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT * FROM documents WHERE collection = ? AND id = ?",
                    (collection, document_id),
                ).fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to read document {collection}/{document_id}", exc) from exc
        return self._to_model(row) if row else None

    def list(
        self,
        collection: str,
        filters: Mapping[str, Any] | None = None,
        sort: SortSpec | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> DocumentPage:
        sort = sort or SortSpec()
        where = ["collection = ?"]
        params: list[Any] = [collection]
        for field, value in (filters or {}).items():
            if value is None:
                continue
            where.append("json_extract(data_json, ?) = ?")
            params.extend([_json_path(field), _filter_value(value)])
        where_sql = " AND ".join(where)
        direction = "DESC" if sort.descending else "ASC"

        try:
            with self._connect() as conn:
                total = conn.execute(
                    f"SELECT COUNT(*) FROM documents WHERE {where_sql}",
                    params,
                ).fetchone()[0]
                rows = conn.execute(
                    f"""
                    SELECT * FROM documents
                    WHERE {where_sql}
                    ORDER BY json_extract(data_json, ?) {direction}, inserted_at {direction}, rowid {direction}
                    LIMIT ? OFFSET ?
                    """,
                    [*params, _json_path(sort.field), max(limit, 0), max(offset, 0)],
                ).fetchall()
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to list documents in {collection}", exc) from exc
        return DocumentPage(documents=[self._to_model(row) for row in rows], total=int(total))

    def update(self, collection: str, document_id: str, data: Mapping[str, Any]) -> Document:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT * FROM documents WHERE collection = ? AND id = ?",
                    (collection, document_id),
                ).fetchone()
                if row is None:
                    raise NotFoundError(f"Document not found: {collection}/{document_id}")
                merged = {**json.loads(row["data_json"]), **dict(data)}
                conn.execute(
                    "UPDATE documents SET data_json = ? WHERE collection = ? AND id = ?",
                    (self._dump(merged), collection, document_id),
                )
                conn.commit()
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to update document {collection}/{document_id}", exc) from exc
        return Document(id=document_id, collection=collection, data=merged)

    def delete(self, collection: str, document_id: str) -> None:
        try:
            with self._connect() as conn:
                cursor = conn.execute(
                    "DELETE FROM documents WHERE collection = ? AND id = ?",
                    (collection, document_id),
                )
                conn.commit()
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to delete document {collection}/{document_id}", exc) from exc
        if cursor.rowcount == 0:
            raise NotFoundError(f"Document not found: {collection}/{document_id}")

    @staticmethod
    def _dump(data: Mapping[str, Any]) -> str:
        return json.dumps(data, ensure_ascii=False, sort_keys=True)

    @staticmethod
    def _to_model(row) -> Document:
        return Document(
            id=row["id"],
            collection=row["collection"],
            data=json.loads(row["data_json"]),
        )
