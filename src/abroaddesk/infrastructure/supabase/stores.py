from __future__ import annotations

import logging
import mimetypes
from pathlib import PurePosixPath
from typing import Any, Mapping

from supabase import Client

from abroaddesk.core.errors import MediaNotFoundError, NotFoundError, StorageError
from abroaddesk.core.ids import new_asset_id
from abroaddesk.domain.models.document import Document, DocumentPage, SortSpec
from abroaddesk.domain.models.record import StoredAsset, UploadedFile

logger = logging.getLogger(__name__)

DEFAULT_TABLE = "documents"
_LIST_PAGE_SIZE = 1000


def _as_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _looks_missing(exc: Exception) -> bool:
    text = str(exc).lower()
    return "not found" in text or "404" in text


class SupabaseDocumentStore:
    """Document store over one ``documents`` table holding a jsonb ``data`` column."""

    def __init__(self, client: Client, table: str = DEFAULT_TABLE) -> None:
        self.client = client
        self.table = table

    def create(self, collection: str, document_id: str, data: Mapping[str, Any]) -> Document:
        payload = dict(data)
        try:
            response = (
                self.client.table(self.table)
                .insert({"collection": collection, "id": document_id, "data": payload})
                .execute()
            )
        except Exception as exc:
            raise StorageError(f"Failed to create document in {collection}", exc) from exc
        rows = response.data or []
        return self._to_model(rows[0]) if rows else Document(id=document_id, collection=collection, data=payload)

    def get(self, collection: str, document_id: str) -> Document | None:
        try:
            response = (
                self.client.table(self.table)
                .select("*")
                .eq("collection", collection)
                .eq("id", document_id)
                .limit(1)
                .execute()
            )
        except Exception as exc:
            raise StorageError(f"Failed to read document {collection}/{document_id}", exc) from exc
        rows = response.data or []
        return self._to_model(rows[0]) if rows else None

    def list(
        self,
        collection: str,
        filters: Mapping[str, Any] | None = None,
        sort: SortSpec | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> DocumentPage:
        sort = sort or SortSpec()
        query = self.client.table(self.table).select("*", count="exact").eq("collection", collection)
        for field, value in (filters or {}).items():
            if value is None:
                continue
            query = query.eq(f"data->>{field}", _as_text(value))
        start = max(offset, 0)
        end = start + max(limit, 1) - 1
        try:
            # jsonb ordering keeps numbers numeric; ->> would compare them as text.
            response = query.order(f"data->{sort.field}", desc=sort.descending).range(start, end).execute()
        except Exception as exc:
            raise StorageError(f"Failed to list documents in {collection}", exc) from exc
        rows = response.data or []
        total = response.count if response.count is not None else len(rows)
        return DocumentPage(documents=[self._to_model(row) for row in rows], total=int(total))

    def update(self, collection: str, document_id: str, data: Mapping[str, Any]) -> Document:
        existing = self.get(collection, document_id)
        if existing is None:
            raise NotFoundError(f"Document not found: {collection}/{document_id}")
        merged = {**existing.data, **dict(data)}
        try:
            response = (
                self.client.table(self.table)
                .update({"data": merged})
                .eq("collection", collection)
                .eq("id", document_id)
                .execute()
            )
        except Exception as exc:
            raise StorageError(f"Failed to update document {collection}/{document_id}", exc) from exc
        rows = response.data or []
        return self._to_model(rows[0]) if rows else Document(id=document_id, collection=collection, data=merged)

    def delete(self, collection: str, document_id: str) -> None:
        try:
            response = (
                self.client.table(self.table)
                .delete()
                .eq("collection", collection)
                .eq("id", document_id)
                .execute()
            )
        except Exception as exc:
            raise StorageError(f"Failed to delete document {collection}/{document_id}", exc) from exc
        if not response.data:
            raise NotFoundError(f"Document not found: {collection}/{document_id}")

    @staticmethod
    def _to_model(row: Mapping[str, Any]) -> Document:
        return Document(id=str(row["id"]), collection=str(row["collection"]), data=dict(row.get("data") or {}))


class SupabaseMediaStore:
    """Media store over Supabase Storage buckets; previews are signed, transformable URLs."""

    def __init__(self, client: Client, *, ttl_seconds: int = 3600) -> None:
        self.client = client
        self.ttl_seconds = ttl_seconds

    def store(self, bucket: str, upload: UploadedFile) -> str:
        suffix = PurePosixPath(upload.filename).suffix.lower()
        asset_id = f"{new_asset_id()}{suffix}"
        try:
            self.client.storage.from_(bucket).upload(
                asset_id,
                upload.data,
                {"content-type": upload.media_type, "upsert": "false"},
            )
        except Exception as exc:
            raise StorageError(f"Failed to store media in bucket {bucket}", exc) from exc
        return asset_id

    def preview_url(
        self,
        bucket: str,
        asset_id: str,
        width: int | None = None,
        height: int | None = None,
    ) -> str:
        options: dict[str, Any] = {}
        transform = {key: value for key, value in (("width", width), ("height", height)) if value}
        if transform and (mimetypes.guess_type(asset_id)[0] or "").startswith("image/"):
            options["transform"] = transform
        try:
            response = self.client.storage.from_(bucket).create_signed_url(asset_id, self.ttl_seconds, options)
        except Exception as exc:
            if _looks_missing(exc):
                raise MediaNotFoundError(f"Media asset not found: {bucket}/{asset_id}") from exc
            raise StorageError(f"Failed to sign media URL {bucket}/{asset_id}", exc) from exc
        url = response.get("signedURL") or response.get("signedUrl")
        if not url:
            raise StorageError(f"Storage returned no signed URL for {bucket}/{asset_id}")
        return str(url)

    def read(self, bucket: str, asset_id: str) -> StoredAsset:
        try:
            data = self.client.storage.from_(bucket).download(asset_id)
        except Exception as exc:
            if _looks_missing(exc):
                raise MediaNotFoundError(f"Media asset not found: {bucket}/{asset_id}") from exc
            raise StorageError(f"Failed to read media asset {bucket}/{asset_id}", exc) from exc
        return StoredAsset(
            asset_id=asset_id,
            bucket=bucket,
            filename=asset_id,
            content_type=mimetypes.guess_type(asset_id)[0] or "application/octet-stream",
            data=data,
        )

    def delete(self, bucket: str, asset_id: str) -> None:
        try:
            removed = self.client.storage.from_(bucket).remove([asset_id])
        except Exception as exc:
            raise StorageError(f"Failed to delete media asset {bucket}/{asset_id}", exc) from exc
        if not removed:
            raise MediaNotFoundError(f"Media asset not found: {bucket}/{asset_id}")

    def list_assets(self, bucket: str) -> list[str]:
        names: list[str] = []
        offset = 0
        while True:
            try:
                items = self.client.storage.from_(bucket).list(
                    None,
                    {"limit": _LIST_PAGE_SIZE, "offset": offset, "sortBy": {"column": "name", "order": "asc"}},
                )
            except Exception as exc:
                raise StorageError(f"Failed to list media in bucket {bucket}", exc) from exc
            names.extend(str(item["name"]) for item in items if item.get("name"))
            if len(items) < _LIST_PAGE_SIZE:
                break
            offset += _LIST_PAGE_SIZE
        logger.debug("Listed %d assets in bucket %s", len(names), bucket)
        return names
