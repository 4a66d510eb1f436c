from __future__ import annotations

import mimetypes
from dataclasses import dataclass, field
from typing import Any

from abroaddesk.domain.models.document import Document

CREATED_AT = "createdAt"
UPDATED_AT = "updatedAt"


@dataclass(slots=True)
class UploadedFile:
    filename: str
    data: bytes
    content_type: str | None = None

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def media_type(self) -> str:
        if self.content_type:
            return self.content_type
        return mimetypes.guess_type(self.filename)[0] or "application/octet-stream"


@dataclass(slots=True)
class StoredAsset:
    asset_id: str
    bucket: str
    filename: str
    content_type: str
    data: bytes


@dataclass(slots=True)
class MediaLinkedRecord:
    id: str
    collection: str
    fields: dict[str, Any]
    media_ref: str | None
    created_at: str | None
    updated_at: str | None

    @classmethod
    def from_document(cls, document: Document, media_field: str | None) -> MediaLinkedRecord:
        data = dict(document.data)
        media_ref = data.pop(media_field, None) if media_field else None
        created_at = data.pop(CREATED_AT, None)
        updated_at = data.pop(UPDATED_AT, None)
        return cls(
            id=document.id,
            collection=document.collection,
            fields=data,
            media_ref=str(media_ref) if media_ref else None,
            created_at=created_at,
            updated_at=updated_at,
        )

    def to_document_data(self, media_field: str | None) -> dict[str, Any]:
        data = dict(self.fields)
        if media_field:
            data[media_field] = self.media_ref
        data[CREATED_AT] = self.created_at
        data[UPDATED_AT] = self.updated_at
        return data


@dataclass(slots=True)
class RecordPage:
    records: list[MediaLinkedRecord]
    total: int


@dataclass(slots=True)
class Statistic:
    name: str
    count: int
    suffix: str = "+"
    id: str | None = None
    updated_at: str | None = None
