from __future__ import annotations

from typing import Any, Mapping, Protocol

from abroaddesk.domain.models.document import Document, DocumentPage, SortSpec
from abroaddesk.domain.models.record import StoredAsset, UploadedFile


class DocumentStore(Protocol):
    """Structured-record storage keyed by collection + document id.

    ``get`` returns ``None`` for a missing document; ``update`` and ``delete``
    raise ``NotFoundError``. Backend failures surface as ``StorageError``.
    """

    def create(self, collection: str, document_id: str, data: Mapping[str, Any]) -> Document: ...

    def get(self, collection: str, document_id: str) -> Document | None: ...

    def list(
        self,
        collection: str,
        filters: Mapping[str, Any] | None = None,
        sort: SortSpec | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> DocumentPage: ...

    def update(self, collection: str, document_id: str, data: Mapping[str, Any]) -> Document: ...

    def delete(self, collection: str, document_id: str) -> None: ...


class MediaStore(Protocol):
    """Blob storage keyed by bucket + asset id.

    ``preview_url``, ``read`` and ``delete`` raise ``MediaNotFoundError`` for a
    missing asset. Backend failures surface as ``StorageError``.
    """

    def store(self, bucket: str, upload: UploadedFile) -> str: ...

    def preview_url(
        self,
        bucket: str,
        asset_id: str,
        width: int | None = None,
        height: int | None = None,
    ) -> str: ...

    def read(self, bucket: str, asset_id: str) -> StoredAsset: ...

    def delete(self, bucket: str, asset_id: str) -> None: ...

    def list_assets(self, bucket: str) -> list[str]: ...
