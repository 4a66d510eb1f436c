from __future__ import annotations

import logging
from typing import Any, Callable, Mapping, TypeVar

from abroaddesk.core.errors import AbroadError, NotFoundError, StorageError, ValidationError
from abroaddesk.core.ids import new_uuid
from abroaddesk.core.time import now_utc_iso
from abroaddesk.domain.models.document import Document, SortSpec
from abroaddesk.domain.models.entity import EntitySchema
from abroaddesk.domain.models.record import MediaLinkedRecord, RecordPage, UploadedFile
from abroaddesk.domain.ports import DocumentStore, MediaStore
from abroaddesk.application.services.record_codec import RecordCodec

logger = logging.getLogger(__name__)

T = TypeVar("T")


class MediaRecordService:
    """Keeps a record and its optional media asset consistent across writes.

    Validation runs before any store call. Failures of the record write itself
    surface as ``StorageError``; failures while deleting a replaced or orphaned
    asset are logged and never abort the operation.
    """

    def __init__(
        self,
        schema: EntitySchema,
        document_store: DocumentStore,
        media_store: MediaStore,
        *,
        bucket: str | None = None,
        codec: RecordCodec | None = None,
    ) -> None:
        self.schema = schema
        self.documents = document_store
        self.media = media_store
        self.bucket = bucket or schema.name
        self.codec = codec or RecordCodec(schema)

    def create(self, payload: Mapping[str, Any], upload: UploadedFile | None = None) -> MediaLinkedRecord:
        fields = self.codec.encode(payload)
        upload = self._check_upload(upload, creating=True)

        media_ref: str | None = None
        if upload is not None:
            fields = self._with_upload_metadata(fields, payload, upload)
            media_ref = self._store_media(upload)

        now = now_utc_iso()
        record = MediaLinkedRecord(
            id=new_uuid(),
            collection=self.schema.collection,
            fields=fields,
            media_ref=media_ref,
            created_at=now,
            updated_at=now,
        )
        try:
            document = self._primary(
                "create",
                lambda: self.documents.create(
                    self.schema.collection,
                    record.id,
                    record.to_document_data(self.schema.media_field),
                ),
            )
        except AbroadError:
            if media_ref:
                self._cleanup_asset(media_ref, reason="record create failed")
            raise
        return self._to_record(document)

    def get(self, record_id: str) -> MediaLinkedRecord:
        document = self._primary("read", lambda: self.documents.get(self.schema.collection, record_id))
        if document is None:
            raise NotFoundError(f"{self.schema.label.capitalize()} not found: {record_id}")
        return self._to_record(document)

    def list(
        self,
        filters: Mapping[str, Any] | None = None,
        *,
        sort: SortSpec | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> RecordPage:
        if sort is not None and sort.field not in self.schema.sortable_fields:
            raise ValidationError(f"Cannot sort {self.schema.name} by {sort.field}", [sort.field])
        page = self._primary(
            "list",
            lambda: self.documents.list(
                self.schema.collection,
                filters=filters,
                sort=sort,
                limit=limit,
                offset=offset,
            ),
        )
        return RecordPage(records=[self._to_record(doc) for doc in page.documents], total=page.total)

    def update(
        self,
        record_id: str,
        payload: Mapping[str, Any],
        upload: UploadedFile | None = None,
    ) -> MediaLinkedRecord:
        changes = self.codec.encode(payload, partial=True)
        upload = self._check_upload(upload, creating=False)
        existing = self.get(record_id)

        fields = {**existing.fields, **changes}
        old_ref = existing.media_ref
        new_ref: str | None = None
        if upload is not None:
            fields = self._with_upload_metadata(fields, payload, upload)
            new_ref = self._store_media(upload)

        record = MediaLinkedRecord(
            id=existing.id,
            collection=existing.collection,
            fields=fields,
            media_ref=new_ref or old_ref,
            created_at=existing.created_at,
            updated_at=now_utc_iso(),
        )
        try:
            document = self._primary(
                "update",
                lambda: self.documents.update(
                    self.schema.collection,
                    record_id,
                    record.to_document_data(self.schema.media_field),
                ),
            )
        except AbroadError:
            if new_ref:
                self._cleanup_asset(new_ref, reason="record update failed")
            raise

        # The record now points at the new asset; the old one is only garbage.
        if new_ref and old_ref and old_ref != new_ref:
            self._cleanup_asset(old_ref, reason="replaced")
        return self._to_record(document)

    def delete(self, record_id: str) -> None:
        existing = self.get(record_id)
        # Record first: a failed record delete must not leave it pointing at a removed asset.
        self._primary("delete", lambda: self.documents.delete(self.schema.collection, record_id))
        if existing.media_ref:
            self._cleanup_asset(existing.media_ref, reason="record deleted")

    def find_by_media_ref(self, media_ref: str) -> MediaLinkedRecord:
        if not self.schema.media_field:
            raise NotFoundError(f"{self.schema.label.capitalize()} records have no media")
        page = self.list({self.schema.media_field: media_ref}, limit=1)
        if not page.records:
            raise NotFoundError(f"{self.schema.label.capitalize()} not found for file: {media_ref}")
        return page.records[0]

    def iter_all(self, page_size: int = 100):
        offset = 0
        while True:
            page = self.list(sort=SortSpec(descending=False), limit=page_size, offset=offset)
            yield from page.records
            offset += len(page.records)
            if not page.records or offset >= page.total:
                break

    def distinct_values(self, field: str) -> list[Any]:
        seen: list[Any] = []
        for record in self.iter_all():
            value = record.fields.get(field)
            if value in (None, "") or value in seen:
                continue
            seen.append(value)
        return seen

    def _check_upload(self, upload: UploadedFile | None, *, creating: bool) -> UploadedFile | None:
        if upload is not None and upload.size == 0:
            upload = None
        if upload is not None and not self.schema.has_media:
            raise ValidationError(f"{self.schema.label.capitalize()} records do not accept files", ["file"])
        if upload is None and creating and self.schema.media_required:
            raise ValidationError("Missing required fields: file", ["file"])
        return upload

    def _with_upload_metadata(
        self,
        fields: dict[str, Any],
        payload: Mapping[str, Any],
        upload: UploadedFile,
    ) -> dict[str, Any]:
        if self.schema.upload_metadata is None:
            return fields
        merged = dict(fields)
        for key, value in self.schema.upload_metadata(upload).items():
            submitted = payload.get(key)
            if submitted is None or (isinstance(submitted, str) and not submitted.strip()):
                merged[key] = value
        return merged

    def _store_media(self, upload: UploadedFile) -> str:
        try:
            return self.media.store(self.bucket, upload)
        except StorageError:
            raise
        except Exception as exc:
            raise StorageError(f"Failed to store media for {self.schema.label}", exc) from exc

    def _cleanup_asset(self, asset_id: str, *, reason: str) -> None:
        try:
            self.media.delete(self.bucket, asset_id)
        except Exception as exc:
            logger.warning(
                "Media cleanup failed for %s/%s (%s): %s",
                self.bucket,
                asset_id,
                reason,
                exc,
            )

    def _primary(self, action: str, call: Callable[[], T]) -> T:
        try:
            return call()
        except AbroadError:
            raise
        except Exception as exc:
            raise StorageError(f"Failed to {action} {self.schema.label}", exc) from exc

    def _to_record(self, document: Document) -> MediaLinkedRecord:
        return MediaLinkedRecord.from_document(document, self.schema.media_field)
