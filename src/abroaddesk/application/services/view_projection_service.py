from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Sequence

from abroaddesk.core.errors import MediaNotFoundError
from abroaddesk.domain.models.entity import EntitySchema
from abroaddesk.domain.models.record import CREATED_AT, UPDATED_AT, MediaLinkedRecord
from abroaddesk.domain.ports import MediaStore
from abroaddesk.application.services.record_codec import RecordCodec

logger = logging.getLogger(__name__)

MEDIA_URL = "mediaUrl"


class ViewProjector:
    """Turns stored records into view records with a resolved ``mediaUrl``.

    A missing or unresolvable asset yields ``mediaUrl: None`` and a log line;
    projecting never fails because of media.
    """

    def __init__(
        self,
        schema: EntitySchema,
        media_store: MediaStore,
        *,
        bucket: str | None = None,
        codec: RecordCodec | None = None,
        max_workers: int = 8,
    ) -> None:
        self.schema = schema
        self.media = media_store
        self.bucket = bucket or schema.name
        self.codec = codec or RecordCodec(schema)
        self.max_workers = max(1, int(max_workers))

    def project(self, record: MediaLinkedRecord) -> dict[str, Any]:
        view: dict[str, Any] = {"id": record.id}
        view.update(self.codec.decode(record.fields))
        if self.schema.media_field:
            view[self.schema.media_field] = record.media_ref
        view[CREATED_AT] = record.created_at
        view[UPDATED_AT] = record.updated_at
        view[MEDIA_URL] = self.resolve_media_url(record)
        return view

    def project_many(self, records: Sequence[MediaLinkedRecord]) -> list[dict[str, Any]]:
        if len(records) <= 1 or self.max_workers == 1:
            return [self.project(record) for record in records]
        # Each URL lookup may be a network round trip on hosted storage.
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(records))) as executor:
            return list(executor.map(self.project, records))

    def resolve_media_url(self, record: MediaLinkedRecord) -> str | None:
        if not record.media_ref:
            return None
        width, height = self.schema.preview_size
        try:
            return self.media.preview_url(self.bucket, record.media_ref, width, height)
        except MediaNotFoundError:
            logger.warning(
                "Media asset missing for %s %s: %s/%s",
                self.schema.label,
                record.id,
                self.bucket,
                record.media_ref,
            )
        except Exception as exc:
            logger.warning(
                "Could not resolve media URL for %s %s (%s/%s): %s",
                self.schema.label,
                record.id,
                self.bucket,
                record.media_ref,
                exc,
            )
        return None
