from __future__ import annotations

from abroaddesk.core.config import AppConfig
from abroaddesk.domain.models.entity import ENTITY_SCHEMAS, EntitySchema, get_schema
from abroaddesk.domain.ports import DocumentStore, MediaStore
from abroaddesk.application.services.media_record_service import MediaRecordService
from abroaddesk.application.services.record_codec import RecordCodec
from abroaddesk.application.services.view_projection_service import ViewProjector


class RecordCatalog:
    """Builds the record manager and view projector for each entity."""

    def __init__(self, config: AppConfig, document_store: DocumentStore, media_store: MediaStore) -> None:
        self.config = config
        self.documents = document_store
        self.media = media_store

    def schemas(self) -> list[EntitySchema]:
        return list(ENTITY_SCHEMAS.values())

    def records(self, entity: str) -> MediaRecordService:
        schema = get_schema(entity)
        return MediaRecordService(
            schema,
            self.documents,
            self.media,
            bucket=self.config.bucket_for(schema.name),
            codec=RecordCodec(schema),
        )

    def projector(self, entity: str) -> ViewProjector:
        schema = get_schema(entity)
        return ViewProjector(
            schema,
            self.media,
            bucket=self.config.bucket_for(schema.name),
            max_workers=self.config.projection_workers,
        )
