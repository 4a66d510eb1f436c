from __future__ import annotations

from dataclasses import dataclass

from abroaddesk.core.config import BACKEND_LOCAL, BACKEND_SUPABASE, AppConfig
from abroaddesk.core.errors import ConfigurationError
from abroaddesk.domain.ports import DocumentStore, MediaStore
from abroaddesk.infrastructure.db.document_store import SqliteDocumentStore
from abroaddesk.infrastructure.media.local_store import LocalMediaStore


@dataclass(slots=True)
class StoreBundle:
    documents: DocumentStore
    media: MediaStore


def build_stores(config: AppConfig, *, signing_key: str) -> StoreBundle:
    if config.backend == BACKEND_LOCAL:
        return StoreBundle(
            documents=SqliteDocumentStore(
                config.db_path,
                connect_timeout_seconds=config.sqlite_connect_timeout_seconds,
                busy_timeout_ms=config.sqlite_busy_timeout_ms,
            ),
            media=LocalMediaStore(
                config.media_dir,
                signing_key=signing_key,
                public_base_url=config.public_base_url,
                ttl_seconds=config.preview_ttl_seconds,
            ),
        )
    if config.backend == BACKEND_SUPABASE:
        if not config.supabase_url or not config.supabase_key:
            raise ConfigurationError(
                "Supabase backend requires ABROAD_SUPABASE_URL and ABROAD_SUPABASE_KEY"
            )
        from supabase import create_client

        from abroaddesk.infrastructure.supabase.stores import SupabaseDocumentStore, SupabaseMediaStore

        client = create_client(config.supabase_url, config.supabase_key)
        return StoreBundle(
            documents=SupabaseDocumentStore(client),
            media=SupabaseMediaStore(client, ttl_seconds=config.preview_ttl_seconds),
        )
    raise ConfigurationError(f"Unknown storage backend: {config.backend}")
