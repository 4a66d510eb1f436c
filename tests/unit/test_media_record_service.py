import logging
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from abroaddesk.application.services.media_record_service import MediaRecordService
from abroaddesk.core.errors import NotFoundError, StorageError, ValidationError
from abroaddesk.domain.models.entity import RESOURCES, STORIES, TEAM
from abroaddesk.domain.models.record import UploadedFile
from abroaddesk.infrastructure.db.document_store import SqliteDocumentStore
from abroaddesk.infrastructure.db.sqlite import initialize_schema
from abroaddesk.infrastructure.media.local_store import LocalMediaStore


def _stores(tmp_path: Path) -> tuple[SqliteDocumentStore, LocalMediaStore]:
    db_path = tmp_path / "abroad.db"
    initialize_schema(db_path)
    return SqliteDocumentStore(db_path), LocalMediaStore(tmp_path / "media", signing_key="test-key")


def _team_payload(**overrides):
    payload = {"name": "Ravi", "position": "Counsellor", "description": "Visa specialist"}
    payload.update(overrides)
    return payload


def _story_payload(**overrides):
    payload = {
        "name": "Asha",
        "program": "MSc CS",
        "university": "UBC",
        "content": "Great experience.",
        "rating": 5,
    }
    payload.update(overrides)
    return payload


def _photo(name: str = "photo.jpg", data: bytes = b"jpeg-bytes") -> UploadedFile:
    return UploadedFile(filename=name, data=data, content_type="image/jpeg")


def test_create_without_file_leaves_media_ref_empty(tmp_path: Path) -> None:
    docs, media = _stores(tmp_path)
    service = MediaRecordService(STORIES, docs, media)

    record = service.create(_story_payload())

    assert record.media_ref is None
    assert record.fields["status"] == "pending"
    assert record.created_at == record.updated_at
    assert service.get(record.id).fields["rating"] == 5
    assert media.list_assets("stories") == []


def test_create_with_file_binds_stored_asset(tmp_path: Path) -> None:
    docs, media = _stores(tmp_path)
    service = MediaRecordService(TEAM, docs, media)

    record = service.create(_team_payload(), _photo())

    assert record.media_ref is not None
    assert media.exists("team", record.media_ref)
    assert media.read("team", record.media_ref).data == b"jpeg-bytes"


def test_invalid_create_fails_before_any_store_call() -> None:
    docs = MagicMock()
    media = MagicMock()
    service = MediaRecordService(STORIES, docs, media)

    with pytest.raises(ValidationError) as exc_info:
        service.create(_story_payload(status="archived"), _photo())

    assert exc_info.value.fields == ["status"]
    assert docs.create.call_count == 0
    assert media.store.call_count == 0


def test_resource_requires_a_file() -> None:
    docs = MagicMock()
    media = MagicMock()
    service = MediaRecordService(RESOURCES, docs, media)

    with pytest.raises(ValidationError) as exc_info:
        service.create({"name": "Checklist"})

    assert exc_info.value.fields == ["file"]
    docs.create.assert_not_called()
    media.store.assert_not_called()


def test_resource_size_and_type_come_from_upload(tmp_path: Path) -> None:
    docs, media = _stores(tmp_path)
    service = MediaRecordService(RESOURCES, docs, media)

    upload = UploadedFile(filename="guide.pdf", data=b"%PDF-1.4 demo", content_type="application/pdf")
    record = service.create({"name": "Visa guide"}, upload)

    assert record.fields["size"] == len(b"%PDF-1.4 demo")
    assert record.fields["type"] == "application"
    assert service.find_by_media_ref(record.media_ref).id == record.id


def test_update_replaces_media_and_deletes_old_asset(tmp_path: Path) -> None:
    docs, media = _stores(tmp_path)
    service = MediaRecordService(TEAM, docs, media)
    created = service.create(_team_payload(), _photo("old.jpg", b"old"))

    updated = service.update(created.id, {"position": "Director"}, _photo("new.jpg", b"new"))

    assert updated.media_ref != created.media_ref
    assert updated.fields["position"] == "Director"
    assert updated.fields["name"] == "Ravi"
    assert media.list_assets("team") == [updated.media_ref]
    assert media.read("team", updated.media_ref).data == b"new"


def test_update_survives_failed_old_asset_cleanup(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    docs, real_media = _stores(tmp_path)
    created = MediaRecordService(TEAM, docs, real_media).create(_team_payload(), _photo("old.jpg", b"old"))

    media = MagicMock(wraps=real_media)
    media.delete.side_effect = StorageError("bucket offline")
    service = MediaRecordService(TEAM, docs, media)

    with caplog.at_level(logging.WARNING):
        updated = service.update(created.id, {}, _photo("new.jpg", b"new"))

    assert service.get(created.id).media_ref == updated.media_ref
    assert "Media cleanup failed" in caplog.text
    assert sorted(real_media.list_assets("team")) == sorted([created.media_ref, updated.media_ref])


def test_failed_record_update_removes_new_asset(tmp_path: Path) -> None:
    real_docs, media = _stores(tmp_path)
    created = MediaRecordService(TEAM, real_docs, media).create(_team_payload(), _photo("old.jpg", b"old"))

    docs = MagicMock(wraps=real_docs)
    docs.update.side_effect = RuntimeError("disk full")
    service = MediaRecordService(TEAM, docs, media)

    with pytest.raises(StorageError) as exc_info:
        service.update(created.id, {"position": "Director"}, _photo("new.jpg", b"new"))

    assert isinstance(exc_info.value.cause, RuntimeError)
    assert media.list_assets("team") == [created.media_ref]
    assert real_docs.get("teams", created.id).data["imageId"] == created.media_ref


def test_failed_record_create_removes_uploaded_asset(tmp_path: Path) -> None:
    real_docs, media = _stores(tmp_path)
    docs = MagicMock(wraps=real_docs)
    docs.create.side_effect = RuntimeError("disk full")
    service = MediaRecordService(TEAM, docs, media)

    with pytest.raises(StorageError):
        service.create(_team_payload(), _photo())

    assert media.list_assets("team") == []


def test_partial_update_keeps_untouched_fields(tmp_path: Path) -> None:
    docs, media = _stores(tmp_path)
    service = MediaRecordService(STORIES, docs, media)
    created = service.create(_story_payload())

    updated = service.update(created.id, {"status": "approved", "content": "  "})

    assert updated.fields["rating"] == 5
    assert updated.fields["status"] == "approved"
    assert updated.fields["content"] == "Great experience."
    assert updated.created_at == created.created_at


def test_update_of_missing_record_touches_no_media() -> None:
    docs = MagicMock()
    docs.get.return_value = None
    media = MagicMock()
    service = MediaRecordService(TEAM, docs, media)

    with pytest.raises(NotFoundError):
        service.update("missing", {"position": "Director"}, _photo())

    media.store.assert_not_called()
    docs.update.assert_not_called()


def test_delete_removes_record_and_asset(tmp_path: Path) -> None:
    docs, media = _stores(tmp_path)
    service = MediaRecordService(TEAM, docs, media)
    created = service.create(_team_payload(), _photo())

    service.delete(created.id)

    with pytest.raises(NotFoundError):
        service.get(created.id)
    assert media.list_assets("team") == []


def test_delete_proceeds_when_asset_already_gone(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    docs, media = _stores(tmp_path)
    service = MediaRecordService(TEAM, docs, media)
    created = service.create(_team_payload(), _photo())
    media.delete("team", created.media_ref)

    with caplog.at_level(logging.WARNING):
        service.delete(created.id)

    assert docs.get("teams", created.id) is None
    assert "Media cleanup failed" in caplog.text


def test_list_filters_and_paginates(tmp_path: Path) -> None:
    docs, media = _stores(tmp_path)
    service = MediaRecordService(STORIES, docs, media)
    for idx in range(3):
        service.create(_story_payload(name=f"Student {idx}"))
    approved = service.create(_story_payload(name="Approved", status="approved"))

    page = service.list({"status": "approved"})
    assert page.total == 1
    assert page.records[0].id == approved.id

    page = service.list(limit=2, offset=0)
    assert page.total == 4
    assert len(page.records) == 2


def test_distinct_values_keep_first_seen_order(tmp_path: Path) -> None:
    from abroaddesk.domain.models.entity import VISA_REQUIREMENTS

    docs, media = _stores(tmp_path)
    service = MediaRecordService(VISA_REQUIREMENTS, docs, media)
    for country in ("Canada", "Australia", "Canada"):
        service.create(
            {
                "countryName": country,
                "title": f"{country} study permit",
                "requirements": ["Passport"],
                "ctaText": "Apply",
                "ctaLink": "/contact",
            }
        )

    assert service.distinct_values("countryName") == ["Canada", "Australia"]


def test_missing_required_field_fails_before_any_store_call() -> None:
    docs = MagicMock()
    media = MagicMock()
    service = MediaRecordService(TEAM, docs, media)

    with pytest.raises(ValidationError) as exc_info:
        service.create({"position": "Counsellor", "description": "d"}, _photo())

    assert exc_info.value.fields == ["name"]
    assert docs.create.call_count == 0
    assert media.store.call_count == 0


def test_failed_record_delete_keeps_record_and_asset(tmp_path: Path) -> None:
    real_docs, media = _stores(tmp_path)
    created = MediaRecordService(TEAM, real_docs, media).create(_team_payload(), _photo())

    docs = MagicMock(wraps=real_docs)
    docs.delete.side_effect = RuntimeError("database locked")
    service = MediaRecordService(TEAM, docs, media)

    with pytest.raises(StorageError):
        service.delete(created.id)

    assert real_docs.get("teams", created.id).data["imageId"] == created.media_ref
    assert media.exists("team", created.media_ref)
