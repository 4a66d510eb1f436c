import os
from pathlib import Path

import pytest

from abroaddesk.core.errors import NotFoundError, ValidationError
from abroaddesk.domain.models.document import SortSpec
from abroaddesk.infrastructure.db.document_store import SqliteDocumentStore
from abroaddesk.infrastructure.db.sqlite import get_connection, initialize_schema


def _store(tmp_path: Path) -> SqliteDocumentStore:
    db_path = tmp_path / "abroad.db"
    initialize_schema(db_path)
    return SqliteDocumentStore(db_path)


def test_connection_enables_wal_and_busy_timeout(tmp_path: Path) -> None:
    db_path = tmp_path / "abroad.db"
    initialize_schema(db_path)

    with get_connection(db_path) as conn:
        journal_mode = conn.execute("PRAGMA journal_mode;").fetchone()[0]
        busy_timeout = conn.execute("PRAGMA busy_timeout;").fetchone()[0]

    assert str(journal_mode).lower() == "wal"
    assert int(busy_timeout) >= 30_000


def test_create_get_update_delete(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.create("stories", "s1", {"name": "Asha", "rating": 5, "status": "pending"})

    doc = store.get("stories", "s1")
    assert doc is not None
    assert doc.data == {"name": "Asha", "rating": 5, "status": "pending"}
    assert store.get("universities", "s1") is None

    updated = store.update("stories", "s1", {"status": "approved"})
    assert updated.data == {"name": "Asha", "rating": 5, "status": "approved"}

    store.delete("stories", "s1")
    assert store.get("stories", "s1") is None
    with pytest.raises(NotFoundError):
        store.delete("stories", "s1")
    with pytest.raises(NotFoundError):
        store.update("stories", "s1", {"status": "approved"})


def test_list_filters_sorts_and_counts(tmp_path: Path) -> None:
    store = _store(tmp_path)
    for idx, status in enumerate(["pending", "approved", "approved", "rejected", "approved"]):
        store.create("stories", f"s{idx}", {"name": f"n{idx}", "rating": idx, "status": status})

    page = store.list("stories", filters={"status": "approved"}, sort=SortSpec(field="rating", descending=True))
    assert page.total == 3
    assert [d.id for d in page.documents] == ["s4", "s2", "s1"]

    page = store.list("stories", sort=SortSpec(field="rating", descending=False), limit=2, offset=1)
    assert page.total == 5
    assert [d.id for d in page.documents] == ["s1", "s2"]


def test_boolean_filters_match_json_booleans(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.create("newsEvents", "a", {"title": "A", "isFeatured": True})
    store.create("newsEvents", "b", {"title": "B", "isFeatured": False})

    page = store.list("newsEvents", filters={"isFeatured": True})
    assert [d.id for d in page.documents] == ["a"]


def test_field_names_are_validated(tmp_path: Path) -> None:
    store = _store(tmp_path)
    with pytest.raises(ValidationError):
        store.list("stories", filters={"status') OR 1=1 --": "x"})
    with pytest.raises(ValidationError):
        store.list("stories", sort=SortSpec(field="name; DROP TABLE documents"))


def test_connection_settings_come_from_the_store_not_the_environment(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    db_path = tmp_path / "abroad.db"
    initialize_schema(db_path)
    store = SqliteDocumentStore(db_path, connect_timeout_seconds=5.0, busy_timeout_ms=1_234)

    reads: list[str] = []
    real_getenv = os.getenv

    def recording_getenv(name: str, default: str | None = None) -> str | None:
        reads.append(name)
        return real_getenv(name, default)

    monkeypatch.setattr(os, "getenv", recording_getenv)
    store.create("stories", "s1", {"name": "Asha"})
    store.list("stories")
    store.update("stories", "s1", {"name": "Asha K"})

    assert reads == []
    with store._connect() as conn:
        assert int(conn.execute("PRAGMA busy_timeout;").fetchone()[0]) == 1_234
