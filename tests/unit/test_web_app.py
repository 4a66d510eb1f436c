import asyncio
import io
import os
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from abroaddesk.application.services.project_service import ProjectService
from abroaddesk.core.config import AppConfig, load_config
from abroaddesk.infrastructure.db.document_store import SqliteDocumentStore
from abroaddesk.infrastructure.factory import StoreBundle
from abroaddesk.infrastructure.media.local_store import LocalMediaStore
from abroaddesk.web.app import create_app


@pytest.fixture()
def client(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> TestClient:
    for name in ("ABROAD_HOME", "ABROAD_BACKEND", "ABROAD_MEDIA_SIGNING_KEY", "ABROAD_PUBLIC_BASE_URL"):
        monkeypatch.delenv(name, raising=False)
    return TestClient(create_app(load_config(tmp_path)))


def _png() -> bytes:
    out = io.BytesIO()
    Image.new("RGB", (1024, 768), color=(10, 120, 200)).save(out, format="PNG")
    return out.getvalue()


def _visa(country: str) -> dict[str, object]:
    return {
        "countryName": country,
        "title": f"{country} student visa",
        "requirements": ["Passport", "Offer letter"],
        "ctaText": "Book a consultation",
        "ctaLink": "/contact",
    }


def test_story_create_then_partial_update(client: TestClient) -> None:
    r = client.post(
        "/api/stories",
        json={"name": "Asha", "program": "MSc CS", "university": "UBC", "content": "...", "rating": 5},
    )
    assert r.status_code == 201
    story = r.json()
    assert story["mediaUrl"] is None
    assert story["status"] == "pending"

    r = client.put(f"/api/stories/{story['id']}", json={"status": "approved"})
    assert r.status_code == 200
    assert r.json()["rating"] == 5
    assert r.json()["status"] == "approved"

    r = client.get("/api/stories", params={"status": "approved"})
    assert r.status_code == 200
    assert r.json()["total"] == 1
    assert r.json()["documents"][0]["id"] == story["id"]

    r = client.delete(f"/api/stories/{story['id']}")
    assert r.status_code == 204
    r = client.get(f"/api/stories/{story['id']}")
    assert r.status_code == 404
    assert "error" in r.json()


def test_validation_errors_name_fields(client: TestClient) -> None:
    r = client.post("/api/stories", json={"name": "Asha"})
    assert r.status_code == 400
    body = r.json()
    assert body["error"].startswith("Missing required fields")
    assert "program" in body["details"]

    r = client.post("/api/resources", data={"name": "Checklist"})
    assert r.status_code == 400
    assert r.json()["details"] == "file"


def test_multipart_team_member_with_photo(client: TestClient) -> None:
    r = client.post(
        "/api/team",
        data={"name": "Ravi", "position": "Counsellor", "description": "Visas", "skills": ["IELTS", "SOP"]},
        files={"file": ("ravi.png", _png(), "image/png")},
    )
    assert r.status_code == 201
    member = r.json()
    assert member["skills"] == ["IELTS", "SOP"]
    assert member["imageId"]
    assert member["mediaUrl"].startswith(f"/media/team/{member['imageId']}/preview?")

    preview = client.get(member["mediaUrl"])
    assert preview.status_code == 200
    assert preview.headers["content-type"] == "image/png"
    with Image.open(io.BytesIO(preview.content)) as im:
        assert im.width <= 300 and im.height <= 300

    tampered = member["mediaUrl"].replace("width=300", "width=900")
    assert client.get(tampered).status_code == 403

    r = client.put(
        f"/api/team/{member['id']}",
        data={"position": "Director"},
        files={"file": ("ravi2.png", _png(), "image/png")},
    )
    assert r.status_code == 200
    assert r.json()["imageId"] != member["imageId"]
    assert r.json()["name"] == "Ravi"


def test_resource_download_uses_record_name(client: TestClient) -> None:
    r = client.post(
        "/api/resources",
        data={"name": "Visa guide", "description": "Checklist"},
        files={"file": ("guide.pdf", b"%PDF-1.4 demo", "application/pdf")},
    )
    assert r.status_code == 201
    resource = r.json()
    assert resource["size"] == len(b"%PDF-1.4 demo")
    assert resource["type"] == "application"

    r = client.get(f"/api/resources/download/{resource['fileId']}")
    assert r.status_code == 200
    assert r.content == b"%PDF-1.4 demo"
    assert 'filename="Visa guide.pdf"' in r.headers["content-disposition"]

    assert client.get("/api/resources/download/unknown").status_code == 404


def test_visa_countries_are_distinct(client: TestClient) -> None:
    for country in ("Canada", "UK", "Canada"):
        assert client.post("/api/visa-requirements", json=_visa(country)).status_code == 201

    r = client.get("/api/visa-requirements/countries")
    assert r.status_code == 200
    assert r.json() == {"countries": ["Canada", "UK"]}

    r = client.get("/api/visa-requirements", params={"countryName": "UK"})
    assert r.json()["total"] == 1
    assert r.json()["documents"][0]["requirements"] == ["Passport", "Offer letter"]


def test_statistics_defaults_and_updates(client: TestClient) -> None:
    r = client.get("/api/statistics")
    assert r.status_code == 200
    counts = {s["name"]: s["count"] for s in r.json()["statistics"]}
    assert counts == {"students": 10000, "universities": 100, "countries": 5}

    r = client.post("/api/statistics", json={"name": "students", "count": 12000})
    assert r.status_code == 200
    assert r.json()["data"]["count"] == 12000

    assert client.post("/api/statistics", json={"name": "alumni", "count": 1}).status_code == 404
    r = client.post("/api/statistics", json={"name": "students", "count": "many"})
    assert r.status_code == 400
    assert "count" in r.json()["details"]


def test_list_parameters_are_validated(client: TestClient) -> None:
    r = client.get("/api/stories", params={"limit": 500})
    assert r.status_code == 400
    assert r.json()["error"] == "Invalid request"

    r = client.get("/api/stories", params={"sort": "content; DROP"})
    assert r.status_code == 400

    assert client.get("/api/unknown").status_code == 404


def test_list_paginates_newest_first(client: TestClient) -> None:
    ids = []
    for idx in range(3):
        r = client.post("/api/countries", json={"name": f"Country {idx}", "flag": "x", "intake": "Fall"})
        ids.append(r.json()["id"])

    r = client.get("/api/countries", params={"limit": 2})
    body = r.json()
    assert body["total"] == 3
    assert [d["id"] for d in body["documents"]] == [ids[2], ids[1]]

    r = client.get("/api/countries", params={"limit": 2, "offset": 2, "order": "desc"})
    assert [d["id"] for d in r.json()["documents"]] == [ids[0]]


class _LoopAwareMediaStore(LocalMediaStore):
    """Records whether each preview URL was signed on the event loop thread."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.signed_on_event_loop: list[bool] = []

    def preview_url(self, *args, **kwargs) -> str:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            self.signed_on_event_loop.append(False)
        else:
            self.signed_on_event_loop.append(True)
        return super().preview_url(*args, **kwargs)


def _local_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> AppConfig:
    for name in ("ABROAD_HOME", "ABROAD_BACKEND", "ABROAD_MEDIA_SIGNING_KEY", "ABROAD_PUBLIC_BASE_URL"):
        monkeypatch.delenv(name, raising=False)
    config = load_config(tmp_path)
    ProjectService(config).init_project()
    return config


def test_media_urls_are_resolved_off_the_event_loop(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config = _local_config(tmp_path, monkeypatch)
    media = _LoopAwareMediaStore(config.media_dir, signing_key="k")
    client = TestClient(create_app(config, stores=StoreBundle(SqliteDocumentStore(config.db_path), media)))

    r = client.post(
        "/api/team",
        data={"name": "Ravi", "position": "Counsellor", "description": "Visas"},
        files={"file": ("ravi.png", _png(), "image/png")},
    )
    assert r.status_code == 201
    member_id = r.json()["id"]

    r = client.put(
        f"/api/team/{member_id}",
        data={"position": "Director"},
        files={"file": ("ravi2.png", _png(), "image/png")},
    )
    assert r.status_code == 200
    assert client.get("/api/team").status_code == 200

    assert len(media.signed_on_event_loop) == 3
    assert not any(media.signed_on_event_loop)


def test_requests_do_not_read_the_environment(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    reads: list[str] = []
    real_getenv = os.getenv

    def recording_getenv(name: str, default: str | None = None) -> str | None:
        if name.startswith("ABROAD_"):
            reads.append(name)
        return real_getenv(name, default)

    monkeypatch.setattr(os, "getenv", recording_getenv)

    r = client.post(
        "/api/stories",
        json={"name": "Asha", "program": "MSc CS", "university": "UBC", "content": "...", "rating": 5},
    )
    assert r.status_code == 201
    assert client.get("/api/stories").status_code == 200

    assert reads == []
