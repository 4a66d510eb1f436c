from __future__ import annotations

import json
import logging
from dataclasses import asdict, is_dataclass
from pathlib import PurePath
from typing import Any, Literal
from urllib.parse import quote

from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, StrictInt
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import FormData, UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException

from abroaddesk.application.services.catalog import RecordCatalog
from abroaddesk.application.services.project_service import ProjectService
from abroaddesk.application.services.statistics_service import StatisticsService
from abroaddesk.core.config import AppConfig
from abroaddesk.core.errors import (
    AbroadError,
    AccessDeniedError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from abroaddesk.domain.models.document import SortSpec
from abroaddesk.domain.models.entity import EntitySchema, get_schema
from abroaddesk.domain.models.record import CREATED_AT, UploadedFile
from abroaddesk.infrastructure.factory import StoreBundle, build_stores

logger = logging.getLogger(__name__)

FILE_FIELDS = ("file", "image")
MAX_PAGE_SIZE = 100


class StatisticUpdateRequest(BaseModel):
    name: str
    count: StrictInt


def _jsonable(value: Any) -> Any:
    if is_dataclass(value):
        return asdict(value)
    if isinstance(value, list):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    return value


def _error_response(status_code: int, error: str, details: str | None = None) -> JSONResponse:
    body: dict[str, Any] = {"error": error}
    if details:
        body["details"] = details
    return JSONResponse(status_code=status_code, content=body)


def _status_for(exc: AbroadError) -> int:
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, AccessDeniedError):
        return 403
    if isinstance(exc, StorageError):
        return 500
    return 400


def _details_for(exc: AbroadError) -> str | None:
    if isinstance(exc, ValidationError) and exc.fields:
        return ", ".join(exc.fields)
    if isinstance(exc, StorageError):
        return exc.details
    return None


def _form_payload(schema: EntitySchema, form: FormData) -> tuple[dict[str, Any], list[UploadFile]]:
    payload: dict[str, Any] = {}
    files: list[UploadFile] = []
    for key in form.keys():
        values = form.getlist(key)
        if key in FILE_FIELDS:
            files.extend(v for v in values if isinstance(v, UploadFile))
            continue
        texts = [v for v in values if isinstance(v, str)]
        if not texts:
            continue
        spec = schema.field(key)
        if spec is not None and spec.is_structured:
            # A list arrives either as one JSON-encoded value or as repeated keys.
            if len(texts) == 1 and texts[0].lstrip().startswith("["):
                payload[key] = texts[0]
            else:
                payload[key] = [t for t in texts if t.strip()]
            continue
        payload[key] = texts[0]
    return payload, files


async def _read_submission(request: Request, schema: EntitySchema) -> tuple[dict[str, Any], UploadedFile | None]:
    content_type = request.headers.get("content-type", "").lower()
    if content_type.startswith(("multipart/form-data", "application/x-www-form-urlencoded")):
        form = await request.form()
        try:
            payload, files = _form_payload(schema, form)
            upload: UploadedFile | None = None
            for item in files:
                data = await item.read()
                if data:
                    upload = UploadedFile(
                        filename=item.filename or "upload",
                        data=data,
                        content_type=item.content_type,
                    )
                    break
        finally:
            await form.close()
        return payload, upload

    raw = await request.body()
    if not raw.strip():
        return {}, None
    try:
        body = json.loads(raw)
    except ValueError as exc:
        raise ValidationError("Request body must be JSON or multipart form data", ["body"]) from exc
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object", ["body"])
    return body, None


def _attachment_header(name: str | None, stored_filename: str) -> str:
    suffix = PurePath(stored_filename).suffix
    filename = (name or "").strip() or stored_filename
    if suffix and not filename.lower().endswith(suffix.lower()):
        filename = f"{filename}{suffix}"
    fallback = filename.encode("ascii", "ignore").decode("ascii").replace('"', "").replace("\\", "") or "download"
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"


def create_app(config: AppConfig, *, stores: StoreBundle | None = None) -> FastAPI:
    app = FastAPI(title="AbroadDesk", version="0.1.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if stores is None:
        project_service = ProjectService(config)
        project_service.init_project()
        stores = build_stores(config, signing_key=project_service.signing_key())

    catalog = RecordCatalog(config, stores.documents, stores.media)
    statistics = StatisticsService(stores.documents)

    @app.exception_handler(AbroadError)
    async def handle_abroad_error(request: Request, exc: AbroadError) -> JSONResponse:
        status_code = _status_for(exc)
        if status_code >= 500:
            logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc, _details_for(exc))
        return _error_response(status_code, str(exc), _details_for(exc))

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        problems = []
        for err in exc.errors():
            loc = ".".join(str(part) for part in err.get("loc", ()) if part not in ("query", "body", "path"))
            problems.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
        return _error_response(400, "Invalid request", "; ".join(problems))

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return _error_response(exc.status_code, str(exc.detail))

    @app.get("/api/statistics")
    def api_statistics() -> dict[str, Any]:
        return {"statistics": _jsonable(statistics.list_statistics())}

    @app.post("/api/statistics")
    def api_update_statistic(req: StatisticUpdateRequest) -> dict[str, Any]:
        stat = statistics.update_count(req.name, req.count)
        return {"success": True, "data": _jsonable(stat)}

    @app.get("/api/visa-requirements/countries")
    def api_visa_countries() -> dict[str, Any]:
        return {"countries": catalog.records("visa-requirements").distinct_values("countryName")}

    @app.get("/api/resources/download/{file_id}")
    def api_download_resource(file_id: str) -> Response:
        service = catalog.records("resources")
        record = service.find_by_media_ref(file_id)
        asset = stores.media.read(service.bucket, file_id)
        return Response(
            content=asset.data,
            media_type=asset.content_type,
            headers={"Content-Disposition": _attachment_header(record.fields.get("name"), asset.filename)},
        )

    @app.get("/media/{bucket}/{asset_id}/preview")
    def media_preview(
        bucket: str,
        asset_id: str,
        expires: int = Query(...),
        signature: str = Query(..., min_length=1),
        width: int | None = Query(None, ge=1, le=4096),
        height: int | None = Query(None, ge=1, le=4096),
    ) -> Response:
        render = getattr(stores.media, "render_preview", None)
        if render is None:
            raise NotFoundError("Media previews are served directly by the storage backend")
        data, content_type = render(
            bucket,
            asset_id,
            width=width,
            height=height,
            expires=expires,
            signature=signature,
        )
        return Response(content=data, media_type=content_type, headers={"Cache-Control": "private, max-age=300"})

    @app.get("/api/{entity}")
    def api_list_records(
        entity: str,
        request: Request,
        limit: int = Query(50, ge=1, le=MAX_PAGE_SIZE),
        offset: int = Query(0, ge=0),
        sort: str | None = Query(None),
        order: Literal["asc", "desc"] = Query("desc"),
    ) -> dict[str, Any]:
        service = catalog.records(entity)
        filters = service.codec.filter_values(request.query_params)
        sort_spec = SortSpec(field=sort or CREATED_AT, descending=order == "desc")
        page = service.list(filters, sort=sort_spec, limit=limit, offset=offset)
        return {"documents": catalog.projector(entity).project_many(page.records), "total": page.total}

    @app.get("/api/{entity}/{record_id}")
    def api_get_record(entity: str, record_id: str) -> dict[str, Any]:
        record = catalog.records(entity).get(record_id)
        return catalog.projector(entity).project(record)

    @app.post("/api/{entity}", status_code=201)
    async def api_create_record(entity: str, request: Request) -> dict[str, Any]:
        schema = get_schema(entity)
        payload, upload = await _read_submission(request, schema)
        record = await run_in_threadpool(catalog.records(entity).create, payload, upload)
        logger.info("Created %s %s", schema.label, record.id)
        return await run_in_threadpool(catalog.projector(entity).project, record)

    @app.put("/api/{entity}/{record_id}")
    async def api_update_record(entity: str, record_id: str, request: Request) -> dict[str, Any]:
        schema = get_schema(entity)
        payload, upload = await _read_submission(request, schema)
        record = await run_in_threadpool(catalog.records(entity).update, record_id, payload, upload)
        logger.info("Updated %s %s", schema.label, record.id)
        return await run_in_threadpool(catalog.projector(entity).project, record)

    @app.delete("/api/{entity}/{record_id}", status_code=204)
    def api_delete_record(entity: str, record_id: str) -> Response:
        catalog.records(entity).delete(record_id)
        logger.info("Deleted %s %s", get_schema(entity).label, record_id)
        return Response(status_code=204)

    return app
