from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from abroaddesk.core.errors import NotFoundError
from abroaddesk.domain.models.record import CREATED_AT, UPDATED_AT, UploadedFile

FIELD_STRING = "string"
FIELD_INTEGER = "integer"
FIELD_BOOLEAN = "boolean"
FIELD_DATE = "date"
FIELD_ENUM = "enum"
FIELD_LIST = "list"

FIELD_KINDS = frozenset({FIELD_STRING, FIELD_INTEGER, FIELD_BOOLEAN, FIELD_DATE, FIELD_ENUM, FIELD_LIST})


@dataclass(frozen=True, slots=True)
class FieldSpec:
    name: str
    kind: str = FIELD_STRING
    required: bool = False
    choices: tuple[str, ...] = ()
    default: Any = None
    minimum: int | None = None
    maximum: int | None = None
    max_encoded_length: int | None = None
    filterable: bool = False

    @property
    def is_structured(self) -> bool:
        return self.kind == FIELD_LIST


@dataclass(frozen=True, slots=True)
class EntitySchema:
    """Field rules and media binding for one admin-managed collection.

    ``name`` is the URL segment (``/api/<name>``) and the default bucket name;
    ``media_field`` is the document attribute holding the media asset id, or
    ``None`` for entities that never own a file.
    """

    name: str
    label: str
    collection: str
    fields: tuple[FieldSpec, ...]
    media_field: str | None = None
    media_required: bool = False
    preview_size: tuple[int, int] = (800, 600)
    upload_metadata: Callable[[UploadedFile], dict[str, Any]] | None = None

    @property
    def has_media(self) -> bool:
        return self.media_field is not None

    @property
    def required_fields(self) -> list[str]:
        return [spec.name for spec in self.fields if spec.required]

    @property
    def filterable_fields(self) -> list[str]:
        return [spec.name for spec in self.fields if spec.filterable]

    @property
    def sortable_fields(self) -> list[str]:
        return [spec.name for spec in self.fields if not spec.is_structured] + [CREATED_AT, UPDATED_AT]

    def field(self, name: str) -> FieldSpec | None:
        for spec in self.fields:
            if spec.name == name:
                return spec
        return None


def _resource_upload_metadata(upload: UploadedFile) -> dict[str, Any]:
    major = upload.media_type.split("/", 1)[0].strip()
    return {"size": upload.size, "type": major or "file"}


COUNTRIES = EntitySchema(
    name="countries",
    label="country",
    collection="countries",
    fields=(
        FieldSpec("name", required=True),
        FieldSpec("flag", required=True),
        FieldSpec("intake", required=True),
        FieldSpec("programs", default=""),
        FieldSpec("ranking", default=""),
        FieldSpec("description", default=""),
    ),
    media_field="imageId",
    preview_size=(800, 600),
)

UNIVERSITIES = EntitySchema(
    name="universities",
    label="university",
    collection="universities",
    fields=(
        FieldSpec("name", required=True),
        FieldSpec("country", required=True, filterable=True),
        FieldSpec("intake", required=True),
        FieldSpec("programs", default=""),
        FieldSpec("ranking", default=""),
        FieldSpec("description", default=""),
    ),
    media_field="imageId",
    preview_size=(400, 300),
)

TEAM = EntitySchema(
    name="team",
    label="team member",
    collection="teams",
    fields=(
        FieldSpec("name", required=True),
        FieldSpec("position", required=True),
        FieldSpec("description", required=True),
        FieldSpec("bio", default=""),
        FieldSpec("socialLinks", kind=FIELD_LIST, max_encoded_length=2000),
        FieldSpec("skills", kind=FIELD_LIST),
    ),
    media_field="imageId",
    preview_size=(300, 300),
)

STORIES = EntitySchema(
    name="stories",
    label="story",
    collection="stories",
    fields=(
        FieldSpec("name", required=True),
        FieldSpec("program", required=True),
        FieldSpec("university", required=True),
        FieldSpec("content", required=True),
        FieldSpec("rating", kind=FIELD_INTEGER, required=True, minimum=1, maximum=5),
        FieldSpec(
            "status",
            kind=FIELD_ENUM,
            choices=("pending", "approved", "rejected"),
            default="pending",
            filterable=True,
        ),
    ),
    media_field="imageId",
    preview_size=(200, 200),
)

NEWS_EVENTS = EntitySchema(
    name="news-events",
    label="news event",
    collection="newsEvents",
    fields=(
        FieldSpec("title", required=True),
        FieldSpec("type", kind=FIELD_ENUM, required=True, choices=("news", "event"), filterable=True),
        FieldSpec("content", required=True),
        FieldSpec("date", kind=FIELD_DATE, required=True),
        FieldSpec(
            "status",
            kind=FIELD_ENUM,
            choices=("draft", "published"),
            default="draft",
            filterable=True,
        ),
        FieldSpec("location", default=""),
        FieldSpec("isFeatured", kind=FIELD_BOOLEAN, default=False),
    ),
    media_field="imageId",
    preview_size=(800, 600),
)

VISA_REQUIREMENTS = EntitySchema(
    name="visa-requirements",
    label="visa requirement",
    collection="visaRequirements",
    fields=(
        FieldSpec("countryName", required=True, filterable=True),
        FieldSpec("title", required=True),
        FieldSpec("requirements", kind=FIELD_LIST, required=True),
        FieldSpec("ctaText", required=True),
        FieldSpec("ctaLink", required=True),
    ),
)

RESOURCES = EntitySchema(
    name="resources",
    label="resource",
    collection="resources",
    fields=(
        FieldSpec("name", required=True),
        FieldSpec("description", default=""),
        FieldSpec("type", filterable=True),
        FieldSpec("size", kind=FIELD_INTEGER, minimum=0),
    ),
    media_field="fileId",
    media_required=True,
    upload_metadata=_resource_upload_metadata,
)

FORMS = EntitySchema(
    name="forms",
    label="form submission",
    collection="forms",
    fields=(
        FieldSpec("name", required=True),
        FieldSpec("email", required=True),
        FieldSpec("phone", default=""),
        FieldSpec("subject", required=True),
        FieldSpec("message", required=True),
        FieldSpec(
            "status",
            kind=FIELD_ENUM,
            choices=("pending", "responded"),
            default="pending",
            filterable=True,
        ),
    ),
)

GALLERY = EntitySchema(
    name="gallery",
    label="gallery item",
    collection="gallery",
    fields=(
        FieldSpec("title", required=True),
        FieldSpec("description", default=""),
        FieldSpec("category", required=True, filterable=True),
        FieldSpec("tags", kind=FIELD_LIST),
    ),
    media_field="imageId",
    media_required=True,
    preview_size=(800, 600),
)

ENTITY_SCHEMAS: dict[str, EntitySchema] = {
    schema.name: schema
    for schema in (
        COUNTRIES,
        UNIVERSITIES,
        TEAM,
        STORIES,
        NEWS_EVENTS,
        VISA_REQUIREMENTS,
        RESOURCES,
        FORMS,
        GALLERY,
    )
}


def get_schema(name: str) -> EntitySchema:
    schema = ENTITY_SCHEMAS.get(name.strip().lower())
    if schema is None:
        raise NotFoundError(f"Unknown entity: {name}")
    return schema
