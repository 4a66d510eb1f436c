from __future__ import annotations

import json
import logging
from typing import Any, Mapping

from abroaddesk.core.errors import ValidationError
from abroaddesk.core.time import parse_iso_datetime
from abroaddesk.domain.models.entity import (
    FIELD_BOOLEAN,
    FIELD_DATE,
    FIELD_ENUM,
    FIELD_INTEGER,
    FIELD_LIST,
    EntitySchema,
    FieldSpec,
)

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


class _FieldError(ValueError):
    pass


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class RecordCodec:
    """Converts submitted payloads to stored document fields and back.

    Stored fields are scalars only: structured (list) fields are kept as JSON
    strings. ``encode`` is strict and raises ``ValidationError`` naming every
    offending field; ``decode`` never raises and falls back to empty lists or
    the field default when stored data is malformed.
    """

    def __init__(self, schema: EntitySchema) -> None:
        self.schema = schema

    def encode(self, payload: Mapping[str, Any], *, partial: bool = False) -> dict[str, Any]:
        stored: dict[str, Any] = {}
        missing: list[str] = []
        invalid: list[str] = []
        problems: list[str] = []

        for spec in self.schema.fields:
            raw = payload.get(spec.name)
            if _is_blank(raw):
                if partial:
                    continue
                if spec.required:
                    missing.append(spec.name)
                    continue
                default = self._default_for(spec)
                if default is not None:
                    stored[spec.name] = default
                continue

            try:
                value = self._encode_value(spec, raw)
            except _FieldError as exc:
                invalid.append(spec.name)
                problems.append(f"{spec.name} {exc}")
                continue

            if spec.is_structured and spec.required and value == "[]":
                if partial:
                    invalid.append(spec.name)
                    problems.append(f"{spec.name} must not be empty")
                else:
                    missing.append(spec.name)
                continue
            stored[spec.name] = value

        if missing or invalid:
            parts: list[str] = []
            if missing:
                parts.append(f"Missing required fields: {', '.join(missing)}")
            parts.extend(problems)
            raise ValidationError("; ".join(parts), missing + invalid)
        return stored

    def decode(self, fields: Mapping[str, Any]) -> dict[str, Any]:
        decoded = dict(fields)
        for spec in self.schema.fields:
            raw = fields.get(spec.name)
            if spec.kind == FIELD_LIST:
                decoded[spec.name] = self._decode_list(spec, raw)
            elif spec.kind == FIELD_ENUM:
                if raw not in spec.choices:
                    if raw is not None:
                        logger.debug("Unrecognized %s.%s value %r", self.schema.name, spec.name, raw)
                    decoded[spec.name] = spec.default if spec.default is not None else spec.choices[0]
            elif spec.kind == FIELD_INTEGER and isinstance(raw, str):
                try:
                    decoded[spec.name] = int(raw.strip())
                except ValueError:
                    decoded[spec.name] = None
            elif spec.kind == FIELD_BOOLEAN and isinstance(raw, str):
                decoded[spec.name] = raw.strip().lower() in _TRUE_VALUES
        return decoded

    def filter_values(self, query: Mapping[str, Any]) -> dict[str, Any]:
        filters: dict[str, Any] = {}
        for name in self.schema.filterable_fields:
            value = query.get(name)
            if _is_blank(value):
                continue
            filters[name] = str(value).strip()
        return filters

    @staticmethod
    def _default_for(spec: FieldSpec) -> Any:
        if spec.kind == FIELD_LIST:
            return "[]"
        return spec.default

    def _encode_value(self, spec: FieldSpec, raw: Any) -> Any:
        if spec.kind == FIELD_INTEGER:
            return self._encode_integer(spec, raw)
        if spec.kind == FIELD_BOOLEAN:
            return self._encode_boolean(raw)
        if spec.kind == FIELD_DATE:
            text = self._encode_string(raw)
            if parse_iso_datetime(text) is None:
                raise _FieldError("must be an ISO-8601 date")
            return text
        if spec.kind == FIELD_ENUM:
            text = self._encode_string(raw)
            if text not in spec.choices:
                raise _FieldError(f"must be one of: {', '.join(spec.choices)}")
            return text
        if spec.kind == FIELD_LIST:
            return self._encode_list(spec, raw)
        return self._encode_string(raw)

    @staticmethod
    def _encode_string(raw: Any) -> str:
        if isinstance(raw, (dict, list, tuple, set)):
            raise _FieldError("must be a string")
        return str(raw).strip()

    @staticmethod
    def _encode_integer(spec: FieldSpec, raw: Any) -> int:
        if isinstance(raw, bool):
            raise _FieldError("must be an integer")
        if isinstance(raw, int):
            value = raw
        elif isinstance(raw, float) and raw.is_integer():
            value = int(raw)
        else:
            try:
                value = int(str(raw).strip())
            except ValueError as exc:
                raise _FieldError("must be an integer") from exc
        if spec.minimum is not None and value < spec.minimum:
            raise _FieldError(f"must be at least {spec.minimum}")
        if spec.maximum is not None and value > spec.maximum:
            raise _FieldError(f"must be at most {spec.maximum}")
        return value

    @staticmethod
    def _encode_boolean(raw: Any) -> bool:
        if isinstance(raw, bool):
            return raw
        text = str(raw).strip().lower()
        if text in _TRUE_VALUES:
            return True
        if text in _FALSE_VALUES:
            return False
        raise _FieldError("must be a boolean")

    @staticmethod
    def _encode_list(spec: FieldSpec, raw: Any) -> str:
        value = raw
        if isinstance(raw, str):
            try:
                value = json.loads(raw)
            except json.JSONDecodeError as exc:
                raise _FieldError("must be a JSON list") from exc
        elif isinstance(raw, tuple):
            value = list(raw)
        if not isinstance(value, list):
            raise _FieldError("must be a list")
        encoded = json.dumps(value, ensure_ascii=False)
        if spec.max_encoded_length is not None and len(encoded) > spec.max_encoded_length:
            raise _FieldError(f"exceeds maximum length of {spec.max_encoded_length} characters")
        return encoded

    def _decode_list(self, spec: FieldSpec, raw: Any) -> list[Any]:
        if raw is None:
            return []
        if isinstance(raw, list):
            return raw
        if not isinstance(raw, str):
            logger.warning("Unexpected %s.%s type %s; using []", self.schema.name, spec.name, type(raw).__name__)
            return []
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Malformed JSON in %s.%s; using []", self.schema.name, spec.name)
            return []
        if not isinstance(parsed, list):
            logger.warning("Non-list JSON in %s.%s; using []", self.schema.name, spec.name)
            return []
        return parsed
