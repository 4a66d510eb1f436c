from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True)
class Document:
    id: str
    collection: str
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class DocumentPage:
    documents: list[Document]
    total: int


@dataclass(slots=True, frozen=True)
class SortSpec:
    field: str = "createdAt"
    descending: bool = True
