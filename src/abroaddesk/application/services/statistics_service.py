from __future__ import annotations

import logging
from typing import Any

from abroaddesk.core.errors import NotFoundError, ValidationError
from abroaddesk.core.time import now_utc_iso
from abroaddesk.domain.models.document import Document, SortSpec
from abroaddesk.domain.models.record import UPDATED_AT, Statistic
from abroaddesk.domain.ports import DocumentStore

logger = logging.getLogger(__name__)

STATISTICS_COLLECTION = "statistics"

DEFAULT_STATISTICS: dict[str, int] = {
    "students": 10000,
    "universities": 100,
    "countries": 5,
}


class StatisticsService:
    def __init__(self, document_store: DocumentStore) -> None:
        self.documents = document_store

    def list_statistics(self) -> list[Statistic]:
        """Return every counter, filling gaps with the public defaults.

        Read failures are logged and answered with the defaults so that public
        pages always have something to render.
        """
        try:
            page = self.documents.list(
                STATISTICS_COLLECTION,
                sort=SortSpec(field="name", descending=False),
                limit=100,
            )
            stored = [self._from_document(doc) for doc in page.documents]
        except Exception as exc:
            logger.warning("Falling back to default statistics: %s", exc)
            stored = []

        by_name = {stat.name: stat for stat in stored}
        stats = [by_name.pop(name, None) or Statistic(name=name, count=count) for name, count in DEFAULT_STATISTICS.items()]
        stats.extend(by_name.values())
        return stats

    def update_count(self, name: str, count: Any) -> Statistic:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Invalid input: name and count are required", ["name"])
        if isinstance(count, bool) or not isinstance(count, int):
            raise ValidationError("Invalid input: name and count are required", ["count"])
        if count < 0:
            raise ValidationError("Statistic count must not be negative", ["count"])

        existing = self.documents.get(STATISTICS_COLLECTION, name)
        now = now_utc_iso()
        if existing is None:
            if name not in DEFAULT_STATISTICS:
                raise NotFoundError(f"Statistic not found: {name}")
            document = self.documents.create(
                STATISTICS_COLLECTION,
                name,
                {"name": name, "count": count, "suffix": "+", UPDATED_AT: now},
            )
        else:
            document = self.documents.update(STATISTICS_COLLECTION, name, {"count": count, UPDATED_AT: now})
        logger.info("Statistic %s set to %d", name, count)
        return self._from_document(document)

    @staticmethod
    def _from_document(document: Document) -> Statistic:
        data = document.data
        try:
            count = int(data.get("count") or 0)
        except (TypeError, ValueError):
            count = 0
        return Statistic(
            name=str(data.get("name") or document.id),
            count=count,
            suffix=str(data.get("suffix") or "+"),
            id=document.id,
            updated_at=data.get(UPDATED_AT),
        )
