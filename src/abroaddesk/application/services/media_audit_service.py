from __future__ import annotations

import logging
from dataclasses import dataclass, field

from abroaddesk.application.services.catalog import RecordCatalog

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AuditIssue:
    check: str
    level: str
    message: str


@dataclass(slots=True)
class AuditReport:
    ok: bool
    checks_run: int
    issues: list[AuditIssue]
    dangling: list[tuple[str, str, str]] = field(default_factory=list)
    orphans: list[tuple[str, str]] = field(default_factory=list)
    swept: list[tuple[str, str]] = field(default_factory=list)


class MediaAuditService:
    """Finds records pointing at missing assets and assets nothing points at.

    Cleanup of replaced or deleted media is best-effort, so orphans are
    expected over time; ``run(sweep=True)`` removes them.
    """

    def __init__(self, catalog: RecordCatalog) -> None:
        self.catalog = catalog

    def run(self, *, sweep: bool = False) -> AuditReport:
        issues: list[AuditIssue] = []
        dangling: list[tuple[str, str, str]] = []
        orphans: list[tuple[str, str]] = []
        swept: list[tuple[str, str]] = []
        checks_run = 0

        # Records sharing a bucket must be considered together before calling
        # anything an orphan.
        referenced: dict[str, set[str]] = {}

        for schema in self.catalog.schemas():
            if not schema.has_media:
                continue
            checks_run += 1
            service = self.catalog.records(schema.name)
            stored = set(service.media.list_assets(service.bucket))
            refs = referenced.setdefault(service.bucket, set())
            for record in service.iter_all():
                if not record.media_ref:
                    continue
                refs.add(record.media_ref)
                if record.media_ref not in stored:
                    dangling.append((schema.name, record.id, record.media_ref))
                    issues.append(
                        AuditIssue(
                            check="dangling_media",
                            level="error",
                            message=f"{schema.name} {record.id} points at missing asset {service.bucket}/{record.media_ref}",
                        )
                    )

        media = self.catalog.media
        for bucket, refs in sorted(referenced.items()):
            checks_run += 1
            for asset_id in media.list_assets(bucket):
                if asset_id in refs:
                    continue
                orphans.append((bucket, asset_id))
                if not sweep:
                    issues.append(
                        AuditIssue(
                            check="orphan_media",
                            level="warning",
                            message=f"Asset {bucket}/{asset_id} is not referenced by any record",
                        )
                    )
                    continue
                try:
                    media.delete(bucket, asset_id)
                except Exception as exc:
                    logger.warning("Could not sweep orphan asset %s/%s: %s", bucket, asset_id, exc)
                    issues.append(
                        AuditIssue(
                            check="orphan_media",
                            level="warning",
                            message=f"Failed to delete orphan asset {bucket}/{asset_id}: {exc}",
                        )
                    )
                else:
                    swept.append((bucket, asset_id))

        return AuditReport(
            ok=not any(i.level == "error" for i in issues),
            checks_run=checks_run,
            issues=issues,
            dangling=dangling,
            orphans=orphans,
            swept=swept,
        )
