from __future__ import annotations

import argparse

from rich.table import Table

from abroaddesk.application.services.catalog import RecordCatalog
from abroaddesk.application.services.project_service import ProjectService
from abroaddesk.cli.context import CLIContext
from abroaddesk.core.errors import ProjectNotInitializedError
from abroaddesk.domain.models.document import SortSpec
from abroaddesk.domain.models.entity import ENTITY_SCHEMAS, get_schema
from abroaddesk.infrastructure.factory import build_stores


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("records", help="List records of one entity")
    parser.add_argument("entity", choices=sorted(ENTITY_SCHEMAS))
    parser.add_argument("--limit", type=int, default=50)
    parser.add_argument("--offset", type=int, default=0)
    parser.add_argument(
        "--filter",
        action="append",
        default=[],
        metavar="FIELD=VALUE",
        help="Filter on a filterable field; may be repeated",
    )
    parser.set_defaults(handler=run)


def open_catalog(ctx: CLIContext) -> RecordCatalog:
    project_service = ProjectService(ctx.config)
    if not project_service.is_initialized():
        raise ProjectNotInitializedError(
            f"Project is not initialized. Run 'abroad init' first in {ctx.config.project_root}"
        )
    stores = build_stores(ctx.config, signing_key=project_service.signing_key())
    return RecordCatalog(ctx.config, stores.documents, stores.media)


def run(args: argparse.Namespace, ctx: CLIContext) -> int:
    schema = get_schema(args.entity)
    catalog = open_catalog(ctx)
    service = catalog.records(schema.name)

    query = dict(item.split("=", 1) for item in args.filter if "=" in item)
    page = service.list(
        service.codec.filter_values(query),
        sort=SortSpec(),
        limit=args.limit,
        offset=args.offset,
    )
    views = catalog.projector(schema.name).project_many(page.records)

    columns = schema.required_fields[:3]
    table = Table(title=f"{schema.name} ({len(views)} of {page.total})")
    table.add_column("ID")
    for name in columns:
        table.add_column(name, overflow="fold")
    if schema.has_media:
        table.add_column(schema.media_field)
    table.add_column("Created")

    for view in views:
        row = [view["id"], *(str(view.get(name, "")) for name in columns)]
        if schema.has_media:
            row.append(view.get(schema.media_field) or "-")
        row.append(view.get("createdAt") or "")
        table.add_row(*row)

    ctx.console.print(table)
    return 0
