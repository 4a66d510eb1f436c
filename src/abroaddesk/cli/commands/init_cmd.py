from __future__ import annotations

import argparse

from abroaddesk.application.services.project_service import ProjectService
from abroaddesk.cli.context import CLIContext


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("init", help="Create the data directory, database and media signing key")
    parser.set_defaults(handler=run)


def run(args: argparse.Namespace, ctx: CLIContext) -> int:
    service = ProjectService(ctx.config)
    result = service.init_project()

    if result.paths_created:
        for path in result.paths_created:
            ctx.console.print(f"[green]Created[/green] {path}")
    else:
        ctx.console.print("[yellow]Project paths already existed[/yellow]")

    ctx.console.print(f"[green]Backend[/green] {ctx.config.backend}")
    ctx.console.print(f"[green]Database ready[/green] {result.db_path}")
    if result.signing_key_created:
        ctx.console.print(f"[green]Signing key written[/green] {ctx.config.signing_key_path}")
    return 0
