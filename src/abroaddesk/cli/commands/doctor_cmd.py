from __future__ import annotations

import argparse

from rich.panel import Panel
from rich.table import Table

from abroaddesk.application.services.media_audit_service import MediaAuditService
from abroaddesk.cli.commands.records_cmd import open_catalog
from abroaddesk.cli.context import CLIContext


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("doctor", help="Check records and media assets for consistency")
    parser.add_argument("--sweep", action="store_true", help="Delete stored assets no record references")
    parser.set_defaults(handler=run_doctor)


def run_doctor(args: argparse.Namespace, ctx: CLIContext) -> int:
    catalog = open_catalog(ctx)
    report = MediaAuditService(catalog).run(sweep=args.sweep)

    summary = Panel.fit(
        f"Checks run: {report.checks_run}\n"
        f"Dangling references: {len(report.dangling)}\n"
        f"Orphaned assets: {len(report.orphans)}\n"
        f"Swept: {len(report.swept)}\n"
        f"Status: {'PASS' if report.ok else 'FAIL'}",
        title="Doctor Summary",
    )
    ctx.console.print(summary)

    if report.issues:
        out = Table(title="Doctor Issues")
        out.add_column("Level")
        out.add_column("Check")
        out.add_column("Message", overflow="fold")
        for issue in report.issues:
            out.add_row(issue.level, issue.check, issue.message)
        ctx.console.print(out)

    return 0 if report.ok else 1
