from __future__ import annotations

import argparse
import logging
from pathlib import Path

from rich.console import Console

from abroaddesk.cli.commands import doctor_cmd, init_cmd, records_cmd, web_cmd
from abroaddesk.cli.context import CLIContext
from abroaddesk.core.config import load_config
from abroaddesk.core.errors import AbroadError
from abroaddesk.core.logging import configure_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="abroad",
        description="AbroadDesk content admin CLI",
    )
    parser.add_argument(
        "--project-root",
        type=Path,
        default=Path.cwd(),
        help="Project root to use for .abroad data (default: current working directory)",
    )
    parser.add_argument("-v", "--verbose", action="count", default=0)

    subparsers = parser.add_subparsers(dest="command", required=True)
    init_cmd.register(subparsers)
    records_cmd.register(subparsers)
    doctor_cmd.register(subparsers)
    web_cmd.register(subparsers)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(args.verbose)
    console = Console()

    config = load_config(args.project_root)
    ctx = CLIContext(config=config, console=console)

    handler = getattr(args, "handler", None)
    if handler is None:
        parser.print_help()
        return 2

    try:
        return handler(args, ctx)
    except AbroadError as exc:
        logger.error(str(exc))
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
