from __future__ import annotations

import argparse
import logging

from . import __version__
from .catalog.commands import add_catalog_commands, run_catalog_command
from .log import setup_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gitcatalog",
        description="gitcatalog: browse and install packages published as git repositories",
    )
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    sub = parser.add_subparsers(dest="subcmd")
    add_catalog_commands(parser, sub)
    return parser


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()

    setup_logging(logging.DEBUG if args.verbose else logging.INFO)

    result = run_catalog_command(args)
    if result == -1:
        parser.print_help()
        raise SystemExit(1)

    raise SystemExit(result)


if __name__ == "__main__":
    main()
