"""
Command-line interface for the CouchDB bulk client.

Provides commands for dumping and loading databases in bulk.
"""

import argparse
import json
import logging
import sys
from typing import Iterator, List, Optional

import httpx
import structlog

from couchbulk import __version__
from couchbulk.config import CouchConfig, set_config
from couchbulk.server import CouchServer
from couchbulk.transport.interface import CouchError


URL_FIELDS = ("url", "base_url")


def redact_credentials(logger, method_name: str, event_dict: dict) -> dict:
    """Drop ``user:password@`` from URLs logged under url or base_url."""
    for key in URL_FIELDS:
        value = event_dict.get(key)
        if isinstance(value, str) and "@" in value:
            event_dict[key] = str(httpx.URL(value).copy_with(userinfo=b""))
    return event_dict


def log_processors(json_format: bool = False) -> List:
    """Get the structlog processor chain, ending in a JSON or console renderer."""
    renderer = structlog.processors.JSONRenderer() if json_format else structlog.dev.ConsoleRenderer()
    return [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        redact_credentials,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        renderer,
    ]


def setup_logging(level: str = "INFO", json_format: bool = False) -> None:
    """
    Route structlog through stdlib logging on stderr.

    stdout is reserved for dumped ids and documents.
    """
    structlog.configure(
        processors=log_processors(json_format),
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(message)s", level=level.upper(), stream=sys.stderr)


def _add_connection_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--url", help="CouchDB base URL (default: $COUCH_URL)")
    parser.add_argument("--name", help="Username (default: $COUCH_NAME)")
    parser.add_argument("--password", help="Password (default: $COUCH_PASSWORD)")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--log-json",
        action="store_true",
        help="Output logs in JSON format",
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="couch-bulk",
        description="Bulk reads and writes against a CouchDB server",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # ids command
    ids_parser = subparsers.add_parser("ids", help="Print every document id")
    ids_parser.add_argument("database", help="Database name")
    ids_parser.add_argument("--limit", type=int, help="Page size (default: 500)")
    _add_connection_args(ids_parser)

    # docs command
    docs_parser = subparsers.add_parser("docs", help="Print every document as a JSON line")
    docs_parser.add_argument("database", help="Database name")
    docs_parser.add_argument("--limit", type=int, help="Page size (default: 500)")
    _add_connection_args(docs_parser)

    # view command
    view_parser = subparsers.add_parser("view", help="Print every row of a view as a JSON line")
    view_parser.add_argument("database", help="Database name")
    view_parser.add_argument("design_doc", help="Design document name (without _design/)")
    view_parser.add_argument("view", help="View name")
    view_parser.add_argument("--limit", type=int, help="Page size (default: 500)")
    view_parser.add_argument(
        "--docs",
        action="store_true",
        help="Print the emitted documents instead of the rows",
    )
    _add_connection_args(view_parser)

    # load command
    load_parser = subparsers.add_parser("load", help="Write documents from a JSON lines file")
    load_parser.add_argument("database", help="Database name")
    load_parser.add_argument("file", help="JSON lines file, or - for stdin")
    load_parser.add_argument(
        "--max-size-mb",
        type=float,
        help="Approximate size per bulk request (default: 15)",
    )
    load_parser.add_argument(
        "--max-array-length",
        type=int,
        help="Documents per bulk request (default: 300)",
    )
    _add_connection_args(load_parser)

    return parser


def build_config(args: argparse.Namespace) -> CouchConfig:
    """Build the configuration from the environment and command-line overrides."""
    overrides = {
        key: getattr(args, key)
        for key in ("url", "name", "password", "log_level")
        if getattr(args, key, None) is not None
    }
    if getattr(args, "log_json", False):
        overrides["log_json"] = True
    return CouchConfig(**overrides)


def _print_lines(page: List) -> None:
    for item in page:
        print(item if isinstance(item, str) else json.dumps(item))


def read_json_lines(path: str) -> Iterator[dict]:
    """Yield one document per non-blank line of a JSON lines file."""
    stream = sys.stdin if path == "-" else open(path, encoding="utf-8")
    try:
        for line in stream:
            line = line.strip()
            if line:
                yield json.loads(line)
    finally:
        if stream is not sys.stdin:
            stream.close()


def run_command(server: CouchServer, args: argparse.Namespace) -> int:
    """Run a parsed command against the server, returning the exit code."""
    if args.command == "ids":
        server.all_ids(args.database, args.limit, on_page=_print_lines)
    elif args.command == "docs":
        server.all_docs(args.database, args.limit, on_page=_print_lines)
    elif args.command == "view":
        read = server.docs_for_view if args.docs else server.rows_for_view
        read(args.database, args.design_doc, args.view, args.limit, on_page=_print_lines)
    elif args.command == "load":
        errors = server.post_bulk_throttled(
            args.database,
            read_json_lines(args.file),
            max_size_mb=args.max_size_mb,
            max_array_length=args.max_array_length,
        )
        for error in errors:
            print(f"{error.id}: {error.error} {error.reason or ''}".rstrip(), file=sys.stderr)
        if errors:
            return 2
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    config = build_config(args)
    set_config(config)
    setup_logging(config.log_level, config.log_json)

    with CouchServer(config=config) as server:
        try:
            code = run_command(server, args)
        except CouchError as e:
            print(f"Error: {e}", file=sys.stderr)
            code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
