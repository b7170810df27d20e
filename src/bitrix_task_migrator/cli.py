"""
Command-line interface for the Bitrix24 task migration tool.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import uvicorn

from .client import RateLimiter
from .config import load_settings
from .exceptions import ConfigurationError
from .export import export_group_tasks
from .profiles import PROFILES
from .runner import build_source_client, load_task_file, run_migration
from .server import create_app
from .utils import setup_logging

logger: logging.Logger = logging.getLogger(__name__)


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Migrate Bitrix24 workgroup tasks between two portals")

    _ = parser.add_argument(
        "--verbose", "-v", action="count", default=0, help="Increase console verbosity (-v: info, -vv: debug)"
    )
    _ = parser.add_argument(
        "--profile",
        choices=sorted(PROFILES),
        help="Migration profile (default: MIGRATION_PROFILE or 'tags')",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    export_parser = subparsers.add_parser("export", help="Export all tasks of a source group to a JSON file")
    _ = export_parser.add_argument("group_id", nargs="?", help="Source group id (default: EXPORT_GROUP_ID)")
    _ = export_parser.add_argument("--output-dir", default=".", help="Directory for tasks_full_<group>.json")

    migrate_parser = subparsers.add_parser("migrate", help="Migrate exported tasks to the destination group")
    _ = migrate_parser.add_argument("--task-file", help="Exported task file (default: TASK_FILE or profile default)")
    _ = migrate_parser.add_argument("--limit", type=int, help="Only migrate the first N tasks of the file")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP front door")
    _ = serve_parser.add_argument("--host", default="127.0.0.1", help="Interface to bind (default: 127.0.0.1)")
    _ = serve_parser.add_argument("--port", type=int, help="Port to listen on (default: PORT or 3000)")

    return parser.parse_args(argv)


def _export(args: argparse.Namespace) -> int:
    settings = load_settings(profile_name=args.profile, require_destination=False)
    group_id = args.group_id or settings.export_group_id
    if not group_id:
        msg = "Pass a GROUP_ID or set EXPORT_GROUP_ID"
        raise ConfigurationError(msg)

    client = build_source_client(settings, RateLimiter())
    out_path = export_group_tasks(client, group_id, args.output_dir)
    print(f"Exported tasks of group {group_id} to {out_path}")
    return 0


def _migrate(args: argparse.Namespace) -> int:
    settings = load_settings(profile_name=args.profile)
    task_file = Path(args.task_file) if args.task_file else settings.task_file
    tasks = load_task_file(task_file, args.limit)

    stats = run_migration(settings, tasks)

    print(f"Migration finished: {stats.summary()}")
    for error in stats.errors:
        print(f"  - {error}")
    return 0 if stats.failed == 0 else 1


def _serve(args: argparse.Namespace) -> int:
    settings = load_settings(profile_name=args.profile)
    port: int = args.port or settings.port
    print(f"Serving on http://{args.host}:{port} - use /migrate-sample or /migrate")
    uvicorn.run(create_app(settings), host=args.host, port=port)
    return 0


_COMMANDS = {
    "export": _export,
    "migrate": _migrate,
    "serve": _serve,
}


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    args = parse_arguments(argv)

    verbosity: int = getattr(args, "verbose", 0)
    setup_logging(verbosity=verbosity)

    try:
        exit_code = _COMMANDS[args.command](args)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")  # noqa: TRY400
        sys.exit(2)
    except Exception:
        logger.exception(f"Command '{args.command}' failed")
        sys.exit(1)

    sys.exit(exit_code)
