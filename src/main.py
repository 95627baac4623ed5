"""Main entry point for the work item import tool.

Provides the ``wi-import`` command line interface.
"""

import argparse
import sys
from pathlib import Path

from src import config
from src.config import logger


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        description="Replay exported work item histories into Azure DevOps / TFS",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    import_parser = subparsers.add_parser(
        "import",
        help="Import exported work item revisions into the destination project",
    )
    import_parser.add_argument(
        "--config",
        type=Path,
        help="YAML configuration file (default: config/config.yaml when present)",
    )
    import_parser.add_argument(
        "--items-dir",
        dest="items_dir",
        help="Directory with exported work item histories (*.json)",
    )
    import_parser.add_argument(
        "--parallel",
        type=int,
        metavar="N",
        help="Replay N work items in parallel instead of one chronological plan",
    )
    import_parser.add_argument(
        "--ignore-failed-links",
        action="store_true",
        dest="ignore_failed_links",
        help="Log links to not yet imported work items as warnings instead of errors",
    )
    import_parser.add_argument(
        "--no-confirm",
        action="store_true",
        dest="no_confirm",
        help="Create a missing destination project without asking",
    )
    import_parser.add_argument(
        "--log-level",
        dest="log_level",
        choices=["DEBUG", "INFO", "NOTICE", "SUCCESS", "WARNING", "ERROR", "CRITICAL"],
        type=str.upper,
        help="Logging level",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """Parse arguments and execute the appropriate command."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command != "import":
        parser.print_help()
        sys.exit(1)

    if args.config is not None:
        config.reload_settings(args.config)
    settings = config.update_from_cli_args(args)

    # Import lazily so the CLI can adjust configuration first
    from src.migration import run_migration  # noqa: PLC0415

    result = run_migration(settings)
    sys.exit(0 if result.success else 1)


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        logger.info("Import interrupted by user")
        sys.exit(1)
    except (FileNotFoundError, PermissionError) as e:
        logger.error("File system error: %s", e)
        sys.exit(1)
    except Exception as e:  # noqa: BLE001
        logger.exception("Unexpected error occurred during import: %s", e)
        sys.exit(1)
