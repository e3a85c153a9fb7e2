import argparse
import logging
import sys
from typing import List, Optional

from app.core.config import settings
from app.core.logging_config import setup_logging
from app.db.database import init_db
from app.models.errors import ImportConfigError, DatabaseUnavailableError
from app.services import orchestrator
from app.services.reporting import print_report

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURES = 1
EXIT_FATAL = 2

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ella-import",
        description="Load participant, event, donation and survey CSV exports into the database",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable verbose (DEBUG) logging")

    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run", help="Import the CSV files")
    run_parser.add_argument("--dry-run", action="store_true", help="Read, transform and check rows without writing")
    run_parser.add_argument("--table", metavar="ENTITY", help="Import only this entity (see 'entities')")
    run_parser.add_argument("--csv-dir", default=None, help=f"Directory holding the CSV files (default: {settings.CSV_DIR})")
    run_parser.add_argument("--show-rows", action="store_true", help="List every skipped/failed row in the summary")

    subparsers.add_parser("init-db", help="Create the destination tables")
    subparsers.add_parser("entities", help="List importable entities in import order")

    return parser

def cmd_run(args) -> int:
    if args.dry_run:
        print("DRY RUN MODE - no data will be written\n")

    try:
        report = orchestrator.run_import(
            dry_run=args.dry_run,
            entity_filter=args.table,
            source_dir=args.csv_dir,
        )
    except (ImportConfigError, DatabaseUnavailableError) as e:
        logger.error("Fatal error: %s", e)
        return EXIT_FATAL

    print_report(report, show_rows=args.show_rows)
    return EXIT_FAILURES if report.has_failures else EXIT_OK

def cmd_entities(args) -> int:
    try:
        ordered = orchestrator.prepare_configs()
    except ImportConfigError as e:
        logger.error("Fatal error: %s", e)
        return EXIT_FATAL

    for config in ordered:
        depends = f" (after {', '.join(config.dependencies())})" if config.dependencies() else ""
        print(f"{config.name:<22} {config.source_file:<34} -> {config.table}{depends}")
    return EXIT_OK

def cmd_init_db(args) -> int:
    init_db()
    logger.info("Destination tables created")
    return EXIT_OK

def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging("DEBUG" if args.verbose else None)

    if args.command == "run":
        return cmd_run(args)
    elif args.command == "entities":
        return cmd_entities(args)
    elif args.command == "init-db":
        return cmd_init_db(args)

    parser.print_help()
    return EXIT_OK

if __name__ == "__main__":
    sys.exit(main())
