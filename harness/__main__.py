"""CLI entry point for running a test template.

Usage:
    python -m harness --template templates/mysql_read.yaml
    python -m harness --template templates/mysql_read.yaml --config config/test_config.yaml
    python -m harness --template templates/kingbase_rw.yaml --seed 7 --json-report out/report.json

Exit codes:
    0  every assertion passed
    1  at least one assertion failed
    2  the run could not be completed (configuration, connection,
       registration, setup or timeout)
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from typing import List, Optional

from harness.lib.catalog import build_catalog_client, build_data_client
from harness.lib.config_loader import load_base_config, load_template, resolve_database_config
from harness.lib.dialects import get_dialect
from harness.lib.env import load_env_file
from harness.lib.errors import HarnessError
from harness.lib.observability import setup_logging
from harness.lib.orchestrator import TestOrchestrator
from harness.lib.report import render_text, write_json_report
from harness.lib.resilience import Deadline

logger = logging.getLogger(__name__)

EXIT_PASSED = 0
EXIT_FAILED = 1
EXIT_ERROR = 2

DEFAULT_TIMEOUT_SECONDS = 7200


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="data-integrate-harness",
        description="Provision synthetic data, register it and run row-count assertions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Run a template against the default base config
    python -m harness --template templates/mysql_read.yaml

    # Reproducible schema and data
    python -m harness --template templates/mysql_read.yaml --seed 42

    # Reuse a namespace from an earlier run and keep the table
    python -m harness --template templates/mysql_read.yaml --namespace test_mysql_1700000000_ab12cd --keep-table

    # Machine-readable output for CI
    python -m harness --template templates/mysql_read.yaml --json-report reports/mysql.json
        """,
    )
    parser.add_argument(
        "--template",
        required=True,
        help="Path to the test template YAML",
    )
    parser.add_argument(
        "--config",
        default="config/test_config.yaml",
        help="Path to the base configuration (default: config/test_config.yaml)",
    )
    parser.add_argument(
        "--namespace",
        help="Use this namespace instead of allocating a new one",
    )
    parser.add_argument(
        "--seed",
        type=int,
        help="Random seed for schema and data (overrides the template's seed)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_TIMEOUT_SECONDS,
        help=f"Overall run deadline in seconds (default: {DEFAULT_TIMEOUT_SECONDS})",
    )
    parser.add_argument(
        "--json-report",
        help="Also write the report as JSON to this path",
    )
    parser.add_argument(
        "--env-file",
        help="Load environment variables from this .env file",
    )
    parser.add_argument(
        "--keep-table",
        action="store_true",
        help="Do not drop the table after the run",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--log-json",
        action="store_true",
        help="Output logs in JSON format (for log aggregation systems)",
    )
    parser.add_argument(
        "--log-file",
        help="Write logs to a file in addition to stderr",
    )
    return parser


def run(args: argparse.Namespace) -> int:
    """Run one template and return the process exit code."""
    load_env_file(args.env_file)

    template = load_template(args.template)
    if args.keep_table:
        template = replace(template, data=replace(template.data, keep_table=True))
    base = load_base_config(args.config)
    db_config = resolve_database_config(base, template.database)
    logger.info("Using database %s", db_config.describe())

    deadline = Deadline(args.timeout if args.timeout > 0 else None)
    dialect = get_dialect(db_config)
    catalog = build_catalog_client(base.catalog_service, deadline)
    data_client = build_data_client(base.data_service, deadline)
    try:
        orchestrator = TestOrchestrator(
            template,
            dialect,
            catalog,
            data_client=data_client,
            namespace=args.namespace,
            seed=args.seed,
            deadline=deadline,
        )
        report = orchestrator.run()
    finally:
        dialect.close()
        catalog.close()
        if data_client is not None:
            data_client.close()

    print(render_text(report))
    if args.json_report:
        write_json_report(report, args.json_report)
    return EXIT_FAILED if report.has_failure else EXIT_PASSED


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(verbose=args.verbose, json_format=args.log_json, log_file=args.log_file)

    try:
        return run(args)
    except HarnessError as e:
        logger.debug("Run aborted", exc_info=True)
        logger.error("Run aborted: %s", e, extra={"error": e.to_dict()})
        print(f"\nRun aborted: {e}", file=sys.stderr)
        return EXIT_ERROR
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
