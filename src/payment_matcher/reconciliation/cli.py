#!/usr/bin/env python3
"""Command-line interface for the payment matcher.

Runs the matcher job as a standalone process, e.g. from cron.

Usage:
    python -m payment_matcher.reconciliation.cli run
    python -m payment_matcher.reconciliation.cli run --format detailed_text --output run.txt
    python -m payment_matcher.reconciliation.cli check-config
"""

import argparse
import asyncio
import logging
import os
import sys
from typing import Optional

from ..config import Settings, describe_environment
from ..errors import ConfigurationError
from ..notifier import SlackNotifier
from .models import RunStatus
from .report import RUN_FAILED_TITLE, failure_fields
from .service import ReconciliationService

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


async def notify_failure(message: str, webhook_url: Optional[str]) -> None:
    """Best-effort failure message; skipped when no webhook is configured."""
    if not webhook_url:
        logger.warning("SLACK_WEBHOOK_URL not set; failure notification skipped")
        return
    await SlackNotifier(webhook_url).send(RUN_FAILED_TITLE, failure_fields(message))


async def run_matcher_async(
    output_file: Optional[str] = None,
    output_format: str = "json",
    include_details: bool = True,
) -> int:
    """Run the matcher once.

    Args:
        output_file: Optional output file path.
        output_format: Output format ('json', 'text', 'detailed_text').
        include_details: Include detailed records in output.

    Returns:
        Exit code (0 for success, 1 for failure).
    """
    try:
        settings = Settings.from_env()
    except ConfigurationError as e:
        logger.error(f"Failed to run tripletex matcher job: {e}")
        await notify_failure(str(e), os.getenv("SLACK_WEBHOOK_URL"))
        return 1

    service = ReconciliationService.from_settings(settings)
    try:
        report = await service.run_reconciliation()
    except Exception as e:
        logger.exception(f"Failed to run tripletex matcher job: {e}")
        await notify_failure(str(e), settings.slack_webhook_url)
        return 1

    output = service.generate_report(
        report=report,
        format=output_format,
        include_details=include_details,
    )
    if output_file:
        with open(output_file, 'w') as f:
            f.write(output)
        logger.info(f"Report written to {output_file}")
    else:
        print(output)

    if report.status == RunStatus.COMPLETED:
        if report.failures:
            logger.warning(
                f"Run completed with {len(report.failures)} postings not reconciled"
            )
        logger.info("Successfully completed tripletex matcher job")
        return 0

    logger.error(f"Failed to run tripletex matcher job: {report.error_message}")
    return 1


def run_matcher(
    output_file: Optional[str] = None,
    output_format: str = "json",
    include_details: bool = True,
) -> int:
    """Run the matcher (sync wrapper)."""
    return asyncio.run(run_matcher_async(
        output_file=output_file,
        output_format=output_format,
        include_details=include_details,
    ))


def check_config() -> int:
    """Print which required variables are present, never their values."""
    presence = describe_environment()
    for name, present in presence.items():
        print(f"- {name}: {'✓' if present else '✗'}")
    return 0 if all(presence.values()) else 1


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI.

    Returns:
        Configured ArgumentParser.
    """
    parser = argparse.ArgumentParser(
        prog="payment-matcher",
        description="Record Tripletex bank transfer payments on Chargebee invoices.",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    run_parser = subparsers.add_parser(
        "run",
        help="Run the matcher job once",
    )
    run_parser.add_argument(
        "--output", "-o",
        help="Output file path (default: stdout)",
    )
    run_parser.add_argument(
        "--format", "-f",
        choices=["json", "text", "detailed_text"],
        default="json",
        help="Output format (default: json)",
    )
    run_parser.add_argument(
        "--summary-only",
        action="store_true",
        help="Only include summary statistics, not detailed records",
    )

    subparsers.add_parser(
        "check-config",
        help="Show which required environment variables are set",
    )

    return parser


def main(args: Optional[list] = None) -> int:
    """Main entry point for the CLI.

    Args:
        args: Optional list of command-line arguments (for testing).

    Returns:
        Exit code.
    """
    configure_logging()
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    if not parsed_args.command:
        parser.print_help()
        return 1

    if parsed_args.command == "check-config":
        return check_config()

    if parsed_args.command == "run":
        return run_matcher(
            output_file=parsed_args.output,
            output_format=parsed_args.format,
            include_details=not parsed_args.summary_only,
        )

    return 0


if __name__ == "__main__":
    sys.exit(main())
