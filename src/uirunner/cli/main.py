"""
Command-line interface for the uirunner application.

This module provides the main CLI entry point: it parses the run options,
loads the configuration and drives a RunOrchestrator on a single event loop.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from ..config import get_config, set_config_path
from ..models.runtime import Platform
from ..validation import (
    RunFailure,
    ValidationError,
    handle_cli_error,
    validate_enum_choice,
    validate_non_empty_string,
    validate_suite_list,
)
from .orchestrator import RunOptions, RunOrchestrator

# --- Logging Setup ---
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)-5.5s] %(name)s:%(filename)s:%(lineno)d\t %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    stream=sys.stdout,
)
logger = logging.getLogger(__name__)

EXIT_INTERRUPTED = 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="uirunner",
        description="Build mobile test apps, start Appium and Genymotion, and run UI test suites.",
    )
    parser.add_argument(
        "--app",
        required=True,
        help="App directory under the UI tests root whose suites should run.",
    )
    parser.add_argument(
        "--suites",
        type=str,
        help="Comma separated suites to run, as bare names ('login') or files ('login/android.py'). "
             "Defaults to every configured suite.",
    )
    parser.add_argument(
        "--platform",
        type=str,
        help=f"Only run suites for this platform. Choices: {Platform.identifiers()}",
    )
    parser.add_argument(
        "--use-sdk",
        dest="sdk_version",
        type=str,
        help="Build the test apps with this SDK version before running. Without it no build happens.",
    )
    parser.add_argument(
        "--more-logs",
        action="store_true",
        help="Log the output of every build step.",
    )
    parser.add_argument(
        "--device",
        type=str,
        help="Genymotion device to boot before running the suites.",
    )
    parser.add_argument(
        "--skip-server",
        action="store_true",
        help="Do not start a local Appium server; use one that is already running.",
    )
    parser.add_argument(
        "--matrix-out",
        type=Path,
        help="Write the suite/capability pairs to this JSON file.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to the main config.toml.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )
    return parser


def parse_options(args: argparse.Namespace) -> RunOptions:
    """
    Validate parsed arguments into RunOptions.

    Raises:
        ValidationError: If an argument is malformed
    """
    platform = None
    if args.platform:
        platform = validate_enum_choice(
            args.platform, Platform.identifiers(), field_name="--platform argument", case_sensitive=False
        )
    return RunOptions(
        app=validate_non_empty_string(args.app, "--app argument"),
        suites=validate_suite_list(args.suites, field_name="--suites argument"),
        platform=platform,
        sdk_version=args.sdk_version,
        more_logs=args.more_logs,
        device=args.device,
        skip_server=args.skip_server,
        matrix_out=args.matrix_out,
    )


def main_cli(argv: Optional[List[str]] = None) -> None:
    """
    Main command-line interface for the uirunner application.

    Exits with 0 when every dispatched test run passed, 1 on a failed run or
    failing tests, and 130 when interrupted.

    Raises:
        SystemExit: Always, carrying the exit code
    """
    args = build_parser().parse_args(argv)
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        options = parse_options(args)
    except ValidationError as e:
        handle_cli_error(
            error=e,
            context="argument validation",
            exit_code=1,
            include_traceback=False,
            logger=logger,
        )

    if args.config:
        set_config_path(args.config.resolve())

    try:
        app_config = get_config()
    except (FileNotFoundError, KeyError, ValidationError) as e:
        handle_cli_error(
            error=e,
            context="configuration loading",
            exit_code=1,
            include_traceback=True,
            logger=logger,
        )

    orchestrator = RunOrchestrator(app_config, options)
    try:
        report = asyncio.run(orchestrator.run_async())
    except RunFailure as e:
        handle_cli_error(error=e, context=f"run of app '{options.app}'", exit_code=1, logger=logger)
    except (asyncio.CancelledError, KeyboardInterrupt):
        logger.warning("Run interrupted; all services have been shut down")
        sys.exit(EXIT_INTERRUPTED)

    if not report.succeeded:
        failed = sum(1 for result in report.results if not result.passed)
        logger.error(f"{failed} of {len(report.results)} test runs failed")
        sys.exit(1)

    logger.info("Run completed successfully.")
    sys.exit(0)


if __name__ == "__main__":
    main_cli()
