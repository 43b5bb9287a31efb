"""
Main application entry point
Runs an interception session against a URL or manages oracle API keys
"""

import argparse
import sys
from pathlib import Path
import structlog

from challenge_bridge.core.config import SUPPORTED_SCHEMES, ApplicationConfig
from challenge_bridge.core.logging import configure_logging, parse_component_levels
from challenge_bridge.cli.api_key_manager import (
    set_api_key_command,
    list_api_keys_command,
    remove_api_key_command,
    test_api_key_command
)
from challenge_bridge.cli.session import run_session_command

logger = structlog.get_logger()


def parse_arguments(argv=None):
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(
        description="Challenge Bridge - anti-bot challenge interception for Playwright",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --url https://example.com                  Run with every enabled scheme
  python main.py --url https://example.com --scheme kasada  Run a single scheme
  python main.py --set-api-key hyper <key>                  Store the oracle API key
  python main.py --list-api-keys                            List stored keys
        """
    )

    # Session
    parser.add_argument(
        "--url",
        help="Page to open with interception installed"
    )

    parser.add_argument(
        "--scheme",
        action="append",
        choices=SUPPORTED_SCHEMES,
        help="Protection scheme to install (repeatable, default: all enabled)"
    )

    headless = parser.add_mutually_exclusive_group()
    headless.add_argument(
        "--headless",
        dest="headless",
        action="store_true",
        default=None,
        help="Run the browser headless"
    )
    headless.add_argument(
        "--headed",
        dest="headless",
        action="store_false",
        help="Show the browser window"
    )

    parser.add_argument(
        "--hold-seconds",
        type=float,
        help="Seconds to keep the page open after navigation"
    )

    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)"
    )

    parser.add_argument(
        "--component-log-level",
        action="append",
        metavar="COMPONENT=LEVEL",
        help="Per-component threshold, e.g. gate=WARNING (repeatable)"
    )

    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Render console logs as JSON lines"
    )

    # API Key Management
    parser.add_argument(
        "--set-api-key",
        nargs='+',
        metavar=("SERVICE", "KEY"),
        help="Set an API key for a service"
    )

    parser.add_argument(
        "--list-api-keys",
        action="store_true",
        help="List all configured API key services"
    )

    parser.add_argument(
        "--remove-api-key",
        metavar="SERVICE",
        help="Remove an API key for a service"
    )

    parser.add_argument(
        "--test-api-key",
        metavar="SERVICE",
        help="Check that an API key is configured"
    )

    return parser.parse_args(argv)


def run_cli_command(args):
    """Execute API key commands; None when no such command was given"""
    if args.set_api_key:
        service = args.set_api_key[0]
        api_key = args.set_api_key[1] if len(args.set_api_key) > 1 else None
        return set_api_key_command(service, api_key)
    elif args.list_api_keys:
        return list_api_keys_command()
    elif args.remove_api_key:
        return remove_api_key_command(args.remove_api_key)
    elif args.test_api_key:
        return test_api_key_command(args.test_api_key)

    return None


def main(argv=None) -> int:
    args = parse_arguments(argv)

    Path("logs").mkdir(exist_ok=True)
    Path("config").mkdir(exist_ok=True)
    try:
        component_levels = parse_component_levels(args.component_log_level)
    except ValueError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    configure_logging(
        log_level=args.log_level,
        json_logs=args.json_logs,
        component_levels=component_levels
    )

    exit_code = run_cli_command(args)
    if exit_code is not None:
        return exit_code

    if not args.url:
        print("error: --url is required to run a session", file=sys.stderr)
        return 2

    config = ApplicationConfig()
    logger.info("Starting interception session", url=args.url)
    return run_session_command(
        config,
        args.url,
        schemes=args.scheme,
        headless=args.headless,
        hold_seconds=args.hold_seconds
    )


if __name__ == "__main__":
    sys.exit(main())
