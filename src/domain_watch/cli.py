"""
Command-line interface for the domain watch system.

This module provides the main CLI entry point with commands for:
- run: Start the long-running bot (startup check plus daily schedule)
- check: Resolve a single domain's expiration date once
- config: Show the effective configuration (secrets masked)

Configuration comes from environment variables; a ``.env`` file found by
python-dotenv is loaded first.
"""

import argparse
import asyncio
import json
import sys
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Optional

from dotenv import load_dotenv

from . import __version__
from .audit_logger import AuditLogger, parse_level
from .config import AppConfig, load_config_from_env
from .decision_engine import days_until
from .exceptions import ConfigurationError, ExpirationLookupError, ValidationError
from .expiration_resolver import ExpirationResolver
from .i18n import get_message
from .orchestrator import CheckOrchestrator
from .rdap_client import RDAPClient
from .whois_client import WHOISClient


def create_logger(config: AppConfig, verbose: bool = False) -> AuditLogger:
    """Build the audit logger from the logging configuration."""
    level = "debug" if verbose else config.logging.level
    return AuditLogger(
        output_format=config.logging.output_format,
        min_level=parse_level(level),
    )


async def resolve_single_domain(
    domain: str,
    config: AppConfig,
    logger: Optional[AuditLogger] = None,
    as_json: bool = False,
) -> int:
    """
    Resolve one domain's expiration date and print it.

    Returns:
        Exit code (0 if a date was found, 1 otherwise)
    """
    language = config.language
    resolver = ExpirationResolver(
        whois_client=WHOISClient(
            timeout=config.lookup.whois_timeout_seconds,
            custom_servers=config.lookup.whois_servers,
        ),
        rdap_client=RDAPClient(
            base_url=config.lookup.rdap_base_url,
            timeout=config.lookup.rdap_timeout_seconds,
        ),
        logger=logger,
    )

    try:
        result = await resolver.resolve(domain)
    except ValidationError as e:
        print(get_message("cli.check.invalid_domain", language, error=e.message), file=sys.stderr)
        return 1
    except ExpirationLookupError as e:
        if as_json:
            print(json.dumps(e.to_dict(), indent=2, default=str))
        else:
            print(get_message("cli.check.failed", language, error=e.message), file=sys.stderr)
        return 1
    finally:
        await resolver.close()

    days = days_until(result.expiry, datetime.now(timezone.utc))

    if as_json:
        print(json.dumps({
            "domain": result.domain,
            "expiry": result.expiry.isoformat(),
            "source": result.source.value,
            "days_until_expiry": days,
        }, indent=2))
        return 0

    key = "cli.check.expired" if days < 0 else "cli.check.result"
    print(get_message(
        key,
        language,
        domain=result.domain,
        expiry=result.expiry.strftime("%Y-%m-%d %H:%M UTC"),
        days=days,
        source=result.source.value,
    ))
    return 0


def _load_config(args: argparse.Namespace) -> AppConfig:
    config = load_config_from_env()
    if getattr(args, "language", None):
        config.language = args.language
    return config


def cmd_run(args: argparse.Namespace) -> int:
    """Handle the 'run' command."""
    config = _load_config(args)
    try:
        config.validate_for_run()
    except ConfigurationError as e:
        print(get_message("cli.config.error", config.language, error=e.message), file=sys.stderr)
        return 2

    logger = create_logger(config, verbose=args.verbose)
    orchestrator = CheckOrchestrator.from_config(config, logger=logger)

    print(get_message("cli.run.starting", config.language, domain=config.domain))
    try:
        asyncio.run(orchestrator.start())
    except ConfigurationError as e:
        print(get_message("cli.config.error", config.language, error=e.message), file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        print(get_message("cli.interrupted", config.language), file=sys.stderr)
        return 130

    print(get_message("cli.run.stopped", config.language))
    return 0


def cmd_check(args: argparse.Namespace) -> int:
    """Handle the 'check' command."""
    config = _load_config(args)
    logger = create_logger(config, verbose=True) if args.verbose else None
    return asyncio.run(resolve_single_domain(
        domain=args.domain,
        config=config,
        logger=logger,
        as_json=args.json,
    ))


def cmd_config(args: argparse.Namespace) -> int:
    """Handle the 'config' command."""
    config = _load_config(args)

    if args.action == "show":
        data = asdict(config)
        data["session"]["connect_timeout_seconds"] = config.session.connect_timeout_seconds
        data["persistence"]["credentials_file"] = str(config.persistence.credentials_file)
        masked = AuditLogger(output_format="text").mask_sensitive_data(data)
        print(json.dumps(masked, indent=2, default=str, ensure_ascii=False))
        return 0

    if args.action == "validate":
        try:
            config.validate_for_run()
        except ConfigurationError as e:
            print(get_message("cli.config.error", config.language, error=e.message), file=sys.stderr)
            return 1
        print("OK")
        return 0

    return 1


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="domain-watch",
        description="Domain expiration alerts delivered over WhatsApp",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # 'run' command
    run_parser = subparsers.add_parser(
        "run",
        help="Start the bot: startup check, then daily checks",
    )
    run_parser.add_argument(
        "--language", "-l",
        choices=["de", "en"],
        help="Message language (default: LANGUAGE or en)",
    )
    run_parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Log at debug level",
    )
    run_parser.set_defaults(func=cmd_run)

    # 'check' command
    check_parser = subparsers.add_parser(
        "check",
        help="Look up a domain's expiration date once",
    )
    check_parser.add_argument(
        "domain",
        help="Domain to check (e.g., example.com)",
    )
    check_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the result as JSON",
    )
    check_parser.add_argument(
        "--language", "-l",
        choices=["de", "en"],
        help="Output language (default: LANGUAGE or en)",
    )
    check_parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output",
    )
    check_parser.set_defaults(func=cmd_check)

    # 'config' command
    config_parser = subparsers.add_parser(
        "config",
        help="Configuration management",
    )
    config_parser.add_argument(
        "action",
        choices=["show", "validate"],
        help="Configuration action",
    )
    config_parser.set_defaults(func=cmd_config)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code
    """
    load_dotenv()

    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
