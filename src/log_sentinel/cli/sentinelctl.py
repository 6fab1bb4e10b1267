#!/usr/bin/env python3
"""
sentinelctl - Log Sentinel operational CLI

A lightweight CLI for day-2 operations:
- Health checks (sentinelctl doctor)
- Run the ingestion loop (sentinelctl run)
- Alert rule management (sentinelctl rules list|import)
- Recent alerts (sentinelctl alerts list)
- Version info (sentinelctl version)
"""

import argparse
import asyncio
import importlib.util
import os
import shutil
import sys
from pathlib import Path
from typing import Tuple

from .. import __version__
from ..alerts.service import import_rules_file
from ..core.config import AppConfig, Backend, get_config
from ..ingestion.service import build_service
from ..store.sqlite_store import LogStore


class Colors:
    """ANSI color codes for terminal output."""

    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    RED = "\033[91m"
    BLUE = "\033[94m"
    RESET = "\033[0m"
    BOLD = "\033[1m"


def colorize(text: str, color: str) -> str:
    """Colorize text if stdout is a TTY."""
    if sys.stdout.isatty():
        return f"{color}{text}{Colors.RESET}"
    return text


def format_check_result(name: str, status: str, message: str, width: int = 40) -> str:
    """Format a check result line."""
    padding = " " * max(1, width - len(name))

    if status == "OK":
        status_str = colorize("[OK]", Colors.GREEN)
    elif status == "WARN":
        status_str = colorize("[WARN]", Colors.YELLOW)
    else:  # ERROR
        status_str = colorize("[ERROR]", Colors.RED)

    return f"{name}:{padding}{status_str} {message}"


def open_store(args, config: AppConfig) -> LogStore:
    return LogStore(db_path=args.db or config.store.db_path)


def check_store(store: LogStore) -> Tuple[str, str]:
    """
    Check that the store can be opened and queried.

    Returns:
        (status, message) where status is "OK" or "ERROR"
    """
    try:
        stats = store.get_stats()
    except Exception as e:
        return "ERROR", f"Cannot query store: {e}"
    return "OK", f"{stats['total_logs']} logs, {stats['total_alerts']} alerts"


def check_backend(config: AppConfig) -> Tuple[str, str]:
    """
    Check that the configured log backend can run on this host.

    Returns:
        (status, message) where status is "OK", "WARN", or "ERROR"
    """
    ingestion = config.ingestion

    if ingestion.backend == Backend.WINDOWS:
        if importlib.util.find_spec("win32evtlog") is None:
            return "ERROR", "pywin32 is not installed"
        return "OK", f"channels: {', '.join(ingestion.channel_list)}"

    if ingestion.backend == Backend.MACOS:
        if sys.platform != "darwin":
            return "ERROR", "not running on macOS"
        if shutil.which(ingestion.log_command) is None:
            return "ERROR", f"'{ingestion.log_command}' command not found"
        return "OK", "log show available"

    path = Path(ingestion.syslog_path)
    if not path.exists():
        return "WARN", f"{path} does not exist yet"
    if not os.access(path, os.R_OK):
        return "ERROR", f"{path} is not readable"
    return "OK", f"{path} readable"


def check_rules(store: LogStore) -> Tuple[str, str]:
    """
    Check that at least one active alert rule exists.

    Returns:
        (status, message) where status is "OK" or "WARN"
    """
    try:
        stats = store.get_stats()
    except Exception as e:
        return "ERROR", f"Cannot read rules: {e}"
    if stats["active_rules"] == 0:
        return "WARN", f"no active rules ({stats['total_rules']} total)"
    return "OK", f"{stats['active_rules']} active of {stats['total_rules']}"


def cmd_doctor(args) -> int:
    """
    Run system health checks and print a summary.

    Returns:
        Exit code (0 on success, non-zero on critical failure)
    """
    config = get_config()

    print(colorize("\nLog Sentinel Doctor", Colors.BOLD))
    print(colorize("=" * 60, Colors.BOLD))
    print()

    all_ok = True

    try:
        store = open_store(args, config)
        status, message = check_store(store)
    except Exception as e:
        store = None
        status, message = "ERROR", f"Cannot open store: {e}"
    print(format_check_result(f"Store ({args.db or config.store.db_path})", status, message))
    if status == "ERROR":
        all_ok = False

    status, message = check_backend(config)
    print(format_check_result(f"Backend ({config.ingestion.backend.value})", status, message))
    if status == "ERROR":
        all_ok = False

    if store is not None:
        status, message = check_rules(store)
        print(format_check_result("Alert rules", status, message))

    print()

    if all_ok:
        print(colorize("✓ All critical checks passed", Colors.GREEN))
        return 0
    else:
        print(colorize("✗ One or more critical checks failed", Colors.RED))
        return 1


def cmd_run(args) -> int:
    """
    Run the ingestion loop in the foreground until interrupted.

    Returns:
        Exit code
    """
    config = get_config()
    if args.db:
        config.store.db_path = args.db

    service = build_service(config)
    print(f"Starting {config.ingestion.backend.value} ingestion (Ctrl+C to stop)...")
    try:
        asyncio.run(service.run())
    except KeyboardInterrupt:
        service.stop()
        print("\nStopped.")
    return 0


def cmd_rules_list(args) -> int:
    """
    Print all alert rules.

    Returns:
        Exit code (always 0)
    """
    rules = open_store(args, get_config()).list_rules()
    if not rules:
        print("No alert rules defined.")
        return 0

    for rule in rules:
        state = colorize("active", Colors.GREEN) if rule.is_active else "inactive"
        conditions = {
            k: v
            for k, v in rule.model_dump(mode="json", exclude={"id", "name", "is_active"}).items()
            if v is not None
        }
        summary = ", ".join(f"{k}={v}" for k, v in conditions.items()) or "no conditions"
        print(f"{rule.id:>4}  {rule.name}  [{state}]  {summary}")
    return 0


def cmd_rules_import(args) -> int:
    """
    Import alert rules from a YAML file.

    Returns:
        Exit code (0 on success, 1 if the file is missing or unreadable)
    """
    path = Path(args.file)
    if not path.exists():
        print(colorize(f"✗ Rules file not found: {path}", Colors.RED), file=sys.stderr)
        return 1

    try:
        stored = import_rules_file(open_store(args, get_config()), path)
    except Exception as e:
        print(colorize(f"✗ Failed to import rules: {e}", Colors.RED), file=sys.stderr)
        return 1

    print(colorize(f"✓ Imported {len(stored)} rule(s) from {path}", Colors.GREEN))
    return 0


def cmd_alerts_list(args) -> int:
    """
    Print the most recent alerts.

    Returns:
        Exit code (always 0)
    """
    alerts = open_store(args, get_config()).list_alerts(take=args.limit)
    if not alerts:
        print("No alerts.")
        return 0

    for alert in alerts:
        created = alert.created_at.strftime("%Y-%m-%d %H:%M:%S")
        print(f"{alert.id:>5}  {created}  {colorize(alert.title, Colors.YELLOW)}")
        print(f"       {alert.log.level.value} {alert.log.source}: {alert.message}")
    return 0


def cmd_version(args) -> int:
    """
    Print version information.

    Returns:
        Exit code (always 0)
    """
    print(f"sentinelctl version {__version__}")
    print("Log Sentinel - OS log ingestion and rule-based alerting")
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for sentinelctl."""
    parser = argparse.ArgumentParser(
        description="Log Sentinel operational CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  sentinelctl doctor                 # Run health checks
  sentinelctl run                    # Run the ingestion loop
  sentinelctl rules list             # List alert rules
  sentinelctl rules import rules.yml # Import rules from YAML
  sentinelctl alerts list --limit 10 # Show recent alerts
  sentinelctl version                # Show version information

Environment variables:
  STORE_DB_PATH                      # SQLite database path
  INGESTION_BACKEND                  # windows, syslog or macos
  INGESTION_POLL_INTERVAL            # Seconds between cycles (default: 10)
        """
    )
    parser.add_argument(
        "--db",
        default=None,
        help="SQLite database path (overrides STORE_DB_PATH)"
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # doctor command
    subparsers.add_parser(
        "doctor",
        help="Run health checks and diagnostics"
    )

    # run command
    subparsers.add_parser(
        "run",
        help="Run the ingestion loop in the foreground"
    )

    # rules commands
    rules_parser = subparsers.add_parser("rules", help="Manage alert rules")
    rules_sub = rules_parser.add_subparsers(dest="rules_command", help="Rules command")
    rules_sub.add_parser("list", help="List alert rules")
    import_parser = rules_sub.add_parser("import", help="Import rules from a YAML file")
    import_parser.add_argument("file", help="Path to YAML rules file")

    # alerts commands
    alerts_parser = subparsers.add_parser("alerts", help="Inspect generated alerts")
    alerts_sub = alerts_parser.add_subparsers(dest="alerts_command", help="Alerts command")
    list_parser = alerts_sub.add_parser("list", help="List recent alerts")
    list_parser.add_argument(
        "--limit",
        type=int,
        default=20,
        help="Maximum alerts to show (default: 20)"
    )

    # version command
    subparsers.add_parser(
        "version",
        help="Show version information"
    )

    return parser


def main(argv=None):
    """Main entry point for sentinelctl CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    # Dispatch to command handlers
    if args.command == "doctor":
        return cmd_doctor(args)
    elif args.command == "run":
        return cmd_run(args)
    elif args.command == "rules" and args.rules_command == "list":
        return cmd_rules_list(args)
    elif args.command == "rules" and args.rules_command == "import":
        return cmd_rules_import(args)
    elif args.command == "alerts" and args.alerts_command == "list":
        return cmd_alerts_list(args)
    elif args.command == "version":
        return cmd_version(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
