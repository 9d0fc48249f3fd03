"""
Drive Audit Engine — Main Orchestrator

Usage:
    python -m drive_audit_engine                               # settings from .env / environment
    python -m drive_audit_engine --config config.json          # JSON config file
    python -m drive_audit_engine --users a@acme.com b@acme.com
    python -m drive_audit_engine --types sharing location --no-drive-walk
    python -m drive_audit_engine --no-calendars
    python -m drive_audit_engine --cache-health

This tool is STRICTLY READ-ONLY. It will NEVER modify the Workspace tenant.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# ---------------------------------------------------------------------------
# Engine imports
# ---------------------------------------------------------------------------
from .config import ConfigError, EngineConfig
from .safety.guardian import SafetyGuardian
from .auth.authenticator import AuthenticationError, Authenticator
from .api import CallGateway, ClientCache, ExternalAPIError, UsageMonitor
from .cache import build_file_cache
from .calendars import CalendarScanner
from .drives import DriveGraphWalker
from .models import (
    DEFAULT_ANALYSIS_TYPES,
    AnalysisType,
    UserCalendarReport,
    UserDriveReport,
    UserScanResult,
)
from .processing import FileProcessor
from .reporting import JsonlEventLog, export_csv, export_executive_summary, export_json

EXIT_CONFIG_ERROR = 2
EXIT_AUTH_ERROR = 1


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="drive_audit_engine",
        description="Google Workspace Drive sharing & migration audit (READ-ONLY)",
    )
    parser.add_argument(
        "--config", "-c",
        type=Path,
        help="Path to JSON configuration file",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="dotenv file to load before reading the environment (default: ./.env)",
    )
    parser.add_argument(
        "--users", "-u",
        nargs="+",
        default=None,
        help="Audit only these users (default: every active user in the domain)",
    )
    parser.add_argument(
        "--max-users",
        type=int,
        default=None,
        help="Stop after this many users from the directory",
    )
    parser.add_argument(
        "--types", "-t",
        nargs="+",
        choices=[t.value for t in AnalysisType],
        default=[t.value for t in DEFAULT_ANALYSIS_TYPES],
        help="Analysis types to run per file",
    )
    parser.add_argument(
        "--output-dir", "-o",
        type=Path,
        default=None,
        help="Output directory for reports (default: ./drive_audit_<timestamp>)",
    )
    parser.add_argument(
        "--no-cache",
        action="store_true",
        help="Disable caching (fresh analysis every time)",
    )
    parser.add_argument(
        "--no-drive-walk",
        action="store_true",
        help="Skip the My Drive / shared drive walk",
    )
    parser.add_argument(
        "--no-shared-drives",
        action="store_true",
        help="Walk My Drive only",
    )
    parser.add_argument(
        "--no-calendars",
        action="store_true",
        help="Skip the calendar scan",
    )
    parser.add_argument(
        "--formats",
        nargs="+",
        choices=["json", "csv", "markdown"],
        default=None,
        help="Output formats to generate",
    )
    parser.add_argument(
        "--event-log",
        type=Path,
        default=None,
        help="Append progress events to this JSONL file",
    )
    parser.add_argument(
        "--cache-health",
        action="store_true",
        help="Report cache backend health and exit",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Debug logging",
    )
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> EngineConfig:
    """Config file first, then environment, then CLI flags."""
    if args.config:
        if not args.config.exists():
            raise ConfigError(f"Config file not found: {args.config}")
        config = EngineConfig.from_file(str(args.config))
    else:
        config = EngineConfig()
    config.apply_env(os.environ)

    if args.no_cache:
        config.cache.enabled = False
    if args.no_drive_walk:
        config.drives.enabled = False
    if args.no_shared_drives:
        config.drives.include_shared_drives = False
    if args.no_calendars:
        config.calendars.enabled = False
    if args.output_dir:
        config.output.base_dir = str(args.output_dir)
    if args.formats:
        config.output.formats = list(args.formats)
    if args.event_log:
        config.output.event_log = str(args.event_log)
    config.verbose = config.verbose or args.verbose
    return config


def configure_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    if not verbose:
        logging.getLogger("httpx").setLevel(logging.WARNING)


def _phase(title: str):
    print("\n" + "=" * 70)
    print(f" {title}")
    print("=" * 70 + "\n")


async def enumerate_users(clients: ClientCache, config: EngineConfig, args: argparse.Namespace) -> list[str]:
    """Explicit --users, else active users from the Admin Directory."""
    if args.users:
        return list(dict.fromkeys(args.users))

    admin = await clients.get(config.auth.admin_user)
    users = []
    async for user in admin.list_users(domain=config.primary_domain):
        if user.get("suspended") or not user.get("primaryEmail"):
            continue
        users.append(user["primaryEmail"])
        if args.max_users and len(users) >= args.max_users:
            break
    return users


def generate_reports(
    user_results: list[UserScanResult],
    drive_reports: list[UserDriveReport],
    config: EngineConfig,
    scan_id: str,
    stats: dict,
    calendar_reports: Optional[list[UserCalendarReport]] = None,
) -> list[Path]:
    """Generate all requested report formats."""
    created = []
    formats = config.output.formats
    config.output.create_directories()

    if "json" in formats:
        path = export_json(user_results, drive_reports, config.output.json_dir, scan_id, stats, calendar_reports)
        created.append(path)
        print(f"  📄 JSON:       {path}")

    if "csv" in formats:
        paths = export_csv(user_results, drive_reports, config.output.csv_dir, scan_id, calendar_reports)
        created.extend(paths)
        for p in paths:
            print(f"  📊 CSV:        {p}")

    if "markdown" in formats:
        path = export_executive_summary(
            user_results, drive_reports, config.output.reports_dir, scan_id, config.primary_domain,
            calendar_reports,
        )
        created.append(path)
        print(f"  📋 Summary:    {path}")

    return created


async def main_async(argv: Optional[list[str]] = None) -> int:
    """Async entry point."""
    args = parse_args(argv)
    if args.env_file:
        load_dotenv(args.env_file)
    else:
        load_dotenv()

    try:
        config = build_config(args)
    except ConfigError as e:
        print(f"\n❌ Configuration error: {e}")
        return EXIT_CONFIG_ERROR
    configure_logging(config.verbose)

    cache = build_file_cache(config.cache)
    if args.cache_health:
        health = await cache.health_check()
        await cache.close()
        for tier in ("hot", "durable"):
            if tier in health:
                state = "✅" if health[tier]["healthy"] else "❌"
                print(f"  {state} {tier:8s} {health[tier]['backend']}")
        return 0 if health["healthy"] else 1

    try:
        config.validate()
    except ConfigError as e:
        print(f"\n❌ Configuration error: {e}")
        await cache.close()
        return EXIT_CONFIG_ERROR

    # --- Safety banner ---
    guardian = SafetyGuardian()
    guardian.print_banner()

    print("=" * 70)
    print(" Drive Audit Engine v1.0.0")
    print(" Mode: READ-ONLY — No Workspace modifications will be made")
    print("=" * 70)

    scan_id = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S") + "_" + uuid.uuid4().hex[:8]
    types = AnalysisType.parse_many(args.types)
    print(f"\n📋 Scan ID: {scan_id}")
    print(f"📂 Output:  {config.output.scan_dir.resolve()}")
    print(f"🏢 Domain:  {config.primary_domain}")
    print(f"🔎 Types:   {', '.join(t.value for t in types)}")

    # --- Authentication ---
    print("\n🔐 Authenticating...")
    monitor = UsageMonitor()
    gateway = CallGateway(retry=config.retry, monitor=monitor)
    clients = ClientCache(
        Authenticator(config.auth),
        gateway,
        guardian,
        validate_access=config.auth.validate_access,
    )
    processor = FileProcessor(clients, cache, config)

    event_log = JsonlEventLog(Path(config.output.event_log)) if config.output.event_log else None

    try:
        try:
            await clients.get(config.auth.admin_user)
        except (AuthenticationError, ExternalAPIError) as e:
            print(f"❌ Authentication failed: {e}")
            return EXIT_AUTH_ERROR
        print("✅ Authentication successful.")

        # --- Users ---
        _phase("PHASE 1: USER ENUMERATION")
        try:
            users = await enumerate_users(clients, config, args)
        except (AuthenticationError, ExternalAPIError) as e:
            print(f"❌ Could not list users: {e}")
            return EXIT_AUTH_ERROR
        print(f"  {len(users)} users to audit")

        # --- Files ---
        _phase("PHASE 2: FILE ANALYSIS")
        user_results = await processor.process_users(users, types, observer=event_log)
        for result in user_results:
            if result.error:
                print(f"  ❌ {result.user_email}: FAILED — {result.error}")
            else:
                agg = result.aggregate
                print(
                    f"  ✅ {result.user_email}: {agg.total_files} files, "
                    f"{agg.high_risk} high risk, {agg.external_shares} external shares, "
                    f"{agg.cache_hits} from cache"
                )

        # --- Drives ---
        drive_reports: list[UserDriveReport] = []
        if config.drives.enabled:
            _phase("PHASE 3: DRIVE WALK")
            walker = DriveGraphWalker(clients, config)
            drive_reports = await walker.walk_users(users, observer=event_log)
            for report in drive_reports:
                summary = report.summary()
                marker = "❌" if report.errors else "✅"
                print(
                    f"  {marker} {report.user_email}: risk {summary['risk_level']}, "
                    f"{summary['total_shared_drives']} shared drives, "
                    f"{summary['total_orphaned_files']} orphaned, "
                    f"{summary['total_cross_tenant_shares']} cross-tenant"
                )

        # --- Calendars ---
        calendar_reports: list[UserCalendarReport] = []
        if config.calendars.enabled:
            _phase("PHASE 4: CALENDAR SCAN")
            scanner = CalendarScanner(clients, config)
            calendar_reports = await scanner.scan_users(users, observer=event_log)
            for calendar_report in calendar_reports:
                if calendar_report.error:
                    print(f"  ❌ {calendar_report.user_email}: FAILED — {calendar_report.error}")
                    continue
                summary = calendar_report.summary()
                print(
                    f"  ✅ {calendar_report.user_email}: {summary['total_calendars']} calendars, "
                    f"{summary['total_future_events']} future events, "
                    f"{summary['total_recurring_events']} recurring, "
                    f"{summary['total_external_meetings']} external meetings"
                )

        # --- Reporting ---
        _phase("PHASE 5: REPORT GENERATION")
        stats = {
            "api": monitor.get_stats(),
            "gateway": gateway.get_stats(),
            "processor": processor.get_stats(),
            "safety": guardian.get_audit_record(),
        }
        created_files = generate_reports(user_results, drive_reports, config, scan_id, stats, calendar_reports)
    finally:
        if event_log is not None:
            event_log.close()
        await processor.close()

    print("\n" + "=" * 70)
    print(" AUDIT COMPLETE")
    print("=" * 70)
    print(f"\n  Users: {len(user_results)} audited")
    print(f"  Files: {len(created_files)} reports generated")
    print(f"  Path:  {config.output.scan_dir.resolve()}")
    print()
    return 0


def main():
    """Synchronous entry point for `python -m drive_audit_engine`."""
    sys.exit(asyncio.run(main_async()))


if __name__ == "__main__":
    main()
