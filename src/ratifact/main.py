"""Main entry point for the ratifact dashboard."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

from .catalog import ArtifactCatalog, ArtifactRecord, CatalogError
from .config import AppConfig
from .logging_config import setup_logging


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments.

    Returns:
        Parsed arguments.

    """
    parser = argparse.ArgumentParser(
        prog="ratifact",
        description="Terminal dashboard for finding and cleaning build artifacts",
    )

    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        default=None,
        help="Path to configuration file",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("run", help="Run the interactive dashboard (default)")

    scan_parser = subparsers.add_parser("scan", help="Scan for artifacts without the dashboard")
    scan_parser.add_argument(
        "--dir",
        "-d",
        type=Path,
        default=None,
        help="Specific directory to scan",
    )

    config_parser = subparsers.add_parser("config", help="Configuration management")
    config_parser.add_argument(
        "--init",
        action="store_true",
        help="Create default configuration file",
    )
    config_parser.add_argument(
        "--show",
        action="store_true",
        help="Show current configuration",
    )

    purge_parser = subparsers.add_parser("purge", help="Delete expired catalog rows")
    purge_parser.add_argument(
        "--days",
        type=int,
        default=None,
        help="Retention in days (defaults to the configured value)",
    )

    history_parser = subparsers.add_parser("history", help="Show recent catalog rows")
    history_parser.add_argument(
        "--limit",
        "-n",
        type=int,
        default=20,
        help="Number of rows to show",
    )

    return parser.parse_args(argv)


async def _headless_scan(config: AppConfig, catalog: ArtifactCatalog, roots: list[Path]) -> list[ArtifactRecord]:
    from .logging_config import LOGGER_NAME
    from .scanner import Scanner
    from .telemetry import LogSink
    from .watcher import ArtifactWatcher

    logger = logging.getLogger(LOGGER_NAME)
    sink = LogSink(config.log_buffer_size)
    # Never started: nothing needs watching after the command exits
    watcher = ArtifactWatcher(config, sink, logger)
    scanner = Scanner(catalog, watcher, sink, logger)
    handle = scanner.begin_scan(roots, config.excluded_paths)
    paths = await handle.result()
    return [handle.session.found[p] for p in paths]


def cmd_scan(config: AppConfig, catalog: ArtifactCatalog, args: argparse.Namespace) -> int:
    """Execute scan command.

    Args:
        config: Application configuration.
        catalog: Open artifact catalog.
        args: Parsed arguments.

    Returns:
        Exit code.

    """
    from .scanner import format_size

    console = Console()
    roots = [args.dir] if args.dir else config.effective_scan_roots
    found = asyncio.run(_headless_scan(config, catalog, roots))

    if not found:
        console.print("[green]No build artifacts found[/green]")
        return 0

    table = Table(title=f"Found {len(found)} build artifacts")
    table.add_column("Artifact", style="cyan")
    table.add_column("Language", style="green")
    table.add_column("Size", justify="right")

    for record in found:
        table.add_row(record.path, record.language, format_size(record.size_bytes))

    console.print(table)
    return 0


def cmd_config(config: AppConfig, args: argparse.Namespace) -> int:
    """Execute config command.

    Args:
        config: Application configuration.
        args: Parsed arguments.

    Returns:
        Exit code.

    """
    console = Console()
    config_path = args.config or AppConfig.get_config_path()

    if args.init:
        if config_path.exists():
            console.print(f"[yellow]Config already exists: {config_path}[/yellow]")
            return 1
        config.save(config_path)
        console.print(f"[green]Created config: {config_path}[/green]")
        return 0

    if args.show:
        table = Table(title="Current Configuration")
        table.add_column("Setting", style="cyan")
        table.add_column("Value", style="green")

        table.add_row("Scan roots", "\n".join(str(p) for p in config.effective_scan_roots))
        table.add_row("Excluded paths", "\n".join(str(p) for p in config.excluded_paths) or "-")
        table.add_row("Retention days", str(config.retention_days))
        table.add_row("Automatic removal", str(config.automatic_removal))
        table.add_row("Debug logs", str(config.debug_logs_enabled))
        table.add_row("Database", str(config.database_path))
        table.add_row("Log file", str(config.log_file))
        table.add_row("Log level", config.log_level)

        console.print(table)
        return 0

    console.print("[yellow]Use --init or --show[/yellow]")
    return 1


def cmd_purge(config: AppConfig, catalog: ArtifactCatalog, args: argparse.Namespace) -> int:
    """Execute purge command."""
    console = Console()
    days = config.retention_days if args.days is None else args.days
    try:
        removed = catalog.purge_older_than(days)
    except CatalogError as e:
        Console(stderr=True).print(f"[red]{e}[/red]")
        return 1
    console.print(f"[green]Purged {removed} rows older than {days} days[/green]")
    return 0


def cmd_history(catalog: ArtifactCatalog, args: argparse.Namespace) -> int:
    """Execute history command."""
    from .scanner import format_size

    console = Console()
    try:
        records = catalog.recent_builds(args.limit)
        total = catalog.count()
    except CatalogError as e:
        Console(stderr=True).print(f"[red]{e}[/red]")
        return 1
    if not records:
        console.print("[green]No builds recorded[/green]")
        return 0

    table = Table(title=f"Recent builds ({total} total)")
    table.add_column("Discovered", style="dim")
    table.add_column("Project", style="cyan")
    table.add_column("Language", style="green")
    table.add_column("Artifact", style="dim")
    table.add_column("Size", justify="right")

    for record in records:
        table.add_row(
            record.discovered_at.strftime("%Y-%m-%d %H:%M") if record.discovered_at else "?",
            record.project_path,
            record.language,
            record.path,
            format_size(record.size_bytes),
        )

    console.print(table)
    return 0


def cmd_run(config: AppConfig, catalog: ArtifactCatalog, args: argparse.Namespace) -> int:
    """Execute run command.

    Args:
        config: Application configuration.
        catalog: Open artifact catalog.
        args: Parsed arguments.

    Returns:
        Exit code.

    """
    from .dashboard import Dashboard

    dashboard = Dashboard(config, catalog, config_path=args.config)
    asyncio.run(dashboard.run())
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point.

    Returns:
        Exit code.

    """
    args = parse_args(argv)
    config = AppConfig.load(args.config)

    # Default to run command
    command = args.command or "run"

    if command == "config":
        return cmd_config(config, args)

    setup_logging(config, console=command != "run")

    try:
        catalog = ArtifactCatalog.open(config.database_path)
    except CatalogError as e:
        Console(stderr=True).print(f"[red]{e}[/red]")
        return 1

    try:
        if command == "scan":
            return cmd_scan(config, catalog, args)
        elif command == "purge":
            return cmd_purge(config, catalog, args)
        elif command == "history":
            return cmd_history(catalog, args)
        elif command == "run":
            return cmd_run(config, catalog, args)
        else:
            print(f"Unknown command: {command}")
            return 1
    finally:
        catalog.close()


if __name__ == "__main__":
    sys.exit(main())
