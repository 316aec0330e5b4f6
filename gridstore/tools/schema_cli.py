"""
Schema CLI tool for gridstore.

This tool manages the store schemas of one database file:
- upgrade: Bring stores to their latest migration version
- status: Show current and latest version per store

Usage:
    gridstore-schema upgrade
    gridstore-schema upgrade --store AuthStore
    gridstore-schema status --database /var/lib/gridstore/grid.db

Invariants:
    - upgrade is idempotent; running it twice changes nothing
    - status never writes anything except the migrations bookkeeping table
    - Non-zero exit code when a migration fails or a store is unknown
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Mapping, Optional, Sequence

import json_log_formatter

from ..config import Settings
from ..data import Migrator, SqliteEngine, get_migrator
from ..errors import MigrationError

logger = logging.getLogger(__name__)


def setup_logging(settings: Settings) -> None:
    """Configure root logging from settings.

    Args:
        settings: gridstore settings
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    if settings.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]


class SchemaCLI:
    """CLI commands over a Migrator.

    tables maps store names to the table names their statements expand to;
    stores missing from it use their registered defaults.

    Example:
        >>> cli = SchemaCLI(SqliteEngine("grid.db"))
        >>> cli.upgrade(["AuthStore"])
        {'AuthStore': 2}
    """

    def __init__(
        self,
        engine: SqliteEngine,
        migrator: Optional[Migrator] = None,
        tables: Optional[Mapping[str, Mapping[str, str]]] = None,
    ) -> None:
        self.engine = engine
        self.migrator = migrator or get_migrator()
        self.tables = tables or {}

    def _resolve(self, stores: Optional[Sequence[str]]) -> list[str]:
        known = self.migrator.store_names()
        if not stores:
            return known
        unknown = [s for s in stores if s not in known]
        if unknown:
            raise ValueError(f"Unknown store(s): {', '.join(unknown)}. Known: {known}")
        return list(stores)

    def upgrade(self, stores: Optional[Sequence[str]] = None) -> dict[str, int]:
        """Apply pending migrations.

        Args:
            stores: Store names (all registered stores if empty)

        Returns:
            Version per store after the upgrade
        """
        versions = {}
        with self.engine.connection() as conn:
            for name in self._resolve(stores):
                versions[name] = self.migrator.update(conn, name, self.tables.get(name))
        return versions

    def status(self, stores: Optional[Sequence[str]] = None) -> dict[str, tuple[int, int]]:
        """Current and latest version per store."""
        result = {}
        with self.engine.connection() as conn:
            for name in self._resolve(stores):
                result[name] = (
                    self.migrator.current_version(conn, name, self.tables.get(name)),
                    self.migrator.latest_version(name),
                )
        return result


def main(argv: Optional[Sequence[str]] = None) -> int:
    """CLI entry point for the schema tool."""
    parser = argparse.ArgumentParser(description="gridstore schema management tool")
    parser.add_argument("--database", "-d", help="SQLite database file (default from settings)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    upgrade_parser = subparsers.add_parser("upgrade", help="Apply pending migrations")
    upgrade_parser.add_argument(
        "--store", action="append", default=[], help="Store to upgrade (repeatable)"
    )

    status_parser = subparsers.add_parser("status", help="Show migration versions")
    status_parser.add_argument(
        "--store", action="append", default=[], help="Store to show (repeatable)"
    )

    args = parser.parse_args(argv)

    settings = Settings()
    setup_logging(settings)

    engine = settings.create_engine()
    if args.database:
        engine = SqliteEngine(
            args.database,
            wal_mode=settings.wal_mode,
            busy_timeout_ms=settings.busy_timeout_ms,
            cache_size_pages=settings.cache_size_pages,
        )

    cli = SchemaCLI(engine, tables=settings.store_tables())

    try:
        if args.command == "upgrade":
            for name, version in cli.upgrade(args.store).items():
                print(f"{name}: v{version}")
        elif args.command == "status":
            for name, (current, latest) in cli.status(args.store).items():
                state = "up to date" if current >= latest else "PENDING"
                print(f"{name}: v{current} / v{latest} ({state})")
    except ValueError as e:
        print(str(e), file=sys.stderr)
        return 2
    except MigrationError as e:
        logger.error("Migration failed", extra={"store": e.store_name, "version": e.version})
        print(e.message, file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
