"""
Versioned schema migrations for gridstore stores.

Each store (for example "AuthStore" or "FriendsStore") owns an ordered list
of migrations. The version a database has reached is recorded per store in
the migrations table, so bringing a store up to date is idempotent.

Handlers consume this module through one opaque call:

    bring_schema_to_latest(conn, store_name, {"realm": "Friends"})

Migration statements are str.format templates over the store's table names.
"{realm}" expands to the quoted table name and "{realm_name}" to the bare
name with quotes escaped, for use inside a quoted index name. A store
registers its default table names with set_tables(); names passed to update()
override them.

Invariants:
    - Versions are positive and strictly increasing per store
    - A migration and its version bump commit in the same transaction
    - Applied migrations are never edited; add a new version instead
    - A store on its default tables is recorded under its plain name; the
      same store on other tables is recorded separately

How to change safely:
    - Append new Migration entries with the next version number
    - Keep statements compatible with existing rows (add columns with defaults)
    - Refer to tables only through placeholders, never by literal name

Table schema:
    migrations:
        - name TEXT PRIMARY KEY (store name, plus table names when not default)
        - version INTEGER (last applied version)
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional

from ..errors import MigrationError
from .records import quote_ident

logger = logging.getLogger(__name__)

MigrateFn = Callable[[sqlite3.Connection, str, Optional[Mapping[str, str]]], None]


@dataclass(frozen=True)
class Migration:
    """One schema step for a store.

    Attributes:
        version: Version reached after applying the step
        statements: SQL templates run in order inside one transaction
        description: Human-readable summary
    """

    version: int
    statements: tuple[str, ...]
    description: str = ""

    def __post_init__(self) -> None:
        if self.version <= 0:
            raise ValueError(f"Migration version must be positive, got {self.version}")


def render_statement(statement: str, tables: Mapping[str, str]) -> str:
    """Substitute table placeholders into a migration statement.

    Statements of stores without table names are returned unchanged.
    """
    if not tables:
        return statement
    names: Dict[str, str] = {}
    for key, table in tables.items():
        names[key] = quote_ident(table)
        names[f"{key}_name"] = table.replace('"', '""')
    return statement.format_map(names)


class Migrator:
    """Registry of per-store migrations and the runner that applies them.

    Thread-safety:
        - Registration is guarded by an internal lock
        - update() serializes concurrent runners with BEGIN IMMEDIATE

    Example:
        >>> migrator = Migrator()
        >>> migrator.register("PresenceStore", Migration(1, ("CREATE TABLE {realm} ...",)))
        >>> migrator.set_tables("PresenceStore", {"realm": "Presence"})
        >>> with engine.connection() as conn:
        ...     migrator.update(conn, "PresenceStore")
    """

    def __init__(self) -> None:
        self._migrations: Dict[str, List[Migration]] = {}
        self._tables: Dict[str, Dict[str, str]] = {}
        self._lock = threading.Lock()

    def register(self, store_name: str, migration: Migration) -> None:
        """Add a migration to a store's chain.

        Raises:
            ValueError: If the version does not follow the last registered one
        """
        with self._lock:
            chain = self._migrations.setdefault(store_name, [])
            if chain and migration.version <= chain[-1].version:
                raise ValueError(
                    f"{store_name} migration v{migration.version} must be greater "
                    f"than v{chain[-1].version}"
                )
            chain.append(migration)

    def set_tables(self, store_name: str, tables: Mapping[str, str]) -> None:
        """Set the default table names a store's statements expand to."""
        with self._lock:
            self._tables[store_name] = dict(tables)

    def tables_for(
        self, store_name: str, tables: Optional[Mapping[str, str]] = None
    ) -> dict[str, str]:
        """Default table names of a store, overridden by tables."""
        resolved = dict(self._tables.get(store_name, {}))
        if tables:
            resolved.update(tables)
        return resolved

    def version_key(self, store_name: str, tables: Optional[Mapping[str, str]] = None) -> str:
        """Name a store's version is recorded under in the migrations table."""
        resolved = self.tables_for(store_name, tables)
        if resolved == self._tables.get(store_name, {}):
            return store_name
        suffix = ",".join(f"{key}={resolved[key]}" for key in sorted(resolved))
        return f"{store_name}:{suffix}"

    def latest_version(self, store_name: str) -> int:
        chain = self._migrations.get(store_name)
        return chain[-1].version if chain else 0

    def store_names(self) -> list[str]:
        return sorted(self._migrations)

    def current_version(
        self,
        conn: sqlite3.Connection,
        store_name: str,
        tables: Optional[Mapping[str, str]] = None,
    ) -> int:
        """Version recorded for a store in this database (0 if none)."""
        self._ensure_table(conn)
        row = conn.execute(
            "SELECT version FROM migrations WHERE name = ?",
            (self.version_key(store_name, tables),),
        ).fetchone()
        return int(row[0]) if row else 0

    def update(
        self,
        conn: sqlite3.Connection,
        store_name: str,
        tables: Optional[Mapping[str, str]] = None,
    ) -> int:
        """Apply every pending migration of a store.

        Args:
            conn: Open connection in autocommit mode
            store_name: Store whose chain to apply
            tables: Table names overriding the store's defaults

        Returns:
            Version the store is at afterwards

        Raises:
            MigrationError: If a statement fails (the step is rolled back)
        """
        chain = self._migrations.get(store_name)
        if not chain:
            logger.debug("No migrations registered", extra={"store": store_name})
            return 0

        resolved = self.tables_for(store_name, tables)
        key = self.version_key(store_name, tables)
        self._ensure_table(conn)
        version = 0

        for migration in chain:
            conn.execute("BEGIN IMMEDIATE")
            try:
                row = conn.execute(
                    "SELECT version FROM migrations WHERE name = ?", (key,)
                ).fetchone()
                version = int(row[0]) if row else 0
                if migration.version <= version:
                    conn.execute("COMMIT")
                    continue

                for statement in migration.statements:
                    conn.execute(render_statement(statement, resolved))
                conn.execute(
                    "REPLACE INTO migrations (name, version) VALUES (?, ?)",
                    (key, migration.version),
                )
                conn.execute("COMMIT")
            except (sqlite3.Error, KeyError) as e:
                conn.execute("ROLLBACK")
                raise MigrationError(store_name, migration.version, e) from e

            version = migration.version
            logger.info(
                f"Applied migration {key} v{version}",
                extra={"store": store_name, "tables": resolved, "version": version},
            )

        return version

    @staticmethod
    def _ensure_table(conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS migrations (
                name TEXT NOT NULL PRIMARY KEY,
                version INTEGER NOT NULL
            )
            """
        )


AUTH_STORE_TABLES = {"realm": "auth", "tokens": "tokens"}

AUTH_STORE_MIGRATIONS = (
    Migration(
        1,
        (
            """
            CREATE TABLE IF NOT EXISTS {realm} (
                UUID TEXT NOT NULL PRIMARY KEY,
                passwordHash TEXT NOT NULL DEFAULT '',
                passwordSalt TEXT NOT NULL DEFAULT '',
                webLoginKey TEXT NOT NULL DEFAULT ''
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS {tokens} (
                UUID TEXT NOT NULL,
                token TEXT NOT NULL,
                validity INTEGER NOT NULL,
                UNIQUE (UUID, token)
            )
            """,
            'CREATE INDEX IF NOT EXISTS "idx_{tokens_name}_uuid" ON {tokens}(UUID)',
            'CREATE INDEX IF NOT EXISTS "idx_{tokens_name}_validity" ON {tokens}(validity)',
        ),
        "auth and tokens tables",
    ),
    Migration(
        2,
        ("ALTER TABLE {realm} ADD COLUMN accountType TEXT NOT NULL DEFAULT 'UserAccount'",),
        "account type column",
    ),
)

FRIENDS_STORE_TABLES = {"realm": "Friends"}

FRIENDS_STORE_MIGRATIONS = (
    Migration(
        1,
        (
            """
            CREATE TABLE IF NOT EXISTS {realm} (
                PrincipalID TEXT NOT NULL DEFAULT '',
                Friend TEXT NOT NULL,
                Flags INTEGER NOT NULL DEFAULT 0,
                Offered TEXT NOT NULL DEFAULT '0',
                PRIMARY KEY (PrincipalID, Friend)
            )
            """,
            'CREATE INDEX IF NOT EXISTS "idx_{realm_name}_principal" ON {realm}(PrincipalID)',
            'CREATE INDEX IF NOT EXISTS "idx_{realm_name}_friend" ON {realm}(Friend)',
        ),
        "friends table",
    ),
)

_default_migrator: Optional[Migrator] = None
_default_lock = threading.Lock()


def get_migrator() -> Migrator:
    """Process-wide migrator with the built-in store chains registered."""
    global _default_migrator
    if _default_migrator is None:
        with _default_lock:
            if _default_migrator is None:
                migrator = Migrator()
                for m in AUTH_STORE_MIGRATIONS:
                    migrator.register("AuthStore", m)
                migrator.set_tables("AuthStore", AUTH_STORE_TABLES)
                for m in FRIENDS_STORE_MIGRATIONS:
                    migrator.register("FriendsStore", m)
                migrator.set_tables("FriendsStore", FRIENDS_STORE_TABLES)
                _default_migrator = migrator
    return _default_migrator


def bring_schema_to_latest(
    conn: sqlite3.Connection, store_name: str, tables: Optional[Mapping[str, str]] = None
) -> None:
    """Bring a store's tables to the latest registered version."""
    get_migrator().update(conn, store_name, tables)
