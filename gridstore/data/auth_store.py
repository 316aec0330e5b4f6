"""
Authentication store for gridstore.

This module manages credentials and session tokens:
- One row per principal in the auth realm, keyed by the UUID column
- Every other auth column is carried in an open data map
- Session tokens with a validity deadline in the tokens table

Unlike GenericTableHandler, store() updates only the supplied columns and
falls back to an insert when the principal has no row yet.

Invariants:
    - The UUID column is the address, never part of the written payload
    - The auth column list is latched on the first successful lookup
    - check_token renews and validates in one statement
    - Expired tokens are swept at most once per expire_interval, by whichever
      token call crosses the threshold first

How to change safely:
    - New credential columns need only a migration; no code change
    - Keep the token predicate (validity > now) inside the renewing UPDATE

Table schema:
    auth:
        - UUID TEXT PRIMARY KEY
        - passwordHash, passwordSalt, webLoginKey, accountType TEXT (open set)

    tokens:
        - UUID TEXT
        - token TEXT
        - validity INTEGER (Unix seconds)
        - UNIQUE (UUID, token)
"""

from __future__ import annotations

import logging
import sqlite3
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, Optional, Union

from .engine import SqliteEngine
from .migrations import MigrateFn, bring_schema_to_latest
from .records import ColumnCache, cursor_columns, quote_ident, uuid_from_db

logger = logging.getLogger(__name__)

ID_COLUMN = "UUID"


@dataclass
class AuthenticationData:
    """Credentials of one principal.

    Attributes:
        principal_id: Principal identifier
        data: Credential columns by name (password hash, salt, ...)
    """

    principal_id: uuid.UUID
    data: dict[str, str] = field(default_factory=dict)


class AuthenticationStore:
    """Credential lookup, update-or-insert storage and session tokens.

    Thread safety:
        Each operation opens its own connection.
        The column list and the sweep time are latched under locks.

    Example:
        >>> store = AuthenticationStore(engine)
        >>> store.store(AuthenticationData(pid, {"passwordHash": h, "passwordSalt": s}))
        True
        >>> store.set_token(pid, "abc", 5)
        True
        >>> store.check_token(pid, "abc", 5)
        True
    """

    def __init__(
        self,
        engine: SqliteEngine,
        realm: str = "auth",
        tokens_realm: str = "tokens",
        store_name: str = "AuthStore",
        migrator: Optional[MigrateFn] = bring_schema_to_latest,
        expire_interval: float = 30.0,
        clock: Callable[[], float] = time.time,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the store.

        Args:
            engine: SQLite engine
            realm: Credentials table name
            tokens_realm: Tokens table name
            store_name: Migration chain to bring up to date ("" to skip)
            migrator: Migration collaborator (None to skip)
            expire_interval: Minimum seconds between expired-token sweeps
            clock: Wall clock for token validity (Unix seconds)
            monotonic: Clock for sweep scheduling
        """
        self.engine = engine
        self.realm = realm
        self.tokens_realm = tokens_realm
        self.expire_interval = expire_interval
        self._clock = clock
        self._monotonic = monotonic

        if store_name and migrator is not None:
            with engine.connection() as conn:
                migrator(conn, store_name, {"realm": realm, "tokens": tokens_realm})

        self._columns = ColumnCache()
        self._last_expire: Optional[float] = None
        self._expire_lock = threading.Lock()

    def get(self, principal_id: Union[uuid.UUID, str]) -> Optional[AuthenticationData]:
        """Get the credentials of a principal.

        Returns:
            AuthenticationData or None if not found
        """
        with self.engine.connection() as conn:
            cursor = conn.execute(
                f"SELECT * FROM {quote_ident(self.realm)} WHERE {quote_ident(ID_COLUMN)} = ?",
                (str(principal_id),),
            )
            row = cursor.fetchone()
            if row is None:
                return None

            columns = self._columns.resolve(cursor_columns(cursor.description))
            present = set(row.keys())

            ret = AuthenticationData(principal_id=uuid_from_db(row[ID_COLUMN]))
            for name in columns:
                if name == ID_COLUMN or name not in present:
                    continue
                value = row[name]
                ret.data[name] = "" if value is None else str(value)
            return ret

    def store(self, data: AuthenticationData) -> bool:
        """Update the supplied columns of a principal, inserting if absent.

        The UUID key is removed from data.data if present. Columns not in
        data.data keep their stored values on update.

        Returns:
            True if a row was updated or inserted, False for an empty data map
        """
        data.data.pop(ID_COLUMN, None)

        fields = list(data.data)
        if not fields:
            return False

        values = [str(data.data[name]) for name in fields]
        principal = str(data.principal_id)

        assignments = ", ".join(f"{quote_ident(name)} = ?" for name in fields)
        update_sql = (
            f"UPDATE {quote_ident(self.realm)} SET {assignments} "
            f"WHERE {quote_ident(ID_COLUMN)} = ?"
        )
        insert_sql = (
            f"INSERT INTO {quote_ident(self.realm)} "
            f"({', '.join(quote_ident(n) for n in [ID_COLUMN, *fields])}) "
            f"VALUES ({', '.join('?' for _ in range(len(fields) + 1))})"
        )

        if self.engine.execute(update_sql, [*values, principal]) > 0:
            return True

        try:
            inserted = self.engine.execute(insert_sql, [principal, *values])
        except sqlite3.IntegrityError:
            # Another writer inserted the row between our UPDATE and INSERT
            logger.warning(
                "Insert raced with a concurrent writer, retrying update",
                extra={"realm": self.realm, "principal_id": principal},
            )
            return self.engine.execute(update_sql, [*values, principal]) > 0

        logger.debug("Inserted credentials", extra={"realm": self.realm, "principal_id": principal})
        return inserted > 0

    def set_data_item(self, principal_id: uuid.UUID, item: str, value: str) -> bool:
        """Update one credential column.

        The column name is interpolated as an identifier. Callers must pass
        a known column name; it is not checked against the table.

        Returns:
            True if the principal's row was updated
        """
        sql = (
            f"UPDATE {quote_ident(self.realm)} SET {quote_ident(item)} = ? "
            f"WHERE {quote_ident(ID_COLUMN)} = ?"
        )
        return self.engine.execute(sql, (value, str(principal_id))) > 0

    def set_token(self, principal_id: uuid.UUID, token: str, lifetime: int) -> bool:
        """Create a token valid for lifetime minutes from now."""
        self._maybe_expire()

        validity = int(self._clock()) + lifetime * 60
        affected = self.engine.execute(
            f"INSERT INTO {quote_ident(self.tokens_realm)} (UUID, token, validity) VALUES (?, ?, ?)",
            (str(principal_id), token, validity),
        )
        return affected > 0

    def check_token(self, principal_id: uuid.UUID, token: str, lifetime: int) -> bool:
        """Renew a token if it exists and has not expired.

        Validation and renewal are one UPDATE, so a token that expires
        concurrently is never renewed.

        Returns:
            True if the token was valid (and is now renewed)
        """
        self._maybe_expire()

        now = int(self._clock())
        affected = self.engine.execute(
            f"UPDATE {quote_ident(self.tokens_realm)} SET validity = ? "
            "WHERE UUID = ? AND token = ? AND validity > ?",
            (now + lifetime * 60, str(principal_id), token, now),
        )
        return affected > 0

    def _maybe_expire(self) -> None:
        with self._expire_lock:
            tick = self._monotonic()
            if self._last_expire is not None and tick - self._last_expire <= self.expire_interval:
                return
            self._last_expire = tick

        self._do_expire()

    def _do_expire(self) -> None:
        removed = self.engine.execute(
            f"DELETE FROM {quote_ident(self.tokens_realm)} WHERE validity < ?",
            (int(self._clock()),),
        )
        if removed:
            logger.debug(
                "Expired tokens", extra={"realm": self.tokens_realm, "removed": removed}
            )
