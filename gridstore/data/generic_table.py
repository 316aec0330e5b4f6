"""
Generic table handler for gridstore.

A GenericTableHandler maps one record dataclass onto one table (its realm)
without a hand-written query per record type. Statements are assembled from
the record descriptor; every value is bound as a parameter.

Invariants:
    - The descriptor is built once in __init__, before any schema work, and
      never changes
    - Unmapped result columns are latched once per handler (ColumnCache)
    - Mapped fields must be non-null at store time (NullFieldError otherwise)
    - Predicate field/value arity mismatches degrade to empty results, never errors
    - Table and column names come from trusted code, never from requests

How to change safely:
    - New field kinds need a coercion rule in records.FieldKind
    - Keep store() a single REPLACE statement; callers rely on its idempotence
    - Raw where clauses are trusted text; do not expose them to request input

Example:
    >>> handler = GenericTableHandler(engine, "Presence", PresenceData, "Presence")
    >>> handler.store(PresenceData(user_id="u1", region_id=region))
    True
    >>> handler.get("UserID", "u1")
    [PresenceData(user_id='u1', ...)]
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from typing import Any, Generic, Optional, TypeVar, Union

from ..errors import NullFieldError
from .engine import SqliteEngine
from .migrations import MigrateFn, bring_schema_to_latest
from .records import ColumnCache, RecordDescriptor, cursor_columns, quote_ident

logger = logging.getLogger(__name__)

T = TypeVar("T")

Fields = Union[str, Sequence[str]]


def bind_value(value: Any) -> Any:
    """Convert a predicate value to something sqlite3 can bind."""
    if isinstance(value, uuid.UUID):
        return str(value)
    return value


def build_predicate(fields: Fields, keys: Any) -> Optional[tuple[str, list[Any]]]:
    """Build an AND-joined equality predicate.

    Args:
        fields: One column name or a sequence of column names
        keys: One value (when fields is a string) or a parallel sequence

    Returns:
        (where_clause, params), or None if the arity does not match
    """
    if isinstance(fields, str):
        fields = [fields]
        keys = [keys]
    elif isinstance(keys, (str, bytes)) or not isinstance(keys, Sequence):
        return None

    if len(fields) != len(keys) or not fields:
        return None

    terms = [f"{quote_ident(name)} = ?" for name in fields]
    return " AND ".join(terms), [bind_value(k) for k in keys]


class GenericTableHandler(Generic[T]):
    """Get, store, delete and count records of one type in one realm.

    Thread safety:
        Each operation opens its own connection.
        The column cache is latched under a lock.

    Attributes:
        engine: SQLite engine used for every call
        realm: Table name
        descriptor: Mapped fields and attribute field of the record type
    """

    def __init__(
        self,
        engine: SqliteEngine,
        realm: str,
        record_type: type[T],
        store_name: str = "",
        migrator: Optional[MigrateFn] = bring_schema_to_latest,
    ) -> None:
        """Initialize the handler.

        Args:
            engine: SQLite engine
            realm: Table name
            record_type: Record dataclass
            store_name: Migration chain to bring up to date ("" to skip)
            migrator: Migration collaborator (None to skip)
        """
        self.engine = engine
        self.realm = realm
        self.descriptor = RecordDescriptor.for_type(record_type)
        self._columns = ColumnCache(self.descriptor.is_mapped)

        if store_name and migrator is not None:
            with engine.connection() as conn:
                migrator(conn, store_name, {"realm": realm})

    @property
    def unmapped_columns(self) -> Optional[tuple[str, ...]]:
        """Columns routed into the attribute field (None until first query)."""
        return self._columns.columns

    def get(self, fields: Fields, keys: Any) -> list[T]:
        """Get records matching every field = key pair.

        Returns:
            Matching records (empty on arity mismatch)
        """
        predicate = build_predicate(fields, keys)
        if predicate is None:
            return []

        where, params = predicate
        return self._do_query(f"SELECT * FROM {quote_ident(self.realm)} WHERE {where}", params)

    def get_where(self, where: str, params: Sequence[Any] = ()) -> list[T]:
        """Get records matching a trusted raw where clause."""
        return self._do_query(f"SELECT * FROM {quote_ident(self.realm)} WHERE {where}", params)

    def _do_query(
        self,
        sql: str,
        params: Sequence[Any],
        columns: Optional[ColumnCache] = None,
    ) -> list[T]:
        cache = columns or self._columns

        with self.engine.connection() as conn:
            cursor = conn.execute(sql, params)
            result_columns = cursor_columns(cursor.description)
            extra = cache.resolve(result_columns) if self.descriptor.has_data_field else ()
            present = set(result_columns)

            return [self._row_to_record(row, present, extra) for row in cursor.fetchall()]

    def _row_to_record(self, row: Any, present: set[str], extra: tuple[str, ...]) -> T:
        record = self.descriptor.new_record()

        for fd in self.descriptor.fields:
            if fd.column not in present:
                continue
            value = row[fd.column]
            if value is None:
                continue
            fd.set(record, fd.from_db(value))

        if self.descriptor.has_data_field:
            data: dict[str, str] = {}
            for name in extra:
                if name not in present:
                    continue
                value = row[name]
                data[name] = "" if value is None else str(value)
            self.descriptor.set_data(record, data)

        return record

    def store(self, record: T) -> bool:
        """Insert or replace a record.

        Writes every mapped field plus every key of the attribute map.

        Returns:
            True if a row was written

        Raises:
            NullFieldError: If a mapped field is None
        """
        names: list[str] = []
        values: list[str] = []

        for fd in self.descriptor.fields:
            value = fd.get(record)
            if value is None:
                raise NullFieldError(fd.column, record, self.realm)
            names.append(fd.column)
            values.append(fd.to_db(value))

        for key, value in self.descriptor.get_data(record).items():
            if self.descriptor.is_mapped(key):
                continue
            names.append(key)
            values.append(str(value))

        if not names:
            return False

        sql = (
            f"REPLACE INTO {quote_ident(self.realm)} "
            f"({', '.join(quote_ident(n) for n in names)}) "
            f"VALUES ({', '.join('?' for _ in names)})"
        )
        affected = self.engine.execute(sql, values)

        logger.debug(
            "Stored record",
            extra={"realm": self.realm, "columns": len(names), "affected": affected},
        )
        return affected > 0

    def delete(self, fields: Fields, keys: Any) -> bool:
        """Delete rows matching every field = key pair.

        Returns:
            True if at least one row was deleted (False on arity mismatch)
        """
        predicate = build_predicate(fields, keys)
        if predicate is None:
            return False

        where, params = predicate
        affected = self.engine.execute(
            f"DELETE FROM {quote_ident(self.realm)} WHERE {where}", params
        )
        logger.debug("Deleted rows", extra={"realm": self.realm, "affected": affected})
        return affected > 0

    def get_count(self, fields: Fields, keys: Any) -> int:
        """Count rows matching every field = key pair (0 on arity mismatch)."""
        predicate = build_predicate(fields, keys)
        if predicate is None:
            return 0

        where, params = predicate
        return self.get_count_where(where, params)

    def get_count_where(self, where: str, params: Sequence[Any] = ()) -> int:
        """Count rows matching a trusted raw where clause."""
        result = self.engine.scalar(
            f"SELECT COUNT(*) FROM {quote_ident(self.realm)} WHERE {where}", params
        )
        return int(result or 0)
