"""
Record descriptors for gridstore table handlers.

A record is a plain dataclass. Its mapped scalar fields are declared with
column(), and at most one field declared with attributes() absorbs every row
column that no mapped field covers (the open attribute bag).

This module defines:
- FieldKind: Semantic type of a mapped field, with its row coercion rules
- FieldDef: One mapped column (name, kind, attribute accessor)
- RecordDescriptor: Mapped fields plus the optional attribute field of a type
- ColumnCache: Once-only latch for the unmapped column list of a result shape

Invariants:
    - A descriptor never changes after it is built
    - A column cache, once latched, is never recomputed
    - Column names are trusted identifiers, quoted but never bound

Example:
    >>> @dataclass
    ... class Presence:
    ...     user_id: str = column("UserID", FieldKind.TEXT)
    ...     online: bool = column("Online", FieldKind.BOOL)
    ...     data: dict[str, str] = attributes()
    >>> desc = RecordDescriptor.for_type(Presence)
    >>> desc.column_names
    ('UserID', 'Online')
"""

from __future__ import annotations

import dataclasses
import threading
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, Optional, Sequence

from ..errors import FieldCoercionError, RecordDefinitionError

# dataclass metadata keys
_COLUMN_KEY = "gridstore.column"
_KIND_KEY = "gridstore.kind"
_ATTRIBUTES_KEY = "gridstore.attributes"

INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1
UINT32_MAX = 2**32 - 1

NIL_UUID = uuid.UUID(int=0)


class FieldKind(Enum):
    """Semantic types a mapped field can have."""

    BOOL = "bool"
    INT32 = "int32"
    UINT32 = "uint32"
    INT64 = "int64"
    UUID = "uuid"
    TEXT = "text"

    @property
    def default(self) -> Any:
        """Value a field of this kind holds on an empty record."""
        return _DEFAULTS[self]


_DEFAULTS = {
    FieldKind.BOOL: False,
    FieldKind.INT32: 0,
    FieldKind.UINT32: 0,
    FieldKind.INT64: 0,
    FieldKind.UUID: NIL_UUID,
    FieldKind.TEXT: "",
}


def quote_ident(name: str) -> str:
    """Quote a table or column name for interpolation into SQL."""
    return '"' + name.replace('"', '""') + '"'


def uuid_from_db(value: Any) -> uuid.UUID:
    """Convert the engine's identifier representation to a UUID.

    Accepts a UUID, 16 raw bytes, or any of the textual forms uuid.UUID
    parses. Empty values read as the nil UUID.
    """
    if isinstance(value, uuid.UUID):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        raw = bytes(value)
        if not raw:
            return NIL_UUID
        if len(raw) == 16:
            return uuid.UUID(bytes=raw)
        value = raw.decode("ascii")
    text = str(value).strip()
    if not text:
        return NIL_UUID
    return uuid.UUID(text)


def _to_int_range(value: Any, low: int, high: int) -> int:
    result = int(value)
    if result < low or result > high:
        raise OverflowError(f"{result} outside [{low}, {high}]")
    return result


_FROM_DB: dict[FieldKind, Callable[[Any], Any]] = {
    FieldKind.BOOL: lambda v: int(v) != 0,
    FieldKind.UUID: uuid_from_db,
    FieldKind.INT32: lambda v: _to_int_range(v, INT32_MIN, INT32_MAX),
    FieldKind.UINT32: lambda v: _to_int_range(v, 0, UINT32_MAX),
}


@dataclass(frozen=True)
class FieldDef:
    """A mapped scalar field of a record type.

    Attributes:
        column: Column name in the realm table
        kind: Semantic type of the field
        attr: Attribute name on the record instance
    """

    column: str
    kind: FieldKind
    attr: str

    def get(self, record: Any) -> Any:
        return getattr(record, self.attr)

    def set(self, record: Any, value: Any) -> None:
        setattr(record, self.attr, value)

    def from_db(self, value: Any) -> Any:
        """Coerce a non-null row value to this field's kind.

        Kinds without a conversion rule take the value as the engine
        returned it.

        Raises:
            FieldCoercionError: If the value cannot be converted
        """
        convert = _FROM_DB.get(self.kind)
        if convert is None:
            return value
        try:
            return convert(value)
        except (TypeError, ValueError, OverflowError) as e:
            raise FieldCoercionError(self.column, self.kind.value, value) from e

    def to_db(self, value: Any) -> str:
        """Stringify a field value for binding."""
        if self.kind == FieldKind.BOOL:
            return "1" if value else "0"
        return str(value)


def column(
    name: str,
    kind: FieldKind = FieldKind.TEXT,
    default: Any = dataclasses.MISSING,
) -> Any:
    """Declare a mapped field on a record dataclass.

    Args:
        name: Column name in the table
        kind: Semantic type, drives coercion on read
        default: Field default (the kind's default if omitted)

    Returns:
        A dataclasses.field carrying the column metadata
    """
    if default is dataclasses.MISSING:
        default = kind.default
    return dataclasses.field(
        default=default,
        metadata={_COLUMN_KEY: name, _KIND_KEY: kind},
    )


def attributes() -> Any:
    """Declare the open attribute field of a record dataclass."""
    return dataclasses.field(default_factory=dict, metadata={_ATTRIBUTES_KEY: True})


class RecordDescriptor:
    """Mapped fields and open attribute field of one record type.

    Built once per handler from the dataclass declaration and never
    modified afterwards. Fields without column() or attributes() metadata
    and private fields (leading underscore) are not mapped.

    Attributes:
        record_type: The described dataclass
        fields: Mapped fields in declaration order
        data_attr: Attribute name of the open attribute field, if any
    """

    def __init__(self, record_type: type) -> None:
        if not dataclasses.is_dataclass(record_type):
            raise RecordDefinitionError(
                f"{record_type!r} is not a dataclass", record_type=record_type
            )

        fields: list[FieldDef] = []
        data_attr: Optional[str] = None

        for f in dataclasses.fields(record_type):
            if f.name.startswith("_"):
                continue
            if f.metadata.get(_ATTRIBUTES_KEY):
                if data_attr is not None:
                    raise RecordDefinitionError(
                        f"{record_type.__name__} declares more than one attribute field",
                        record_type=record_type,
                    )
                data_attr = f.name
            elif _COLUMN_KEY in f.metadata:
                fields.append(FieldDef(f.metadata[_COLUMN_KEY], f.metadata[_KIND_KEY], f.name))

        self.record_type = record_type
        self.fields: tuple[FieldDef, ...] = tuple(fields)
        self.data_attr = data_attr
        self._by_column = {fd.column: fd for fd in self.fields}

    @classmethod
    def for_type(cls, record_type: type) -> RecordDescriptor:
        return cls(record_type)

    @property
    def column_names(self) -> tuple[str, ...]:
        return tuple(self._by_column)

    @property
    def has_data_field(self) -> bool:
        return self.data_attr is not None

    def is_mapped(self, column_name: str) -> bool:
        return column_name in self._by_column

    def new_record(self) -> Any:
        return self.record_type()

    def get_data(self, record: Any) -> dict[str, str]:
        if self.data_attr is None:
            return {}
        data = getattr(record, self.data_attr)
        return data if data is not None else {}

    def set_data(self, record: Any, data: dict[str, str]) -> None:
        if self.data_attr is not None:
            setattr(record, self.data_attr, data)


class ColumnCache:
    """Latches the unmapped columns of the first result shape it sees.

    The first call to resolve() computes the list under a lock; every
    later call returns the same tuple, whatever columns it is passed.

    Example:
        >>> cache = ColumnCache(lambda name: name in ("UUID",))
        >>> cache.resolve(["UUID", "passwordHash"])
        ('passwordHash',)
    """

    def __init__(self, exclude: Optional[Callable[[str], bool]] = None) -> None:
        self._exclude = exclude or (lambda _name: False)
        self._columns: Optional[tuple[str, ...]] = None
        self._lock = threading.Lock()

    @property
    def columns(self) -> Optional[tuple[str, ...]]:
        """Latched column names, or None before the first resolve."""
        return self._columns

    def resolve(self, result_columns: Iterable[str]) -> tuple[str, ...]:
        columns = self._columns
        if columns is not None:
            return columns

        with self._lock:
            if self._columns is None:
                names = [name for name in result_columns if name is not None]
                if not names:
                    # Nothing to learn from an empty schema; try again next query
                    return ()
                self._columns = tuple(name for name in names if not self._exclude(name))
            return self._columns


def cursor_columns(description: Optional[Sequence[Sequence[Any]]]) -> list[str]:
    """Column names from a DB-API cursor description."""
    if not description:
        return []
    return [entry[0] for entry in description]
