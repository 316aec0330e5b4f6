"""
Data module for gridstore - record mapping and table stores.

This module handles:
- Record descriptors and row/field coercion
- The generic table handler (get, store, delete, count)
- The authentication store with session tokens
- The friends store with reciprocal flag lookup
- Versioned schema migrations

Invariants:
    - Every operation opens and closes its own SQLite connection
    - All values are bound as parameters; identifiers come from trusted code
    - Unmapped columns are preserved in a record's attribute map

How to change safely:
    - Add tables through a new migration version, never by editing an old one
    - Add record types as dataclasses using column() and attributes()
"""

from .auth_store import AuthenticationData, AuthenticationStore
from .engine import SqliteEngine
from .friends_store import FriendsData, FriendsStore
from .generic_table import GenericTableHandler
from .migrations import Migration, Migrator, bring_schema_to_latest, get_migrator
from .records import ColumnCache, FieldDef, FieldKind, RecordDescriptor, attributes, column

__all__ = [
    "AuthenticationData",
    "AuthenticationStore",
    "ColumnCache",
    "FieldDef",
    "FieldKind",
    "FriendsData",
    "FriendsStore",
    "GenericTableHandler",
    "Migration",
    "Migrator",
    "RecordDescriptor",
    "SqliteEngine",
    "attributes",
    "bring_schema_to_latest",
    "column",
    "get_migrator",
]
