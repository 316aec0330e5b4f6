"""
Friends store for gridstore.

A friend edge is one directed row (PrincipalID -> Friend) holding the flags
the principal grants the friend. The reverse edge is a separate row; the
flags the friend grants back ("TheirFlags") are computed at read time with
a self-join, never stored.

Invariants:
    - At most one row per ordered (PrincipalID, Friend) pair
    - Deleting an edge never touches the reverse edge
    - TheirFlags is -1 when no reverse edge exists
    - get_friends matches principals by prefix, so "uuid;url;name" style
      identifiers are found by their UUID

Table schema:
    Friends:
        - PrincipalID TEXT
        - Friend TEXT
        - Flags INTEGER
        - Offered TEXT
        - PRIMARY KEY (PrincipalID, Friend)
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any, Optional, Union

from .engine import SqliteEngine
from .generic_table import Fields, GenericTableHandler
from .migrations import MigrateFn, bring_schema_to_latest
from .records import ColumnCache, FieldKind, attributes, column, quote_ident

NO_FLAGS = -1

Principal = Union[uuid.UUID, str]


@dataclass
class FriendsData:
    """One directed friend edge.

    Attributes:
        principal_id: Identifier of the granting principal
        friend: Identifier of the friend (may carry a location suffix)
        data: Unmapped columns (Flags, Offered, and TheirFlags on get_friends)
    """

    principal_id: str = column("PrincipalID", FieldKind.TEXT)
    friend: str = column("Friend", FieldKind.TEXT)
    data: dict[str, str] = attributes()


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class FriendsStore(GenericTableHandler[FriendsData]):
    """Directed friend edges with reciprocal flag lookup.

    Example:
        >>> store = FriendsStore(engine)
        >>> store.store_friend(alice, str(bob), 1)
        True
        >>> store.get_friends(alice)[0].data["TheirFlags"]
        '-1'
    """

    def __init__(
        self,
        engine: SqliteEngine,
        realm: str = "Friends",
        store_name: str = "FriendsStore",
        migrator: Optional[MigrateFn] = bring_schema_to_latest,
    ) -> None:
        super().__init__(engine, realm, FriendsData, store_name, migrator)
        # The join adds TheirFlags, so it gets its own latched shape
        self._join_columns = ColumnCache(self.descriptor.is_mapped)

    def get_friends(self, principal_id: Principal) -> list[FriendsData]:
        """Get every edge whose principal starts with principal_id.

        Each result carries data["TheirFlags"]: the Flags of the reverse
        edge, or "-1" if there is none.
        """
        realm = quote_ident(self.realm)
        sql = (
            f"SELECT a.*, CASE WHEN b.Flags IS NULL THEN {NO_FLAGS} ELSE b.Flags END AS TheirFlags "
            f"FROM {realm} AS a LEFT JOIN {realm} AS b "
            "ON a.PrincipalID = b.Friend AND a.Friend = b.PrincipalID "
            "WHERE a.PrincipalID LIKE ? ESCAPE '\\'"
        )
        return self._do_query(sql, [_escape_like(str(principal_id)) + "%"], self._join_columns)

    def store_friend(self, principal_id: Principal, friend: str, flags: int) -> bool:
        """Create or replace the edge principal_id -> friend."""
        record = FriendsData(principal_id=str(principal_id), friend=friend)
        record.data["Flags"] = str(flags)
        return self.store(record)

    def delete(self, fields: Union[Fields, Principal], keys: Any) -> bool:
        """Delete the edge fields -> keys, or rows matching a predicate.

        Called with a principal and a friend identifier, deletes the one edge
        principal -> friend. Called with a sequence of column names and a
        parallel sequence of values, behaves like GenericTableHandler.delete.

        Returns:
            True if any row was deleted
        """
        if isinstance(fields, uuid.UUID) or (isinstance(fields, str) and isinstance(keys, str)):
            return super().delete(["PrincipalID", "Friend"], [str(fields), keys])
        return super().delete(fields, keys)
