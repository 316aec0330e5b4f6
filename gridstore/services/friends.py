"""
Friends service for gridstore.

Turns raw friend edges into typed FriendInfo entries (my flags, their flags)
for presence and login services, and forwards store and delete calls.

Principals are either plain UUIDs or universal user identifiers of the form
"uuid;home_url;first last[;secret]" for visitors from other grids.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import NamedTuple, Optional, Union

from ..data.friends_store import NO_FLAGS, FriendsStore

logger = logging.getLogger(__name__)


@dataclass
class FriendInfo:
    """A friend edge as seen by its principal.

    Attributes:
        principal_id: UUID part of the principal identifier
        friend: Friend identifier as stored
        my_flags: Rights the principal grants the friend
        their_flags: Rights the friend grants back (-1 if no reverse edge)
    """

    principal_id: uuid.UUID
    friend: str
    my_flags: int = 0
    their_flags: int = NO_FLAGS


class UniversalIdentifier(NamedTuple):
    user_id: uuid.UUID
    url: str
    first_name: str
    last_name: str
    secret: str


def parse_universal_identifier(value: str) -> Optional[UniversalIdentifier]:
    """Parse "uuid;url;first last[;secret]".

    Returns:
        The parts, or None if the value does not start with a UUID
    """
    parts = value.split(";")
    try:
        user_id = uuid.UUID(parts[0])
    except ValueError:
        return None

    url = parts[1] if len(parts) > 1 else ""
    first, last = "", ""
    if len(parts) > 2:
        name = parts[2].split(" ", 1)
        first = name[0]
        last = name[1] if len(name) > 1 else ""
    secret = parts[3] if len(parts) > 3 else ""
    return UniversalIdentifier(user_id, url, first, last, secret)


def _parse_principal(value: str) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(value)
    except ValueError:
        parsed = parse_universal_identifier(value)
        return parsed.user_id if parsed else None


class FriendsService:
    """Typed access to a FriendsStore.

    Example:
        >>> service = FriendsService(FriendsStore(engine))
        >>> service.store_friend(str(alice), str(bob), 1)
        True
        >>> service.get_friends(alice)
        [FriendInfo(principal_id=UUID('...'), friend='...', my_flags=1, their_flags=-1)]
    """

    def __init__(self, store: FriendsStore) -> None:
        self.store = store

    def get_friends(self, principal_id: Union[uuid.UUID, str]) -> list[FriendInfo]:
        """Friends of a principal, skipping rows with unparseable principals."""
        result: list[FriendInfo] = []

        for row in self.store.get_friends(principal_id):
            parsed = _parse_principal(row.principal_id)
            if parsed is None:
                logger.warning(
                    "Skipping friend row with bad principal",
                    extra={"principal_id": row.principal_id, "friend": row.friend},
                )
                continue

            result.append(
                FriendInfo(
                    principal_id=parsed,
                    friend=row.friend,
                    my_flags=int(row.data.get("Flags") or 0),
                    their_flags=int(row.data.get("TheirFlags") or NO_FLAGS),
                )
            )

        return result

    def store_friend(self, principal_id: str, friend: str, flags: int) -> bool:
        return self.store.store_friend(principal_id, friend, flags)

    def delete(self, principal_id: Union[uuid.UUID, str], friend: str) -> bool:
        return self.store.delete(principal_id, friend)
