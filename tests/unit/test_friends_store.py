"""
Unit tests for the friends store.

Tests cover:
- Reciprocal flag lookup
- Prefix matching on principal identifiers
- Directed edge deletion
"""

import uuid

import pytest

from gridstore.data.friends_store import FriendsData, FriendsStore


@pytest.fixture
def store(engine):
    """Friends store on a fresh database."""
    return FriendsStore(engine)


class TestFriendsStore:
    """Tests for FriendsStore."""

    def test_their_flags_default(self, store):
        """Without a reverse edge TheirFlags is -1."""
        a, b = str(uuid.uuid4()), str(uuid.uuid4())
        store.store_friend(a, b, 1)

        friends = store.get_friends(a)

        assert len(friends) == 1
        assert friends[0].principal_id == a
        assert friends[0].friend == b
        assert friends[0].data["Flags"] == "1"
        assert friends[0].data["TheirFlags"] == "-1"

    def test_their_flags_from_reverse_edge(self, store):
        """TheirFlags follows the reverse edge's Flags."""
        a, b = str(uuid.uuid4()), str(uuid.uuid4())
        store.store_friend(a, b, 1)
        store.store_friend(b, a, 2)

        assert store.get_friends(a)[0].data["TheirFlags"] == "2"
        assert store.get_friends(b)[0].data["TheirFlags"] == "1"

    def test_prefix_match(self, store):
        """Principals match by prefix, so suffixed identifiers are found."""
        store.store_friend("P1", "F1", 1)
        store.store_friend("P1;http://grid.example.org:8002/;Bob Smith", "F2", 1)
        store.store_friend("P2", "F3", 1)

        friends = store.get_friends("P1")

        assert sorted(f.friend for f in friends) == ["F1", "F2"]

    def test_prefix_wildcards_escaped(self, store):
        """LIKE wildcards in the identifier match literally."""
        store.store_friend("P_1", "F1", 1)
        store.store_friend("PX1", "F2", 1)

        assert [f.friend for f in store.get_friends("P_")] == ["F1"]

    def test_uuid_principal(self, store):
        """UUID principals are accepted and stringified."""
        a = uuid.uuid4()
        store.store_friend(a, "F1", 3)

        assert [f.friend for f in store.get_friends(a)] == ["F1"]

    def test_store_replaces_edge(self, store):
        """Storing the same pair again replaces its flags."""
        store.store_friend("A", "B", 1)
        store.store_friend("A", "B", 7)

        friends = store.get_friends("A")

        assert len(friends) == 1
        assert friends[0].data["Flags"] == "7"

    def test_store_record(self, store):
        """Records with extra data columns store through the generic path."""
        record = FriendsData(principal_id="A", friend="B", data={"Flags": "3", "Offered": "1"})

        assert store.store(record) is True

        fetched = store.get("PrincipalID", "A")[0]
        assert fetched.data == {"Flags": "3", "Offered": "1"}

    def test_delete_one_direction(self, store):
        """Delete removes one edge and leaves the reverse edge."""
        store.store_friend("A", "B", 1)
        store.store_friend("B", "A", 1)

        assert store.delete("A", "B") is True

        assert store.get_friends("A") == []
        remaining = store.get_friends("B")
        assert len(remaining) == 1
        assert remaining[0].data["TheirFlags"] == "-1"

    def test_delete_missing_edge(self, store):
        """Deleting a missing edge reports False."""
        assert store.delete("A", "B") is False

    def test_delete_uuid_principal(self, store):
        """A UUID principal deletes the edge stored under its text form."""
        alice = uuid.uuid4()
        store.store_friend(alice, "B", 1)

        assert store.delete(alice, "B") is True
        assert store.get_count("PrincipalID", str(alice)) == 0

    def test_delete_by_predicate(self, store):
        """Sequences of columns and values use the generic delete."""
        store.store_friend("A", "B", 1)
        store.store_friend("A", "C", 1)

        assert store.delete(["PrincipalID", "Friend"], ["A", "C"]) is True

        assert [f.friend for f in store.get_friends("A")] == ["B"]

    def test_delete_predicate_arity_mismatch(self, store):
        """A predicate with missing values deletes nothing."""
        store.store_friend("a", "b", 1)

        assert store.delete(["PrincipalID", "Friend"], ["a"]) is False
        assert store.get_count("PrincipalID", "a") == 1

    def test_plain_get_after_join(self, store):
        """The join shape does not leak into plain gets."""
        store.store_friend("A", "B", 1)
        store.get_friends("A")

        fetched = store.get("PrincipalID", "A")[0]

        assert "TheirFlags" not in fetched.data
        assert fetched.data["Flags"] == "1"

    def test_get_count(self, store):
        """Counting uses the generic predicate path."""
        store.store_friend("A", "B", 1)
        store.store_friend("A", "C", 1)

        assert store.get_count("PrincipalID", "A") == 2
