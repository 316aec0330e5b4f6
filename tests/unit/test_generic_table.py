"""
Unit tests for the generic table handler.

Tests cover:
- Store/get round trip with typed fields and the attribute map
- Replace semantics and idempotence
- Null field rejection
- Predicate arity handling for get, delete and count
- Raw where clauses
"""

import uuid
from dataclasses import dataclass

import pytest

from gridstore.data.generic_table import GenericTableHandler, build_predicate
from gridstore.data.migrations import Migration, Migrator
from gridstore.data.records import FieldKind, attributes, column
from gridstore.errors import FieldCoercionError, NullFieldError, RecordDefinitionError


@dataclass
class RegionData:
    region_id: uuid.UUID = column("uuid", FieldKind.UUID)
    region_name: str = column("regionName")
    loc_x: int = column("locX", FieldKind.INT32)
    flags: int = column("flags", FieldKind.UINT32)
    online: bool = column("online", FieldKind.BOOL)
    size_x: int = column("sizeX", FieldKind.INT64)
    data: dict[str, str] = attributes()


REGIONS_TABLE = """
    CREATE TABLE regions (
        uuid TEXT NOT NULL PRIMARY KEY,
        regionName TEXT,
        locX INTEGER,
        flags INTEGER,
        online INTEGER,
        sizeX INTEGER,
        owner_uuid TEXT,
        access INTEGER
    )
"""


@pytest.fixture
def migrator():
    """Migrator with a regions store."""
    m = Migrator()
    m.register("RegionStore", Migration(1, (REGIONS_TABLE,)))
    return m


@pytest.fixture
def handler(engine, migrator):
    """Handler over the regions table."""
    return GenericTableHandler(engine, "regions", RegionData, "RegionStore", migrator.update)


def make_region(name="Test Region", **data):
    return RegionData(
        region_id=uuid.uuid4(),
        region_name=name,
        loc_x=1000,
        flags=4,
        online=True,
        size_x=256,
        data=dict(data),
    )


class TestBuildPredicate:
    """Tests for build_predicate."""

    def test_single_field(self):
        """A string field takes a single key."""
        assert build_predicate("uuid", "x") == ('"uuid" = ?', ["x"])

    def test_multiple_fields(self):
        """Fields are AND-joined in order."""
        where, params = build_predicate(["a", "b"], ["1", "2"])

        assert where == '"a" = ? AND "b" = ?'
        assert params == ["1", "2"]

    def test_uuid_keys_bound_as_text(self):
        """UUID keys are converted for binding."""
        value = uuid.uuid4()

        assert build_predicate("uuid", value)[1] == [str(value)]

    def test_mismatch_returns_none(self):
        """Arity mismatches and empty predicates are malformed."""
        assert build_predicate(["a", "b"], ["x"]) is None
        assert build_predicate(["a"], "x") is None
        assert build_predicate([], []) is None


class TestGenericTableHandler:
    """Tests for GenericTableHandler."""

    def test_migration_called_once(self, engine):
        """The migrator runs once at construction with the store name and realm."""
        calls = []

        def spy(conn, store_name, tables):
            calls.append((store_name, tables))
            conn.execute(REGIONS_TABLE)

        GenericTableHandler(engine, "regions", RegionData, "RegionStore", spy)

        assert calls == [("RegionStore", {"realm": "regions"})]

    def test_no_store_name_skips_migration(self, engine):
        """An empty store name skips the migrator."""
        calls = []
        GenericTableHandler(engine, "regions", RegionData, "", lambda c, s, t: calls.append(s))

        assert calls == []

    def test_bad_record_type_rejected_before_migration(self, engine):
        """A record type that is not a dataclass fails before any schema work."""
        calls = []

        class NotARecord:
            pass

        with pytest.raises(RecordDefinitionError):
            GenericTableHandler(
                engine, "regions", NotARecord, "RegionStore", lambda c, s, t: calls.append(s)
            )

        assert calls == []
        with engine.connection() as conn:
            assert conn.execute("SELECT name FROM sqlite_master").fetchall() == []

    def test_round_trip(self, handler):
        """Store then get returns an equal record."""
        region = make_region(owner_uuid=str(uuid.uuid4()), access="13")

        assert handler.store(region) is True

        fetched = handler.get("uuid", region.region_id)
        assert fetched == [region]

    def test_typed_fields_coerced(self, handler):
        """Fields come back with their declared types."""
        region = make_region(owner_uuid="", access="0")
        handler.store(region)

        fetched = handler.get("uuid", str(region.region_id))[0]

        assert isinstance(fetched.region_id, uuid.UUID)
        assert fetched.online is True
        assert fetched.loc_x == 1000
        assert fetched.size_x == 256

    def test_unknown_columns_go_to_data(self, handler):
        """Every unmapped column lands in the attribute map."""
        region = make_region(access="21")
        handler.store(region)

        fetched = handler.get("uuid", region.region_id)[0]

        assert handler.unmapped_columns == ("owner_uuid", "access")
        assert fetched.data == {"owner_uuid": "", "access": "21"}

    def test_unmapped_columns_latched_on_first_query(self, handler):
        """The column cache is empty until the first query."""
        assert handler.unmapped_columns is None

        handler.get("uuid", "missing")

        assert handler.unmapped_columns == ("owner_uuid", "access")

    def test_null_columns_keep_defaults(self, handler, engine):
        """Null mapped columns are skipped, null extra columns read as ''."""
        region_id = uuid.uuid4()
        engine.execute("INSERT INTO regions (uuid) VALUES (?)", (str(region_id),))

        fetched = handler.get("uuid", region_id)[0]

        assert fetched.region_name == ""
        assert fetched.loc_x == 0
        assert fetched.online is False
        assert fetched.data == {"owner_uuid": "", "access": ""}

    def test_store_twice_is_idempotent(self, handler):
        """Replace semantics leave one row per key."""
        region = make_region(owner_uuid="", access="1")

        assert handler.store(region) is True
        assert handler.store(region) is True

        assert handler.get_count("uuid", region.region_id) == 1
        assert handler.get("uuid", region.region_id) == [region]

    def test_store_overwrites_row(self, handler):
        """Storing a changed record replaces the stored values."""
        region = make_region(access="1")
        handler.store(region)

        region.region_name = "Renamed"
        region.online = False
        handler.store(region)

        fetched = handler.get("uuid", region.region_id)[0]
        assert fetched.region_name == "Renamed"
        assert fetched.online is False

    def test_store_null_field_raises(self, handler):
        """A None mapped field aborts the store before writing."""
        region = make_region()
        region.region_name = None

        with pytest.raises(NullFieldError, match="regionName") as exc_info:
            handler.store(region)

        assert exc_info.value.field_name == "regionName"
        assert handler.get_count_where("1 = 1") == 0

    def test_get_multiple_fields(self, handler):
        """Multi-field get ANDs the predicate."""
        a = make_region("Alpha")
        b = make_region("Beta")
        handler.store(a)
        handler.store(b)

        result = handler.get(["regionName", "locX"], ["Alpha", "1000"])

        assert [r.region_id for r in result] == [a.region_id]

    def test_get_arity_mismatch_returns_empty(self, handler):
        """Mismatched predicate lengths return nothing."""
        handler.store(make_region())

        assert handler.get(["regionName", "locX"], ["x"]) == []

    def test_get_where(self, handler):
        """Raw where clauses are used verbatim."""
        handler.store(make_region("Alpha"))
        handler.store(make_region("Beta"))

        result = handler.get_where("regionName LIKE 'A%'")

        assert [r.region_name for r in result] == ["Alpha"]

    def test_get_where_with_params(self, handler):
        """Raw where clauses can still bind values."""
        handler.store(make_region("Alpha"))

        assert len(handler.get_where("regionName = ?", ["Alpha"])) == 1

    def test_delete(self, handler):
        """Delete removes matching rows and reports it."""
        region = make_region()
        handler.store(region)

        assert handler.delete("uuid", region.region_id) is True
        assert handler.get("uuid", region.region_id) == []
        assert handler.delete("uuid", region.region_id) is False

    def test_delete_arity_mismatch(self, handler):
        """Mismatched delete returns False and deletes nothing."""
        handler.store(make_region())

        assert handler.delete(["a", "b"], ["x"]) is False
        assert handler.get_count_where("1 = 1") == 1

    def test_delete_multiple_fields(self, handler):
        """Multi-field delete only removes rows matching every field."""
        a = make_region("Alpha")
        b = make_region("Beta")
        handler.store(a)
        handler.store(b)

        assert handler.delete(["regionName", "uuid"], ["Alpha", str(b.region_id)]) is False
        assert handler.delete(["regionName", "uuid"], ["Alpha", str(a.region_id)]) is True
        assert handler.get_count_where("1 = 1") == 1

    def test_get_count(self, handler):
        """Counts honour the predicate."""
        handler.store(make_region("Alpha"))
        handler.store(make_region("Alpha"))
        handler.store(make_region("Beta"))

        assert handler.get_count("regionName", "Alpha") == 2
        assert handler.get_count(["regionName", "online"], ["Beta", "1"]) == 1
        assert handler.get_count(["regionName"], []) == 0
        assert handler.get_count_where("locX = ?", [1000]) == 3

    def test_int32_overflow_raises(self, handler, engine):
        """Out-of-range INT32 values are reported, not truncated."""
        engine.execute(
            "INSERT INTO regions (uuid, locX) VALUES (?, ?)", (str(uuid.uuid4()), 2**40)
        )

        with pytest.raises(FieldCoercionError, match="locX"):
            handler.get_where("1 = 1")

    def test_blob_identifier(self, handler, engine):
        """16-byte blobs read as UUIDs."""
        region_id = uuid.uuid4()
        engine.execute(
            "INSERT INTO regions (uuid, regionName) VALUES (?, ?)", (region_id.bytes, "Blob")
        )

        fetched = handler.get("regionName", "Blob")[0]

        assert fetched.region_id == region_id
