"""Tests for the location hierarchy."""

import pytest

from salvage_parts.db import locations as loc
from salvage_parts.db.parts import get_part, insert_part
from salvage_parts.errors import (
    CycleDetected,
    InvalidInputFormat,
    LocationHasChildren,
    LocationNotEmpty,
    LocationNotFound,
    ParentNotFound,
    PartNotFound,
)
from salvage_parts.models import LocationType


@pytest.fixture
def chain(conn):
    """Workshop > Cabinet > Drawer."""
    a = loc.create_location(conn, "Workshop", loc_type="ZONE")
    b = loc.create_location(conn, "Cabinet", a.id, "FURNITURE")
    c = loc.create_location(conn, "Drawer", b.id)
    return a, b, c


class TestCreate:
    def test_root(self, conn):
        location = loc.create_location(conn, "Garage", description="Back wall")
        assert location.parent_id is None
        assert location.loc_type == LocationType.BOX
        assert location.description == "Back wall"
        assert location.created_at

    def test_type_case_insensitive(self, conn):
        assert loc.create_location(conn, "Top", loc_type="shelf").loc_type == LocationType.SHELF

    def test_unknown_type(self, conn):
        with pytest.raises(InvalidInputFormat, match="drawer"):
            loc.create_location(conn, "X", loc_type="drawer")

    def test_empty_name(self, conn):
        with pytest.raises(InvalidInputFormat):
            loc.create_location(conn, "   ")

    def test_unknown_parent(self, conn):
        with pytest.raises(ParentNotFound) as exc_info:
            loc.create_location(conn, "Orphan", parent_id=99)
        assert "parent location ID 99 not found" in str(exc_info.value)

    def test_icon(self):
        assert LocationType.ZONE.icon == "🏭"
        assert LocationType.BOX.icon == "📦"


class TestLookup:
    def test_resolve_by_id_and_name(self, conn, chain):
        a, b, c = chain
        assert loc.resolve_location(conn, b.id).name == "Cabinet"
        assert loc.resolve_location(conn, str(c.id)).name == "Drawer"
        assert loc.resolve_location(conn, "cabinet").id == b.id

    def test_numeric_name_falls_back_to_name(self, conn):
        box = loc.create_location(conn, "42")
        assert loc.resolve_location(conn, "42").id == box.id

    def test_resolve_unknown(self, conn):
        with pytest.raises(LocationNotFound, match="'Attic'"):
            loc.resolve_location(conn, "Attic")
        with pytest.raises(LocationNotFound, match="ID 7"):
            loc.resolve_location(conn, 7)

    def test_roots_and_children(self, conn, chain):
        a, b, c = chain
        loc.create_location(conn, "Bench", a.id)
        assert [x.name for x in loc.list_roots(conn)] == ["Workshop"]
        assert [x.name for x in loc.list_children(conn, a.id)] == ["Bench", "Cabinet"]
        assert len(loc.list_locations(conn)) == 4


class TestFullPath:
    def test_breadcrumb(self, conn, chain):
        a, b, c = chain
        assert loc.full_path(conn, c.id) == "Workshop > Cabinet > Drawer"
        assert loc.full_path(conn, a.id) == "Workshop"

    def test_unknown(self, conn):
        with pytest.raises(LocationNotFound):
            loc.full_path(conn, 123)

    def test_paths_for(self, conn, chain):
        a, b, c = chain
        paths = loc.paths_for(conn, [c.id, None, 999, a.id, c.id])
        assert paths == {c.id: "Workshop > Cabinet > Drawer", a.id: "Workshop"}

    def test_corrupt_cycle_terminates(self, conn, chain):
        a, b, c = chain
        # Only possible by editing the table directly
        conn.execute("UPDATE locations SET parent_id = ? WHERE id = ?", [c.id, a.id])
        assert loc.full_path(conn, c.id) == "Workshop > Cabinet > Drawer"


class TestMove:
    def test_into_descendant(self, conn, chain):
        a, b, c = chain
        with pytest.raises(CycleDetected):
            loc.move_location(conn, a.id, c.id)

    def test_into_itself(self, conn, chain):
        a, b, c = chain
        with pytest.raises(CycleDetected):
            loc.move_location(conn, b.id, b.id)

    def test_to_root(self, conn, chain):
        a, b, c = chain
        loc.move_location(conn, c.id, None)
        assert loc.get_location(conn, c.id).parent_id is None
        assert loc.full_path(conn, c.id) == "Drawer"

    def test_to_sibling_branch(self, conn, chain):
        a, b, c = chain
        bench = loc.create_location(conn, "Bench", a.id)
        loc.move_location(conn, c.id, bench.id)
        assert loc.full_path(conn, c.id) == "Workshop > Bench > Drawer"

    def test_unknown_location(self, conn):
        with pytest.raises(LocationNotFound):
            loc.move_location(conn, 5, None)

    def test_unknown_parent(self, conn, chain):
        a, b, c = chain
        with pytest.raises(ParentNotFound):
            loc.move_location(conn, c.id, 500)

    def test_rejected_move_changes_nothing(self, conn, chain):
        a, b, c = chain
        with pytest.raises(CycleDetected):
            loc.move_location(conn, a.id, c.id)
        assert loc.get_location(conn, a.id).parent_id is None

    def test_terminates_over_corrupt_cycle(self, conn, chain):
        a, b, c = chain
        # Workshop > Cabinet > Drawer > Workshop, only possible by editing the table directly
        conn.execute("UPDATE locations SET parent_id = ? WHERE id = ?", [c.id, a.id])
        shelf = loc.create_location(conn, "Shelf")

        loc.move_location(conn, shelf.id, c.id)
        assert loc.get_location(conn, shelf.id).parent_id == c.id

        with pytest.raises(CycleDetected):
            loc.move_location(conn, a.id, c.id)


class TestDelete:
    def test_occupied(self, conn, chain):
        a, b, c = chain
        part_id = insert_part(conn, "bearing", "608ZZ", {"d_int": 8.0}, c.id)

        with pytest.raises(LocationNotEmpty) as exc_info:
            loc.delete_location(conn, c.id)
        assert exc_info.value.part_count == 1

        loc.set_part_location(conn, part_id, b.id)
        loc.delete_location(conn, c.id)
        assert loc.get_location(conn, c.id) is None

    def test_parts_checked_before_children(self, conn, chain):
        a, b, c = chain
        insert_part(conn, "", "Spring", {}, b.id)
        with pytest.raises(LocationNotEmpty):
            loc.delete_location(conn, b.id)

    def test_has_children(self, conn, chain):
        a, b, c = chain
        with pytest.raises(LocationHasChildren) as exc_info:
            loc.delete_location(conn, b.id)
        assert exc_info.value.child_count == 1

    def test_unknown(self, conn):
        with pytest.raises(LocationNotFound):
            loc.delete_location(conn, 77)


class TestOccupancy:
    def test_parts_count_includes_descendants(self, conn, chain):
        a, b, c = chain
        insert_part(conn, "", "Spring", {}, a.id)
        insert_part(conn, "", "Nut", {}, c.id)
        insert_part(conn, "", "Bolt", {}, c.id)
        insert_part(conn, "", "Loose", {})

        assert loc.parts_count(conn, a.id) == 3
        assert loc.parts_count(conn, b.id) == 2
        assert loc.parts_count(conn, c.id) == 2
        assert loc.count_direct_parts(conn, a.id) == 1

    def test_parts_count_survives_cycle(self, conn, chain):
        a, b, c = chain
        insert_part(conn, "", "Nut", {}, c.id)
        conn.execute("UPDATE locations SET parent_id = ? WHERE id = ?", [c.id, a.id])
        assert loc.parts_count(conn, a.id) == 1

    def test_parts_count_unknown(self, conn):
        with pytest.raises(LocationNotFound):
            loc.parts_count(conn, 1)

    def test_tree(self, conn, chain):
        a, b, c = chain
        loc.create_location(conn, "Attic")
        insert_part(conn, "", "Nut", {}, c.id)

        tree = loc.location_tree(conn)
        assert [node["name"] for node in tree] == ["Attic", "Workshop"]

        workshop = tree[1]
        assert workshop["icon"] == "🏭"
        assert workshop["parts_count"] == 1
        assert workshop["direct_parts"] == 0
        drawer = workshop["children"][0]["children"][0]
        assert drawer["path"] == "Workshop > Cabinet > Drawer"
        assert drawer["parts_count"] == 1
        assert drawer["children"] == []


class TestPartLocation:
    def test_set_and_clear(self, conn, chain):
        a, b, c = chain
        part_id = insert_part(conn, "", "Nut", {})
        loc.set_part_location(conn, part_id, c.id)
        assert get_part(conn, part_id).location_id == c.id
        loc.clear_part_location(conn, part_id)
        assert get_part(conn, part_id).location_id is None

    def test_unknown_part(self, conn, chain):
        a, b, c = chain
        with pytest.raises(PartNotFound):
            loc.set_part_location(conn, 404, c.id)
        with pytest.raises(PartNotFound):
            loc.clear_part_location(conn, 404)

    def test_unknown_location(self, conn):
        part_id = insert_part(conn, "", "Nut", {})
        with pytest.raises(LocationNotFound):
            loc.set_part_location(conn, part_id, 404)
