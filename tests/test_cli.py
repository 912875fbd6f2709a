"""Tests for the command-line interface."""

import json
from unittest.mock import AsyncMock, patch

import pytest

from salvage_parts.cli import main, render_tree

from conftest import TEMPLATES_DIR


@pytest.fixture
def run(tmp_path):
    db_path = tmp_path / "cli.db"

    def _run(*args: str) -> int:
        return main(["--db", str(db_path), "--templates", str(TEMPLATES_DIR), *args])

    return _run


class TestCommands:
    def test_add_and_search(self, run, capsys):
        props = json.dumps({"d_int": "1cm", "d_ext": "26mm", "width": 8, "brand": "SKF"})
        assert run("add", "--type", "bearing", "--name", "6000-2RS", "--props", props) == 0
        out = capsys.readouterr().out
        assert "Added part #1 6000-2RS" in out
        assert '"d_int": 10.0' in out

        assert run("search", "--type", "bearing", "--prop", "d_int:9.5..10.5") == 0
        out = capsys.readouterr().out
        assert "6000-2RS" in out
        assert "1 part(s)" in out

        assert run("search", "--prop", "d_int:11..12", "--local") == 0
        assert "No parts found." in capsys.readouterr().out

    def test_unknown_type_exits_1(self, run, capsys):
        assert run("add", "--type", "gearbox", "--name", "Worm") == 1
        assert "unknown type 'gearbox'" in capsys.readouterr().err

    def test_invalid_props_json(self, run, capsys):
        assert run("add", "--type", "bearing", "--name", "608", "--props", "{oops") == 1
        assert "invalid --props JSON" in capsys.readouterr().err

    def test_bad_criteria_exits_1(self, run, capsys):
        assert run("search", "--prop", "wrongformat") == 1
        assert "invalid format" in capsys.readouterr().err

    def test_templates(self, run, capsys):
        assert run("templates") == 0
        out = capsys.readouterr().out
        assert "bearing:" in out
        assert "required: d_int, d_ext, width" in out

        assert run("templates", "bearing") == 0
        assert "* d_int [mm]" in capsys.readouterr().out

    def test_locations(self, run, capsys):
        assert run("loc", "add", "Workshop", "--type", "ZONE") == 0
        assert run("loc", "add", "Cabinet", "--in", "Workshop", "--type", "FURNITURE") == 0
        assert run("loc", "add", "Drawer", "--in", "Cabinet") == 0
        assert "Workshop > Cabinet > Drawer" in capsys.readouterr().out

        assert run("loc", "move", "Workshop", "--to", "Drawer") == 1
        assert "cycle" in capsys.readouterr().err

        props = json.dumps({"d_int": 8, "d_ext": 22, "width": 7})
        assert run("add", "--type", "bearing", "--name", "608", "--props", props, "--loc", "Drawer") == 0
        assert run("loc", "rm", "Drawer") == 1
        assert "part(s) are stored in it" in capsys.readouterr().err

        assert run("loc", "set", "--part", "1", "--loc", "Cabinet") == 0
        assert run("loc", "rm", "Drawer") == 0
        capsys.readouterr()

        assert run("loc", "tree") == 0
        out = capsys.readouterr().out
        assert "🏭 Workshop [#1] (1 part(s))" in out
        assert "└─ 🗄️ Cabinet [#2] (1 part(s))" in out

    def test_numeric_location_name(self, run, capsys):
        assert run("loc", "add", "42") == 0
        props = json.dumps({"d_int": 8, "d_ext": 22, "width": 7})
        assert run("add", "--type", "bearing", "--name", "608", "--props", props, "--loc", "42") == 0
        assert "Added part #1 608 in 42" in capsys.readouterr().out

        assert run("loc", "add", "Drawer", "--in", "42") == 0
        assert "42 > Drawer" in capsys.readouterr().out

    def test_peers(self, run, capsys):
        assert run("peer", "add", "bob", "http://bob.local:8080", "--token", "secret") == 0
        assert run("peer", "list") == 0
        out = capsys.readouterr().out
        assert "bob" in out
        assert "token set" in out

    def test_search_tolerates_odd_peer_results(self, run, capsys):
        assert run("peer", "add", "bob", "http://bob.local:8080") == 0
        capsys.readouterr()
        odd = [
            {"id": None, "name": "x", "props": {}, "source": "bob"},
            {"id": 7, "name": None, "props": "not an object", "location": None, "source": "bob"},
        ]
        with patch("salvage_parts.search.federation.PeerClient.search_peer", new_callable=AsyncMock, return_value=odd):
            assert run("search", "--name", "zzz") == 0
        out = capsys.readouterr().out
        assert "[bob]" in out
        assert "2 part(s)" in out

    def test_stats(self, run, capsys):
        assert run("stats") == 0
        stats = json.loads(capsys.readouterr().out)
        assert stats["parts"] == 0
        assert "bearing" in stats["templates"]


class TestRenderTree:
    def test_nested(self):
        tree = [{
            "id": 1, "name": "Workshop", "icon": "🏭", "parts_count": 2,
            "children": [
                {"id": 2, "name": "Bench", "icon": "🗄️", "parts_count": 0, "children": []},
                {"id": 3, "name": "Shelf", "icon": "📚", "parts_count": 2, "children": [
                    {"id": 4, "name": "Box", "icon": "📦", "parts_count": 2, "children": []},
                ]},
            ],
        }]
        assert render_tree(tree) == [
            "🏭 Workshop [#1] (2 part(s))",
            "├─ 🗄️ Bench [#2]",
            "└─ 📚 Shelf [#3] (2 part(s))",
            "   └─ 📦 Box [#4] (2 part(s))",
        ]
