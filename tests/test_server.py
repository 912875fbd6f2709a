"""Tests for the HTTP routes and request helpers."""

from unittest.mock import patch

import pytest
from starlette.testclient import TestClient

from salvage_parts import server
from salvage_parts.server import _bearer_token, _parse_dict_param

from test_catalog import BEARING_PROPS


@pytest.fixture
def http(catalog):
    catalog.add_peer("bob", "http://bob.local:8080", "secret")
    catalog.add_part("bearing", "6000-2RS", BEARING_PROPS)
    with patch.object(server, "get_db", return_value=catalog):
        yield TestClient(server.app)


class TestHelpers:
    def test_parse_dict_param(self):
        assert _parse_dict_param({"a": 1}) == {"a": 1}
        assert _parse_dict_param('{"d_int": "1cm"}') == {"d_int": "1cm"}
        assert _parse_dict_param("[1, 2]") is None
        assert _parse_dict_param("not json") is None
        assert _parse_dict_param(None) is None

    @pytest.mark.parametrize("header,token", [
        ("Bearer secret", "secret"),
        ("  Bearer  secret ", "secret"),
        ("Basic abc", ""),
        ("", ""),
        (None, ""),
    ])
    def test_bearer_token(self, header, token):
        assert _bearer_token(header) == token


class TestRoutes:
    def test_health(self, http):
        response = http.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_federated_search_requires_token(self, http):
        response = http.get("/api/federated/search", params={"type": "bearing"})
        assert response.status_code == 401

    def test_federated_search_rejects_unknown_token(self, http):
        response = http.get(
            "/api/federated/search",
            params={"type": "bearing"},
            headers={"Authorization": "Bearer nope"},
        )
        assert response.status_code == 401

    def test_federated_search(self, http):
        response = http.get(
            "/api/federated/search",
            params={"type": "bearing", "prop": "d_int:9.5..10.5"},
            headers={"Authorization": "Bearer secret"},
        )
        assert response.status_code == 200
        results = response.json()
        assert [r["name"] for r in results] == ["6000-2RS"]
        assert results[0]["source"] == "local"

    def test_federated_search_bad_criteria(self, http):
        response = http.get(
            "/api/federated/search",
            params={"prop": "d_int"},
            headers={"Authorization": "Bearer secret"},
        )
        assert response.status_code == 400
        assert "error" in response.json()

    def test_search(self, http):
        response = http.get("/api/search", params={"name": "6000"})
        assert response.status_code == 200
        assert response.json()[0]["props"]["d_ext"] == 26.0

    def test_search_query_too_long(self, http):
        response = http.get("/api/search", params={"name": "x" * 501})
        assert response.status_code == 400

    def test_template_fields(self, http):
        response = http.get("/api/template-fields", params={"type": "bearing"})
        assert response.status_code == 200
        assert [f["name"] for f in response.json()["fields"]][:3] == ["d_int", "d_ext", "width"]

    def test_template_fields_unknown(self, http):
        response = http.get("/api/template-fields", params={"type": "gearbox"})
        assert response.status_code == 404

    def test_locations(self, http, catalog):
        catalog.create_location("Workshop", loc_type="ZONE")
        response = http.get("/api/locations")
        assert response.status_code == 200
        assert response.json()[0]["name"] == "Workshop"
