"""Shared fixtures: in-memory templates and throwaway catalogs."""

from pathlib import Path

import pytest

from salvage_parts.db import Catalog
from salvage_parts.db.connection import open_connection
from salvage_parts.templates import TemplateRegistry, template_from_dict

TEMPLATES_DIR = Path(__file__).parent.parent / "templates"

BEARING = {
    "name": "bearing",
    "description": "Ball bearing",
    "fields": {
        "d_int": {"required": True, "domain": "dimension", "default_unit": "mm"},
        "d_ext": {"required": True, "domain": "dimension", "default_unit": "mm"},
        "width": {"required": True, "domain": "dimension", "default_unit": "mm"},
        "brand": {"description": "Manufacturer"},
    },
}

MOTOR = {
    "name": "motor",
    "fields": {
        "voltage": {"required": True, "domain": "tension"},
        "speed": {"domain": "vitesse_rot"},
    },
}


@pytest.fixture
def registry():
    return TemplateRegistry([template_from_dict(BEARING), template_from_dict(MOTOR)], strict=True)


@pytest.fixture
def catalog(tmp_path, registry):
    c = Catalog(tmp_path / "catalog.db", registry)
    yield c
    c.close()


@pytest.fixture
def conn():
    c = open_connection(":memory:")
    yield c
    c.close()
