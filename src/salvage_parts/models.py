"""Records stored in the catalog."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .units import PropValue


class LocationType(str, Enum):
    """Kind of physical container."""
    ZONE = "ZONE"  # Workshop, room
    FURNITURE = "FURNITURE"  # Cabinet, workbench
    SHELF = "SHELF"
    BOX = "BOX"  # Box, bin, drawer

    @property
    def icon(self) -> str:
        return LOCATION_ICONS[self]


LOCATION_ICONS = {
    LocationType.ZONE: "🏭",
    LocationType.FURNITURE: "🗄️",
    LocationType.SHELF: "📚",
    LocationType.BOX: "📦",
}


@dataclass
class Part:
    """A catalogued part. `props` values are already in base units."""
    id: int
    type: str
    name: str
    props: dict[str, PropValue] = field(default_factory=dict)
    location_id: int | None = None
    location_path: str = ""
    source: str = "local"

    def to_dict(self) -> dict[str, Any]:
        """Result format shared by local and federated search."""
        result: dict[str, Any] = {
            "id": self.id,
            "type": self.type,
            "name": self.name,
            "props": self.props,
        }
        if self.location_path:
            result["location"] = self.location_path
        if self.source:
            result["source"] = self.source
        return result


@dataclass
class Location:
    id: int
    name: str
    parent_id: int | None
    loc_type: LocationType
    description: str = ""
    created_at: str = ""

    def to_dict(self, path: str = "") -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "parent_id": self.parent_id,
            "loc_type": self.loc_type.value,
            "description": self.description,
            "path": path,
        }


@dataclass(frozen=True)
class Peer:
    """Another catalog instance queried when a local search finds nothing."""
    id: int
    name: str
    url: str
    api_key: str = ""
