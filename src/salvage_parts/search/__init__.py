"""Search package: property criteria, local search and peer federation."""

from .criteria import SearchCriteria, criteria_from_prop, format_value, parse_search_criteria, to_float
from .engine import SearchEngine, escape_like, json_path
from .federation import PeerClient, PeerError, fan_out
from .result import row_to_part, tag_source

__all__ = [
    "SearchCriteria",
    "criteria_from_prop",
    "format_value",
    "parse_search_criteria",
    "to_float",
    "SearchEngine",
    "escape_like",
    "json_path",
    "PeerClient",
    "PeerError",
    "fan_out",
    "row_to_part",
    "tag_source",
]
