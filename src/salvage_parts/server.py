"""Salvage Parts MCP Server - Catalog and find salvaged mechanical and electronic parts."""

import json
import logging
from contextlib import asynccontextmanager
from typing import Any

from fastmcp import FastMCP
from mcp.types import ToolAnnotations
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from . import __version__
from .config import HTTP_PORT, MAX_QUERY_LENGTH
from .db import close_db, get_db
from .errors import SalvageError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app):
    """Open the catalog on startup (not on first request), close it on shutdown."""
    db = get_db()
    stats = db.stats()
    logger.info(
        f"Catalog ready: {stats['parts']} parts, {stats['locations']} locations, "
        f"{len(stats['templates'])} templates, {stats['peers']} peers"
    )

    yield

    await db.aclose()
    close_db()


# Create MCP server
mcp = FastMCP(
    name="salvage-parts",
    instructions="Catalog of salvaged parts (bearings, motors, screws, electronic components). Values are stored in base units (mm, V, A, Ω, µF, bar, rpm, W), so search ranges are in those units: 'd_int:9.5..10.5' finds a bearing entered as '1cm'. Use list_templates to see part types and their fields. search_parts asks peer catalogs only when nothing matches locally.",
    lifespan=lifespan,
)


def _parse_dict_param(value: dict[str, Any] | str | None) -> dict[str, Any] | None:
    """Parse a dict parameter that may come as a JSON string from some MCP clients."""
    if value is None:
        return None
    if isinstance(value, dict):
        return value
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
            if isinstance(parsed, dict):
                return parsed
        except json.JSONDecodeError:
            logger.debug(f"Failed to parse dict parameter as JSON: {value[:100]!r}")
    return None


def _check_query_length(**params: str) -> dict[str, str] | None:
    for key, value in params.items():
        if value and len(value) > MAX_QUERY_LENGTH:
            return {"error": f"{key} too long (max {MAX_QUERY_LENGTH} characters)"}
    return None


# Tools

@mcp.tool(
    annotations=ToolAnnotations(
        title="Search Parts",
        readOnlyHint=True,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=True,
    )
)
async def search_parts(
    type: str = "",
    name: str = "",
    prop: str = "",
    federate: bool = True,
) -> dict:
    """Search the catalog by type, name and one property criterion.

    Args:
        type: Exact part type (e.g., "bearing"). Empty = any type
        name: Case-insensitive substring of the part name
        prop: "field:value" for an exact match (e.g., "brand:SKF") or
              "field:min..max" for an inclusive range in base units (e.g., "d_int:9.5..10.5")
        federate: Ask peer catalogs when nothing matches locally (default True)

    Returns:
        Results with their location path and source ("local" or the peer name)
    """
    too_long = _check_query_length(type=type, name=name, prop=prop)
    if too_long:
        return too_long
    try:
        results = await get_db().search(type, name, prop, federate=federate)
    except SalvageError as e:
        return {"error": str(e), "hint": "Expected prop:value or prop:min..max"}
    return {"results": results, "total": len(results)}


@mcp.tool(
    annotations=ToolAnnotations(
        title="Add Part",
        readOnlyHint=False,
        destructiveHint=False,
        idempotentHint=False,
        openWorldHint=False,
    )
)
def add_part(
    type: str,
    name: str,
    props: dict[str, Any] | str | None = None,
    location: int | str | None = None,
) -> dict:
    """Add a part. Numeric properties are converted to base units before storage.

    Args:
        type: Part type; must be a template name (see list_templates)
        name: Display name (e.g., "608ZZ")
        props: Attributes, e.g. {"d_int": "8mm", "d_ext": "2.2cm", "width": 7, "brand": "SKF"}.
               Bare numbers use the field's default unit
        location: Location ID or name where the part is stored

    Returns:
        The stored part with normalized properties
    """
    parsed_props = _parse_dict_param(props)
    if props is not None and parsed_props is None:
        return {"error": "props must be an object (or a JSON object string)"}
    try:
        part = get_db().add_part(type, name, parsed_props or {}, location)
    except SalvageError as e:
        return {"error": str(e)}
    return part.to_dict()


@mcp.tool(
    annotations=ToolAnnotations(
        title="Get Part",
        readOnlyHint=True,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=False,
    )
)
def get_part(part_id: int) -> dict:
    """Get one part by ID, with its properties and location path."""
    part = get_db().get_part(part_id)
    if part is None:
        return {"error": f"part ID {part_id} not found"}
    return part.to_dict()


@mcp.tool(
    annotations=ToolAnnotations(
        title="List Templates",
        readOnlyHint=True,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=False,
    )
)
def list_templates() -> dict:
    """List part types with their required and optional fields."""
    registry = get_db().registry
    templates = []
    for name in registry.names():
        template = registry.get(name)
        templates.append({
            "name": template.name,
            "description": template.description,
            "required": template.required,
            "optional": template.optional,
        })
    return {"templates": templates, "strict": registry.strict}


@mcp.tool(
    annotations=ToolAnnotations(
        title="Template Fields",
        readOnlyHint=True,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=False,
    )
)
def template_fields(type: str) -> dict:
    """Field details (required flag, domain, default unit) of one part type."""
    template = get_db().registry.get(type)
    if template is None:
        return {"error": f"unknown type '{type}'", "hint": "Use list_templates() to see available types"}
    return template.to_dict()


@mcp.tool(
    annotations=ToolAnnotations(
        title="Location Tree",
        readOnlyHint=True,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=False,
    )
)
def location_tree() -> dict:
    """All storage locations as a tree, with paths and part counts (including sub-locations)."""
    return {"locations": get_db().location_tree()}


@mcp.tool(
    annotations=ToolAnnotations(
        title="Create Location",
        readOnlyHint=False,
        destructiveHint=False,
        idempotentHint=False,
        openWorldHint=False,
    )
)
def create_location(
    name: str,
    parent: int | str | None = None,
    loc_type: str = "BOX",
    description: str = "",
) -> dict:
    """Create a storage location.

    Args:
        name: Location name (e.g., "Drawer 3")
        parent: Parent location ID or name. Omit for a top-level location
        loc_type: ZONE, FURNITURE, SHELF or BOX (default BOX)
        description: Free text
    """
    db = get_db()
    try:
        location = db.create_location(name, parent, loc_type, description)
        return location.to_dict(path=db.full_path(location.id))
    except SalvageError as e:
        return {"error": str(e)}


@mcp.tool(
    annotations=ToolAnnotations(
        title="Move Location",
        readOnlyHint=False,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=False,
    )
)
def move_location(location: int | str, new_parent: int | str | None = None) -> dict:
    """Move a location (with everything in it) under another one. Omit new_parent to make it top-level.

    A location cannot be moved under itself or one of its own sub-locations.
    """
    db = get_db()
    try:
        moved = db.move_location(location, new_parent)
        return moved.to_dict(path=db.full_path(moved.id))
    except SalvageError as e:
        return {"error": str(e)}


@mcp.tool(
    annotations=ToolAnnotations(
        title="Delete Location",
        readOnlyHint=False,
        destructiveHint=True,
        idempotentHint=False,
        openWorldHint=False,
    )
)
def delete_location(location: int | str) -> dict:
    """Delete an empty location. Move its parts and remove its sub-locations first."""
    try:
        get_db().delete_location(location)
    except SalvageError as e:
        return {"error": str(e)}
    return {"deleted": location}


@mcp.tool(
    annotations=ToolAnnotations(
        title="Set Part Location",
        readOnlyHint=False,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=False,
    )
)
def set_part_location(part_id: int, location: int | str | None = None) -> dict:
    """Store a part in a location (ID or name). Omit location to unassign it."""
    db = get_db()
    try:
        if location is None:
            part = db.clear_part_location(part_id)
        else:
            part = db.set_part_location(part_id, location)
    except SalvageError as e:
        return {"error": str(e)}
    return part.to_dict()


# HTTP routes

def _error_response(e: SalvageError) -> JSONResponse:
    status = 404 if isinstance(e, LookupError) else 400
    return JSONResponse({"error": str(e)}, status_code=status)


def _search_params(request: Request) -> tuple[str, str, str]:
    params = request.query_params
    return params.get("type", ""), params.get("name", ""), params.get("prop", "")


def _bearer_token(header: str | None) -> str:
    header = (header or "").strip()
    if header.startswith("Bearer "):
        return header[len("Bearer "):].strip()
    return ""


async def health(request):
    return JSONResponse({
        "status": "healthy",
        "service": "salvage-parts",
        "version": __version__,
    })


async def api_search(request: Request):
    """Local search, with peer fallback."""
    type_name, name, prop = _search_params(request)
    too_long = _check_query_length(type=type_name, name=name, prop=prop)
    if too_long:
        return JSONResponse(too_long, status_code=400)
    try:
        results = await get_db().search(type_name, name, prop)
    except SalvageError as e:
        return _error_response(e)
    return JSONResponse(results)


async def federated_search(request: Request):
    """Read-only endpoint queried by peers. Local results only, never re-federates."""
    db = get_db()
    token = _bearer_token(request.headers.get("authorization"))
    if not token:
        return JSONResponse({"error": "missing bearer token"}, status_code=401)
    if not db.is_token_authorized(token):
        return JSONResponse({"error": "unauthorized"}, status_code=401)

    type_name, name, prop = _search_params(request)
    too_long = _check_query_length(type=type_name, name=name, prop=prop)
    if too_long:
        return JSONResponse(too_long, status_code=400)
    try:
        parts = db.search_local(type_name, name, prop)
    except SalvageError as e:
        return _error_response(e)
    return JSONResponse([part.to_dict() for part in parts])


async def api_template_fields(request: Request):
    type_name = request.query_params.get("type", "")
    template = get_db().registry.get(type_name)
    if template is None:
        return JSONResponse({"error": f"unknown type '{type_name}'"}, status_code=404)
    return JSONResponse(template.to_dict())


async def api_locations(request: Request):
    return JSONResponse(get_db().location_tree())


def create_app():
    """Create the ASGI application."""
    app = mcp.http_app(
        path="/mcp",
        transport="streamable-http",
        stateless_http=True,
    )

    # Plain HTTP routes (health checks, web UI and peer catalogs)
    app.routes.append(Route("/health", health))
    app.routes.append(Route("/api/search", api_search))
    app.routes.append(Route("/api/federated/search", federated_search))
    app.routes.append(Route("/api/template-fields", api_template_fields))
    app.routes.append(Route("/api/locations", api_locations))

    return app


app = create_app()


class _HealthFilterLog(logging.Filter):
    """Suppress noisy /health access logs from Docker healthchecks."""

    def filter(self, record: logging.LogRecord) -> bool:
        msg = record.getMessage()
        return "/health" not in msg


def main():
    """Run the server."""
    import uvicorn

    # Suppress /health access log spam (Docker healthchecks every 10-30s)
    logging.getLogger("uvicorn.access").addFilter(_HealthFilterLog())

    uvicorn.run(
        "salvage_parts.server:app",
        host="0.0.0.0",
        port=HTTP_PORT,
        lifespan="on",
    )


if __name__ == "__main__":
    main()
