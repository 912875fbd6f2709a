"""Command-line interface: salvage-parts add | list | search | templates | loc | peer | serve."""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from .config import CHECK_UNIT_DOMAINS, DB_PATH, STRICT_TYPES, TEMPLATES_DIR
from .db import Catalog, set_db
from .errors import SalvageError
from .models import LocationType
from .search.criteria import format_value
from .templates import TemplateRegistry

logger = logging.getLogger(__name__)


def _format_props(props: dict[str, Any], limit: int = 60) -> str:
    text = ", ".join(f"{k}={format_value(v)}" for k, v in props.items())
    return text if len(text) <= limit else text[: limit - 3] + "..."


def _cell(value: Any) -> str:
    return "" if value is None else str(value)


def _print_parts(parts: list[dict[str, Any]]) -> None:
    if not parts:
        print("No parts found.")
        return
    print(f"{'ID':>5}  {'TYPE':<12} {'NAME':<24} {'LOCATION':<28} PROPS")
    for p in parts:
        # Peer results are only loosely checked: render every cell as text
        source = _cell(p.get("source")) or "local"
        tag = "" if source == "local" else f"  [{source}]"
        props = p.get("props")
        props_text = _format_props(props) if isinstance(props, dict) else ""
        location = _cell(p.get("location")) or "-"
        print(
            f"{_cell(p.get('id')):>5}  {_cell(p.get('type')):<12} {_cell(p.get('name')):<24} "
            f"{location:<28} {props_text}{tag}"
        )
    print(f"{len(parts)} part(s)")


def render_tree(nodes: list[dict[str, Any]], prefix: str = "", root: bool = True) -> list[str]:
    """Text rendering of Catalog.location_tree(), one line per location."""
    lines = []
    for i, node in enumerate(nodes):
        last = i == len(nodes) - 1
        count = f" ({node['parts_count']} part(s))" if node["parts_count"] else ""
        label = f"{node['icon']} {node['name']} [#{node['id']}]{count}"
        if root:
            lines.append(label)
            lines.extend(render_tree(node["children"], prefix, root=False))
        else:
            lines.append(f"{prefix}{'└─ ' if last else '├─ '}{label}")
            lines.extend(render_tree(node["children"], prefix + ("   " if last else "│  "), root=False))
    return lines


def _parse_props(raw: str) -> dict[str, Any]:
    try:
        props = json.loads(raw)
    except json.JSONDecodeError as e:
        raise SalvageError(f"invalid --props JSON: {e}") from e
    if not isinstance(props, dict):
        raise SalvageError("--props must be a JSON object")
    return props


def _location_ref(value: str | None) -> str | None:
    # Digit strings stay strings: resolve_location tries them as an ID, then as a name
    value = (value or "").strip()
    return value or None


# =============================================================================
# Commands
# =============================================================================

def cmd_add(catalog: Catalog, args: argparse.Namespace) -> int:
    part = catalog.add_part(args.type, args.name, _parse_props(args.props), _location_ref(args.loc))
    where = f" in {part.location_path}" if part.location_path else ""
    print(f"Added part #{part.id} {part.name}{where}")
    print(json.dumps(part.props, ensure_ascii=False, indent=2))
    return 0


def cmd_list(catalog: Catalog, args: argparse.Namespace) -> int:
    _print_parts([p.to_dict() for p in catalog.list_parts(args.type)])
    return 0


def cmd_search(catalog: Catalog, args: argparse.Namespace) -> int:
    if args.local:
        results = [p.to_dict() for p in catalog.search_local(args.type, args.name, args.prop)]
    else:
        results = asyncio.run(_search_and_close(catalog, args.type, args.name, args.prop))
    _print_parts(results)
    return 0


async def _search_and_close(catalog: Catalog, type_name: str, name: str, prop: str) -> list[dict[str, Any]]:
    try:
        return await catalog.search(type_name, name, prop)
    finally:
        await catalog.aclose()


def cmd_templates(catalog: Catalog, args: argparse.Namespace) -> int:
    registry = catalog.registry
    if args.name:
        template = registry.get(args.name)
        if template is None:
            print(f"Error: unknown type '{args.name}'", file=sys.stderr)
            return 1
        print(f"{template.name}: {template.description}")
        for field in template.to_dict()["fields"]:
            flag = "*" if field["required"] else " "
            unit = f" [{field['unit']}]" if field["unit"] else ""
            print(f"  {flag} {field['name']}{unit}  {field['description']}")
        return 0

    if not len(registry):
        print("No templates loaded.")
        return 0
    for name in registry.names():
        template = registry.get(name)
        print(f"{name}: {template.description}")
        print(f"  required: {', '.join(template.required) or '-'}")
        print(f"  optional: {', '.join(template.optional) or '-'}")
    return 0


def cmd_loc_add(catalog: Catalog, args: argparse.Namespace) -> int:
    location = catalog.create_location(args.name, _location_ref(args.parent), args.type, args.desc)
    print(f"Created {location.loc_type.icon} {catalog.full_path(location.id)} [#{location.id}]")
    return 0


def cmd_loc_tree(catalog: Catalog, args: argparse.Namespace) -> int:
    tree = catalog.location_tree()
    if not tree:
        print("No locations.")
        return 0
    print("\n".join(render_tree(tree)))
    return 0


def cmd_loc_move(catalog: Catalog, args: argparse.Namespace) -> int:
    moved = catalog.move_location(_location_ref(args.location), _location_ref(args.to))
    print(f"Moved: {catalog.full_path(moved.id)}")
    return 0


def cmd_loc_rm(catalog: Catalog, args: argparse.Namespace) -> int:
    catalog.delete_location(_location_ref(args.location))
    print(f"Deleted location {args.location}")
    return 0


def cmd_loc_set(catalog: Catalog, args: argparse.Namespace) -> int:
    if args.clear:
        part = catalog.clear_part_location(args.part)
        print(f"Part #{part.id} {part.name} has no location")
        return 0
    if not args.loc:
        print("Error: --loc or --clear is required", file=sys.stderr)
        return 1
    part = catalog.set_part_location(args.part, _location_ref(args.loc))
    print(f"Part #{part.id} {part.name} -> {part.location_path}")
    return 0


def cmd_peer_add(catalog: Catalog, args: argparse.Namespace) -> int:
    peer = catalog.add_peer(args.name, args.url, args.token)
    print(f"Added peer #{peer.id} {peer.name} ({peer.url})")
    return 0


def cmd_peer_list(catalog: Catalog, args: argparse.Namespace) -> int:
    peers = catalog.list_peers()
    if not peers:
        print("No peers.")
        return 0
    for peer in peers:
        auth = "token set" if peer.api_key else "no token"
        print(f"#{peer.id} {peer.name}  {peer.url}  ({auth})")
    return 0


def cmd_stats(catalog: Catalog, args: argparse.Namespace) -> int:
    print(json.dumps(catalog.stats(), ensure_ascii=False, indent=2))
    return 0


def cmd_serve(catalog: Catalog, args: argparse.Namespace) -> int:
    from .server import main as serve

    set_db(catalog)
    serve()
    return 0


# =============================================================================
# Parser
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="salvage-parts", description="Catalog of salvaged parts")
    parser.add_argument("--db", type=Path, default=DB_PATH, help=f"Database path (default: {DB_PATH})")
    parser.add_argument(
        "--templates",
        type=Path,
        default=TEMPLATES_DIR,
        help=f"Templates directory (default: {TEMPLATES_DIR})",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("add", help="Add a part")
    p.add_argument("--type", required=True, help="Part type (template name, e.g. bearing)")
    p.add_argument("--name", required=True, help="Part name")
    p.add_argument("--props", default="{}", help='Properties as JSON, e.g. \'{"d_int": "1cm"}\'')
    p.add_argument("--loc", help="Location (name or ID)")
    p.set_defaults(func=cmd_add)

    p = sub.add_parser("list", help="List parts")
    p.add_argument("--type", default="", help="Only this part type")
    p.set_defaults(func=cmd_list)

    p = sub.add_parser("search", help="Search parts")
    p.add_argument("--type", default="", help="Part type")
    p.add_argument("--name", default="", help="Name substring")
    p.add_argument("--prop", default="", help="Property criterion: d_int:10 or d_int:10..10.5")
    p.add_argument("--local", action="store_true", help="Do not ask peers")
    p.set_defaults(func=cmd_search)

    p = sub.add_parser("templates", help="List part templates")
    p.add_argument("name", nargs="?", help="Show one template's fields")
    p.set_defaults(func=cmd_templates)

    p = sub.add_parser("stats", help="Catalog counts")
    p.set_defaults(func=cmd_stats)

    loc = sub.add_parser("loc", help="Manage storage locations").add_subparsers(dest="loc_command", required=True)
    p = loc.add_parser("add", help="Create a location")
    p.add_argument("name")
    p.add_argument("--in", dest="parent", help="Parent location (name or ID)")
    p.add_argument(
        "--type",
        default=LocationType.BOX.value,
        help=f"{', '.join(t.value for t in LocationType)} (default: BOX)",
    )
    p.add_argument("--desc", default="", help="Description")
    p.set_defaults(func=cmd_loc_add)

    p = loc.add_parser("tree", aliases=["list", "ls"], help="Show the location tree")
    p.set_defaults(func=cmd_loc_tree)

    p = loc.add_parser("move", aliases=["mv"], help="Move a location")
    p.add_argument("location", help="Location (name or ID)")
    p.add_argument("--to", help="New parent (name or ID); omit to move to the top level")
    p.set_defaults(func=cmd_loc_move)

    p = loc.add_parser("rm", aliases=["delete"], help="Delete an empty location")
    p.add_argument("location", help="Location (name or ID)")
    p.set_defaults(func=cmd_loc_rm)

    p = loc.add_parser("set", help="Store a part in a location")
    p.add_argument("--part", type=int, required=True, help="Part ID")
    p.add_argument("--loc", help="Location (name or ID)")
    p.add_argument("--clear", action="store_true", help="Remove the part's location")
    p.set_defaults(func=cmd_loc_set)

    peer = sub.add_parser("peer", help="Manage federated peers").add_subparsers(dest="peer_command", required=True)
    p = peer.add_parser("add", help="Register a peer catalog")
    p.add_argument("name")
    p.add_argument("url", help="Base URL, e.g. http://192.168.1.20:8080")
    p.add_argument("--token", default="", help="Bearer token shared with the peer")
    p.set_defaults(func=cmd_peer_add)

    p = peer.add_parser("list", help="List peers")
    p.set_defaults(func=cmd_peer_list)

    p = sub.add_parser("serve", help="Run the MCP/HTTP server")
    p.set_defaults(func=cmd_serve)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(message)s",  # Simple format for CLI output
    )

    try:
        registry = TemplateRegistry.load(args.templates, strict=STRICT_TYPES)
        catalog = Catalog(args.db, registry, check_domains=CHECK_UNIT_DOMAINS)
    except SalvageError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        return args.func(catalog, args)
    except SalvageError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        catalog.close()


if __name__ == "__main__":
    sys.exit(main())
