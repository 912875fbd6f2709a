"""Part templates (archetypes): which attributes a class of parts carries.

Templates are YAML files, one archetype per file:

    name: bearing
    description: Ball bearing
    fields:
      d_int: {required: true, domain: dimension, default_unit: mm}
      d_ext: {required: true, domain: dimension, default_unit: mm}
      brand: {description: Manufacturer}

The older layout with `required:` / `optional:` name lists is still read.
A registry is loaded once at startup and never modified afterwards.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

import yaml

from .errors import MissingRequiredField, TemplateLoadError, UnknownType
from .units import BASE_UNITS, UNIT_CONVERSIONS, resolve_domain, unit_domain

logger = logging.getLogger(__name__)

TEMPLATE_SUFFIXES = (".yaml", ".yml")


@dataclass(frozen=True)
class FieldDefinition:
    """One attribute of a template."""
    required: bool = False
    domain: str | None = None
    default_unit: str = ""
    description: str = ""


@dataclass(frozen=True)
class Template:
    """A named archetype with its field definitions (declaration order kept)."""
    name: str
    description: str = ""
    fields: Mapping[str, FieldDefinition] = field(default_factory=dict)

    @property
    def required(self) -> list[str]:
        return [name for name, f in self.fields.items() if f.required]

    @property
    def optional(self) -> list[str]:
        return [name for name, f in self.fields.items() if not f.required]

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "fields": [
                {
                    "name": name,
                    "required": f.required,
                    "domain": f.domain,
                    "unit": f.default_unit or None,
                    "description": f.description,
                }
                for name, f in self.fields.items()
            ],
        }


def _parse_field(template_name: str, field_name: str, raw: Any) -> FieldDefinition:
    if raw is None:
        return FieldDefinition()
    if not isinstance(raw, dict):
        raise TemplateLoadError(f"template '{template_name}': field '{field_name}' must be a mapping")

    domain = None
    if raw.get("domain"):
        domain = resolve_domain(str(raw["domain"]))
        if domain is None:
            raise TemplateLoadError(
                f"template '{template_name}': field '{field_name}' has unknown domain '{raw['domain']}'"
            )

    default_unit = str(raw.get("default_unit") or raw.get("unit") or "")
    if default_unit and default_unit not in UNIT_CONVERSIONS:
        raise TemplateLoadError(
            f"template '{template_name}': field '{field_name}' has unknown unit '{default_unit}'"
        )
    if domain and not default_unit:
        default_unit = BASE_UNITS[domain]
    if domain is None and default_unit:
        domain = unit_domain(default_unit)

    return FieldDefinition(
        required=bool(raw.get("required", False)),
        domain=domain,
        default_unit=default_unit,
        description=str(raw.get("description") or ""),
    )


def template_from_dict(data: dict[str, Any], source: str = "<memory>") -> Template:
    """Build a Template from parsed YAML.

    Raises:
        TemplateLoadError: If the document is not a valid template.
    """
    if not isinstance(data, dict) or not data.get("name"):
        raise TemplateLoadError(f"{source}: a template needs a 'name'")

    name = str(data["name"])
    fields: dict[str, FieldDefinition] = {}

    raw_fields = data.get("fields") or {}
    if not isinstance(raw_fields, dict):
        raise TemplateLoadError(f"{source}: 'fields' must be a mapping")
    for field_name, raw in raw_fields.items():
        fields[str(field_name)] = _parse_field(name, str(field_name), raw)

    # Legacy name lists only add fields not already declared above
    for list_key, required in (("required", True), ("optional", False)):
        for field_name in data.get(list_key) or []:
            field_name = str(field_name)
            if field_name not in fields:
                fields[field_name] = FieldDefinition(required=required)

    return Template(
        name=name,
        description=str(data.get("description") or ""),
        fields=MappingProxyType(fields),
    )


class TemplateRegistry:
    """Read-only set of templates, shared by reference.

    In strict mode a part type must name a template; otherwise unknown types
    are free-form and skip validation.
    """

    def __init__(self, templates: list[Template] | None = None, strict: bool = True):
        self._templates: Mapping[str, Template] = MappingProxyType(
            {t.name: t for t in templates or []}
        )
        self._strict = strict

    @classmethod
    def load(cls, directory: Path, strict: bool = True) -> "TemplateRegistry":
        """Load every template file in a directory. A missing directory is empty.

        Raises:
            TemplateLoadError: If a file cannot be read or parsed.
        """
        directory = Path(directory)
        if not directory.is_dir():
            logger.info(f"No templates directory at {directory}")
            return cls([], strict=strict)

        templates = []
        for path in sorted(directory.iterdir()):
            if not path.is_file() or path.suffix not in TEMPLATE_SUFFIXES:
                continue
            try:
                with path.open(encoding="utf-8") as f:
                    data = yaml.safe_load(f)
            except (OSError, yaml.YAMLError) as e:
                raise TemplateLoadError(f"error parsing {path.name}: {e}") from e
            templates.append(template_from_dict(data, source=path.name))

        logger.info(f"Loaded {len(templates)} templates from {directory}")
        return cls(templates, strict=strict)

    @property
    def strict(self) -> bool:
        return self._strict

    def __len__(self) -> int:
        return len(self._templates)

    def __contains__(self, name: object) -> bool:
        return name in self._templates

    def type_exists(self, type_name: str) -> bool:
        return type_name in self._templates

    def get(self, type_name: str) -> Template | None:
        return self._templates.get(type_name)

    def names(self) -> list[str]:
        return sorted(self._templates)

    def check_type(self, type_name: str) -> None:
        """Raise UnknownType if strict mode forbids this type. Empty type is always allowed."""
        if type_name and self._strict and type_name not in self._templates:
            raise UnknownType(type_name)

    def validate_props(self, type_name: str, props: Mapping[str, Any]) -> None:
        """Check an attribute bag against its template.

        Raises:
            UnknownType: Strict mode and no template for `type_name`.
            MissingRequiredField: A required field is absent.
        """
        if not type_name:
            return
        self.check_type(type_name)
        template = self._templates.get(type_name)
        if template is None:
            return  # Free-form type

        for name in template.required:
            if name not in props:
                raise MissingRequiredField(name, type_name)

    def field_units(self, type_name: str) -> dict[str, str]:
        """Default unit per field of a template (fields without one are left out)."""
        template = self._templates.get(type_name)
        if template is None:
            return {}
        return {name: f.default_unit for name, f in template.fields.items() if f.default_unit}

    def field_domain(self, type_name: str, field_name: str) -> str | None:
        template = self._templates.get(type_name)
        if template is None:
            return None
        definition = template.fields.get(field_name)
        return definition.domain if definition else None
