"""Unit normalization for part attributes.

Every numeric attribute is stored in the base unit of its physical domain so
that range searches compare like with like, whatever unit was typed:

- Dimension: millimetres (mm)
- Voltage: volts (V)
- Current: amps (A)
- Resistance: ohms (Ω)
- Capacitance: microfarads (µF)
- Pressure: bar
- Rotational speed: revolutions per minute (rpm)
- Power: watts (W)

The alias table and the field-name keywords below are read by template files
and saved search expressions, so existing entries must never change meaning.
"""

import math
import re
from dataclasses import dataclass
from typing import Any

from .errors import InvalidValueFormat, UnitDomainMismatch, UnknownUnit

# Attribute values as stored in the JSON bag
PropValue = float | int | str | bool


# =============================================================================
# DOMAINS
# =============================================================================

DIMENSION = "dimension"
VOLTAGE = "voltage"
CURRENT = "current"
RESISTANCE = "resistance"
CAPACITANCE = "capacitance"
PRESSURE = "pressure"
ROTATIONAL_SPEED = "rotational_speed"
POWER = "power"

BASE_UNITS: dict[str, str] = {
    DIMENSION: "mm",
    VOLTAGE: "V",
    CURRENT: "A",
    RESISTANCE: "Ω",
    CAPACITANCE: "µF",
    PRESSURE: "bar",
    ROTATIONAL_SPEED: "rpm",
    POWER: "W",
}

# Older template files name domains in French
DOMAIN_ALIASES: dict[str, str] = {
    "tension": VOLTAGE,
    "courant": CURRENT,
    "capacite": CAPACITANCE,
    "pression": PRESSURE,
    "vitesse_rot": ROTATIONAL_SPEED,
    "puissance": POWER,
}


def resolve_domain(name: str | None) -> str | None:
    """Map a domain name (English or legacy French) to its canonical name, or None."""
    if not name:
        return None
    key = name.strip().lower()
    if key in BASE_UNITS:
        return key
    return DOMAIN_ALIASES.get(key)


# =============================================================================
# UNIT ALIASES
# =============================================================================
# Format: alias -> (domain, factor to base unit). Lookup is case-sensitive
# ("m" is metres, "M" is not a unit).

UNIT_CONVERSIONS: dict[str, tuple[str, float]] = {
    # Dimension (base: mm)
    "mm": (DIMENSION, 1),
    "cm": (DIMENSION, 10),
    "m": (DIMENSION, 1000),
    "in": (DIMENSION, 25.4),
    "inch": (DIMENSION, 25.4),
    "pouce": (DIMENSION, 25.4),
    '"': (DIMENSION, 25.4),

    # Voltage (base: V)
    "v": (VOLTAGE, 1),
    "V": (VOLTAGE, 1),
    "volt": (VOLTAGE, 1),
    "volts": (VOLTAGE, 1),
    "mV": (VOLTAGE, 0.001),
    "mv": (VOLTAGE, 0.001),
    "kV": (VOLTAGE, 1000),
    "kv": (VOLTAGE, 1000),

    # Current (base: A)
    "a": (CURRENT, 1),
    "A": (CURRENT, 1),
    "amp": (CURRENT, 1),
    "ampere": (CURRENT, 1),
    "mA": (CURRENT, 0.001),
    "ma": (CURRENT, 0.001),

    # Resistance (base: ohm)
    "ohm": (RESISTANCE, 1),
    "Ohm": (RESISTANCE, 1),
    "Ω": (RESISTANCE, 1),
    "kohm": (RESISTANCE, 1000),
    "kOhm": (RESISTANCE, 1000),
    "kΩ": (RESISTANCE, 1000),
    "k": (RESISTANCE, 1000),  # Ambiguous, but what electronics people write

    # Capacitance (base: uF)
    "F": (CAPACITANCE, 1_000_000),
    "mF": (CAPACITANCE, 1000),
    "uF": (CAPACITANCE, 1),
    "µF": (CAPACITANCE, 1),  # U+00B5 micro sign
    "μF": (CAPACITANCE, 1),  # U+03BC greek mu
    "nF": (CAPACITANCE, 0.001),
    "pF": (CAPACITANCE, 0.000001),

    # Pressure (base: bar)
    "bar": (PRESSURE, 1),
    "psi": (PRESSURE, 0.0689476),
    "Pa": (PRESSURE, 0.00001),
    "kPa": (PRESSURE, 0.01),
    "MPa": (PRESSURE, 10),

    # Rotational speed (base: rpm)
    "rpm": (ROTATIONAL_SPEED, 1),
    "tr/min": (ROTATIONAL_SPEED, 1),
    "tpm": (ROTATIONAL_SPEED, 1),

    # Power (base: W)
    "w": (POWER, 1),
    "W": (POWER, 1),
    "watt": (POWER, 1),
    "mW": (POWER, 0.001),
    "kW": (POWER, 1000),
}

# Units offered back to the user when they type something unknown
SUGGESTED_UNITS: dict[str, list[str]] = {
    DIMENSION: ["mm", "cm", "m", "in", "inch", "pouce"],
    VOLTAGE: ["V", "mV", "kV", "volt"],
    CURRENT: ["A", "mA", "amp"],
    RESISTANCE: ["Ohm", "kOhm", "Ω"],
    CAPACITANCE: ["uF", "µF", "nF", "pF", "mF", "F"],
    PRESSURE: ["bar", "psi", "Pa", "kPa"],
    ROTATIONAL_SPEED: ["rpm", "tr/min", "tpm"],
    POWER: ["W", "kW", "mW", "watt"],
}

# Checked in order: the first domain with a matching substring wins
_SUGGESTION_HINTS: list[tuple[str, tuple[str, ...]]] = [
    (DIMENSION, ("m", "inch", "pouce")),
    (VOLTAGE, ("v", "volt")),
    (CURRENT, ("a", "amp")),
    (RESISTANCE, ("ohm", "ω")),
    (CAPACITANCE, ("f",)),
    (PRESSURE, ("bar", "psi", "pa")),
    (ROTATIONAL_SPEED, ("rpm", "tr", "min")),
    (POWER, ("w", "watt")),
]


# =============================================================================
# FIELD NAME CONVENTIONS
# =============================================================================

# Field name substrings implying a domain, checked in this order
FIELD_KEYWORDS: list[tuple[str, tuple[str, ...]]] = [
    (DIMENSION, (
        "d_int", "d_ext", "diametre", "diameter", "largeur", "longueur",
        "length", "width", "height", "hauteur", "epaisseur", "thickness",
        "axe", "rayon", "radius", "taille", "size", "pas",
    )),
    (VOLTAGE, ("volt", "volts", "tension", "voltage")),
    (CURRENT, ("amp", "ampere", "courant", "current", "intensite")),
    (RESISTANCE, ("ohm", "resistance", "impedance")),
    (CAPACITANCE, ("capacite", "capacity", "farad", "capa")),
    (PRESSURE, ("pression", "pressure")),
    (ROTATIONAL_SPEED, ("rpm", "vitesse", "speed", "rotation", "tr/min", "tours")),
    (POWER, ("watt", "watts", "puissance", "power")),
]

# Always free text, even when the value happens to look like a number
TEXT_ONLY_FIELDS = frozenset({
    "reference", "marque", "brand", "type", "tete", "head",
    "materiau", "material", "modele", "model", "serie", "series",
    "nom", "name", "couleur", "color", "colour",
    "notes", "commentaire", "comment", "description",
})


# =============================================================================
# PARSING & CONVERSION
# =============================================================================

_VALUE_PATTERN = re.compile(r'^([-+]?\d*\.?\d+)\s*([a-zA-ZΩµμ"/]+)?$', re.ASCII)

# Products like 0.7 * 10 carry float noise; keep 12 significant digits
_SIGNIFICANT_DIGITS = 12


@dataclass(frozen=True)
class ParsedValue:
    """A number with the unit it was typed with."""
    value: float
    unit: str
    has_unit: bool


@dataclass(frozen=True)
class NormalizedValue:
    """A value converted to its domain's base unit (domain None = untagged)."""
    value: float
    domain: str | None
    base_unit: str


def _finite(value: Any, source: Any = None) -> float:
    """float(value), rejecting infinities, NaN and integers too large for a float."""
    try:
        number = float(value)
    except OverflowError:
        number = math.inf
    if not math.isfinite(number):
        shown = str(value if source is None else source)
        if len(shown) > 24:
            shown = shown[:21] + "..."
        raise InvalidValueFormat(f"value out of range: '{shown}'")
    return number


def parse_value_with_unit(text: str) -> ParsedValue:
    """Parse '10mm', '12.5 cm' or '10' into magnitude and unit.

    Raises:
        InvalidValueFormat: If the text is empty, not number[unit] or too large for a float.
    """
    text = text.strip()
    if not text:
        raise InvalidValueFormat("empty value")

    match = _VALUE_PATTERN.match(text)
    if not match:
        raise InvalidValueFormat(f"invalid format: '{text}' (expected: number[unit])")

    unit = (match.group(2) or "").strip()
    return ParsedValue(value=_finite(match.group(1), text), unit=unit, has_unit=bool(unit))


def suggest_units(unit: str) -> str:
    """Guess which domain an unknown unit was meant for and list its valid units."""
    lower = unit.lower()
    for domain, hints in _SUGGESTION_HINTS:
        if any(hint in lower for hint in hints):
            label = domain.replace("_", " ")
            return f"Valid {label} units: {', '.join(SUGGESTED_UNITS[domain])}"
    return ""


def unit_domain(unit: str) -> str | None:
    """Domain of a known unit alias, or None."""
    info = UNIT_CONVERSIONS.get(unit)
    return info[0] if info else None


def accepted_units(domain: str) -> list[str]:
    """All aliases accepted for a domain, in table order."""
    return [unit for unit, (d, _) in UNIT_CONVERSIONS.items() if d == domain]


def convert(magnitude: float, unit: str) -> NormalizedValue:
    """Convert a magnitude expressed in `unit` to its domain's base unit.

    Raises:
        UnknownUnit: If the unit has no alias entry.
        InvalidValueFormat: If the converted value is not finite.
    """
    info = UNIT_CONVERSIONS.get(unit)
    if info is None:
        raise UnknownUnit(unit, suggest_units(unit))
    domain, factor = info
    scaled = _finite(magnitude) * factor
    value = _finite(f"{scaled:.{_SIGNIFICANT_DIGITS}g}", magnitude)
    return NormalizedValue(value=value, domain=domain, base_unit=BASE_UNITS[domain])


def normalize_value(text: str, default_unit: str = "") -> NormalizedValue:
    """Normalize '1cm' -> 10 (mm). `default_unit` applies only when none was typed.

    A bare number without a default unit comes back unchanged and untagged.
    """
    parsed = parse_value_with_unit(text)
    unit = parsed.unit if parsed.has_unit else default_unit
    if not unit:
        return NormalizedValue(value=parsed.value, domain=None, base_unit="")
    return convert(parsed.value, unit)


def default_unit_for_field(field_name: str) -> str:
    """Best-effort base unit from naming conventions: 'd_int' -> 'mm', 'volts' -> 'V'."""
    lower = field_name.lower()
    for domain, keywords in FIELD_KEYWORDS:
        if any(keyword in lower for keyword in keywords):
            return BASE_UNITS[domain]
    return ""


def is_text_only_field(field_name: str) -> bool:
    return field_name.lower() in TEXT_ONLY_FIELDS


def validate_unit_for_field(field_name: str, unit: str, default_unit: str = "") -> None:
    """Check a typed unit belongs to the domain the field expects.

    The expected domain comes from `default_unit` (usually the template's),
    falling back to the field-name conventions. Fields with no expected
    domain accept any known unit.

    Raises:
        UnknownUnit: If the unit is not in the alias table.
        UnitDomainMismatch: If the unit belongs to another domain.
    """
    if not unit:
        return
    domain = unit_domain(unit)
    if domain is None:
        raise UnknownUnit(unit, suggest_units(unit), field=field_name)

    expected = unit_domain(default_unit or default_unit_for_field(field_name))
    if expected is not None and domain != expected:
        raise UnitDomainMismatch(field_name, unit, BASE_UNITS[expected])


def _normalize_field(key: str, value: Any, default_unit: str, check_domains: bool) -> Any:
    # bool is an int subclass: test it first so True never becomes 1.0
    if value is None or isinstance(value, bool):
        return value

    if isinstance(value, (int, float)):
        if not default_unit:
            _finite(value)
            return value
        return convert(value, default_unit).value

    if isinstance(value, str):
        try:
            parsed = parse_value_with_unit(value)
        except InvalidValueFormat:
            if _VALUE_PATTERN.match(value.strip()):
                raise  # number[unit] shaped but out of range
            return value  # Not a number: free text
        if check_domains and parsed.has_unit:
            validate_unit_for_field(key, parsed.unit, default_unit)
        unit = parsed.unit if parsed.has_unit else default_unit
        if not unit:
            return parsed.value
        return convert(parsed.value, unit).value

    return value


def normalize_props(
    props: dict[str, Any],
    field_units: dict[str, str] | None = None,
    check_domains: bool = False,
) -> dict[str, Any]:
    """Normalize every numeric property of an attribute bag.

    Unit resolution per field: unit typed in the value, then the template
    default from `field_units`, then `default_unit_for_field`. Text-only
    fields and non-numeric values pass through untouched.

    All or nothing: the first error aborts the whole bag.

    Args:
        props: Raw attribute bag (numbers, 'value unit' strings, text, booleans)
        field_units: Field name -> default unit, from the part's template
        check_domains: Also reject typed units from another domain

    Returns:
        A new bag with numeric values in base units.

    Raises:
        UnknownUnit: A resolved unit has no alias entry (field name attached).
        InvalidValueFormat: A numeric value overflows a float (field name attached).
        UnitDomainMismatch: Only with check_domains.
    """
    field_units = field_units or {}
    normalized: dict[str, Any] = {}

    for key, value in props.items():
        if is_text_only_field(key):
            normalized[key] = value
            continue

        default_unit = field_units.get(key) or default_unit_for_field(key)
        try:
            normalized[key] = _normalize_field(key, value, default_unit, check_domains)
        except UnknownUnit as e:
            if e.field:
                raise
            raise e.for_field(key) from e
        except InvalidValueFormat as e:
            raise InvalidValueFormat(f"field '{key}': {e}") from e

    return normalized
