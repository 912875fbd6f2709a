"""Property search expressions: 'name:value' (exact) and 'name:min..max' (range)."""

import re
from dataclasses import dataclass
from typing import Any, Mapping

from ..errors import InvalidCriteriaFormat

_RANGE_PATTERN = re.compile(r"^([\d.]+)\.\.([\d.]+)$", re.ASCII)


def format_value(value: Any) -> str:
    """Render a stored value the way exact matches compare it.

    Integral floats drop the trailing '.0' so 10, 10.0 and "10" agree.
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        return repr(value)
    if value is None:
        return ""
    return str(value)


def to_float(value: Any) -> float | None:
    """Numeric view of a stored value: numbers and numeric strings, else None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


@dataclass(frozen=True)
class SearchCriteria:
    """Criterion on one property of the attribute bag.

    Examples:
        SearchCriteria("brand", exact="SKF")
        SearchCriteria("d_int", is_range=True, min_value=9.5, max_value=10.5)
    """
    prop_name: str
    is_range: bool = False
    exact: str = ""
    min_value: float = 0.0
    max_value: float = 0.0

    def matches(self, value: Any) -> bool:
        """Whether a stored (already normalized) value satisfies the criterion."""
        if self.is_range:
            number = to_float(value)
            if number is None:
                return False
            return self.min_value <= number <= self.max_value
        return format_value(value) == self.exact

    def matches_props(self, props: Mapping[str, Any]) -> bool:
        """Whether an attribute bag satisfies the criterion. Absent property never matches."""
        if self.prop_name not in props:
            return False
        return self.matches(props[self.prop_name])

    def to_expression(self) -> str:
        if self.is_range:
            return f"{self.prop_name}:{format_value(self.min_value)}..{format_value(self.max_value)}"
        return f"{self.prop_name}:{self.exact}"


def parse_search_criteria(expression: str) -> SearchCriteria:
    """Parse 'd_int:10..10.5' or 'brand:SKF'.

    Raises:
        InvalidCriteriaFormat: No colon, empty property or value, or a bad range bound.
    """
    prop_name, sep, value = expression.partition(":")
    if not sep:
        raise InvalidCriteriaFormat(
            f"invalid format: {expression} (expected: prop:value or prop:min..max)"
        )
    if not prop_name:
        raise InvalidCriteriaFormat(f"invalid format: {expression} (missing property name)")
    if not value:
        raise InvalidCriteriaFormat(f"invalid format: {expression} (missing value)")

    match = _RANGE_PATTERN.match(value)
    if match:
        bounds = []
        for label, raw in (("min", match.group(1)), ("max", match.group(2))):
            try:
                bounds.append(float(raw))
            except ValueError:
                raise InvalidCriteriaFormat(f"invalid {label} value: {raw}") from None
        return SearchCriteria(prop_name, is_range=True, min_value=bounds[0], max_value=bounds[1])

    if ".." in value:
        raise InvalidCriteriaFormat(f"invalid range: {value} (expected: min..max with numbers)")

    return SearchCriteria(prop_name, exact=value)


def criteria_from_prop(expression: str | None) -> SearchCriteria | None:
    """Parse an optional expression; empty means no property filter."""
    if not expression:
        return None
    return parse_search_criteria(expression)
