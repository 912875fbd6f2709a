"""Exceptions raised by the catalog.

Every error here is a deterministic input-validation failure: callers report
it (CLI exit status, HTTP 400, tool error payload) and never retry.
"""


class SalvageError(Exception):
    """Base class for catalog errors."""


class InvalidInputFormat(SalvageError, ValueError):
    """Input text does not follow the expected syntax."""


class InvalidValueFormat(InvalidInputFormat):
    """A value is not of the form number[unit]."""


class InvalidCriteriaFormat(InvalidInputFormat):
    """A search expression is not prop:value or prop:min..max."""


class UnknownUnit(SalvageError, ValueError):
    """A unit has no entry in the alias table."""

    def __init__(self, unit: str, suggestion: str = "", field: str | None = None):
        self.unit = unit
        self.suggestion = suggestion
        self.field = field
        message = f"unknown unit '{unit}'"
        if suggestion:
            message = f"{message}. {suggestion}"
        if field:
            message = f"field '{field}': {message}"
        super().__init__(message)

    def for_field(self, field: str) -> "UnknownUnit":
        return UnknownUnit(self.unit, self.suggestion, field=field)


class UnitDomainMismatch(SalvageError, ValueError):
    """A unit belongs to another physical domain than the field expects."""

    def __init__(self, field: str, unit: str, expected_base_unit: str):
        self.field = field
        self.unit = unit
        self.expected_base_unit = expected_base_unit
        super().__init__(
            f"unit '{unit}' incompatible with field '{field}' (expected: {expected_base_unit})"
        )


class UnknownType(SalvageError, ValueError):
    """Strict mode is on and no template defines this part type."""

    def __init__(self, type_name: str):
        self.type_name = type_name
        super().__init__(f"unknown type '{type_name}'. Use an existing template (see 'templates')")


class MissingRequiredField(SalvageError, ValueError):
    """A template-required attribute is absent from the attribute bag."""

    def __init__(self, field: str, type_name: str):
        self.field = field
        self.type_name = type_name
        super().__init__(f"missing required property: {field} (type {type_name})")


class TemplateLoadError(SalvageError):
    """A template file could not be read or parsed."""


class LocationNotFound(SalvageError, LookupError):
    """No location has this id or name."""

    label = "location"

    def __init__(self, ref: int | str):
        self.ref = ref
        if isinstance(ref, int):
            super().__init__(f"{self.label} ID {ref} not found")
        else:
            super().__init__(f"{self.label} '{ref}' not found")


class ParentNotFound(LocationNotFound):
    """The requested parent location does not exist."""

    label = "parent location"


class PartNotFound(SalvageError, LookupError):
    """No part has this id."""

    def __init__(self, part_id: int):
        self.part_id = part_id
        super().__init__(f"part ID {part_id} not found")


class CycleDetected(SalvageError, ValueError):
    """A move would make a location its own ancestor."""

    def __init__(self, location_id: int, new_parent_id: int):
        self.location_id = location_id
        self.new_parent_id = new_parent_id
        super().__init__(
            f"cannot move location {location_id} under {new_parent_id}: it is a descendant (would create a cycle)"
        )


class LocationNotEmpty(SalvageError, ValueError):
    """Parts are still stored in the location."""

    def __init__(self, location_id: int, part_count: int):
        self.location_id = location_id
        self.part_count = part_count
        super().__init__(f"cannot delete location {location_id}: {part_count} part(s) are stored in it")


class LocationHasChildren(SalvageError, ValueError):
    """Sub-locations still hang off the location."""

    def __init__(self, location_id: int, child_count: int):
        self.location_id = location_id
        self.child_count = child_count
        super().__init__(f"cannot delete location {location_id}: {child_count} sub-location(s) exist")
