"""Tests for unit parsing and normalization."""

import pytest

from salvage_parts.errors import InvalidValueFormat, UnitDomainMismatch, UnknownUnit
from salvage_parts.units import (
    accepted_units,
    default_unit_for_field,
    is_text_only_field,
    normalize_props,
    normalize_value,
    parse_value_with_unit,
    resolve_domain,
    suggest_units,
    validate_unit_for_field,
)


class TestParseValueWithUnit:
    @pytest.mark.parametrize("text,value,unit", [
        ("10mm", 10.0, "mm"),
        ("12.5 cm", 12.5, "cm"),
        ("  -3.5V ", -3.5, "V"),
        (".5in", 0.5, "in"),
        ('2"', 2.0, '"'),
        ("3000tr/min", 3000.0, "tr/min"),
        ("4.7kΩ", 4.7, "kΩ"),
    ])
    def test_number_with_unit(self, text: str, value: float, unit: str):
        parsed = parse_value_with_unit(text)
        assert parsed.value == pytest.approx(value)
        assert parsed.unit == unit
        assert parsed.has_unit

    def test_bare_number(self):
        parsed = parse_value_with_unit("10")
        assert parsed.value == 10.0
        assert parsed.unit == ""
        assert not parsed.has_unit

    @pytest.mark.parametrize("text", ["", "   ", "abc", "10 mm extra", "mm10", "1,5mm"])
    def test_invalid(self, text: str):
        with pytest.raises(InvalidValueFormat):
            parse_value_with_unit(text)

    def test_too_large_for_float(self):
        with pytest.raises(InvalidValueFormat, match="out of range"):
            parse_value_with_unit("9" * 400 + "mm")


class TestNormalizeValue:
    def test_same_length_different_units(self):
        """1cm and 10mm are the same canonical value."""
        assert normalize_value("1cm").value == normalize_value("10mm").value == 10

    @pytest.mark.parametrize("text,expected,base_unit", [
        ("1m", 1000, "mm"),
        ("1in", 25.4, "mm"),
        ("1 pouce", 25.4, "mm"),
        ("2.2kΩ", 2200, "Ω"),
        ("100nF", 0.1, "µF"),
        ("1mF", 1000, "µF"),
        ("1500mA", 1.5, "A"),
        ("2kV", 2000, "V"),
        ("250kPa", 2.5, "bar"),
        ("3000tr/min", 3000, "rpm"),
        ("500mW", 0.5, "W"),
    ])
    def test_conversion(self, text: str, expected: float, base_unit: str):
        result = normalize_value(text)
        assert result.value == pytest.approx(expected)
        assert result.base_unit == base_unit

    def test_float_noise_removed(self):
        # 0.7 * 10 is 7.000000000000001 in binary floating point
        assert normalize_value("0.7cm").value == 7.0

    def test_default_unit_applies_to_bare_number(self):
        assert normalize_value("5", default_unit="cm").value == 50

    def test_explicit_unit_beats_default(self):
        assert normalize_value("5mm", default_unit="cm").value == 5

    def test_bare_number_without_unit_is_untagged(self):
        result = normalize_value("42")
        assert result.value == 42
        assert result.domain is None
        assert result.base_unit == ""

    def test_unknown_unit(self):
        with pytest.raises(UnknownUnit) as exc_info:
            normalize_value("10kg")
        assert exc_info.value.unit == "kg"
        assert exc_info.value.suggestion == ""

    def test_unknown_unit_with_suggestion(self):
        with pytest.raises(UnknownUnit) as exc_info:
            normalize_value("10uV")
        assert "Valid voltage units" in exc_info.value.suggestion
        assert "mV" in str(exc_info.value)


class TestSuggestUnits:
    @pytest.mark.parametrize("unit,domain_label", [
        ("mmm", "dimension"),
        ("uV", "voltage"),
        ("xA", "current"),
        ("GΩ", "resistance"),
        ("uf", "capacitance"),
        ("trs", "rotational speed"),
    ])
    def test_guesses_domain(self, unit: str, domain_label: str):
        assert suggest_units(unit).startswith(f"Valid {domain_label} units:")

    def test_no_guess(self):
        assert suggest_units("kg") == ""


class TestFieldConventions:
    @pytest.mark.parametrize("field_name,unit", [
        ("d_int", "mm"),
        ("Diameter", "mm"),
        ("voltage_max", "V"),
        ("courant", "A"),
        ("capacite", "µF"),
        ("pression", "bar"),
        ("speed", "rpm"),
        ("puissance", "W"),
        ("quantity", ""),
    ])
    def test_default_unit_for_field(self, field_name: str, unit: str):
        assert default_unit_for_field(field_name) == unit

    @pytest.mark.parametrize("field_name", ["brand", "Marque", "reference", "TYPE", "notes"])
    def test_text_only_fields(self, field_name: str):
        assert is_text_only_field(field_name)

    def test_resolve_domain(self):
        assert resolve_domain("tension") == "voltage"
        assert resolve_domain("Dimension") == "dimension"
        assert resolve_domain("vitesse_rot") == "rotational_speed"
        assert resolve_domain("bogus") is None
        assert resolve_domain(None) is None

    def test_accepted_units(self):
        assert accepted_units("rotational_speed") == ["rpm", "tr/min", "tpm"]


class TestValidateUnitForField:
    def test_same_domain(self):
        validate_unit_for_field("voltage", "mV")

    def test_other_domain(self):
        with pytest.raises(UnitDomainMismatch) as exc_info:
            validate_unit_for_field("voltage", "mm")
        assert exc_info.value.expected_base_unit == "V"

    def test_field_without_domain_accepts_any_known_unit(self):
        validate_unit_for_field("quantity", "mm")

    def test_unknown_unit(self):
        with pytest.raises(UnknownUnit):
            validate_unit_for_field("voltage", "zz")


class TestNormalizeProps:
    BEARING_UNITS = {"d_int": "mm", "d_ext": "mm", "width": "mm"}

    def test_bearing(self):
        props = {"d_int": "1cm", "d_ext": 22, "width": "7", "brand": "SKF", "sealed": True}
        result = normalize_props(props, self.BEARING_UNITS)
        assert result == {"d_int": 10.0, "d_ext": 22.0, "width": 7.0, "brand": "SKF", "sealed": True}

    def test_input_not_modified(self):
        props = {"d_int": "1cm"}
        normalize_props(props, self.BEARING_UNITS)
        assert props == {"d_int": "1cm"}

    def test_text_only_fields_untouched(self):
        props = {"reference": "608", "type": "2RS", "model": "10mm"}
        assert normalize_props(props) == props

    def test_non_numeric_text_stays_text(self):
        assert normalize_props({"d_int": "about ten"}) == {"d_int": "about ten"}

    def test_unit_inferred_from_field_name(self):
        assert normalize_props({"voltage": "12", "d_int": 8}) == {"voltage": 12.0, "d_int": 8.0}

    def test_bare_number_without_unit_unchanged(self):
        result = normalize_props({"count": 4})
        assert result["count"] == 4
        assert isinstance(result["count"], int)

    def test_bool_and_none_pass_through(self):
        result = normalize_props({"d_int": True, "width": None})
        assert result["d_int"] is True
        assert result["width"] is None

    def test_unknown_unit_names_field(self):
        with pytest.raises(UnknownUnit) as exc_info:
            normalize_props({"d_ext": "22mm", "d_int": "10xyz"}, self.BEARING_UNITS)
        assert exc_info.value.field == "d_int"
        assert "d_int" in str(exc_info.value)

    def test_domain_mismatch_ignored_by_default(self):
        assert normalize_props({"d_int": "5V"}, self.BEARING_UNITS) == {"d_int": 5.0}

    def test_domain_mismatch_checked_on_request(self):
        with pytest.raises(UnitDomainMismatch):
            normalize_props({"d_int": "5V"}, self.BEARING_UNITS, check_domains=True)

    @pytest.mark.parametrize("value", [
        "9" * 400,
        "9" * 400 + "mm",
        "9" * 308 + "m",  # finite magnitude, infinite once converted
        10 ** 400,
        float("inf"),
        float("nan"),
    ])
    def test_non_finite_rejected(self, value):
        with pytest.raises(InvalidValueFormat) as exc_info:
            normalize_props({"brand": "SKF", "d_int": value}, self.BEARING_UNITS)
        assert "d_int" in str(exc_info.value)

    def test_non_finite_rejected_without_unit(self):
        with pytest.raises(InvalidValueFormat):
            normalize_props({"count": float("inf")})
