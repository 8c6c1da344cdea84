"""Tests for text normalization and unit parsing."""

import pytest
from label_compliance.services.normalizer import (
    collapse_spaces,
    normalize_ampersand,
    normalize_text,
    normalize_whitespace,
    parse_age_years,
    parse_alcohol_content,
    parse_net_contents_ml,
    parse_year,
    strip_punctuation,
    to_comparable_units,
)


class TestTextNormalizers:
    """Test the string normalizers."""

    def test_whitespace_collapsed(self):
        """Test runs of whitespace collapse to one space."""
        assert normalize_whitespace("  OLD \t TOM\n DISTILLERY ") == "OLD TOM DISTILLERY"

    def test_strip_punctuation_alcohol_statement(self):
        """Test "Alc./Vol." loses its periods and slash."""
        assert strip_punctuation("45% Alc./Vol.") == "45% Alc Vol"

    def test_strip_punctuation_keeps_decimals(self):
        """Test periods inside numbers survive."""
        assert strip_punctuation("13.5% Alc.") == "13.5% Alc"

    def test_strip_punctuation_apostrophe(self):
        """Test apostrophes are removed."""
        assert strip_punctuation("Stone's Throw") == "Stones Throw"

    def test_collapse_spaces(self):
        """Test all whitespace is removed."""
        assert collapse_spaces("750 mL") == "750mL"
        assert collapse_spaces("1.75\nL") == "1.75L"

    def test_ampersand_to_and(self):
        """Test "&" becomes "and"."""
        assert normalize_ampersand("Produced & Bottled by") == "Produced and Bottled by"
        assert normalize_ampersand("Produced&Bottled by") == "Produced and Bottled by"

    def test_ampersand_keeps_newlines(self):
        """Test line structure is preserved."""
        assert normalize_ampersand("A & B\nC") == "A and B\nC"

    def test_normalize_text(self):
        """Test combined normalization."""
        assert normalize_text("STONE'S  THROW") == "stones throw"
        assert normalize_text("Produced & Bottled By:") == "produced and bottled by"

    @pytest.mark.parametrize("value", [
        "45% Alc./Vol. (90 Proof)",
        "Produced & Bottled by",
        "  Stone's -- Throw  ",
        "",
    ])
    def test_normalize_text_idempotent(self, value):
        """Test normalizing twice equals normalizing once."""
        once = normalize_text(value)
        assert normalize_text(once) == once

    def test_empty_inputs(self):
        """Test normalizers accept empty strings."""
        assert strip_punctuation("") == ""
        assert collapse_spaces("") == ""
        assert normalize_ampersand("") == ""
        assert normalize_text(None) == ""


class TestAlcoholParsing:
    """Test alcohol content parsing."""

    def test_percent(self):
        """Test plain percent statement."""
        assert parse_alcohol_content("12.5% Alc./Vol.") == 12.5

    def test_proof_is_halved(self):
        """Test proof converts to ABV."""
        assert parse_alcohol_content("80 Proof") == 40.0

    def test_proof_preferred_when_both_present(self):
        """Test proof wins when printed alongside percent."""
        assert parse_alcohol_content("45% Alc./Vol. (90 Proof)") == 45.0

    def test_bare_number(self):
        """Test a bare number is read as percent."""
        assert parse_alcohol_content("40") == 40.0

    def test_unparseable(self):
        """Test text without a number."""
        assert parse_alcohol_content("strong") is None


class TestNetContentsParsing:
    """Test net contents parsing to millilitres."""

    @pytest.mark.parametrize("value,expected", [
        ("750 mL", 750.0),
        ("750ML", 750.0),
        ("75 cL", 750.0),
        ("1 L", 1000.0),
        ("1.75 Liters", 1750.0),
    ])
    def test_metric_units(self, value, expected):
        """Test metric units convert to mL."""
        assert parse_net_contents_ml(value) == expected

    def test_fluid_ounces(self):
        """Test US fluid ounces convert to mL."""
        assert parse_net_contents_ml("25.4 FL OZ") == pytest.approx(751.2, abs=0.1)

    def test_unparseable(self):
        """Test text without a quantity."""
        assert parse_net_contents_ml("one bottle") is None


class TestComparableUnits:
    """Test field-aware numeric canonicalization."""

    def test_age_statement(self):
        """Test age statements in different forms."""
        assert parse_age_years("Aged 10 Years") == 10.0
        assert parse_age_years("8-Year-Old") == 8.0

    def test_year(self):
        """Test a calendar year is found."""
        assert parse_year("Vintage 2019") == 2019.0
        assert parse_year("no year") is None

    def test_dispatch_by_field(self):
        """Test the parser is chosen by field name."""
        assert to_comparable_units("net_contents", "75 cL") == 750.0
        assert to_comparable_units("alcohol_content", "90 Proof") == 45.0

    def test_text_field_has_no_units(self):
        """Test text fields return None."""
        assert to_comparable_units("brand_name", "750 mL") is None
