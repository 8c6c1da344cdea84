"""Tests for the rule-based classifier."""

import pytest
from label_compliance.services.catalog import BeverageType, get_catalog
from label_compliance.services.rule_classifier import rule_classify, verify_declared_value


class TestVerificationMode:
    """Test locating declared values in label text."""

    def test_brand_and_alcohol(self):
        """Test declared brand and alcohol statement are both found."""
        result = rule_classify(
            "BULLEIT BOURBON\n45% Alc./Vol. (90 Proof)\n750 mL",
            BeverageType.DISTILLED_SPIRITS,
            {"brand_name": "BULLEIT", "alcohol_content": "45% Alc./Vol."},
        )
        brand = result.get("brand_name")
        alcohol = result.get("alcohol_content")
        assert brand.value == "BULLEIT"
        assert brand.confidence >= 90
        assert alcohol.value == "45% Alc./Vol."
        assert alcohol.confidence >= 90

    def test_ampersand_qualifying_phrase(self):
        """Test "&" on the label matches a declared "and"."""
        result = rule_classify(
            "Produced & Bottled by Example Winery",
            None,
            {"qualifying_phrase": "Produced and Bottled by"},
        )
        phrase = result.get("qualifying_phrase")
        assert phrase.value == "Produced and Bottled by"
        assert phrase.confidence >= 90

    def test_empty_text(self):
        """Test empty OCR text gives every field null with zero confidence."""
        result = rule_classify(
            "",
            BeverageType.WINE,
            {"brand_name": "CHATEAU EXAMPLE", "net_contents": "750 mL"},
        )
        assert all(f.value is None and f.confidence == 0 for f in result.fields)
        assert len(result.fields) == len(get_catalog().fields_for(BeverageType.WINE))

    def test_declared_value_not_on_label(self):
        """Test a declared value absent from the text is not found."""
        result = rule_classify("OLD TOM DISTILLERY", None, {"brand_name": "Completely Different"})
        brand = result.get("brand_name")
        assert brand.value is None
        assert brand.confidence == 0

    def test_whole_line_beats_substring(self, spirits_label):
        """Test a declared value filling a line scores 95."""
        result = rule_classify(
            spirits_label, BeverageType.DISTILLED_SPIRITS, {"brand_name": "Old Tom Distillery"}
        )
        assert result.get("brand_name").confidence == 95

    def test_glued_ocr_text_is_verbatim(self):
        """Test a declared value glued to other OCR text keeps exact confidence."""
        result = rule_classify(
            "BulleitBourbon\n45%Alc./Vol.\n750mL",
            BeverageType.DISTILLED_SPIRITS,
            {"brand_name": "Bulleit", "alcohol_content": "45%", "net_contents": "750"},
        )
        for name in ("brand_name", "alcohol_content", "net_contents"):
            assert result.get(name).confidence >= 90

    def test_declared_brand_leaves_fanciful_line(self):
        """Test the line after a verified brand becomes the fanciful name."""
        result = rule_classify(
            "BULLEIT\nFRONTIER RESERVE\n45% Alc./Vol.\n750 mL",
            BeverageType.DISTILLED_SPIRITS,
            {"brand_name": "BULLEIT"},
        )
        assert result.get("brand_name").value == "BULLEIT"
        fanciful = result.get("fanciful_name")
        assert fanciful.value == "FRONTIER RESERVE"
        assert 0 < fanciful.confidence <= result.get("brand_name").confidence

    def test_missing_declared_brand_has_no_fanciful(self, spirits_label):
        """Test a declared brand absent from the label leaves the fanciful name empty."""
        result = rule_classify(
            spirits_label, BeverageType.DISTILLED_SPIRITS, {"brand_name": "ZZZ QQQ"}
        )
        brand = result.get("brand_name")
        fanciful = result.get("fanciful_name")
        assert brand.confidence == 0
        assert fanciful.value is None
        assert fanciful.confidence <= brand.confidence

    def test_blank_declared_value(self):
        """Test a blank declared value is not found."""
        field = verify_declared_value("OLD TOM", "brand_name", "  ")
        assert field.value is None
        assert field.reasoning == "No declared value provided"

    def test_source_text_is_label_span(self):
        """Test the matched label span is kept for box lookup."""
        field = verify_declared_value("Produced & Bottled by X", "qualifying_phrase", "Produced and Bottled by")
        assert field.source_text.lower() == "produced and bottled by"

    def test_inapplicable_declared_field_ignored(self, spirits_label):
        """Test wine-only declared fields are skipped for spirits."""
        result = rule_classify(
            spirits_label, BeverageType.DISTILLED_SPIRITS, {"vintage_year": "2019"}
        )
        assert result.get("vintage_year") is None

    def test_undeclared_fields_extracted(self, spirits_label):
        """Test fields without a declared value are extracted."""
        result = rule_classify(
            spirits_label, BeverageType.DISTILLED_SPIRITS, {"brand_name": "Old Tom Distillery"}
        )
        assert result.get("net_contents").value == "750 mL"


class TestExtractionMode:
    """Test classification with no declared values."""

    def test_spirits_label(self, spirits_label):
        """Test a spirits label is fully classified."""
        result = rule_classify(spirits_label, BeverageType.DISTILLED_SPIRITS)

        assert [f.field_name for f in result.fields] == get_catalog().field_names_for(
            BeverageType.DISTILLED_SPIRITS
        )
        assert result.get("brand_name").value == "OLD TOM DISTILLERY"
        assert result.get("alcohol_content").value == "45% Alc./Vol. (90 Proof)"
        assert result.get("net_contents").value == "750 mL"
        assert result.get("health_warning").found
        assert result.get("age_statement").value is None

    def test_wine_label(self, wine_label):
        """Test a wine label picks up the wine-only fields."""
        result = rule_classify(wine_label, BeverageType.WINE)

        assert result.get("vintage_year").value == "2019"
        assert result.get("grape_varietal").value == "Cabernet Sauvignon"
        assert result.get("appellation_of_origin").value == "Napa Valley"
        assert result.get("sulfite_declaration").value == "Contains Sulfites"
        assert result.get("qualifying_phrase").value == "Produced and Bottled by"
        assert result.get("brand_name").value == "CHATEAU EXAMPLE"

    def test_fanciful_confidence_capped(self):
        """Test the fanciful name never outranks the brand."""
        result = rule_classify("STONE'S THROW\nMidnight Harbor\n40% Alc./Vol.\n750 mL",
                               BeverageType.DISTILLED_SPIRITS)
        brand = result.get("brand_name")
        fanciful = result.get("fanciful_name")
        assert brand.value == "STONE'S THROW"
        assert fanciful.value == "Midnight Harbor"
        assert fanciful.confidence <= brand.confidence

    def test_unknown_beverage_type_uses_all_fields(self):
        """Test every catalog field is returned without a beverage type."""
        result = rule_classify("OLD TOM", None)
        assert len(result.fields) == len(get_catalog())

    @pytest.mark.parametrize("text", ["", "   \n  "])
    def test_blank_text(self, text):
        """Test blank text gives every field null."""
        result = rule_classify(text, BeverageType.MALT_BEVERAGE)
        assert not result.found_fields

    def test_confidence_invariant(self, wine_label):
        """Test found values always carry confidence and missing ones none."""
        result = rule_classify(wine_label, BeverageType.WINE)
        for f in result.fields:
            assert 0 <= f.confidence <= 100
            assert (f.value is None) == (f.confidence == 0)


class TestBeverageTypeDetection:
    """Test the detected beverage type."""

    def test_given_type_reported(self, wine_label):
        """Test an explicit beverage type is echoed."""
        assert rule_classify(wine_label, BeverageType.WINE).detected_beverage_type == BeverageType.WINE

    def test_detected_from_text(self, spirits_label):
        """Test the type is detected when not given."""
        result = rule_classify(spirits_label, None)
        assert result.detected_beverage_type == BeverageType.DISTILLED_SPIRITS
