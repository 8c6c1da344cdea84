"""Tests for beverage type detection and image role assignment."""

from conftest import SPIRITS_LABEL, WINE_LABEL, build_ocr_result
from label_compliance.services.catalog import BeverageType, ImageRole
from label_compliance.services.image_roles import classify_images_from_ocr, detect_beverage_type


class TestDetectBeverageType:
    """Test keyword-based beverage type detection."""

    def test_spirits(self):
        """Test a bourbon label."""
        assert detect_beverage_type(SPIRITS_LABEL) == BeverageType.DISTILLED_SPIRITS

    def test_wine(self):
        """Test a wine label."""
        assert detect_beverage_type(WINE_LABEL) == BeverageType.WINE

    def test_malt(self):
        """Test a beer label."""
        assert detect_beverage_type("HOPPY TRAILS India Pale Ale\nBrewed by Trail Brewery") == \
            BeverageType.MALT_BEVERAGE

    def test_tie(self):
        """Test a tie gives no type."""
        assert detect_beverage_type("Bourbon barrel aged stout") is None

    def test_keywords_are_word_bounded(self):
        """Test keywords inside longer words are ignored."""
        assert detect_beverage_type("Original Recipe") is None

    def test_empty(self):
        """Test empty text gives no type."""
        assert detect_beverage_type("") is None


class TestClassifyImages:
    """Test front/back role assignment."""

    def test_no_images(self):
        """Test no OCR results gives no roles."""
        assert classify_images_from_ocr([]) == []

    def test_single_image_is_front(self):
        """Test a lone image is the front label."""
        roles = classify_images_from_ocr([build_ocr_result(SPIRITS_LABEL)])
        assert roles[0].image_type == ImageRole.FRONT
        assert roles[0].confidence == 90

    def test_front_and_back(self):
        """Test the regulatory text marks the back label."""
        roles = classify_images_from_ocr([
            build_ocr_result("OLD TOM\nSmall Batch Bourbon", 0),
            build_ocr_result(SPIRITS_LABEL, 1),
        ])
        assert [r.image_type for r in roles] == [ImageRole.FRONT, ImageRole.BACK]

    def test_back_first(self):
        """Test the order of the images does not matter."""
        roles = classify_images_from_ocr([
            build_ocr_result(SPIRITS_LABEL, 0),
            build_ocr_result("OLD TOM\nSmall Batch Bourbon", 1),
        ])
        assert [r.image_type for r in roles] == [ImageRole.BACK, ImageRole.FRONT]

    def test_no_keywords(self):
        """Test the image with the fewest words is the front when nothing fires."""
        roles = classify_images_from_ocr([
            build_ocr_result("lorem ipsum dolor sit", 0),
            build_ocr_result("lorem", 1),
        ])
        assert roles[1].image_type == ImageRole.FRONT
        assert roles[0].image_type == ImageRole.OTHER
