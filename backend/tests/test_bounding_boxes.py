"""Tests for mapping field values onto OCR word boxes."""

from conftest import build_ocr_result
from label_compliance.services.bounding_boxes import (
    build_combined_word_list,
    find_matching_words,
    merge_bounding_boxes,
    union_rect,
)
from label_compliance.services.fields import ExtractedField, OCRResult, OCRWord, Rect


class TestFindMatchingWords:
    """Test locating a value in a word list."""

    def test_exact_run(self):
        """Test consecutive words spelling the value."""
        words = build_combined_word_list([build_ocr_result("OLD TOM\n750 mL")])
        matched = find_matching_words("Old Tom", words)
        assert [w.text for w in matched] == ["OLD", "TOM"]

    def test_split_tokens(self):
        """Test OCR token splits still line up."""
        words = build_combined_word_list([build_ocr_result("NET 75 0mL")])
        matched = find_matching_words("750 mL", words)
        assert [w.text for w in matched] == ["75", "0mL"]

    def test_partial_coverage(self):
        """Test a run covering most of the value is accepted."""
        words = build_combined_word_list([build_ocr_result("OLD TOM DISTILL")])
        matched = find_matching_words("Old Tom Distillery", words)
        assert len(matched) == 3

    def test_low_coverage_rejected(self):
        """Test a run covering too little of the value is rejected."""
        words = build_combined_word_list([build_ocr_result("OLD TOM")])
        assert find_matching_words("Old Tom Distillery", words) == []

    def test_blank_value(self):
        """Test punctuation-only values never match."""
        words = build_combined_word_list([build_ocr_result("OLD TOM")])
        assert find_matching_words("--", words) == []


class TestUnionRect:
    """Test box union."""

    def test_union(self):
        """Test the union covers every word."""
        words = build_combined_word_list([build_ocr_result("OLD TOM")])
        assert union_rect(words) == Rect(x=10, y=20, width=70, height=30)

    def test_empty(self):
        """Test no words gives no box."""
        assert union_rect([]) is None


class TestMergeBoundingBoxes:
    """Test attaching boxes to classified fields."""

    def test_single_image(self):
        """Test a found field gets a box on image 0."""
        ocr = [build_ocr_result("OLD TOM\n750 mL")]
        merged = merge_bounding_boxes([ExtractedField("net_contents", "750 mL", 90)], ocr)
        field = merged[0]
        assert field.image_index == 0
        assert field.bounding_box == Rect(x=10, y=60, width=60, height=30)
        assert field.word_indices == (2, 3)

    def test_second_image(self):
        """Test global word indices span images and the box uses local pixels."""
        ocr = [build_ocr_result("OLD TOM", 0), build_ocr_result("GOVERNMENT WARNING", 1)]
        merged = merge_bounding_boxes([ExtractedField("health_warning", "GOVERNMENT WARNING", 60)], ocr)
        field = merged[0]
        assert field.image_index == 1
        assert field.word_indices == (2, 3)
        assert field.bounding_box == Rect(x=10, y=20, width=180, height=30)

    def test_source_text_preferred(self):
        """Test the label span is located rather than the normalized value."""
        ocr = [build_ocr_result("Produced & Bottled by Example Winery")]
        field = ExtractedField("qualifying_phrase", "Produced and Bottled by", 95,
                               source_text="Produced & Bottled by")
        merged = merge_bounding_boxes([field], ocr)
        assert merged[0].word_indices == (0, 1, 2, 3)

    def test_supplied_word_indices(self):
        """Test classifier-supplied indices are used as given."""
        ocr = [build_ocr_result("OLD TOM\n750 mL")]
        field = ExtractedField("brand_name", "something else", 80, word_indices=(1,))
        merged = merge_bounding_boxes([field], ocr)
        assert merged[0].bounding_box == Rect(x=50, y=20, width=30, height=30)

    def test_not_found_untouched(self):
        """Test missing fields pass through without a box."""
        ocr = [build_ocr_result("OLD TOM")]
        field = ExtractedField.not_found("net_contents")
        assert merge_bounding_boxes([field], ocr) == [field]

    def test_unlocatable_value(self):
        """Test a value absent from the words keeps no box."""
        ocr = [build_ocr_result("OLD TOM")]
        merged = merge_bounding_boxes([ExtractedField("net_contents", "750 mL", 90)], ocr)
        assert merged[0].bounding_box is None
        assert merged[0].value == "750 mL"

    def test_no_words(self):
        """Test OCR results without words leave fields unchanged."""
        field = ExtractedField("brand_name", "OLD TOM", 90)
        merged = merge_bounding_boxes([field], [OCRResult.empty()])
        assert merged == [field]

    def test_box_within_image(self):
        """Test boxes stay inside the image they were read from."""
        word = OCRWord("BULLEIT", Rect(x=700, y=500, width=90, height=40))
        ocr = [OCRResult(full_text="BULLEIT", words=(word,), image_width=800, image_height=600)]
        box = merge_bounding_boxes([ExtractedField("brand_name", "Bulleit", 95)], ocr)[0].bounding_box
        assert box.right <= 800
        assert box.bottom <= 600
