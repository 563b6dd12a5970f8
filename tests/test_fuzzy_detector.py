"""Tests for fuzzy keyword detection of field-label lines."""

import pytest

from src.extraction.fields import get_field
from src.extraction.fuzzy_detector import FuzzyFieldDetector, clean_label, levenshtein
from src.preprocessing.text_normalizer import TextNormalizer
from src.utils.config import DetectionConfig


class TestLevenshtein:
    """Tests for the edit-distance function."""

    @pytest.mark.parametrize(
        ("a", "b", "expected"),
        [
            ("kitten", "sitting", 3),
            ("flaw", "lawn", 2),
            ("abc", "abc", 0),
            ("", "abc", 3),
            ("abc", "", 3),
            ("מספר דוח", "מספר רכב", 3),
            ("דוח", "רישוי", 4),
        ],
    )
    def test_distance(self, a: str, b: str, expected: int) -> None:
        assert levenshtein(a, b) == expected

    def test_symmetric(self) -> None:
        assert levenshtein("סכום", "סכון") == levenshtein("סכון", "סכום") == 1


class TestCleanLabel:
    """Tests for label cleanup before comparison."""

    def test_drops_digits_and_punctuation(self) -> None:
        assert clean_label("מספר דוח: 123456") == "מספר דוח"

    def test_keeps_ascii_letters(self) -> None:
        assert clean_label("Fine: 500 NIS") == "Fine NIS"

    def test_digits_only(self) -> None:
        assert clean_label("123-456") == ""


class TestFuzzyFieldDetector:
    """Tests for FuzzyFieldDetector.detect."""

    def test_exact_label_match(self) -> None:
        detector = FuzzyFieldDetector()
        detected = detector.detect(["מספר דוח 123456789"])

        report = detected["reportNumber"]
        assert report.matched_keyword == "מספר דוח"
        assert report.distance == 0
        assert report.similarity == 1.0
        assert report.confidence == pytest.approx(0.95)
        assert report.line_index == 0
        assert report.next_line == ""

    def test_ocr_confusion_within_edit_distance(self) -> None:
        detector = FuzzyFieldDetector()
        detected = detector.detect(["מספד דות: 123456"])

        report = detected["reportNumber"]
        assert report.distance == 2
        assert report.similarity == pytest.approx(0.75)
        assert report.confidence == pytest.approx(0.85)

    def test_unrelated_text_detects_nothing(self) -> None:
        detector = FuzzyFieldDetector()
        assert detector.detect(["hello world", "nothing to see here"]) == {}

    def test_digit_only_line_is_skipped(self) -> None:
        detector = FuzzyFieldDetector()
        assert detector.detect(["123456", "12:30"]) == {}

    def test_last_matching_line_wins(self) -> None:
        detector = FuzzyFieldDetector()
        lines = ["מספר דוח: 111111", "filler text", "מספר דוח: 222222"]
        detected = detector.detect(lines)

        assert detected["reportNumber"].line_index == 2
        assert detected["reportNumber"].line == "מספר דוח: 222222"

    def test_next_line_is_captured(self) -> None:
        detector = FuzzyFieldDetector()
        detected = detector.detect(["סעיף העבירה:", "54(א) נהיגה במהירות"])

        assert detected["violationType"].next_line == "54(א) נהיגה במהירות"

    def test_strict_config_rejects_fuzzy_match(self) -> None:
        detector = FuzzyFieldDetector(DetectionConfig(max_edit_distance=0, min_similarity=0.9))
        assert "reportNumber" not in detector.detect(["מספד דות: 123456"])

    def test_custom_catalog(self) -> None:
        detector = FuzzyFieldDetector(catalog=[get_field("points")])
        assert list(detector.keywords) == ["points"]
        detected = detector.detect(["מספר דוח: 123456", "נקודות: 6"])
        assert list(detected) == ["points"]

    def test_match_returns_first_qualifying_keyword(self) -> None:
        detector = FuzzyFieldDetector()
        found = detector.match("נקודות:", detector.keywords["points"])
        assert found is not None
        assert found.keyword == "נקודות"
        assert found.distance == 0

    def test_sample_ticket(self, sample_text: str) -> None:
        lines = TextNormalizer().split_lines(sample_text)
        detected = FuzzyFieldDetector().detect(lines)

        assert {
            "reportNumber",
            "violationDate",
            "violationTime",
            "violationType",
            "fineAmount",
            "points",
            "vehiclePlate",
        } <= set(detected)
        assert detected["reportNumber"].line_index == 0
        assert detected["fineAmount"].line_index == 5
        assert detected["vehiclePlate"].line_index == 7
        assert "appealDeadline" not in detected
