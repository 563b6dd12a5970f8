"""Tests for the field catalog and rule-based value extraction."""

import pytest

from src.errors import ValidationFailure
from src.extraction.fields import (
    FIELD_CATALOG,
    OPTIONAL_FIELDS,
    REQUIRED_FIELD_NAMES,
    get_field,
)
from src.extraction.fuzzy_detector import DetectedField, FuzzyFieldDetector
from src.extraction.rule_extractor import PatternExtractor
from src.preprocessing.text_normalizer import TextNormalizer


def _detection(name: str, line: str, next_line: str = "", confidence: float = 0.9) -> DetectedField:
    return DetectedField(
        field_name=name,
        line_index=0,
        line=line,
        next_line=next_line,
        matched_keyword="",
        similarity=confidence - 0.1,
        distance=1,
        confidence=confidence,
    )


class TestFieldCatalog:
    """Tests for the static field catalog."""

    def test_required_fields(self) -> None:
        assert REQUIRED_FIELD_NAMES == (
            "reportNumber",
            "violationDate",
            "violationType",
            "fineAmount",
        )

    def test_optional_fields(self) -> None:
        assert [f.name for f in OPTIONAL_FIELDS] == [
            "violationTime",
            "location",
            "driverName",
            "licenseNumber",
            "points",
            "vehiclePlate",
            "appealDeadline",
        ]
        assert not any(f.required for f in OPTIONAL_FIELDS)

    def test_every_field_has_keywords_and_examples(self) -> None:
        for definition in FIELD_CATALOG.values():
            assert definition.keywords
            assert definition.examples
            assert 0 < definition.max_confidence <= 0.95

    def test_get_unknown_field(self) -> None:
        with pytest.raises(KeyError):
            get_field("speed")


class TestShapeRules:
    """Tests for per-field validation and normalization."""

    @pytest.mark.parametrize(
        ("name", "raw", "expected"),
        [
            ("reportNumber", "123456789", "123456789"),
            ("violationDate", "15/03/2024", "15/03/2024"),
            ("violationDate", "7.12.2023", "07/12/2023"),
            ("violationDate", "2024-03-15", "15/03/2024"),
            ("violationTime", "9:05", "09:05"),
            ("fineAmount", "1,000 ₪", "1000"),
            ("fineAmount", "250 ש\"ח", "250"),
            ("fineAmount", "99.50", "99.50"),
            ("points", "6", "6"),
            ("vehiclePlate", "12-345-67", "12-345-67"),
            ("vehiclePlate", "123 45 678", "123-45-678"),
            ("licenseNumber", "12345678", "12345678"),
            ("location", "  רחוב   הרצל 15 ", "רחוב הרצל 15"),
        ],
    )
    def test_accepts_and_normalizes(self, name: str, raw: str, expected: str) -> None:
        assert get_field(name).validate(raw) == expected

    @pytest.mark.parametrize(
        ("name", "raw"),
        [
            ("reportNumber", "12345"),
            ("reportNumber", "12A456"),
            ("violationDate", "31/02/2024"),
            ("violationDate", "15-03-24"),
            ("violationTime", "25:00"),
            ("fineAmount", "abc"),
            ("fineAmount", "20"),
            ("fineAmount", "50000"),
            ("points", "13"),
            ("points", "-1"),
            ("vehiclePlate", "12-34"),
            ("licenseNumber", "1234"),
            ("driverName", "x"),
        ],
    )
    def test_rejects(self, name: str, raw: str) -> None:
        with pytest.raises(ValidationFailure) as exc_info:
            get_field(name).validate(raw)
        assert exc_info.value.field_name == name
        assert exc_info.value.value == raw

    @pytest.mark.parametrize("raw", [None, "", "   ", "null", "NULL"])
    def test_rejects_empty(self, raw: object) -> None:
        with pytest.raises(ValidationFailure):
            get_field("reportNumber").validate(raw)

    def test_failure_message_names_field(self) -> None:
        with pytest.raises(ValidationFailure, match="fineAmount='abc': invalid amount"):
            get_field("fineAmount").validate("abc")


class TestPatternExtractor:
    """Tests for PatternExtractor.extract and select."""

    @pytest.fixture
    def extractor(self) -> PatternExtractor:
        return PatternExtractor()

    def test_report_number(self, extractor: PatternExtractor) -> None:
        assert extractor.extract("מספר דוח 123456789", "", "reportNumber") == ["123456789"]

    def test_value_on_next_line(self, extractor: PatternExtractor) -> None:
        candidates = extractor.extract("תאריך עבירה:", "15.03.2024", "violationDate")
        assert candidates == ["15.03.2024"]

    def test_amount_with_thousands_separator(self, extractor: PatternExtractor) -> None:
        candidates = extractor.extract("סכום לתשלום: 1,000 ₪", "", "fineAmount")
        assert candidates == ["1,000"]
        selected = extractor.select("fineAmount", candidates)
        assert selected is not None
        assert selected.value == "1000"
        assert selected.raw == "1,000"
        assert selected.rejected == []

    @pytest.mark.parametrize(
        ("line", "expected"),
        [
            ("סכום לתשלום: 1,500 ₪", ["1,500"]),
            ("קנס 2,750 ש\"ח", ["2,750"]),
            ("סכום: 4,250.50", ["4,250.50"]),
            ("לתשלום 750", ["750"]),
            ("סכום: 99.50", ["99.50"]),
        ],
    )
    def test_amount_never_reads_part_of_a_number(
        self, extractor: PatternExtractor, line: str, expected: list[str]
    ) -> None:
        assert extractor.extract(line, "", "fineAmount") == expected

    def test_grouped_amount_selected_whole(self, extractor: PatternExtractor) -> None:
        selected = extractor.select(
            "fineAmount", extractor.extract("סכום לתשלום: 1,500 ₪", "", "fineAmount")
        )
        assert selected is not None
        assert selected.value == "1500"
        assert selected.rejected == []

    def test_hyphenated_report_number_not_a_candidate(self, extractor: PatternExtractor) -> None:
        assert extractor.extract("מספר דוח: 123-456", "", "reportNumber") == []
        assert extractor.extract("מספר דוח: 1234567-89", "", "reportNumber") == ["1234567"]

    def test_points_before_and_after_label(self, extractor: PatternExtractor) -> None:
        assert extractor.extract("נקודות: 6", "", "points") == ["6"]
        assert extractor.extract("נרשמו 4 נקודות", "", "points") == ["4"]

    def test_violation_type(self, extractor: PatternExtractor) -> None:
        candidates = extractor.extract("סעיף העבירה:", "54(א) נהיגה במהירות", "violationType")
        assert candidates == ["54(א)"]

    def test_time_and_plate(self, extractor: PatternExtractor) -> None:
        assert extractor.extract("שעה: 14:30", "", "violationTime") == ["14:30"]
        assert extractor.extract("מספר רכב: 12-345-67", "", "vehiclePlate") == ["12-345-67"]

    def test_free_text_after_label(self, extractor: PatternExtractor) -> None:
        candidates = extractor.extract("מיקום: רחוב הרצל 15", "", "location")
        assert candidates == ["רחוב הרצל 15"]

    def test_free_text_falls_back_to_next_line(self, extractor: PatternExtractor) -> None:
        candidates = extractor.extract("שם הנהג", "יוסי כהן", "driverName")
        assert candidates == ["יוסי כהן"]

    def test_free_text_skips_next_label_line(self, extractor: PatternExtractor) -> None:
        candidates = extractor.extract("כביש 1", "סכום לתשלום: 500 ₪", "location")
        assert candidates == ["1"]
        assert extractor.select("location", candidates) is None

    def test_free_text_skips_next_key_value_line(self, extractor: PatternExtractor) -> None:
        assert extractor.extract("שם הנהג", "הערה: נהג חדש", "driverName") == []

    def test_is_label_line(self, extractor: PatternExtractor) -> None:
        assert extractor.is_label_line("סכום לתשלום")
        assert extractor.is_label_line("הערה: נהג חדש")
        assert not extractor.is_label_line("יוסי כהן")
        assert not extractor.is_label_line("14:30")

    def test_no_match(self, extractor: PatternExtractor) -> None:
        assert extractor.extract("מספר דוח", "", "reportNumber") == []

    def test_unknown_field_has_no_patterns(self, extractor: PatternExtractor) -> None:
        assert extractor.extract("123456", "", "speed") == []

    def test_select_none_valid(self, extractor: PatternExtractor) -> None:
        assert extractor.select("points", ["13", "99"]) is None

    def test_extract_detected(self, extractor: PatternExtractor) -> None:
        detections = {
            "reportNumber": _detection("reportNumber", "מספר דוח 123456789", confidence=0.95),
            "points": _detection("points", "נקודות", "ללא"),
        }
        extracted = extractor.extract_detected(detections)

        assert list(extracted) == ["reportNumber"]
        assert extracted["reportNumber"].candidates == ["123456789"]
        assert extracted["reportNumber"].confidence == 0.95
        assert extracted["reportNumber"].source_line == "מספר דוח 123456789"

    def test_sample_ticket_candidates(self, sample_text: str) -> None:
        lines = TextNormalizer().split_lines(sample_text)
        detections = FuzzyFieldDetector().detect(lines)
        extracted = PatternExtractor().extract_detected(detections)

        assert extracted["reportNumber"].candidates == ["123456789"]
        assert extracted["violationDate"].candidates == ["15/03/2024"]
        assert extracted["points"].candidates == ["6"]
        assert extracted["vehiclePlate"].candidates == ["12-345-67"]
