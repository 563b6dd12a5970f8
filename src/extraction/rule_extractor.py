"""Rule-based value extraction from detected label lines.

Applies fixed regular-expression families to a label line and the line
after it, since OCR frequently wraps a value onto the next line. All
families of a field are tried in order and their matches concatenated; the
caller picks which candidate to keep.
"""

import re
from dataclasses import dataclass, field

from src.errors import ValidationFailure
from src.utils.logger import get_logger

from .fields import FIELD_CATALOG
from .fuzzy_detector import DetectedField, FuzzyFieldDetector

logger = get_logger(__name__)


@dataclass
class ExtractedValue:
    """Raw candidates pulled for one detected field."""

    field_name: str
    candidates: list[str]
    confidence: float
    source_line: str
    matched_keyword: str = ""


@dataclass
class SelectedValue:
    """The candidate kept for a field, with the candidates it beat."""

    field_name: str
    value: str
    raw: str
    rejected: list[str] = field(default_factory=list)


_DATE_PATTERNS: list[tuple[str, int]] = [
    (r"\d{1,2}/\d{1,2}/\d{4}", 0),
    (r"\d{1,2}\.\d{1,2}\.\d{4}", 0),
    (r"\d{4}-\d{1,2}-\d{1,2}", 0),
]

_REPORT_NUMBER_PATTERNS: list[tuple[str, int]] = [
    (r"\d{6,}", 0),
]

_TIME_PATTERNS: list[tuple[str, int]] = [
    (r"\d{1,2}:\d{2}", 0),
    (r"\d{1,2}\.\d{2}", 0),
]

# Both families match whole numbers only, so "1,500" is never read as "500".
_AMOUNT_PATTERNS: list[tuple[str, int]] = [
    (r"(?<![\d,.])\d{2,4}(?:\.\d{2})?(?![\d,]|\.\d)", 0),
    (r"(?<![\d,.])\d{1,3}(?:,\d{3})+(?:\.\d{2})?(?![\d,]|\.\d)", 0),
]

_POINTS_PATTERNS: list[tuple[str, int]] = [
    (r"(\d{1,2})(?=\s*נקוד)", 0),
    (r"נקוד[הות]*\s*:?\s*(\d{1,2})", 0),
]

_VIOLATION_TYPE_PATTERNS: list[tuple[str, int]] = [
    (r"\d+\s*\([^)]+\)", 0),
    (r"סעיף\s*\d+[א-ת]*", 0),
]

_PLATE_PATTERNS: list[tuple[str, int]] = [
    (r"(?<!\d)\d{2,3}-\d{2,3}-\d{2,3}(?!\d)", 0),
]

_LICENSE_PATTERNS: list[tuple[str, int]] = [
    (r"(?<!\d)\d{7,9}(?!\d)", 0),
]

# Free-text fields take whatever follows their label instead of a pattern.
FREE_TEXT_FIELDS: frozenset[str] = frozenset({"location", "driverName"})

_KEY_VALUE = re.compile(r"^[^\d:]+:")


class PatternExtractor:
    """Regex-based candidate extractor for ticket fields."""

    def __init__(self, detector: FuzzyFieldDetector | None = None) -> None:
        self.detector = detector or FuzzyFieldDetector()
        self.patterns: dict[str, list[tuple[str, int]]] = {
            "reportNumber": _REPORT_NUMBER_PATTERNS,
            "violationDate": _DATE_PATTERNS,
            "violationTime": _TIME_PATTERNS,
            "fineAmount": _AMOUNT_PATTERNS,
            "points": _POINTS_PATTERNS,
            "violationType": _VIOLATION_TYPE_PATTERNS,
            "vehiclePlate": _PLATE_PATTERNS,
            "licenseNumber": _LICENSE_PATTERNS,
            "appealDeadline": _DATE_PATTERNS,
        }

    def extract(self, line: str, next_line: str, field_name: str) -> list[str]:
        """Extract raw candidate values for one field.

        Args:
            line: The detected label line.
            next_line: The line following it, or an empty string.
            field_name: Catalog key of the target field.

        Returns:
            Candidates in pattern order; empty when nothing matched.
        """
        if field_name in FREE_TEXT_FIELDS:
            return self._label_remainder(line, next_line, field_name)

        text = f"{line} {next_line}".strip()
        candidates: list[str] = []
        for pattern, flags in self.patterns.get(field_name, []):
            for match in re.finditer(pattern, text, flags):
                value = match.group(1) if match.groups() else match.group(0)
                candidates.append(value.strip())
        return candidates

    def extract_detected(
        self, detections: dict[str, DetectedField]
    ) -> dict[str, ExtractedValue]:
        """Run :meth:`extract` over every detected field.

        Args:
            detections: Output of the fuzzy detector.

        Returns:
            Mapping of field name to its candidates, for fields that
            produced at least one candidate.
        """
        extracted: dict[str, ExtractedValue] = {}
        for name, detection in detections.items():
            candidates = self.extract(detection.line, detection.next_line, name)
            if candidates:
                extracted[name] = ExtractedValue(
                    field_name=name,
                    candidates=candidates,
                    confidence=detection.confidence,
                    source_line=detection.line,
                    matched_keyword=detection.matched_keyword,
                )

        logger.info("Pattern extraction found candidates for %d fields", len(extracted))
        return extracted

    def select(self, field_name: str, candidates: list[str]) -> SelectedValue | None:
        """Keep the first candidate that passes the field's shape rule.

        Args:
            field_name: Catalog key of the field.
            candidates: Raw candidates in preference order.

        Returns:
            The selected value, or ``None`` if every candidate was rejected.
        """
        definition = FIELD_CATALOG[field_name]
        rejected: list[str] = []
        for raw in candidates:
            try:
                value = definition.validate(raw)
            except ValidationFailure as exc:
                logger.debug("Rejected candidate %s", exc)
                rejected.append(raw)
                continue
            return SelectedValue(field_name, value, raw, rejected)
        return None

    def is_label_line(self, line: str) -> bool:
        """Whether a line reads as the label of some field or as ``key: value``."""
        if _KEY_VALUE.match(line):
            return True
        return any(self.detector.match(line, kws) for kws in self.detector.keywords.values())

    def _label_remainder(self, line: str, next_line: str, field_name: str) -> list[str]:
        candidates: list[str] = []
        for keyword in FIELD_CATALOG[field_name].keywords:
            if keyword in line:
                remainder = line.split(keyword, 1)[1].strip(" :-")
                if remainder:
                    candidates.append(remainder)
                break
        else:
            if ":" in line:
                remainder = line.split(":", 1)[1].strip(" :-")
                if remainder:
                    candidates.append(remainder)
        if next_line and not self.is_label_line(next_line):
            candidates.append(next_line)
        return candidates
