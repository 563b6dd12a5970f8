"""Fuzzy keyword detection of field-label lines.

Compares every normalized line against the label keywords of every catalog
field using Levenshtein edit distance, so that labels survive OCR letter
confusions. A field maps to at most one line; when several lines qualify the
last one wins.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

import numpy as np

from src.utils.config import DetectionConfig
from src.utils.logger import get_logger

from .fields import FIELD_CATALOG, FieldDefinition

logger = get_logger(__name__)


@dataclass
class DetectedField:
    """A line identified as the label line of a field."""

    field_name: str
    line_index: int
    line: str
    next_line: str
    matched_keyword: str
    similarity: float
    distance: int
    confidence: float


@dataclass
class KeywordMatch:
    """Outcome of comparing one line against one keyword."""

    keyword: str
    distance: int
    similarity: float


def levenshtein(a: str, b: str) -> int:
    """Compute the Levenshtein edit distance between two strings.

    Rows of the dynamic-programming table are computed with numpy; the
    insertion chain within a row is resolved by a running minimum.
    """
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    target = np.array(list(b))
    idx = np.arange(len(b) + 1)
    prev = idx.copy()
    row = np.empty_like(prev)

    for i, ch in enumerate(a, 1):
        cost = (target != ch).astype(idx.dtype)
        row[0] = i
        row[1:] = np.minimum(prev[1:] + 1, prev[:-1] + cost)
        prev = np.minimum.accumulate(row - idx) + idx

    return int(prev[-1])


def clean_label(text: str) -> str:
    """Keep only letters of the Hebrew block and ASCII letters.

    Digits, punctuation and diacritics become separators so that a label
    line such as ``"מספר דוח: 123456"`` compares as ``"מספר דוח"``.
    """
    chars = []
    for ch in text:
        code = ord(ch)
        if (0x0590 <= code <= 0x05FF and ch.isalpha()) or (ch.isascii() and ch.isalpha()):
            chars.append(ch)
        else:
            chars.append(" ")
    return " ".join("".join(chars).split())


class FuzzyFieldDetector:
    """Locates candidate label lines for catalog fields.

    Args:
        config: Detection thresholds.
        catalog: Field definitions to detect. Defaults to the full catalog.
    """

    def __init__(
        self,
        config: DetectionConfig | None = None,
        catalog: Iterable[FieldDefinition] | None = None,
    ) -> None:
        self.config = config or DetectionConfig()
        definitions = list(catalog) if catalog is not None else list(FIELD_CATALOG.values())
        self.keywords: dict[str, list[str]] = {
            d.name: [k for k in (clean_label(kw) for kw in d.keywords) if k]
            for d in definitions
        }

    def match(self, line: str, keywords: Sequence[str]) -> KeywordMatch | None:
        """Return the first keyword the line fuzzily matches, if any.

        Args:
            line: A normalized text line.
            keywords: Cleaned keywords to compare against.

        Returns:
            The qualifying match, or ``None``.
        """
        cleaned = clean_label(line)
        if not cleaned:
            return None

        for keyword in keywords:
            distance = levenshtein(cleaned, keyword)
            similarity = 1 - distance / max(len(cleaned), len(keyword))
            if (
                distance <= self.config.max_edit_distance
                or similarity >= self.config.min_similarity
            ):
                return KeywordMatch(keyword, distance, similarity)
        return None

    def detect(self, lines: Sequence[str]) -> dict[str, DetectedField]:
        """Detect field label lines.

        Args:
            lines: Normalized, non-empty text lines in document order.

        Returns:
            Mapping of field name to the last line that matched it.
        """
        detected: dict[str, DetectedField] = {}

        for i, line in enumerate(lines):
            next_line = lines[i + 1] if i + 1 < len(lines) else ""
            for field_name, keywords in self.keywords.items():
                found = self.match(line, keywords)
                if found is None:
                    continue
                detected[field_name] = DetectedField(
                    field_name=field_name,
                    line_index=i,
                    line=line,
                    next_line=next_line,
                    matched_keyword=found.keyword,
                    similarity=found.similarity,
                    distance=found.distance,
                    confidence=self._confidence(found.similarity),
                )

        logger.info("Fuzzy detection matched %d fields in %d lines", len(detected), len(lines))
        return detected

    def _confidence(self, similarity: float) -> float:
        return min(self.config.confidence_cap, similarity + self.config.confidence_boost)
