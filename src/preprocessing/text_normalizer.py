"""Unicode normalization and OCR-artifact cleanup of recognized text.

Turns the raw, script-mixed text returned by the OCR collaborator into a
canonically composed sequence of trimmed, non-empty lines. The transform is
idempotent: running it over its own output changes nothing.
"""

import re
import unicodedata
from dataclasses import dataclass

from src.utils.logger import get_logger

logger = get_logger(__name__)


# Glyphs the recognizer substitutes for Hebrew letters, and stray marks
# that never carry meaning on a ticket.
DEFAULT_ARTIFACTS: dict[str, str] = {
    "|": "ו",  # vertical bar misread for vav
    "`": "",
    "'": "",
    "_": "",
}

_HORIZONTAL_WS = re.compile(r"[^\S\n]+")


@dataclass(frozen=True)
class NormalizedText:
    """Normalized text and its line view."""

    text: str
    lines: tuple[str, ...]


class TextNormalizer:
    """Cleans raw OCR text.

    Args:
        artifacts: Single-character replacements applied before
            composition. Defaults to :data:`DEFAULT_ARTIFACTS`.
    """

    def __init__(self, artifacts: dict[str, str] | None = None) -> None:
        self.artifacts = dict(DEFAULT_ARTIFACTS if artifacts is None else artifacts)
        self._translation = str.maketrans(self.artifacts)

    def normalize(self, text: str) -> str:
        """Return the normalized form of ``text`` as newline-joined lines."""
        return "\n".join(self.split_lines(text))

    def split_lines(self, text: str) -> list[str]:
        """Normalize ``text`` and return its trimmed non-empty lines."""
        if not text:
            return []

        text = text.replace("\r\n", "\n").replace("\r", "\n")
        text = self._strip_controls(text)
        text = text.translate(self._translation)
        text = unicodedata.normalize("NFC", text)

        lines: list[str] = []
        for raw_line in text.split("\n"):
            line = _HORIZONTAL_WS.sub(" ", raw_line).strip()
            if line:
                lines.append(line)
        return lines

    def process(self, text: str) -> NormalizedText:
        """Normalize ``text`` into a :class:`NormalizedText`."""
        lines = tuple(self.split_lines(text))
        logger.debug("Normalized %d characters into %d lines", len(text or ""), len(lines))
        return NormalizedText(text="\n".join(lines), lines=lines)

    @staticmethod
    def _strip_controls(text: str) -> str:
        # Whitespace controls survive to be collapsed later; Cf covers bidi marks.
        return "".join(
            ch
            for ch in text
            if ch.isspace() or unicodedata.category(ch) not in ("Cc", "Cf")
        )
