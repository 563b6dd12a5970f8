"""Tesseract-backed OCR collaborator producing recognized documents.

The extraction pipeline treats OCR as a black box returning raw text and
per-symbol confidences; this module is one implementation of that contract
and the home of the :class:`RecognizedDocument` it returns.
"""

import io
from dataclasses import dataclass, field
from typing import Any

import numpy as np
import pytesseract
from PIL import Image, UnidentifiedImageError
from pydantic import BaseModel, Field
from pydantic import ValidationError as SchemaError

from src.errors import RecognitionFailure
from src.utils.logger import get_logger

logger = get_logger(__name__)


class SymbolDump(BaseModel):
    """One symbol of a saved OCR dump; confidences are on a 0-1 scale."""

    text: str = ""
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class OcrDump(BaseModel):
    """Shape of a saved OCR dump file."""

    text: str | None = None
    symbols: list[SymbolDump] = Field(default_factory=list)
    pages: list[dict[str, Any]] = Field(default_factory=list)


@dataclass(frozen=True)
class RecognizedSymbol:
    """A recognized symbol (word or character) with its confidence."""

    text: str
    confidence: float


@dataclass(frozen=True)
class RecognizedDocument:
    """Raw OCR output for one document, immutable once received."""

    text: str
    symbols: tuple[RecognizedSymbol, ...] = ()
    byte_size: int = 0
    mime_type: str = "application/octet-stream"
    pages: tuple[dict, ...] = field(default=(), compare=False)

    def mean_confidence(self) -> float | None:
        """Average symbol confidence, or ``None`` without symbols."""
        if not self.symbols:
            return None
        return float(np.mean([s.confidence for s in self.symbols]))

    @classmethod
    def from_dict(cls, data: Any, mime_type: str = "application/json") -> "RecognizedDocument":
        """Build a document from an OCR dump ``{"text", "symbols": [...]}``.

        Raises:
            RecognitionFailure: If the dump is not an object of that shape
                or a symbol confidence lies outside ``[0, 1]``.
        """
        try:
            dump = OcrDump.model_validate(data)
        except SchemaError as exc:
            raise RecognitionFailure(
                f"malformed OCR dump: {exc.error_count()} schema errors"
            ) from exc

        text = dump.text or ""
        return cls(
            text=text,
            symbols=tuple(RecognizedSymbol(s.text, s.confidence) for s in dump.symbols),
            byte_size=len(text.encode("utf-8")),
            mime_type=mime_type,
            pages=tuple(dump.pages),
        )


class TesseractEngine:
    """Wrapper around Tesseract OCR for ticket images.

    Args:
        tesseract_cmd: Path to the Tesseract executable.
            If ``None``, uses the system default.
        default_lang: OCR language code.
        psm: Tesseract page segmentation mode.
    """

    def __init__(
        self,
        tesseract_cmd: str | None = None,
        default_lang: str = "heb",
        psm: int = 3,
    ) -> None:
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd
        self.default_lang = default_lang
        self.psm = psm

    def recognize(
        self, image_bytes: bytes, mime_type: str = "application/octet-stream"
    ) -> RecognizedDocument:
        """Recognize text in an encoded image.

        Args:
            image_bytes: Encoded image file contents.
            mime_type: Declared media type of the upload.

        Returns:
            The recognized document with word-level confidences.

        Raises:
            RecognitionFailure: If the image cannot be read, Tesseract
                fails, or no text is recognized.
        """
        try:
            image = Image.open(io.BytesIO(image_bytes))
            image.load()
        except (UnidentifiedImageError, OSError) as exc:
            raise RecognitionFailure(f"unreadable image: {exc}") from exc

        config = f"--psm {self.psm}"
        try:
            text = pytesseract.image_to_string(image, lang=self.default_lang, config=config)
            data = pytesseract.image_to_data(
                image,
                lang=self.default_lang,
                config=config,
                output_type=pytesseract.Output.DICT,
            )
        except pytesseract.TesseractError as exc:
            raise RecognitionFailure(f"tesseract failed: {exc}") from exc

        if not text or not text.strip():
            raise RecognitionFailure("OCR returned empty text")

        symbols: list[RecognizedSymbol] = []
        for word_text, conf in zip(data["text"], data["conf"], strict=False):
            word_text = str(word_text).strip()
            conf = float(conf)
            if conf > 0 and word_text:
                symbols.append(RecognizedSymbol(word_text, conf / 100.0))

        document = RecognizedDocument(
            text=text,
            symbols=tuple(symbols),
            byte_size=len(image_bytes),
            mime_type=mime_type,
        )
        logger.info(
            "OCR recognized %d words with mean confidence %.2f",
            len(symbols),
            document.mean_confidence() or 0.0,
        )
        return document
