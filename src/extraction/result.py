"""Terminal artifacts of the field-extraction pipeline.

A :class:`FieldExtractionResult` is created once per analysis request and
never mutated afterwards; amendments (watch-list back-fill, user
corrections) always build a new instance.
"""

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class ExtractionSource(StrEnum):
    """Which tier produced a result."""

    MODEL = "model"
    DETERMINISTIC = "deterministic"
    HYBRID = "model+deterministic"
    CORRECTED = "corrected"


@dataclass(frozen=True)
class LowConfidenceField:
    """A required field present but below the acceptance threshold."""

    field: str
    confidence: float


@dataclass(frozen=True)
class ValidationSummary:
    """Required-field coverage of a result."""

    is_valid: bool
    missing_fields: tuple[str, ...]
    low_confidence_fields: tuple[LowConfidenceField, ...]
    completeness: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "missingFields": list(self.missing_fields),
            "lowConfidenceFields": [
                {"field": f.field, "confidence": f.confidence}
                for f in self.low_confidence_fields
            ],
            "completeness": self.completeness,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ValidationSummary":
        return cls(
            is_valid=bool(data.get("isValid", False)),
            missing_fields=tuple(data.get("missingFields", [])),
            low_confidence_fields=tuple(
                LowConfidenceField(item["field"], float(item["confidence"]))
                for item in data.get("lowConfidenceFields", [])
            ),
            completeness=float(data.get("completeness", 0.0)),
        )


@dataclass(frozen=True)
class ModelUsage:
    """Token accounting for one generative-model call."""

    model: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "model": self.model,
            "promptTokens": self.prompt_tokens,
            "completionTokens": self.completion_tokens,
            "totalTokens": self.total_tokens,
        }


@dataclass(frozen=True)
class FieldExtractionResult:
    """Per-field values and confidences with a validation summary.

    ``fields`` and ``confidences`` cover every catalog field; an absent
    value is ``None`` with confidence ``0.0``.
    """

    fields: dict[str, str | None]
    confidences: dict[str, float]
    validation: ValidationSummary
    notes: tuple[str, ...] = ()
    source: ExtractionSource = ExtractionSource.DETERMINISTIC
    stages: tuple[str, ...] = ()
    usage: ModelUsage | None = None

    def value(self, name: str) -> str | None:
        return self.fields.get(name)

    def confidence(self, name: str) -> float:
        return self.confidences.get(name, 0.0)

    def has(self, name: str) -> bool:
        """Whether the field holds a non-blank value."""
        value = self.fields.get(name)
        return value is not None and bool(str(value).strip())

    @property
    def found_fields(self) -> list[str]:
        return [name for name in self.fields if self.has(name)]

    def to_dict(self) -> dict[str, Any]:
        """Serialize using the wire names shared with persistence."""
        return {
            "extractedFields": dict(self.fields),
            "confidenceScores": {k: round(v, 4) for k, v in self.confidences.items()},
            "processingNotes": list(self.notes),
            "validation": self.validation.to_dict(),
            "source": str(self.source),
            "stages": list(self.stages),
            "usage": self.usage.to_dict() if self.usage else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FieldExtractionResult":
        """Rebuild a result previously produced by :meth:`to_dict`."""
        usage = data.get("usage")
        return cls(
            fields=dict(data.get("extractedFields", {})),
            confidences={
                k: float(v) for k, v in data.get("confidenceScores", {}).items()
            },
            validation=ValidationSummary.from_dict(data.get("validation", {})),
            notes=tuple(data.get("processingNotes", [])),
            source=ExtractionSource(data.get("source", ExtractionSource.DETERMINISTIC)),
            stages=tuple(data.get("stages", [])),
            usage=(
                ModelUsage(
                    model=usage["model"],
                    prompt_tokens=usage.get("promptTokens", 0),
                    completion_tokens=usage.get("completionTokens", 0),
                    total_tokens=usage.get("totalTokens", 0),
                )
                if usage
                else None
            ),
        )
