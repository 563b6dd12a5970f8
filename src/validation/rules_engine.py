"""Merging and required-field validation of extraction results.

Reconciles the model-assisted result with the deterministic one for the
watch-list fields the model tends to miss, computes the validation summary
(completeness and the missing/low-confidence required fields), and applies
user corrections to a prior result.
"""

from collections.abc import Mapping, Sequence
from dataclasses import replace

from src.extraction.fields import FIELD_CATALOG, REQUIRED_FIELD_NAMES
from src.extraction.result import (
    ExtractionSource,
    FieldExtractionResult,
    LowConfidenceField,
    ValidationSummary,
)
from src.utils.config import ValidationConfig
from src.utils.logger import get_logger

logger = get_logger(__name__)


class ResultValidator:
    """Validates and merges field extraction results.

    Args:
        config: Threshold, watch list and override confidence.
        required_fields: Field names whose coverage defines completeness.
    """

    def __init__(
        self,
        config: ValidationConfig | None = None,
        required_fields: Sequence[str] = REQUIRED_FIELD_NAMES,
    ) -> None:
        self.config = config or ValidationConfig()
        self.required_fields = tuple(required_fields)
        self.watch_list = tuple(self.config.watch_list)

    @property
    def threshold(self) -> float:
        return self.config.confidence_threshold

    def summarize(
        self,
        fields: Mapping[str, str | None],
        confidences: Mapping[str, float],
        threshold: float | None = None,
    ) -> ValidationSummary:
        """Compute required-field coverage.

        A required field counts as valid only when it holds a non-blank
        value and its confidence reaches the threshold.

        Args:
            fields: Field values, ``None`` for absent.
            confidences: Field confidences.
            threshold: Acceptance threshold; defaults to the configured one.

        Returns:
            Validation summary with completeness in percent.
        """
        threshold = self.threshold if threshold is None else threshold
        missing: list[str] = []
        low: list[LowConfidenceField] = []
        valid = 0

        for name in self.required_fields:
            value = fields.get(name)
            confidence = confidences.get(name, 0.0)
            if value is None or not str(value).strip():
                missing.append(name)
            elif confidence < threshold:
                low.append(LowConfidenceField(name, confidence))
            else:
                valid += 1

        total = len(self.required_fields)
        completeness = (valid / total) * 100 if total else 100.0
        return ValidationSummary(
            is_valid=not missing and not low,
            missing_fields=tuple(missing),
            low_confidence_fields=tuple(low),
            completeness=completeness,
        )

    def missing_watch_list(self, result: FieldExtractionResult) -> list[str]:
        """Watch-list fields the result has no value for."""
        return [name for name in self.watch_list if not result.has(name)]

    def merge(
        self,
        primary: FieldExtractionResult,
        secondary: FieldExtractionResult | None = None,
        threshold: float | None = None,
    ) -> FieldExtractionResult:
        """Back-fill watch-list gaps of ``primary`` from ``secondary``.

        Only watch-list fields absent from the primary result are taken,
        verbatim and with the secondary confidence; every other field of
        the primary result is left untouched.

        Args:
            primary: The chosen result, model-assisted or deterministic.
            secondary: Optional deterministic result.
            threshold: Acceptance threshold for the summary.

        Returns:
            A new result with a recomputed validation summary.
        """
        fields = dict(primary.fields)
        confidences = dict(primary.confidences)
        notes = list(primary.notes)
        source = primary.source

        if secondary is not None:
            for name in self.missing_watch_list(primary):
                if not secondary.has(name):
                    continue
                fields[name] = secondary.fields[name]
                confidences[name] = secondary.confidence(name)
                notes.append(f"Field {name} filled from deterministic extraction")
                logger.info("Back-filled watch-list field %s", name)
                if source == ExtractionSource.MODEL:
                    source = ExtractionSource.HYBRID

        return replace(
            primary,
            fields=fields,
            confidences=confidences,
            notes=tuple(notes),
            source=source,
            validation=self.summarize(fields, confidences, threshold),
        )

    def apply_corrections(
        self,
        prior: FieldExtractionResult,
        overrides: Mapping[str, str | None],
    ) -> FieldExtractionResult:
        """Amend a prior result with user-supplied field values.

        Non-blank overrides replace the value and force the configured
        override confidence; blank overrides clear the field. Unknown field
        names are ignored with a note.

        Args:
            prior: The result being corrected.
            overrides: Field name to corrected value.

        Returns:
            A new result with recomputed validation.
        """
        fields = dict(prior.fields)
        confidences = dict(prior.confidences)
        notes = list(prior.notes)

        for name, raw in overrides.items():
            if name not in FIELD_CATALOG:
                notes.append(f"Ignored correction for unknown field {name}")
                continue
            value = str(raw).strip() if raw is not None else ""
            if value:
                fields[name] = value
                confidences[name] = self.config.override_confidence
                notes.append(f"Field {name} corrected by user")
            else:
                fields[name] = None
                confidences[name] = 0.0
                notes.append(f"Field {name} cleared by user")

        summary = self.summarize(fields, confidences)
        logger.info(
            "Applied %d corrections, completeness %.0f%%",
            len(overrides),
            summary.completeness,
        )
        return replace(
            prior,
            fields=fields,
            confidences=confidences,
            notes=tuple(notes),
            source=ExtractionSource.CORRECTED,
            validation=summary,
        )
