"""Tiered extraction pipeline combining model-assisted and rule-based passes.

The model-assisted pass runs first. Its result is accepted as-is when it
covers every watch-list field; otherwise, or when the model pass fails, the
deterministic pass runs and its values back-fill the gaps (or stand in for
the whole result). Only when both passes fail does the pipeline fail.
"""

from collections.abc import Mapping
from dataclasses import replace
from enum import StrEnum
from typing import Any

from src.errors import ExtractionFailure, RecognitionFailure, TotalPipelineFailure
from src.ocr.tesseract_engine import RecognizedDocument
from src.preprocessing.text_normalizer import TextNormalizer
from src.utils.config import AppConfig
from src.utils.logger import get_logger
from src.validation.rules_engine import ResultValidator

from .fields import FIELD_CATALOG
from .fuzzy_detector import DetectedField, FuzzyFieldDetector
from .llm_extractor import StructuredFieldExtractor
from .result import ExtractionSource, FieldExtractionResult
from .rule_extractor import ExtractedValue, PatternExtractor

logger = get_logger(__name__)


class PipelineState(StrEnum):
    """States of one pipeline invocation."""

    NORMALIZING = "normalizing"
    MODEL_ASSISTED = "model_assisted"
    ACCEPTED = "accepted"
    FALLBACK_DETERMINISTIC = "fallback_deterministic"
    MERGING = "merging"
    DONE = "done"
    FAILED = "failed"


class PipelineOrchestrator:
    """Runs the extraction tiers for one recognized document at a time.

    Holds no per-invocation state, so one instance may serve concurrent
    invocations; the model client is the only shared resource.

    Args:
        config: Application configuration.
        model_extractor: Model-assisted extractor. Built from the config
            (and ``client``) if ``None``.
        client: Model client handed to the default model extractor.
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        model_extractor: StructuredFieldExtractor | None = None,
        client: Any | None = None,
    ) -> None:
        self.config = config or AppConfig()
        self.normalizer = TextNormalizer()
        self.detector = FuzzyFieldDetector(self.config.detection)
        self.pattern_extractor = PatternExtractor(self.detector)
        self.validator = ResultValidator(self.config.validation)
        self.model_extractor = model_extractor or StructuredFieldExtractor(
            self.config.extraction, client=client, validator=self.validator
        )

    def run(
        self,
        document: RecognizedDocument,
        use_model: bool = True,
        timeout: float | None = None,
    ) -> FieldExtractionResult:
        """Extract ticket fields from a recognized document.

        Args:
            document: OCR output for the document.
            use_model: Whether to attempt the model-assisted pass.
            timeout: Seconds allowed for the model call.

        Returns:
            The final, validated extraction result.

        Raises:
            RecognitionFailure: If the document holds no text.
            TotalPipelineFailure: If both extraction passes fail.
        """
        stages: list[str] = []

        def enter(state: PipelineState) -> None:
            stages.append(str(state))
            logger.debug("Pipeline state -> %s", state)

        enter(PipelineState.NORMALIZING)
        normalized = self.normalizer.process(document.text)
        if not normalized.lines:
            raise RecognitionFailure("document contains no recognizable text")

        ocr_confidence = document.mean_confidence()
        if ocr_confidence is None:
            ocr_confidence = self.config.ocr.default_confidence

        detections = self.detector.detect(normalized.lines)
        extracted = self.pattern_extractor.extract_detected(detections)

        model_result: FieldExtractionResult | None = None
        model_error: ExtractionFailure | None = None
        if use_model and self.config.extraction.use_model:
            enter(PipelineState.MODEL_ASSISTED)
            try:
                model_result = self.model_extractor.extract(
                    normalized.text, detections, extracted, ocr_confidence, timeout
                )
            except ExtractionFailure as exc:
                logger.warning("Model-assisted extraction failed: %s", exc)
                model_error = exc
        else:
            model_error = ExtractionFailure("model-assisted extraction disabled")

        if model_result is not None and not self.validator.missing_watch_list(model_result):
            enter(PipelineState.ACCEPTED)
            enter(PipelineState.MERGING)
            result = self.validator.merge(model_result)
        else:
            enter(PipelineState.FALLBACK_DETERMINISTIC)
            try:
                deterministic = self.run_deterministic(detections, extracted, ocr_confidence)
            except ExtractionFailure as exc:
                if model_result is None:
                    enter(PipelineState.FAILED)
                    logger.error("Both extraction passes failed for document")
                    raise TotalPipelineFailure(
                        f"model: {model_error}; deterministic: {exc}"
                    ) from exc
                logger.info("Deterministic pass found nothing to back-fill: %s", exc)
                deterministic = None

            enter(PipelineState.MERGING)
            if model_result is not None:
                result = self.validator.merge(model_result, deterministic)
            else:
                result = self.validator.merge(
                    replace(
                        deterministic,
                        notes=(f"Model-assisted extraction unavailable: {model_error}",)
                        + deterministic.notes,
                    )
                )

        enter(PipelineState.DONE)
        logger.info(
            "Extraction finished via %s, completeness %.0f%%",
            result.source,
            result.validation.completeness,
        )
        return replace(result, stages=tuple(stages))

    def run_deterministic(
        self,
        detections: Mapping[str, DetectedField],
        extracted: Mapping[str, ExtractedValue],
        ocr_confidence: float,
    ) -> FieldExtractionResult:
        """Build a result from detector and pattern output alone.

        For each field the first candidate that passes its shape rule is
        kept, with the detection confidence scaled by the OCR confidence.

        Raises:
            ExtractionFailure: If no field yields a valid value.
        """
        fields: dict[str, str | None] = {name: None for name in FIELD_CATALOG}
        confidences: dict[str, float] = {name: 0.0 for name in FIELD_CATALOG}
        notes: list[str] = []

        for name, value in extracted.items():
            selected = self.pattern_extractor.select(name, value.candidates)
            if selected is None:
                notes.append(
                    f"Field {name}: none of {len(value.candidates)} candidates passed validation"
                )
                continue
            fields[name] = selected.value
            confidences[name] = value.confidence * ocr_confidence

        if not any(v is not None for v in fields.values()):
            raise ExtractionFailure(
                f"no valid values among {len(detections)} detected fields"
            )

        return FieldExtractionResult(
            fields=fields,
            confidences=confidences,
            validation=self.validator.summarize(fields, confidences),
            notes=tuple(notes),
            source=ExtractionSource.DETERMINISTIC,
        )

    def correct(
        self, prior: FieldExtractionResult, overrides: Mapping[str, str | None]
    ) -> FieldExtractionResult:
        """Apply user corrections to a prior result."""
        return self.validator.apply_corrections(prior, overrides)
