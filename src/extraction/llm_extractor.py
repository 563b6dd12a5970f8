"""Model-assisted structured extraction using a chat-completion model.

Sends the normalized ticket text, together with what fuzzy detection and
pattern extraction already found, to a generative model that answers with
JSON. The answer is never trusted verbatim: every value is re-validated
against its catalog shape rule, and confidences are recombined with the
detector confidence and scaled by the overall OCR confidence.
"""

import json
from typing import Any

import openai
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as SchemaError

from src.errors import ExtractionFailure, ValidationFailure
from src.utils.config import ExtractionConfig
from src.utils.logger import get_logger
from src.validation.rules_engine import ResultValidator

from .fields import FIELD_CATALOG, OPTIONAL_FIELDS, REQUIRED_FIELDS, FieldDefinition
from .fuzzy_detector import DetectedField
from .result import ExtractionSource, FieldExtractionResult, ModelUsage
from .rule_extractor import ExtractedValue

logger = get_logger(__name__)


_INSTRUCTIONS = """You extract structured fields from noisy OCR text of Israeli traffic-violation tickets.

REQUIRED fields:
{required}

OPTIONAL fields:
{optional}

Rules:
1. Extract only information you are sure of. Never invent values.
2. Ignore noisy or irrelevant text.
3. If a field is missing or unclear, return null for it.
4. Give every field a confidence between 0.0 and 1.0.
5. Correct common Hebrew OCR letter confusions (ר/ד, ח/ה, ב/כ, ו/ן).
6. Look at adjacent lines too; a value often sits on the line after its label.
7. Dates must be DD/MM/YYYY.
8. Amounts are numbers only, without currency symbols.
9. For violationType include the legal section, offence code and measured/allowed speed when present.

Answer with JSON only, in exactly this structure:
{schema}"""


class GenerationResponse(BaseModel):
    """Expected JSON shape of the model's answer."""

    model_config = ConfigDict(populate_by_name=True)

    extracted_fields: dict[str, Any] = Field(alias="extractedFields")
    confidence_scores: dict[str, Any] = Field(default_factory=dict, alias="confidenceScores")
    processing_notes: list[str] = Field(default_factory=list, alias="processingNotes")


def _describe(definition: FieldDefinition) -> str:
    examples = ", ".join(definition.examples)
    return f"- {definition.name}: {definition.description} (examples: {examples})"


def build_system_prompt() -> str:
    """Render the fixed instruction contract for the model."""
    schema = {
        "extractedFields": {name: "value or null" for name in FIELD_CATALOG},
        "confidenceScores": {name: "0.0-1.0" for name in FIELD_CATALOG},
        "processingNotes": ["corrections made or problems found"],
    }
    return _INSTRUCTIONS.format(
        required="\n".join(_describe(d) for d in REQUIRED_FIELDS),
        optional="\n".join(_describe(d) for d in OPTIONAL_FIELDS),
        schema=json.dumps(schema, ensure_ascii=False, indent=2),
    )


def build_context(
    text: str,
    detections: dict[str, DetectedField],
    extracted: dict[str, ExtractedValue],
) -> str:
    """Render the user message: normalized text plus earlier findings."""
    detected = {
        name: {
            "line": d.line,
            "nextLine": d.next_line,
            "matchedKeyword": d.matched_keyword,
            "confidence": round(d.confidence, 3),
        }
        for name, d in detections.items()
    }
    values = {
        name: {"values": v.candidates, "confidence": round(v.confidence, 3)}
        for name, v in extracted.items()
    }
    return (
        f"Normalized OCR text:\n{text}\n\n"
        f"Fields detected by keyword matching:\n"
        f"{json.dumps(detected, ensure_ascii=False, indent=2)}\n\n"
        f"Values extracted by patterns:\n"
        f"{json.dumps(values, ensure_ascii=False, indent=2)}\n"
    )


def _as_confidence(value: Any) -> float:
    try:
        score = float(value)
    except (TypeError, ValueError):
        return 0.0
    if score != score:
        return 0.0
    return max(0.0, min(1.0, score))


def _is_absent(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip().lower() in ("", "null"))


class StructuredFieldExtractor:
    """Structured field extraction through an external chat model.

    The client handle is shared across invocations; each call issues an
    independent request, so no locking is needed.

    Args:
        config: Model name, sampling settings, timeout and weights.
        client: An ``openai.OpenAI``-compatible client. Created lazily
            from the environment if ``None``.
        validator: Computes the validation summary of the result.
    """

    def __init__(
        self,
        config: ExtractionConfig | None = None,
        client: Any | None = None,
        validator: ResultValidator | None = None,
    ) -> None:
        self.config = config or ExtractionConfig()
        self._client = client
        self.validator = validator or ResultValidator()
        self.system_prompt = build_system_prompt()

    def _get_client(self) -> Any:
        """Lazily initialize the model client on first use."""
        if self._client is None:
            try:
                self._client = openai.OpenAI()
            except openai.OpenAIError as exc:
                raise ExtractionFailure(f"model client unavailable: {exc}") from exc
        return self._client

    def extract(
        self,
        text: str,
        detections: dict[str, DetectedField] | None = None,
        extracted: dict[str, ExtractedValue] | None = None,
        ocr_confidence: float = 1.0,
        timeout: float | None = None,
    ) -> FieldExtractionResult:
        """Extract every catalog field with one model call.

        Args:
            text: Normalized document text.
            detections: Fuzzy detector output, for grounding and confidence.
            extracted: Pattern extractor output, for grounding.
            ocr_confidence: Overall OCR confidence in ``[0, 1]``.
            timeout: Seconds to wait for the model; defaults to the config.

        Returns:
            A result covering every catalog field.

        Raises:
            ExtractionFailure: If the call fails, times out or returns
                malformed output.
        """
        detections = detections or {}
        extracted = extracted or {}
        response, usage = self._call_model(
            build_context(text, detections, extracted),
            self.config.timeout_s if timeout is None else timeout,
        )

        fields: dict[str, str | None] = {}
        confidences: dict[str, float] = {}
        notes = list(response.processing_notes)

        for name, definition in FIELD_CATALOG.items():
            raw = response.extracted_fields.get(name)
            if _is_absent(raw):
                fields[name] = None
                confidences[name] = 0.0
                continue

            try:
                value = definition.validate(raw)
            except ValidationFailure as exc:
                logger.warning("Discarded model value %s", exc)
                notes.append(f"Field {name} failed validation: {exc.reason}")
                fields[name] = None
                confidences[name] = 0.0
                continue

            confidence = min(
                _as_confidence(response.confidence_scores.get(name)),
                definition.max_confidence,
            )
            detection = detections.get(name)
            if detection is not None:
                confidence = (
                    self.config.model_weight * confidence
                    + self.config.detector_weight * detection.confidence
                )
                notes.append(f"Field {name} enhanced with preprocessing confidence")

            fields[name] = value
            confidences[name] = confidence * ocr_confidence

        logger.info(
            "Model extraction returned %d of %d fields",
            sum(v is not None for v in fields.values()),
            len(fields),
        )
        return FieldExtractionResult(
            fields=fields,
            confidences=confidences,
            validation=self.validator.summarize(fields, confidences),
            notes=tuple(notes),
            source=ExtractionSource.MODEL,
            usage=usage,
        )

    def _call_model(self, context: str, timeout: float) -> tuple[GenerationResponse, ModelUsage]:
        client = self._get_client().with_options(timeout=timeout, max_retries=0)
        try:
            completion = client.chat.completions.create(
                model=self.config.model_name,
                messages=[
                    {"role": "system", "content": self.system_prompt},
                    {"role": "user", "content": context},
                ],
                temperature=self.config.temperature,
                max_tokens=self.config.max_tokens,
                response_format={"type": "json_object"},
            )
        except openai.OpenAIError as exc:
            raise ExtractionFailure(f"model call failed: {exc}") from exc

        if not completion.choices or not completion.choices[0].message.content:
            raise ExtractionFailure("model returned an empty response")

        try:
            payload = json.loads(completion.choices[0].message.content)
            response = GenerationResponse.model_validate(payload)
        except json.JSONDecodeError as exc:
            raise ExtractionFailure(f"model returned malformed JSON: {exc}") from exc
        except SchemaError as exc:
            raise ExtractionFailure(f"model response has the wrong structure: {exc}") from exc

        usage = completion.usage
        return response, ModelUsage(
            model=self.config.model_name,
            prompt_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            completion_tokens=getattr(usage, "completion_tokens", 0) or 0,
            total_tokens=getattr(usage, "total_tokens", 0) or 0,
        )
