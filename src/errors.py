"""Error taxonomy for the ticket field-extraction pipeline.

Recognition failures abort a request before extraction starts, extraction
failures are recovered by falling back to the deterministic tier, validation
failures discard a single field value, and a total pipeline failure means
neither tier produced anything usable.
"""


class PipelineError(Exception):
    """Base class for all pipeline errors."""


class RecognitionFailure(PipelineError):
    """The OCR collaborator was unusable or returned empty text."""


class ExtractionFailure(PipelineError):
    """An extraction tier could not produce a result."""


class ValidationFailure(PipelineError):
    """A candidate value does not match its field's shape rule.

    Args:
        field_name: Catalog key of the rejected field.
        value: The rejected raw value.
        reason: Human-readable rejection reason.
    """

    def __init__(self, field_name: str, value: object, reason: str) -> None:
        super().__init__(f"{field_name}={value!r}: {reason}")
        self.field_name = field_name
        self.value = value
        self.reason = reason


class TotalPipelineFailure(PipelineError):
    """Both the model-assisted and the deterministic tiers failed."""
