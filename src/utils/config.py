"""Configuration management for the ticket field-extraction pipeline.

Loads and validates YAML configuration with defaults for OCR, fuzzy
detection, model-assisted extraction and result validation. Every tunable
threshold of the pipeline lives here rather than in module constants.
"""

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class OCRConfig(BaseModel):
    """Configuration for the Tesseract OCR collaborator."""

    tesseract_cmd: str | None = None
    default_lang: str = "heb"
    psm: int = 3
    default_confidence: float = Field(default=0.8, ge=0.0, le=1.0)


class DetectionConfig(BaseModel):
    """Thresholds for fuzzy keyword detection."""

    max_edit_distance: int = Field(default=2, ge=0)
    min_similarity: float = Field(default=0.7, ge=0.0, le=1.0)
    confidence_boost: float = 0.1
    confidence_cap: float = Field(default=0.95, ge=0.0, le=1.0)


class ExtractionConfig(BaseModel):
    """Configuration for the model-assisted extraction tier."""

    use_model: bool = True
    model_name: str = "gpt-4o-mini"
    temperature: float = 0.1
    max_tokens: int = 1500
    timeout_s: float = 30.0
    model_weight: float = 0.7
    detector_weight: float = 0.3


class ValidationConfig(BaseModel):
    """Configuration for result merging and required-field validation."""

    confidence_threshold: float = Field(default=0.6, ge=0.0, le=1.0)
    watch_list: list[str] = Field(
        default_factory=lambda: ["vehiclePlate", "points", "appealDeadline"]
    )
    override_confidence: float = Field(default=0.95, ge=0.0, le=1.0)


class AppConfig(BaseModel):
    """Top-level application configuration."""

    ocr: OCRConfig = Field(default_factory=OCRConfig)
    detection: DetectionConfig = Field(default_factory=DetectionConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    validation: ValidationConfig = Field(default_factory=ValidationConfig)
    log_level: str = "INFO"


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file.
            Defaults to configs/config.yaml.

    Returns:
        Validated application configuration.
    """
    if path is None:
        path = Path("configs/config.yaml")

    if path.exists():
        logger.info("Loading configuration from %s", path)
        with open(path, encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
        return AppConfig(**raw)

    logger.info("No config file found at %s, using defaults", path)
    return AppConfig()
