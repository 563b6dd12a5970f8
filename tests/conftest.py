"""Shared test fixtures for the ticket field-extraction test suite."""

import json
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from src.ocr.tesseract_engine import RecognizedDocument

SAMPLE_TICKET = "\n".join(
    [
        "מספר דוח: 123456789",
        "תאריך עבירה: 15/03/2024",
        "שעה: 14:30",
        "סעיף העבירה:",
        "54(א) נהיגה במהירות",
        "סכום לתשלום: 1,000 ₪",
        "נקודות: 6",
        "מספר רכב: 12-345-67",
    ]
)


def model_payload(**overrides: Any) -> dict[str, Any]:
    """Build a well-formed model answer, overriding selected field values."""
    fields: dict[str, Any] = {
        "reportNumber": "123456789",
        "violationDate": "15/03/2024",
        "violationType": "54(א) נהיגה במהירות",
        "fineAmount": "1000",
        "violationTime": "14:30",
        "location": None,
        "driverName": None,
        "licenseNumber": None,
        "points": "6",
        "vehiclePlate": "12-345-67",
        "appealDeadline": "14/04/2024",
    }
    fields.update(overrides)
    return {
        "extractedFields": fields,
        "confidenceScores": {name: 0.9 for name in fields},
        "processingNotes": ["Corrected ר/ד confusion in label"],
    }


def make_client(content: str | dict[str, Any] | None) -> MagicMock:
    """Create a mock chat client whose completion returns ``content``."""
    if isinstance(content, dict):
        content = json.dumps(content, ensure_ascii=False)

    completion = MagicMock()
    completion.choices = [MagicMock()]
    completion.choices[0].message.content = content
    completion.usage.prompt_tokens = 900
    completion.usage.completion_tokens = 150
    completion.usage.total_tokens = 1050

    client = MagicMock()
    client.with_options.return_value = client
    client.chat.completions.create.return_value = completion
    return client


@pytest.fixture
def sample_text() -> str:
    """Return OCR text of a typical speeding ticket."""
    return SAMPLE_TICKET


@pytest.fixture
def sample_document() -> RecognizedDocument:
    """Return a recognized document without symbol confidences."""
    return RecognizedDocument(text=SAMPLE_TICKET, mime_type="text/plain")


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def config_dir(project_root: Path) -> Path:
    """Return the configs directory path."""
    return project_root / "configs"
