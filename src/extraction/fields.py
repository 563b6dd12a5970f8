"""Static catalog of the fields expected on a traffic-violation ticket.

Each :class:`FieldDefinition` carries the label keywords used for fuzzy
detection, the description and examples given to the generative model, and
a shape rule that both validates and normalizes a candidate value. Shape
rules raise :class:`~src.errors.ValidationFailure` on rejection.
"""

import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation

from src.errors import ValidationFailure

ShapeRule = Callable[[str, str], str]


@dataclass(frozen=True)
class FieldDefinition:
    """Catalog entry for one ticket field."""

    name: str
    description: str
    required: bool
    keywords: tuple[str, ...]
    rule: ShapeRule
    examples: tuple[str, ...] = ()
    max_confidence: float = 0.8

    def validate(self, value: object) -> str:
        """Validate and normalize a raw value.

        Args:
            value: Raw candidate, usually a string.

        Returns:
            Normalized value.

        Raises:
            ValidationFailure: If the value is empty or has the wrong shape.
        """
        if value is None:
            raise ValidationFailure(self.name, value, "no value")
        text = str(value).strip()
        if not text or text.lower() == "null":
            raise ValidationFailure(self.name, value, "empty value")
        return self.rule(self.name, text)


_DMY = re.compile(r"^(\d{1,2})[/.](\d{1,2})[/.](\d{4})$")
_YMD = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_TIME = re.compile(r"^(\d{1,2})[:.](\d{2})$")
_PLATE = re.compile(r"^\d{2,3}[-\s]?\d{2,3}[-\s]?\d{2,3}$")
_CURRENCY = re.compile(r"[,\s₪$]|ש\"ח|ש״ח|שח")


def digits_rule(min_len: int, max_len: int | None = None) -> ShapeRule:
    """Build a rule accepting a bare digit run of the given length."""

    def rule(name: str, value: str) -> str:
        if not value.isdigit() or not value.isascii():
            raise ValidationFailure(name, value, "expected digits only")
        if len(value) < min_len or (max_len is not None and len(value) > max_len):
            bound = f"{min_len}+" if max_len is None else f"{min_len}-{max_len}"
            raise ValidationFailure(name, value, f"expected {bound} digits")
        return value

    return rule


def date_rule(name: str, value: str) -> str:
    """Accept D/M/YYYY, D.M.YYYY or YYYY-M-D and normalize to DD/MM/YYYY."""
    match = _DMY.match(value)
    if match:
        day, month, year = (int(g) for g in match.groups())
    else:
        match = _YMD.match(value)
        if not match:
            raise ValidationFailure(name, value, "invalid date format")
        year, month, day = (int(g) for g in match.groups())
    try:
        parsed = date(year, month, day)
    except ValueError as exc:
        raise ValidationFailure(name, value, f"invalid date values: {exc}") from exc
    return parsed.strftime("%d/%m/%Y")


def time_rule(name: str, value: str) -> str:
    """Accept H:MM or H.MM and normalize to HH:MM."""
    match = _TIME.match(value)
    if not match:
        raise ValidationFailure(name, value, "invalid time format")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ValidationFailure(name, value, "invalid time values")
    return f"{hour:02d}:{minute:02d}"


def amount_rule(minimum: int, maximum: int) -> ShapeRule:
    """Build a rule for a monetary amount within ``[minimum, maximum]``."""

    def rule(name: str, value: str) -> str:
        cleaned = _CURRENCY.sub("", value)
        try:
            amount = Decimal(cleaned)
        except InvalidOperation as exc:
            raise ValidationFailure(name, value, "invalid amount") from exc
        if not amount.is_finite() or not minimum <= amount <= maximum:
            raise ValidationFailure(
                name, value, f"amount outside [{minimum}, {maximum}]"
            )
        if amount == amount.to_integral_value():
            return str(int(amount))
        return f"{amount:.2f}"

    return rule


def points_rule(name: str, value: str) -> str:
    """Accept an integer point count between 0 and 12."""
    if not value.isdigit() or not value.isascii():
        raise ValidationFailure(name, value, "invalid points value")
    points = int(value)
    if points > 12:
        raise ValidationFailure(name, value, "points outside [0, 12]")
    return str(points)


def plate_rule(name: str, value: str) -> str:
    """Accept a 7-8 digit plate written in 2-3 digit groups."""
    if not _PLATE.match(value):
        raise ValidationFailure(name, value, "invalid plate format")
    digits = re.sub(r"\D", "", value)
    if len(digits) not in (7, 8):
        raise ValidationFailure(name, value, "plate must have 7 or 8 digits")
    return value.replace(" ", "-")


def text_rule(name: str, value: str) -> str:
    """Accept trimmed free text of 2-100 characters."""
    cleaned = " ".join(value.split())
    if len(cleaned) < 2 or len(cleaned) > 100:
        raise ValidationFailure(name, value, "text field too short or too long")
    return cleaned


REQUIRED_FIELDS: tuple[FieldDefinition, ...] = (
    FieldDefinition(
        name="reportNumber",
        description="מספר הדוח - רצף של 6 ספרות או יותר",
        required=True,
        keywords=("מספר דוח", "פרטי דוח מספר", "דוח מספר", "מס דוח"),
        rule=digits_rule(6),
        examples=("123456", "7891011", "456789123"),
        max_confidence=0.95,
    ),
    FieldDefinition(
        name="violationDate",
        description="תאריך העבירה בפורמט DD/MM/YYYY או DD.MM.YYYY",
        required=True,
        keywords=("תאריך עבירה", "תאריך", "עבירה ביום"),
        rule=date_rule,
        examples=("15/03/2024", "07.12.2023", "22/08/2024"),
        max_confidence=0.9,
    ),
    FieldDefinition(
        name="violationType",
        description="סוג העבירה, סעיף חוקי, מהירות בפועל ומהירות מותרת אם רלוונטי",
        required=True,
        keywords=("סעיף העבירה", "מס עבירה", "סעיף", "עבירה", "חוק"),
        rule=text_rule,
        examples=("תקנה 54(א) - עבירת מהירות 76/50 קמ״ש", "סעיף 68א - חניה אסורה"),
    ),
    FieldDefinition(
        name="fineAmount",
        description="סכום הקנס בשקלים (מספר בלבד)",
        required=True,
        keywords=("סכום לתשלום", "קנס", "סכום", "לתשלום"),
        rule=amount_rule(50, 10000),
        examples=("1000", "500", "250", "1500"),
        max_confidence=0.9,
    ),
)

OPTIONAL_FIELDS: tuple[FieldDefinition, ...] = (
    FieldDefinition(
        name="violationTime",
        description="שעת העבירה בפורמט HH:MM",
        required=False,
        keywords=("שעה", "זמן", "בשעה"),
        rule=time_rule,
        examples=("14:30", "09:15", "22:45"),
        max_confidence=0.85,
    ),
    FieldDefinition(
        name="location",
        description="מיקום העבירה - רחוב, כביש או כתובת",
        required=False,
        keywords=("מיקום", "רחוב", "כביש", "שדרות", "מקום"),
        rule=text_rule,
        examples=("רחוב הרצל 15", "כביש 1", "שדרות רוטשילד"),
    ),
    FieldDefinition(
        name="driverName",
        description="שם הנהג",
        required=False,
        keywords=("אל הנהג", "נהג", "שם הנהג"),
        rule=text_rule,
        examples=("יוסי כהן", "מרים לוי"),
    ),
    FieldDefinition(
        name="licenseNumber",
        description="מספר רישיון הנהיגה",
        required=False,
        keywords=("מספר רישוי", "רישיון", "רישוי"),
        rule=digits_rule(7, 9),
        examples=("12345678", "87654321"),
    ),
    FieldDefinition(
        name="points",
        description="מספר הנקודות (אם מצוין)",
        required=False,
        keywords=("נקודות", "נקודה", "ניקוד"),
        rule=points_rule,
        examples=("6", "4", "8", "2"),
        max_confidence=0.85,
    ),
    FieldDefinition(
        name="vehiclePlate",
        description="מספר רכב",
        required=False,
        keywords=("מספר רכב", "מס רכב", "רכב"),
        rule=plate_rule,
        examples=("123-45-678", "98-765-43"),
    ),
    FieldDefinition(
        name="appealDeadline",
        description="מועד אחרון לערעור בפורמט DD/MM/YYYY",
        required=False,
        keywords=("מועד אחרון", "מועד אחרון לערעור", "ערעור"),
        rule=date_rule,
        examples=("15/03/2024", "30/12/2023"),
        max_confidence=0.9,
    ),
)

FIELD_CATALOG: dict[str, FieldDefinition] = {
    f.name: f for f in REQUIRED_FIELDS + OPTIONAL_FIELDS
}

REQUIRED_FIELD_NAMES: tuple[str, ...] = tuple(f.name for f in REQUIRED_FIELDS)


def get_field(name: str) -> FieldDefinition:
    """Look up a catalog entry by field name.

    Raises:
        KeyError: If the field is not in the catalog.
    """
    return FIELD_CATALOG[name]
