from typing import Literal

from pydantic import BaseModel, ConfigDict, field_validator

# ---------------------------------------------------------------------------
# JSON Schemas. Groq strict mode requires additionalProperties: false
# everywhere and all properties in "required".  Optional values are
# expressed as ["<type>", "null"].
# ---------------------------------------------------------------------------

_NULLABLE_STRING = {"type": ["string", "null"]}

EXTRACTION_SCHEMA = {
    "type": "object",
    "properties": {
        "classification": {
            "type": "string",
            "enum": ["new", "update", "multiple", "unrecognized"],
        },
        "items": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "course": _NULLABLE_STRING,
                    "title": _NULLABLE_STRING,
                    "description": _NULLABLE_STRING,
                    "deadline": _NULLABLE_STRING,
                    "section_code": _NULLABLE_STRING,
                    "title_change_reason": _NULLABLE_STRING,
                },
                "required": [
                    "course",
                    "title",
                    "description",
                    "deadline",
                    "section_code",
                    "title_change_reason",
                ],
                "additionalProperties": False,
            },
        },
    },
    "required": ["classification", "items"],
    "additionalProperties": False,
}

VERIFICATION_SCHEMA = {
    "type": "object",
    "properties": {
        "match_index": {"type": ["integer", "null"]},
        "confidence": {"type": "string", "enum": ["low", "medium", "high"]},
        "reason": {"type": "string"},
    },
    "required": ["match_index", "confidence", "reason"],
    "additionalProperties": False,
}


# ---------------------------------------------------------------------------
# Validators for whatever a provider returns.  Every chain entry's output
# goes through these, whether or not the provider enforced the schema.
# ---------------------------------------------------------------------------


class ExtractedItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    course: str | None = None
    title: str | None = None
    description: str | None = None
    deadline: str | None = None
    section_code: str | None = None
    title_change_reason: str | None = None

    @field_validator("*", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str) and value.strip().lower() in ("", "null", "none", "n/a"):
            return None
        return value


class ExtractionPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    classification: Literal["new", "update", "multiple", "unrecognized"]
    items: list[ExtractedItem]

    @field_validator("classification", mode="before")
    @classmethod
    def _lowercase(cls, value):
        return value.strip().lower() if isinstance(value, str) else value


class VerificationPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    match_index: int | None
    confidence: Literal["low", "medium", "high"]
    reason: str = ""

    @field_validator("confidence", mode="before")
    @classmethod
    def _lowercase(cls, value):
        return value.strip().lower() if isinstance(value, str) else value
