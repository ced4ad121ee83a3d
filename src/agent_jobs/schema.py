"""Output schema description and validation for worker payloads."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class StoryOutcome(BaseModel):
    """Structured outcome the worker reports for one backlog item."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    summary: str
    files_changed: list[str] = Field(alias="filesChanged")
    learnings: list[str] = Field(default_factory=list)
    passes: bool


@dataclass(slots=True)
class ValidationResult:
    """Result of output validation."""

    is_valid: bool
    data: dict[str, Any] | None
    error_summary: str | None


def describe_schema(schema: type[BaseModel] | None) -> dict[str, Any] | None:
    """Return the JSON schema handed to the worker, or None for free-form output."""

    if schema is None:
        return None
    return schema.model_json_schema(by_alias=True)


def validate_payload(
    payload: dict[str, Any] | None,
    schema: type[BaseModel] | None,
) -> ValidationResult:
    """Validate a worker payload against the expected schema.

    Without a schema any JSON object is accepted as-is.
    """

    if payload is None:
        return ValidationResult(
            is_valid=False,
            data=None,
            error_summary="Worker produced no JSON result.",
        )
    if schema is None:
        return ValidationResult(is_valid=True, data=payload, error_summary=None)
    try:
        model = schema.model_validate(payload)
    except ValidationError as error:
        return ValidationResult(
            is_valid=False,
            data=None,
            error_summary=_summarize_validation_error(error),
        )
    return ValidationResult(is_valid=True, data=model.model_dump(by_alias=True), error_summary=None)


def schema_placeholder(schema: type[BaseModel]) -> dict[str, Any]:
    """Serializable stand-in for a live schema class."""

    doc = (schema.__doc__ or "").strip()
    return {
        "schema_type": "pydantic",
        "schema_name": schema.__name__,
        "schema_description": doc.splitlines()[0] if doc else None,
    }


def _summarize_validation_error(error: ValidationError) -> str:
    parts: list[str] = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "<root>"
        parts.append(f"{location}: {item['msg']}")
    return "Output failed schema validation: " + "; ".join(parts)
